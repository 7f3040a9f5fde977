"""
Datacenter Operator: Kubernetes operator for CassandraDatacenter resources.

Architecture:
  CassandraDatacenter CRD → Operator watches → Reconcile:
    1. Assemble the reconciliation context
       (load record, normalize timestamps, seed lastRollingRestart,
        resolve management API protocol, build node client)
    2. Hand the context to reconciliation actions

  Error handling at the kopf boundary:
    - NotFound               → resource is gone, nothing to do
    - Transport / Conflict   → TemporaryError, kopf retries with delay
    - Configuration / Client → PermanentError until the user fixes the spec

Run with:  kopf run -m datacenter_operator.operator
"""

import logging

import kopf
from prometheus_client import start_http_server

from datacenter_operator.config import settings as operator_settings
from datacenter_operator.errors import NotFoundError, ReconciliationError
from datacenter_operator.events import EVENT_NORMAL, EVENT_WARNING, KopfEventRecorder
from datacenter_operator.models import build_scheme
from datacenter_operator.reconciliation.cancellation import CancellationToken
from datacenter_operator.reconciliation.context import (
    ReconcileRequest,
    ReconciliationContext,
    create_reconciliation_context,
)
from datacenter_operator.request_logger import configure_logging
from datacenter_operator.services.kubernetes_service import KubernetesStore

logger = logging.getLogger("datacenter-operator")

CRD_GROUP = operator_settings.CRD_GROUP
CRD_VERSION = operator_settings.CRD_VERSION
CRD_PLURAL = operator_settings.CRD_PLURAL

SCHEME = build_scheme(CRD_GROUP, CRD_VERSION, CRD_PLURAL)

_store = KubernetesStore()
_recorder = KopfEventRecorder()


# ---------------------------------------------------------------------------
# Kopf operator settings
# ---------------------------------------------------------------------------

@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **kwargs):
    configure_logging(operator_settings.LOG_LEVEL)
    settings.posting.enabled = True
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(prefix=CRD_GROUP)
    settings.execution.max_workers = operator_settings.MAX_WORKERS
    if operator_settings.METRICS_PORT:
        start_http_server(operator_settings.METRICS_PORT)
    logger.info(
        f"Datacenter Operator started (max_workers={operator_settings.MAX_WORKERS}, "
        f"crd={CRD_PLURAL}.{CRD_GROUP}/{CRD_VERSION}, metrics_port={operator_settings.METRICS_PORT})"
    )


# ---------------------------------------------------------------------------
# CREATE / UPDATE / RESUME handler
# ---------------------------------------------------------------------------

def compute_reconciliation_actions(rc: ReconciliationContext) -> dict:
    """
    Entry point for reconciliation actions (rack scaling, rolling restarts,
    node replacement). Those live outside this package; here the assembled
    context is reported back so kopf stores it in the handler status.
    """
    dc = rc.datacenter
    rc.recorder.record(
        dc.to_body(), EVENT_NORMAL, "ContextReady",
        f"Reconciliation context assembled (managementApi={rc.node_mgmt_client.protocol.value})",
    )
    rc.logger.info("reconciliation context ready")
    return {
        "managementApiProtocol": rc.node_mgmt_client.protocol.value,
        "lastRollingRestart": dc.to_body()["status"].get("lastRollingRestart"),
    }


@kopf.on.create(CRD_GROUP, CRD_VERSION, CRD_PLURAL)
@kopf.on.update(CRD_GROUP, CRD_VERSION, CRD_PLURAL)
@kopf.on.resume(CRD_GROUP, CRD_VERSION, CRD_PLURAL)
def reconcile_datacenter(name, namespace, body, logger, **kwargs):
    """
    Reconcile a CassandraDatacenter to its desired state.

    Context assembly never retries on its own; kopf owns retry/backoff, and
    the error's ``retryable`` flag decides between TemporaryError and
    PermanentError.
    """
    request = ReconcileRequest(namespace=namespace, name=name)
    cancel = CancellationToken(timeout=operator_settings.RECONCILE_TIMEOUT)

    try:
        rc = create_reconciliation_context(request, _store, SCHEME, _recorder, logger, cancel)
    except NotFoundError:
        logger.info(f"CassandraDatacenter {request.namespaced_name} not found, nothing to reconcile")
        return None
    except ReconciliationError as e:
        _recorder.record(body, EVENT_WARNING, "ReconcileFailed", str(e)[:200])
        if e.retryable:
            raise kopf.TemporaryError(str(e), delay=operator_settings.RETRY_DELAY) from e
        raise kopf.PermanentError(str(e)) from e

    try:
        return compute_reconciliation_actions(rc)
    finally:
        rc.node_mgmt_client.close()
