"""
Reconciliation context assembly.

Runs once per reconciliation request and produces the snapshot every later
reconciliation action works from:

  1. Load the CassandraDatacenter straight from the API server
  2. Normalize zero-valued status timestamps (in memory only)
  3. Seed status.lastRollingRestart on first observation (one status patch)
  4. Resolve the management API protocol and build the node client

Construction is all-or-nothing: every failure is logged with the step that
produced it and raised to the caller, which owns retry/backoff.
"""

import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Tuple

from pydantic import ValidationError

from datacenter_operator import metrics
from datacenter_operator.errors import ConfigurationError, ReconciliationError
from datacenter_operator.events import EventRecorder
from datacenter_operator.models import GO_ZERO_TIME, CassandraDatacenter, ResourceType, Scheme
from datacenter_operator.reconciliation.cancellation import CancellationToken
from datacenter_operator.request_logger import RequestLogger, as_request_logger
from datacenter_operator.services.management_api import (
    NodeMgmtClient,
    build_management_api_client,
    get_management_api_protocol,
)

DATACENTER_KIND = "CassandraDatacenter"

# Stand-in for zero-valued status timestamps: one second past the epoch
TIMESTAMP_SENTINEL = datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ReconcileRequest:
    namespace: str
    name: str

    @property
    def namespaced_name(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class RackInformation:
    rack_name: str
    node_count: int


@dataclass(frozen=True)
class ReconciliationContext:
    """Everything needed to compute reconciliation actions for one request."""

    request: ReconcileRequest
    client: Any
    scheme: Scheme
    datacenter: CassandraDatacenter
    node_mgmt_client: NodeMgmtClient
    recorder: EventRecorder
    logger: RequestLogger

    services: Tuple[Any, ...] = field(default_factory=tuple)
    desired_rack_information: Tuple[RackInformation, ...] = field(default_factory=tuple)
    statefulsets: Tuple[Any, ...] = field(default_factory=tuple)

    def with_rack_snapshot(self, desired_rack_information=(), statefulsets=(), services=()) -> "ReconciliationContext":
        return replace(
            self,
            desired_rack_information=tuple(desired_rack_information),
            statefulsets=tuple(statefulsets),
            services=tuple(services),
        )


# ---------------------------------------------------------------------------
# Timestamp normalization
# ---------------------------------------------------------------------------

def is_zero_time(value: Optional[datetime]) -> bool:
    if value is None:
        return True
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value == GO_ZERO_TIME


def normalize_timestamps(dc: CassandraDatacenter) -> CassandraDatacenter:
    """
    Replace zero-valued superUserUpserted / lastServerNodeStarted with
    TIMESTAMP_SENTINEL. In memory only; idempotent.
    """
    status = dc.status
    if is_zero_time(status.super_user_upserted):
        status.super_user_upserted = TIMESTAMP_SENTINEL
    if is_zero_time(status.last_server_node_started):
        status.last_server_node_started = TIMESTAMP_SENTINEL
    return dc


# ---------------------------------------------------------------------------
# Status bootstrap
# ---------------------------------------------------------------------------

def bootstrap_status(
    client,
    resource_type: ResourceType,
    dc: CassandraDatacenter,
    req_logger: RequestLogger,
    cancel: CancellationToken,
    now: Callable[[], datetime] = utc_now,
) -> Tuple[CassandraDatacenter, bool]:
    """
    Seed status.lastRollingRestart the first time a datacenter is observed.

    Returns the (possibly updated) datacenter and whether a patch was made.
    The patch baseline is the record as loaded in this invocation, so a
    concurrent writer makes the patch fail with ConflictError.
    """
    if not is_zero_time(dc.status.last_rolling_restart):
        return dc, False

    baseline = dc.to_body()
    mutated = dc.model_copy(deep=True)
    mutated.status.last_rolling_restart = now()

    try:
        cancel.check("bootstrap status")
        result = client.patch_status(resource_type, baseline, mutated.to_body(), cancel)
    except ReconciliationError as e:
        metrics.record_bootstrap_patch(type(e).__name__)
        req_logger.log_error(e, "error patching datacenter status for rolling restart")
        raise

    metrics.record_bootstrap_patch("success")
    resource_version = ((result or {}).get("metadata") or {}).get("resourceVersion")
    if resource_version:
        mutated.metadata.resource_version = resource_version
    req_logger.info("seeded status.lastRollingRestart")
    return mutated, True


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------

def retrieve_datacenter(client, resource_type: ResourceType, request: ReconcileRequest,
                        cancel: CancellationToken) -> CassandraDatacenter:
    body = client.get(resource_type, request.namespace, request.name, cancel)
    try:
        return resource_type.model.model_validate(body)
    except ValidationError as e:
        raise ConfigurationError(
            f"decode {resource_type.kind} {request.namespaced_name}", str(e)
        ) from e


def create_reconciliation_context(
    request: ReconcileRequest,
    client,
    scheme: Scheme,
    recorder: EventRecorder,
    logger,
    cancel: CancellationToken,
) -> ReconciliationContext:
    """Gather everything needed to compute reconciliation actions."""
    started = time.monotonic()
    req_logger = as_request_logger(logger).with_values(namespace=request.namespace)
    req_logger.info("handler::create_reconciliation_context")

    try:
        ctx = _assemble(request, client, scheme, recorder, req_logger, cancel)
    except ReconciliationError as e:
        metrics.record_assembly(type(e).__name__)
        raise
    finally:
        metrics.CONTEXT_ASSEMBLY_SECONDS.observe(time.monotonic() - started)

    metrics.record_assembly("success")
    return ctx


def _assemble(request, client, scheme, recorder, req_logger, cancel) -> ReconciliationContext:
    try:
        resource_type = scheme.lookup(DATACENTER_KIND)
    except ReconciliationError as e:
        req_logger.log_error(e, "error in scheme lookup")
        raise

    try:
        dc = retrieve_datacenter(client, resource_type, request, cancel)
    except ReconciliationError as e:
        req_logger.log_error(e, "error in retrieve_datacenter")
        raise

    normalize_timestamps(dc)
    dc, _ = bootstrap_status(client, resource_type, dc, req_logger, cancel)

    req_logger = req_logger.with_values(
        datacenterName=dc.metadata.name,
        clusterName=dc.spec.cluster_name,
    )

    try:
        protocol = get_management_api_protocol(dc)
    except ReconciliationError as e:
        req_logger.log_error(e, "error in get_management_api_protocol")
        raise

    try:
        node_mgmt_client = build_management_api_client(dc, protocol, client, req_logger, cancel)
    except ReconciliationError as e:
        req_logger.log_error(e, "error in build_management_api_client")
        raise

    return ReconciliationContext(
        request=request,
        client=client,
        scheme=scheme,
        datacenter=dc,
        node_mgmt_client=node_mgmt_client,
        recorder=recorder,
        logger=req_logger,
    )
