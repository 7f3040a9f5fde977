"""
Kubernetes service layer: the resource store behind reconciliation.

Design principles:
  - Strongly consistent reads straight from the API server (no cache)
  - Optimistic merge patches: the baseline resourceVersion rides along
    with every status patch so a stale baseline is rejected with 409
  - Clean error handling: translates K8s API exceptions to domain errors
"""

import base64
import copy
import logging
from typing import Any, Dict, Optional

import urllib3
from kubernetes import client, config
from kubernetes.client import ApiException

from datacenter_operator.config import settings
from datacenter_operator.errors import ConflictError, NotFoundError, TransportError
from datacenter_operator.models import ResourceType
from datacenter_operator.reconciliation.cancellation import CancellationToken

logger = logging.getLogger("kubernetes_service")

_k8s_loaded = False


def _ensure_k8s():
    """Load Kubernetes config exactly once."""
    global _k8s_loaded
    if _k8s_loaded:
        return
    if settings.IN_CLUSTER:
        config.load_incluster_config()
    else:
        config.load_kube_config(config_file=settings.KUBECONFIG or None)
    _k8s_loaded = True


def create_merge_patch(baseline: Any, mutated: Any) -> Any:
    """
    Compute an RFC 7386 JSON merge patch turning ``baseline`` into ``mutated``.

    Keys dropped from a mapping become ``None`` (delete), nested mappings are
    diffed recursively, anything else is replaced wholesale.
    """
    if not isinstance(baseline, dict) or not isinstance(mutated, dict):
        return copy.deepcopy(mutated)
    patch: Dict[str, Any] = {}
    for key in baseline:
        if key not in mutated:
            patch[key] = None
    for key, value in mutated.items():
        if key not in baseline:
            patch[key] = copy.deepcopy(value)
        elif baseline[key] != value:
            if isinstance(baseline[key], dict) and isinstance(value, dict):
                patch[key] = create_merge_patch(baseline[key], value)
            else:
                patch[key] = copy.deepcopy(value)
    return patch


def translate_api_error(err: Exception, step: str):
    """Map a Kubernetes client failure onto the reconciliation error taxonomy."""
    if isinstance(err, ApiException):
        detail = err.reason or str(err)
        if err.status == 404:
            return NotFoundError(step, detail)
        if err.status == 409:
            return ConflictError(step, detail)
        return TransportError(step, f"API server returned {err.status}: {detail}")
    return TransportError(step, str(err))


class KubernetesStore:
    """
    Get/patch access to namespaced custom objects plus Secret reads.

    The API objects are created lazily so the store can be constructed
    without a reachable cluster.
    """

    def __init__(self, custom_api: Optional[client.CustomObjectsApi] = None,
                 core_api: Optional[client.CoreV1Api] = None):
        self._custom_api = custom_api
        self._core_api = core_api

    @property
    def custom_api(self) -> client.CustomObjectsApi:
        if self._custom_api is None:
            _ensure_k8s()
            self._custom_api = client.CustomObjectsApi()
        return self._custom_api

    @property
    def core_api(self) -> client.CoreV1Api:
        if self._core_api is None:
            _ensure_k8s()
            self._core_api = client.CoreV1Api()
        return self._core_api

    def get(self, resource_type: ResourceType, namespace: str, name: str,
            cancel: CancellationToken) -> dict:
        """Read one custom object. Raises NotFoundError / TransportError."""
        step = f"get {resource_type.plural} {namespace}/{name}"
        cancel.check(step)
        try:
            return self.custom_api.get_namespaced_custom_object(
                resource_type.group, resource_type.version, namespace,
                resource_type.plural, name,
                _request_timeout=cancel.remaining(),
            )
        except (ApiException, urllib3.exceptions.HTTPError) as e:
            raise translate_api_error(e, step) from e

    def patch_status(self, resource_type: ResourceType, baseline: dict, mutated: dict,
                     cancel: CancellationToken) -> dict:
        """
        Merge-patch the status subresource from ``baseline`` to ``mutated``.

        The baseline's resourceVersion is included in the patch, so the API
        server refuses it (409 -> ConflictError) if the object moved on.
        """
        metadata = baseline.get("metadata", {})
        namespace, name = metadata.get("namespace"), metadata.get("name")
        step = f"patch {resource_type.plural}/status {namespace}/{name}"

        body = create_merge_patch(baseline, mutated)
        body.pop("metadata", None)
        resource_version = metadata.get("resourceVersion")
        if resource_version:
            body["metadata"] = {"resourceVersion": resource_version}

        cancel.check(step)
        logger.info(f"{step}: {sorted(body.get('status', {}))}")
        try:
            return self.custom_api.patch_namespaced_custom_object_status(
                resource_type.group, resource_type.version, namespace,
                resource_type.plural, name, body,
                _request_timeout=cancel.remaining(),
            )
        except (ApiException, urllib3.exceptions.HTTPError) as e:
            raise translate_api_error(e, step) from e

    def get_secret(self, namespace: str, name: str, cancel: CancellationToken) -> Dict[str, bytes]:
        """Read a Secret and return its base64-decoded data."""
        step = f"get secret {namespace}/{name}"
        cancel.check(step)
        try:
            secret = self.core_api.read_namespaced_secret(
                name, namespace, _request_timeout=cancel.remaining()
            )
        except (ApiException, urllib3.exceptions.HTTPError) as e:
            raise translate_api_error(e, step) from e
        return {k: base64.b64decode(v) for k, v in (secret.data or {}).items()}
