"""
Management API client: talks to the HTTP management sidecar on each node.

Two security providers can be declared under ``spec.managementApiAuth``:
  - manual:   mutual TLS with material from a Secret  -> https
  - insecure: plain HTTP                              -> http

Declaring both is an error; declaring neither means the resource default
(insecure). The client is wired at construction and performs no network
I/O until a ``call_*`` method is used.
"""

import logging
import os
import ssl
import tempfile
from enum import Enum
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter

from datacenter_operator.config import settings as default_settings
from datacenter_operator.errors import (
    ClientConstructionError,
    ConfigurationError,
    ManagementApiError,
    NotFoundError,
    TransportError,
)
from datacenter_operator.models import CassandraDatacenter
from datacenter_operator.reconciliation.cancellation import CancellationToken
from datacenter_operator.request_logger import RequestLogger

logger = logging.getLogger("management_api")

CA_CERT_KEY = "ca.crt"
TLS_CERT_KEY = "tls.crt"
TLS_KEY_KEY = "tls.key"

USER_AGENT = "datacenter-operator/1.0"


class Protocol(str, Enum):
    ENCRYPTED = "https"
    PLAINTEXT = "http"


# ---------------------------------------------------------------------------
# Protocol resolution
# ---------------------------------------------------------------------------

def get_management_api_protocol(dc: CassandraDatacenter) -> Protocol:
    """Resolve http/https from the declared management API auth."""
    step = "resolve management api protocol"
    auth = dc.spec.management_api_auth
    if auth is None:
        return Protocol.PLAINTEXT

    enabled = []
    if auth.manual is not None:
        if not auth.manual.client_secret_name:
            raise ConfigurationError(step, "managementApiAuth.manual requires clientSecretName")
        enabled.append(Protocol.ENCRYPTED)
    if auth.insecure is not None:
        enabled.append(Protocol.PLAINTEXT)

    if len(enabled) > 1:
        raise ConfigurationError(step, "multiple management API security providers were specified")
    if not enabled:
        return Protocol.PLAINTEXT
    return enabled[0]


# ---------------------------------------------------------------------------
# Transport wiring
# ---------------------------------------------------------------------------

class _TLSContextAdapter(HTTPAdapter):
    """HTTPAdapter that hands a prepared SSLContext to urllib3."""

    def __init__(self, ssl_context: ssl.SSLContext, **kwargs):
        self._ssl_context = ssl_context
        super().__init__(**kwargs)

    def init_poolmanager(self, *args, **kwargs):
        kwargs["ssl_context"] = self._ssl_context
        kwargs["assert_hostname"] = False
        return super().init_poolmanager(*args, **kwargs)


def _require_pem(material: Dict[str, bytes], key: str, secret_name: str, validate: bool) -> bytes:
    step = "build management api client"
    value = material.get(key)
    if not value:
        raise ClientConstructionError(step, f"secret {secret_name} is missing key {key}")
    if validate and b"-----BEGIN" not in value:
        raise ClientConstructionError(step, f"secret {secret_name} key {key} is not PEM encoded")
    return value


def build_tls_context(material: Dict[str, bytes], secret_name: str, validate: bool = True) -> ssl.SSLContext:
    """
    Build a client SSLContext from a TLS Secret (ca.crt, tls.crt, tls.key).

    Pods are addressed by IP, so the chain is verified against the CA but
    the hostname is not.
    """
    step = "build management api client"
    ca = _require_pem(material, CA_CERT_KEY, secret_name, validate)
    cert = _require_pem(material, TLS_CERT_KEY, secret_name, validate)
    key = _require_pem(material, TLS_KEY_KEY, secret_name, validate)

    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_REQUIRED
    try:
        context.load_verify_locations(cadata=ca.decode("ascii"))
        # load_cert_chain only reads from paths; the files live just long enough to load
        with tempfile.TemporaryDirectory(prefix="mgmt-tls-") as tmp:
            cert_path = os.path.join(tmp, TLS_CERT_KEY)
            key_path = os.path.join(tmp, TLS_KEY_KEY)
            with open(cert_path, "wb") as f:
                f.write(cert)
            with open(key_path, "wb") as f:
                f.write(key)
            context.load_cert_chain(cert_path, key_path)
    except (ssl.SSLError, ValueError, UnicodeDecodeError) as e:
        raise ClientConstructionError(step, f"invalid TLS material in secret {secret_name}: {e}") from e
    logger.debug(f"loaded TLS material from secret {secret_name}")
    return context


def build_management_api_client(
    dc: CassandraDatacenter,
    protocol: Protocol,
    store,
    req_logger: RequestLogger,
    cancel: CancellationToken,
    settings=default_settings,
) -> "NodeMgmtClient":
    """Construct a NodeMgmtClient bound to ``protocol`` and ``req_logger``."""
    tls_adapter = None
    if protocol == Protocol.ENCRYPTED:
        manual = dc.spec.management_api_auth.manual
        secret_name = manual.client_secret_name
        try:
            material = store.get_secret(dc.metadata.namespace, secret_name, cancel)
        except NotFoundError as e:
            raise ClientConstructionError(
                "build management api client", f"TLS secret {secret_name} not found"
            ) from e
        context = build_tls_context(material, secret_name, validate=not manual.skip_secret_validation)
        tls_adapter = _TLSContextAdapter(context)

    session = requests.Session()
    session.headers["User-Agent"] = USER_AGENT
    if tls_adapter is not None:
        session.mount("https://", tls_adapter)
    req_logger.info(f"management api client ready (protocol={protocol.value})")

    return NodeMgmtClient(
        session=session,
        log=req_logger,
        protocol=protocol,
        port=settings.MANAGEMENT_API_PORT,
        timeout=settings.MANAGEMENT_API_TIMEOUT,
    )


# ---------------------------------------------------------------------------
# Per-node client
# ---------------------------------------------------------------------------

def _pod_ip(pod: Any) -> Optional[str]:
    if isinstance(pod, dict):
        return (pod.get("status") or {}).get("podIP")
    status = getattr(pod, "status", None)
    return getattr(status, "pod_ip", None) if status is not None else None


def _pod_name(pod: Any) -> str:
    if isinstance(pod, dict):
        return (pod.get("metadata") or {}).get("name", "<unknown>")
    metadata = getattr(pod, "metadata", None)
    return getattr(metadata, "name", "<unknown>")


class NodeMgmtClient:
    def __init__(self, session: requests.Session, log: RequestLogger, protocol: Protocol,
                 port: int = 8080, timeout: float = 10.0):
        self._session = session
        self.log = log
        self.protocol = protocol
        self.port = port
        self.timeout = timeout

    def base_url(self, pod: Any) -> str:
        ip = _pod_ip(pod)
        if not ip:
            raise ManagementApiError("management api request", f"pod {_pod_name(pod)} has no IP assigned")
        return f"{self.protocol.value}://{ip}:{self.port}"

    def call_endpoint(self, pod: Any, method: str, path: str,
                      params: Optional[dict] = None, json: Optional[dict] = None) -> bytes:
        """Issue one request against the pod's management API; returns the body."""
        url = f"{self.base_url(pod)}{path}"
        step = f"{method} {path} on pod {_pod_name(pod)}"
        self.log.info(f"calling management api {step}")
        try:
            response = self._session.request(method, url, params=params, json=json, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(step, str(e)) from e
        if response.status_code < 200 or response.status_code >= 300:
            raise ManagementApiError(step, f"HTTP {response.status_code}: {response.text[:200]}",
                                     status_code=response.status_code)
        return response.content

    def call_liveness_endpoint(self, pod: Any) -> bytes:
        return self.call_endpoint(pod, "GET", "/api/v0/probes/liveness")

    def call_readiness_endpoint(self, pod: Any) -> bytes:
        return self.call_endpoint(pod, "GET", "/api/v0/probes/readiness")

    def call_lifecycle_start_endpoint(self, pod: Any) -> bytes:
        return self.call_endpoint(pod, "POST", "/api/v0/lifecycle/start")

    def call_drain_endpoint(self, pod: Any) -> bytes:
        return self.call_endpoint(pod, "POST", "/api/v0/ops/node/drain")

    def call_reload_seeds_endpoint(self, pod: Any) -> bytes:
        return self.call_endpoint(pod, "POST", "/api/v0/ops/seeds/reload")

    def call_create_role_endpoint(self, pod: Any, username: str, password: str) -> bytes:
        params = {
            "username": username,
            "password": password,
            "is_superuser": "true",
            "can_login": "true",
        }
        return self.call_endpoint(pod, "POST", "/api/v0/ops/auth/role", params=params)

    def call_keyspace_cleanup_endpoint(self, pod: Any, keyspace: Optional[str] = None) -> bytes:
        body = {"keyspace_name": keyspace} if keyspace else {}
        return self.call_endpoint(pod, "POST", "/api/v0/ops/keyspace/cleanup", json=body)

    def call_probe_cluster_health(self, pod: Any, consistency_level: str, rf_per_dc: int) -> bool:
        """True when the cluster can serve ``consistency_level`` at the given RF."""
        params = {"consistency_level": consistency_level, "rf_per_dc": str(rf_per_dc)}
        try:
            self.call_endpoint(pod, "GET", "/api/v0/probes/cluster", params=params)
        except ManagementApiError as e:
            if e.status_code is None:
                raise
            return False
        return True

    def close(self) -> None:
        self._session.close()
