"""
Configuration module: all settings from env vars with sensible defaults.
Follows 12-factor app methodology.
"""
import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    # Kubernetes
    KUBECONFIG: str = os.environ.get("KUBECONFIG", "")
    IN_CLUSTER: bool = os.environ.get("IN_CLUSTER", "false").lower() == "true"

    # CRD
    CRD_GROUP: str = os.environ.get("CRD_GROUP", "cassandra.datastax.com")
    CRD_VERSION: str = os.environ.get("CRD_VERSION", "v1beta1")
    CRD_PLURAL: str = os.environ.get("CRD_PLURAL", "cassandradatacenters")

    # Management API (per-node HTTP endpoint)
    MANAGEMENT_API_PORT: int = int(os.environ.get("MANAGEMENT_API_PORT", "8080"))
    MANAGEMENT_API_TIMEOUT: float = float(os.environ.get("MANAGEMENT_API_TIMEOUT", "10"))

    # Reconciliation
    RECONCILE_TIMEOUT: float = float(os.environ.get("RECONCILE_TIMEOUT", "60"))
    RETRY_DELAY: int = int(os.environ.get("RETRY_DELAY", "15"))
    MAX_WORKERS: int = int(os.environ.get("MAX_WORKERS", "4"))

    # Observability
    METRICS_PORT: int = int(os.environ.get("METRICS_PORT", "8081"))
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")


settings = Settings()
