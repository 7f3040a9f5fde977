"""
Pydantic models for the CassandraDatacenter custom resource.

Only the fields the operator reads or writes are typed; everything else is
kept as extra data so a dump round-trips the stored object unchanged.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from datacenter_operator.errors import ConfigurationError

# Kubernetes metav1.Time wire format (second precision)
KUBE_TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Go's zero time.Time, as older records may have persisted it
GO_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


def format_kube_time(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(KUBE_TIME_FORMAT)


class KubeModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class ObjectMeta(KubeModel):
    name: str
    namespace: str = "default"
    uid: Optional[str] = None
    resource_version: Optional[str] = Field(default=None, alias="resourceVersion")
    generation: Optional[int] = None


class ManualAuth(KubeModel):
    client_secret_name: str = Field(default="", alias="clientSecretName")
    skip_secret_validation: bool = Field(default=False, alias="skipSecretValidation")


class ManagementApiAuth(KubeModel):
    insecure: Optional[dict] = None
    manual: Optional[ManualAuth] = None


class Rack(KubeModel):
    name: str
    zone: Optional[str] = None


class DatacenterSpec(KubeModel):
    cluster_name: str = Field(default="", alias="clusterName")
    server_type: str = Field(default="cassandra", alias="serverType")
    server_version: str = Field(default="", alias="serverVersion")
    size: int = 0
    racks: List[Rack] = []
    management_api_auth: Optional[ManagementApiAuth] = Field(default=None, alias="managementApiAuth")


class DatacenterStatus(KubeModel):
    super_user_upserted: Optional[datetime] = Field(default=None, alias="superUserUpserted")
    last_server_node_started: Optional[datetime] = Field(default=None, alias="lastServerNodeStarted")
    last_rolling_restart: Optional[datetime] = Field(default=None, alias="lastRollingRestart")
    cassandra_operator_progress: Optional[str] = Field(default=None, alias="cassandraOperatorProgress")

    @field_serializer("super_user_upserted", "last_server_node_started", "last_rolling_restart")
    def serialize_time(self, value: Optional[datetime]) -> Optional[str]:
        return format_kube_time(value)


class CassandraDatacenter(KubeModel):
    """Declared spec plus last observed status of one datacenter."""

    api_version: str = Field(default="cassandra.datastax.com/v1beta1", alias="apiVersion")
    kind: str = "CassandraDatacenter"
    metadata: ObjectMeta
    spec: DatacenterSpec = Field(default_factory=DatacenterSpec)
    status: DatacenterStatus = Field(default_factory=DatacenterStatus)

    def to_body(self) -> dict:
        """Dump back into the JSON shape stored by the API server."""
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class ResourceType:
    group: str
    version: str
    plural: str
    kind: str
    model: Type[KubeModel]

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}"


class Scheme:
    """Registry of the resource kinds the operator knows how to decode."""

    def __init__(self):
        self._types: Dict[str, ResourceType] = {}

    def register(self, resource_type: ResourceType) -> None:
        self._types[resource_type.kind] = resource_type

    def lookup(self, kind: str) -> ResourceType:
        try:
            return self._types[kind]
        except KeyError:
            raise ConfigurationError("scheme lookup", f"kind {kind!r} is not registered in scheme") from None

    def kinds(self) -> List[str]:
        return sorted(self._types)


def build_scheme(group: str, version: str, plural: str) -> Scheme:
    scheme = Scheme()
    scheme.register(ResourceType(group, version, plural, "CassandraDatacenter", CassandraDatacenter))
    return scheme
