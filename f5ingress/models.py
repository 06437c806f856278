"""Data models for f5ingress state derivation."""

import os
from typing import Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# Cluster snapshot records


class BackendRef(BaseModel):
    """Default backend of an Ingress."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    service_name: str = Field(..., alias="serviceName", description="Backend service name")
    service_port: Union[int, str] = Field(..., alias="servicePort", description="Port number or port name")


class IngressTLS(BaseModel):
    """A TLS entry of an Ingress."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    secret_name: Optional[str] = Field(None, alias="secretName", description="TLS secret name")
    hosts: List[str] = Field(default_factory=list, description="Hosts covered by the secret")


class IngressRecord(BaseModel):
    """The parts of an Ingress the engine reads."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., min_length=1, description="Ingress name")
    namespace: str = Field(..., min_length=1, description="Ingress namespace")
    labels: Dict[str, str] = Field(default_factory=dict, description="Resource labels")
    annotations: Dict[str, str] = Field(default_factory=dict, description="Resource annotations")
    backend: Optional[BackendRef] = Field(None, description="Default backend")
    tls: List[IngressTLS] = Field(default_factory=list, description="TLS entries")


class ServiceRecord(BaseModel):
    """The parts of a Service the engine reads."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Service name")
    namespace: str = Field(..., min_length=1, description="Service namespace")
    labels: Dict[str, str] = Field(default_factory=dict, description="Resource labels")
    annotations: Dict[str, str] = Field(default_factory=dict, description="Resource annotations")
    selector: Dict[str, str] = Field(default_factory=dict, description="Pod label selector")


class PodRecord(BaseModel):
    """The parts of a Pod the engine reads."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., min_length=1, description="Pod name")
    namespace: str = Field(..., min_length=1, description="Pod namespace")
    labels: Dict[str, str] = Field(default_factory=dict, description="Resource labels")
    phase: Optional[str] = Field(None, description="Lifecycle phase")
    pod_ip: Optional[str] = Field(None, alias="podIP", description="Pod IP, set once scheduled")


class Snapshot(BaseModel):
    """Ingresses, services and pods read at one logical instant."""

    model_config = ConfigDict(frozen=True)

    ingresses: List[IngressRecord] = Field(default_factory=list)
    services: List[ServiceRecord] = Field(default_factory=list)
    pods: List[PodRecord] = Field(default_factory=list)


# Virtual server descriptors


class MonitorSpec(BaseModel):
    """Health monitor attributes of a virtual server."""

    model_config = ConfigDict(populate_by_name=True)

    type: Optional[str] = Field(None, description="Monitor type (http, https, tcp, ...)")
    interval: Optional[int] = Field(None, ge=0, description="Probe interval in seconds")
    timeout: Optional[int] = Field(None, ge=0, description="Probe timeout in seconds")
    send: Optional[str] = Field(None, description="Send string")
    recv: Optional[str] = Field(None, description="Expected receive string")


class Member(BaseModel):
    """A pool member backing a virtual server."""

    name: str = Field(..., description="Member name (the pod name on the cluster side)")
    ip: str = Field(..., min_length=1, description="Member IP address")
    port: int = Field(..., ge=1, le=65535, description="Member port")


class VirtualServer(BaseModel):
    """Canonical virtual server descriptor.

    Field order is the wire order of the canonical JSON form.
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, description="Ingress name")
    namespace: str = Field(..., min_length=1, description="Ingress namespace")
    ip: Optional[str] = Field(None, description="Virtual address; absent for a headless virtual server")
    port: int = Field(..., ge=1, le=65535, description="Virtual port")
    client_ssl: Optional[str] = Field(None, alias="clientSSL", description="Client-side TLS secret")
    server_ssl: Optional[str] = Field(None, alias="serverSSL", description="Server-side SSL profile")
    redirect: bool = Field(False, description="Redirect HTTP to HTTPS")
    default_persist: Optional[str] = Field(None, alias="defaultPersist", description="Default persistence profile")
    fallback_persist: Optional[str] = Field(None, alias="fallbackPersist", description="Fallback persistence profile")
    lb_mode: Optional[str] = Field(None, alias="lbMode", description="Load balancing mode")
    irules: List[str] = Field(default_factory=list, alias="iRules", description="iRule names in order")
    members: List[Member] = Field(default_factory=list, description="Pool members in order")
    monitor: MonitorSpec = Field(default_factory=MonitorSpec, description="Health monitor")

    @model_validator(mode="after")
    def _redirect_needs_client_ssl(self) -> "VirtualServer":
        if self.redirect and not self.client_ssl:
            raise ValueError("redirect requires clientSSL")
        return self

    @property
    def key(self) -> Tuple[str, str]:
        return (self.namespace, self.name)

    @property
    def headless(self) -> bool:
        return not self.ip


# ADC inventory records, shaped after iControl REST responses


class AdcPoolMember(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    partition: str = "Common"
    address: Optional[str] = None
    description: Optional[str] = None


class AdcPool(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    partition: str = "Common"
    full_path: Optional[str] = Field(None, alias="fullPath")
    load_balancing_mode: Optional[str] = Field(None, alias="loadBalancingMode")
    monitor: Optional[str] = None
    members: List[AdcPoolMember] = Field(default_factory=list)


class AdcProfileRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    partition: str = "Common"
    context: Optional[str] = None


class AdcPersistRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    partition: str = "Common"


class AdcVirtual(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    partition: str = "Common"
    full_path: Optional[str] = Field(None, alias="fullPath")
    destination: Optional[str] = None
    pool: Optional[str] = None
    profiles: List[AdcProfileRef] = Field(default_factory=list)
    persist: List[AdcPersistRef] = Field(default_factory=list)
    fallback_persistence: Optional[str] = Field(None, alias="fallbackPersistence")
    rules: List[str] = Field(default_factory=list)


class AdcMonitor(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    partition: str = "Common"
    full_path: Optional[str] = Field(None, alias="fullPath")
    type: Optional[str] = Field(None, description="Monitor kind, taken from the collection it was listed from")
    interval: Optional[int] = None
    timeout: Optional[int] = None
    send: Optional[str] = None
    recv: Optional[str] = None


class AdcInventory(BaseModel):
    """Pools, virtual servers and monitors as reported by the ADC."""

    pools: List[AdcPool] = Field(default_factory=list)
    virtuals: List[AdcVirtual] = Field(default_factory=list)
    monitors: List[AdcMonitor] = Field(default_factory=list)


# Configuration


class EngineConfig(BaseModel):
    """Configuration passed explicitly into the engine."""

    model_config = ConfigDict(frozen=True)

    partition: str = Field(..., min_length=1, description="ADC partition owned by this controller")

    @field_validator("partition")
    @classmethod
    def _partition_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("partition must not be blank")
        return value


class ClusterConfig(BaseModel):
    """Configuration for the Kubernetes cluster connection."""

    kubeconfig_path: Optional[str] = Field(None, description="Path to kubeconfig file")
    context: Optional[str] = Field(None, description="Kubernetes context name")


class BigIPConfig(BaseModel):
    """Configuration for the BIG-IP iControl REST connection."""

    host: Optional[str] = Field(None, description="Management host, optionally with scheme and port")
    username: Optional[str] = Field(None, description="Management user")
    password: Optional[str] = Field(None, repr=False, description="Management password")
    verify_ssl: bool = Field(True, description="Verify the management TLS certificate")
    login_provider: str = Field("tmos", description="Login provider for token authentication")
    timeout: float = Field(30.0, gt=0, description="Request timeout in seconds")

    def with_env_defaults(self) -> "BigIPConfig":
        """Fill missing host and credentials from F5_HOST, F5_USER and F5_PASSWORD."""
        return self.model_copy(update={
            "host": self.host or os.getenv("F5_HOST"),
            "username": self.username or os.getenv("F5_USER"),
            "password": self.password or os.getenv("F5_PASSWORD"),
        })

    @property
    def base_url(self) -> str:
        if not self.host:
            return ""
        if self.host.startswith(("http://", "https://")):
            return self.host.rstrip("/")
        return f"https://{self.host}"


class ControllerConfig(BaseModel):
    """Top level controller configuration file."""

    partition: str = Field(..., min_length=1, description="ADC partition owned by this controller")
    cluster: ClusterConfig = Field(default_factory=ClusterConfig, description="Cluster connection")
    bigip: BigIPConfig = Field(default_factory=BigIPConfig, description="BIG-IP connection")
    refresh_interval: int = Field(60, ge=1, description="API state refresh interval in seconds")

    @property
    def engine(self) -> EngineConfig:
        return EngineConfig(partition=self.partition)
