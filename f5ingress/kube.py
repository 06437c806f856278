"""Kubernetes cluster client and manifest conversion."""

import os
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from .errors import CollaboratorError
from .logging_config import get_logger, log_function_entry, log_function_exit, log_k8s_operation
from .models import BackendRef, ClusterConfig, IngressRecord, IngressTLS, PodRecord, ServiceRecord, Snapshot

logger = get_logger(__name__)


class ClusterClient(Protocol):
    """List operations the engine needs from a cluster."""

    async def list_ingresses(self) -> List[IngressRecord]: ...

    async def list_services(self) -> List[ServiceRecord]: ...

    async def list_pods(self, namespace: str, label_selector: str) -> List[PodRecord]: ...


def _metadata(manifest: Dict[str, Any]) -> Dict[str, Any]:
    return manifest.get("metadata") or {}


def ingress_record(manifest: Dict[str, Any]) -> IngressRecord:
    """Convert an Ingress manifest (networking.k8s.io/v1 or extensions/v1beta1) to a record."""
    metadata = _metadata(manifest)
    spec = manifest.get("spec") or {}

    backend = None
    default_backend = spec.get("defaultBackend") or {}
    legacy_backend = spec.get("backend") or {}
    if default_backend.get("service"):
        service = default_backend["service"]
        port = service.get("port") or {}
        port_value = port.get("number") if port.get("number") is not None else port.get("name")
        if service.get("name") and port_value is not None:
            backend = BackendRef(service_name=service["name"], service_port=port_value)
    elif legacy_backend.get("serviceName") and legacy_backend.get("servicePort") is not None:
        backend = BackendRef(service_name=legacy_backend["serviceName"],
                             service_port=legacy_backend["servicePort"])

    tls = [
        IngressTLS(secret_name=entry.get("secretName"), hosts=entry.get("hosts") or [])
        for entry in spec.get("tls") or []
    ]

    return IngressRecord(
        name=metadata.get("name"),
        namespace=metadata.get("namespace") or "default",
        labels=metadata.get("labels") or {},
        annotations=metadata.get("annotations") or {},
        backend=backend,
        tls=tls,
    )


def service_record(manifest: Dict[str, Any]) -> ServiceRecord:
    """Convert a Service manifest to a record."""
    metadata = _metadata(manifest)
    spec = manifest.get("spec") or {}
    return ServiceRecord(
        name=metadata.get("name"),
        namespace=metadata.get("namespace") or "default",
        labels=metadata.get("labels") or {},
        annotations=metadata.get("annotations") or {},
        selector=spec.get("selector") or {},
    )


def pod_record(manifest: Dict[str, Any]) -> PodRecord:
    """Convert a Pod manifest to a record."""
    metadata = _metadata(manifest)
    status = manifest.get("status") or {}
    return PodRecord(
        name=metadata.get("name"),
        namespace=metadata.get("namespace") or "default",
        labels=metadata.get("labels") or {},
        phase=status.get("phase"),
        pod_ip=status.get("podIP") or None,
    )


def snapshot_from_manifests(documents: Iterable[Optional[Dict[str, Any]]]) -> Snapshot:
    """Build a Snapshot from Kubernetes manifests, such as ``kubectl get -o yaml`` output.

    ``List`` documents are expanded. Kinds other than Ingress, Service and
    Pod are ignored. Order within each kind is preserved.
    """
    ingresses, services, pods = [], [], []

    def add(manifest: Dict[str, Any]) -> None:
        kind = manifest.get("kind") or ""
        if kind.endswith("List"):
            # Items of typed lists such as PodList omit their kind
            item_kind = kind[:-len("List")]
            for item in manifest.get("items") or []:
                if item_kind and not item.get("kind"):
                    item = dict(item, kind=item_kind)
                add(item)
        elif kind == "Ingress":
            ingresses.append(ingress_record(manifest))
        elif kind == "Service":
            services.append(service_record(manifest))
        elif kind == "Pod":
            pods.append(pod_record(manifest))
        else:
            logger.debug("Ignoring manifest", kind=kind, name=_metadata(manifest).get("name"))

    for document in documents:
        if document:
            add(document)

    return Snapshot(ingresses=ingresses, services=services, pods=pods)


class KubeClusterClient:
    """Cluster client backed by the official Kubernetes Python client."""

    def __init__(self, cluster_config: ClusterConfig):
        self.cluster_config = cluster_config
        self._k8s_client: Optional[client.ApiClient] = None
        self._networking_v1: Optional[client.NetworkingV1Api] = None
        self._core_v1: Optional[client.CoreV1Api] = None

    async def connect(self) -> None:
        """Initialize connection to the Kubernetes cluster."""
        log_function_entry(logger, "connect",
                           kubeconfig_path=self.cluster_config.kubeconfig_path,
                           context=self.cluster_config.context)

        try:
            if self.cluster_config.kubeconfig_path:
                logger.debug("Loading kubeconfig from file",
                             kubeconfig_path=self.cluster_config.kubeconfig_path,
                             context=self.cluster_config.context)
                config.load_kube_config(
                    config_file=os.path.expanduser(self.cluster_config.kubeconfig_path),
                    context=self.cluster_config.context
                )
            else:
                try:
                    logger.debug("Loading in-cluster config")
                    config.load_incluster_config()
                except config.ConfigException as e:
                    logger.debug("In-cluster config unavailable, loading default kubeconfig", error=str(e))
                    config.load_kube_config(context=self.cluster_config.context)

            self._k8s_client = client.ApiClient()
            self._networking_v1 = client.NetworkingV1Api(self._k8s_client)
            self._core_v1 = client.CoreV1Api(self._k8s_client)

        except Exception as e:
            logger.error("Failed to connect to cluster",
                         error=str(e),
                         kubeconfig_path=self.cluster_config.kubeconfig_path,
                         context=self.cluster_config.context)
            raise CollaboratorError("kubernetes", "connect", str(e)) from e

        logger.info("Successfully connected to cluster", context=self.cluster_config.context)
        log_function_exit(logger, "connect", status="success")

    async def disconnect(self) -> None:
        """Clean up the connection."""
        if self._k8s_client:
            self._k8s_client.close()
            self._k8s_client = None
            self._networking_v1 = None
            self._core_v1 = None

    async def __aenter__(self) -> "KubeClusterClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    async def _list(self, operation: str, call: Callable[..., Any], **kwargs: Any) -> List[Dict[str, Any]]:
        log_k8s_operation(logger, operation, **kwargs)
        try:
            response = call(**kwargs)
        except ApiException as e:
            logger.error("Kubernetes list call failed", operation=operation, status=e.status, reason=e.reason)
            raise CollaboratorError("kubernetes", operation, str(e.reason), status=e.status) from e
        except Exception as e:
            logger.error("Kubernetes list call failed", operation=operation, error=str(e))
            raise CollaboratorError("kubernetes", operation, str(e)) from e

        items = [self._k8s_client.sanitize_for_serialization(item) for item in response.items]
        logger.debug("Kubernetes list call succeeded", operation=operation, count=len(items))
        return items

    async def _ensure_connected(self) -> None:
        if not self._k8s_client:
            logger.debug("API client not initialized, connecting")
            await self.connect()

    async def list_ingresses(self) -> List[IngressRecord]:
        """List Ingresses in all namespaces."""
        await self._ensure_connected()
        items = await self._list("list_ingresses", self._networking_v1.list_ingress_for_all_namespaces)
        return [ingress_record(item) for item in items]

    async def list_services(self) -> List[ServiceRecord]:
        """List Services in all namespaces."""
        await self._ensure_connected()
        items = await self._list("list_services", self._core_v1.list_service_for_all_namespaces)
        return [service_record(item) for item in items]

    async def list_pods(self, namespace: str, label_selector: str) -> List[PodRecord]:
        """List Pods in a namespace matching an equality-based label selector."""
        await self._ensure_connected()
        items = await self._list("list_pods", self._core_v1.list_namespaced_pod,
                                 namespace=namespace, label_selector=label_selector)
        return [pod_record(item) for item in items]
