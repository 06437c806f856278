"""Backend resolution: Ingress default backend to Service to running Pods."""

from typing import Iterable, List, Mapping, Optional, Tuple

from .logging_config import get_logger
from .models import IngressRecord, Member, PodRecord, ServiceRecord

logger = get_logger(__name__)

RUNNING = "Running"


def find_service(ingress: IngressRecord, services: Iterable[ServiceRecord]) -> Optional[ServiceRecord]:
    """Find the Service named by the Ingress default backend in the Ingress namespace.

    Returns:
        The matching Service, or None when the Ingress has no default backend
        or no such Service exists.
    """
    if ingress.backend is None:
        return None

    for service in services:
        if service.name == ingress.backend.service_name and service.namespace == ingress.namespace:
            return service
    return None


def label_selector(selector: Mapping[str, str]) -> str:
    """Render a selector as a Kubernetes equality-based label selector string.

    Keys are sorted so that equal selectors always render identically.
    """
    return ",".join(f"{key}={selector[key]}" for key in sorted(selector))


def selector_matches(selector: Mapping[str, str], labels: Mapping[str, str]) -> bool:
    """Conjunctive equality match of a selector against pod labels.

    An empty selector matches nothing.
    """
    if not selector:
        return False
    return all(labels.get(key) == value for key, value in selector.items())


def backend_port(ingress: IngressRecord) -> Optional[int]:
    """Numeric service port of the Ingress default backend.

    Numeric strings are accepted; port names are not resolved and yield None.
    """
    if ingress.backend is None:
        return None

    port = ingress.backend.service_port
    if isinstance(port, str):
        if not (port.isascii() and port.isdigit()):
            return None
        port = int(port)
    if not 1 <= port <= 65535:
        return None
    return port


def select_pods(service: ServiceRecord, namespace: str, pods: Iterable[PodRecord]) -> List[PodRecord]:
    """Pods in ``namespace`` selected by the Service, in input order."""
    return [
        pod for pod in pods
        if pod.namespace == namespace and selector_matches(service.selector, pod.labels)
    ]


def resolve_members(ingress: IngressRecord, service: ServiceRecord, pods: Iterable[PodRecord]) -> List[Member]:
    """Build pool members from the pods selected by a Service.

    Only pods in phase Running with a pod IP become members. Each member
    uses the numeric port of the Ingress backend.

    Args:
        ingress: The Ingress being resolved.
        service: The Service named by its default backend.
        pods: Candidate pods; those outside the Ingress namespace or not
            selected by the Service are ignored.

    Returns:
        Members in pod order, possibly empty.
    """
    selected = select_pods(service, ingress.namespace, pods)
    if not service.selector:
        logger.info("Service has no selector, no pods selected",
                    ingress=ingress.name,
                    namespace=ingress.namespace,
                    service=service.name)

    port = backend_port(ingress)
    if port is None:
        if selected:
            logger.warning("Backend service port is not numeric, not adding members",
                           ingress=ingress.name,
                           namespace=ingress.namespace,
                           service=service.name,
                           service_port=ingress.backend.service_port if ingress.backend else None)
        return []

    members = []
    for pod in selected:
        if pod.phase != RUNNING:
            logger.info("Skipping pod that is not running",
                        ingress=ingress.name,
                        namespace=ingress.namespace,
                        pod=pod.name,
                        phase=pod.phase)
            continue
        if not pod.pod_ip:
            logger.info("Skipping running pod without an IP",
                        ingress=ingress.name,
                        namespace=ingress.namespace,
                        pod=pod.name)
            continue

        member = Member(name=pod.name, ip=pod.pod_ip, port=port)
        logger.debug("Adding pod to virtual server",
                      ingress=ingress.name,
                      namespace=ingress.namespace,
                      pod=member.name,
                      ip=member.ip,
                      port=member.port)
        members.append(member)

    if not members:
        logger.debug("No running pods found, creating virtual server without members",
                      ingress=ingress.name,
                      namespace=ingress.namespace)

    return members


def pod_queries(ingresses: Iterable[IngressRecord], services: Iterable[ServiceRecord]) -> List[Tuple[str, str]]:
    """Distinct ``(namespace, label_selector)`` pod listings needed to resolve every Ingress.

    Ingresses without a Service, and Services without a selector, need no listing.
    """
    services = list(services)
    queries: List[Tuple[str, str]] = []
    for ingress in ingresses:
        service = find_service(ingress, services)
        if service is None or not service.selector:
            continue
        query = (ingress.namespace, label_selector(service.selector))
        if query not in queries:
            queries.append(query)
    return queries
