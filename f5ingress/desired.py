"""Desired state derivation: cluster snapshot to virtual server descriptors."""

from typing import List, Set, Tuple

from .annotations import decode_annotations
from .backends import find_service, pod_queries, resolve_members
from .builder import build_virtual_server
from .errors import CollaboratorError
from .kube import ClusterClient
from .logging_config import get_logger, log_derivation_event, log_function_entry, log_function_exit
from .models import PodRecord, Snapshot, VirtualServer

logger = get_logger(__name__)


def derive_desired_state(snapshot: Snapshot) -> List[VirtualServer]:
    """Derive the desired virtual servers from a cluster snapshot.

    Ingresses are processed in snapshot order. An Ingress whose backend
    Service is missing is skipped; invalid annotations and missing pods only
    produce warnings. The snapshot is not modified and the result depends on
    nothing but the snapshot.

    Args:
        snapshot: Ingresses, services and pods to derive from.

    Returns:
        One virtual server per usable Ingress, in Ingress order.
    """
    log_function_entry(logger, "derive_desired_state",
                       ingresses=len(snapshot.ingresses),
                       services=len(snapshot.services),
                       pods=len(snapshot.pods))

    virtual_servers: List[VirtualServer] = []
    seen: Set[Tuple[str, str]] = set()
    skipped = 0

    for ingress in snapshot.ingresses:
        settings = decode_annotations(ingress)

        service = find_service(ingress, snapshot.services)
        if service is None:
            logger.info("Service not found, skipping this Ingress",
                        ingress=ingress.name,
                        namespace=ingress.namespace,
                        service=ingress.backend.service_name if ingress.backend else None)
            skipped += 1
            continue

        if (ingress.namespace, ingress.name) in seen:
            logger.warning("Duplicate Ingress in snapshot, keeping the first",
                           ingress=ingress.name,
                           namespace=ingress.namespace)
            skipped += 1
            continue

        members = resolve_members(ingress, service, snapshot.pods)
        virtual_server = build_virtual_server(ingress, settings, members)
        seen.add(virtual_server.key)
        virtual_servers.append(virtual_server)

    log_derivation_event(logger, "desired_state_derived",
                         virtual_servers=len(virtual_servers),
                         skipped=skipped)
    log_function_exit(logger, "derive_desired_state", virtual_servers=len(virtual_servers))
    return virtual_servers


async def collect_snapshot(cluster: ClusterClient) -> Snapshot:
    """Read everything ``derive_desired_state`` needs from a cluster.

    Ingresses and Services are listed first; a failure of either raises
    ``CollaboratorError``. Pods are then listed once per distinct namespace
    and selector referenced by an Ingress. A failed pod listing is logged
    and contributes no pods, so the affected virtual servers get no members.

    The list calls are not atomic against each other, but all of them
    complete before any derivation starts.
    """
    log_function_entry(logger, "collect_snapshot")

    ingresses = await cluster.list_ingresses()
    services = await cluster.list_services()

    pods: List[PodRecord] = []
    seen_pods: Set[Tuple[str, str]] = set()
    for namespace, selector in pod_queries(ingresses, services):
        try:
            listed = await cluster.list_pods(namespace, selector)
        except CollaboratorError as e:
            logger.warning("Call to fetch pods failed, treating as no members",
                           namespace=namespace,
                           selector=selector,
                           error=str(e))
            continue

        for pod in listed:
            if (pod.namespace, pod.name) not in seen_pods:
                seen_pods.add((pod.namespace, pod.name))
                pods.append(pod)

    snapshot = Snapshot(ingresses=ingresses, services=services, pods=pods)
    log_function_exit(logger, "collect_snapshot",
                      ingresses=len(ingresses),
                      services=len(services),
                      pods=len(pods))
    return snapshot


async def build_desired_state(cluster: ClusterClient) -> List[VirtualServer]:
    """Collect a snapshot from the cluster and derive the desired state from it."""
    snapshot = await collect_snapshot(cluster)
    return derive_desired_state(snapshot)
