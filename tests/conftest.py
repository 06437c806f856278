"""Shared fixtures for f5ingress tests."""

from typing import Dict, List, Optional

import pytest

from f5ingress.models import BackendRef, IngressRecord, IngressTLS, PodRecord, ServiceRecord, Snapshot


def make_ingress(name: str = "demo",
                 namespace: str = "web",
                 service: Optional[str] = "demo-svc",
                 port=8080,
                 annotations: Optional[Dict[str, str]] = None,
                 tls: Optional[List[str]] = None) -> IngressRecord:
    """Build an Ingress with a default backend and optional TLS secrets."""
    return IngressRecord(
        name=name,
        namespace=namespace,
        annotations=annotations or {},
        backend=BackendRef(service_name=service, service_port=port) if service else None,
        tls=[IngressTLS(secret_name=secret) for secret in tls or []],
    )


def make_service(name: str = "demo-svc",
                 namespace: str = "web",
                 selector: Optional[Dict[str, str]] = None) -> ServiceRecord:
    return ServiceRecord(name=name, namespace=namespace,
                         selector={"app": "demo"} if selector is None else selector)


def make_pod(name: str,
             ip: Optional[str],
             phase: str = "Running",
             namespace: str = "web",
             labels: Optional[Dict[str, str]] = None) -> PodRecord:
    return PodRecord(name=name, namespace=namespace, pod_ip=ip, phase=phase,
                     labels={"app": "demo"} if labels is None else labels)


@pytest.fixture
def demo_service():
    return make_service()


@pytest.fixture
def demo_pods():
    return [make_pod("p1", "10.0.0.1"), make_pod("p2", "10.0.0.2")]


@pytest.fixture
def demo_snapshot(demo_service, demo_pods):
    """Plain HTTP ingress web/demo backed by two running pods."""
    return Snapshot(ingresses=[make_ingress()], services=[demo_service], pods=demo_pods)
