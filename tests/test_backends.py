"""Tests for backend resolution."""

from unittest.mock import patch

import pytest

from conftest import make_ingress, make_pod, make_service
from f5ingress.backends import (
    backend_port,
    find_service,
    label_selector,
    pod_queries,
    resolve_members,
    select_pods,
    selector_matches,
)
from f5ingress.models import Member


class TestFindService:
    """Tests for locating the backend Service."""

    def test_match_by_name_and_namespace(self):
        services = [
            make_service(name="demo-svc", namespace="other"),
            make_service(name="demo-svc", namespace="web"),
        ]

        assert find_service(make_ingress(), services) is services[1]

    def test_missing_service(self):
        assert find_service(make_ingress(service="ghost-svc"), [make_service()]) is None

    def test_ingress_without_backend(self):
        assert find_service(make_ingress(service=None), [make_service()]) is None


class TestLabelSelector:
    """Tests for label selector rendering and matching."""

    def test_render_sorted(self):
        assert label_selector({"tier": "web", "app": "demo"}) == "app=demo,tier=web"

    def test_render_empty(self):
        assert label_selector({}) == ""

    def test_conjunctive_match(self):
        selector = {"app": "demo", "tier": "web"}

        assert selector_matches(selector, {"app": "demo", "tier": "web", "extra": "x"})
        assert not selector_matches(selector, {"app": "demo"})
        assert not selector_matches(selector, {"app": "demo", "tier": "db"})

    def test_empty_selector_matches_nothing(self):
        assert not selector_matches({}, {"app": "demo"})
        assert not selector_matches({}, {})

    def test_select_pods_filters_namespace(self):
        pods = [make_pod("p1", "10.0.0.1"), make_pod("p2", "10.0.0.2", namespace="other")]

        assert [p.name for p in select_pods(make_service(), "web", pods)] == ["p1"]


class TestBackendPort:
    """Tests for backend port extraction."""

    @pytest.mark.parametrize("port,expected", [
        (8080, 8080),
        ("8080", 8080),
        ("http", None),
        (0, None),
        (70000, None),
    ])
    def test_backend_port(self, port, expected):
        assert backend_port(make_ingress(port=port)) == expected

    def test_no_backend(self):
        assert backend_port(make_ingress(service=None)) is None


class TestResolveMembers:
    """Tests for building members from pods."""

    def test_running_pods_become_members(self, demo_service, demo_pods):
        members = resolve_members(make_ingress(), demo_service, demo_pods)

        assert members == [
            Member(name="p1", ip="10.0.0.1", port=8080),
            Member(name="p2", ip="10.0.0.2", port=8080),
        ]

    def test_pending_pod_excluded(self, demo_service):
        pods = [make_pod("p1", "10.0.0.1"), make_pod("p2", None, phase="Pending")]

        with patch("f5ingress.backends.logger") as mock_logger:
            members = resolve_members(make_ingress(), demo_service, pods)

        assert [m.name for m in members] == ["p1"]
        mock_logger.info.assert_called_once()
        assert mock_logger.info.call_args.kwargs["pod"] == "p2"

    def test_running_pod_without_ip_excluded(self, demo_service):
        pods = [make_pod("p1", None), make_pod("p2", "")]

        assert resolve_members(make_ingress(), demo_service, pods) == []

    def test_unselected_pods_ignored(self, demo_service):
        pods = [make_pod("p1", "10.0.0.1", labels={"app": "other"})]

        assert resolve_members(make_ingress(), demo_service, pods) == []

    def test_empty_selector_selects_no_pods(self):
        service = make_service(selector={})
        pods = [make_pod("p1", "10.0.0.1")]

        assert resolve_members(make_ingress(), service, pods) == []

    def test_symbolic_port_yields_no_members(self, demo_service, demo_pods):
        with patch("f5ingress.backends.logger") as mock_logger:
            members = resolve_members(make_ingress(port="http"), demo_service, demo_pods)

        assert members == []
        mock_logger.warning.assert_called_once()

    def test_member_order_follows_pods(self, demo_service):
        pods = [make_pod("b", "10.0.0.2"), make_pod("a", "10.0.0.1")]

        assert [m.name for m in resolve_members(make_ingress(), demo_service, pods)] == ["b", "a"]

    def test_ipv6_member(self, demo_service):
        members = resolve_members(make_ingress(), demo_service, [make_pod("p1", "fd00::1")])

        assert members == [Member(name="p1", ip="fd00::1", port=8080)]


class TestPodQueries:
    """Tests for the pod listings needed by a set of Ingresses."""

    def test_distinct_queries_in_order(self):
        ingresses = [
            make_ingress(name="a"),
            make_ingress(name="b"),
            make_ingress(name="c", service="api"),
            make_ingress(name="d", service="ghost"),
            make_ingress(name="e", service="headless"),
        ]
        services = [
            make_service(),
            make_service(name="api", selector={"app": "api", "tier": "be"}),
            make_service(name="headless", selector={}),
        ]

        assert pod_queries(ingresses, services) == [
            ("web", "app=demo"),
            ("web", "app=api,tier=be"),
        ]
