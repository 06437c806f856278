"""Tests for the BIG-IP iControl REST client."""

import json

import httpx
import pytest

from f5ingress.bigip import TOKEN_HEADER, BigIPClient
from f5ingress.errors import CollaboratorError, ConfigurationError
from f5ingress.models import BigIPConfig

POOLS = {
    "items": [{
        "name": "web_demo",
        "partition": "k8s",
        "fullPath": "/k8s/web_demo",
        "loadBalancingMode": "round-robin",
        "monitor": "/k8s/web_demo_mon ",
        "membersReference": {
            "link": "https://localhost/mgmt/tm/ltm/pool/~k8s~web_demo/members",
            "items": [{"name": "10.0.0.1:8080", "partition": "k8s", "address": "10.0.0.1", "description": "p1"}],
        },
    }]
}

VIRTUALS = {
    "items": [{
        "name": "web_demo",
        "partition": "k8s",
        "fullPath": "/k8s/web_demo",
        "destination": "/k8s/10.1.1.1:443",
        "pool": "/k8s/web_demo",
        "persist": [{"name": "cookie", "partition": "Common", "tmDefault": "yes"}],
        "rules": ["/k8s/rule_a"],
        "profilesReference": {
            "items": [{"name": "cert-a", "partition": "k8s", "context": "clientside"}],
        },
    }]
}

HTTP_MONITORS = {
    "items": [{"name": "web_demo_mon", "partition": "k8s", "interval": 5, "timeout": 16,
               "send": "GET /healthz", "recv": "200"}]
}


class FakeBigIP:
    """Minimal iControl REST responder for httpx.MockTransport."""

    def __init__(self, login_status=200, failing_path=None):
        self.login_status = login_status
        self.failing_path = failing_path
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/mgmt/shared/authn/login":
            if self.login_status != 200:
                return httpx.Response(self.login_status, json={"message": "Authentication failed"})
            body = json.loads(request.content)
            assert body["loginProviderName"] == "tmos"
            return httpx.Response(200, json={"token": {"token": "TOKEN123"}})

        if request.headers.get(TOKEN_HEADER) != "TOKEN123":
            return httpx.Response(401, json={"message": "no token"})
        if path == self.failing_path:
            return httpx.Response(500, json={"message": "internal error"})
        if path == "/mgmt/tm/ltm/pool":
            return httpx.Response(200, json=POOLS)
        if path == "/mgmt/tm/ltm/virtual":
            return httpx.Response(200, json=VIRTUALS)
        if path == "/mgmt/tm/ltm/monitor/http":
            return httpx.Response(200, json=HTTP_MONITORS)
        if path.startswith("/mgmt/tm/ltm/monitor/"):
            return httpx.Response(200, json={"kind": "tm:ltm:monitor:collectionstate"})
        return httpx.Response(404)


@pytest.fixture
def bigip_config():
    return BigIPConfig(host="bigip.example.com", username="admin", password="secret")


def make_client(bigip_config, fake):
    return BigIPClient(bigip_config, transport=httpx.MockTransport(fake))


class TestBigIPClient:
    """Tests for BigIPClient."""

    @pytest.mark.asyncio
    async def test_login_sets_token(self, bigip_config):
        fake = FakeBigIP()
        async with make_client(bigip_config, fake) as adc:
            await adc.list_pools()

        assert fake.requests[0].url.path == "/mgmt/shared/authn/login"
        assert fake.requests[1].headers[TOKEN_HEADER] == "TOKEN123"
        assert fake.requests[1].url.params["expandSubcollections"] == "true"

    @pytest.mark.asyncio
    async def test_list_pools(self, bigip_config):
        async with make_client(bigip_config, FakeBigIP()) as adc:
            [pool] = await adc.list_pools()

        assert pool.name == "web_demo"
        assert pool.partition == "k8s"
        assert pool.load_balancing_mode == "round-robin"
        assert [(m.name, m.address, m.description) for m in pool.members] == [("10.0.0.1:8080", "10.0.0.1", "p1")]

    @pytest.mark.asyncio
    async def test_list_virtual_servers(self, bigip_config):
        async with make_client(bigip_config, FakeBigIP()) as adc:
            [virtual] = await adc.list_virtual_servers()

        assert virtual.destination == "/k8s/10.1.1.1:443"
        assert [p.context for p in virtual.profiles] == ["clientside"]
        assert virtual.persist[0].name == "cookie"
        assert virtual.rules == ["/k8s/rule_a"]

    @pytest.mark.asyncio
    async def test_list_monitors_tags_type(self, bigip_config):
        async with make_client(bigip_config, FakeBigIP()) as adc:
            monitors = await adc.list_monitors()

        assert [(m.name, m.type, m.interval) for m in monitors] == [("web_demo_mon", "http", 5)]

    @pytest.mark.asyncio
    async def test_connects_lazily(self, bigip_config):
        fake = FakeBigIP()
        adc = make_client(bigip_config, fake)
        try:
            await adc.list_virtual_servers()
        finally:
            await adc.disconnect()

        assert fake.requests[0].url.path == "/mgmt/shared/authn/login"

    @pytest.mark.asyncio
    async def test_login_failure(self, bigip_config):
        with pytest.raises(CollaboratorError) as exc_info:
            async with make_client(bigip_config, FakeBigIP(login_status=401)):
                pass

        assert exc_info.value.source == "bigip"
        assert exc_info.value.operation == "login"
        assert exc_info.value.status == 401

    @pytest.mark.asyncio
    async def test_list_failure(self, bigip_config):
        async with make_client(bigip_config, FakeBigIP(failing_path="/mgmt/tm/ltm/virtual")) as adc:
            with pytest.raises(CollaboratorError) as exc_info:
                await adc.list_virtual_servers()

        assert exc_info.value.status == 500
        assert exc_info.value.operation == "list_virtual_servers"

    @pytest.mark.asyncio
    async def test_transport_error(self, bigip_config):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        adc = BigIPClient(bigip_config, transport=httpx.MockTransport(refuse))
        with pytest.raises(CollaboratorError, match="login"):
            await adc.connect()

    @pytest.mark.asyncio
    async def test_missing_credentials(self, monkeypatch):
        monkeypatch.delenv("F5_PASSWORD", raising=False)
        adc = BigIPClient(BigIPConfig(host="bigip", username="admin").with_env_defaults())

        with pytest.raises(ConfigurationError, match="password"):
            await adc.connect()
