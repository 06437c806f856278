"""BIG-IP iControl REST client for listing LTM inventory."""

from typing import Any, Dict, List, Optional, Protocol

import httpx
from pydantic import ValidationError

from .errors import CollaboratorError, ConfigurationError
from .logging_config import get_logger, log_adc_operation, log_function_entry, log_function_exit
from .models import AdcMonitor, AdcPool, AdcVirtual, BigIPConfig

logger = get_logger(__name__)

LOGIN_PATH = "/mgmt/shared/authn/login"
POOL_PATH = "/mgmt/tm/ltm/pool"
VIRTUAL_PATH = "/mgmt/tm/ltm/virtual"
MONITOR_PATH = "/mgmt/tm/ltm/monitor"
TOKEN_HEADER = "X-F5-Auth-Token"

# Monitor collections the controller can create or read back
MONITOR_TYPES = ("http", "https", "tcp", "udp", "icmp")


class AdcClient(Protocol):
    """List operations the engine needs from the ADC."""

    async def list_pools(self) -> List[AdcPool]: ...

    async def list_virtual_servers(self) -> List[AdcVirtual]: ...

    async def list_monitors(self) -> List[AdcMonitor]: ...


def _subcollection(item: Dict[str, Any], reference: str) -> List[Dict[str, Any]]:
    return (item.get(reference) or {}).get("items") or []


class BigIPClient:
    """Token-authenticated iControl REST client.

    Args:
        bigip_config: Management host and credentials.
        transport: Optional httpx transport, used to substitute the network.
    """

    def __init__(self, bigip_config: BigIPConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.bigip_config = bigip_config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def connect(self) -> None:
        """Authenticate against the BIG-IP and keep the token for later calls."""
        cfg = self.bigip_config
        log_function_entry(logger, "connect", host=cfg.host, username=cfg.username)

        missing = [name for name, value in (("host", cfg.host), ("username", cfg.username), ("password", cfg.password))
                   if not value]
        if missing:
            raise ConfigurationError(f"BIG-IP {', '.join(missing)} not configured "
                                     f"(set them in the config file or F5_HOST, F5_USER, F5_PASSWORD)")

        http = httpx.AsyncClient(
            base_url=cfg.base_url,
            verify=cfg.verify_ssl,
            timeout=cfg.timeout,
            transport=self._transport,
        )
        log_adc_operation(logger, "login", cfg.host, login_provider=cfg.login_provider)
        try:
            response = await http.post(LOGIN_PATH, json={
                "username": cfg.username,
                "password": cfg.password,
                "loginProviderName": cfg.login_provider,
            })
            response.raise_for_status()
            token = response.json()["token"]["token"]
        except httpx.HTTPStatusError as e:
            await http.aclose()
            logger.error("Failed to get token", host=cfg.host, status=e.response.status_code)
            raise CollaboratorError("bigip", "login", str(e), status=e.response.status_code) from e
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            await http.aclose()
            logger.error("Failed to get token", host=cfg.host, error=str(e))
            raise CollaboratorError("bigip", "login", str(e)) from e

        http.headers[TOKEN_HEADER] = token
        self._client = http
        logger.info("Connected to BIG-IP", host=cfg.host)
        log_function_exit(logger, "connect", status="success")

    async def disconnect(self) -> None:
        """Close the HTTP session."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "BigIPClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    async def _get_items(self, operation: str, path: str, params: Optional[Dict[str, str]] = None) -> List[Dict[str, Any]]:
        if not self._client:
            await self.connect()

        log_adc_operation(logger, operation, self.bigip_config.host, path=path)
        try:
            response = await self._client.get(path, params=params)
            response.raise_for_status()
            items = response.json().get("items") or []
        except httpx.HTTPStatusError as e:
            logger.error("BIG-IP list call failed", operation=operation, status=e.response.status_code)
            raise CollaboratorError("bigip", operation, str(e), status=e.response.status_code) from e
        except (httpx.HTTPError, AttributeError, ValueError) as e:
            logger.error("BIG-IP list call failed", operation=operation, error=str(e))
            raise CollaboratorError("bigip", operation, str(e)) from e

        logger.debug("BIG-IP list call succeeded", operation=operation, count=len(items))
        return items

    def _validate(self, operation: str, model, payloads: List[Dict[str, Any]]) -> List[Any]:
        try:
            return [model.model_validate(payload) for payload in payloads]
        except ValidationError as e:
            logger.error("Unexpected BIG-IP response", operation=operation, errors=e.error_count())
            raise CollaboratorError("bigip", operation, f"unexpected response: {e}") from e

    async def list_pools(self) -> List[AdcPool]:
        """List pools in all partitions, with their members."""
        items = await self._get_items("list_pools", POOL_PATH, {"expandSubcollections": "true"})
        return self._validate("list_pools", AdcPool, [
            {**item, "members": _subcollection(item, "membersReference")} for item in items
        ])

    async def list_virtual_servers(self) -> List[AdcVirtual]:
        """List virtual servers in all partitions, with their profiles."""
        items = await self._get_items("list_virtual_servers", VIRTUAL_PATH, {"expandSubcollections": "true"})
        return self._validate("list_virtual_servers", AdcVirtual, [
            {**item, "profiles": _subcollection(item, "profilesReference")} for item in items
        ])

    async def list_monitors(self) -> List[AdcMonitor]:
        """List monitors of every supported type in all partitions."""
        monitors: List[AdcMonitor] = []
        for monitor_type in MONITOR_TYPES:
            items = await self._get_items("list_monitors", f"{MONITOR_PATH}/{monitor_type}")
            monitors.extend(self._validate("list_monitors", AdcMonitor, [
                {**item, "type": monitor_type} for item in items
            ]))
        return monitors
