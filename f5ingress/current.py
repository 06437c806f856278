"""Current state projection: ADC inventory to virtual server descriptors.

Virtual servers owned by the controller are named ``<namespace>_<name>``
after the Ingress they implement. An HTTP-to-HTTPS redirect is a companion
virtual server named ``<namespace>_<name>_redirect``.
"""

import re
from typing import Dict, List, Optional, Set, Tuple

from .bigip import AdcClient
from .logging_config import get_logger, log_derivation_event, log_function_entry, log_function_exit
from .models import (
    AdcInventory,
    AdcMonitor,
    AdcPool,
    AdcVirtual,
    EngineConfig,
    Member,
    MonitorSpec,
    VirtualServer,
)

logger = get_logger(__name__)

NAME_SEPARATOR = "_"
REDIRECT_SUFFIX = "_redirect"

BUILTIN_MONITOR_TYPES = {"http", "https", "http2", "tcp", "tcp_half_open", "udp", "icmp", "gateway_icmp"}
WILDCARD_ADDRESSES = {"0.0.0.0", "::", "any", "any6"}

_MONITOR_PATH = re.compile(r"/[^\s{}]+")


def _basename(path: str) -> str:
    return path.rsplit("/", 1)[-1]


def _full_path(obj) -> str:
    return obj.full_path or f"/{obj.partition}/{obj.name}"


def virtual_server_name(namespace: str, name: str) -> str:
    """ADC virtual server name for an Ingress."""
    return f"{namespace}{NAME_SEPARATOR}{name}"


def split_virtual_name(name: str) -> Optional[Tuple[str, str]]:
    """Split ``<namespace>_<name>`` into its parts.

    Namespaces cannot contain underscores, so the first separator is the
    boundary. Returns None for names not following the scheme.
    """
    namespace, separator, rest = name.partition(NAME_SEPARATOR)
    if not separator or not namespace or not rest:
        return None
    return namespace, rest


def parse_address_port(value: str) -> Tuple[Optional[str], Optional[int]]:
    """Split a BIG-IP ``addr[%rd]:port`` (IPv6 ``addr[%rd].port``) reference.

    The partition path, if any, is dropped. Returns ``(None, None)`` parts
    for anything that cannot be split.
    """
    target = _basename(value)
    if target.count(":") > 1:
        address, _, port = target.rpartition(".")
    else:
        address, _, port = target.rpartition(":")
    address = address.split("%", 1)[0] or None
    return address, int(port) if port.isascii() and port.isdigit() else None


def monitor_references(monitor: Optional[str]) -> List[str]:
    """Monitor paths referenced by a pool monitor rule, in rule order."""
    if not monitor:
        return []
    paths = _MONITOR_PATH.findall(monitor)
    if paths:
        return paths
    return monitor.split()[:1]


def restrict_to_partition(inventory: AdcInventory, engine_config: EngineConfig) -> AdcInventory:
    """Keep only inventory owned by the configured partition.

    Monitors that no in-partition virtual server reaches through its pool
    are dropped.
    """
    partition = engine_config.partition
    pools = [pool for pool in inventory.pools if pool.partition == partition]
    virtuals = [virtual for virtual in inventory.virtuals if virtual.partition == partition]

    pools_by_path = _index_pools(pools)
    referenced: Set[str] = set()
    for virtual in virtuals:
        pool = _find_pool(virtual, pools_by_path)
        if pool is not None:
            referenced.update(monitor_references(pool.monitor))

    monitors = [
        monitor for monitor in inventory.monitors
        if monitor.partition == partition and (_full_path(monitor) in referenced or monitor.name in referenced)
    ]

    logger.debug("Inventory restricted to partition",
                 partition=partition,
                 pools=len(pools),
                 virtuals=len(virtuals),
                 monitors=len(monitors))
    return AdcInventory(pools=pools, virtuals=virtuals, monitors=monitors)


def _index_pools(pools: List[AdcPool]) -> Dict[str, AdcPool]:
    index: Dict[str, AdcPool] = {}
    for pool in pools:
        index.setdefault(_full_path(pool), pool)
        index.setdefault(pool.name, pool)
    return index


def _find_pool(virtual: AdcVirtual, pools_by_path: Dict[str, AdcPool]) -> Optional[AdcPool]:
    if not virtual.pool:
        return None
    return pools_by_path.get(virtual.pool)


def _project_members(virtual: AdcVirtual, pool: Optional[AdcPool]) -> List[Member]:
    if pool is None:
        return []

    members = []
    for adc_member in pool.members:
        address, port = parse_address_port(adc_member.name)
        if adc_member.address:
            address = adc_member.address.split("%", 1)[0]
        if not address or port is None or not 1 <= port <= 65535:
            logger.warning("Skipping pool member without a usable address and port",
                           virtual=virtual.name,
                           pool=pool.name,
                           member=adc_member.name)
            continue
        members.append(Member(name=adc_member.description or address, ip=address, port=port))
    return members


def _project_monitor(pool: Optional[AdcPool], monitors: Dict[str, AdcMonitor]) -> MonitorSpec:
    references = monitor_references(pool.monitor) if pool else []
    if not references:
        return MonitorSpec()

    reference = references[0]
    monitor = monitors.get(reference) or monitors.get(_basename(reference))
    if monitor is not None:
        return MonitorSpec(
            type=monitor.type,
            interval=monitor.interval,
            timeout=monitor.timeout,
            send=monitor.send,
            recv=monitor.recv,
        )

    if _basename(reference) in BUILTIN_MONITOR_TYPES:
        return MonitorSpec(type=_basename(reference))

    logger.warning("Pool monitor not found in partition", pool=pool.name, monitor=reference)
    return MonitorSpec()


def _project_virtual(virtual: AdcVirtual,
                     key: Tuple[str, str],
                     pool: Optional[AdcPool],
                     monitors: Dict[str, AdcMonitor],
                     redirect: bool) -> Optional[VirtualServer]:
    namespace, name = key
    address, port = parse_address_port(virtual.destination or "")
    if port is None or not 1 <= port <= 65535:
        logger.warning("Virtual server destination has no usable port, skipping",
                       virtual=virtual.name,
                       destination=virtual.destination)
        return None

    client_ssl = next((_basename(p.name) for p in virtual.profiles if p.context == "clientside"), None)
    server_ssl = next((_basename(p.name) for p in virtual.profiles if p.context == "serverside"), None)

    if redirect and not client_ssl:
        logger.warning("Redirect virtual server found for a virtual server without client SSL",
                       virtual=virtual.name)
        redirect = False

    return VirtualServer(
        name=name,
        namespace=namespace,
        ip=None if address in WILDCARD_ADDRESSES else address,
        port=port,
        client_ssl=client_ssl,
        server_ssl=server_ssl,
        redirect=redirect,
        default_persist=_basename(virtual.persist[0].name) if virtual.persist else None,
        fallback_persist=_basename(virtual.fallback_persistence) if virtual.fallback_persistence else None,
        lb_mode=pool.load_balancing_mode if pool else None,
        irules=[_basename(rule) for rule in virtual.rules],
        members=_project_members(virtual, pool),
        monitor=_project_monitor(pool, monitors),
    )


def project_current_state(inventory: AdcInventory, engine_config: EngineConfig) -> List[VirtualServer]:
    """Project the ADC inventory of one partition into virtual server descriptors.

    Args:
        inventory: Pools, virtual servers and monitors as reported by the ADC,
            in any partition.
        engine_config: Names the partition owned by the controller.

    Returns:
        One descriptor per in-partition virtual server following the naming
        scheme, in reported order. Companion redirect virtual servers fold
        into their primary.
    """
    log_function_entry(logger, "project_current_state", partition=engine_config.partition)
    owned = restrict_to_partition(inventory, engine_config)

    pools_by_path = _index_pools(owned.pools)
    monitors: Dict[str, AdcMonitor] = {}
    for monitor in owned.monitors:
        monitors.setdefault(_full_path(monitor), monitor)
        monitors.setdefault(monitor.name, monitor)

    primaries: List[Tuple[AdcVirtual, Tuple[str, str]]] = []
    redirects: Set[Tuple[str, str]] = set()
    for virtual in owned.virtuals:
        if virtual.name.endswith(REDIRECT_SUFFIX):
            key = split_virtual_name(virtual.name[:-len(REDIRECT_SUFFIX)])
            if key is not None:
                redirects.add(key)
                continue

        key = split_virtual_name(virtual.name)
        if key is None:
            logger.debug("Ignoring virtual server not named after an Ingress", virtual=virtual.name)
            continue
        primaries.append((virtual, key))

    virtual_servers: List[VirtualServer] = []
    seen: Set[Tuple[str, str]] = set()
    for virtual, key in primaries:
        if key in seen:
            logger.warning("Duplicate virtual server name in partition", virtual=virtual.name)
            continue
        projected = _project_virtual(virtual, key, _find_pool(virtual, pools_by_path), monitors, key in redirects)
        if projected is not None:
            seen.add(key)
            virtual_servers.append(projected)

    log_derivation_event(logger, "current_state_projected",
                         partition=engine_config.partition,
                         virtual_servers=len(virtual_servers))
    log_function_exit(logger, "project_current_state", virtual_servers=len(virtual_servers))
    return virtual_servers


async def collect_inventory(adc: AdcClient) -> AdcInventory:
    """List pools, virtual servers and monitors from the ADC.

    Any failing list call raises ``CollaboratorError``; no partial inventory
    is returned.
    """
    pools = await adc.list_pools()
    virtuals = await adc.list_virtual_servers()
    monitors = await adc.list_monitors()
    return AdcInventory(pools=pools, virtuals=virtuals, monitors=monitors)


async def build_current_state(adc: AdcClient, engine_config: EngineConfig) -> List[VirtualServer]:
    """Collect the ADC inventory and project it onto the configured partition."""
    inventory = await collect_inventory(adc)
    return project_current_state(inventory, engine_config)
