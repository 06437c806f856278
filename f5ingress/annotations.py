"""Decoding of the vendor annotations carried by an Ingress.

Every recognized annotation is validated on its own. A bad value is logged
with the ingress, namespace, field and value, and the field keeps its
default; decoding never raises.
"""

import ipaddress
import json
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError

from .logging_config import get_logger
from .models import IngressRecord, MonitorSpec

logger = get_logger(__name__)

IP_ANNOTATION = "virtual-server.f5.com/ip"
HTTP_PORT_ANNOTATION = "virtual-server.f5.com/http-port"
HTTPS_PORT_ANNOTATION = "virtual-server.f5.com/https-port"
SSL_REDIRECT_ANNOTATION = "ingress.kubernetes.io/ssl-redirect"
HEALTH_ANNOTATION = "virtual-server.f5.com/health"
SERVER_SSL_ANNOTATION = "virtual-server.f5.com/serverssl"
RULES_ANNOTATION = "virtual-server.f5.com/rules"
BALANCE_ANNOTATION = "virtual-server.f5.com/balance"
DEFAULT_PERSIST_ANNOTATION = "virtual-server.f5.com/defaultPersist"
FALLBACK_PERSIST_ANNOTATION = "virtual-server.f5.com/fallbackPersist"


class AnnotationSettings(BaseModel):
    """Validated annotation values of one Ingress; ``None`` means not set."""

    ip: Optional[str] = None
    http_port: Optional[int] = None
    https_port: Optional[int] = None
    redirect_disabled: bool = False
    monitor: Optional[MonitorSpec] = None
    server_ssl: Optional[str] = None
    irules: List[str] = Field(default_factory=list)
    lb_mode: Optional[str] = None
    default_persist: Optional[str] = None
    fallback_persist: Optional[str] = None


def decode_annotations(ingress: IngressRecord) -> AnnotationSettings:
    """Decode the vendor annotations of an Ingress.

    Args:
        ingress: The Ingress whose annotations are read.

    Returns:
        The validated settings. Unknown annotations are ignored.
    """
    annotations = ingress.annotations
    settings = AnnotationSettings()

    if IP_ANNOTATION in annotations:
        settings.ip = _parse_ip(ingress, annotations[IP_ANNOTATION])
    else:
        logger.info("No IP address, creating headless virtual server",
                    ingress=ingress.name, namespace=ingress.namespace)

    if HTTP_PORT_ANNOTATION in annotations:
        settings.http_port = _parse_port(ingress, "http-port", annotations[HTTP_PORT_ANNOTATION])
    if HTTPS_PORT_ANNOTATION in annotations:
        settings.https_port = _parse_port(ingress, "https-port", annotations[HTTPS_PORT_ANNOTATION])

    if annotations.get(SSL_REDIRECT_ANNOTATION) == "false":
        settings.redirect_disabled = True

    if HEALTH_ANNOTATION in annotations:
        settings.monitor = _parse_health(ingress, annotations[HEALTH_ANNOTATION])

    if SERVER_SSL_ANNOTATION in annotations:
        settings.server_ssl = annotations[SERVER_SSL_ANNOTATION]

    if RULES_ANNOTATION in annotations:
        settings.irules = annotations[RULES_ANNOTATION].split(",")

    if BALANCE_ANNOTATION in annotations:
        settings.lb_mode = annotations[BALANCE_ANNOTATION]
    if DEFAULT_PERSIST_ANNOTATION in annotations:
        settings.default_persist = annotations[DEFAULT_PERSIST_ANNOTATION]
    if FALLBACK_PERSIST_ANNOTATION in annotations:
        settings.fallback_persist = annotations[FALLBACK_PERSIST_ANNOTATION]

    return settings


def _invalid(ingress: IngressRecord, field: str, value: str, reason: str) -> None:
    logger.error("Invalid annotation value, using default",
                 ingress=ingress.name,
                 namespace=ingress.namespace,
                 field=field,
                 value=value,
                 reason=reason)


def _parse_ip(ingress: IngressRecord, value: str) -> Optional[str]:
    # "%" is a zone id here but a route domain on the BIG-IP
    if "%" in value:
        _invalid(ingress, "ip", value, "zone or route domain suffix not allowed")
        return None
    try:
        ipaddress.ip_address(value)
    except ValueError:
        _invalid(ingress, "ip", value, "not an IP address")
        return None
    return value


def _parse_port(ingress: IngressRecord, field: str, value: str) -> Optional[int]:
    # Base-10 digits only; int() alone would accept signs, spaces and underscores
    if not (value.isascii() and value.isdigit()):
        _invalid(ingress, field, value, "not a base-10 integer")
        return None
    port = int(value)
    if not 1 <= port <= 65535:
        _invalid(ingress, field, value, "port out of range")
        return None
    return port


def _parse_health(ingress: IngressRecord, value: str) -> Optional[MonitorSpec]:
    """Parse the health annotation; only the first monitor of the array is used."""
    try:
        monitors = json.loads(value)
    except ValueError as e:
        _invalid(ingress, "health", value, f"malformed JSON: {e}")
        return None

    if not isinstance(monitors, list) or not monitors:
        _invalid(ingress, "health", value, "expected a non-empty JSON array")
        return None

    if len(monitors) > 1:
        logger.warning("Multiple health monitors given, using the first",
                       ingress=ingress.name,
                       namespace=ingress.namespace,
                       count=len(monitors))

    if not isinstance(monitors[0], dict):
        _invalid(ingress, "health", value, "monitor entry is not a JSON object")
        return None

    try:
        return MonitorSpec.model_validate(monitors[0], strict=True)
    except ValidationError as e:
        _invalid(ingress, "health", value, f"invalid monitor: {e.error_count()} error(s)")
        return None
