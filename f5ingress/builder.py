"""Assembly of one virtual server descriptor from an Ingress."""

from typing import List

from .annotations import AnnotationSettings
from .models import IngressRecord, Member, MonitorSpec, VirtualServer

DEFAULT_HTTP_PORT = 80
DEFAULT_HTTPS_PORT = 443


def build_virtual_server(ingress: IngressRecord,
                         settings: AnnotationSettings,
                         members: List[Member]) -> VirtualServer:
    """Combine an Ingress, its decoded annotations and its members.

    TLS on the Ingress selects the client SSL secret, the HTTPS port and
    redirection; without TLS the virtual server listens on the HTTP port and
    never redirects. The monitor type defaults to https when a server SSL
    profile is set, and to http otherwise.

    Args:
        ingress: The source Ingress.
        settings: Output of ``decode_annotations`` for the Ingress.
        members: Output of ``resolve_members`` for the Ingress.

    Returns:
        The virtual server descriptor.
    """
    if ingress.tls:
        client_ssl = ingress.tls[0].secret_name
        redirect = bool(client_ssl) and not settings.redirect_disabled
        port = settings.https_port or DEFAULT_HTTPS_PORT
    else:
        client_ssl = None
        redirect = False
        port = settings.http_port or DEFAULT_HTTP_PORT

    monitor = settings.monitor.model_copy() if settings.monitor else MonitorSpec()
    if not monitor.type:
        monitor.type = "https" if settings.server_ssl else "http"

    return VirtualServer(
        name=ingress.name,
        namespace=ingress.namespace,
        ip=settings.ip,
        port=port,
        client_ssl=client_ssl,
        server_ssl=settings.server_ssl,
        redirect=redirect,
        default_persist=settings.default_persist,
        fallback_persist=settings.fallback_persist,
        lb_mode=settings.lb_mode,
        irules=list(settings.irules),
        members=list(members),
        monitor=monitor,
    )
