"""Exceptions raised by f5ingress.

Invalid annotation values and missing services never raise; they are logged
and handled per ingress. Only collaborator and configuration failures reach
the caller. Cancellation is left as ``asyncio.CancelledError``.
"""

from typing import Optional


class F5IngressError(Exception):
    """Base class for f5ingress errors."""


class ConfigurationError(F5IngressError):
    """Raised when controller configuration is missing or invalid."""


class CollaboratorError(F5IngressError):
    """Raised when a cluster or ADC list call fails.

    Args:
        source: Which collaborator failed (``"kubernetes"`` or ``"bigip"``)
        operation: The list operation that failed
        message: Human readable failure description
        status: HTTP status code reported by the collaborator, if any
    """

    def __init__(self, source: str, operation: str, message: str, status: Optional[int] = None):
        self.source = source
        self.operation = operation
        self.status = status
        super().__init__(f"{source} {operation} failed: {message}")
