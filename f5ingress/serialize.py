"""Canonical JSON form of virtual server descriptors.

UTF-8, two-space indentation, keys in model field order, unset optional
fields omitted. Equal state always serializes to identical text, which is
what the downstream diff compares.
"""

import json
from typing import Any, Dict, Iterable, List

from .models import VirtualServer


def state_to_data(virtual_servers: Iterable[VirtualServer]) -> List[Dict[str, Any]]:
    """Convert descriptors to plain wire-named dictionaries."""
    return [vs.model_dump(mode="json", by_alias=True, exclude_none=True) for vs in virtual_servers]


def dump_state(virtual_servers: Iterable[VirtualServer]) -> str:
    """Serialize descriptors to canonical JSON text."""
    return json.dumps(state_to_data(virtual_servers), indent=2, ensure_ascii=False)


def load_state(text: str) -> List[VirtualServer]:
    """Parse canonical JSON text back into descriptors."""
    return [VirtualServer.model_validate(item) for item in json.loads(text)]
