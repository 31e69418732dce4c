"""
Canonical JSON and SHA-256 for movement payloads.

A movement id may be retried by the web application; the stored hash tells
a genuine retry apart from a different delivery note reusing the id.  The
rendering is therefore insensitive to dict key order and Decimal scale
("4" and "4.000" are the same quantity) but sensitive to everything else,
line order included.
"""

import hashlib
import json
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID


class _CanonicalEncoder(json.JSONEncoder):

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return str(obj.normalize())
        # datetime is a date subclass
        if isinstance(obj, date):
            return obj.isoformat()
        if isinstance(obj, UUID):
            return str(obj)
        return super().default(obj)


def canonicalize_json(data: Any) -> str:
    """Sorted keys, no whitespace, Decimal/date/UUID rendered as strings."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), cls=_CanonicalEncoder)


def hash_payload(payload: dict) -> str:
    """Hex SHA-256 of the canonical JSON of ``payload`` (64 characters)."""
    return hashlib.sha256(canonicalize_json(payload).encode("utf-8")).hexdigest()
