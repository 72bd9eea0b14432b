"""
Hashing Module - SHA256 Audit Seals

Canonical JSON serialization and SHA256 hashing for the append-only
corporate action log. A record's seal covers every field except the seal
itself, so any later edit of a stored record is detectable.

Copyright (c) 2026 Andreas Wagner. All rights reserved.
"""

import hashlib
import json
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any


def _default_handler(o: Any) -> Any:
    # Decimals are hashed by their exact text so 83.3333... never collapses to a float
    if isinstance(o, Decimal):
        return str(o)
    if isinstance(o, (date, datetime)):
        return o.isoformat()
    if isinstance(o, Enum):
        return o.value
    if is_dataclass(o) and not isinstance(o, type):
        return asdict(o)
    if isinstance(o, (set, frozenset, tuple)):
        return list(o)
    raise TypeError(f"Object of type {type(o).__name__} is not JSON serializable")


def canonical_json_dumps(obj: Any) -> str:
    """
    Serialize object to canonical JSON string.

    Keys sorted, no whitespace, Decimal as exact string, dates as ISO-8601.

    Example:
        >>> canonical_json_dumps({"ratio": Decimal("0.2"), "ex_date": date(2025, 3, 1)})
        '{"ex_date":"2025-03-01","ratio":"0.2"}'
    """
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(',', ':'),
        default=_default_handler,
        ensure_ascii=True
    )


def calculate_sha256(data: Any) -> str:
    """SHA256 hex digest of the canonical JSON form, prefixed with 'sha256:'."""
    json_str = canonical_json_dumps(data)
    hash_obj = hashlib.sha256(json_str.encode('utf-8'))
    return f"sha256:{hash_obj.hexdigest()}"


def verify_hash(data: Any, expected_hash: str) -> bool:
    """True if `data` hashes to `expected_hash`."""
    return calculate_sha256(data) == expected_hash
