"""Rewrite Atlas response payloads into the client's naming convention.

Atlas returns camelCase keys, calls projects "groups", and sprinkles
``links`` navigation metadata through every object. ``normalize()``
turns that into snake_case, project-named, link-free dicts with sorted
keys. It is pure and idempotent.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

# Acronyms the general rule would mangle (mongoDBVersion -> mongo_dbversion).
KEY_SUBSTITUTIONS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"mongoDB"), "mongodb"),
    (re.compile(r"(?<=[a-z])URI"), "Uri"),
)

KEY_RENAMES: dict[str, str] = {
    "group_id": "project_id",
}

DROPPED_KEYS = frozenset({"links"})

_UPPER_RUN = re.compile(r"(?<=[a-z])([A-Z]+)")


def normalize_key(key: str) -> str:
    """Convert one Atlas key: ``groupId`` -> ``project_id``, ``diskSizeGB`` -> ``disk_size_gb``."""
    for pattern, replacement in KEY_SUBSTITUTIONS:
        key = pattern.sub(replacement, key)
    key = _UPPER_RUN.sub(lambda m: "_" + m.group(1).lower(), key)
    return KEY_RENAMES.get(key, key)


def normalize(value: Any) -> Any:
    """Recursively normalize a decoded JSON payload."""
    if isinstance(value, Mapping):
        items = (
            (normalize_key(str(k)), normalize(v))
            for k, v in value.items()
            if k not in DROPPED_KEYS
        )
        return dict(sorted(items, key=lambda kv: kv[0]))
    if isinstance(value, (list, tuple)):
        return [normalize(v) for v in value]
    return value
