"""Identifier cache.

A small JSON-file store that remembers which human-readable names map
to which Atlas identifiers, and which project each cluster belongs to,
so later invocations can accept ``-c my-cluster`` without a lookup.

Key families:

- ``<kind>:id:<field>``: id -> field value (forward)
- ``<kind>:<field>:id``: field value -> id (reverse)
- ``<child>-<parent>``: child id -> parent id

The file is read on first access and rewritten (atomically) on
``close()`` if anything changed. Entries are never evicted; a file
written with a different ``CACHE_VERSION`` is discarded.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from mongo_cloud.config import DEFAULT_CACHE_PATH
from mongo_cloud.errors import CacheError

logger = logging.getLogger(__name__)

CACHE_VERSION = 1

Records = Mapping[str, Any] | Sequence[Mapping[str, Any]]


def _as_list(records: Records) -> list[Mapping[str, Any]]:
    if isinstance(records, Mapping):
        return [records]
    if isinstance(records, Sequence) and not isinstance(records, (str, bytes)):
        return list(records)
    raise CacheError(f"Unexpected record type: {type(records).__name__}")


class IdentifierCache:
    """File-backed name <-> id index, used for the duration of one command."""

    def __init__(self, path: str | Path = DEFAULT_CACHE_PATH) -> None:
        self._path = Path(path).expanduser()
        self._entries: dict[str, dict[str, str]] | None = None
        self._dirty = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def entries(self) -> dict[str, dict[str, str]]:
        if self._entries is None:
            self._entries = self._load()
        return self._entries

    def __enter__(self) -> IdentifierCache:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def get(self, key: str) -> dict[str, str]:
        """Return the mapping stored under *key* (empty if none)."""
        return dict(self.entries.get(key, {}))

    def record_identity(self, kind: str, records: Records, field_name: str) -> None:
        """Index *records* by id and by *field_name*, in both directions."""
        forward = f"{kind}:id:{field_name}"
        reverse = f"{kind}:{field_name}:id"
        for record in _as_list(records):
            try:
                identifier = str(record["id"])
                value = str(record[field_name])
            except KeyError as exc:
                raise CacheError(f"{kind} record is missing {exc.args[0]!r}") from exc
            self._put(forward, identifier, value)
            self._put(reverse, value, identifier)

    def record_association(
        self,
        child_kind: str,
        parent_kind: str,
        records: Records,
        foreign_key: str,
    ) -> None:
        """Remember the parent of each child record (``cluster-project``)."""
        key = f"{child_kind}-{parent_kind}"
        for record in _as_list(records):
            try:
                self._put(key, str(record["id"]), str(record[foreign_key]))
            except KeyError as exc:
                raise CacheError(f"{child_kind} record is missing {exc.args[0]!r}") from exc

    def resolve(self, kind: str, field_name: str, key: str) -> str:
        """Map a field value (e.g. a name) to its id; unknown keys pass through."""
        return self.entries.get(f"{kind}:{field_name}:id", {}).get(key, key)

    def lookup(self, kind: str, field_name: str, identifier: str) -> str:
        """Map an id to its field value (e.g. a name); unknown ids pass through."""
        return self.entries.get(f"{kind}:id:{field_name}", {}).get(identifier, identifier)

    def parent(self, child_kind: str, parent_kind: str, child_id: str) -> str | None:
        return self.entries.get(f"{child_kind}-{parent_kind}", {}).get(child_id)

    def flush(self) -> None:
        """Write pending changes to disk (atomic tmp + rename)."""
        if not self._dirty or self._entries is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        tmp_path.write_text(
            json.dumps({"version": CACHE_VERSION, "entries": self._entries}, sort_keys=True),
            encoding="utf-8",
        )
        tmp_path.replace(self._path)
        self._dirty = False

    def close(self) -> None:
        self.flush()
        self._entries = None

    def _put(self, key: str, subkey: str, value: str) -> None:
        family = self.entries.setdefault(key, {})
        if family.get(subkey) != value:
            family[subkey] = value
            self._dirty = True

    def _load(self) -> dict[str, dict[str, str]]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable identifier cache %s", self._path)
            return {}
        if not isinstance(data, dict) or data.get("version") != CACHE_VERSION:
            logger.info("Discarding identifier cache %s from another version", self._path)
            return {}
        entries = data.get("entries")
        return entries if isinstance(entries, dict) else {}
