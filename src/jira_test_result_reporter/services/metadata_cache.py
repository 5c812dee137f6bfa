"""
Cache of Jira create-screen metadata per (project key, issue type).

The cache never fetches on its own: callers populate it after a miss. Saving a
job configuration removes the entry for its (project key, issue type) so the
next read misses and the schema is fetched again.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, Optional, Tuple, Union

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str]


@dataclass(frozen=True)
class CacheEntry:
    """Fields available on the create screen of one project/issue type."""

    project_key: str
    issue_type: str
    fields: Dict[str, Dict[str, Any]] = field(default_factory=dict)  # field id -> {name, required, schema, allowedValues}
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def has_field(self, field_id: str) -> bool:
        return field_id in self.fields

    def field_schema(self, field_id: str) -> Dict[str, Any]:
        return (self.fields.get(field_id) or {}).get("schema") or {}

    def is_text_area(self, field_id: str) -> bool:
        """True for rich-text fields (sent as ADF by the v3 API)."""
        if field_id in ("description", "environment"):
            return True
        custom = self.field_schema(field_id).get("custom", "")
        return custom.endswith(":textarea")


def _key(project_key: str, issue_type: Union[int, str]) -> CacheKey:
    return (project_key or "").strip(), str(issue_type).strip()


class MetadataCache:
    """In-memory metadata cache shared by all builds."""

    def __init__(self):
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._generations: Dict[CacheKey, int] = {}
        self._lock = Lock()
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "removals": 0}

    def get_cache_entry(self, project_key: str, issue_type: Union[int, str]) -> Optional[CacheEntry]:
        """Cached entry, or None on a miss."""
        key = _key(project_key, issue_type)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats["misses"] += 1
            else:
                self._stats["hits"] += 1
            return entry

    def generation(self, project_key: str, issue_type: Union[int, str]) -> int:
        """Invalidation counter of a key; read it before fetching metadata after a miss."""
        with self._lock:
            return self._generations.get(_key(project_key, issue_type), 0)

    def put_cache_entry(
        self,
        project_key: str,
        issue_type: Union[int, str],
        fields: Dict[str, Dict[str, Any]],
        generation: Optional[int] = None
    ) -> CacheEntry:
        """
        Store the metadata fetched after a miss.

        When generation is given and the key was invalidated since it was read,
        the fetched metadata may predate the new configuration: it is returned to
        the caller but not cached.
        """
        key = _key(project_key, issue_type)
        entry = CacheEntry(project_key=key[0], issue_type=key[1], fields=dict(fields))
        with self._lock:
            if generation is not None and self._generations.get(key, 0) != generation:
                logger.info("Discarding metadata fetched before invalidation", extra={"project_key": key[0], "issue_type": key[1]})
                return entry
            self._entries[key] = entry
            self._stats["sets"] += 1
        return entry

    def remove_cache_entry(self, project_key: str, issue_type: Union[int, str]) -> bool:
        """
        Invalidate one entry.

        Returns:
            True if an entry was removed
        """
        key = _key(project_key, issue_type)
        with self._lock:
            self._generations[key] = self._generations.get(key, 0) + 1
            removed = self._entries.pop(key, None) is not None
            if removed:
                self._stats["removals"] += 1
        if removed:
            logger.info("Metadata cache entry removed", extra={"project_key": key[0], "issue_type": key[1]})
        return removed

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {**self._stats, "entries": len(self._entries)}
