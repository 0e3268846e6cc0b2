"""Time-bounded cache of successful extractions keyed by input text."""

import json
import logging
import threading
import time
from collections.abc import Callable

from pydantic import ValidationError

from bookly.models import CacheEntry, CacheStats, ExtractionResult
from bookly.pipeline.storage import KeyValueStore

logger = logging.getLogger(__name__)

CACHE_STORAGE_KEY = "bookly_extraction_cache"
CACHE_TTL_SECONDS = 24 * 60 * 60
MAX_CACHE_ENTRIES = 50

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def create_hash(text: str) -> str:
    """
    Fingerprint ``text`` with a 32-bit rolling hash (``h * 31 + code``).

    Runs over UTF-16 code units with 32-bit shift overflow, then takes the
    absolute value in base 36. This is NOT collision resistant: two different
    inputs sharing a fingerprint will return each other's cached result.
    """
    data = text.encode("utf-16-le")
    h = 0
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = _to_int32(_to_int32(h) << 5) - h + unit
    return _to_base36(abs(h))


class ExtractionCache:
    """
    Cache-aside store for extraction results.

    The whole cache lives as one JSON blob under CACHE_STORAGE_KEY in the
    backing store. Entries expire after a fixed TTL and are removed on the
    next lookup; when the cache grows past ``max_entries`` only the newest
    entries by insertion time are kept. Storage errors never reach the
    caller: they are logged and the cache behaves as if empty.
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Callable[[], float] = time.time,
        ttl_seconds: int = CACHE_TTL_SECONDS,
        max_entries: int = MAX_CACHE_ENTRIES,
    ) -> None:
        """
        Initialize the cache.

        Args:
            store: Backing key-value store
            clock: Returns the current time in epoch seconds
            ttl_seconds: Maximum age of a usable entry
            max_entries: Upper bound on stored entries
        """
        self.store = store
        self._clock = clock
        self.ttl_ms = ttl_seconds * 1000
        self.max_entries = max_entries
        self._lock = threading.Lock()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _load(self) -> dict[str, CacheEntry]:
        try:
            raw = self.store.get(CACHE_STORAGE_KEY)
        except Exception:
            logger.exception("Cache read error")
            return {}
        if not raw:
            return {}

        try:
            blob = json.loads(raw)
        except ValueError:
            logger.error("Cache blob is not valid JSON, ignoring it")
            return {}
        if not isinstance(blob, dict):
            return {}

        entries: dict[str, CacheEntry] = {}
        for key, value in blob.items():
            try:
                entries[key] = CacheEntry.model_validate(value)
            except ValidationError:
                logger.warning("Dropping unreadable cache entry %s", key)
        return entries

    def _save(self, entries: dict[str, CacheEntry]) -> None:
        blob = {key: entry.to_wire() for key, entry in entries.items()}
        try:
            self.store.set(CACHE_STORAGE_KEY, json.dumps(blob, ensure_ascii=False))
        except Exception:
            logger.exception("Cache write error")

    def get(self, text: str) -> ExtractionResult | None:
        """
        Return the cached result for ``text``, marked with confidence "cached".

        Returns None for blank input, unknown input, or an expired entry (which
        is deleted as a side effect).
        """
        if not text or not text.strip():
            return None

        key = create_hash(text)
        with self._lock:
            entries = self._load()
            entry = entries.get(key)
            if entry is None:
                return None

            if self._now_ms() - entry.timestamp < self.ttl_ms:
                logger.info("Using cached extraction result")
                return entry.result.model_copy(update={"confidence": "cached"})

            del entries[key]
            self._save(entries)
            logger.debug("Expired cache entry %s removed", key)
            return None

    def set(self, text: str, result: ExtractionResult | None) -> None:
        """Store ``result`` for ``text``, evicting the oldest entries on overflow."""
        if not text or not text.strip() or result is None:
            return

        key = create_hash(text)
        with self._lock:
            entries = self._load()
            # Re-inserting moves the key to the end so ties on timestamp
            # still favour the most recent write.
            entries.pop(key, None)
            entries[key] = CacheEntry(
                input_hash=key,
                result=result,
                timestamp=self._now_ms(),
                input_length=len(text),
            )

            if len(entries) > self.max_entries:
                newest_first = sorted(
                    reversed(list(entries.items())),
                    key=lambda item: item[1].timestamp,
                    reverse=True,
                )
                keep = {k for k, _ in newest_first[: self.max_entries]}
                entries = {k: v for k, v in entries.items() if k in keep}

            self._save(entries)
            logger.info("Cached extraction result")

    def clear(self) -> None:
        """Remove every cached extraction."""
        with self._lock:
            try:
                self.store.delete(CACHE_STORAGE_KEY)
            except Exception:
                logger.exception("Cache clear error")
                return
        logger.info("Extraction cache cleared")

    def stats(self) -> CacheStats:
        """Return the number of entries and the serialized size in KB."""
        with self._lock:
            entries = self._load()
        blob = json.dumps(
            {key: entry.to_wire() for key, entry in entries.items()},
            ensure_ascii=False,
        )
        size_kb = len(blob.encode("utf-8")) / 1024
        return CacheStats(entries=len(entries), size=f"{size_kb:.2f}KB")
