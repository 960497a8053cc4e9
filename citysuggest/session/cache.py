"""Per-session memory of the last served suggestions.

Autocomplete clients send one request per keystroke inside a session. The
cache remembers what was served last so that an identical request can be
answered with "not modified", and so that a query extending the previous
one only has to be rescored against the places that matched before.
"""

from __future__ import annotations

import hashlib
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import (
    Callable,
    Dict,
    Hashable,
    Iterable,
    Iterator,
    List,
    NamedTuple,
    Optional,
    Tuple,
)

from cachetools import TTLCache

from citysuggest.core.config import settings
from citysuggest.index.places import PlaceRecord
from citysuggest.ranking.scorer import ScoredPlace, Suggestion


@dataclass
class SessionEntry:
    query: Optional[str] = None
    context: Optional[Hashable] = None
    fingerprint: Optional[str] = None
    ranked: Tuple[ScoredPlace, ...] = ()
    last_access: float = 0.0
    lock: threading.RLock = field(
        default_factory=threading.RLock, repr=False, compare=False
    )


class SessionLookup(NamedTuple):
    unchanged: bool
    pool: Optional[Tuple[PlaceRecord, ...]]
    fingerprint: Optional[str]


_MISS = SessionLookup(unchanged=False, pool=None, fingerprint=None)


def fingerprint(suggestions: Iterable[Suggestion]) -> str:
    """Stable digest of an ordered result list, used only for equality checks."""
    digest = hashlib.blake2b(digest_size=16)
    for s in suggestions:
        line = f"{s.name}\t{s.latitude!r}\t{s.longitude!r}\t{s.score!r}\n"
        digest.update(line.encode("utf-8"))
    return digest.hexdigest()


class SessionCache:
    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds is None:
            ttl_seconds = settings.SESSION_TTL_SECONDS
        if max_entries is None:
            max_entries = settings.SESSION_MAX_ENTRIES

        self._clock = clock
        # TTLCache is LRU-bounded and not thread-safe; all structural access
        # goes through _guard, per-session state through the entry lock.
        self._entries = TTLCache(maxsize=max_entries, ttl=ttl_seconds, timer=clock)
        # Entries currently held, with their holder count; eviction must not
        # swap the lock out from under a request
        self._held: Dict[str, List] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def _entry(self, session_id: str, create: bool) -> Optional[SessionEntry]:
        with self._guard:
            entry = self._entries.get(session_id)
            if entry is None and session_id in self._held:
                entry = self._held[session_id][0]
            if entry is None and create:
                entry = SessionEntry()
            if entry is not None:
                entry.last_access = self._clock()
                # Re-inserting restarts the idle TTL
                self._entries[session_id] = entry
            return entry

    @contextmanager
    def hold(self, session_id: Optional[str]) -> Iterator[None]:
        """Serialize a lookup -> store sequence for one session."""
        if not session_id:
            yield
            return
        with self._guard:
            held = self._held.get(session_id)
            if held is None:
                entry = self._entries.get(session_id) or SessionEntry()
                self._entries[session_id] = entry
                held = self._held[session_id] = [entry, 0]
            held[1] += 1
            entry = held[0]
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                held[1] -= 1
                if held[1] == 0:
                    del self._held[session_id]

    def lookup(
        self, session_id: Optional[str], query: str, context: Optional[Hashable] = None
    ) -> SessionLookup:
        if not session_id:
            return _MISS
        entry = self._entry(session_id, create=False)
        if entry is None:
            return _MISS

        with entry.lock:
            if entry.query is None:
                return _MISS
            if query == entry.query and context == entry.context:
                return SessionLookup(True, None, entry.fingerprint)
            if query.startswith(entry.query):
                # Anything matching the longer query matched its prefix too
                pool = tuple(s.place for s in entry.ranked)
                return SessionLookup(False, pool, entry.fingerprint)
            return SessionLookup(False, None, entry.fingerprint)

    def store(
        self,
        session_id: Optional[str],
        query: str,
        ranked: Iterable[ScoredPlace],
        fingerprint: str,
        context: Optional[Hashable] = None,
    ) -> None:
        if not session_id:
            return
        entry = self._entry(session_id, create=True)
        with entry.lock:
            entry.query = query
            entry.context = context
            entry.ranked = tuple(ranked)
            entry.fingerprint = fingerprint

    def sweep(self) -> None:
        with self._guard:
            self._entries.expire()
