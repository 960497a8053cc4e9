"""
Suggestion pipeline orchestration.

One call per keystroke: rate limit -> normalize -> session short-circuit ->
match (possibly against the session's narrowed pool) -> rank -> remember.
Every way a call can end is an explicit outcome value; the transport layer
decides how each one is rendered.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

from citysuggest.core.config import settings
from citysuggest.index.places import PlaceIndex
from citysuggest.limits.rate_limiter import RateLimiter
from citysuggest.nlp.normalizer import normalize
from citysuggest.ranking.scorer import LatLong, Scorer, Suggestion
from citysuggest.recall.matcher import Matcher
from citysuggest.session.cache import SessionCache, fingerprint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Outcome:
    remaining: int = 0
    limit: int = 0


@dataclass(frozen=True)
class SuggestResult(Outcome):
    suggestions: Tuple[Suggestion, ...] = ()
    fingerprint: str = ""


@dataclass(frozen=True)
class NotModified(Outcome):
    fingerprint: str = ""


@dataclass(frozen=True)
class NoMatch(Outcome):
    pass


@dataclass(frozen=True)
class MalformedInput(Outcome):
    detail: str = ""


@dataclass(frozen=True)
class RateLimited(Outcome):
    retry_after: int = 1


class SuggestionService:
    def __init__(
        self,
        index: PlaceIndex,
        matcher: Optional[Matcher] = None,
        scorer: Optional[Scorer] = None,
        sessions: Optional[SessionCache] = None,
        limiter: Optional[RateLimiter] = None,
        max_query_length: Optional[int] = None,
    ):
        self.index = index
        self.matcher = matcher or Matcher(index)
        self.scorer = scorer or Scorer()
        self.sessions = sessions or SessionCache()
        self.limiter = limiter or RateLimiter()
        self.max_query_length = (
            settings.QUERY_MAX_LENGTH if max_query_length is None else max_query_length
        )

    def suggest(
        self,
        raw_query: Optional[str],
        client_location: Optional[LatLong] = None,
        session_id: Optional[str] = None,
        client_id: str = "anonymous",
    ) -> Outcome:
        # 1. Admission
        decision = self.limiter.admit(client_id)
        if not decision.allowed:
            return self._rate_limited(client_id, decision)
        meta = {"remaining": decision.remaining, "limit": decision.limit}

        # 2. Validation & normalization
        if client_location is not None:
            client_location = LatLong(*client_location)
        problem = self._validate(raw_query, client_location)
        if problem:
            return MalformedInput(detail=problem, **meta)
        query = normalize(raw_query)
        if not query:
            return MalformedInput(detail="Query has no searchable characters", **meta)

        context = self._context(client_location)
        with self.sessions.hold(session_id):
            # 3. Session short-circuit
            cached = self.sessions.lookup(session_id, query, context)
            if cached.unchanged:
                logger.debug(f"Session {session_id}: '{query}' not modified")
                return NotModified(fingerprint=cached.fingerprint, **meta)

            # 4. Recall
            if cached.pool is not None:
                candidates = self.matcher.match(query, cached.pool)
                if not candidates:
                    # Longer queries get a bigger typo budget than their prefix had
                    candidates = self.matcher.match(query)
            else:
                candidates = self.matcher.match(query)

            if not candidates:
                logger.debug(f"No match for '{query}'")
                return NoMatch(**meta)

            # 5. Ranking
            ranked = self.scorer.rank(candidates, client_location)
            suggestions = self.scorer.top(ranked)
            digest = fingerprint(suggestions)

            # 6. Remember for the next keystroke
            self.sessions.store(session_id, query, ranked, digest, context)

        return SuggestResult(suggestions=tuple(suggestions), fingerprint=digest, **meta)

    def reject(self, detail: str, client_id: str = "anonymous") -> Outcome:
        """Count a request the transport could not parse, and refuse it."""
        decision = self.limiter.admit(client_id)
        if not decision.allowed:
            return self._rate_limited(client_id, decision)
        return MalformedInput(
            detail=detail, remaining=decision.remaining, limit=decision.limit
        )

    @staticmethod
    def _rate_limited(client_id: str, decision) -> RateLimited:
        logger.debug(f"Rate limited client {client_id}")
        return RateLimited(
            remaining=0, limit=decision.limit, retry_after=decision.retry_after
        )

    def _validate(
        self, raw_query: Optional[str], client_location: Optional[LatLong]
    ) -> Optional[str]:
        if raw_query is None or not raw_query.strip():
            return "Missing query parameter 'q'"
        if len(raw_query) > self.max_query_length:
            return f"Query longer than {self.max_query_length} characters"
        if client_location is not None:
            lat, lon = client_location
            if not (math.isfinite(lat) and math.isfinite(lon)):
                return "Location must be finite numbers"
            if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
                return "Location out of range"
        return None

    @staticmethod
    def _context(client_location: Optional[LatLong]):
        if client_location is None:
            return None
        lat, lon = client_location
        return (round(lat, 3), round(lon, 3))
