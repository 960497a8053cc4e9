from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from rapidfuzz.distance import Levenshtein

from citysuggest.core.config import settings
from citysuggest.index.places import PlaceIndex, PlaceRecord


@dataclass(frozen=True)
class Candidate:
    place: PlaceRecord
    similarity: float


class Matcher:
    """
    Approximate name matching against the place index.

    A query is compared with every search key of a place as a possibly
    misspelled prefix: the best Levenshtein alignment against a prefix of the
    key, with an edit budget proportional to the query length. Covering more
    of the key scores higher, so an exact name is 1.0 and each correctly
    typed character moves a prefix closer to it.
    """

    def __init__(
        self,
        index: PlaceIndex,
        min_similarity: Optional[float] = None,
        max_edit_ratio: Optional[float] = None,
        max_edits: Optional[int] = None,
        prefix_base: Optional[float] = None,
        word_weight: Optional[float] = None,
        alt_name_weight: Optional[float] = None,
    ):
        self.index = index
        self.min_similarity = (
            settings.MATCH_MIN_SIMILARITY if min_similarity is None else min_similarity
        )
        self.max_edit_ratio = (
            settings.MATCH_MAX_EDIT_RATIO if max_edit_ratio is None else max_edit_ratio
        )
        self.max_edits = settings.MATCH_MAX_EDITS if max_edits is None else max_edits
        self.prefix_base = (
            settings.MATCH_PREFIX_BASE if prefix_base is None else prefix_base
        )
        self.word_weight = (
            settings.MATCH_WORD_WEIGHT if word_weight is None else word_weight
        )
        self.alt_name_weight = (
            settings.MATCH_ALT_NAME_WEIGHT if alt_name_weight is None else alt_name_weight
        )

    def match(
        self, query: str, pool: Optional[Iterable[PlaceRecord]] = None
    ) -> List[Candidate]:
        if not query:
            return []
        if pool is None:
            pool = self.index

        budget = self.edit_budget(query)
        candidates = []
        for place in pool:
            similarity = self.similarity(query, place, budget)
            if similarity >= self.min_similarity:
                candidates.append(Candidate(place=place, similarity=similarity))
        return candidates

    def edit_budget(self, query: str) -> int:
        return min(int(len(query) * self.max_edit_ratio), self.max_edits)

    def similarity(
        self, query: str, place: PlaceRecord, budget: Optional[int] = None
    ) -> float:
        if query in (place.key, place.display_key) or query in place.alt_keys:
            return 1.0
        if budget is None:
            budget = self.edit_budget(query)

        best = self._key_similarity(query, place.key, budget)
        for alt_key in place.alt_keys:
            if best >= self.alt_name_weight:
                break
            best = max(
                best, self.alt_name_weight * self._key_similarity(query, alt_key, budget)
            )

        if best < 1.0:
            best = max(best, self._region_similarity(query, place, budget))
        return best

    def _region_similarity(self, query: str, place: PlaceRecord, budget: int) -> float:
        """
        A complete name followed by the start of its region: "Washington, Ut".

        The name is already fully covered, so only its typos cost anything.
        The region part must be typed correctly; it narrows, it never
        matches on its own ("utah" alone finds nothing).
        """
        key = place.key
        region = place.display_key[len(key) :]
        m = len(query)
        best = 0.0
        for k in range(max(1, len(key) - budget), min(m - 1, len(key) + budget) + 1):
            if not region.startswith(query[k:]):
                continue
            distance = Levenshtein.distance(query[:k], key, score_cutoff=budget)
            if distance <= budget:
                best = max(best, 1 - distance / m)
        return best

    def _key_similarity(self, query: str, key: str, budget: int) -> float:
        best = self._prefix_similarity(query, key, budget)

        # Word starts inside the key: "york" should find "new york"
        start = key.find(" ")
        while start != -1 and best < self.word_weight:
            best = max(
                best,
                self.word_weight
                * self._prefix_similarity(query, key[start + 1 :], budget),
            )
            start = key.find(" ", start + 1)
        return best

    def _prefix_similarity(self, query: str, key: str, budget: int) -> float:
        m, n = len(query), len(key)
        best = 0.0
        for j in range(max(1, m - budget), min(n, m + budget) + 1):
            distance = Levenshtein.distance(query, key[:j], score_cutoff=budget)
            if distance > budget:
                continue
            coverage = j / n
            similarity = (1 - distance / m) * (
                self.prefix_base + (1 - self.prefix_base) * coverage
            )
            best = max(best, similarity)
        return best
