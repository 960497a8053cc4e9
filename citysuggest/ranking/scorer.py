import math
from dataclasses import dataclass
from typing import Iterable, List, NamedTuple, Optional

from geopy.distance import great_circle

from citysuggest.core.config import settings
from citysuggest.index.places import PlaceRecord
from citysuggest.recall.matcher import Candidate


class LatLong(NamedTuple):
    latitude: float
    longitude: float


@dataclass(frozen=True)
class ScoredPlace:
    place: PlaceRecord
    score: float


@dataclass(frozen=True)
class Suggestion:
    name: str
    latitude: float
    longitude: float
    score: float

    @classmethod
    def from_scored(cls, scored: ScoredPlace) -> "Suggestion":
        return cls(
            name=scored.place.display_name,
            latitude=scored.place.latitude,
            longitude=scored.place.longitude,
            score=scored.score,
        )


class Scorer:
    def __init__(
        self,
        top_k: Optional[int] = None,
        sigma_km: Optional[float] = None,
        proximity_floor: Optional[float] = None,
        precision: Optional[int] = None,
        dedup_precision: Optional[int] = None,
    ):
        self.top_k = settings.RANK_TOP_K if top_k is None else top_k
        self.sigma_km = settings.RANK_DIST_SIGMA_KM if sigma_km is None else sigma_km
        self.proximity_floor = (
            settings.RANK_PROXIMITY_FLOOR if proximity_floor is None else proximity_floor
        )
        self.precision = settings.SCORE_PRECISION if precision is None else precision
        self.dedup_precision = (
            settings.DEDUP_PRECISION if dedup_precision is None else dedup_precision
        )

    def proximity(
        self, place: PlaceRecord, client_location: Optional[LatLong]
    ) -> float:
        if client_location is None:
            return 1.0

        dist_km = great_circle(
            (client_location.latitude, client_location.longitude),
            (place.latitude, place.longitude),
        ).km

        # Gaussian decay: exp(-dist^2 / 2sigma^2), lifted onto [floor, 1]
        decay = math.exp(-(dist_km**2) / (2 * (self.sigma_km**2)))
        return self.proximity_floor + (1 - self.proximity_floor) * decay

    def rank(
        self,
        candidates: Iterable[Candidate],
        client_location: Optional[LatLong] = None,
    ) -> List[ScoredPlace]:
        scored = []
        for c in candidates:
            final_score = c.similarity * self.proximity(c.place, client_location)
            final_score = round(min(1.0, max(0.0, final_score)), self.precision)
            scored.append(ScoredPlace(place=c.place, score=final_score))

        # Sort desc by score, then bigger places, then alphabetically
        scored.sort(
            key=lambda s: (-s.score, -s.place.population, s.place.display_name)
        )

        ranked = []
        seen_ids = set()
        seen_content = set()
        for s in scored:
            # 1. ID Dedup
            if s.place.id in seen_ids:
                continue
            seen_ids.add(s.place.id)

            # 2. Content Dedup (same label at approximately the same spot)
            content_key = (
                s.place.display_name,
                round(s.place.latitude, self.dedup_precision),
                round(s.place.longitude, self.dedup_precision),
            )
            if content_key in seen_content:
                continue
            seen_content.add(content_key)

            ranked.append(s)
        return ranked

    def top(self, ranked: List[ScoredPlace]) -> List[Suggestion]:
        return [Suggestion.from_scored(s) for s in ranked[: self.top_k]]

    def score(
        self,
        candidates: Iterable[Candidate],
        client_location: Optional[LatLong] = None,
    ) -> List[Suggestion]:
        return self.top(self.rank(candidates, client_location))
