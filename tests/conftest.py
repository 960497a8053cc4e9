import os

import pytest

from citysuggest.index.places import load_place_index
from citysuggest.limits.rate_limiter import RateLimiter
from citysuggest.ranking.scorer import LatLong
from citysuggest.service import SuggestionService
from citysuggest.session.cache import SessionCache

SAMPLE_PLACES = os.path.join(os.path.dirname(__file__), "..", "data", "cities_sample.tsv")

SAN_FRANCISCO = LatLong(37.7577627, -122.4727052)
NEW_YORK = LatLong(40.6976633, -74.1201063)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(scope="session")
def place_index():
    return load_place_index(SAMPLE_PLACES, min_population=0, load_alt_names=True)


@pytest.fixture
def make_service(place_index, clock):
    def _make(limit: int = 1000, window_seconds: float = 1.0) -> SuggestionService:
        return SuggestionService(
            place_index,
            sessions=SessionCache(ttl_seconds=60, max_entries=100, clock=clock),
            limiter=RateLimiter(limit=limit, window_seconds=window_seconds, clock=clock),
        )

    return _make
