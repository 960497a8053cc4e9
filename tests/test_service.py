import re
from unittest.mock import patch

import pytest

from citysuggest.ranking.scorer import LatLong
from citysuggest.service import (
    MalformedInput,
    NoMatch,
    NotModified,
    RateLimited,
    SuggestResult,
)

from conftest import NEW_YORK, SAN_FRANCISCO


@pytest.fixture
def service(make_service):
    return make_service()


def _top(outcome):
    assert isinstance(outcome, SuggestResult), outcome
    return outcome.suggestions[0]


def test_valid_city(service):
    outcome = service.suggest("Montreal")
    assert isinstance(outcome, SuggestResult)
    assert any(re.search("montréal", s.name, re.I) for s in outcome.suggestions)

    top = _top(outcome)
    assert "Montréal" in top.name
    assert 0.0 < top.score <= 1.0
    for s in outcome.suggestions:
        assert s.latitude is not None and s.longitude is not None
        assert 0.0 <= s.score <= 1.0


def test_results_are_sorted_and_capped(service):
    outcome = service.suggest("mont")
    scores = [s.score for s in outcome.suggestions]
    assert scores == sorted(scores, reverse=True)
    assert len(outcome.suggestions) <= service.scorer.top_k


def test_nonsense_query_is_no_match(service):
    outcome = service.suggest("SomeRandomCityInTheMiddleOfNowhere")
    assert isinstance(outcome, NoMatch)


@pytest.mark.parametrize(
    "location, expected",
    [(SAN_FRANCISCO, "Utah, US"), (NEW_YORK, "New Jersey, US")],
)
def test_geo_biasing(service, location, expected):
    assert expected in _top(service.suggest("Washing", location)).name


@pytest.mark.parametrize(
    "query, expected",
    [
        ("Вашинг", "Washington"),
        ("monreāl", "Montréal"),
        ("Nonreal", "Montréal"),
        ("MONtREaL", "Montréal"),
    ],
)
def test_localized_misspelled_and_cased_names(service, query, expected):
    assert expected in _top(service.suggest(query)).name


def test_exact_display_name_ranks_its_place_first(service, place_index):
    for place in place_index:
        top = _top(service.suggest(place.display_name))
        assert top.name == place.display_name
        assert 0.0 < top.score <= 1.0


def test_repeated_query_in_session_is_not_modified(service):
    first = service.suggest("montr", session_id="s1")
    second = service.suggest("montr", session_id="s1")
    assert isinstance(first, SuggestResult)
    assert isinstance(second, NotModified)
    assert second.fingerprint == first.fingerprint


def test_repeated_query_without_session_is_recomputed(service):
    assert isinstance(service.suggest("montr"), SuggestResult)
    assert isinstance(service.suggest("montr"), SuggestResult)


def test_moving_caller_recomputes(service):
    service.suggest("Washing", NEW_YORK, session_id="s1")
    outcome = service.suggest("Washing", SAN_FRANCISCO, session_id="s1")
    assert "Utah, US" in _top(outcome).name


def test_incremental_typing_narrows_and_scores_grow(service):
    with patch.object(service.matcher, "match", wraps=service.matcher.match) as spy:
        r1 = service.suggest("mont", NEW_YORK, session_id="s1")
        r2 = service.suggest("montr", NEW_YORK, session_id="s1")
        r3 = service.suggest("montre", NEW_YORK, session_id="s1")

    # first keystroke searches the whole index, the next ones a narrowed pool
    assert len(spy.call_args_list[0].args) == 1
    pool = spy.call_args_list[1].args[1]
    assert 0 < len(pool) < len(service.index)

    s1, s2, s3 = (_top(r).score for r in (r1, r2, r3))
    assert s1 <= s2 < s3
    assert "Montréal" in _top(r3).name


@pytest.mark.parametrize(
    "queries, expected",
    [
        (["Washington", "Washington, U", "Washington, Ut", "Washington, Utah"], "Utah, US"),
        (["Montreal", "Montreal, Q", "Montreal, Quebec"], "Montréal, Quebec"),
    ],
)
def test_typing_into_the_region_keeps_the_top_score(service, queries, expected):
    scores = []
    for query in queries:
        top = _top(service.suggest(query, session_id="s1"))
        scores.append(top.score)
    assert expected in top.name
    assert scores == sorted(scores)
    assert scores[-1] == 1.0


def test_extending_into_another_name_raises_its_score(service):
    first = service.suggest("Montreal", session_id="s1")
    ouest = next(s for s in first.suggestions if s.name.startswith("Montréal-Ouest"))

    second = _top(service.suggest("Montreal o", session_id="s1"))
    assert second.name.startswith("Montréal-Ouest")
    assert second.score >= ouest.score


def test_narrowed_pool_falls_back_to_full_index(service):
    first = service.suggest("lo", session_id="s1")
    assert {s.name.split(",")[0] for s in first.suggestions} == {"London"}

    # only the Londons were remembered, yet the typo budget now reaches Montréal
    outcome = service.suggest("lontreal", session_id="s1")
    assert "Montréal" in _top(outcome).name


def test_no_match_is_not_cached(service):
    assert isinstance(service.suggest("zzzzqqqqxxxx", session_id="s1"), NoMatch)
    assert isinstance(service.suggest("zzzzqqqqxxxx", session_id="s1"), NoMatch)


def test_rate_limited_after_budget(make_service):
    service = make_service(limit=5)
    outcomes = [service.suggest("mont", client_id="1.2.3.4") for _ in range(6)]

    admitted = outcomes[:5]
    assert sorted(o.remaining for o in admitted) == [0, 1, 2, 3, 4]
    assert all(o.limit == 5 for o in admitted)

    denied = outcomes[5]
    assert isinstance(denied, RateLimited)
    assert denied.remaining == 0
    assert denied.retry_after == 1

    # other clients keep their own budget
    assert isinstance(service.suggest("mont", client_id="5.6.7.8"), SuggestResult)


@pytest.mark.parametrize(
    "query, location",
    [
        (None, None),
        ("", None),
        ("   ", None),
        ("!!!", None),
        ("x" * 101, None),
        ("mont", LatLong(95.0, 0.0)),
        ("mont", LatLong(0.0, 200.0)),
        ("mont", LatLong(float("nan"), 0.0)),
    ],
)
def test_malformed_input(service, query, location):
    outcome = service.suggest(query, location)
    assert isinstance(outcome, MalformedInput)
    assert outcome.detail
    assert outcome.limit == 1000


def test_rejected_requests_use_the_rate_budget(make_service):
    service = make_service(limit=1)
    first = service.reject("bad latitude", client_id="1.2.3.4")
    assert isinstance(first, MalformedInput)
    assert first.detail == "bad latitude"
    assert (first.remaining, first.limit) == (0, 1)

    assert isinstance(service.suggest("mont", client_id="1.2.3.4"), RateLimited)
