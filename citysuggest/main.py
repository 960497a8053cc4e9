import logging
import uuid
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from citysuggest.core.config import settings
from citysuggest.index.places import load_place_index
from citysuggest.models import HealthResponse, SuggestionOut, SuggestionsResponse
from citysuggest.ranking.scorer import LatLong
from citysuggest.service import (
    MalformedInput,
    NoMatch,
    NotModified,
    Outcome,
    RateLimited,
    SuggestionService,
    SuggestResult,
)

logger = logging.getLogger(__name__)


@lru_cache
def get_suggestion_service() -> SuggestionService:
    return SuggestionService(load_place_index())


def _resolve_service(app: FastAPI) -> SuggestionService:
    provider = app.dependency_overrides.get(get_suggestion_service, get_suggestion_service)
    return provider()


def _client_id(request: Request) -> str:
    return (request.client.host if request.client else "").strip() or "unknown"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Load the place index up front; a broken dataset must fail startup
    service = _resolve_service(app)
    logger.info(f"Suggestion service ready with {len(service.index)} places")
    yield


app = FastAPI(title="City Suggestion Service", version="1.0", lifespan=lifespan)


def _body(suggestions=(), detail: Optional[str] = None) -> dict:
    return SuggestionsResponse(
        suggestions=[
            SuggestionOut(
                name=s.name, latitude=s.latitude, longitude=s.longitude, score=s.score
            )
            for s in suggestions
        ],
        detail=detail,
    ).model_dump(exclude_none=True)


def _etag(fingerprint: str) -> str:
    return f'"{fingerprint}"'


def render(outcome: Outcome, if_none_match: Optional[str] = None) -> Response:
    """Map a pipeline outcome onto status code, body and limiter headers."""
    headers = {
        "X-RateLimit-Limit": str(outcome.limit),
        "X-RateLimit-Remaining": str(outcome.remaining),
    }

    if isinstance(outcome, RateLimited):
        headers["Retry-After"] = str(outcome.retry_after)
        return JSONResponse(
            status_code=429, content=_body(detail="Too many requests"), headers=headers
        )

    if isinstance(outcome, MalformedInput):
        return JSONResponse(
            status_code=400, content=_body(detail=outcome.detail), headers=headers
        )

    if isinstance(outcome, NoMatch):
        return JSONResponse(status_code=404, content=_body(), headers=headers)

    if isinstance(outcome, NotModified):
        headers["ETag"] = _etag(outcome.fingerprint)
        return Response(status_code=304, headers=headers)

    if isinstance(outcome, SuggestResult):
        headers["ETag"] = _etag(outcome.fingerprint)
        if if_none_match and if_none_match == headers["ETag"]:
            return Response(status_code=304, headers=headers)
        return JSONResponse(
            status_code=200, content=_body(outcome.suggestions), headers=headers
        )

    raise TypeError(f"Unknown outcome {outcome!r}")


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    service = _resolve_service(request.app)
    outcome = service.reject("Malformed query parameters", _client_id(request))
    return render(outcome)


@app.get("/suggestions", response_model=SuggestionsResponse)
async def suggestions(
    request: Request,
    q: Optional[str] = Query(None, description="Partial place name"),
    latitude: Optional[float] = Query(None, description="Caller latitude"),
    longitude: Optional[float] = Query(None, description="Caller longitude"),
    service: SuggestionService = Depends(get_suggestion_service),
):
    client_id = _client_id(request)
    if (latitude is None) != (longitude is None):
        outcome = service.reject(
            "latitude and longitude must be given together", client_id
        )
        return render(outcome)
    location = LatLong(latitude, longitude) if latitude is not None else None

    session_id = request.cookies.get(settings.SESSION_COOKIE_NAME)
    new_session = not session_id
    if new_session:
        session_id = uuid.uuid4().hex

    # CPU-bound matching
    outcome = await run_in_threadpool(
        service.suggest,
        q,
        client_location=location,
        session_id=session_id,
        client_id=client_id,
    )
    if isinstance(outcome, RateLimited):
        logger.info(f"Rate limited {client_id}, retry in {outcome.retry_after}s")

    response = render(outcome, request.headers.get("if-none-match"))
    if new_session:
        response.set_cookie(
            settings.SESSION_COOKIE_NAME, session_id, httponly=True, samesite="lax"
        )
    return response


@app.get("/health", response_model=HealthResponse)
async def health(service: SuggestionService = Depends(get_suggestion_service)):
    return {"status": "ok", "places": len(service.index)}


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL)
    uvicorn.run(app, host=settings.APP_HOST, port=settings.APP_PORT)
