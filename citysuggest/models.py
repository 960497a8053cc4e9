from pydantic import BaseModel
from typing import List, Optional


class SuggestionOut(BaseModel):
    name: str
    latitude: float
    longitude: float
    score: float


class SuggestionsResponse(BaseModel):
    suggestions: List[SuggestionOut]
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    places: int
