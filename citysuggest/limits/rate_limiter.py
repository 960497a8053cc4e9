"""In-process fixed-window rate limiting per client."""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from cachetools import TTLCache

from citysuggest.core.config import settings


@dataclass
class RateWindow:
    started_at: float
    count: int = 0
    lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after: int
    limit: int


class RateLimiter:
    def __init__(
        self,
        limit: Optional[int] = None,
        window_seconds: Optional[float] = None,
        max_clients: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = settings.RATE_LIMIT_REQUESTS if limit is None else limit
        self.window_seconds = (
            settings.RATE_LIMIT_WINDOW_SECONDS if window_seconds is None else window_seconds
        )
        if max_clients is None:
            max_clients = settings.RATE_LIMIT_MAX_CLIENTS

        self._clock = clock
        # Idle clients are forgotten after two windows
        self._windows = TTLCache(
            maxsize=max_clients, ttl=self.window_seconds * 2, timer=clock
        )
        self._guard = threading.Lock()

    def _window(self, client_id: str, now: float) -> RateWindow:
        with self._guard:
            window = self._windows.get(client_id)
            if window is None:
                window = RateWindow(started_at=now)
                self._windows[client_id] = window
            return window

    def _touch(self, client_id: str, window: RateWindow) -> None:
        with self._guard:
            self._windows[client_id] = window

    def admit(self, client_id: str) -> RateLimitDecision:
        now = self._clock()
        window = self._window(client_id, now)

        with window.lock:
            if window.count == 0 or now - window.started_at >= self.window_seconds:
                window.started_at = now
                window.count = 0
                self._touch(client_id, window)

            window.count += 1
            if window.count <= self.limit:
                return RateLimitDecision(
                    allowed=True,
                    remaining=max(0, self.limit - window.count),
                    retry_after=0,
                    limit=self.limit,
                )

            reset_seconds = window.started_at + self.window_seconds - now
            return RateLimitDecision(
                allowed=False,
                remaining=0,
                retry_after=max(1, math.ceil(reset_seconds)),
                limit=self.limit,
            )
