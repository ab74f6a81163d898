"""Process-wide record of the single active browser session"""

import asyncio
import time
from typing import Optional

from eburon.session.models import BrowserSession


class SessionRegistry:
    """
    Tracks the latest browser session and whether a creation is in flight.

    One instance is shared by all requests of the app; every read-modify-write
    happens under one asyncio lock so interleaved requests see a consistent
    view. Tests create their own instance.
    """

    def __init__(self, recent_window_ms: int = 15000, clock=time.monotonic):
        self.recent_window_ms = recent_window_ms
        self._clock = clock
        self._lock = asyncio.Lock()
        self._in_flight = False
        self._session: Optional[BrowserSession] = None
        self._recorded_at: Optional[float] = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def try_begin_create(self) -> bool:
        """Claim the creation slot; False when another creation holds it"""
        async with self._lock:
            if self._in_flight:
                return False
            self._in_flight = True
            return True

    async def end_create(self) -> None:
        async with self._lock:
            self._in_flight = False

    async def record_session(self, session: BrowserSession) -> None:
        async with self._lock:
            self._session = session
            self._recorded_at = self._clock()

    async def recent_session(
        self, window_ms: Optional[int] = None
    ) -> Optional[BrowserSession]:
        """Latest session, only if it was recorded within the window"""
        window = self.recent_window_ms if window_ms is None else window_ms
        async with self._lock:
            if self._session is None or self._recorded_at is None:
                return None
            age_ms = (self._clock() - self._recorded_at) * 1000
            return self._session if age_ms <= window else None

    async def current_session(self) -> Optional[BrowserSession]:
        async with self._lock:
            return self._session

    async def clear(self, session_id: Optional[str] = None) -> None:
        """Forget the latest session if it matches, or unconditionally without an id"""
        async with self._lock:
            if self._session is None:
                return
            if session_id is None or self._session.session_id == session_id:
                self._session = None
                self._recorded_at = None

    def snapshot(self) -> dict:
        """Lock-free view for health checks"""
        return {
            "activeSession": self._session.session_id if self._session else None,
            "createInFlight": self._in_flight,
        }
