"""
Search session id issuance
Mints a session id and rotates it after a period of inactivity
"""

import uuid
import itertools
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .config import AnalyticsConfig


class SessionIdIssuer:
    """
    Timeout-based session identifier generator

    A new id is minted on first use and whenever the last activity is older
    than the inactivity timeout. Every call counts as activity.
    """

    def __init__(
        self,
        timeout_minutes: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[int], str]] = None
    ):
        self.timeout = timedelta(minutes=timeout_minutes or AnalyticsConfig.SESSION_TIMEOUT_MINUTES)
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.id_factory = id_factory or self._default_id
        self._sequence = itertools.count(1)
        self._lock = threading.Lock()
        self._session_id: Optional[str] = None
        self._last_activity: Optional[datetime] = None

    @staticmethod
    def _default_id(sequence: int) -> str:
        return f"search_{sequence:06d}_{uuid.uuid4().hex[:12]}"

    def current(self, now: Optional[datetime] = None) -> str:
        """Return the active session id, minting a new one after inactivity"""
        now = now or self.clock()
        with self._lock:
            expired = (
                self._last_activity is None
                or now - self._last_activity > self.timeout
            )
            if self._session_id is None or expired:
                self._session_id = self.id_factory(next(self._sequence))
            self._last_activity = now
            return self._session_id

    def reset(self) -> None:
        """Forget the active session so the next call mints a new id"""
        with self._lock:
            self._session_id = None
            self._last_activity = None
