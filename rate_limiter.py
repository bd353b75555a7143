"""
Request limits applied before a search starts.

Authenticated users get a daily quota counted in the daily_requests table; anonymous clients get a
cooldown between two searches, tracked in this process. Neither check is atomic with the increment that
follows it, so two simultaneous submissions from the same identity can both get through.
"""

import math
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from errors import CooldownActive, QuotaExceeded

TABLE = "daily_requests"


def utc_today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


class DailyQuota:
    """Per-user, per-UTC-day request counter."""

    def __init__(self, client: Any, limit: int = 5, today: Callable[[], str] = utc_today, debug: bool = False):
        """
        Args:
            client: A supabase Client.
            limit: Searches allowed per user per day.
            today: Returns today's date as YYYY-MM-DD.
            debug: Print counter updates.
        """
        self.client = client
        self.limit = limit
        self.today = today
        self.debug = debug

    def _todays_row(self, user_id: str) -> Optional[Dict[str, Any]]:
        result = self.client.table(TABLE)\
            .select('*')\
            .eq('user_id', user_id)\
            .eq('request_date', self.today())\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def count(self, user_id: str) -> int:
        """Searches made today. Rows of previous days are ignored, so the count resets at UTC midnight."""
        try:
            row = self._todays_row(user_id)
        except Exception as e:
            print(f"[Quota] Error reading daily requests for {user_id}: {e}")
            return 0
        return row['request_count'] if row else 0

    def remaining(self, user_id: str) -> int:
        return max(0, self.limit - self.count(user_id))

    def check(self, user_id: str) -> None:
        """
        Raises:
            QuotaExceeded: If the user already made `limit` searches today.
        """
        if self.count(user_id) >= self.limit:
            raise QuotaExceeded(self.limit)

    def record(self, user_id: str) -> None:
        """Count one more search for today, creating today's row on the first one."""
        now = datetime.now(timezone.utc).isoformat()
        try:
            row = self._todays_row(user_id)
            if row:
                self.client.table(TABLE)\
                    .update({'request_count': row['request_count'] + 1, 'updated_at': now})\
                    .eq('id', row['id'])\
                    .execute()
            else:
                self.client.table(TABLE).insert({
                    'user_id': user_id,
                    'request_date': self.today(),
                    'request_count': 1,
                    'created_at': now,
                    'updated_at': now,
                }).execute()
        except Exception as e:
            print(f"[Quota] Error updating daily requests for {user_id}: {e}")
            return
        if self.debug:
            print(f"[Quota] request counted for {user_id}")

    def consume(self, user_id: str) -> None:
        self.check(user_id)
        self.record(user_id)

    def sweep(self) -> bool:
        """
        Delete counter rows of previous days.

        Returns:
            True if successful, False otherwise
        """
        try:
            self.client.table(TABLE)\
                .delete()\
                .lt('request_date', self.today())\
                .execute()
            return True
        except Exception as e:
            print(f"[Quota] Error cleaning up old daily requests: {e}")
            return False


class AnonymousCooldown:
    """
    Minimum wait between two searches of the same anonymous client.

    Clients are keyed by whatever identifies them (X-Client-Id header or remote address). A window of 0
    turns the cooldown off.
    """

    def __init__(self, window_seconds: float = 300, clock: Callable[[], float] = time.monotonic):
        self.window = window_seconds
        self.clock = clock
        self._last: Dict[str, float] = {}
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        expired = [key for key, last in self._last.items() if now - last >= self.window]
        for key in expired:
            del self._last[key]

    def remaining(self, client_id: str) -> int:
        """Seconds left before the client may search again, rounded up."""
        if self.window <= 0:
            return 0
        with self._lock:
            last = self._last.get(client_id)
            if last is None:
                return 0
            return max(0, math.ceil(self.window - (self.clock() - last)))

    def check(self, client_id: str) -> None:
        """
        Raises:
            CooldownActive: With the remaining wait if the client searched less than `window` seconds ago.
        """
        remaining = self.remaining(client_id)
        if remaining > 0:
            raise CooldownActive(remaining)

    def touch(self, client_id: str) -> None:
        if self.window <= 0:
            return
        with self._lock:
            now = self.clock()
            self._prune(now)
            self._last[client_id] = now

    def consume(self, client_id: str) -> None:
        self.check(client_id)
        self.touch(client_id)
