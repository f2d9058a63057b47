"""Daily usage counter with a safety ceiling.

The counter is shared by analysis and chat calls and is reset lazily
the first time it is read on a new calendar day.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date

from screencoach.storage.state import DAILY_QUOTA_KEY, QUOTA_DATE_KEY, LocalStateStore

logger = logging.getLogger(__name__)


class QuotaGuard:
    """Tracks successful provider calls per day against ``safety_limit``."""

    def __init__(
        self,
        store: LocalStateStore,
        max_quota: int = 1500,
        safety_limit: int = 1490,
        today: Callable[[], date] = date.today,
    ) -> None:
        if safety_limit >= max_quota:
            raise ValueError("safety_limit must be below max_quota")
        self._store = store
        self._max_quota = max_quota
        self._safety_limit = safety_limit
        self._today = today

    @property
    def max_quota(self) -> int:
        return self._max_quota

    @property
    def safety_limit(self) -> int:
        return self._safety_limit

    def usage(self) -> int:
        today = self._today().isoformat()
        if self._store.get(QUOTA_DATE_KEY) != today:
            logger.info("New day %s, resetting daily usage counter", today)
            self._store.update({DAILY_QUOTA_KEY: 0, QUOTA_DATE_KEY: today})
            return 0
        try:
            return int(self._store.get(DAILY_QUOTA_KEY, 0))
        except (TypeError, ValueError):
            return 0

    def increment(self) -> int:
        count = self.usage() + 1
        self._store.set(DAILY_QUOTA_KEY, count)
        if count == self._safety_limit:
            logger.warning("Daily usage reached safety limit (%d/%d)", count, self._max_quota)
        return count

    def is_safety_locked(self) -> bool:
        return self.usage() >= self._safety_limit

    def remaining(self) -> int:
        return max(0, self._max_quota - self.usage())
