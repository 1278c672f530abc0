"""Indicator feed that replays snapshots handed to it (dry runs and tests)."""

from collections import deque
from dataclasses import replace
from typing import Iterable, Optional

from aurum.exceptions import TransientFeedError
from aurum.price_feeds.base import IndicatorFeed, IndicatorSnapshot
from aurum.utils.time_utils import utcnow


class StaticIndicatorFeed(IndicatorFeed):
    """
    Returns queued snapshots in order, then keeps returning the last one.

    Each returned snapshot is re-stamped with the current time unless
    restamp is False. An empty feed raises TransientFeedError.
    """

    def __init__(self, snapshots: Optional[Iterable[IndicatorSnapshot]] = None, restamp: bool = True):
        self._queue = deque(snapshots or [])
        self._last: Optional[IndicatorSnapshot] = None
        self.restamp = restamp

    def push(self, snapshot: IndicatorSnapshot):
        self._queue.append(snapshot)

    async def fetch_indicators(self, symbol: str) -> IndicatorSnapshot:
        if self._queue:
            self._last = self._queue.popleft()
        if self._last is None:
            raise TransientFeedError(f"No indicator data for {symbol}")
        if self.restamp:
            return replace(self._last, timestamp=utcnow())
        return self._last
