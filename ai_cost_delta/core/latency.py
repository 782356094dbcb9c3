"""
First-token latency tracking.

Correlates part-level events with message completion.
"""

from collections import OrderedDict
from typing import Any, Optional

from .numbers import to_number

DEFAULT_MAX_ENTRIES = 10_000


class EventCorrelator:
    """Earliest observed part timestamp per in-flight message.

    Process-local and never persisted. Once more than ``max_entries``
    messages are tracked the oldest one is evicted.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES):
        if max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        self.max_entries = max_entries
        self._earliest: "OrderedDict[str, float]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._earliest)

    def observe_part(self, message_id: Optional[str], timestamp: Any) -> None:
        """Record a part timestamp, keeping only the minimum per message."""
        start = to_number(timestamp)
        if not message_id or start is None:
            return
        current = self._earliest.get(message_id)
        if current is not None and current <= start:
            return
        self._earliest[message_id] = start
        if len(self._earliest) > self.max_entries:
            self._earliest.popitem(last=False)

    def earliest_part(self, message_id: str) -> Optional[float]:
        return self._earliest.get(message_id)

    def first_token_latency(self, message_id: str, created_at: Any) -> Optional[float]:
        """Milliseconds from message creation to its first part.

        Clamped at zero; None when either timestamp is unknown.
        """
        created = to_number(created_at)
        earliest = self._earliest.get(message_id)
        if created is None or earliest is None:
            return None
        return max(0.0, earliest - created)

    def forget(self, message_id: str) -> None:
        self._earliest.pop(message_id, None)
