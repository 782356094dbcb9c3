"""
Duplicate completion suppression.
"""

import threading
from typing import Set


class DedupGate:
    """First-call-wins gate keyed by message id.

    The host may deliver the same completion event several times; only
    the first delivery may reach the accumulator. Membership lives in
    memory for the process lifetime and is not persisted.
    """

    def __init__(self):
        self._seen: Set[str] = set()
        self._lock = threading.Lock()

    def should_notify(self, message_id: str) -> bool:
        """Return True the first time message_id is offered, False afterwards."""
        with self._lock:
            if message_id in self._seen:
                return False
            self._seen.add(message_id)
            return True
