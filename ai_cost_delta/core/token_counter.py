"""
Token counting and usage tracking.

Normalizes the token counts the host reports for a completed message.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .numbers import to_number


@dataclass(frozen=True)
class TokenCounts:
    """Token counts reported for one completed message.

    Each field is None when the host did not report it.
    """
    input: Optional[float] = None
    output: Optional[float] = None
    cache_read: Optional[float] = None
    cache_write: Optional[float] = None

    @property
    def cache_total(self) -> Optional[float]:
        """Cache read plus cache write.

        A missing side counts as zero only when the other side is known;
        with both sides missing the total is unknown.
        """
        if self.cache_read is None and self.cache_write is None:
            return None
        return (self.cache_read or 0.0) + (self.cache_write or 0.0)

    @classmethod
    def from_payload(cls, payload: Optional[Dict[str, Any]]) -> "TokenCounts":
        """Build from a host ``tokens`` object ({input, output, cache: {read, write}})."""
        if not isinstance(payload, dict):
            return cls()
        cache = payload.get("cache")
        if not isinstance(cache, dict):
            cache = {}
        return cls(
            input=to_number(payload.get("input")),
            output=to_number(payload.get("output")),
            cache_read=to_number(cache.get("read")),
            cache_write=to_number(cache.get("write")),
        )
