"""
Data models for storage layer.

Defines the account snapshot and the persisted usage state.
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional, Union

from ai_cost_delta.core.numbers import to_number

ALL_SCOPE = "__all__"

# Remote API field name for each snapshot attribute
_SNAPSHOT_WIRE_NAMES = {
    "email": "email",
    "created_at": "created_at",
    "daily_budget": "daily_budget_usd",
    "daily_spent": "daily_spent_usd",
    "weekly_budget": "weekly_budget_usd",
    "weekly_spent": "weekly_spent_usd",
    "weekly_window_start": "weekly_window_start",
    "weekly_window_end": "weekly_window_end",
    "total_spent": "total_spent_usd",
}

_MONEY_FIELDS = ("daily_budget", "daily_spent", "weekly_budget", "weekly_spent", "total_spent")

# ISO strings or epoch milliseconds, kept in whichever form the endpoint sent
_TIMESTAMP_FIELDS = ("created_at", "weekly_window_start", "weekly_window_end")

# Short names written by older state files
_LEGACY_STAT_NAMES = {
    "input_tokens": "input",
    "output_tokens": "output",
    "cache_tokens": "cache",
    "latency_sum": "latencySum",
    "latency_count": "latencyCount",
    "cost": "cost",
}


def _timestamp(raw: Any) -> Optional[Union[str, float]]:
    if isinstance(raw, str):
        return raw
    return to_number(raw)


@dataclass(frozen=True)
class AccountSnapshot:
    """Point-in-time read of the remote account's cumulative totals.

    Money fields are None when the endpoint omitted them or sent
    something that is not a finite number.
    """
    email: Optional[str] = None
    created_at: Optional[Union[str, float]] = None
    daily_budget: Optional[float] = None
    daily_spent: Optional[float] = None
    weekly_budget: Optional[float] = None
    weekly_spent: Optional[float] = None
    weekly_window_start: Optional[Union[str, float]] = None
    weekly_window_end: Optional[Union[str, float]] = None
    total_spent: Optional[float] = None

    @classmethod
    def from_payload(cls, payload: Optional[Dict[str, Any]]) -> "AccountSnapshot":
        """Parse a response body from the account endpoint."""
        if not isinstance(payload, dict):
            return cls()
        values = {}
        for name, wire_name in _SNAPSHOT_WIRE_NAMES.items():
            raw = payload.get(wire_name)
            if name in _MONEY_FIELDS:
                values[name] = to_number(raw)
            elif name in _TIMESTAMP_FIELDS:
                values[name] = _timestamp(raw)
            else:
                values[name] = str(raw) if raw is not None else None
        return cls(**values)

    def to_payload(self) -> Dict[str, Any]:
        """Serialize back to the endpoint's field names."""
        return {
            wire_name: getattr(self, name)
            for name, wire_name in _SNAPSHOT_WIRE_NAMES.items()
        }


@dataclass
class UsageStats:
    """Running token, latency and cost totals for a session or an aggregate."""
    input_tokens: float = 0.0
    output_tokens: float = 0.0
    cache_tokens: float = 0.0
    latency_sum: float = 0.0
    latency_count: int = 0
    cost: float = 0.0

    @property
    def average_latency(self) -> Optional[float]:
        """Mean first-token latency in ms, None when nothing was measured."""
        if self.latency_count <= 0:
            return None
        return self.latency_sum / self.latency_count

    def combine(self, other: "UsageStats") -> None:
        """Add every field of other into this instance."""
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.cache_tokens += other.cache_tokens
        self.latency_sum += other.latency_sum
        self.latency_count += other.latency_count
        self.cost += other.cost

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Any) -> "UsageStats":
        """Parse persisted stats; unreadable fields start again from zero."""
        stats = cls()
        if not isinstance(data, dict):
            return stats
        for name, legacy_name in _LEGACY_STAT_NAMES.items():
            raw = data.get(name, data.get(legacy_name))
            value = to_number(raw)
            if value is None:
                continue
            if name == "latency_count":
                stats.latency_count = int(value)
            else:
                setattr(stats, name, value)
        return stats


def _number_map(data: Any) -> Dict[str, float]:
    if not isinstance(data, dict):
        return {}
    result = {}
    for key, raw in data.items():
        value = to_number(raw)
        if value is not None:
            result[str(key)] = value
    return result


def _stats_map(data: Any) -> Dict[str, UsageStats]:
    if not isinstance(data, dict):
        return {}
    return {
        str(key): UsageStats.from_dict(raw)
        for key, raw in data.items()
        if isinstance(raw, dict)
    }


@dataclass
class UsageState:
    """The whole persisted record.

    Loaded in full before every mutation and written back in full after
    it. ``baseline_by_session`` holds the ``total_spent`` observed at each
    session's latest user turn.
    """
    updated_at: Optional[str] = None
    last_snapshot: Optional[Dict[str, Any]] = None
    last_session_id: Optional[str] = None
    baseline_by_session: Dict[str, float] = field(default_factory=dict)
    session_totals: Dict[str, float] = field(default_factory=dict)
    session_stats: Dict[str, UsageStats] = field(default_factory=dict)
    aggregate_stats: Dict[str, UsageStats] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "updated_at": self.updated_at,
            "last_snapshot": self.last_snapshot,
            "last_session_id": self.last_session_id,
            "baseline_by_session": dict(self.baseline_by_session),
            "session_totals": dict(self.session_totals),
            "session_stats": {key: stats.to_dict() for key, stats in self.session_stats.items()},
            "aggregate_stats": {key: stats.to_dict() for key, stats in self.aggregate_stats.items()},
        }

    @classmethod
    def from_dict(cls, data: Any) -> "UsageState":
        """Parse a persisted record, accepting the older camelCase layout.

        Missing or malformed sections come back empty.
        """
        if not isinstance(data, dict):
            return cls()

        def pick(name: str, legacy_name: str) -> Any:
            return data[name] if name in data else data.get(legacy_name)

        updated_at = pick("updated_at", "updatedAt")
        last_snapshot = pick("last_snapshot", "data")
        last_session_id = pick("last_session_id", "lastSessionId")
        return cls(
            updated_at=str(updated_at) if updated_at is not None else None,
            last_snapshot=last_snapshot if isinstance(last_snapshot, dict) else None,
            last_session_id=last_session_id if isinstance(last_session_id, str) else None,
            baseline_by_session=_number_map(pick("baseline_by_session", "lastUserTotals")),
            session_totals=_number_map(pick("session_totals", "sessionTotals")),
            session_stats=_stats_map(pick("session_stats", "sessionStats")),
            aggregate_stats=_stats_map(pick("aggregate_stats", "providerStats")),
        )
