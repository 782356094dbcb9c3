"""
Delta accounting against a cumulative spend counter.

The account endpoint only exposes a running total. A user turn records
that total as the session's baseline; each assistant turn attributes
``total_spent - baseline`` to the session and to the aggregates. Tokens
and latency are accumulated independently of cost, so an unknown total
never blocks the other statistics.

Invariants:
1. Only a user turn moves a session's baseline.
2. An unknown operand makes the delta unknown; it is never treated as 0.
3. Every mutation is load -> compute -> save under one lock; the state
   is never cached between calls.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Tuple

from .numbers import to_number
from .token_counter import TokenCounts
from ai_cost_delta.storage.models import ALL_SCOPE, AccountSnapshot, UsageState, UsageStats
from ai_cost_delta.storage.repository import StateRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TurnResult:
    """Outcome of one assistant turn, as handed to the notifier."""
    session_id: str
    delta: Optional[float]
    session_total: Optional[float]
    tokens: TokenCounts
    first_token_latency: Optional[float]
    snapshot: Optional[AccountSnapshot]


class DeltaAccumulator:
    """Applies turns to the persisted usage state.

    Args:
        repository: Store the state is loaded from and saved to
        clock: Returns the value written to ``updated_at``
    """

    def __init__(
        self,
        repository: StateRepository,
        clock: Optional[Callable[[], str]] = None,
    ):
        self.repository = repository
        self._clock = clock or (lambda: datetime.now().isoformat())
        self._lock = threading.Lock()

    def apply_user_turn(self, session_id: str, snapshot: Optional[AccountSnapshot]) -> None:
        """Move the session's baseline to the snapshot's total.

        An unavailable snapshot or unknown total leaves an existing
        baseline alone. The session's total and stats entries are created
        (at zero) either way.

        Args:
            session_id: Session the user turn belongs to
            snapshot: Fresh snapshot, or None if the fetch failed
        """
        with self._lock:
            state = self.repository.load()
            total_spent = snapshot.total_spent if snapshot is not None else None
            if total_spent is not None:
                state.baseline_by_session[session_id] = total_spent
            else:
                logger.debug("Keeping baseline for session %s: total unknown", session_id)
            self._ensure_session(state, session_id)
            if snapshot is not None:
                state.last_snapshot = snapshot.to_payload()
            state.updated_at = self._clock()
            self.repository.save(state)

    def apply_assistant_turn(
        self,
        session_id: str,
        snapshot: Optional[AccountSnapshot],
        tokens: TokenCounts,
        first_token_latency: Optional[float],
        provider_id: Optional[str] = None,
    ) -> TurnResult:
        """Attribute one assistant turn to its session and the aggregates.

        The delta is computed against the baseline of the latest user turn;
        the baseline itself is left unchanged. Negative deltas are applied
        as-is.

        Args:
            session_id: Session the turn belongs to
            snapshot: Fresh snapshot, or None if the fetch failed
            tokens: Token counts reported for the message
            first_token_latency: Latency in ms, or None if unknown
            provider_id: Provider scope to update besides the global one

        Returns:
            TurnResult describing what was applied
        """
        latency = to_number(first_token_latency)
        cache_total = tokens.cache_total
        with self._lock:
            state = self.repository.load()
            total_spent = snapshot.total_spent if snapshot is not None else None
            baseline = state.baseline_by_session.get(session_id)
            delta = None
            if total_spent is not None and baseline is not None:
                delta = total_spent - baseline
            else:
                logger.debug(
                    "Skipping cost for session %s: total=%s baseline=%s",
                    session_id, total_spent, baseline,
                )

            session_stats = self._ensure_stats(state, session_id)
            buckets = [session_stats, self._aggregate(state, ALL_SCOPE)]
            if provider_id and provider_id != ALL_SCOPE:
                buckets.append(self._aggregate(state, provider_id))

            for stats in buckets:
                if tokens.input is not None:
                    stats.input_tokens += tokens.input
                if tokens.output is not None:
                    stats.output_tokens += tokens.output
                if cache_total is not None:
                    stats.cache_tokens += cache_total
                if latency is not None:
                    stats.latency_sum += latency
                    stats.latency_count += 1
                if delta is not None:
                    stats.cost += delta

            if delta is not None:
                state.session_totals[session_id] = state.session_totals.get(session_id, 0.0) + delta

            state.last_session_id = session_id
            if snapshot is not None:
                state.last_snapshot = snapshot.to_payload()
            state.updated_at = self._clock()
            self.repository.save(state)

            return TurnResult(
                session_id=session_id,
                delta=delta,
                session_total=state.session_totals.get(session_id),
                tokens=tokens,
                first_token_latency=latency,
                snapshot=snapshot,
            )

    def report(self, session_id: str, scope: str = ALL_SCOPE) -> Tuple[UsageStats, UsageStats]:
        """Return (session stats, aggregate stats) for display.

        State written before aggregates existed has no global bucket; in
        that case it is summed from the sessions on the fly.
        """
        state = self.repository.load()
        session_stats = state.session_stats.get(session_id) or UsageStats()
        aggregate = state.aggregate_stats.get(scope)
        if aggregate is None:
            aggregate = UsageStats()
            if scope == ALL_SCOPE:
                for stats in state.session_stats.values():
                    aggregate.combine(stats)
        return session_stats, aggregate

    def last_snapshot(self) -> Optional[AccountSnapshot]:
        """Snapshot stored by the latest successful poll, if any."""
        payload = self.repository.load().last_snapshot
        if payload is None:
            return None
        return AccountSnapshot.from_payload(payload)

    def record_snapshot(self, snapshot: AccountSnapshot) -> None:
        with self._lock:
            state = self.repository.load()
            state.last_snapshot = snapshot.to_payload()
            state.updated_at = self._clock()
            self.repository.save(state)

    def clear_session(self, session_id: str) -> None:
        """Drop everything recorded for one session. Idempotent.

        Aggregates keep the session's past contribution.
        """
        with self._lock:
            state = self.repository.load()
            state.baseline_by_session.pop(session_id, None)
            state.session_totals.pop(session_id, None)
            state.session_stats.pop(session_id, None)
            state.updated_at = self._clock()
            self.repository.save(state)
        logger.info("Cleared usage for session %s", session_id)

    def clear_all(self) -> None:
        """Reset every mapping and forget the last session. Idempotent."""
        with self._lock:
            state = self.repository.load()
            state.baseline_by_session = {}
            state.session_totals = {}
            state.session_stats = {}
            state.aggregate_stats = {}
            state.last_session_id = None
            state.updated_at = self._clock()
            self.repository.save(state)
        logger.info("Cleared usage for all sessions")

    @staticmethod
    def _ensure_session(state: UsageState, session_id: str) -> None:
        if session_id not in state.session_totals:
            state.session_totals[session_id] = 0.0
        DeltaAccumulator._ensure_stats(state, session_id)

    @staticmethod
    def _ensure_stats(state: UsageState, session_id: str) -> UsageStats:
        stats = state.session_stats.get(session_id)
        if stats is None:
            stats = UsageStats()
            state.session_stats[session_id] = stats
        return stats

    @staticmethod
    def _aggregate(state: UsageState, scope: str) -> UsageStats:
        stats = state.aggregate_stats.get(scope)
        if stats is None:
            stats = UsageStats()
            state.aggregate_stats[scope] = stats
        return stats
