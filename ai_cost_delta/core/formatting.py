"""
Human-readable rendering of snapshots and usage statistics.

Every formatter renders an unknown value as "-".
"""

from datetime import datetime
from typing import Any, Optional

from .accumulator import TurnResult
from .numbers import to_number
from ai_cost_delta.storage.models import AccountSnapshot, UsageStats

UNKNOWN = "-"
DIVIDER = "-" * 36


def format_money(value: Any, places: int = 2) -> str:
    amount = to_number(value)
    if amount is None:
        return UNKNOWN
    return f"${amount:.{places}f}"


def format_count(value: Any) -> str:
    """Thousands-separated integer; zero counts as nothing to show."""
    amount = to_number(value)
    if amount is None or amount <= 0:
        return UNKNOWN
    return f"{round(amount):,}"


def format_stat_money(value: Any) -> str:
    amount = to_number(value)
    if amount is None or amount <= 0:
        return UNKNOWN
    return f"${amount:.4f}"


def format_latency(value: Any, compact: bool = False) -> str:
    amount = to_number(value)
    if amount is None:
        return UNKNOWN
    separator = "" if compact else " "
    return f"{round(amount)}{separator}ms"


def _parse_date(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    millis = to_number(value)
    if millis is not None and not isinstance(value, str):
        try:
            return datetime.fromtimestamp(millis / 1000.0)
        except (OverflowError, OSError, ValueError):
            return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    # Offset-aware values are shown in the local calendar day
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone()
    return parsed


def format_date(value: Any) -> str:
    """Format as YYYY/M/D, matching the account dashboard."""
    parsed = _parse_date(value)
    if parsed is None:
        return UNKNOWN
    return f"{parsed.year}/{parsed.month}/{parsed.day}"


def format_range(start: Any, end: Any) -> str:
    start_text = format_date(start)
    end_text = format_date(end)
    if start_text == UNKNOWN or end_text == UNKNOWN:
        return UNKNOWN
    return f"{start_text} ~ {end_text}"


def format_metrics(input_tokens: Any, output_tokens: Any, cache_tokens: Any, latency: Any,
                   compact: bool = False) -> str:
    return (
        f"in {format_count(input_tokens)} | out {format_count(output_tokens)} | "
        f"cache {format_count(cache_tokens)} | first token {format_latency(latency, compact)}"
    )


def _stats_line(label: str, stats: Optional[UsageStats]) -> str:
    stats = stats or UsageStats()
    metrics = format_metrics(
        stats.input_tokens,
        stats.output_tokens,
        stats.cache_tokens,
        stats.average_latency,
        compact=True,
    )
    return f"{label}: {metrics} | cost {format_stat_money(stats.cost)}"


def build_report(
    snapshot: AccountSnapshot,
    session_stats: Optional[UsageStats],
    aggregate_stats: Optional[UsageStats],
) -> str:
    """Render the account report posted by the report command."""
    lines = [
        "[Account]",
        f"- Email: {snapshot.email or UNKNOWN}",
        f"- Registered: {format_date(snapshot.created_at)}",
        "",
        "[Usage]",
        f"- Daily budget: {format_money(snapshot.daily_budget)}",
        f"- Spent this week: {format_money(snapshot.weekly_spent)} / {format_money(snapshot.weekly_budget)}",
        f"  Window: {format_range(snapshot.weekly_window_start, snapshot.weekly_window_end)}",
        f"- Spent today: {format_money(snapshot.daily_spent)}",
        f"- Spent in total: {format_money(snapshot.total_spent)}",
        "Figures above are reported by the account endpoint.",
        DIVIDER,
        _stats_line("Current session", session_stats),
        _stats_line("All sessions", aggregate_stats),
    ]
    return "\n".join(lines) + "\n"


def build_turn_message(result: TurnResult) -> str:
    """Render the notification shown after an assistant turn."""
    snapshot = result.snapshot or AccountSnapshot()
    metrics = format_metrics(
        result.tokens.input,
        result.tokens.output,
        result.tokens.cache_total,
        result.first_token_latency,
    )
    return "\n".join([
        metrics,
        f"This turn: {format_money(result.delta, 4)} | Session: {format_money(result.session_total, 4)}",
        f"Today: {format_money(snapshot.daily_spent, 4)} / {format_money(snapshot.daily_budget, 4)}",
    ])
