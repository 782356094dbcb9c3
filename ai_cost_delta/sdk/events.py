"""
Host event parsing.

Accepts the normalized event shapes:

    {"type": "part-observed", "messageId", "sessionId", "timestamp"}
    {"type": "turn-completed", "role", "messageId", "sessionId", "providerId",
     "createdAt", "completedAt", "tokens": {"input", "output", "cache": {"read", "write"}}}

as well as the host's native ``message.part.updated`` and ``message.updated``
envelopes, which carry the same data under ``properties``.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from ..core.numbers import to_number
from ..core.token_counter import TokenCounts

PART_OBSERVED = "part-observed"
TURN_COMPLETED = "turn-completed"
NATIVE_PART_UPDATED = "message.part.updated"
NATIVE_MESSAGE_UPDATED = "message.updated"

UNKNOWN_PROVIDER = "unknown"


@dataclass(frozen=True)
class PartObserved:
    message_id: str
    session_id: Optional[str]
    timestamp: Optional[float]


@dataclass(frozen=True)
class TurnCompleted:
    role: str
    message_id: Optional[str]
    session_id: str
    provider_id: Optional[str] = None
    created_at: Optional[float] = None
    completed_at: Optional[float] = None
    tokens: TokenCounts = field(default_factory=TokenCounts)


HostEvent = Union[PartObserved, TurnCompleted]


def parse_event(event: Any) -> Optional[HostEvent]:
    """Parse a raw host event.

    Returns:
        PartObserved, TurnCompleted, or None for anything irrelevant or
        missing the ids it needs
    """
    if not isinstance(event, dict):
        return None
    event_type = event.get("type")
    if event_type == PART_OBSERVED:
        return _part(event.get("messageId"), event.get("sessionId"), event.get("timestamp"))
    if event_type == TURN_COMPLETED:
        return _turn(
            role=event.get("role"),
            message_id=event.get("messageId"),
            session_id=event.get("sessionId"),
            provider_id=event.get("providerId"),
            created_at=event.get("createdAt"),
            completed_at=event.get("completedAt"),
            tokens=event.get("tokens"),
        )
    if event_type == NATIVE_PART_UPDATED:
        part = _get(event, "properties", "part")
        return _part(_get(part, "messageID"), _get(part, "sessionID"), _get(part, "time", "start"))
    if event_type == NATIVE_MESSAGE_UPDATED:
        info = _get(event, "properties", "info")
        if not isinstance(info, dict):
            return None
        return _turn(
            role=info.get("role"),
            message_id=info.get("id"),
            session_id=info.get("sessionID"),
            provider_id=info.get("providerID") or _get(info, "model", "providerID"),
            created_at=_get(info, "time", "created"),
            completed_at=_get(info, "time", "completed"),
            tokens=info.get("tokens"),
        )
    return None


def _get(data: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _part(message_id: Any, session_id: Any, timestamp: Any) -> Optional[PartObserved]:
    if not isinstance(message_id, str) or not message_id:
        return None
    return PartObserved(
        message_id=message_id,
        session_id=session_id if isinstance(session_id, str) else None,
        timestamp=to_number(timestamp),
    )


def _turn(role: Any, message_id: Any, session_id: Any, provider_id: Any,
          created_at: Any, completed_at: Any, tokens: Any) -> Optional[TurnCompleted]:
    if not isinstance(role, str) or not isinstance(session_id, str) or not session_id:
        return None
    return TurnCompleted(
        role=role,
        message_id=message_id if isinstance(message_id, str) and message_id else None,
        session_id=session_id,
        provider_id=provider_id if isinstance(provider_id, str) and provider_id else None,
        created_at=to_number(created_at),
        completed_at=to_number(completed_at),
        tokens=TokenCounts.from_payload(tokens),
    )
