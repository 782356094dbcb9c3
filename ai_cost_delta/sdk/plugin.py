"""
Host integration.

Turns host events into accumulator calls and host commands into reports.
"""

import logging
from typing import Any, Dict, Optional, Protocol

from ..config.loader import DEFAULT_NOTIFICATION_DURATION_MS, CostDeltaConfig
from ..core.accumulator import DeltaAccumulator, TurnResult
from ..core.dedup import DedupGate
from ..core.formatting import build_report, build_turn_message
from ..core.latency import EventCorrelator
from ..storage.repository import StateRepository
from .account_client import AccountSnapshotSource
from .events import UNKNOWN_PROVIDER, PartObserved, TurnCompleted, parse_event

logger = logging.getLogger(__name__)

NOTIFICATION_TITLE = "AI Cost Delta"
MESSAGE_PREFIX = "AI-Cost-Delta"
REQUEST_FAILED_TEXT = f"{MESSAGE_PREFIX}: request failed.\n"

COMMAND_REPORT = "cost"
COMMAND_CLEAR_SESSION = "clearcost"
COMMAND_CLEAR_ALL = "clearallcost"

COMMANDS = {
    COMMAND_REPORT: "Show account usage",
    COMMAND_CLEAR_SESSION: "Clear usage recorded for the current session",
    COMMAND_CLEAR_ALL: "Clear usage recorded for all sessions",
}


class CommandHandled(Exception):
    """Raised after a command has been fully handled.

    Tells the host not to continue its default processing of the command
    (such as forwarding its text to a model). Not an error.
    """
    def __init__(self, command: str):
        super().__init__(f"command '{command}' handled")
        self.command = command


class Notifier(Protocol):
    """Host UI surface. Implementations may raise; the plugin ignores failures."""

    def notify(self, title: str, message: str, severity: str, duration_ms: int) -> None:
        """Show a transient notification."""

    def post(self, session_id: str, text: str) -> None:
        """Append a message to the session's conversation without a model reply."""


class CostDeltaPlugin:
    """Wires the host event feed to delta accounting.

    One instance owns one correlator and one dedup gate for the process
    lifetime; neither is persisted.
    """

    def __init__(
        self,
        accumulator: DeltaAccumulator,
        source: AccountSnapshotSource,
        notifier: Notifier,
        correlator: Optional[EventCorrelator] = None,
        dedup: Optional[DedupGate] = None,
        provider_key: Optional[str] = None,
        notification_duration_ms: int = DEFAULT_NOTIFICATION_DURATION_MS,
    ):
        self.accumulator = accumulator
        self.source = source
        self.notifier = notifier
        self.correlator = correlator or EventCorrelator()
        self.dedup = dedup or DedupGate()
        self.provider_key = provider_key
        self.notification_duration_ms = notification_duration_ms

    @classmethod
    def from_config(cls, config: CostDeltaConfig, notifier: Notifier) -> "CostDeltaPlugin":
        return cls(
            accumulator=DeltaAccumulator(StateRepository(config.state_path)),
            source=AccountSnapshotSource.from_config(config),
            notifier=notifier,
            provider_key=config.provider_key,
            notification_duration_ms=config.notification_duration_ms,
        )

    @staticmethod
    def register_commands(host_config: Dict[str, Any]) -> Dict[str, Any]:
        """Add this plugin's commands to a host configuration mapping."""
        commands = host_config.setdefault("command", {})
        for name, description in COMMANDS.items():
            commands[name] = {"template": f"/{name}", "description": description}
        return host_config

    def handle_event(self, event: Any) -> Optional[TurnResult]:
        """Process one raw host event.

        Never raises; unexpected errors are logged so the host's event
        loop keeps running.

        Returns:
            TurnResult when an assistant turn was accounted, else None
        """
        try:
            parsed = parse_event(event)
            if isinstance(parsed, PartObserved):
                self.correlator.observe_part(parsed.message_id, parsed.timestamp)
            elif isinstance(parsed, TurnCompleted):
                if parsed.role == "user":
                    self._on_user_turn(parsed)
                elif parsed.role == "assistant":
                    return self._on_assistant_turn(parsed)
        except Exception:
            logger.exception("Failed to handle host event")
        return None

    def _on_user_turn(self, turn: TurnCompleted) -> None:
        snapshot = self.source.fetch()
        self.accumulator.apply_user_turn(turn.session_id, snapshot)

    def _on_assistant_turn(self, turn: TurnCompleted) -> Optional[TurnResult]:
        provider_id = turn.provider_id or UNKNOWN_PROVIDER
        if self.provider_key and provider_id != self.provider_key:
            logger.debug("Ignoring message from provider %s", provider_id)
            return None
        # The host re-emits a message while it streams; only the completed one counts.
        if turn.completed_at is None:
            return None
        if turn.message_id is None:
            logger.debug("Ignoring completed message without an id")
            return None
        if not self.dedup.should_notify(turn.message_id):
            logger.debug("Ignoring repeated completion of %s", turn.message_id)
            return None

        latency = self.correlator.first_token_latency(turn.message_id, turn.created_at)
        self.correlator.forget(turn.message_id)
        snapshot = self.source.fetch()
        result = self.accumulator.apply_assistant_turn(
            turn.session_id,
            snapshot,
            turn.tokens,
            latency,
            provider_id=provider_id,
        )
        self._notify(build_turn_message(result))
        return result

    def handle_command(self, command: str, session_id: str) -> None:
        """Run one of COMMANDS for session_id.

        Commands not listed in COMMANDS return without side effects.

        Raises:
            CommandHandled: After a known command has completed
        """
        if command == COMMAND_CLEAR_SESSION:
            self.accumulator.clear_session(session_id)
            text = f"{MESSAGE_PREFIX}: usage for the current session cleared.\n"
        elif command == COMMAND_CLEAR_ALL:
            self.accumulator.clear_all()
            text = f"{MESSAGE_PREFIX}: usage for all sessions cleared.\n"
        elif command == COMMAND_REPORT:
            text = self.render_report(session_id)
        else:
            return
        self._post(session_id, text)
        raise CommandHandled(command)

    def render_report(self, session_id: str) -> str:
        """Poll the account and render the report for session_id."""
        snapshot = self.source.fetch()
        if snapshot is None:
            return REQUEST_FAILED_TEXT
        self.accumulator.record_snapshot(snapshot)
        session_stats, aggregate_stats = self.accumulator.report(session_id)
        return build_report(snapshot, session_stats, aggregate_stats)

    def _notify(self, message: str) -> None:
        try:
            self.notifier.notify(NOTIFICATION_TITLE, message, "info", self.notification_duration_ms)
        except Exception as e:
            logger.warning("Notification failed: %s", e)

    def _post(self, session_id: str, text: str) -> None:
        try:
            self.notifier.post(session_id, text)
        except Exception as e:
            logger.warning("Posting message to session %s failed: %s", session_id, e)
