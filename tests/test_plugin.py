"""
Unit tests for host integration.

Tests event parsing, assistant-turn gating, dedup and command handling.
"""

import os
import tempfile
from unittest.mock import Mock

import pytest

from ai_cost_delta.config.loader import CostDeltaConfig
from ai_cost_delta.core.accumulator import DeltaAccumulator
from ai_cost_delta.sdk.events import PartObserved, TurnCompleted, parse_event
from ai_cost_delta.sdk.plugin import (
    COMMANDS,
    REQUEST_FAILED_TEXT,
    CommandHandled,
    CostDeltaPlugin,
)
from ai_cost_delta.storage.models import AccountSnapshot, UsageStats
from ai_cost_delta.storage.repository import StateRepository


class RecordingNotifier:
    """Notifier that keeps everything it was asked to show."""

    def __init__(self):
        self.notifications = []
        self.posts = []

    def notify(self, title, message, severity, duration_ms):
        self.notifications.append((title, message, severity, duration_ms))

    def post(self, session_id, text):
        self.posts.append((session_id, text))


def user_turn(session_id="s1", message_id="u1"):
    return {"type": "turn-completed", "role": "user", "messageId": message_id, "sessionId": session_id}


def assistant_turn(session_id="s1", message_id="a1", provider_id="packy", completed_at=2000,
                   tokens=None):
    return {
        "type": "turn-completed",
        "role": "assistant",
        "messageId": message_id,
        "sessionId": session_id,
        "providerId": provider_id,
        "createdAt": 1000,
        "completedAt": completed_at,
        "tokens": tokens if tokens is not None else {
            "input": 120, "output": 340, "cache": {"read": 50, "write": 0}
        },
    }


def part(message_id="a1", timestamp=1250):
    return {"type": "part-observed", "messageId": message_id, "sessionId": "s1", "timestamp": timestamp}


class TestParseEvent:
    """Test host event parsing."""

    def test_normalized_part(self):
        """Test the normalized part-observed shape."""
        assert parse_event(part()) == PartObserved(message_id="a1", session_id="s1", timestamp=1250)

    def test_normalized_turn(self):
        """Test the normalized turn-completed shape."""
        event = parse_event(assistant_turn())

        assert isinstance(event, TurnCompleted)
        assert event.role == "assistant"
        assert event.provider_id == "packy"
        assert event.created_at == 1000
        assert event.tokens.cache_total == 50

    def test_native_envelopes(self):
        """Test the host's native message events."""
        native_part = parse_event({
            "type": "message.part.updated",
            "properties": {"part": {"messageID": "a1", "sessionID": "s1", "time": {"start": 1250}}},
        })
        native_turn = parse_event({
            "type": "message.updated",
            "properties": {"info": {
                "id": "a1", "role": "assistant", "sessionID": "s1",
                "model": {"providerID": "packy"},
                "time": {"created": 1000, "completed": 2000},
                "tokens": {"input": 10, "output": 20},
            }},
        })

        assert native_part == PartObserved(message_id="a1", session_id="s1", timestamp=1250)
        assert native_turn.provider_id == "packy"
        assert native_turn.completed_at == 2000
        assert native_turn.tokens.input == 10

    @pytest.mark.parametrize("event", [
        None,
        "message.updated",
        {"type": "session.idle"},
        {"type": "part-observed", "timestamp": 1},
        {"type": "turn-completed", "role": "user"},
        {"type": "message.updated", "properties": {}},
    ])
    def test_irrelevant_or_incomplete_events(self, event):
        """Test that anything unusable parses to None."""
        assert parse_event(event) is None


class TestCostDeltaPlugin:
    """Test event handling end to end against a temporary state file."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.repository = StateRepository(os.path.join(self.temp_dir, "state.json"))
        self.source = Mock()
        self.notifier = RecordingNotifier()
        self.plugin = CostDeltaPlugin(
            accumulator=DeltaAccumulator(self.repository),
            source=self.source,
            notifier=self.notifier,
            notification_duration_ms=3000,
        )

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _session_stats(self, session_id="s1") -> UsageStats:
        return self.plugin.accumulator.report(session_id)[0]

    def test_full_turn_accounts_and_notifies(self):
        """Test user turn, part, assistant turn in order."""
        self.source.fetch.side_effect = [
            AccountSnapshot(total_spent=10.00),
            AccountSnapshot(total_spent=10.25, daily_spent=1.0, daily_budget=20.0),
        ]

        self.plugin.handle_event(user_turn())
        self.plugin.handle_event(part(timestamp=1300))
        self.plugin.handle_event(part(timestamp=1250))
        result = self.plugin.handle_event(assistant_turn())

        assert result.delta == pytest.approx(0.25)
        stats = self._session_stats()
        assert stats.cost == pytest.approx(0.25)
        assert stats.input_tokens == 120
        assert stats.cache_tokens == 50
        assert stats.latency_sum == 250
        assert len(self.notifier.notifications) == 1
        title, message, severity, duration = self.notifier.notifications[0]
        assert title == "AI Cost Delta"
        assert severity == "info"
        assert duration == 3000
        assert "This turn: $0.2500" in message
        assert self.plugin.correlator.earliest_part("a1") is None

    def test_duplicate_completion_accounts_once(self):
        """Test that a redelivered completion neither accumulates nor notifies twice."""
        self.source.fetch.side_effect = [
            AccountSnapshot(total_spent=10.00),
            AccountSnapshot(total_spent=10.25),
            AccountSnapshot(total_spent=10.25),
        ]

        self.plugin.handle_event(user_turn())
        self.plugin.handle_event(assistant_turn())
        second = self.plugin.handle_event(assistant_turn())

        assert second is None
        assert self._session_stats().cost == pytest.approx(0.25)
        assert self._session_stats().input_tokens == 120
        assert len(self.notifier.notifications) == 1
        assert self.source.fetch.call_count == 2

    def test_incomplete_message_is_ignored_until_completed(self):
        """Test that in-progress updates do not consume the dedup slot."""
        self.source.fetch.return_value = AccountSnapshot(total_spent=5.0)

        assert self.plugin.handle_event(assistant_turn(completed_at=None)) is None

        assert self.plugin.handle_event(assistant_turn()) is not None
        assert len(self.notifier.notifications) == 1

    def test_provider_filter(self):
        """Test that other providers are ignored when a filter is set."""
        self.plugin.provider_key = "packy"
        self.source.fetch.return_value = AccountSnapshot(total_spent=5.0)

        assert self.plugin.handle_event(assistant_turn(provider_id="other")) is None
        assert self.plugin.handle_event(assistant_turn(message_id="a2", provider_id=None)) is None
        assert self.plugin.handle_event(assistant_turn(message_id="a3")) is not None
        assert len(self.notifier.notifications) == 1

    def test_unavailable_snapshot_still_counts_tokens(self):
        """Test degradation when the account fetch fails."""
        self.source.fetch.return_value = None

        self.plugin.handle_event(user_turn())
        result = self.plugin.handle_event(assistant_turn())

        assert result.delta is None
        stats = self._session_stats()
        assert stats.cost == 0.0
        assert stats.output_tokens == 340
        assert "This turn: -" in self.notifier.notifications[0][1]

    def test_notifier_failure_is_ignored(self):
        """Test that a failing UI does not break accounting."""
        self.notifier.notify = Mock(side_effect=RuntimeError("ui gone"))
        self.source.fetch.return_value = AccountSnapshot(total_spent=1.0)

        result = self.plugin.handle_event(assistant_turn())

        assert result is not None
        assert self._session_stats().input_tokens == 120

    def test_unexpected_error_does_not_escape(self):
        """Test that handle_event never raises into the host loop."""
        self.source.fetch.side_effect = RuntimeError("boom")

        assert self.plugin.handle_event(user_turn()) is None

    def test_report_command(self):
        """Test that the report command posts the report and signals handled."""
        self.source.fetch.return_value = AccountSnapshot(email="dev@example.com", total_spent=10.0)

        with pytest.raises(CommandHandled) as exc_info:
            self.plugin.handle_command("cost", "s1")

        assert exc_info.value.command == "cost"
        session_id, text = self.notifier.posts[0]
        assert session_id == "s1"
        assert "Email: dev@example.com" in text
        assert self.repository.load().last_snapshot["total_spent_usd"] == 10.0

    def test_report_command_when_fetch_fails(self):
        """Test the failure message for the report command."""
        self.source.fetch.return_value = None

        with pytest.raises(CommandHandled):
            self.plugin.handle_command("cost", "s1")

        assert self.notifier.posts == [("s1", REQUEST_FAILED_TEXT)]

    def test_clear_commands(self):
        """Test both clear commands."""
        self.source.fetch.side_effect = [
            AccountSnapshot(total_spent=1.0),
            AccountSnapshot(total_spent=2.0),
        ]
        self.plugin.handle_event(user_turn())
        self.plugin.handle_event(assistant_turn())

        with pytest.raises(CommandHandled):
            self.plugin.handle_command("clearcost", "s1")
        assert self._session_stats() == UsageStats()
        assert self.plugin.accumulator.report("s1")[1].cost == pytest.approx(1.0)

        with pytest.raises(CommandHandled):
            self.plugin.handle_command("clearallcost", "s1")
        assert self.plugin.accumulator.report("s1")[1] == UsageStats()
        assert len(self.notifier.posts) == 2

    def test_unknown_command_passes_through(self):
        """Test that other commands are left to the host."""
        assert self.plugin.handle_command("help", "s1") is None
        assert self.notifier.posts == []

    def test_register_commands(self):
        """Test command registration on a host config mapping."""
        host_config = {"command": {"help": {"template": "/help"}}}

        CostDeltaPlugin.register_commands(host_config)

        assert set(COMMANDS) <= set(host_config["command"])
        assert host_config["command"]["cost"]["template"] == "/cost"
        assert "help" in host_config["command"]

    def test_from_config(self):
        """Test wiring from configuration."""
        config = CostDeltaConfig(
            api_key="sk",
            provider_key="packy",
            notification_duration_ms=1234,
            state_path=os.path.join(self.temp_dir, "other.json"),
        )

        plugin = CostDeltaPlugin.from_config(config, self.notifier)

        assert plugin.provider_key == "packy"
        assert plugin.notification_duration_ms == 1234
        assert plugin.source.api_key == "sk"
        assert str(plugin.accumulator.repository.path).endswith("other.json")
