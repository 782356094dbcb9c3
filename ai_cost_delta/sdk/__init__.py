"""
SDK for AI Cost Delta.

Provides the host integration and the account endpoint client.
"""

from .account_client import AccountSnapshotSource
from .plugin import COMMANDS, CommandHandled, CostDeltaPlugin, Notifier

__all__ = ["AccountSnapshotSource", "COMMANDS", "CommandHandled", "CostDeltaPlugin", "Notifier"]
