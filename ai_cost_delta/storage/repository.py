"""
Repository pattern for data access.

Handles reading and writing the JSON state file.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional, Union

from .models import UsageState

logger = logging.getLogger(__name__)

DEFAULT_STATE_PATH = Path.home() / ".config" / "opencode" / "logs" / "packycode-cost" / "state.json"


class StateRepository:
    """Repository for the persisted usage state.

    The whole record is read on every load() and overwritten on every
    save(); there is no partial update and no append log. Neither method
    raises: a missing or corrupt file loads as an empty state and a failed
    write is logged and dropped.
    """

    def __init__(self, path: Union[str, Path, None] = None):
        """Initialize the repository with a state file path.

        Args:
            path: Path to the JSON state file
        """
        self.path = Path(path) if path is not None else DEFAULT_STATE_PATH

    def load(self) -> UsageState:
        """Load the current state.

        Returns:
            The persisted UsageState, or an empty one if the file is
            absent, unreadable or not a JSON object
        """
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError:
            return UsageState()
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable state file %s: %s", self.path, e)
            return UsageState()

        if not isinstance(raw, dict):
            logger.warning("Ignoring state file %s: top level is not an object", self.path)
            return UsageState()
        return UsageState.from_dict(raw)

    def save(self, state: UsageState) -> None:
        """Overwrite the state file with state.

        Creates the containing directory when needed and writes through a
        temporary sibling so readers never see a half-written file.

        Args:
            state: Full state to persist
        """
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(state.to_dict(), f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Failed to write state file %s: %s", self.path, e)
            try:
                tmp_path.unlink(missing_ok=True)
            except OSError as cleanup_error:
                logger.debug("Could not remove %s: %s", tmp_path, cleanup_error)


# Global repository instance
_default_repository: Optional[StateRepository] = None


def get_repository(path: Union[str, Path, None] = None) -> StateRepository:
    """Get a repository instance.

    Returns a shared instance for the default path; an explicit path
    always gets its own repository.

    Args:
        path: Optional path to the JSON state file

    Returns:
        An instance of StateRepository
    """
    global _default_repository
    if path is not None:
        return StateRepository(path)
    if _default_repository is None:
        _default_repository = StateRepository()
    return _default_repository
