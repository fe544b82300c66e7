"""Completion-action preference providers."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class CompletionAction:
    """What happens to a task once it becomes complete."""

    STAY = "stay"
    SINK = "sink"
    ARCHIVE = "archive"


COMPLETION_ACTIONS = (CompletionAction.STAY, CompletionAction.SINK, CompletionAction.ARCHIVE)
PREFERENCE_KEY = "completionAction"


def validate_completion_action(value: str) -> str:
    if value not in COMPLETION_ACTIONS:
        raise ValueError(
            f"Unknown completion action {value!r}; expected one of "
            f"{', '.join(COMPLETION_ACTIONS)}"
        )
    return value


class PreferenceProvider(Protocol):
    def completion_action(self) -> str:
        """Return one of "stay", "sink" or "archive"."""
        ...


class StaticPreferences:
    """In-memory provider; the action can be changed at runtime."""

    def __init__(self, action: str = CompletionAction.STAY) -> None:
        self.action = validate_completion_action(action)

    def completion_action(self) -> str:
        return self.action

    def set_completion_action(self, value: str) -> None:
        self.action = validate_completion_action(value)


class JsonPreferences:
    """Reads the completion action from a flat JSON preference document.

    The document may hold other personalization keys; they are preserved
    when the completion action is written back.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read(self) -> dict:
        if not self.path.is_file():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable preferences %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring preferences %s: not a JSON object", self.path)
            return {}
        return data

    def completion_action(self) -> str:
        value = self._read().get(PREFERENCE_KEY)
        if value is None:
            return CompletionAction.STAY
        if value not in COMPLETION_ACTIONS:
            logger.warning(
                "Unknown %s %r in %s; using %r",
                PREFERENCE_KEY, value, self.path, CompletionAction.STAY,
            )
            return CompletionAction.STAY
        return value

    def set_completion_action(self, value: str) -> None:
        data = self._read()
        data[PREFERENCE_KEY] = validate_completion_action(value)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        logger.debug("Set %s=%s in %s", PREFERENCE_KEY, value, self.path)
