"""Data models for tasks and subtasks, plus their persisted JSON shape."""

from __future__ import annotations

import json
from dataclasses import dataclass, field

URGENCY_WEIGHTS = {"high": 3, "medium": 2, "low": 1, "none": 0}
DEFAULT_URGENCY = "none"


def validate_urgency(value: str) -> str:
    if value not in URGENCY_WEIGHTS:
        raise ValueError(
            f"Unknown urgency {value!r}; expected one of {', '.join(URGENCY_WEIGHTS)}"
        )
    return value


def unique_tags(tags) -> list[str]:
    """De-duplicate tags, keeping the first occurrence of each."""
    seen: list[str] = []
    for tag in tags or []:
        tag = str(tag).strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


@dataclass
class Subtask:
    """A single checklist entry under a task."""

    id: int
    text: str = ""
    completed: bool = False

    def to_dict(self) -> dict:
        return {"id": self.id, "text": self.text, "completed": self.completed}

    @classmethod
    def from_dict(cls, data: dict) -> Subtask:
        # "isEditing" may linger in collections written by older clients
        return cls(
            id=_require_int(data["id"], "subtask id"),
            text=_require_str(data.get("text", ""), "subtask text"),
            completed=_require_bool(data.get("completed", False), "subtask completed"),
        )


@dataclass
class Task:
    """A task with optional urgency, tags and ordered subtasks."""

    id: int
    text: str
    created_at: int
    urgency: str = DEFAULT_URGENCY
    tags: list[str] = field(default_factory=list)
    completed: bool = False
    is_archived: bool = False
    subtasks: list[Subtask] = field(default_factory=list)

    @property
    def weight(self) -> int:
        return URGENCY_WEIGHTS[self.urgency]

    @property
    def subtask_progress(self) -> tuple[int, int]:
        """Return (completed, total) subtask counts."""
        done = sum(1 for s in self.subtasks if s.completed)
        return done, len(self.subtasks)

    @property
    def all_subtasks_done(self) -> bool:
        """True only when there is at least one subtask and all are complete."""
        return bool(self.subtasks) and all(s.completed for s in self.subtasks)

    def find_subtask(self, subtask_id: int) -> Subtask | None:
        for sub in self.subtasks:
            if sub.id == subtask_id:
                return sub
        return None

    def subtask_index(self, subtask_id: int) -> int | None:
        for i, sub in enumerate(self.subtasks):
            if sub.id == subtask_id:
                return i
        return None

    def to_dict(self) -> dict:
        """Return the persisted record, using the collection's wire field names."""
        return {
            "id": self.id,
            "text": self.text,
            "urgency": self.urgency,
            "tags": list(self.tags),
            "completed": self.completed,
            "isArchived": self.is_archived,
            "createdAt": self.created_at,
            "subtasks": [s.to_dict() for s in self.subtasks],
        }

    @classmethod
    def from_dict(cls, data: dict) -> Task:
        if not isinstance(data, dict):
            raise TypeError(f"Task record must be an object, got {type(data).__name__}")
        tags = data.get("tags") or []
        subtasks = data.get("subtasks") or []
        if not isinstance(tags, list) or not isinstance(subtasks, list):
            raise TypeError("Task tags and subtasks must be lists")
        return cls(
            id=_require_int(data["id"], "task id"),
            text=_require_str(data["text"], "task text"),
            created_at=_require_int(data.get("createdAt", data["id"]), "createdAt"),
            urgency=validate_urgency(data.get("urgency") or DEFAULT_URGENCY),
            tags=unique_tags(tags),
            completed=_require_bool(data.get("completed", False), "completed"),
            is_archived=_require_bool(data.get("isArchived", False), "isArchived"),
            subtasks=[Subtask.from_dict(s) for s in subtasks],
        )


def dump_collection(tasks: list[Task]) -> str:
    """Serialize a task collection to its persisted JSON document."""
    return json.dumps([t.to_dict() for t in tasks], indent=2, ensure_ascii=False)


def load_collection(payload: str) -> list[Task]:
    """Parse a persisted JSON document back into tasks.

    Raises:
        ValueError: if the payload is not valid JSON or not a list of task
            records with the expected fields.
    """
    try:
        raw = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ValueError(f"Persisted collection is not valid JSON: {e}") from e
    if not isinstance(raw, list):
        raise ValueError(
            f"Persisted collection must be a list, got {type(raw).__name__}"
        )
    try:
        tasks = [Task.from_dict(record) for record in raw]
    except (KeyError, TypeError) as e:
        raise ValueError(f"Malformed task record: {e!r}") from e
    ids = [t.id for t in tasks]
    if len(ids) != len(set(ids)):
        raise ValueError("Persisted collection contains duplicate task ids")
    for task in tasks:
        sub_ids = [s.id for s in task.subtasks]
        if len(sub_ids) != len(set(sub_ids)):
            raise ValueError(f"Task {task.id} contains duplicate subtask ids")
    return tasks


def _require_int(value, name: str) -> int:
    # bool is an int subclass; a boolean id is still a shape error
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer, got {value!r}")
    return value


def _require_str(value, name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a string, got {value!r}")
    return value


def _require_bool(value, name: str) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"{name} must be a boolean, got {value!r}")
    return value


_MINUTE = 60_000
_HOUR = 60 * _MINUTE


def default_tasks(now_ms: int) -> list[Task]:
    """Build the starter collection used when nothing has been saved yet."""
    return [
        Task(
            id=1,
            text="Plan the week ahead and block time for deep work.",
            urgency="high",
            tags=["Planning", "Weekly"],
            created_at=now_ms - 2 * _HOUR,
            subtasks=[
                Subtask(id=11, text="Review last week's unfinished tasks."),
                Subtask(id=12, text="Pick three priorities for the week."),
                Subtask(id=13, text="Block calendar time for each priority."),
            ],
        ),
        Task(
            id=2,
            text="Draft an outline for the quarterly project report.",
            urgency="medium",
            tags=["Work", "Writing"],
            created_at=now_ms - _HOUR,
        ),
        Task(
            id=3,
            text="Buy groceries for the weekend.",
            urgency="low",
            tags=["Errands"],
            created_at=now_ms - 24 * _HOUR,
            subtasks=[
                Subtask(id=31, text="Fresh vegetables and fruit."),
                Subtask(id=32, text="Coffee beans."),
            ],
        ),
        Task(
            id=4,
            text="Try dragging tasks to reorder them within the same urgency.",
            tags=["Getting started"],
            created_at=now_ms - 5 * _MINUTE,
        ),
        Task(
            id=5,
            text="Read the notes from the last team retrospective.",
            urgency="low",
            tags=["Work", "Reading"],
            created_at=now_ms - 12 * _HOUR,
            subtasks=[
                Subtask(id=51, text="Highlight open action items."),
                Subtask(id=52, text="Follow up with owners."),
            ],
        ),
    ]
