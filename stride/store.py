"""Task store: the single owner of the task collection.

Every mutation re-sorts the collection and writes it through to the
storage adapter before returning.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from .models import (
    DEFAULT_URGENCY,
    Subtask,
    Task,
    default_tasks,
    dump_collection,
    load_collection,
    unique_tags,
    validate_urgency,
)
from .preferences import CompletionAction, PreferenceProvider
from .storage import TaskStorage

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"text", "urgency", "tags", "completed", "is_archived"}


class TaskNotFoundError(LookupError):
    """Raised in strict mode when a task or subtask id is unknown."""


class ReorderIndexError(IndexError):
    """A reorder position is outside the current sequence."""


@dataclass
class ToggleResult:
    """Outcome of a subtask toggle, used to pick a redraw strategy.

    needs_full_refresh means the parent task may have moved (sink) or left
    the active view (archive), so patching the subtask in place is not enough.
    """

    parent_auto_changed: bool = False
    needs_full_refresh: bool = False


class IdGenerator:
    """Issues millisecond-clock ids that never repeat within a store."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._last = 0

    def observe(self, existing_id: int) -> None:
        self._last = max(self._last, existing_id)

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def next_id(self) -> int:
        self._last = max(self.now_ms(), self._last + 1)
        return self._last


def sort_tasks(tasks: list[Task], completion_action: str) -> None:
    """Order tasks in place by urgency, sinking completed ones if requested.

    list.sort is stable, so manual order within a tier survives.
    """
    if completion_action == CompletionAction.SINK:
        tasks.sort(key=lambda t: (t.completed, -t.weight))
    else:
        tasks.sort(key=lambda t: -t.weight)


class TaskStore:
    """Holds tasks in memory and writes them through to storage.

    Args:
        storage: Adapter that loads and saves the serialized collection
        preferences: Source of the completion action ("stay", "sink", "archive")
        strict: Raise TaskNotFoundError for unknown ids instead of ignoring them
        clock: Wall clock returning seconds, used for ids and createdAt
    """

    def __init__(
        self,
        storage: TaskStorage,
        preferences: PreferenceProvider,
        *,
        strict: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.storage = storage
        self.preferences = preferences
        self.strict = strict
        self._ids = IdGenerator(clock)
        self._tasks: list[Task] = []
        self._editing: set[int] = set()
        self._listeners: list[Callable[[list[Task]], None]] = []

    # ------------------------------------------------------------------
    # Loading and persistence
    # ------------------------------------------------------------------

    def load(self) -> list[Task]:
        """Read the stored collection, seeding defaults if absent or corrupt."""
        payload = self.storage.load()
        tasks: list[Task] | None = None
        if payload is not None:
            try:
                tasks = load_collection(payload)
            except ValueError as e:
                logger.warning("Discarding malformed task collection: %s", e)

        self._editing.clear()
        if tasks is None:
            logger.info("No saved tasks found; seeding the default collection")
            self._tasks = default_tasks(self._ids.now_ms())
            self._observe_ids()
            self._persist()
        else:
            self._tasks = tasks
            self._observe_ids()
            logger.info("Loaded %d tasks", len(tasks))
        return self._tasks

    def subscribe(self, callback: Callable[[list[Task]], None]) -> None:
        """Call ``callback(tasks)`` after every successful save."""
        self._listeners.append(callback)

    def _observe_ids(self) -> None:
        for task in self._tasks:
            self._ids.observe(task.id)
            for sub in task.subtasks:
                self._ids.observe(sub.id)

    def _persist(self) -> None:
        sort_tasks(self._tasks, self.preferences.completion_action())
        self.storage.save(dump_collection(self._tasks))
        for callback in self._listeners:
            callback(self._tasks)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def tasks(self) -> list[Task]:
        return self._tasks

    def get_tasks(self) -> list[Task]:
        """Return the live, ordered collection."""
        return self._tasks

    def get_task(self, task_id: int) -> Task | None:
        for task in self._tasks:
            if task.id == task_id:
                return task
        return None

    def active_tasks(self) -> list[Task]:
        return [t for t in self._tasks if not t.is_archived]

    def archived_tasks(self) -> list[Task]:
        return [t for t in self._tasks if t.is_archived]

    def is_editing(self, subtask_id: int) -> bool:
        """True while a subtask created by add_subtask has not been saved yet."""
        return subtask_id in self._editing

    def _find_task(self, task_id: int) -> Task | None:
        task = self.get_task(task_id)
        if task is None:
            if self.strict:
                raise TaskNotFoundError(f"No task with id {task_id}")
            logger.debug("Ignoring unknown task id %s", task_id)
        return task

    def _find_subtask(self, task: Task, subtask_id: int) -> int | None:
        idx = task.subtask_index(subtask_id)
        if idx is None:
            if self.strict:
                raise TaskNotFoundError(
                    f"Task {task.id} has no subtask with id {subtask_id}"
                )
            logger.debug("Ignoring unknown subtask id %s on task %s", subtask_id, task.id)
        return idx

    # ------------------------------------------------------------------
    # Task operations
    # ------------------------------------------------------------------

    def add_task(
        self,
        text: str,
        urgency: str = DEFAULT_URGENCY,
        tags: list[str] | None = None,
    ) -> Task:
        if not text or not text.strip():
            raise ValueError("Task text must not be empty")
        task = Task(
            id=self._ids.next_id(),
            text=text,
            urgency=validate_urgency(urgency or DEFAULT_URGENCY),
            tags=unique_tags(tags),
            created_at=self._ids.now_ms(),
        )
        self._tasks.append(task)
        logger.debug("Added task %s (%s)", task.id, task.urgency)
        self._persist()
        return task

    def delete_task(self, task_id: int) -> None:
        task = self._find_task(task_id)
        if task is not None:
            self._tasks.remove(task)
            self._editing.difference_update(s.id for s in task.subtasks)
            logger.debug("Deleted task %s", task_id)
        self._persist()

    def update_task(self, task_id: int, **changes) -> None:
        """Merge the given fields into a task.

        Accepts text, urgency, tags, completed and is_archived.
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update task field(s): {', '.join(sorted(unknown))}")
        if "urgency" in changes:
            validate_urgency(changes["urgency"])
        if "text" in changes:
            text = changes["text"]
            if not isinstance(text, str) or not text.strip():
                raise ValueError("Task text must be a non-empty string")
        for flag in ("completed", "is_archived"):
            if flag in changes and not isinstance(changes[flag], bool):
                raise ValueError(f"Task {flag} must be a boolean, got {changes[flag]!r}")
        if "tags" in changes:
            changes["tags"] = unique_tags(changes["tags"])

        task = self._find_task(task_id)
        if task is not None:
            for name, value in changes.items():
                setattr(task, name, value)
            logger.debug("Updated task %s: %s", task_id, ", ".join(sorted(changes)))
        self._persist()

    def archive_task(self, task_id: int) -> None:
        self.update_task(task_id, is_archived=True)

    def restore_task(self, task_id: int) -> None:
        self.update_task(task_id, is_archived=False)

    def toggle_task(self, task_id: int) -> None:
        task = self._find_task(task_id)
        if task is not None:
            task.completed = not task.completed
            if task.completed and self.preferences.completion_action() == CompletionAction.ARCHIVE:
                task.is_archived = True
            logger.debug("Toggled task %s -> completed=%s", task_id, task.completed)
        self._persist()

    def reorder_tasks(self, from_index: int, to_index: int) -> None:
        """Move one task to a new position; the urgency sort is re-applied after."""
        _check_indices(len(self._tasks), from_index, to_index)
        moved = self._tasks.pop(from_index)
        self._tasks.insert(to_index, moved)
        self._persist()

    # ------------------------------------------------------------------
    # Subtask operations
    # ------------------------------------------------------------------

    def add_subtask(self, parent_id: int) -> int | None:
        """Append an empty subtask in editing state and return its id.

        Returns None when the parent does not exist (lenient mode).
        """
        task = self._find_task(parent_id)
        sub_id = None
        if task is not None:
            sub_id = self._ids.next_id()
            task.subtasks.append(Subtask(id=sub_id))
            self._editing.add(sub_id)
            logger.debug("Added subtask %s to task %s", sub_id, parent_id)
        self._persist()
        return sub_id

    def save_subtask(self, parent_id: int, subtask_id: int, text: str) -> None:
        """Store subtask text; blank text deletes the subtask instead."""
        task = self._find_task(parent_id)
        if task is not None:
            idx = self._find_subtask(task, subtask_id)
            if idx is not None:
                if not text.strip():
                    del task.subtasks[idx]
                    logger.debug("Dropped blank subtask %s from task %s", subtask_id, parent_id)
                else:
                    task.subtasks[idx].text = text
                self._editing.discard(subtask_id)
        self._persist()

    def toggle_subtask(self, parent_id: int, subtask_id: int) -> ToggleResult:
        result = ToggleResult()
        task = self._find_task(parent_id)
        if task is not None:
            idx = self._find_subtask(task, subtask_id)
            if idx is not None:
                sub = task.subtasks[idx]
                sub.completed = not sub.completed

                all_done = task.all_subtasks_done
                if task.completed != all_done:
                    task.completed = all_done
                    result.parent_auto_changed = True

                    action = self.preferences.completion_action()
                    if action in (CompletionAction.SINK, CompletionAction.ARCHIVE):
                        result.needs_full_refresh = True
                        if action == CompletionAction.ARCHIVE and task.completed:
                            task.is_archived = True
                    logger.debug(
                        "Task %s auto-%s by subtask %s",
                        parent_id,
                        "completed" if task.completed else "reopened",
                        subtask_id,
                    )
        self._persist()
        return result

    def delete_subtask(self, parent_id: int, subtask_id: int) -> None:
        task = self._find_task(parent_id)
        if task is not None:
            idx = self._find_subtask(task, subtask_id)
            if idx is not None:
                del task.subtasks[idx]
                self._editing.discard(subtask_id)
        self._persist()

    def reorder_subtasks(self, parent_id: int, from_index: int, to_index: int) -> None:
        task = self._find_task(parent_id)
        if task is not None:
            _check_indices(len(task.subtasks), from_index, to_index)
            moved = task.subtasks.pop(from_index)
            task.subtasks.insert(to_index, moved)
        self._persist()


def _check_indices(length: int, from_index: int, to_index: int) -> None:
    for name, idx in (("from", from_index), ("to", to_index)):
        if not 0 <= idx < length:
            raise ReorderIndexError(
                f"Reorder {name} index {idx} out of range for {length} item(s)"
            )
