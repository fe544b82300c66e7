"""CLI entry point for stride."""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from pathlib import Path

from .models import URGENCY_WEIGHTS, Task
from .parser import parse_task_input
from .preferences import COMPLETION_ACTIONS, JsonPreferences
from .storage import HttpStorage, JsonFileStorage, PersistenceError
from .store import ReorderIndexError, TaskNotFoundError, TaskStore

DEFAULT_DATA_DIR = "~/.stride"

_INTERVALS = [
    (31536000, "y"),
    (2592000, "mo"),
    (86400, "d"),
    (3600, "h"),
    (60, "m"),
]


def time_ago(created_at: int | None, now_ms: int) -> str:
    """Render a creation timestamp (epoch ms) as a short relative age."""
    if not created_at:
        return "recently"
    seconds = (now_ms - created_at) // 1000
    for size, suffix in _INTERVALS:
        if seconds / size > 1:
            return f"{seconds // size}{suffix} ago"
    return "just now"


def format_task(task: Task, now_ms: int) -> list[str]:
    mark = "x" if task.completed else " "
    line = f"[{mark}] {task.id}  {task.text}"
    meta = []
    if task.urgency != "none":
        meta.append(task.urgency)
    meta.extend(f"#{tag}" for tag in task.tags)
    done, total = task.subtask_progress
    if total:
        meta.append(f"{done}/{total} completed")
    meta.append(time_ago(task.created_at, now_ms))
    lines = [f"{line}  ({', '.join(meta)})"]
    for sub in task.subtasks:
        sub_mark = "x" if sub.completed else " "
        lines.append(f"      [{sub_mark}] {sub.id}  {sub.text}")
    return lines


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stride",
        description="Personal task tracker with urgency ordering and subtasks.",
    )
    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help=f"Directory holding tasks.json and preferences.json "
        f"(or set STRIDE_DATA_DIR; default {DEFAULT_DATA_DIR})",
    )
    parser.add_argument(
        "--storage-url",
        type=str,
        default=None,
        help="Store tasks at this HTTP document URL instead of a local file "
        "(or set STRIDE_STORAGE_URL)",
    )
    parser.add_argument(
        "--token",
        type=str,
        default=None,
        help="Bearer token for --storage-url (or set STRIDE_STORAGE_TOKEN)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("list", help="Show tasks in display order")
    p.add_argument("--archived", action="store_true", help="Show the archive instead")

    p = sub.add_parser("add", help="Add a task")
    p.add_argument("text", nargs="+")
    p.add_argument("--urgency", choices=list(URGENCY_WEIGHTS), default=None)
    p.add_argument("--tag", action="append", default=[], dest="tags")
    p.add_argument(
        "--parse",
        action="store_true",
        help="Detect urgency and time tags from the text (e.g. 'Call bank tomorrow high')",
    )

    for name, help_text in [
        ("toggle", "Toggle a task's completion"),
        ("archive", "Move a task to the archive"),
        ("restore", "Bring a task back from the archive"),
        ("rm", "Delete a task and its subtasks"),
    ]:
        p = sub.add_parser(name, help=help_text)
        p.add_argument("task_id", type=int)

    p = sub.add_parser("edit", help="Change a task's text or urgency")
    p.add_argument("task_id", type=int)
    p.add_argument("--text", default=None)
    p.add_argument("--urgency", choices=list(URGENCY_WEIGHTS), default=None)

    p = sub.add_parser("sub-add", help="Add a subtask")
    p.add_argument("task_id", type=int)
    p.add_argument("text", nargs="+")

    for name, help_text in [
        ("sub-toggle", "Toggle a subtask's completion"),
        ("sub-rm", "Delete a subtask"),
    ]:
        p = sub.add_parser(name, help=help_text)
        p.add_argument("task_id", type=int)
        p.add_argument("subtask_id", type=int)

    p = sub.add_parser("move", help="Move a task to the position of another task")
    p.add_argument("task_id", type=int)
    p.add_argument("target_id", type=int)

    p = sub.add_parser("sub-move", help="Move a subtask to the position of another subtask")
    p.add_argument("task_id", type=int)
    p.add_argument("subtask_id", type=int)
    p.add_argument("target_id", type=int)

    p = sub.add_parser("pref", help="Show or set the completion action")
    p.add_argument("name", choices=["completion-action"])
    p.add_argument("value", nargs="?", choices=list(COMPLETION_ACTIONS), default=None)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    # Configure logging
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(message)s",
    )

    # Resolve configuration
    data_dir = Path(
        args.data_dir or os.environ.get("STRIDE_DATA_DIR") or DEFAULT_DATA_DIR
    ).expanduser()
    storage_url = args.storage_url or os.environ.get("STRIDE_STORAGE_URL")
    token = args.token or os.environ.get("STRIDE_STORAGE_TOKEN")

    preferences = JsonPreferences(data_dir / "preferences.json")
    if args.command == "pref":
        if args.value:
            preferences.set_completion_action(args.value)
        print(preferences.completion_action())
        return 0

    if storage_url:
        storage = HttpStorage(storage_url, token=token)
    else:
        storage = JsonFileStorage(data_dir / "tasks.json")

    store = TaskStore(storage, preferences, strict=True)
    try:
        store.load()
        _run_command(store, args)
    except (PersistenceError, TaskNotFoundError, ReorderIndexError, ValueError) as e:
        logging.error("%s", e)
        return 1
    finally:
        if isinstance(storage, HttpStorage):
            storage.close()
    return 0


def _run_command(store: TaskStore, args: argparse.Namespace) -> None:
    cmd = args.command
    if cmd == "list":
        tasks = store.archived_tasks() if args.archived else store.active_tasks()
        if not tasks:
            print("Archive is empty." if args.archived else "Nothing to do.")
        now_ms = int(time.time() * 1000)
        for task in tasks:
            for line in format_task(task, now_ms):
                print(line)
    elif cmd == "add":
        text = " ".join(args.text)
        urgency = args.urgency
        tags = list(args.tags)
        if args.parse:
            parsed = parse_task_input(text)
            text = parsed.clean_text
            urgency = urgency or parsed.urgency
            tags.extend(parsed.tags)
        task = store.add_task(text, urgency=urgency or "none", tags=tags)
        logging.info("Added task %d", task.id)
    elif cmd == "toggle":
        store.toggle_task(args.task_id)
    elif cmd == "archive":
        store.archive_task(args.task_id)
    elif cmd == "restore":
        store.restore_task(args.task_id)
    elif cmd == "rm":
        store.delete_task(args.task_id)
    elif cmd == "edit":
        changes = {}
        if args.text is not None:
            changes["text"] = args.text
        if args.urgency is not None:
            changes["urgency"] = args.urgency
        if not changes:
            raise ValueError("Nothing to change; pass --text and/or --urgency")
        store.update_task(args.task_id, **changes)
    elif cmd == "sub-add":
        text = " ".join(args.text)
        if not text.strip():
            raise ValueError("Subtask text must not be empty")
        sub_id = store.add_subtask(args.task_id)
        store.save_subtask(args.task_id, sub_id, text)
        logging.info("Added subtask %d", sub_id)
    elif cmd == "sub-toggle":
        result = store.toggle_subtask(args.task_id, args.subtask_id)
        if result.parent_auto_changed:
            task = store.get_task(args.task_id)
            logging.info(
                "Task %d is now %s",
                args.task_id,
                "complete" if task.completed else "open",
            )
    elif cmd == "sub-rm":
        store.delete_subtask(args.task_id, args.subtask_id)
    elif cmd == "move":
        # Positions come from ids, since list hides archived tasks
        store.reorder_tasks(
            _task_index(store, args.task_id), _task_index(store, args.target_id)
        )
    elif cmd == "sub-move":
        task = store.get_task(args.task_id)
        if task is None:
            raise TaskNotFoundError(f"No task with id {args.task_id}")
        store.reorder_subtasks(
            args.task_id,
            _subtask_index(task, args.subtask_id),
            _subtask_index(task, args.target_id),
        )


def _task_index(store: TaskStore, task_id: int) -> int:
    for i, task in enumerate(store.tasks):
        if task.id == task_id:
            return i
    raise TaskNotFoundError(f"No task with id {task_id}")


def _subtask_index(task: Task, subtask_id: int) -> int:
    idx = task.subtask_index(subtask_id)
    if idx is None:
        raise TaskNotFoundError(f"Task {task.id} has no subtask with id {subtask_id}")
    return idx


if __name__ == "__main__":
    sys.exit(main())
