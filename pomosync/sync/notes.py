"""
Note codec: pomodoro metadata carried in the remote task's notes field.

The remote service has no place for pomodoro counts or priority, so they
travel inside the free-text notes:

    Pomodoros: 2/4 | Priority: high | Notes: bring the charts

The first number is the completed count, the second the estimate. The
"Notes:" segment is present only when the task has free-text notes and
always comes last, so it may itself contain " | ".

decode() is total: text that is missing, malformed or was typed by hand
on the remote side yields defaults (1 estimated, 0 completed, medium) and
keeps the whole text as free-text notes.
"""

import re
from dataclasses import dataclass

from pomosync.tasks.models import Priority, Task


SEPARATOR = " | "

POMODOROS_RE = re.compile(r"Pomodoros:\s*(\d+)/(\d+)")
PRIORITY_RE = re.compile(r"Priority:\s*(\w+)")
NOTES_RE = re.compile(r"Notes:\s*(.*)", re.DOTALL)

DEFAULT_ESTIMATED = 1
DEFAULT_COMPLETED = 0
DEFAULT_PRIORITY = Priority.MEDIUM


@dataclass(frozen=True)
class NoteFields:
    """Metadata recovered from a notes string."""
    estimated_pomodoros: int = DEFAULT_ESTIMATED
    completed_pomodoros: int = DEFAULT_COMPLETED
    priority: Priority = DEFAULT_PRIORITY
    notes: str | None = None


def encode(task: Task) -> str:
    """
    Build the notes string for a task.

    Deterministic: equal inputs always produce equal output.
    """
    parts = [
        f"Pomodoros: {task.completed_pomodoros}/{task.estimated_pomodoros}",
        f"Priority: {task.priority.value}",
    ]
    if task.notes:
        parts.append(f"Notes: {task.notes}")
    return SEPARATOR.join(parts)


def is_encoded(text: str | None) -> bool:
    """True when the text carries the pomodoro marker written by encode()."""
    return bool(text) and POMODOROS_RE.search(text) is not None


def decode(text: str | None) -> NoteFields:
    """
    Recover pomodoro counts, priority and free-text notes.

    Never raises. Fields that cannot be read fall back to their defaults.
    """
    if not text:
        return NoteFields()

    if not is_encoded(text):
        # Hand-written remote notes: nothing to parse, keep them verbatim
        return NoteFields(notes=text.strip() or None)

    estimated = DEFAULT_ESTIMATED
    completed = DEFAULT_COMPLETED
    match = POMODOROS_RE.search(text)
    if match:
        completed = int(match.group(1))
        estimated = max(int(match.group(2)), 1)

    priority = DEFAULT_PRIORITY
    # Only look for metadata ahead of the free-text tail
    notes_match = NOTES_RE.search(text)
    head = text[:notes_match.start()] if notes_match else text
    priority_match = PRIORITY_RE.search(head)
    if priority_match:
        priority = Priority.parse(priority_match.group(1), default=DEFAULT_PRIORITY)

    notes = None
    if notes_match:
        notes = notes_match.group(1).strip() or None

    return NoteFields(
        estimated_pomodoros=estimated,
        completed_pomodoros=completed,
        priority=priority,
        notes=notes,
    )
