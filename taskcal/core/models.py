import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional

from taskcal.core.utils import format_iso_for_api, parse_iso_from_api, to_local, to_utc

logger = logging.getLogger(__name__)


class Category(str, Enum):
    WORK = 'work'
    PERSONAL = 'personal'
    HEALTH = 'health'
    EDUCATION = 'education'
    FINANCE = 'finance'

    @classmethod
    def from_record(cls, raw):
        try:
            return cls(raw)
        except ValueError:
            logger.warning("Unknown category %r in stored task; using personal", raw)
            return cls.PERSONAL


class Priority(str, Enum):
    HIGH = 'high'
    MEDIUM = 'medium'
    LOW = 'low'

    @classmethod
    def from_record(cls, raw):
        try:
            return cls(raw)
        except ValueError:
            logger.warning("Unknown priority %r in stored task; using medium", raw)
            return cls.MEDIUM


@dataclass(frozen=True)
class Task:
    """A user-owned to-do record mirrored to a calendar event.

    Instances are immutable so a sync always works on the field values that
    were current when it was started.
    """
    id: str
    title: str
    category: Category
    priority: Priority
    deadline: datetime
    description: Optional[str] = None
    completed: bool = False
    calendar_event_id: Optional[str] = None
    updated_at: Optional[str] = None

    def with_changes(self, **changes):
        return replace(self, **changes)


class CalendarLink:
    """Whether a task currently mirrors to a calendar event."""

    @staticmethod
    def of(task):
        if task.calendar_event_id:
            return Linked(task.calendar_event_id)
        return UNLINKED

    @property
    def is_linked(self):
        return isinstance(self, Linked)

    def apply(self, task):
        """Return task carrying this link's event id."""
        if task.calendar_event_id == self.event_id:
            return task
        return task.with_changes(calendar_event_id=self.event_id)


@dataclass(frozen=True)
class Unlinked(CalendarLink):
    event_id = None


@dataclass(frozen=True)
class Linked(CalendarLink):
    event_id: str


UNLINKED = Unlinked()


def task_to_record(task, include_cleared=False):
    """Convert a task to the mapping kept in the store.

    The id is the record key and is never part of the value. With
    include_cleared, an empty description is written as None so that a
    merge-patch removes it.
    """
    record = {
        'title': task.title,
        'description': task.description,
        'category': task.category.value,
        'priority': task.priority.value,
        'completed': bool(task.completed),
        'deadline': format_iso_for_api(to_utc(task.deadline)),
        'calendarEventId': task.calendar_event_id,
        'updatedAt': task.updated_at,
    }
    keep = {'description'} if include_cleared else set()
    return {k: v for k, v in record.items() if v is not None or k in keep}


def task_from_record(task_id, record):
    """Build a Task from a stored record, or None if the record is unusable."""
    if not isinstance(record, dict):
        logger.warning("Skipping task %s: record is not a mapping", task_id)
        return None

    title = record.get('title')
    raw_deadline = record.get('deadline')
    if not title or not raw_deadline:
        logger.warning("Skipping task %s: missing title or deadline", task_id)
        return None

    try:
        deadline = to_local(parse_iso_from_api(str(raw_deadline)))
    except ValueError:
        logger.warning("Skipping task %s: bad deadline %r", task_id, raw_deadline)
        return None

    return Task(
        id=str(task_id),
        title=str(title),
        description=record.get('description') or None,
        category=Category.from_record(record.get('category')),
        priority=Priority.from_record(record.get('priority')),
        completed=bool(record.get('completed', False)),
        deadline=deadline,
        calendar_event_id=record.get('calendarEventId') or None,
        updated_at=record.get('updatedAt'),
    )


def tasks_from_tree(tree):
    """Build the task list from a user's whole `tasks/{userId}` subtree."""
    if not isinstance(tree, dict):
        return []
    tasks = []
    for task_id, record in tree.items():
        task = task_from_record(task_id, record)
        if task:
            tasks.append(task)
    return tasks
