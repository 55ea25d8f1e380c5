"""Derive the visible task list from the current filter and sort choices.

Everything here is pure: the input collection is never mutated and the same
inputs (including `today`) always give the same output.
"""
import locale
from datetime import timedelta
from enum import Enum

from taskcal.core.models import Category, Priority
from taskcal.core.utils import local_date, local_today

ALL = 'all'
UPCOMING_WINDOW = timedelta(days=7)
PRIORITY_ORDER = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


class DeadlineFilter(str, Enum):
    ALL = 'all'
    TODAY = 'today'
    UPCOMING = 'upcoming'
    OVERDUE = 'overdue'


class SortOption(str, Enum):
    DEADLINE = 'deadline'
    PRIORITY = 'priority'
    ALPHABETICAL = 'alphabetical'


def _choice(enum_cls, value, allow_all):
    if allow_all and value == ALL:
        return ALL
    try:
        return enum_cls(value)
    except ValueError:
        raise ValueError(f"{value!r} is not a valid {enum_cls.__name__}") from None


class FilterState:
    """Process-local filter and sort selection. Not persisted."""

    def __init__(self, category=ALL, priority=ALL, deadline=DeadlineFilter.ALL,
                 sort=SortOption.DEADLINE):
        self.set_category(category)
        self.set_priority(priority)
        self.set_deadline(deadline)
        self.set_sort(sort)

    def set_category(self, value):
        self.category = _choice(Category, value, allow_all=True)

    def set_priority(self, value):
        self.priority = _choice(Priority, value, allow_all=True)

    def set_deadline(self, value):
        self.deadline = _choice(DeadlineFilter, value, allow_all=False)

    def set_sort(self, value):
        self.sort = _choice(SortOption, value, allow_all=False)

    def reset(self):
        """Back to all/all/all sorted by deadline."""
        self.category = ALL
        self.priority = ALL
        self.deadline = DeadlineFilter.ALL
        self.sort = SortOption.DEADLINE

    @property
    def is_default(self):
        return (self.category == ALL and self.priority == ALL
                and self.deadline == DeadlineFilter.ALL
                and self.sort == SortOption.DEADLINE)

    def __repr__(self):
        return (f"FilterState(category={_label(self.category)}, priority={_label(self.priority)}, "
                f"deadline={_label(self.deadline)}, sort={_label(self.sort)})")


def _label(value):
    return getattr(value, 'value', value)


def deadline_bucket(task, today=None):
    """Classify a task's deadline as today, upcoming, overdue, or None."""
    today = today or local_today()
    day = local_date(task.deadline)
    if day == today:
        return DeadlineFilter.TODAY
    if today < day <= today + UPCOMING_WINDOW:
        return DeadlineFilter.UPCOMING
    if day < today and not task.completed:
        return DeadlineFilter.OVERDUE
    return None


def _matches_deadline(task, wanted, today):
    if wanted == DeadlineFilter.ALL:
        return True
    return deadline_bucket(task, today) == wanted


def _title_key(task):
    # casefold first so the C locale still interleaves upper and lower case
    return locale.strxfrm(task.title.casefold()), locale.strxfrm(task.title)


def _sort_key(option):
    if option == SortOption.PRIORITY:
        return lambda task: PRIORITY_ORDER[task.priority]
    if option == SortOption.ALPHABETICAL:
        return _title_key
    return lambda task: task.deadline.timestamp()


def filter_tasks(tasks, state, today=None):
    """Return the tasks passing every active filter, ordered by state.sort."""
    today = today or local_today()
    result = [
        task for task in tasks
        if (state.category == ALL or task.category == state.category)
        and (state.priority == ALL or task.priority == state.priority)
        and _matches_deadline(task, state.deadline, today)
    ]
    # sorted() is stable, so ties keep their input order
    return sorted(result, key=_sort_key(state.sort))
