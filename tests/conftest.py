# tests/conftest.py

from __future__ import annotations

from datetime import date, datetime

import pytest

from taskcal.api.auth import Session
from taskcal.core.models import Category, Priority, Task
from taskcal.core.sync import CalendarSync
from taskcal.core.task_service import TaskService

from .fakes import FakeCalendar, FakeTaskStore

TODAY = date(2024, 6, 10)


def local_dt(year, month, day, hour=9, minute=0):
    """Aware datetime for a local wall-clock time."""
    return datetime(year, month, day, hour, minute).astimezone()


def make_task(task_id="t1", title="Task", *, category=Category.WORK, priority=Priority.MEDIUM,
              deadline=None, completed=False, calendar_event_id=None, description=None):
    return Task(
        id=task_id,
        title=title,
        description=description,
        category=category,
        priority=priority,
        deadline=deadline or local_dt(2024, 6, 10),
        completed=completed,
        calendar_event_id=calendar_event_id,
    )


@pytest.fixture()
def session() -> Session:
    return Session(user_id="user-1", credentials=object(), email="me@example.com")


@pytest.fixture()
def store() -> FakeTaskStore:
    return FakeTaskStore()


@pytest.fixture()
def calendar() -> FakeCalendar:
    return FakeCalendar()


@pytest.fixture()
def service(store, calendar, session) -> TaskService:
    """TaskService subscribed for `session` and wired to in-memory fakes."""
    svc = TaskService(store, CalendarSync(calendar, store))
    svc.start(session)
    yield svc
    svc.stop()
