import contextlib
import logging
import threading

from taskcal.core.errors import NotSignedInError
from taskcal.core.models import CalendarLink, Category, Priority, Task, task_to_record
from taskcal.core.utils import utc_now_iso

logger = logging.getLogger(__name__)


class TaskService:
    """Owns the signed-in user's live task list and every change made to it.

    Store failures raise (StoreError) so the UI can report them. Calendar
    failures are logged by the sync engine and never fail the task operation
    that triggered them. Concurrent writes to the same task are
    last-write-wins: each write is stamped with `updatedAt` and the store
    keeps whichever arrives last.
    """

    def __init__(self, task_store, calendar_sync):
        self.store = task_store
        self.sync_engine = calendar_sync
        self.session = None
        self.loading = False
        self.last_error = None
        self._subscription = None
        self._tasks = {}
        self._listeners = []
        self._syncing = 0
        self._lock = threading.Lock()

    # ---- session & subscription ----

    def start(self, session):
        """Begin following the tasks of session's user."""
        self.stop()
        self.session = session
        self.loading = True
        self._subscription = self.store.subscribe(
            session.user_id, self._on_snapshot, self._on_error
        )
        return self

    def stop(self):
        """Release the subscription and forget the current tasks."""
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.close()
        had_session = self.session is not None
        self.session = None
        self.loading = False
        with self._lock:
            self._tasks = {}
        if had_session:
            self._notify([])

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.stop()

    def _on_snapshot(self, tasks):
        with self._lock:
            self._tasks = {task.id: task for task in tasks}
        self.loading = False
        self.last_error = None
        logger.debug("Task snapshot received count=%s", len(tasks))
        self._notify(list(tasks))

    def _on_error(self, error):
        # Keep the last good snapshot; listeners re-read it and last_error.
        self.last_error = error
        self.loading = False
        logger.error("Failed to load tasks: %s", error)
        self._notify(self.tasks)

    def add_listener(self, callback):
        """Call callback(tasks) after every snapshot. Returns an unsubscribe function."""
        self._listeners.append(callback)
        return lambda: self.remove_listener(callback)

    def remove_listener(self, callback):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self, tasks):
        for callback in list(self._listeners):
            try:
                callback(tasks)
            except Exception:
                logger.exception("Task listener callback failed")

    def _require_user(self):
        if self.session is None:
            raise NotSignedInError("Sign in before changing tasks")
        return self.session.user_id

    # ---- reads ----

    @property
    def tasks(self):
        with self._lock:
            return list(self._tasks.values())

    def get_task_by_id(self, task_id):
        with self._lock:
            return self._tasks.get(task_id)

    @property
    def is_syncing(self):
        return self._syncing > 0

    # ---- calendar ----

    @contextlib.contextmanager
    def _calendar_call(self):
        with self._lock:
            self._syncing += 1
        try:
            yield
        finally:
            with self._lock:
                self._syncing -= 1

    def _sync(self, user_id, task):
        with self._calendar_call():
            return self.sync_engine.sync(user_id, task)

    def sync_task_with_calendar(self, task):
        """Re-sync one task. Returns its link, or None if the task is unknown."""
        user_id = self._require_user()
        if self.get_task_by_id(task.id) is None:
            return None
        return self._sync(user_id, task)

    # ---- mutations ----

    def add_task(self, title, category, priority, deadline, description=None):
        """Create a task and try to put it on the calendar.

        Returns the created task. A failed calendar sync leaves it unlinked
        but does not fail the add.
        """
        user_id = self._require_user()
        draft = Task(
            id='',
            title=title,
            description=description or None,
            category=Category(category),
            priority=Priority(priority),
            deadline=deadline,
            completed=False,
            updated_at=utc_now_iso(),
        )
        task_id = self.store.create_task(user_id, task_to_record(draft))
        task = draft.with_changes(id=task_id)
        logger.info("Task added id=%s", task_id)

        link = self._sync(user_id, task)
        return link.apply(task)

    def update_task(self, task):
        """Replace a task's editable fields, then re-sync it.

        The event link is taken from the live record, not from `task`, so an
        edit started before a sync finished does not drop the new event id.
        """
        user_id = self._require_user()
        current = self.get_task_by_id(task.id)
        if current is None:
            logger.debug("update_task: unknown task id=%s", task.id)
            return None

        task = task.with_changes(
            calendar_event_id=current.calendar_event_id,
            updated_at=utc_now_iso(),
        )
        self.store.patch_task(user_id, task.id, task_to_record(task, include_cleared=True))
        logger.info("Task updated id=%s", task.id)

        link = self._sync(user_id, task)
        return link.apply(task)

    def delete_task(self, task_id):
        """Delete a task and, first, its calendar event (best-effort).

        Returns False if the task is unknown.
        """
        user_id = self._require_user()
        task = self.get_task_by_id(task_id)
        if task is None:
            logger.debug("delete_task: unknown task id=%s", task_id)
            return False

        if CalendarLink.of(task).is_linked:
            with self._calendar_call():
                self.sync_engine.delete(task)

        self.store.delete_task(user_id, task_id)
        logger.info("Task deleted id=%s", task_id)
        return True

    def toggle_task_completion(self, task_id):
        """Flip `completed`. Linked tasks are re-synced, unlinked ones are not."""
        user_id = self._require_user()
        task = self.get_task_by_id(task_id)
        if task is None:
            logger.debug("toggle_task_completion: unknown task id=%s", task_id)
            return None

        toggled = task.with_changes(completed=not task.completed, updated_at=utc_now_iso())
        self.store.patch_task(
            user_id, task_id, {'completed': toggled.completed, 'updatedAt': toggled.updated_at}
        )
        logger.info("Task %s marked %s", task_id, 'completed' if toggled.completed else 'open')

        if CalendarLink.of(toggled).is_linked:
            toggled = self._sync(user_id, toggled).apply(toggled)
        return toggled
