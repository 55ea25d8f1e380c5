import argparse
import locale
import logging
import sys
import threading

from PyQt6.QtCore import Qt

from taskcal.api.auth import AuthManager
from taskcal.api.calendar import CalendarManager
from taskcal.api.store import FirebaseTaskStore, initialize_firebase
from taskcal.core.errors import TaskCalError
from taskcal.core.filters import ALL, DeadlineFilter, FilterState, SortOption, filter_tasks
from taskcal.core.logging_setup import setup_logging
from taskcal.core.models import Category, Priority
from taskcal.core.sync import CalendarSync
from taskcal.core.task_service import TaskService
from taskcal.core.utils import to_local, utc_now_iso
from taskcal.workers.api_worker import APIWorker

logger = logging.getLogger(__name__)

SNAPSHOT_TIMEOUT = 15


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="List your tasks and keep them on Google Calendar.")
    parser.add_argument('--category', default=ALL, choices=[ALL] + [c.value for c in Category])
    parser.add_argument('--priority', default=ALL, choices=[ALL] + [p.value for p in Priority])
    parser.add_argument('--deadline', default=DeadlineFilter.ALL.value, choices=[d.value for d in DeadlineFilter])
    parser.add_argument('--sort', default=SortOption.DEADLINE.value, choices=[s.value for s in SortOption])
    parser.add_argument('--sync-all', action='store_true', help="re-sync every listed task with the calendar")
    parser.add_argument('--sign-out', action='store_true', help="forget the stored Google token and exit")
    return parser.parse_args(argv)


def format_task(task):
    mark = 'x' if task.completed else ' '
    when = to_local(task.deadline).strftime('%Y-%m-%d %H:%M')
    linked = '  (on calendar)' if task.calendar_event_id else ''
    return f"[{mark}] {when}  {task.priority.value:<6}  {task.category.value:<9}  {task.title}{linked}"


def use_system_collation():
    """Sort titles by the user's locale instead of the default C collation."""
    try:
        locale.setlocale(locale.LC_COLLATE, '')
    except locale.Error as e:
        logger.warning("Keeping default collation: %s", e)


def sync_all(service, tasks):
    """Re-sync tasks on the API worker thread. Returns the errors of the jobs that failed."""
    failed = []
    worker = APIWorker()
    worker.taskError.connect(
        lambda error, job: failed.append(error), Qt.ConnectionType.DirectConnection
    )
    try:
        for task in tasks:
            worker.submit(service, 'sync_task_with_calendar', task=task)
        worker.queue.join()
    finally:
        worker.stop()
    return failed


def wait_for_tasks(service, timeout=SNAPSHOT_TIMEOUT):
    """Block until the first snapshot arrives. Returns the listener error, if any."""
    ready = threading.Event()
    remove = service.add_listener(lambda tasks: ready.set())
    try:
        if service.loading:
            ready.wait(timeout)
    finally:
        remove()
    return service.last_error


def main(argv=None):
    """Main entry point for the application."""
    args = parse_args(argv)
    setup_logging()
    use_system_collation()

    # Initialize services
    auth_manager = AuthManager()
    if args.sign_out:
        auth_manager.sign_out()
        return 0

    try:
        session = auth_manager.sign_in()
        store = FirebaseTaskStore(initialize_firebase())
    except TaskCalError as e:
        logger.error("%s", e)
        return 1

    try:
        store.save_user_profile(session.user_id, {
            'email': session.email,
            'displayName': session.display_name,
            'photoURL': session.photo_url,
            'lastLogin': utc_now_iso(),
        })
    except TaskCalError as e:
        logger.warning("Could not save user profile: %s", e)

    calendar_manager = CalendarManager(auth_manager)
    service = TaskService(store, CalendarSync(calendar_manager, store))
    state = FilterState(args.category, args.priority, args.deadline, args.sort)

    with service.start(session):
        error = wait_for_tasks(service)
        if error is not None:
            logger.error("Failed to load tasks: %s", error)
            return 1

        visible = filter_tasks(service.tasks, state)
        if args.sync_all:
            failed = sync_all(service, visible)
            if failed:
                logger.warning("%s of %s tasks could not be synced", len(failed), len(visible))

        if not visible:
            print("No tasks match your current filters")
        for task in visible:
            print(format_task(task))
    return 0


if __name__ == "__main__":
    sys.exit(main())
