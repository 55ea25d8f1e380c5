import logging

from taskcal.core.errors import StoreError
from taskcal.core.models import CalendarLink, Linked, UNLINKED

logger = logging.getLogger(__name__)


class CalendarSync:
    """Keeps each task's calendar event in step with the task's fields.

    Linkage moves between Unlinked and Linked(event_id):

    - Unlinked: create an event; on success the task becomes Linked.
    - Linked: update the event in place. If that fails, create a fresh event
      and relink to it. The old event is not deleted, so a failed update that
      was not caused by the event being gone leaves an orphan behind. If the
      replacement also fails the task keeps its stale id and the next sync
      goes through the same steps again.

    Calendar failures never raise out of this class.
    """

    def __init__(self, calendar_manager, task_store):
        self.calendar = calendar_manager
        self.store = task_store

    def sync(self, user_id, task):
        """Reconcile the calendar with task and return the resulting link.

        A new event id is written back to the task record.
        """
        current = CalendarLink.of(task)
        link = self._reconcile(task, current)
        if link != current:
            self._save_link(user_id, task, link)
        return link

    def _reconcile(self, task, current):
        if not current.is_linked:
            event_id = self.calendar.create_event(task)
            if event_id is None:
                logger.warning("Task %s is still not on the calendar", task.id)
                return UNLINKED
            return Linked(event_id)

        if self.calendar.update_event(task, current.event_id):
            return current

        event_id = self.calendar.create_event(task)
        if event_id is None:
            logger.warning("Task %s keeps stale event %s; will retry on next sync",
                           task.id, current.event_id)
            return current
        logger.warning("Task %s relinked from event %s to %s; old event left in place",
                       task.id, current.event_id, event_id)
        return Linked(event_id)

    def _save_link(self, user_id, task, link):
        try:
            self.store.patch_task(user_id, task.id, {'calendarEventId': link.event_id})
        except StoreError as e:
            logger.error("Could not record event %s on task %s: %s", link.event_id, task.id, e)

    def delete(self, task):
        """Remove the task's event, if it has one. Returns True when it is gone."""
        link = CalendarLink.of(task)
        if not link.is_linked:
            return True
        deleted = self.calendar.delete_event(link.event_id)
        if not deleted:
            logger.warning("Calendar event %s for task %s could not be deleted",
                           link.event_id, task.id)
        return deleted
