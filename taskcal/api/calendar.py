import logging
from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError
from httplib2 import HttpLib2Error

from taskcal.core.config import (
    DEFAULT_CALENDAR_ID, EVENT_DURATION, CATEGORY_COLOR_MAP, DEFAULT_COLOR_ID, APP_SOURCE
)
from taskcal.core.errors import AuthError, CalendarError
from taskcal.core.utils import format_iso_for_api, local_timezone_name, to_utc

logger = logging.getLogger(__name__)

# Responses to DELETE meaning the event is already gone
GONE_STATUSES = (404, 410)
# Failures that end a single calendar call without reaching the caller
CALL_ERRORS = (CalendarError, AuthError, GoogleAuthError, OSError, HttpLib2Error)


def _error_message(error):
    return getattr(error, 'reason', None) or str(error)


class CalendarManager:
    """Mirrors tasks as events on a Google Calendar."""

    def __init__(self, auth_manager, calendar_id=DEFAULT_CALENDAR_ID, timezone_name=None):
        """Initialize with an auth manager."""
        self.auth_service = auth_manager
        self.calendar_id = calendar_id
        self.timezone_name = timezone_name

    def _service(self):
        """Return the calendar service with a freshly validated token.

        Raises AuthError when no usable token can be obtained.
        """
        return self.auth_service.get_calendar_service()

    def _execute(self, request):
        try:
            return request.execute()
        except HttpError as e:
            raise CalendarError(
                f"Calendar API error: {_error_message(e)}", status_code=e.resp.status
            ) from e

    def build_event_body(self, task, include_status=False):
        """Convert a task to Google Calendar event format.

        The completion line is only added when include_status is set, which
        callers do for updates.
        """
        timezone_name = self.timezone_name or local_timezone_name()
        start = to_utc(task.deadline)
        end = start + EVENT_DURATION
        category = getattr(task.category, 'value', task.category)
        priority = getattr(task.priority, 'value', task.priority)

        description = (
            f"{task.description or ''}\n\n"
            f"Priority: {priority}\n"
            f"Category: {category}"
        )
        if include_status and task.completed:
            description += "\nStatus: Completed"

        return {
            'summary': task.title,
            'description': description,
            'start': {'dateTime': format_iso_for_api(start), 'timeZone': timezone_name},
            'end': {'dateTime': format_iso_for_api(end), 'timeZone': timezone_name},
            'colorId': CATEGORY_COLOR_MAP.get(category, DEFAULT_COLOR_ID),
            'extendedProperties': {
                'private': {
                    'appSource': APP_SOURCE,
                    'taskId': task.id,
                },
            },
        }

    def add_event(self, event):
        """Insert an event. Raises CalendarError or AuthError."""
        service = self._service()
        return self._execute(service.events().insert(calendarId=self.calendar_id, body=event))

    def replace_event(self, event_id, event):
        """Overwrite an existing event. Raises CalendarError or AuthError."""
        service = self._service()
        return self._execute(
            service.events().update(calendarId=self.calendar_id, eventId=event_id, body=event)
        )

    def remove_event(self, event_id):
        """Delete an event. Raises CalendarError or AuthError."""
        service = self._service()
        return self._execute(service.events().delete(calendarId=self.calendar_id, eventId=event_id))

    def create_event(self, task):
        """Create an event for the task; return its id, or None on failure."""
        try:
            result = self.add_event(self.build_event_body(task))
        except CALL_ERRORS as e:
            logger.error("Error creating calendar event for task %s: %s", task.id, e)
            return None

        event_id = result.get('id') if result else None
        if not event_id:
            logger.error("Calendar returned no event id for task %s", task.id)
            return None
        logger.debug("Created calendar event %s for task %s", event_id, task.id)
        return event_id

    def update_event(self, task, event_id):
        """Push the task's fields to an existing event. Returns success."""
        try:
            self.replace_event(event_id, self.build_event_body(task, include_status=True))
        except CALL_ERRORS as e:
            logger.error("Error updating calendar event %s for task %s: %s", event_id, task.id, e)
            return False
        logger.debug("Updated calendar event %s for task %s", event_id, task.id)
        return True

    def delete_event(self, event_id):
        """Delete an event. An event that is already gone counts as deleted."""
        try:
            self.remove_event(event_id)
        except CalendarError as e:
            if e.status_code in GONE_STATUSES:
                logger.info("Calendar event %s was already deleted (%s)", event_id, e.status_code)
                return True
            logger.error("Error deleting calendar event %s: %s", event_id, e)
            return False
        except CALL_ERRORS as e:
            logger.error("Error deleting calendar event %s: %s", event_id, e)
            return False
        logger.debug("Deleted calendar event %s", event_id)
        return True
