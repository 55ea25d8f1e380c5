import os
import datetime


def _env(name, default):
    value = os.getenv(f"TASKCAL_{name}")
    return default if value is None or value.strip() == "" else value


# API Configuration
SCOPES = [
    'openid',
    'https://www.googleapis.com/auth/userinfo.email',
    'https://www.googleapis.com/auth/userinfo.profile',
    'https://www.googleapis.com/auth/calendar.events',
]
TOKEN_FILE = _env('TOKEN_FILE', os.path.join('config', 'token.json'))
CREDENTIALS_FILE = _env('CREDENTIALS_FILE', os.path.join('config', 'credentials.json'))
DEFAULT_CALENDAR_ID = _env('CALENDAR_ID', 'primary')
REFRESH_BUFFER_SECONDS = int(_env('REFRESH_BUFFER_SECONDS', '300'))

# Store Configuration
FIREBASE_CREDENTIALS_FILE = _env('FIREBASE_CREDENTIALS_FILE', os.path.join('config', 'firebase.json'))
FIREBASE_DATABASE_URL = _env('FIREBASE_DATABASE_URL', '')
TASKS_ROOT = 'tasks'
USERS_ROOT = 'users'

# Calendar Event Mapping
EVENT_DURATION = datetime.timedelta(hours=1)
APP_SOURCE = 'TaskManagerApp'
DEFAULT_COLOR_ID = '1'
# Google Calendar color ids, see the calendar "colors" resource
CATEGORY_COLOR_MAP = {
    'work': '9',
    'personal': '10',
    'health': '6',
    'education': '5',
    'finance': '2',
}

# Time zone used for calendar events; empty means detect from the system
TIMEZONE = _env('TIMEZONE', '')
FALLBACK_TIMEZONE = 'UTC'

# Logging
LOG_DIR = _env('LOG_DIR', os.path.join('.local', 'taskcal'))
LOG_LEVEL = _env('LOG_LEVEL', 'INFO')
