# API modules initialization
from taskcal.api.auth import AuthManager, Session
from taskcal.api.calendar import CalendarManager
from taskcal.api.store import FirebaseTaskStore, Subscription, initialize_firebase

__all__ = ['AuthManager', 'Session', 'CalendarManager', 'FirebaseTaskStore', 'Subscription', 'initialize_firebase']
