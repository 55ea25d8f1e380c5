import copy
import logging
import threading

import firebase_admin
from firebase_admin import credentials, db
from firebase_admin.exceptions import FirebaseError

from taskcal.core.config import (
    FIREBASE_CREDENTIALS_FILE, FIREBASE_DATABASE_URL, TASKS_ROOT, USERS_ROOT
)
from taskcal.core.errors import StoreError
from taskcal.core.models import tasks_from_tree

logger = logging.getLogger(__name__)


def initialize_firebase(credentials_file=FIREBASE_CREDENTIALS_FILE, database_url=FIREBASE_DATABASE_URL):
    """Initialise (once) and return the default Firebase app."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass
    if not database_url:
        raise StoreError("TASKCAL_FIREBASE_DATABASE_URL is not set")
    try:
        cred = credentials.Certificate(credentials_file)
    except (OSError, ValueError) as e:
        raise StoreError(f"Cannot load Firebase credentials from {credentials_file}: {e}") from e
    return firebase_admin.initialize_app(cred, {'databaseURL': database_url})


def apply_stream_event(tree, event_type, path, data):
    """Fold one realtime stream event into a copy of the subtree.

    `put` replaces the node at path (None deletes it); `patch` merges the
    children of data under path. Other event types leave the tree unchanged.
    """
    parts = [p for p in (path or '').split('/') if p]

    if event_type == 'patch':
        for key, value in (data or {}).items():
            tree = apply_stream_event(tree, 'put', '/'.join(parts + [key]), value)
        return tree
    if event_type != 'put':
        return tree

    if not parts:
        return copy.deepcopy(data) if isinstance(data, dict) else {}

    tree = copy.deepcopy(tree) if isinstance(tree, dict) else {}
    node = tree
    for key in parts[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child

    if data is None:
        node.pop(parts[-1], None)
    else:
        node[parts[-1]] = copy.deepcopy(data)
    return tree


class Subscription:
    """Handle for a live listener; close() releases it."""

    def __init__(self, registration, user_id):
        self._registration = registration
        self.user_id = user_id
        self._lock = threading.Lock()

    @property
    def active(self):
        return self._registration is not None

    def close(self):
        with self._lock:
            registration, self._registration = self._registration, None
        if registration is not None:
            registration.close()
            logger.debug("Closed task listener user=%s", self.user_id)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


class FirebaseTaskStore:
    """Task records in Firebase Realtime Database under tasks/{userId}/{taskId}.

    Nothing here retries; failures surface as StoreError.
    """

    def __init__(self, app=None, root=TASKS_ROOT, users_root=USERS_ROOT):
        self.app = app
        self.root = root
        self.users_root = users_root

    def _ref(self, user_id, task_id=None):
        if not user_id:
            raise StoreError("A user id is required")
        path = f"{self.root}/{user_id}"
        if task_id is not None:
            path = f"{path}/{task_id}"
        return db.reference(path, app=self.app)

    def subscribe(self, user_id, on_snapshot, on_error=None):
        """Deliver the user's full task list to on_snapshot on every change.

        Callbacks run on the SDK's listener thread.
        """
        state = {'tree': {}}

        def handle(event):
            try:
                state['tree'] = apply_stream_event(
                    state['tree'], event.event_type, event.path, event.data
                )
                on_snapshot(tasks_from_tree(state['tree']))
            except Exception as e:
                logger.exception("Task listener failed user=%s", user_id)
                if on_error:
                    on_error(e)

        try:
            registration = self._ref(user_id).listen(handle)
        except FirebaseError as e:
            raise StoreError(f"Failed to listen for tasks: {e}") from e
        logger.info("Listening for tasks user=%s", user_id)
        return Subscription(registration, user_id)

    def get_tasks(self, user_id):
        try:
            tree = self._ref(user_id).get()
        except FirebaseError as e:
            raise StoreError(f"Failed to load tasks: {e}") from e
        return tasks_from_tree(tree)

    def create_task(self, user_id, fields):
        """Store a new task record and return its generated id."""
        try:
            new_ref = self._ref(user_id).push(fields)
        except FirebaseError as e:
            raise StoreError(f"Failed to create task: {e}") from e
        logger.debug("Task created id=%s user=%s", new_ref.key, user_id)
        return new_ref.key

    def patch_task(self, user_id, task_id, fields):
        """Merge fields into an existing record. None values remove a field."""
        if not fields:
            return
        try:
            self._ref(user_id, task_id).update(fields)
        except FirebaseError as e:
            raise StoreError(f"Failed to update task {task_id}: {e}") from e
        logger.debug("Task patched id=%s fields=%s", task_id, sorted(fields))

    def delete_task(self, user_id, task_id):
        try:
            self._ref(user_id, task_id).delete()
        except FirebaseError as e:
            raise StoreError(f"Failed to delete task {task_id}: {e}") from e
        logger.debug("Task deleted id=%s user=%s", task_id, user_id)

    def save_user_profile(self, user_id, profile):
        """Overwrite users/{userId} with the signed-in user's profile."""
        if not user_id:
            raise StoreError("A user id is required")
        try:
            db.reference(f"{self.users_root}/{user_id}", app=self.app).set(profile)
        except FirebaseError as e:
            raise StoreError(f"Failed to save profile for {user_id}: {e}") from e
