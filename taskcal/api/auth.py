import os
import json
import logging
import datetime
import threading
from dataclasses import dataclass
from datetime import timezone
from typing import Optional

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from taskcal.core.config import CREDENTIALS_FILE, TOKEN_FILE, SCOPES, REFRESH_BUFFER_SECONDS
from taskcal.core.errors import AuthError, NotSignedInError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    """The signed-in user, passed explicitly to the services that need one."""
    user_id: str
    credentials: object
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None


class AuthManager:
    """Google sign-in, token refresh and authenticated service clients."""

    def __init__(self, token_file=TOKEN_FILE, credentials_file=CREDENTIALS_FILE, scopes=SCOPES):
        self.token_file = token_file
        self.credentials_file = credentials_file
        self.scopes = list(scopes)
        self.creds = None
        self.session = None
        self.refresh_buffer = REFRESH_BUFFER_SECONDS
        self.services = {}
        self.lock = threading.RLock()
        self._user_listeners = []

    @property
    def current_user(self):
        """User id of the signed-in user, or None."""
        return self.session.user_id if self.session else None

    def add_user_listener(self, callback):
        """Call callback(session_or_none) whenever the signed-in user changes."""
        self._user_listeners.append(callback)
        return lambda: self._user_listeners.remove(callback)

    def _set_session(self, session):
        self.session = session
        for callback in list(self._user_listeners):
            try:
                callback(session)
            except Exception:
                logger.exception("User listener failed")

    def load_credentials(self):
        """Load credentials from the token file, if there is one."""
        if not os.path.exists(self.token_file):
            return None
        try:
            with open(self.token_file, 'r') as token:
                info = json.load(token)
            self.creds = Credentials.from_authorized_user_info(info, self.scopes)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable token file %s: %s", self.token_file, e)
            self.creds = None
        return self.creds

    def _save_credentials(self):
        folder = os.path.dirname(self.token_file)
        if folder:
            os.makedirs(folder, exist_ok=True)
        with open(self.token_file, 'w') as token:
            token.write(self.creds.to_json())

    def sign_in(self):
        """Sign in, reusing a stored token when possible.

        Falls back to the browser consent flow. Returns the new Session.
        """
        with self.lock:
            if self.creds is None:
                self.load_credentials()
            if self.creds and not self.creds.valid:
                try:
                    self.refresh_token()
                except AuthError:
                    logger.info("Stored token could not be refreshed; starting consent flow")
                    self.creds = None
            if not self.creds or not self.creds.valid:
                try:
                    flow = InstalledAppFlow.from_client_secrets_file(self.credentials_file, self.scopes)
                    self.creds = flow.run_local_server(port=0)
                except (OSError, ValueError, GoogleAuthError) as e:
                    raise AuthError(f"Google sign-in failed: {e}") from e
                self._save_credentials()
            self.services = {}

            profile = self._fetch_profile()
            session = Session(
                user_id=profile['id'],
                credentials=self.creds,
                email=profile.get('email'),
                display_name=profile.get('name'),
                photo_url=profile.get('picture'),
            )
        logger.info("Signed in user=%s", session.user_id)
        self._set_session(session)
        return session

    def _fetch_profile(self):
        try:
            profile = self.get_service('oauth2', 'v2').userinfo().get().execute()
        except HttpError as e:
            raise AuthError(f"Could not read the user profile: {e}") from e
        if not profile.get('id'):
            raise AuthError("User profile has no id")
        return profile

    def sign_out(self):
        """Forget the credentials and the stored token."""
        with self.lock:
            self.creds = None
            self.services = {}
            try:
                os.remove(self.token_file)
            except FileNotFoundError:
                pass
        if self.session is not None:
            logger.info("Signed out user=%s", self.session.user_id)
        self._set_session(None)

    def get_credentials(self):
        """Return the current credentials, refreshing if needed."""
        with self.lock:
            if not self.creds:
                raise NotSignedInError("No Google credentials; sign in first")
            self.refresh_token_if_needed()
            return self.creds

    def get_access_token(self):
        """Return a bearer token valid for at least the refresh buffer."""
        token = self.get_credentials().token
        if not token:
            raise AuthError("No access token available")
        return token

    def refresh_token_if_needed(self):
        """Check if token needs refreshing and refresh it if necessary."""
        if not self.creds.valid:
            self.refresh_token()
            return

        expiry = self.creds.expiry
        if expiry is None:
            return
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=timezone.utc)

        now = datetime.datetime.now(timezone.utc)
        time_until_expiry = (expiry - now).total_seconds()
        if time_until_expiry < self.refresh_buffer:
            logger.debug("Token expires in %.1f seconds; refreshing", time_until_expiry)
            self.refresh_token()

    def refresh_token(self):
        """Refresh the access token using the stored refresh token."""
        if not self.creds or not self.creds.refresh_token:
            raise AuthError("Credentials cannot be refreshed without a refresh token")
        try:
            self.creds.refresh(Request())
        except GoogleAuthError as e:
            raise AuthError(f"Token refresh failed: {e}") from e
        self._save_credentials()
        self.services = {}

    def get_service(self, service_name, version):
        """Get an authenticated service instance with caching."""
        with self.lock:
            creds = self.get_credentials()
            cache_key = f"{service_name}_{version}"
            if cache_key not in self.services:
                self.services[cache_key] = build(
                    service_name, version, credentials=creds, cache_discovery=False
                )
            return self.services[cache_key]

    def get_calendar_service(self):
        """Get an authenticated calendar service instance."""
        return self.get_service('calendar', 'v3')
