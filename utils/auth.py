"""
Client-side session lifecycle for Kimlik Web.

Token Store: bearer token + acquisition time, kept in persistent browser
storage. Its mere presence is the authentication signal; validity is left
to the backend, which rejects a stale token on the first authenticated call.

Return-URL Store: single-slot, read-once mailbox in session-scoped storage
holding where the user should land after an out-of-band auth step.

AuthService: the backend auth calls that mint or revoke tokens.
"""

import logging
import time
from typing import Callable, Optional
from urllib.parse import unquote, urlencode, urlsplit

from utils.api_client import BackendClient, BackendError
from utils.storage import Storage

logger = logging.getLogger(__name__)

TOKEN_KEY = 'token'
AUTH_TIME_KEY = 'auth_time'
USER_KEY = 'user'
RETURN_URL_KEY = 'return_url'

# Only these profile fields ride along in the token cookie (4 KB browser cap)
USER_SNAPSHOT_FIELDS = ('id', 'name', 'email')


class TokenStore:
    def __init__(self, storage: Storage, clock: Callable[[], float] = time.time):
        self.storage = storage
        self.clock = clock

    def set_token(self, token: str) -> None:
        """Store token and acquisition time (epoch ms), replacing any prior token."""
        self.storage.set_item(TOKEN_KEY, token)
        self.storage.set_item(AUTH_TIME_KEY, str(int(self.clock() * 1000)))

    def get_token(self) -> Optional[str]:
        return self.storage.get_item(TOKEN_KEY)

    def get_auth_time(self) -> Optional[int]:
        value = self.storage.get_item(AUTH_TIME_KEY)
        return int(value) if value else None

    def clear_token(self) -> None:
        self.storage.remove_item(TOKEN_KEY)
        self.storage.remove_item(AUTH_TIME_KEY)
        self.storage.remove_item(USER_KEY)

    def is_authenticated(self) -> bool:
        return bool(self.get_token())

    def cache_user(self, user: dict) -> None:
        self.storage.set_item(USER_KEY, {k: user[k] for k in USER_SNAPSHOT_FIELDS if k in user})

    def cached_user(self) -> Optional[dict]:
        return self.storage.get_item(USER_KEY)


class ReturnUrlStore:
    def __init__(self, storage: Storage):
        self.storage = storage

    def set_return_url(self, url: str) -> None:
        self.storage.set_item(RETURN_URL_KEY, url)

    def get_return_url(self) -> Optional[str]:
        """Return the pending URL and clear the slot in the same call."""
        url = self.storage.get_item(RETURN_URL_KEY)
        self.storage.remove_item(RETURN_URL_KEY)
        return url


def safe_destination(url: Optional[str]) -> Optional[str]:
    """
    Percent-decode a return URL and accept it only if it is navigable.

    Accepted: a site path ("/wallet?tab=1") or an absolute http(s) URL.
    Rejected (returns None): empty values, scheme-relative "//host" paths,
    relative paths and any other scheme such as "javascript:".
    """
    if not url:
        return None

    decoded = unquote(url).strip()
    if not decoded:
        return None

    try:
        parts = urlsplit(decoded)
    except ValueError:
        return None

    if parts.scheme in ('http', 'https') and parts.netloc:
        return decoded
    if not parts.scheme and not parts.netloc and decoded.startswith('/') and not decoded.startswith('//'):
        return decoded
    return None


class AuthService:
    """Backend auth calls. Successful responses carrying data.token log the user in."""

    def __init__(self, client: BackendClient, tokens: TokenStore):
        self.client = client
        self.tokens = tokens

    def register(self, data: dict) -> dict:
        return self._store_token_from(self.client.post('/auth/register', json=data, auth=False))

    def login(self, credentials: dict) -> dict:
        return self._store_token_from(self.client.post('/auth/login', json=credentials, auth=False))

    def login_phone(self, credentials: dict) -> dict:
        return self._store_token_from(self.client.post('/auth/login-phone', json=credentials, auth=False))

    def verify_two_factor(self, data: dict) -> dict:
        """Second step for 2FA accounts: {code, user_id, provider?} -> data.token."""
        return self._store_token_from(self.client.post('/auth/2fa/verify', json=data, auth=False))

    def send_otp(self, phone: str, purpose: str = 'login') -> dict:
        return self.client.post('/auth/otp/send', json={'phone': phone, 'purpose': purpose}, auth=False)

    def verify_otp(self, data: dict) -> dict:
        return self._store_token_from(self.client.post('/auth/otp/verify', json=data, auth=False))

    def get_current_user(self) -> Optional[dict]:
        try:
            payload = self.client.get('/user')
        except BackendError as e:
            logger.info("Could not load current user: %s", e.message)
            if e.status == 401:
                # The backend is the only judge of token validity
                self.tokens.clear_token()
            return None

        user = payload.get('data')
        if isinstance(user, dict):
            self.tokens.cache_user(user)
            return user
        return None

    def logout(self) -> None:
        """Revoke server-side if possible; the local session is cleared regardless."""
        try:
            self.client.post('/auth/logout')
        except BackendError as e:
            logger.warning("Server-side logout failed, clearing local session anyway: %s", e.message)
        finally:
            self.tokens.clear_token()

    def oauth_redirect_url(self, provider: str, return_url: Optional[str] = None) -> str:
        url = self.client.url_for(f"/auth/{provider}")
        if return_url:
            url += '?' + urlencode({'return_url': return_url})
        return url

    def _store_token_from(self, payload: dict) -> dict:
        data = payload.get('data')
        if isinstance(data, dict) and data.get('token'):
            self.tokens.set_token(data['token'])
        return payload
