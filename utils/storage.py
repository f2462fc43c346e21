"""
Browser-context key/value storage for Kimlik Web.

The session token and the pending return URL live on the client, not in a
server-side session table. Each storage maps to one signed cookie:

    CookieStorage('kimlik_local', max_age=1 year)   survives restarts
    CookieStorage('kimlik_session', max_age=None)   dies with the browser

Reads are loaded once per request into ``flask.g``; writes are staged there
and flushed onto the response by ``save()`` from an ``after_request`` hook.
``MemoryStorage`` is the drop-in used by tests.
"""

import logging
from typing import Any, Dict, Optional

from flask import current_app, g, request
from itsdangerous import BadData, URLSafeSerializer

logger = logging.getLogger(__name__)


class Storage:
    """get/set/remove interface shared by every storage backend."""

    def get_item(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def set_item(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        raise NotImplementedError

    def save(self, response) -> None:
        """Persist staged writes onto an outgoing response. No-op by default."""


class MemoryStorage(Storage):
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._items: Dict[str, Any] = dict(initial or {})

    def get_item(self, key: str) -> Optional[Any]:
        return self._items.get(key)

    def set_item(self, key: str, value: Any) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def __len__(self) -> int:
        return len(self._items)


class CookieStorage(Storage):
    """
    Storage kept in a single signed cookie.

    Args:
        cookie_name: Name of the cookie holding the serialized items.
        max_age: Cookie lifetime in seconds. None makes it a browser-session
                 cookie, cleared when the browser closes.
        salt: itsdangerous salt, so one storage's cookie can't be replayed
              as another's.
    """

    def __init__(self, cookie_name: str, max_age: Optional[int] = None, salt: str = 'kimlik-storage'):
        self.cookie_name = cookie_name
        self.max_age = max_age
        self.salt = salt

    def get_item(self, key: str) -> Optional[Any]:
        return self._items().get(key)

    def set_item(self, key: str, value: Any) -> None:
        self._items()[key] = value
        self._mark_dirty()

    def remove_item(self, key: str) -> None:
        items = self._items()
        if key in items:
            del items[key]
            self._mark_dirty()

    def save(self, response) -> None:
        if self.cookie_name not in g.get('_storage_dirty', set()):
            return

        items = self._items()
        if items:
            response.set_cookie(
                self.cookie_name,
                self._serializer().dumps(items),
                max_age=self.max_age,
                httponly=True,
                samesite='Lax',
                secure=request.is_secure,
            )
        else:
            response.delete_cookie(self.cookie_name, httponly=True, samesite='Lax')

    def _serializer(self) -> URLSafeSerializer:
        return URLSafeSerializer(current_app.secret_key, salt=self.salt)

    def _items(self) -> Dict[str, Any]:
        if '_storage_items' not in g:
            g._storage_items = {}
        cache = g._storage_items
        if self.cookie_name not in cache:
            cache[self.cookie_name] = self._load(request.cookies.get(self.cookie_name))
        return cache[self.cookie_name]

    def _load(self, raw: Optional[str]) -> Dict[str, Any]:
        if not raw:
            return {}
        try:
            data = self._serializer().loads(raw)
        except BadData:
            # Tampered, or signed with a rotated secret: treat as empty
            logger.info("Discarding unreadable %s cookie", self.cookie_name)
            return {}
        return data if isinstance(data, dict) else {}

    def _mark_dirty(self) -> None:
        if '_storage_dirty' not in g:
            g._storage_dirty = set()
        g._storage_dirty.add(self.cookie_name)
