"""
OAuth callback completion.

The backend finishes the provider dance and sends the browser to
/auth/callback?token=...&return_url=... . One OAuthCallback is created per
page load; it moves PENDING -> COMPLETED exactly once and reports where the
browser should go next. The caller performs that navigation as a full HTTP
redirect so the destination's layout (popup vs. full chrome) is evaluated
from scratch.
"""

import enum
import logging
from typing import Mapping, Optional

from utils.auth import ReturnUrlStore, TokenStore, safe_destination

logger = logging.getLogger(__name__)


class CallbackState(enum.Enum):
    PENDING = 'pending'
    COMPLETED = 'completed'


class OAuthCallback:
    def __init__(
        self,
        tokens: TokenStore,
        return_urls: ReturnUrlStore,
        landing_path: str,
        login_path: str,
    ):
        self.tokens = tokens
        self.return_urls = return_urls
        self.landing_path = landing_path
        self.login_path = login_path
        self.state = CallbackState.PENDING
        self.destination: Optional[str] = None

    def complete(self, params: Mapping[str, str]) -> str:
        """
        Commit the callback token and return the navigation target.

        Args:
            params: Callback query parameters (``token``, ``return_url``).

        Returns:
            Destination URL. Repeated calls return the first result and
            touch no storage.
        """
        if self.state is CallbackState.COMPLETED:
            return self.destination

        token = (params.get('token') or '').strip()
        if token:
            self.tokens.set_token(token)
            # Always drain the mailbox; the query value wins when both exist
            stored = self.return_urls.get_return_url()
            candidate = params.get('return_url') or stored
            destination = safe_destination(candidate)
            if candidate and destination is None:
                logger.info("Ignoring unusable return_url %r", candidate)
            self.destination = destination or self.landing_path
        else:
            logger.info("OAuth callback without token, sending to login")
            self.destination = self.login_path

        self.state = CallbackState.COMPLETED
        return self.destination
