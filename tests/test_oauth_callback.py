"""Tests for utils/oauth_callback.py — the one-shot OAuth completion."""
import pytest

from utils.auth import ReturnUrlStore, TokenStore
from utils.oauth_callback import CallbackState, OAuthCallback
from utils.storage import MemoryStorage


@pytest.fixture
def tokens():
    return TokenStore(MemoryStorage())


@pytest.fixture
def return_urls():
    return ReturnUrlStore(MemoryStorage())


@pytest.fixture
def handler(tokens, return_urls):
    return OAuthCallback(tokens, return_urls, landing_path='/dashboard', login_path='/login')


class TestOAuthCallback:
    def test_starts_pending(self, handler):
        assert handler.state is CallbackState.PENDING
        assert handler.destination is None

    def test_token_and_encoded_return_url(self, handler, tokens):
        destination = handler.complete({'token': 'xyz', 'return_url': '%2Fwallet'})
        assert destination == '/wallet'
        assert tokens.get_token() == 'xyz'
        assert handler.state is CallbackState.COMPLETED

    def test_already_decoded_return_url(self, handler):
        assert handler.complete({'token': 'xyz', 'return_url': '/wallet'}) == '/wallet'

    def test_absolute_return_url(self, handler):
        url = 'https://shop.example/oauth/approve/42'
        assert handler.complete({'token': 'xyz', 'return_url': url}) == url

    def test_default_landing_without_return_url(self, handler):
        assert handler.complete({'token': 'xyz'}) == '/dashboard'

    def test_no_token_goes_to_login(self, handler, tokens):
        assert handler.complete({'return_url': '/wallet'}) == '/login'
        assert tokens.is_authenticated() is False

    def test_blank_token_goes_to_login(self, handler, tokens):
        assert handler.complete({'token': '   '}) == '/login'
        assert tokens.get_token() is None

    def test_no_token_keeps_stored_return_url(self, handler, return_urls):
        return_urls.set_return_url('/wallet')
        handler.complete({})
        assert return_urls.get_return_url() == '/wallet'

    @pytest.mark.parametrize('bad', ['%20', 'javascript:alert(1)', '//evil.example', 'wallet'])
    def test_malformed_return_url_falls_back(self, handler, tokens, bad):
        assert handler.complete({'token': 'xyz', 'return_url': bad}) == '/dashboard'
        assert tokens.get_token() == 'xyz'

    def test_stored_return_url_used_when_query_has_none(self, handler, return_urls):
        return_urls.set_return_url('/settings/security')
        assert handler.complete({'token': 'xyz'}) == '/settings/security'
        assert return_urls.get_return_url() is None

    def test_query_return_url_beats_stored(self, handler, return_urls):
        return_urls.set_return_url('/settings')
        assert handler.complete({'token': 'xyz', 'return_url': '%2Fwallet'}) == '/wallet'
        # The stale stored value is drained, not left for a later login
        assert return_urls.get_return_url() is None

    def test_fires_once(self, handler, tokens):
        first = handler.complete({'token': 'first', 'return_url': '/wallet'})
        second = handler.complete({'token': 'second', 'return_url': '/settings'})
        assert first == second == '/wallet'
        assert tokens.get_token() == 'first'

    def test_completed_without_token_stays_completed(self, handler, tokens):
        handler.complete({})
        assert handler.complete({'token': 'late'}) == '/login'
        assert tokens.is_authenticated() is False
