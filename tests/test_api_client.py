"""Tests for utils/api_client.py — envelope handling and error mapping."""
import pytest
import requests

from utils.api_client import BackendClient, BackendError, BackendUnavailableError


class FakeResponse:
    def __init__(self, status_code=200, payload=None, invalid_json=False):
        self.status_code = status_code
        self._payload = payload
        self._invalid_json = invalid_json

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._invalid_json:
            raise ValueError('Expecting value')
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def request(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        if self.error:
            raise self.error
        return self.response


def make_client(session, token=None):
    return BackendClient('https://api.test/api/', timeout=3, token_provider=lambda: token, session=session)


class TestBackendClient:
    def test_success_returns_envelope(self):
        session = FakeSession(FakeResponse(200, {'status': 'success', 'data': {'id': 1}}))
        assert make_client(session).get('/user') == {'status': 'success', 'data': {'id': 1}}

        method, url, kwargs = session.requests[0]
        assert method == 'GET'
        assert url == 'https://api.test/api/user'
        assert kwargs['timeout'] == 3

    def test_bearer_token_sent(self):
        session = FakeSession(FakeResponse(200, {'status': 'success'}))
        make_client(session, token='abc').get('/user')
        assert session.requests[0][2]['headers']['Authorization'] == 'Bearer abc'

    def test_unauthenticated_call_omits_token(self):
        session = FakeSession(FakeResponse(200, {'status': 'success'}))
        make_client(session, token='abc').get('/config', auth=False)
        assert 'Authorization' not in session.requests[0][2]['headers']

    def test_no_token_no_header(self):
        session = FakeSession(FakeResponse(200, {'status': 'success'}))
        make_client(session).post('/auth/login', json={'email': 'a@b.az'})
        headers = session.requests[0][2]['headers']
        assert 'Authorization' not in headers
        assert session.requests[0][2]['json'] == {'email': 'a@b.az'}

    def test_error_status_raises_with_message(self):
        session = FakeSession(FakeResponse(422, {'status': 'error', 'message': 'The email field is required.'}))
        with pytest.raises(BackendError) as exc:
            make_client(session).post('/auth/login', json={})
        assert exc.value.status == 422
        assert exc.value.message == 'The email field is required.'
        assert exc.value.payload['status'] == 'error'

    def test_invalid_json_raises(self):
        session = FakeSession(FakeResponse(200, invalid_json=True))
        with pytest.raises(BackendError) as exc:
            make_client(session).get('/config')
        assert not isinstance(exc.value, BackendUnavailableError)

    def test_non_object_payload_raises(self):
        session = FakeSession(FakeResponse(200, ['not', 'an', 'envelope']))
        with pytest.raises(BackendError):
            make_client(session).get('/config')

    @pytest.mark.parametrize('error', [requests.Timeout('slow'), requests.ConnectionError('refused')])
    def test_transport_failure_is_unavailable(self, error):
        with pytest.raises(BackendUnavailableError):
            make_client(FakeSession(error=error)).get('/config')

    def test_no_retry(self):
        session = FakeSession(error=requests.ConnectionError('refused'))
        with pytest.raises(BackendUnavailableError):
            make_client(session).post('/auth/logout')
        assert len(session.requests) == 1

    def test_url_for(self):
        assert make_client(FakeSession()).url_for('auth/google') == 'https://api.test/api/auth/google'
