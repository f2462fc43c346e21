"""Tests for utils/config_snapshot.py — one-shot feature config with fallback."""
import json

import pytest
import requests

from utils.config_snapshot import ConfigSnapshot, FeatureConfig, parse_config_payload

DEFAULTS = FeatureConfig(app_name='Kimlik.az', wallet_enabled=False)


@pytest.fixture
def snapshot():
    return ConfigSnapshot(DEFAULTS)


class CountingFetch:
    def __init__(self, result):
        self.result = result
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class TestParseConfigPayload:
    def test_full_payload(self):
        payload = {'status': 'success', 'data': {'app_name': 'Pay.az', 'features': {'wallet_enabled': True}}}
        assert parse_config_payload(payload, DEFAULTS) == FeatureConfig('Pay.az', True)

    def test_missing_app_name_keeps_default(self):
        payload = {'status': 'success', 'data': {'features': {'wallet_enabled': True}}}
        assert parse_config_payload(payload, DEFAULTS) == FeatureConfig('Kimlik.az', True)

    def test_missing_wallet_flag_keeps_default(self):
        payload = {'status': 'success', 'data': {'app_name': 'Pay.az'}}
        assert parse_config_payload(payload, DEFAULTS) == FeatureConfig('Pay.az', False)

    def test_explicit_false_overrides_true_default(self):
        payload = {'status': 'success', 'data': {'features': {'wallet_enabled': False}}}
        defaults = FeatureConfig('Kimlik.az', True)
        assert parse_config_payload(payload, defaults).wallet_enabled is False

    @pytest.mark.parametrize('payload', [
        None, [], 'oops', {'status': 'error'}, {'status': 'success'}, {'status': 'success', 'data': []},
    ])
    def test_non_success_is_none(self, payload):
        assert parse_config_payload(payload, DEFAULTS) is None


class TestConfigSnapshot:
    def test_defaults_while_loading(self, snapshot):
        assert snapshot.is_loading is True
        assert snapshot.value == DEFAULTS

    def test_success(self, snapshot):
        snapshot.load(lambda: {'status': 'success', 'data': {'app_name': 'Pay.az', 'features': {'wallet_enabled': True}}})
        assert snapshot.app_name == 'Pay.az'
        assert snapshot.wallet_enabled is True
        assert snapshot.is_loading is False

    def test_timeout_falls_back(self, snapshot):
        snapshot.load(CountingFetch(requests.Timeout('read timed out')))
        assert snapshot.value == DEFAULTS
        assert snapshot.is_loading is False

    def test_malformed_json_falls_back(self, snapshot):
        def fetch():
            return json.loads('{not json')
        snapshot.load(fetch)
        assert snapshot.value == DEFAULTS
        assert snapshot.is_loading is False

    def test_error_envelope_falls_back(self, snapshot):
        snapshot.load(lambda: {'status': 'error', 'message': 'maintenance'})
        assert snapshot.value == DEFAULTS
        assert snapshot.is_loading is False

    def test_no_retry_after_failure(self, snapshot):
        fetch = CountingFetch(requests.ConnectionError('refused'))
        snapshot.load(fetch)
        snapshot.load(fetch)
        assert fetch.calls == 1

    def test_immutable_after_success(self, snapshot):
        snapshot.load(lambda: {'status': 'success', 'data': {'app_name': 'Pay.az'}})
        later = CountingFetch({'status': 'success', 'data': {'app_name': 'Other'}})
        snapshot.load(later)
        assert snapshot.app_name == 'Pay.az'
        assert later.calls == 0

    def test_start_runs_in_background(self, snapshot):
        thread = snapshot.start(lambda: {'status': 'success', 'data': {'app_name': 'Pay.az'}})
        thread.join(timeout=5)
        assert snapshot.app_name == 'Pay.az'
        assert snapshot.is_loading is False

    def test_as_dict(self, snapshot):
        assert snapshot.as_dict() == {
            'app_name': 'Kimlik.az',
            'features': {'wallet_enabled': False},
            'is_loading': True,
        }
