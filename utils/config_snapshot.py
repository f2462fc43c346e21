"""
Feature-flag snapshot fetched once from the backend at startup.

Readers get the built-in defaults until the fetch resolves (``is_loading``
tells them whether that is still the case). A failed fetch is not retried:
the defaults stay in place for the lifetime of the process.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeatureConfig:
    app_name: str
    wallet_enabled: bool


def parse_config_payload(payload: Any, defaults: FeatureConfig) -> Optional[FeatureConfig]:
    """
    Build a FeatureConfig from a GET /config envelope.

    Fields are defaulted one by one, so a payload missing ``app_name`` or
    ``features.wallet_enabled`` is still a success. Returns None when the
    envelope itself is not a success.
    """
    if not isinstance(payload, dict) or payload.get('status') != 'success':
        return None
    data = payload.get('data')
    if not isinstance(data, dict):
        return None

    features = data.get('features')
    wallet_enabled = features.get('wallet_enabled') if isinstance(features, dict) else None

    return FeatureConfig(
        app_name=data.get('app_name') or defaults.app_name,
        wallet_enabled=defaults.wallet_enabled if wallet_enabled is None else bool(wallet_enabled),
    )


class ConfigSnapshot:
    def __init__(self, defaults: FeatureConfig):
        self.defaults = defaults
        self._value = defaults
        self._loading = True
        self._started = False
        self._lock = threading.Lock()

    @property
    def value(self) -> FeatureConfig:
        return self._value

    @property
    def app_name(self) -> str:
        return self._value.app_name

    @property
    def wallet_enabled(self) -> bool:
        return self._value.wallet_enabled

    @property
    def is_loading(self) -> bool:
        return self._loading

    def load(self, fetch: Callable[[], Any]) -> FeatureConfig:
        """Run the one and only fetch. Later calls return the current value."""
        with self._lock:
            if self._started:
                return self._value
            self._started = True

        try:
            parsed = parse_config_payload(fetch(), self.defaults)
            if parsed is None:
                logger.warning("Config endpoint returned a non-success payload, using defaults")
                self._value = self.defaults
            else:
                self._value = parsed
        except Exception as e:
            logger.warning("Failed to fetch config from API, using defaults: %s", e)
            self._value = self.defaults
        finally:
            self._loading = False

        return self._value

    def start(self, fetch: Callable[[], Any]) -> threading.Thread:
        """Run load() in the background so app startup doesn't wait on the backend."""
        thread = threading.Thread(target=self.load, args=(fetch,), name='config-snapshot', daemon=True)
        thread.start()
        return thread

    def as_dict(self) -> dict:
        return {
            'app_name': self.app_name,
            'features': {'wallet_enabled': self.wallet_enabled},
            'is_loading': self.is_loading,
        }
