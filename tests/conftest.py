"""Shared fixtures: a scripted backend and an app wired to in-memory storage."""
import pytest

from app import create_app
from tests.fakes import FakeBackend
from utils.storage import MemoryStorage


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def token_storage():
    return MemoryStorage()


@pytest.fixture
def return_url_storage():
    return MemoryStorage()


@pytest.fixture
def flask_app(backend, token_storage, return_url_storage):
    application = create_app(
        api_client=backend,
        token_storage=token_storage,
        return_url_storage=return_url_storage,
        fetch_config=False,
    )
    application.config['TESTING'] = True
    return application


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()
