"""
Pytest fixtures for testing.

Provides:
- Subjects (signed in and anonymous)
- Settings isolation
"""

import pytest

from fieldroles.config import AuthSettings, get_settings

from support import User


@pytest.fixture
def current_user() -> User:
    """Signed-in subject."""
    return User("current_user")


@pytest.fixture
def guest():
    """Anonymous subject."""
    return None


@pytest.fixture
def fresh_settings(monkeypatch):
    """
    Build AuthSettings from a patched environment.

    Usage:
        def test_x(fresh_settings):
            settings = fresh_settings(FIELDROLES_MAX_ASSOCIATION_DEPTH="4")
    """

    def build(**env: str) -> AuthSettings:
        for key, value in env.items():
            monkeypatch.setenv(key, value)
        get_settings.cache_clear()
        return get_settings()

    yield build
    get_settings.cache_clear()
