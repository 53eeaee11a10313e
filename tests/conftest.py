"""
Pytest configuration and shared fixtures.

Test environment variables are set here, before any app module is imported,
and the settings cache is cleared so they take effect.
"""

import os

import pytest

os.environ["DATABASE_URL"] = "sqlite:///./test_forbias.db"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["SPOTIFY_CLIENT_ID"] = "test-client-id"
os.environ["SPOTIFY_CLIENT_SECRET"] = "test-client-secret"

# Clear settings cache before any app imports to ensure test env vars are used
from app.config import get_settings  # noqa: E402
get_settings.cache_clear()

from app.storage import InMemoryMedium, MessageStore  # noqa: E402


@pytest.fixture
def medium():
    return InMemoryMedium()


@pytest.fixture
def store(medium):
    return MessageStore(medium)


@pytest.fixture
def sam_draft():
    return {
        "recipientName": "Sam",
        "message": "hi",
        "songId": "abc",
        "songName": "Song",
        "artistName": "Artist",
        "albumImage": "http://x/y.png",
    }
