"""Tests for settings and database URL handling."""
from pathlib import Path

import pytest

from little_bell.config import Settings, database_path_from_url


@pytest.mark.parametrize(
    "database_url, expected",
    [
        ("sqlite:data/tracking.db", "sqlite+aiosqlite:///data/tracking.db"),
        ("sqlite:///data/tracking.db", "sqlite+aiosqlite:///data/tracking.db"),
        ("sqlite:////var/lib/bell.db", "sqlite+aiosqlite:////var/lib/bell.db"),
        ("sqlite+aiosqlite:///x.db", "sqlite+aiosqlite:///x.db"),
        (":memory:", "sqlite+aiosqlite://"),
        ("tracking.db", "sqlite+aiosqlite:///tracking.db"),
    ],
)
def test_database_url_is_normalized_to_aiosqlite(database_url, expected):
    assert Settings(database_url=database_url).get_database_url == expected


def test_database_path():
    assert Settings(database_url="sqlite:data/tracking.db").database_path == Path("data/tracking.db")
    assert Settings(database_url=":memory:").database_path is None
    assert database_path_from_url("sqlite+aiosqlite:///:memory:") is None


def test_base_url_trailing_slash_is_stripped():
    assert Settings(base_url="https://t.example.com/").base_url == "https://t.example.com"


def test_defaults():
    settings = Settings(_env_file=None)
    assert settings.store_write_timeout > 0
    assert settings.recent_events_limit == 50
