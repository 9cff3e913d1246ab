"""Shared fixtures: a migrated in-memory SQLite database per test.

bcrypt runs with the minimum work factor so the suite stays fast.
"""
import os
import sys
from types import SimpleNamespace

# Add server/ to path so the jokes_api package imports without installation
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))
sys.path.insert(0, os.path.dirname(__file__))

os.environ["JOKES_BCRYPT_ROUNDS"] = "4"
os.environ["JOKES_DATABASE_URL"] = "sqlite://"

import pytest

from jokes_api.config import get_settings

get_settings.cache_clear()

from jokes_api.database import create_db_engine, get_db_for
from jokes_api.migrations import initialize_database

from factories import create_category, create_user


@pytest.fixture
def engine():
    """Fresh, migrated in-memory database."""
    engine = create_db_engine("sqlite://")
    with get_db_for(engine) as cursor:
        initialize_database(cursor)
    yield engine
    engine.dispose()


@pytest.fixture
def cursor(engine):
    """One cursor for the whole test. Do not combine with engine-level calls."""
    with get_db_for(engine) as cur:
        yield cur


@pytest.fixture
def world(cursor):
    """Two clients, one user per elevated role, one active and one deleted category."""
    return SimpleNamespace(
        owner=create_user(cursor, "client"),
        other=create_user(cursor, "client"),
        staff=create_user(cursor, "staff"),
        admin=create_user(cursor, "admin"),
        superuser=create_user(cursor, "superuser"),
        puns=create_category(cursor, "Puns"),
        retired=create_category(cursor, "Retired", deleted=True),
    )
