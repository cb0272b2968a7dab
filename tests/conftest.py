"""
Shared test fixtures for Empire.

This module provides common fixtures used across all test modules:
- Environment setup (dev mode)
- Store client over an in-memory SQLite database (service role, schema created)
- A fixed clock (Wednesday 2026-03-11, 09:00 UTC)
- User ids and a bearer token factory matching the auth provider's tokens
- A category tree with one top-level category and one subcategory

Usage:
    All fixtures are automatically available to any test in the tests/ directory.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta

import jwt as pyjwt
import pytest

# ---------------------------------------------------------------------------
# 1. Environment setup -- must run before any application imports
# ---------------------------------------------------------------------------

os.environ.setdefault("EMPIRE_DEV_MODE", "1")

from empire.models.category import Category  # noqa: E402
from empire.store.client import StoreClient, StoreConfig, StoreRole  # noqa: E402

USER_ID = "0b7c1a52-5f0e-4a43-9d6e-3f1c2a7b8e01"
OTHER_USER_ID = "7d2e9c41-0a6b-4f58-8c3d-1e2f3a4b5c6d"

JWT_SECRET = "test-jwt-secret-for-unit-tests-at-least-32-bytes"

FIXED_NOW = datetime(2026, 3, 11, 9, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# 2. store -- in-memory SQLite store with every table created
# ---------------------------------------------------------------------------

@pytest.fixture()
def store() -> Iterator[StoreClient]:
    """
    Provide a StoreClient backed by a fresh in-memory SQLite database.

    The client runs in the service context so the schema can be created.
    Sleeps between read retries are skipped.
    """
    client = StoreClient(
        StoreConfig("sqlite:///:memory:", key="test-service-key", role=StoreRole.SERVICE),
        sleep=lambda _delay: None,
    )
    client.create_schema()
    yield client
    client.dispose()


# ---------------------------------------------------------------------------
# 3. clock -- fixed "now" for date-dependent services
# ---------------------------------------------------------------------------

@pytest.fixture()
def clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


# ---------------------------------------------------------------------------
# 4. users and tokens
# ---------------------------------------------------------------------------

@pytest.fixture()
def user_id() -> str:
    return USER_ID


@pytest.fixture()
def other_user_id() -> str:
    return OTHER_USER_ID


@pytest.fixture()
def make_token() -> Callable[..., str]:
    """
    Factory for provider-style bearer tokens.

    Example usage in a test::

        def test_me(make_token):
            token = make_token(sub=USER_ID)
            expired = make_token(expires_in=timedelta(minutes=-5))
    """

    def _make(
        sub: str = USER_ID,
        *,
        audience: str = "authenticated",
        expires_in: timedelta = timedelta(hours=1),
        secret: str = JWT_SECRET,
        **claims: object,
    ) -> str:
        payload = {
            "sub": sub,
            "aud": audience,
            "exp": datetime.now(UTC) + expires_in,
            "role": "authenticated",
            **claims,
        }
        return pyjwt.encode(payload, secret, algorithm="HS256")

    return _make


# ---------------------------------------------------------------------------
# 5. categories -- "Health" with the "Fitness" subcategory
# ---------------------------------------------------------------------------

@pytest.fixture()
def categories(store: StoreClient) -> dict[str, str]:
    """
    Create a top-level category and a subcategory for USER_ID.

    Returns:
        {"top": <Health id>, "child": <Fitness id>}
    """
    top_id = str(uuid.uuid4())
    child_id = str(uuid.uuid4())
    with store.session() as session:
        session.add(Category(id=top_id, user_id=USER_ID, name="Health"))
        session.flush()
        session.add(Category(id=child_id, user_id=USER_ID, name="Fitness", parent_id=top_id))
    return {"top": top_id, "child": child_id}
