"""
tests/conftest.py -- Shared test fixtures for Lodgekeeper.

This module provides:
  - RecordingChannel: notification channel that keeps every payload in memory
  - store / flows: unit-level fixtures over an in-memory AuthStore
  - client: TestClient over the real app with a patched lifespan

Design: the client fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. Each test gets its own DB name so sessions and accounts never
leak between tests.

The DEBUG env var must be set before any core/auth import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app, build_auth
from auth.flows import AuthFlows
from auth.models import Notification
from auth.store import AuthStore
from core.config import get_settings


class RecordingChannel:
    """Notification channel that records payloads instead of sending them."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    def deliver(self, notification: Notification) -> None:
        self.sent.append(notification)

    def last(self, purpose: str) -> Notification:
        matches = [n for n in self.sent if n.purpose == purpose]
        assert matches, f"no {purpose} notification was sent"
        return matches[-1]


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[AuthStore, None, None]:
    s = AuthStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def flows(store: AuthStore, channel: RecordingChannel) -> AuthFlows:
    """AuthFlows wired exactly like the app, with inline mail delivery."""
    return build_auth(get_settings(), store, channel)


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(store: AuthStore, channel: RecordingChannel):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store and recording channel into app.state so routes see
    an isolated DB and no mail leaves the process.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = get_settings()
        app.state.store = store
        app.state.auth = build_auth(app.state.settings, store, channel)
        yield

    return test_lifespan


@pytest.fixture
def client(channel: RecordingChannel) -> Generator[TestClient, None, None]:
    """Yield a TestClient with its own shared-memory DB and cookie jar."""
    db_url = f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    test_store = AuthStore(db_url=db_url)
    app.router.lifespan_context = _patch_lifespan(test_store, channel)

    with TestClient(app, raise_server_exceptions=True) as c:
        yield c

    test_store.close()


@pytest.fixture
def cookie_name() -> str:
    return get_settings().session_cookie_name
