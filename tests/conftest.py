"""Test fixtures for the control plane."""
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

os.environ.setdefault("GHOSTLAYER_BCRYPT_ROUNDS", "4")
os.environ.setdefault(
    "GHOSTLAYER_DB_URL",
    f"sqlite:///{(Path(tempfile.gettempdir()) / 'ghostlayer_test_default.db').as_posix()}",
)

from control import lifecycle  # noqa: E402
from control.auth import hash_password  # noqa: E402
from control.database import create_session_factory, init_db  # noqa: E402
from control.models import AppState  # noqa: E402
from control.state_manager import StateManager  # noqa: E402
from control.store import DocumentStore, StateStore  # noqa: E402

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
ADMIN_PASSWORD = "admin"


@pytest.fixture
def now():
    return T0


@pytest.fixture(scope="session")
def admin_hash():
    return hash_password(ADMIN_PASSWORD, rounds=4)


@pytest.fixture
def empty_state(admin_hash):
    return AppState(admin_password_hash=admin_hash, last_sync_time=T0, last_day_settlement=T0)


@pytest.fixture
def populated_state(empty_state):
    """Two servers, three users (two bound to the first server, one unbound)"""
    state = lifecycle.upsert_server(empty_state, "srv-a", name="Node A", config_link="vless://a")
    state = lifecycle.upsert_server(state, "srv-b", name="Node B", config_link="vless://b")
    state = lifecycle.create_user(state, "alice", server_id="srv-a", now=T0)
    state = lifecycle.create_user(state, "bob", server_id="srv-a", now=T0)
    state = lifecycle.create_user(state, "carol", now=T0)
    return state


@pytest.fixture
def session_factory(tmp_path):
    engine, factory = create_session_factory(f"sqlite:///{(tmp_path / 'state.db').as_posix()}")
    init_db(engine)
    yield factory
    engine.dispose()


@pytest.fixture
def documents(session_factory):
    return DocumentStore(session_factory)


@pytest.fixture
def store(documents):
    return StateStore(documents, key="test_state", clock=lambda: T0)


@pytest.fixture
def manager(store):
    return StateManager(store)
