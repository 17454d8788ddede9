"""Pytest shared fixtures for directory tests."""
import pathlib
import sys

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from davdir.config import AppConfig
from davdir.core import (
    DISPLAYNAME,
    EMAIL_ADDRESS,
    DigestCredentials,
    PrincipalStore,
    create_engine_for_url,
    init_schema,
)
from scripts import audit


# ─────────────────────────────────────────────────────────────────────────────
# Audit isolation
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture(autouse=True)
def temp_audit_dir(monkeypatch, tmp_path):
    """Keep every test's audit trail in its own directory."""
    audit_dir = tmp_path / "audit"
    audit_file = audit_dir / "directory-events.jsonl"
    monkeypatch.setattr(audit, "AUDIT_LOG_DIR", audit_dir)
    monkeypatch.setattr(audit, "AUDIT_LOG_FILE", audit_file)
    monkeypatch.setenv("AUDIT_LOG_SIGNING_KEY", "test-signing-key-for-audit-trail")
    return audit_dir, audit_file


# ─────────────────────────────────────────────────────────────────────────────
# Relational store
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture()
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'davdir.db'}"


@pytest.fixture()
def engine(database_url):
    """SQLite engine with the directory schema created."""
    engine = create_engine_for_url(database_url)
    init_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def store(engine):
    return PrincipalStore(engine)


@pytest.fixture()
def credentials(engine):
    return DigestCredentials(engine)


SEED_PRINCIPALS = [
    ("principals/users/alice", {DISPLAYNAME: "Alice Smith", EMAIL_ADDRESS: "alice@example.com"}),
    ("principals/users/bob", {DISPLAYNAME: "Bob", EMAIL_ADDRESS: "bob@example.org"}),
    ("principals/users/carol", {DISPLAYNAME: "Carol Jones"}),
    ("principals/groups/admins", {DISPLAYNAME: "Administrators"}),
    ("principals/groups/staff", {DISPLAYNAME: "Staff"}),
]


@pytest.fixture()
def seeded_store(store):
    """Store holding three users and two groups."""
    for uri, properties in SEED_PRINCIPALS:
        store.create_principal(uri, properties)
    return store


# ─────────────────────────────────────────────────────────────────────────────
# Flask Test Client
# ─────────────────────────────────────────────────────────────────────────────
API_TOKEN = "test-api-token"


def make_config(**overrides) -> AppConfig:
    base = dict(
        demo_mode=False,
        database_url="sqlite://",
        principals_table="principals",
        group_members_table="groupmembers",
        users_table="users",
        users_realm_column="",
        principal_prefix="principals/users",
        extra_fields={},
        api_token=API_TOKEN,
    )
    base.update(overrides)
    return AppConfig(**base)


@pytest.fixture()
def app(engine, seeded_store):
    from davdir.flask_app import create_app

    flask_app = create_app(make_config(), engine=engine)
    flask_app.config.update(TESTING=True)
    return flask_app


@pytest.fixture()
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture()
def auth_headers():
    return {"Authorization": f"Bearer {API_TOKEN}"}


@pytest.fixture()
def config_factory():
    """Build an AppConfig with test defaults and the given overrides."""
    return make_config
