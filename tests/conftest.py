"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of questkeeper.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

from datetime import UTC, datetime  # noqa: E402
from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine, event  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from questkeeper.config import QuestKeeperConfig, RewardSettings  # noqa: E402
from questkeeper.database.models import (  # noqa: E402
    ApprovedSubmission,
    Base,
    Character,
    Item,
    ParticipantSubmission,
    Quest,
    QuestParticipant,
    User,
)

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all QuestKeeper tables.

    pysqlite's own transaction handling breaks SAVEPOINTs, so the driver is
    put in autocommit mode and SQLAlchemy emits BEGIN itself.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_txn(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def settings() -> RewardSettings:
    return RewardSettings()


@pytest.fixture
def config(settings) -> QuestKeeperConfig:
    return QuestKeeperConfig(
        community_name="Test Realm",
        bot_prefix="!",
        guild_id=100,
        admin_role_id=999,
        rewards=settings,
        rewards_channel_id=555,
    )


@pytest.fixture
def notifier() -> MagicMock:
    return MagicMock()


# ---------------------------------------------------------------------------
# Seeding helpers
# ---------------------------------------------------------------------------
class Seeder:
    """Inserts fixture rows, each call in its own committed session."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def user(self, user_id: str, tokens: int = 0) -> None:
        with Session(self.engine) as session:
            session.add(User(id=user_id, username=f"user-{user_id}", tokens=tokens))
            session.commit()

    def character(
        self,
        user_id: str,
        name: str,
        job: str | None = "Farmer",
        voucher_job: str | None = None,
    ) -> None:
        with Session(self.engine) as session:
            session.add(Character(
                user_id=user_id,
                name=name,
                job=job,
                job_voucher=voucher_job is not None,
                job_voucher_job=voucher_job,
                current_village="Rudania",
            ))
            session.commit()

    def item(self, name: str) -> None:
        with Session(self.engine) as session:
            session.add(Item(item_name=name))
            session.commit()

    def quest(
        self,
        quest_id: str = "Q100",
        quest_type: str = "RP",
        token_reward: str | None = "flat:100",
        participants: list[dict] | None = None,
        with_ledger: bool = True,
        **fields,
    ) -> None:
        """Create a quest; each participant dict may carry ``submissions``
        as ``(type, url, approved, approved_at)`` tuples and a ``job``."""
        with Session(self.engine) as session:
            quest = Quest(
                quest_id=quest_id,
                title=fields.pop("title", f"Quest {quest_id}"),
                quest_type=quest_type,
                token_reward=token_reward,
                **fields,
            )
            for spec in participants or []:
                spec = dict(spec)
                submissions = spec.pop("submissions", [])
                job = spec.pop("job", "Farmer")
                voucher_job = spec.pop("voucher_job", None)
                participant = QuestParticipant(**spec)
                for kind, url, approved, approved_at in submissions:
                    participant.submissions.append(ParticipantSubmission(
                        type=kind, url=url, approved=approved, approved_at=approved_at,
                    ))
                quest.participants[participant.user_id] = participant

                if with_ledger:
                    if session.get(User, participant.user_id) is None:
                        session.add(User(id=participant.user_id, tokens=0))
                    session.add(Character(
                        user_id=participant.user_id,
                        name=participant.character_name,
                        job=job,
                        job_voucher=voucher_job is not None,
                        job_voucher_job=voucher_job,
                    ))
            session.add(quest)
            session.commit()

    def approval(
        self,
        quest_id: str,
        user_id: str,
        category: str,
        url: str,
        approved_at: datetime | None = None,
    ) -> None:
        with Session(self.engine) as session:
            session.add(ApprovedSubmission(
                quest_event=quest_id,
                user_id=user_id,
                category=category,
                message_url=url,
                approved_at=approved_at or datetime(2026, 3, 1, 12, 0, tzinfo=UTC),
                approved_by="mod",
            ))
            session.commit()


@pytest.fixture
def seed(db_engine) -> Seeder:
    return Seeder(db_engine)


@pytest.fixture
def admin_token():
    """Generate a valid admin JWT for use in API integration tests."""
    return make_admin_token()


def make_admin_token(sub: str = "99999", username: str = "FixtureAdmin") -> str:
    """Create an admin JWT.  Usable as both a fixture and a factory function."""
    import jwt

    from questkeeper.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "username": username, "is_admin": True},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )
