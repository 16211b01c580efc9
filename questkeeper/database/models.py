"""
questkeeper.database.models — SQLAlchemy 2.0 Data Models
=========================================================

Tables:
- quests                  — Quest definitions, reward expressions, lifecycle
- quest_participants      — One row per (quest, user); progress + reward state
- participant_submissions — Art/writing submissions attached to a participant
- users                   — Token ledger balance per Discord user
- quest_completions       — Completion history, one entry per (user, quest)
- token_transactions      — Append-only token audit trail
- characters              — Roleplay characters (job + job voucher)
- items                   — Item catalog
- inventory_items         — One stack per (character, item)
- inventory_logs          — Append-only item acquisition journal
- approved_submissions    — Moderator-approved art/writing, keyed by quest event

Discord snowflakes are stored as strings throughout; they are identifiers,
never numbers.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    attribute_keyed_dict,
    mapped_column,
    relationship,
)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all QuestKeeper ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class QuestType(enum.StrEnum):
    """Kinds of quest, each with its own completion rule."""
    ART = "Art"
    WRITING = "Writing"
    INTERACTIVE = "Interactive"
    RP = "RP"
    ART_WRITING = "Art/Writing"

    @classmethod
    def parse(cls, value: str | None) -> QuestType | None:
        """Case-insensitive lookup that also accepts ``"Art / Writing"``."""
        if not value:
            return None
        key = "/".join(part.strip() for part in value.split("/")).lower()
        for member in cls:
            if member.value.lower() == key:
                return member
        return None


SUBMISSION_QUEST_TYPES = frozenset({
    QuestType.ART,
    QuestType.WRITING,
    QuestType.ART_WRITING,
})


class QuestStatus(enum.StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"


class ProgressStatus(enum.StrEnum):
    """Lifecycle of a single participant within a quest."""
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    REWARDED = "rewarded"
    DISQUALIFIED = "disqualified"


INELIGIBLE_PROGRESS = frozenset({ProgressStatus.FAILED, ProgressStatus.DISQUALIFIED})


class SubmissionType(enum.StrEnum):
    ART = "art"
    WRITING = "writing"


class ArtWritingMode(enum.StrEnum):
    EITHER = "either"
    BOTH = "both"


class RewardSource(enum.StrEnum):
    """Which path produced a completion-history entry."""
    IMMEDIATE = "immediate"
    MONTHLY = "monthly"
    PENDING = "pending"


class CompletionReason(enum.StrEnum):
    TIME_EXPIRED = "time_expired"
    ALL_PARTICIPANTS_COMPLETED = "all_participants_completed"
    MANUAL = "manual"


# ---------------------------------------------------------------------------
# Quests
# ---------------------------------------------------------------------------
class Quest(Base):
    __tablename__ = "quests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    quest_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    quest_type: Mapped[str] = mapped_column(String(32), nullable=False)

    # Raw reward expression, e.g. "flat:100 collab_bonus:20", "250" or "No reward"
    token_reward: Mapped[str | None] = mapped_column(Text, default=None)
    item_rewards: Mapped[list | None] = mapped_column(JSONB, default=list)
    item_reward: Mapped[str | None] = mapped_column(String(100), default=None)
    item_reward_qty: Mapped[int | None] = mapped_column(Integer, default=None)

    # Completion thresholds
    post_requirement: Mapped[int | None] = mapped_column(Integer, default=None)
    required_rolls: Mapped[int | None] = mapped_column(Integer, default=None)
    art_writing_mode: Mapped[str] = mapped_column(
        String(16), default=ArtWritingMode.BOTH.value
    )

    # Lifecycle
    status: Mapped[str] = mapped_column(String(16), default=QuestStatus.ACTIVE.value)
    completion_processed: Mapped[bool] = mapped_column(Boolean, default=False)
    completion_reason: Mapped[str | None] = mapped_column(String(32), default=None)
    time_limit: Mapped[str | None] = mapped_column(String(50), default=None)
    posted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    target_channel_id: Mapped[str | None] = mapped_column(String(32), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Participants keyed by Discord user id, in join order
    participants: Mapped[dict[str, QuestParticipant]] = relationship(
        back_populates="quest",
        collection_class=attribute_keyed_dict("user_id"),
        cascade="all, delete-orphan",
        order_by="QuestParticipant.id",
    )

    __table_args__ = (
        Index("ix_quests_status", "status"),
    )

    @property
    def type_enum(self) -> QuestType | None:
        return QuestType.parse(self.quest_type)

    def __repr__(self) -> str:
        return f"<Quest {self.quest_id} {self.title!r} type={self.quest_type} status={self.status}>"


class QuestParticipant(Base):
    __tablename__ = "quest_participants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    quest_pk: Mapped[int] = mapped_column(
        ForeignKey("quests.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(32), nullable=False)
    character_name: Mapped[str] = mapped_column(String(100), nullable=False)

    progress: Mapped[str] = mapped_column(String(16), default=ProgressStatus.ACTIVE.value)
    rp_post_count: Mapped[int] = mapped_column(Integer, default=0)
    successful_rolls: Mapped[int] = mapped_column(Integer, default=0)
    units: Mapped[int] = mapped_column(Integer, default=0)

    # Reward bookkeeping
    tokens_earned: Mapped[int] = mapped_column(Integer, default=0)
    items_earned: Mapped[list | None] = mapped_column(JSONB, default=list)
    reward_processed: Mapped[bool] = mapped_column(Boolean, default=False)
    reward_source: Mapped[str | None] = mapped_column(String(16), default=None)

    joined_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    rewarded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    last_reward_check: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

    quest: Mapped[Quest] = relationship(back_populates="participants")
    submissions: Mapped[list[ParticipantSubmission]] = relationship(
        back_populates="participant",
        cascade="all, delete-orphan",
        order_by="ParticipantSubmission.id",
    )

    __table_args__ = (
        UniqueConstraint("quest_pk", "user_id", name="uq_quest_participants_quest_user"),
    )

    def __repr__(self) -> str:
        return (
            f"<QuestParticipant user={self.user_id} char={self.character_name!r} "
            f"progress={self.progress}>"
        )


class ParticipantSubmission(Base):
    __tablename__ = "participant_submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    participant_id: Mapped[int] = mapped_column(
        ForeignKey("quest_participants.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    url: Mapped[str | None] = mapped_column(Text, default=None)
    approved: Mapped[bool] = mapped_column(Boolean, default=False)
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    approved_by: Mapped[str | None] = mapped_column(String(100), default=None)
    submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    participant: Mapped[QuestParticipant] = relationship(back_populates="submissions")


# ---------------------------------------------------------------------------
# Ledger: balances and the token audit trail
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    username: Mapped[str | None] = mapped_column(String(100), default=None)
    tokens: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    completions: Mapped[dict[str, QuestCompletion]] = relationship(
        back_populates="user",
        collection_class=attribute_keyed_dict("quest_id"),
        cascade="all, delete-orphan",
    )
    transactions: Mapped[list[TokenTransaction]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} tokens={self.tokens}>"


class QuestCompletion(Base):
    __tablename__ = "quest_completions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    quest_id: Mapped[str] = mapped_column(String(64), nullable=False)
    quest_type: Mapped[str | None] = mapped_column(String(32), default=None)
    quest_title: Mapped[str | None] = mapped_column(String(200), default=None)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    rewarded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    tokens_earned: Mapped[int] = mapped_column(Integer, default=0)
    items_earned: Mapped[list | None] = mapped_column(JSONB, default=list)
    reward_source: Mapped[str] = mapped_column(
        String(16), default=RewardSource.PENDING.value
    )

    user: Mapped[User] = relationship(back_populates="completions")

    __table_args__ = (
        UniqueConstraint("user_id", "quest_id", name="uq_quest_completions_user_quest"),
    )


class TokenTransaction(Base):
    __tablename__ = "token_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(16), default="earned")
    category: Mapped[str | None] = mapped_column(String(50), default=None)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    balance_before: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="transactions")

    __table_args__ = (
        Index("ix_token_transactions_user_time", "user_id", "created_at"),
    )


# ---------------------------------------------------------------------------
# Characters
# ---------------------------------------------------------------------------
class Character(Base):
    __tablename__ = "characters"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    job: Mapped[str | None] = mapped_column(String(50), default=None)
    job_voucher: Mapped[bool] = mapped_column(Boolean, default=False)
    job_voucher_job: Mapped[str | None] = mapped_column(String(50), default=None)
    current_village: Mapped[str | None] = mapped_column(String(50), default=None)

    inventory: Mapped[list[InventoryItem]] = relationship(
        back_populates="character", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_characters_user_name"),
    )

    def __repr__(self) -> str:
        return f"<Character {self.name!r} user={self.user_id} job={self.job}>"


# ---------------------------------------------------------------------------
# Items & inventory
# ---------------------------------------------------------------------------
class Item(Base):
    __tablename__ = "items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    item_name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    category: Mapped[str | None] = mapped_column(String(50), default=None)
    emoji: Mapped[str | None] = mapped_column(String(64), default=None)


class InventoryItem(Base):
    __tablename__ = "inventory_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    character_id: Mapped[int] = mapped_column(
        ForeignKey("characters.id", ondelete="CASCADE"), nullable=False
    )
    item_id: Mapped[int] = mapped_column(ForeignKey("items.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=0)
    obtain: Mapped[str | None] = mapped_column(String(200), default=None)
    date_added: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    character: Mapped[Character] = relationship(back_populates="inventory")
    item: Mapped[Item] = relationship()

    __table_args__ = (
        UniqueConstraint("character_id", "item_id", name="uq_inventory_character_item"),
    )


class InventoryLog(Base):
    __tablename__ = "inventory_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    character_id: Mapped[int] = mapped_column(
        ForeignKey("characters.id", ondelete="CASCADE"), nullable=False
    )
    character_name: Mapped[str] = mapped_column(String(100), nullable=False)
    item_name: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    obtain: Mapped[str | None] = mapped_column(String(200), default=None)
    location: Mapped[str | None] = mapped_column(String(50), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_inventory_logs_character_time", "character_id", "created_at"),
    )


# ---------------------------------------------------------------------------
# Approved submissions (written by the submission-approval workflow)
# ---------------------------------------------------------------------------
class ApprovedSubmission(Base):
    __tablename__ = "approved_submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    quest_event: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str] = mapped_column(String(32), nullable=False)
    category: Mapped[str] = mapped_column(String(16), nullable=False)
    title: Mapped[str | None] = mapped_column(String(200), default=None)
    message_url: Mapped[str | None] = mapped_column(Text, default=None)
    file_url: Mapped[str | None] = mapped_column(Text, default=None)
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    approved_by: Mapped[str | None] = mapped_column(String(100), default=None)

    __table_args__ = (
        Index("ix_approved_submissions_quest_user", "quest_event", "user_id"),
    )
