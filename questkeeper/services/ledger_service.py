"""
questkeeper.services.ledger_service — Token Ledger & Completion History
========================================================================

Balance changes always go through :func:`credit_tokens`, which writes an
append-only :class:`TokenTransaction` row carrying the before/after
balances.  Completion history is keyed by quest id per user: one entry is
created when the participant completes and updated in place when they
are paid.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from questkeeper.database.models import QuestCompletion, RewardSource, TokenTransaction, User
from questkeeper.errors import UserNotFoundError

logger = logging.getLogger(__name__)

QUEST_REWARD_CATEGORY = "quest_reward"

# Sources that mean "tokens were actually paid for this entry"
_PAID_SOURCES = frozenset({RewardSource.IMMEDIATE.value, RewardSource.MONTHLY.value})


@dataclass
class CompletionEntry:
    """Values written into a user's completion history."""

    quest_id: str
    quest_type: str | None
    quest_title: str | None
    completed_at: datetime | None
    reward_source: RewardSource
    rewarded_at: datetime | None = None
    tokens_earned: int = 0
    items_earned: list[dict] = field(default_factory=list)


def get_user(session: Session, user_id: str) -> User:
    """Fetch a ledger record or raise :class:`UserNotFoundError`."""
    user = session.get(User, user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return user


def get_or_create_user(session: Session, user_id: str, username: str | None = None) -> User:
    """Fetch or insert a ledger record."""
    user = session.get(User, user_id)
    if user is None:
        user = User(id=user_id, username=username, tokens=0)
        session.add(user)
        session.flush()
    return user


def credit_tokens(
    session: Session,
    user_id: str,
    amount: int,
    *,
    category: str = QUEST_REWARD_CATEGORY,
    description: str | None = None,
) -> tuple[int, int]:
    """Add *amount* tokens to the user's balance.

    Returns ``(balance_before, balance_after)``.  Zero or negative amounts
    are ignored and leave no transaction row.
    """
    user = get_user(session, user_id)
    before = user.tokens or 0
    if amount <= 0:
        return before, before

    after = before + amount
    user.tokens = after
    session.add(TokenTransaction(
        user_id=user_id,
        amount=amount,
        type="earned",
        category=category,
        description=description,
        balance_before=before,
        balance_after=after,
    ))
    session.flush()
    logger.info(
        "Credited %d tokens to user %s (%d → %d) [%s]",
        amount, user_id, before, after, description or category,
    )
    return before, after


def record_completion(session: Session, user_id: str, entry: CompletionEntry) -> QuestCompletion:
    """Upsert the completion-history entry for ``(user_id, entry.quest_id)``.

    A ``pending`` write never overwrites an entry that already records a
    real payout, so the safeguard can run any number of times without
    erasing reward history.
    """
    user = get_user(session, user_id)
    existing = user.completions.get(entry.quest_id)

    if existing is None:
        existing = QuestCompletion(
            user_id=user_id,
            quest_id=entry.quest_id,
            quest_type=entry.quest_type,
            quest_title=entry.quest_title,
            completed_at=entry.completed_at,
            rewarded_at=entry.rewarded_at,
            tokens_earned=entry.tokens_earned,
            items_earned=list(entry.items_earned),
            reward_source=entry.reward_source.value,
        )
        user.completions[entry.quest_id] = existing
        session.flush()
        return existing

    if entry.reward_source is RewardSource.PENDING and existing.reward_source in _PAID_SOURCES:
        logger.debug(
            "Completion entry for user %s quest %s already paid (%s); keeping it",
            user_id, entry.quest_id, existing.reward_source,
        )
        return existing

    existing.quest_type = entry.quest_type or existing.quest_type
    existing.quest_title = entry.quest_title or existing.quest_title
    existing.completed_at = existing.completed_at or entry.completed_at
    existing.rewarded_at = entry.rewarded_at
    existing.tokens_earned = entry.tokens_earned
    existing.items_earned = list(entry.items_earned)
    existing.reward_source = entry.reward_source.value
    session.flush()
    return existing


def count_completions(session: Session, user_id: str, quest_type: str | None = None) -> int:
    """Number of distinct quests in a user's completion history."""
    stmt = select(func.count()).select_from(QuestCompletion).where(
        QuestCompletion.user_id == user_id
    )
    if quest_type is not None:
        stmt = stmt.where(QuestCompletion.quest_type == quest_type)
    return session.scalar(stmt) or 0
