"""
tests/test_distribution.py — Reward Distributor & Ledger Tests
===============================================================
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from questkeeper.database.models import (
    Quest,
    QuestParticipant,
    RewardSource,
    TokenTransaction,
    User,
)
from questkeeper.errors import InvalidQuantityError
from questkeeper.services.character_service import find_character
from questkeeper.services.completion_service import mark_completed
from questkeeper.services.distribution_service import distribute_rewards, quest_item_rewards
from questkeeper.services.inventory_service import grant_item, inventory_quantity, resolve_item
from questkeeper.services.ledger_service import (
    CompletionEntry,
    count_completions,
    credit_tokens,
    record_completion,
)


def _load(session: Session, quest_id: str, user_id: str) -> tuple[Quest, QuestParticipant]:
    quest = session.scalar(select(Quest).where(Quest.quest_id == quest_id))
    return quest, quest.participants[user_id]


# ---------------------------------------------------------------------------
# distribute_rewards
# ---------------------------------------------------------------------------
class TestDistributeRewards:
    def test_tokens_and_items(self, db_engine, seed):
        seed.item("Fairy")
        seed.quest(
            "Q1", "RP", "flat:100",
            item_rewards=[{"name": "Fairy", "quantity": 2}],
            participants=[{"user_id": "u1", "character_name": "Link", "progress": "completed"}],
        )
        with Session(db_engine) as session:
            quest, participant = _load(session, "Q1", "u1")
            result = distribute_rewards(session, quest, participant, None)
            session.commit()

            assert result.success
            assert result.tokens_added == 100
            assert result.items_distributed == [{"name": "Fairy", "quantity": 2}]
            assert result.errors == []
            assert session.get(User, "u1").tokens == 100
            character = find_character(session, "u1", "Link")
            assert inventory_quantity(session, character, "fairy") == 2

    def test_distribution_leaves_participant_bookkeeping_alone(self, db_engine, seed):
        seed.quest("Q1", "RP", "flat:10", participants=[
            {"user_id": "u1", "character_name": "Link", "progress": "completed"},
        ])
        with Session(db_engine) as session:
            quest, participant = _load(session, "Q1", "u1")
            distribute_rewards(session, quest, participant, None)
            assert participant.progress == "completed"
            assert participant.tokens_earned == 0
            assert participant.reward_processed is False

    def test_missing_item_is_partial_success(self, db_engine, seed):
        seed.quest(
            "Q1", "RP", "flat:50",
            item_rewards=[{"name": "Unobtainium", "quantity": 1}],
            participants=[{"user_id": "u1", "character_name": "Link", "progress": "completed"}],
        )
        with Session(db_engine) as session:
            quest, participant = _load(session, "Q1", "u1")
            result = distribute_rewards(session, quest, participant, None)
            session.commit()

            assert result.success
            assert result.tokens_added == 50
            assert result.items_distributed == []
            assert len(result.errors) == 1
            assert session.get(User, "u1").tokens == 50

    def test_everything_failing_is_failure(self, db_engine, seed):
        seed.quest(
            "Q1", "RP", "flat:50",
            item_rewards=[{"name": "Unobtainium", "quantity": 1}],
            participants=[{"user_id": "ghost", "character_name": "Nobody", "progress": "completed"}],
            with_ledger=False,
        )
        with Session(db_engine) as session:
            quest, participant = _load(session, "Q1", "ghost")
            result = distribute_rewards(session, quest, participant, None)

            assert not result.success
            assert result.tokens_added == 0
            assert len(result.errors) == 2

    def test_nothing_to_grant_is_success(self, db_engine, seed):
        seed.quest("Q1", "RP", "No reward", participants=[
            {"user_id": "u1", "character_name": "Link", "progress": "completed"},
        ])
        with Session(db_engine) as session:
            quest, participant = _load(session, "Q1", "u1")
            result = distribute_rewards(session, quest, participant, None)
            assert result.success
            assert result.as_dict()["token_breakdown"] == {"base": 0, "entertainer_bonus": 0, "total": 0}


def test_quest_item_rewards_prefers_list_over_legacy_pair():
    quest = Quest(
        quest_id="Q1", title="T", quest_type="RP",
        item_rewards=[{"name": " Apple ", "quantity": 2}, {"name": ""}],
        item_reward="Pear", item_reward_qty=5,
    )
    assert quest_item_rewards(quest) == [{"name": "Apple", "quantity": 2}]

    legacy = Quest(quest_id="Q2", title="T", quest_type="RP", item_reward="Pear")
    assert quest_item_rewards(legacy) == [{"name": "Pear", "quantity": 1}]

    none = Quest(quest_id="Q3", title="T", quest_type="RP", item_reward="N/A")
    assert quest_item_rewards(none) == []


def test_quest_item_rewards_drops_non_positive_quantities():
    quest = Quest(
        quest_id="Q1", title="T", quest_type="RP",
        item_rewards=[{"name": "Potion", "quantity": -3}, {"name": "Fairy", "quantity": 0}],
    )
    assert quest_item_rewards(quest) == []

    disabled = Quest(quest_id="Q2", title="T", quest_type="RP", item_reward="Potion", item_reward_qty=0)
    assert quest_item_rewards(disabled) == []

    negative = Quest(quest_id="Q3", title="T", quest_type="RP", item_reward="Potion", item_reward_qty=-2)
    assert quest_item_rewards(negative) == []


def test_grant_item_refuses_to_remove_items(db_engine, seed):
    seed.item("Potion")
    seed.quest("Q1", "RP", participants=[{"user_id": "u1", "character_name": "Link"}])
    with Session(db_engine) as session:
        character = find_character(session, "u1", "Link")
        item = resolve_item(session, "potion")
        grant_item(session, character, item, 4, obtain="Quest: T")

        with pytest.raises(InvalidQuantityError):
            grant_item(session, character, item, -3, obtain="Quest: T")
        assert inventory_quantity(session, character, "Potion") == 4


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------
class TestLedger:
    def test_credit_writes_audit_row(self, db_engine, seed):
        seed.user("u1", tokens=40)
        with Session(db_engine) as session:
            assert credit_tokens(session, "u1", 10, description="Quest: X") == (40, 50)
            assert credit_tokens(session, "u1", 0) == (50, 50)
            session.commit()
            rows = session.scalars(select(TokenTransaction)).all()
            assert len(rows) == 1
            assert rows[0].balance_after == 50

    def test_pending_never_downgrades_paid_entry(self, db_engine, seed):
        seed.user("u1")
        paid = CompletionEntry(
            quest_id="Q1", quest_type="RP", quest_title="T",
            completed_at=datetime(2026, 3, 1, tzinfo=UTC),
            rewarded_at=datetime(2026, 3, 2, tzinfo=UTC),
            tokens_earned=100, reward_source=RewardSource.IMMEDIATE,
        )
        pending = CompletionEntry(
            quest_id="Q1", quest_type="RP", quest_title="T",
            completed_at=None, reward_source=RewardSource.PENDING,
        )
        with Session(db_engine) as session:
            record_completion(session, "u1", paid)
            entry = record_completion(session, "u1", pending)
            session.commit()

            assert entry.reward_source == "immediate"
            assert entry.tokens_earned == 100
            assert count_completions(session, "u1") == 1

    def test_safeguard_entry_on_completion(self, db_engine, seed):
        seed.quest("Q1", "Interactive", "flat:10", participants=[
            {"user_id": "u1", "character_name": "Link"},
        ])
        stamp = datetime(2026, 4, 1, tzinfo=UTC)
        with Session(db_engine) as session:
            quest, participant = _load(session, "Q1", "u1")
            mark_completed(session, quest, participant, completed_at=stamp)
            mark_completed(session, quest, participant)
            session.commit()

            user = session.get(User, "u1")
            entry = user.completions["Q1"]
            assert entry.reward_source == "pending"
            assert entry.tokens_earned == 0
            assert entry.quest_type == "Interactive"
            assert count_completions(session, "u1", quest_type="Interactive") == 1
