"""
tests/test_submission_sync.py — Approved Submission Bridge Tests
=================================================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from questkeeper.database.models import Quest, User
from questkeeper.engine.expiry import as_utc
from questkeeper.services.completion_service import evaluate_completion
from questkeeper.services.submission_sync import sync_participant_submissions

APPROVED = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _sync(engine, settings, quest_id: str = "Q1", user_id: str = "u1"):
    with Session(engine) as session:
        quest = session.scalar(select(Quest).where(Quest.quest_id == quest_id))
        participant = quest.participants[user_id]
        result = sync_participant_submissions(session, quest, participant, settings)
        session.commit()
        return result


def _submissions(engine, quest_id: str = "Q1", user_id: str = "u1") -> list[tuple[str, str]]:
    with Session(engine) as session:
        quest = session.scalar(select(Quest).where(Quest.quest_id == quest_id))
        return [(s.type, s.url) for s in quest.participants[user_id].submissions]


class TestSubmissionSync:
    def test_copies_new_approval_and_promotes(self, db_engine, seed, settings):
        seed.quest("Q1", "Art", participants=[{"user_id": "u1", "character_name": "Link"}])
        seed.approval("Q1", "u1", "art", "https://art/1", approved_at=APPROVED)

        result = _sync(db_engine, settings)
        assert result.synced and result.added == 1 and result.promoted

        with Session(db_engine) as session:
            quest = session.scalar(select(Quest).where(Quest.quest_id == "Q1"))
            participant = quest.participants["u1"]
            assert participant.progress == "completed"
            assert as_utc(participant.completed_at) == APPROVED
            assert session.get(User, "u1").completions["Q1"].reward_source == "pending"

    def test_same_url_is_not_copied_twice(self, db_engine, seed, settings):
        seed.quest("Q1", "Art", participants=[{
            "user_id": "u1",
            "character_name": "Link",
            "submissions": [("art", "https://art/1", True, APPROVED - timedelta(days=2))],
        }])
        seed.approval("Q1", "u1", "art", "https://art/1", approved_at=APPROVED)

        result = _sync(db_engine, settings)
        assert result.added == 0
        assert not result.promoted
        assert len(_submissions(db_engine)) == 1

    def test_match_window(self, db_engine, seed, settings):
        seed.quest("Q1", "Art", participants=[{
            "user_id": "u1",
            "character_name": "Link",
            "progress": "completed",
            "submissions": [("art", "https://discord/msg/1", True, APPROVED)],
        }])
        seed.approval("Q1", "u1", "art", "https://cdn/file-1", approved_at=APPROVED + timedelta(seconds=30))
        seed.approval("Q1", "u1", "art", "https://cdn/file-2", approved_at=APPROVED + timedelta(minutes=5))

        result = _sync(db_engine, settings)
        assert result.added == 1
        assert ("art", "https://cdn/file-2") in _submissions(db_engine)

    def test_repeat_runs_are_harmless(self, db_engine, seed, settings):
        seed.quest("Q1", "Writing", participants=[{"user_id": "u1", "character_name": "Link"}])
        seed.approval("Q1", "u1", "writing", "https://doc/1")

        assert _sync(db_engine, settings).added == 1
        assert _sync(db_engine, settings).added == 0
        assert len(_submissions(db_engine)) == 1

    def test_unknown_category_is_ignored(self, db_engine, seed, settings):
        seed.quest("Q1", "Art", participants=[{"user_id": "u1", "character_name": "Link"}])
        seed.approval("Q1", "u1", "music", "https://sound/1")
        assert _sync(db_engine, settings).added == 0

    def test_art_quest_ignores_writing_approvals(self, db_engine, seed, settings):
        seed.quest("Q1", "Art", participants=[{"user_id": "u1", "character_name": "Link"}])
        seed.approval("Q1", "u1", "art", "https://art/1")
        seed.approval("Q1", "u1", "writing", "https://doc/1")

        assert _sync(db_engine, settings).added == 1
        assert _submissions(db_engine) == [("art", "https://art/1")]

    def test_writing_quest_ignores_art_approvals(self, db_engine, seed, settings):
        seed.quest("Q1", "Writing", participants=[{"user_id": "u1", "character_name": "Link"}])
        seed.approval("Q1", "u1", "art", "https://art/1")

        result = _sync(db_engine, settings)
        assert result.added == 0
        assert not result.promoted

    def test_art_writing_quest_takes_both_kinds(self, db_engine, seed, settings):
        seed.quest("Q1", "Art/Writing", participants=[{"user_id": "u1", "character_name": "Link"}])
        seed.approval("Q1", "u1", "art", "https://art/1")
        seed.approval("Q1", "u1", "writing", "https://doc/1")

        assert _sync(db_engine, settings).added == 2
        assert sorted(kind for kind, _ in _submissions(db_engine)) == ["art", "writing"]

    def test_other_users_approvals_are_ignored(self, db_engine, seed, settings):
        seed.quest("Q1", "Art", participants=[{"user_id": "u1", "character_name": "Link"}])
        seed.approval("Q1", "u2", "art", "https://art/2")
        assert _sync(db_engine, settings).added == 0

    def test_non_submission_quest(self, db_engine, seed, settings):
        seed.quest("Q1", "RP", participants=[{"user_id": "u1", "character_name": "Link"}])
        result = _sync(db_engine, settings)
        assert not result.synced
        assert result.reason == "not a submission quest"


class TestEvaluateCompletion:
    def test_rp_participant_promoted(self, db_engine, seed, settings):
        seed.quest("Q1", "RP", participants=[
            {"user_id": "u1", "character_name": "Link", "rp_post_count": 20},
        ])
        with Session(db_engine) as session:
            quest = session.scalar(select(Quest).where(Quest.quest_id == "Q1"))
            participant = quest.participants["u1"]
            assert evaluate_completion(session, quest, participant, settings)
            assert participant.progress == "completed"
            assert participant.completed_at is not None

    def test_non_active_participant_untouched(self, db_engine, seed, settings):
        seed.quest("Q1", "RP", participants=[
            {"user_id": "u1", "character_name": "Link", "rp_post_count": 20, "progress": "failed"},
        ])
        with Session(db_engine) as session:
            quest = session.scalar(select(Quest).where(Quest.quest_id == "Q1"))
            participant = quest.participants["u1"]
            assert not evaluate_completion(session, quest, participant, settings)
            assert participant.progress == "failed"
            assert session.get(User, "u1").completions == {}
