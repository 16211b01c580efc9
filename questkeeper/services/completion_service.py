"""
questkeeper.services.completion_service — Completion Evaluator & Safeguard
===========================================================================

Moves an ``active`` participant to ``completed`` once the quest type's
predicate holds, and immediately writes a zero-reward ``pending`` entry
into the user's completion history.  That safeguard entry is what keeps
the completion on record if the payout later fails; the payout updates
the same entry in place.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy.orm import Session

from questkeeper.config import RewardSettings
from questkeeper.database.models import ProgressStatus, Quest, QuestParticipant, RewardSource
from questkeeper.engine.quest_types import meets_requirements
from questkeeper.services.ledger_service import (
    CompletionEntry,
    get_or_create_user,
    record_completion,
)
from questkeeper.services.submission_sync import sync_participant_submissions

logger = logging.getLogger(__name__)


def record_pending_completion(session: Session, quest: Quest, participant: QuestParticipant) -> None:
    """Safeguard: make sure the completion is in the user's history."""
    get_or_create_user(session, participant.user_id)
    record_completion(
        session,
        participant.user_id,
        CompletionEntry(
            quest_id=quest.quest_id,
            quest_type=quest.quest_type,
            quest_title=quest.title,
            completed_at=participant.completed_at,
            reward_source=RewardSource.PENDING,
        ),
    )


def mark_completed(
    session: Session,
    quest: Quest,
    participant: QuestParticipant,
    completed_at: datetime | None = None,
) -> None:
    """Flip *participant* to ``completed`` and run the safeguard."""
    participant.progress = ProgressStatus.COMPLETED.value
    if participant.completed_at is None:
        participant.completed_at = completed_at or datetime.now(UTC)
    record_pending_completion(session, quest, participant)
    logger.info(
        "Participant %s (%s) completed quest %s",
        participant.character_name, participant.user_id, quest.quest_id,
    )


def evaluate_completion(
    session: Session,
    quest: Quest,
    participant: QuestParticipant,
    settings: RewardSettings,
) -> bool:
    """Evaluate an ``active`` participant; return True if now completed.

    Participants in any other state are left untouched.
    """
    if participant.progress != ProgressStatus.ACTIVE:
        return participant.progress == ProgressStatus.COMPLETED

    sync = sync_participant_submissions(session, quest, participant, settings)
    if sync.promoted:
        return True

    if meets_requirements(quest, participant, settings):
        mark_completed(session, quest, participant)
        return True
    return False
