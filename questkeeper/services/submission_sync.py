"""
questkeeper.services.submission_sync — Approved Submission Bridge
==================================================================

Art and writing are approved by moderators in a separate workflow that
writes ``approved_submissions`` rows.  Before a submission quest is
evaluated, this bridge copies any approvals the participant record has
not seen yet, so a missed approval event can never cost someone their
reward.  Only approvals of the kind the quest asks for are copied: art
onto Art quests, writing onto Writing quests, both onto Art/Writing.

An approval is considered already present when the participant has a
submission with the same URL, or an approved submission of the same kind
approved within ``submission_match_window_seconds`` of it.  Running the
bridge repeatedly is therefore harmless.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from questkeeper.config import RewardSettings
from questkeeper.database.models import (
    SUBMISSION_QUEST_TYPES,
    ApprovedSubmission,
    ParticipantSubmission,
    ProgressStatus,
    Quest,
    QuestParticipant,
)
from questkeeper.engine.expiry import as_utc
from questkeeper.engine.quest_types import meets_requirements
from questkeeper.engine.units import SUBMISSION_KINDS

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    synced: bool
    added: int = 0
    promoted: bool = False
    reason: str | None = None


def find_approved(session: Session, quest_id: str, user_id: str) -> list[ApprovedSubmission]:
    """Approved submissions filed against *quest_id* by *user_id*."""
    return list(session.scalars(
        select(ApprovedSubmission)
        .where(
            ApprovedSubmission.quest_event == quest_id,
            ApprovedSubmission.user_id == user_id,
        )
        .order_by(ApprovedSubmission.approved_at, ApprovedSubmission.id)
    ))


def _already_present(
    participant: QuestParticipant, approval: ApprovedSubmission, window: timedelta
) -> bool:
    urls = {u for u in (approval.message_url, approval.file_url) if u}
    approved_at = as_utc(approval.approved_at)
    kind = approval.category.lower()

    for existing in participant.submissions:
        if existing.url and existing.url in urls:
            return True
        if (
            existing.type == kind
            and existing.approved
            and existing.approved_at is not None
            and approved_at is not None
            and abs(as_utc(existing.approved_at) - approved_at) <= window
        ):
            return True
    return False


def latest_approval(participant: QuestParticipant) -> datetime | None:
    stamps = [as_utc(s.approved_at) for s in participant.submissions if s.approved and s.approved_at]
    return max(stamps) if stamps else None


def sync_participant_submissions(
    session: Session,
    quest: Quest,
    participant: QuestParticipant,
    settings: RewardSettings,
) -> SyncResult:
    """Copy unseen approvals onto *participant* and promote if now complete."""
    if quest.type_enum not in SUBMISSION_QUEST_TYPES:
        return SyncResult(synced=False, reason="not a submission quest")

    accepted = SUBMISSION_KINDS[quest.type_enum]
    window = timedelta(seconds=settings.submission_match_window_seconds)
    added = 0
    for approval in find_approved(session, quest.quest_id, participant.user_id):
        kind = (approval.category or "").lower()
        if kind not in accepted:
            continue
        if _already_present(participant, approval, window):
            continue
        participant.submissions.append(ParticipantSubmission(
            type=kind,
            url=approval.message_url or approval.file_url,
            approved=True,
            approved_at=approval.approved_at,
            approved_by=approval.approved_by,
            submitted_at=approval.approved_at,
        ))
        added += 1

    if added:
        session.flush()
        logger.info(
            "Synced %d approved submission(s) for %s on quest %s",
            added, participant.character_name, quest.quest_id,
        )

    promoted = False
    if (
        added
        and participant.progress == ProgressStatus.ACTIVE
        and meets_requirements(quest, participant, settings)
    ):
        from questkeeper.services.completion_service import mark_completed  # avoid circular

        mark_completed(
            session,
            quest,
            participant,
            completed_at=latest_approval(participant) or datetime.now(UTC),
        )
        promoted = True

    return SyncResult(synced=True, added=added, promoted=promoted)
