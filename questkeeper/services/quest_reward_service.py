"""
questkeeper.services.quest_reward_service — Quest Completion Orchestrator
==========================================================================

Shared service module callable by the bot, the API and the scheduled
jobs.  Every trigger path funnels into :func:`settle_quest`, which runs
the same per-participant pipeline::

    bridge (submission quests) → evaluate → classify → claim → distribute
    → record payout → announce

Exactly-once payout rests on :func:`claim_reward`: an atomic conditional
``UPDATE … WHERE reward_processed IS false``.  Whoever flips the flag owns
the payout; everyone else sees zero rows changed and moves on.  A payout
that fails outright rolls the claim back so a later sweep can retry.

Each participant runs inside its own SAVEPOINT, so one bad participant
never costs the others their rewards.  The whole quest commits once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy import Engine, select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from questkeeper.config import RewardSettings
from questkeeper.database.engine import get_session
from questkeeper.database.models import (
    INELIGIBLE_PROGRESS,
    SUBMISSION_QUEST_TYPES,
    CompletionReason,
    ProgressStatus,
    Quest,
    QuestParticipant,
    QuestStatus,
    RewardSource,
)
from questkeeper.engine.expiry import is_expired
from questkeeper.engine.reward import RewardContext
from questkeeper.engine.status import RewardStatus, get_participant_reward_status
from questkeeper.errors import QuestNotFoundError, QuestStateError
from questkeeper.services.character_service import build_reward_context
from questkeeper.services.completion_service import evaluate_completion
from questkeeper.services.distribution_service import DistributionResult, distribute_rewards
from questkeeper.services.ledger_service import (
    CompletionEntry,
    get_or_create_user,
    record_completion,
)
from questkeeper.services.notifier import LoggingNotifier, Notifier
from questkeeper.services.submission_sync import sync_participant_submissions

logger = logging.getLogger(__name__)


class _DistributionFailed(Exception):
    """Raised inside the claim SAVEPOINT to undo the claim."""

    def __init__(self, result: DistributionResult) -> None:
        super().__init__("distribution failed")
        self.result = result


@dataclass
class Settlement:
    """What one pass over a quest did, plus the announcements it owes."""

    quest_id: str
    processed: int = 0
    rewarded: int = 0
    already_rewarded: int = 0
    not_completed: int = 0
    failed: int = 0
    errors: int = 0
    quest_completed: bool = False
    payouts: list[tuple[QuestParticipant, DistributionResult]] = field(default_factory=list)
    summary_reason: str | None = None

    def as_dict(self) -> dict:
        return {
            "quest_id": self.quest_id,
            "processed": self.processed,
            "rewarded": self.rewarded,
            "already_rewarded": self.already_rewarded,
            "not_completed": self.not_completed,
            "failed": self.failed,
            "errors": self.errors,
            "quest_completed": self.quest_completed,
        }


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------
def find_quest(session: Session, quest_id: str) -> Quest:
    quest = session.scalar(select(Quest).where(Quest.quest_id == quest_id))
    if quest is None:
        raise QuestNotFoundError(quest_id)
    return quest


# ---------------------------------------------------------------------------
# Claim + payout for a single participant
# ---------------------------------------------------------------------------
def claim_reward(session: Session, participant: QuestParticipant) -> bool:
    """Atomically flip ``reward_processed`` false → true.

    Returns True only for the caller that performed the transition.
    """
    result = session.execute(
        update(QuestParticipant)
        .where(
            QuestParticipant.id == participant.id,
            QuestParticipant.reward_processed.is_(False),
        )
        .values(reward_processed=True)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    set_committed_value(participant, "reward_processed", True)
    return True


def _record_payout(
    session: Session,
    quest: Quest,
    participant: QuestParticipant,
    result: DistributionResult,
    source: RewardSource,
) -> None:
    now = datetime.now(UTC)
    participant.progress = ProgressStatus.REWARDED.value
    participant.tokens_earned = result.tokens_added
    participant.items_earned = list(result.items_distributed)
    participant.reward_source = source.value
    participant.rewarded_at = now
    participant.last_reward_check = now

    get_or_create_user(session, participant.user_id)
    record_completion(
        session,
        participant.user_id,
        CompletionEntry(
            quest_id=quest.quest_id,
            quest_type=quest.quest_type,
            quest_title=quest.title,
            completed_at=participant.completed_at or now,
            rewarded_at=now,
            tokens_earned=result.tokens_added,
            items_earned=list(result.items_distributed),
            reward_source=source,
        ),
    )


def reward_participant(
    session: Session,
    quest: Quest,
    participant: QuestParticipant,
    context: RewardContext | None,
    source: RewardSource,
) -> DistributionResult | None:
    """Claim and pay *participant*.

    Returns ``None`` when another path already claimed the reward.  A
    result with ``success=False`` means nothing could be granted; the
    claim has been rolled back and the safeguard entry stays ``pending``.
    """
    try:
        with session.begin_nested():
            if not claim_reward(session, participant):
                logger.info(
                    "Reward for %s on quest %s already claimed; skipping",
                    participant.user_id, quest.quest_id,
                )
                return None

            result = distribute_rewards(session, quest, participant, context)
            if not result.success:
                raise _DistributionFailed(result)
            _record_payout(session, quest, participant, result, source)
    except _DistributionFailed as exc:
        session.refresh(participant)
        participant.last_reward_check = datetime.now(UTC)
        logger.error(
            "Reward distribution failed for %s on quest %s: %s",
            participant.character_name, quest.quest_id, "; ".join(exc.result.errors),
        )
        return exc.result

    logger.info(
        "Rewarded %s on quest %s: %d tokens, %d item(s) [%s]",
        participant.character_name, quest.quest_id,
        result.tokens_added, len(result.items_distributed), source.value,
    )
    return result


# ---------------------------------------------------------------------------
# Whole-quest pass
# ---------------------------------------------------------------------------
def _settle_participant(
    session: Session,
    quest: Quest,
    participant: QuestParticipant,
    context: RewardContext,
    settings: RewardSettings,
    source: RewardSource,
) -> tuple[str, DistributionResult | None]:
    if get_participant_reward_status(participant) is RewardStatus.ALREADY_REWARDED:
        return "already_rewarded", None

    if participant.progress == ProgressStatus.ACTIVE:
        evaluate_completion(session, quest, participant, settings)
    participant.last_reward_check = datetime.now(UTC)

    # Re-classify right before paying
    if get_participant_reward_status(participant) is not RewardStatus.NEEDS_REWARDING:
        return "not_completed", None

    result = reward_participant(session, quest, participant, context, source)
    if result is None:
        return "already_rewarded", None
    if not result.success:
        return "failed", result
    return "rewarded", result


def _all_settled(quest: Quest) -> bool:
    """Every participant is paid or out of the running, and someone was paid."""
    participants = list(quest.participants.values())
    rewarded = [p for p in participants if p.progress == ProgressStatus.REWARDED]
    return bool(rewarded) and all(
        p.progress == ProgressStatus.REWARDED or p.progress in INELIGIBLE_PROGRESS
        for p in participants
    )


def settle_quest(
    session: Session,
    quest: Quest,
    settings: RewardSettings,
    *,
    source: RewardSource = RewardSource.IMMEDIATE,
    announce_summary: bool = True,
) -> Settlement:
    """Run the reward pipeline over every participant of *quest*.

    Does not commit; the caller commits and then calls :func:`announce`.
    """
    if quest.status not in (QuestStatus.ACTIVE, QuestStatus.COMPLETED):
        raise QuestStateError(f"Quest {quest.quest_id} has unexpected status {quest.status!r}")

    settlement = Settlement(quest_id=quest.quest_id)
    context = build_reward_context(session, quest, settings)

    if quest.type_enum in SUBMISSION_QUEST_TYPES:
        for participant in quest.participants.values():
            try:
                with session.begin_nested():
                    sync_participant_submissions(session, quest, participant, settings)
            except Exception:
                logger.exception(
                    "Submission sync failed for %s on quest %s",
                    participant.user_id, quest.quest_id,
                )

    for participant in list(quest.participants.values()):
        settlement.processed += 1
        try:
            with session.begin_nested():
                outcome, result = _settle_participant(
                    session, quest, participant, context, settings, source
                )
        except Exception:
            settlement.errors += 1
            logger.exception(
                "Failed to process %s (%s) on quest %s",
                participant.character_name, participant.user_id, quest.quest_id,
            )
            continue

        setattr(settlement, outcome, getattr(settlement, outcome) + 1)
        if outcome == "rewarded" and result is not None:
            settlement.payouts.append((participant, result))

    if quest.status == QuestStatus.ACTIVE and _all_settled(quest):
        quest.status = QuestStatus.COMPLETED.value
        quest.completed_at = datetime.now(UTC)
        quest.completion_reason = CompletionReason.ALL_PARTICIPANTS_COMPLETED.value
        logger.info("Quest %s completed: all participants rewarded", quest.quest_id)

    settlement.quest_completed = quest.status == QuestStatus.COMPLETED
    if announce_summary and settlement.quest_completed and not quest.completion_processed:
        quest.completion_processed = True
        settlement.summary_reason = quest.completion_reason or CompletionReason.MANUAL.value

    logger.info(
        "Quest %s settled: processed=%d rewarded=%d already=%d not_completed=%d "
        "failed=%d errors=%d",
        quest.quest_id, settlement.processed, settlement.rewarded,
        settlement.already_rewarded, settlement.not_completed,
        settlement.failed, settlement.errors,
    )
    return settlement


def announce(notifier: Notifier, quest: Quest, settlement: Settlement) -> None:
    """Send the notifications a settlement owes.  Never raises."""
    for participant, result in settlement.payouts:
        try:
            notifier.notify_rewarded(quest, participant, result)
        except Exception:
            logger.exception(
                "Reward notification failed for %s on quest %s",
                participant.user_id, quest.quest_id,
            )
    if settlement.summary_reason:
        try:
            notifier.notify_quest_summary(quest, settlement.summary_reason)
        except Exception:
            logger.exception("Summary notification failed for quest %s", quest.quest_id)


# ---------------------------------------------------------------------------
# Public entry points (sync, run via run_db)
# ---------------------------------------------------------------------------
def process_quest_completion(
    engine: Engine,
    settings: RewardSettings,
    quest_id: str,
    notifier: Notifier | None = None,
) -> dict:
    """Immediate path: settle *quest_id* now and announce the payouts.

    Raises :class:`QuestNotFoundError` for unknown quests.
    """
    notifier = notifier or LoggingNotifier()
    with get_session(engine) as session:
        quest = find_quest(session, quest_id)
        settlement = settle_quest(session, quest, settings, source=RewardSource.IMMEDIATE)
        session.commit()
        announce(notifier, quest, settlement)
        return settlement.as_dict()


def complete_quest(
    session: Session,
    quest: Quest,
    reason: CompletionReason,
) -> None:
    """Close an active quest.  Participants keep their current progress."""
    quest.status = QuestStatus.COMPLETED.value
    quest.completed_at = quest.completed_at or datetime.now(UTC)
    quest.completion_reason = reason.value
    session.flush()
    logger.info("Quest %s closed (%s)", quest.quest_id, reason.value)


def manually_complete_quest(
    engine: Engine,
    settings: RewardSettings,
    quest_id: str,
    notifier: Notifier | None = None,
    admin_id: str | None = None,
) -> dict:
    """Admin action: close an active quest and pay everyone who finished."""
    notifier = notifier or LoggingNotifier()
    with get_session(engine) as session:
        quest = find_quest(session, quest_id)
        if quest.status == QuestStatus.COMPLETED:
            raise QuestStateError(f"Quest {quest_id} is already completed")
        logger.info("Admin %s manually completing quest %s", admin_id, quest_id)
        complete_quest(session, quest, CompletionReason.MANUAL)
        settlement = settle_quest(session, quest, settings, source=RewardSource.IMMEDIATE)
        session.commit()
        announce(notifier, quest, settlement)
        return settlement.as_dict()


def expire_due_quests(
    engine: Engine,
    settings: RewardSettings,
    notifier: Notifier | None = None,
    now: datetime | None = None,
) -> dict:
    """Close every active quest whose time limit has passed, then settle it."""
    notifier = notifier or LoggingNotifier()
    with get_session(engine) as session:
        due = [
            q.quest_id
            for q in session.scalars(select(Quest).where(Quest.status == QuestStatus.ACTIVE.value))
            if is_expired(q, now)
        ]

    expired: list[str] = []
    errors = 0
    for quest_id in due:
        try:
            with get_session(engine) as session:
                quest = find_quest(session, quest_id)
                complete_quest(session, quest, CompletionReason.TIME_EXPIRED)
                settlement = settle_quest(session, quest, settings, source=RewardSource.IMMEDIATE)
                session.commit()
                announce(notifier, quest, settlement)
            expired.append(quest_id)
        except Exception:
            errors += 1
            logger.exception("Failed to expire quest %s", quest_id)

    if expired:
        logger.info("Expired %d quest(s): %s", len(expired), ", ".join(expired))
    return {"checked": len(due), "expired": expired, "errors": errors}


def process_submission_approval(
    engine: Engine,
    settings: RewardSettings,
    quest_id: str | None,
    user_id: str,
    notifier: Notifier | None = None,
) -> dict:
    """Entry point for the moderation workflow after an art/writing approval.

    Syncs the approval onto the participant even when the quest has
    already closed.  Payouts for still-running quests wait until the quest
    period ends; an active quest that is past its time limit is closed and
    settled here.
    """
    if not quest_id or quest_id.strip().upper() == "N/A":
        return {"success": False, "reason": "no quest id"}

    notifier = notifier or LoggingNotifier()
    with get_session(engine) as session:
        quest = find_quest(session, quest_id)
        participant = quest.participants.get(user_id)
        if participant is None:
            return {"success": False, "reason": "not a participant"}
        if quest.type_enum not in SUBMISSION_QUEST_TYPES:
            return {"success": False, "reason": f"not a submission quest ({quest.quest_type})"}

        sync = sync_participant_submissions(session, quest, participant, settings)

        if quest.status != QuestStatus.ACTIVE:
            return {
                "success": participant.progress in (ProgressStatus.COMPLETED, ProgressStatus.REWARDED),
                "synced": sync.added,
                "quest_completed": False,
            }

        evaluate_completion(session, quest, participant, settings)

        if not is_expired(quest):
            return {
                "success": participant.progress == ProgressStatus.COMPLETED,
                "synced": sync.added,
                "quest_completed": False,
            }

        complete_quest(session, quest, CompletionReason.TIME_EXPIRED)
        settlement = settle_quest(session, quest, settings, source=RewardSource.IMMEDIATE)
        session.commit()
        announce(notifier, quest, settlement)
        return {
            "success": True,
            "synced": sync.added,
            "quest_completed": settlement.quest_completed,
            "settlement": settlement.as_dict(),
        }


# ---------------------------------------------------------------------------
# Read-only reporting
# ---------------------------------------------------------------------------
def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def validate_quest_reward_status(engine: Engine, quest_id: str) -> dict:
    """Per-participant reward state for one quest, for admin inspection."""
    with get_session(engine) as session:
        quest = find_quest(session, quest_id)
        participants = [
            {
                "user_id": p.user_id,
                "character_name": p.character_name,
                "progress": p.progress,
                "tokens_earned": p.tokens_earned or 0,
                "items_earned": list(p.items_earned or []),
                "reward_processed": bool(p.reward_processed),
                "reward_source": p.reward_source,
                "rewarded_at": _iso(p.rewarded_at),
                "last_reward_check": _iso(p.last_reward_check),
                "status": get_participant_reward_status(p).value,
            }
            for p in quest.participants.values()
        ]
        return {
            "quest_id": quest.quest_id,
            "quest_title": quest.title,
            "quest_status": quest.status,
            "total_participants": len(participants),
            "participants": participants,
        }


def get_quest_reward_summary(engine: Engine) -> dict:
    """Totals across all completed quests, including the unpaid backlog."""
    totals = {
        "completed_quests": 0,
        "total_participants": 0,
        "rewarded": 0,
        "pending_rewards": 0,
        "not_completed": 0,
        "by_source": {source.value: 0 for source in RewardSource},
    }
    with get_session(engine) as session:
        quests = session.scalars(
            select(Quest).where(Quest.status == QuestStatus.COMPLETED.value)
        ).all()
        totals["completed_quests"] = len(quests)
        for quest in quests:
            for participant in quest.participants.values():
                totals["total_participants"] += 1
                status = get_participant_reward_status(participant)
                if status is RewardStatus.ALREADY_REWARDED:
                    totals["rewarded"] += 1
                    if participant.reward_source in totals["by_source"]:
                        totals["by_source"][participant.reward_source] += 1
                elif status is RewardStatus.NEEDS_REWARDING:
                    totals["pending_rewards"] += 1
                else:
                    totals["not_completed"] += 1
    totals["timestamp"] = datetime.now(UTC).isoformat()
    return totals
