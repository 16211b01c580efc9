"""
questkeeper.services.reconciliation_service — Monthly Reward Reconciliation
============================================================================

Monthly job that re-examines every completed quest and pays anyone the
immediate path missed (a crash mid-run, an approval that arrived after
the quest closed, a catalog item that was missing at the time).

How it works:
    1. Load the ids of all ``completed`` quests.
    2. For each quest, in its own session: rebuild the reward context,
       re-sync approved submissions, promote participants whose
       requirements now hold, and pay everyone classified as
       ``needs_rewarding`` with ``reward_source="monthly"``.
    3. Commit once per quest.  One quest failing never stops the sweep.

Participants already paid are only counted — the sweep never moves a
balance twice.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, select

from questkeeper.config import RewardSettings
from questkeeper.database.engine import get_session
from questkeeper.database.models import Quest, QuestStatus, RewardSource
from questkeeper.services.notifier import LoggingNotifier, Notifier
from questkeeper.services.quest_reward_service import announce, find_quest, settle_quest

logger = logging.getLogger(__name__)


def run_monthly_reconciliation(
    engine: Engine,
    settings: RewardSettings,
    notifier: Notifier | None = None,
) -> dict:
    """Sweep completed quests and pay outstanding rewards.

    Returns ``{"quests", "processed", "rewarded", "already_rewarded",
    "not_completed", "failed", "errors", "timestamp"}``.
    """
    notifier = notifier or LoggingNotifier()
    totals = {
        "quests": 0,
        "processed": 0,
        "rewarded": 0,
        "already_rewarded": 0,
        "not_completed": 0,
        "failed": 0,
        "errors": 0,
    }

    with get_session(engine) as session:
        quest_ids = list(session.scalars(
            select(Quest.quest_id)
            .where(Quest.status == QuestStatus.COMPLETED.value)
            .order_by(Quest.id)
        ))

    logger.info("Monthly reconciliation: %d completed quest(s) to check", len(quest_ids))

    for quest_id in quest_ids:
        totals["quests"] += 1
        try:
            with get_session(engine) as session:
                quest = find_quest(session, quest_id)
                settlement = settle_quest(
                    session,
                    quest,
                    settings,
                    source=RewardSource.MONTHLY,
                    announce_summary=False,
                )
                session.commit()
                announce(notifier, quest, settlement)
        except Exception:
            totals["errors"] += 1
            logger.exception(
                "Monthly reconciliation failed for quest %s", quest_id,
                extra={"task": "monthly_reconciliation"},
            )
            continue

        for key in ("processed", "rewarded", "already_rewarded", "not_completed", "failed", "errors"):
            totals[key] += getattr(settlement, key)

    if totals["rewarded"]:
        logger.warning(
            "Monthly reconciliation paid %d missed reward(s) across %d quest(s)",
            totals["rewarded"], totals["quests"],
        )
    else:
        logger.info(
            "Monthly reconciliation: nothing outstanding (%d already rewarded)",
            totals["already_rewarded"],
        )

    totals["timestamp"] = datetime.now(UTC).isoformat()
    return totals
