"""
questkeeper.services.notifier — Reward Notification Interface
==============================================================

The reward services announce payouts through a :class:`Notifier` so they
stay free of Discord I/O.  Notifiers are called from worker threads while
the session is still open and must not block on network calls; the
Discord implementation in :mod:`questkeeper.services.announcement_service`
builds its embeds synchronously and hands the send to the bot's loop.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from questkeeper.database.models import Quest, QuestParticipant
    from questkeeper.services.distribution_service import DistributionResult

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify_rewarded(
        self, quest: Quest, participant: QuestParticipant, result: DistributionResult
    ) -> None: ...

    def notify_quest_summary(self, quest: Quest, reason: str) -> None: ...


class LoggingNotifier:
    """Default notifier: writes announcements to the log only."""

    def notify_rewarded(self, quest, participant, result) -> None:
        logger.info(
            "Quest %s: %s rewarded %d tokens, %d item(s)",
            quest.quest_id, participant.character_name,
            result.tokens_added, len(result.items_distributed),
        )

    def notify_quest_summary(self, quest, reason) -> None:
        logger.info("Quest %s completed (%s)", quest.quest_id, reason)
