"""
questkeeper.engine.status — Reward Status Classifier
=====================================================

Pure classification of a participant's reward state.  Callers must
classify immediately before distributing.  The result is never cached,
so a reward paid by a concurrent path is seen on the next check.
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING

from questkeeper.database.models import ProgressStatus

if TYPE_CHECKING:
    from questkeeper.database.models import QuestParticipant


class RewardStatus(enum.StrEnum):
    ALREADY_REWARDED = "already_rewarded"
    NEEDS_REWARDING = "needs_rewarding"
    NOT_COMPLETED = "not_completed"


def get_participant_reward_status(participant: QuestParticipant) -> RewardStatus:
    """Classify *participant*.

    Any trace of a paid reward (the ``rewarded`` progress state, the
    processed flag, earned tokens or earned items) counts as already
    rewarded, even if the other markers disagree.
    """
    if (
        participant.progress == ProgressStatus.REWARDED
        or participant.reward_processed
        or (participant.tokens_earned or 0) > 0
        or bool(participant.items_earned)
    ):
        return RewardStatus.ALREADY_REWARDED
    if participant.progress == ProgressStatus.COMPLETED:
        return RewardStatus.NEEDS_REWARDING
    return RewardStatus.NOT_COMPLETED
