"""
questkeeper.engine.reward — Quest Reward Calculation
=====================================================

Pure calculation of what a participant earns.  No DB I/O inside the
engine; the distributor feeds in a participant and a :class:`RewardContext`
built once per quest run.

Pipeline::

    token_reward → RewardSpec → base (flat + per_unit × units, legacy fallback)
                 → + entertainer bonus → TokenBreakdown
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from questkeeper.database.models import INELIGIBLE_PROGRESS
from questkeeper.engine.formula import RewardSpec, legacy_token_reward, parse_reward_expression
from questkeeper.engine.units import count_participant_units

if TYPE_CHECKING:
    from questkeeper.database.models import Quest, QuestParticipant

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Context: computed once per quest and shared by every participant
# ---------------------------------------------------------------------------
@dataclass
class EntertainerBonus:
    """Quest-wide bonus granted when any participant is an Entertainer."""

    amount_per_participant: int
    entertainers: list[dict] = field(default_factory=list)
    enabled: bool = True


@dataclass
class RewardContext:
    """Per-run reward context.

    ``entertainer_bonus`` is ``None`` when no eligible participant has the
    Entertainer job.
    """

    quest_id: str
    entertainer_bonus: EntertainerBonus | None = None

    @property
    def bonus_active(self) -> bool:
        return self.entertainer_bonus is not None and self.entertainer_bonus.enabled


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------
@dataclass
class TokenBreakdown:
    base: int = 0
    entertainer_bonus: int = 0
    units: int = 0

    @property
    def total(self) -> int:
        return self.base + self.entertainer_bonus

    def as_dict(self) -> dict:
        return {
            "base": self.base,
            "entertainer_bonus": self.entertainer_bonus,
            "total": self.total,
        }


def is_eligible(participant: QuestParticipant) -> bool:
    """Failed and disqualified participants never receive rewards or bonuses."""
    return participant.progress not in INELIGIBLE_PROGRESS


def base_tokens(quest: Quest, participant: QuestParticipant) -> tuple[int, int]:
    """Return ``(base_tokens, units)`` for *participant*.

    Falls back to the legacy single-number reading of ``token_reward`` when
    the expression yields zero.
    """
    spec: RewardSpec = parse_reward_expression(quest.token_reward)
    units = count_participant_units(quest, participant, spec)
    base = spec.base_tokens(units)
    if base == 0:
        base = legacy_token_reward(quest.token_reward)
    return base, units


def calculate_token_breakdown(
    quest: Quest,
    participant: QuestParticipant,
    context: RewardContext | None,
) -> TokenBreakdown:
    """Compute the full token breakdown for one participant."""
    base, units = base_tokens(quest, participant)
    breakdown = TokenBreakdown(base=base, units=units)

    if context is not None and context.bonus_active and is_eligible(participant):
        breakdown.entertainer_bonus = context.entertainer_bonus.amount_per_participant
        logger.debug(
            "Entertainer bonus +%d for %s on quest %s",
            breakdown.entertainer_bonus, participant.character_name, quest.quest_id,
        )
    return breakdown
