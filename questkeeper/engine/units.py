"""
questkeeper.engine.units — Participant Unit Counter
====================================================

Counts the billable units for ``per_unit`` rewards.  A unit is one
approved submission of the kind the quest asks for; the count is capped
by the expression's ``max`` and cached on ``participant.units``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from questkeeper.database.models import QuestType, SubmissionType

if TYPE_CHECKING:
    from questkeeper.database.models import Quest, QuestParticipant
    from questkeeper.engine.formula import RewardSpec

SUBMISSION_UNIT = "submission"

SUBMISSION_KINDS: dict[QuestType, frozenset[str]] = {
    QuestType.ART: frozenset({SubmissionType.ART.value}),
    QuestType.WRITING: frozenset({SubmissionType.WRITING.value}),
    QuestType.ART_WRITING: frozenset({SubmissionType.ART.value, SubmissionType.WRITING.value}),
}


def _approved_count(quest: Quest, participant: QuestParticipant, unit: str) -> int:
    approved = [s for s in participant.submissions if s.approved]
    kinds = SUBMISSION_KINDS.get(quest.type_enum) if unit.lower() == SUBMISSION_UNIT else None
    if kinds is None:
        return len(approved)
    return sum(1 for s in approved if s.type in kinds)


def count_participant_units(
    quest: Quest, participant: QuestParticipant, spec: RewardSpec
) -> int:
    """Return the capped unit count and cache it on the participant.

    Zero when the reward does not scale with units.
    """
    if not spec.counts_units:
        return 0
    units = spec.capped(_approved_count(quest, participant, spec.unit or ""))
    participant.units = units
    return units
