"""
questkeeper.services.character_service — Characters & Reward Context
=====================================================================

Looks up participant characters and builds the per-quest
:class:`RewardContext`.  The context is computed once per run so every
participant in the quest sees the same bonus decision.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from questkeeper.config import RewardSettings
from questkeeper.database.models import Character, Quest
from questkeeper.engine.jobs import JobAssignment
from questkeeper.engine.reward import EntertainerBonus, RewardContext, is_eligible
from questkeeper.errors import CharacterNotFoundError

logger = logging.getLogger(__name__)


def find_character(session: Session, user_id: str, name: str) -> Character:
    """Fetch the character *name* owned by *user_id*."""
    character = session.scalar(
        select(Character).where(Character.user_id == user_id, Character.name == name)
    )
    if character is None:
        raise CharacterNotFoundError(user_id, name)
    return character


def build_reward_context(
    session: Session, quest: Quest, settings: RewardSettings
) -> RewardContext:
    """Detect quest-wide bonuses among the eligible participants.

    A participant whose character cannot be loaded is skipped for bonus
    detection only; their own reward is unaffected.
    """
    context = RewardContext(quest_id=quest.quest_id)
    entertainers: list[dict] = []

    for participant in quest.participants.values():
        if not is_eligible(participant):
            continue
        try:
            character = find_character(session, participant.user_id, participant.character_name)
        except CharacterNotFoundError:
            logger.warning(
                "Bonus check: character %s (user %s) missing on quest %s",
                participant.character_name, participant.user_id, quest.quest_id,
            )
            continue

        assignment = JobAssignment.from_character(character)
        if assignment.is_job(settings.entertainer_job):
            entertainers.append({
                "user_id": participant.user_id,
                "character_name": character.name,
                "job": assignment.effective_job(),
                "via_voucher": assignment.voucher_job is not None,
            })

    if entertainers:
        context.entertainer_bonus = EntertainerBonus(
            amount_per_participant=settings.entertainer_bonus_amount,
            entertainers=entertainers,
        )
        logger.info(
            "Quest %s: Entertainer bonus active (%d entertainer(s), +%d each)",
            quest.quest_id, len(entertainers), settings.entertainer_bonus_amount,
        )
    return context
