"""
questkeeper.services.distribution_service — Reward Distributor
===============================================================

Pays one participant: tokens through the ledger, then each item reward
into the character's inventory.  Every sub-grant runs in its own
SAVEPOINT so a missing catalog item does not undo the tokens (or the
other items).  The result is a failure only when every attempted grant
failed.

Callers are responsible for idempotency — see
:func:`questkeeper.services.quest_reward_service.reward_participant`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from questkeeper.database.models import Quest, QuestParticipant
from questkeeper.engine.reward import RewardContext, TokenBreakdown, calculate_token_breakdown
from questkeeper.errors import QuestKeeperError
from questkeeper.services.character_service import find_character
from questkeeper.services.inventory_service import grant_item, resolve_item
from questkeeper.services.ledger_service import QUEST_REWARD_CATEGORY, credit_tokens

logger = logging.getLogger(__name__)


@dataclass
class DistributionResult:
    success: bool = True
    tokens_added: int = 0
    items_distributed: list[dict] = field(default_factory=list)
    token_breakdown: TokenBreakdown = field(default_factory=TokenBreakdown)
    errors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "success": self.success,
            "tokens_added": self.tokens_added,
            "items_distributed": list(self.items_distributed),
            "token_breakdown": self.token_breakdown.as_dict(),
            "errors": list(self.errors),
        }


def quest_item_rewards(quest: Quest) -> list[dict]:
    """Normalise the quest's item rewards to ``[{"name", "quantity"}]``.

    The list form wins; the legacy single-item pair is used only when the
    list is empty.  A missing quantity means one; entries with a zero or
    negative quantity are dropped, which is how a legacy reward is
    switched off.
    """
    rewards: list[dict] = []
    for entry in quest.item_rewards or []:
        name = (entry.get("name") or "").strip()
        quantity = entry.get("quantity")
        quantity = 1 if quantity is None else int(quantity)
        if not name or quantity <= 0:
            continue
        rewards.append({"name": name, "quantity": quantity})
    if not rewards and quest.item_reward and quest.item_reward.strip().lower() not in ("", "n/a", "none"):
        quantity = 1 if quest.item_reward_qty is None else int(quest.item_reward_qty)
        if quantity > 0:
            rewards.append({"name": quest.item_reward.strip(), "quantity": quantity})
    return rewards


def reward_description(quest: Quest) -> str:
    return f"Quest: {quest.title}" if quest.title else f"Quest {quest.quest_id}"


def distribute_rewards(
    session: Session,
    quest: Quest,
    participant: QuestParticipant,
    context: RewardContext | None,
) -> DistributionResult:
    """Grant tokens and items to *participant*.

    Does not touch ``participant`` reward bookkeeping; the orchestrator
    writes that once the grant is known to have succeeded.
    """
    result = DistributionResult()
    result.token_breakdown = calculate_token_breakdown(quest, participant, context)
    attempted = 0
    failed = 0

    # --- Tokens --------------------------------------------------------
    total = result.token_breakdown.total
    if total > 0:
        attempted += 1
        try:
            with session.begin_nested():
                credit_tokens(
                    session,
                    participant.user_id,
                    total,
                    category=QUEST_REWARD_CATEGORY,
                    description=reward_description(quest),
                )
            result.tokens_added = total
        except (QuestKeeperError, SQLAlchemyError) as exc:
            failed += 1
            result.errors.append(f"tokens: {exc}")
            logger.warning(
                "Token credit failed for %s on quest %s: %s",
                participant.user_id, quest.quest_id, exc,
            )

    # --- Items ---------------------------------------------------------
    item_rewards = quest_item_rewards(quest)
    if item_rewards:
        try:
            character = find_character(session, participant.user_id, participant.character_name)
        except QuestKeeperError as exc:
            attempted += len(item_rewards)
            failed += len(item_rewards)
            result.errors.append(f"items: {exc}")
            logger.warning(
                "Item grant skipped for %s on quest %s: %s",
                participant.character_name, quest.quest_id, exc,
            )
            item_rewards = []

        for reward in item_rewards:
            attempted += 1
            try:
                with session.begin_nested():
                    item = resolve_item(session, reward["name"])
                    grant_item(
                        session,
                        character,
                        item,
                        reward["quantity"],
                        obtain=reward_description(quest),
                    )
                result.items_distributed.append(
                    {"name": item.item_name, "quantity": reward["quantity"]}
                )
            except (QuestKeeperError, SQLAlchemyError) as exc:
                failed += 1
                result.errors.append(f"item {reward['name']}: {exc}")
                logger.warning(
                    "Item grant %s failed for %s on quest %s: %s",
                    reward["name"], participant.character_name, quest.quest_id, exc,
                )

    result.success = attempted == 0 or failed < attempted
    return result
