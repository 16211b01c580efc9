"""
questkeeper.services.embeds — Discord embed builders for quest announcements
=============================================================================

All embed construction lives here so the announcement service only needs
to supply data — no layout concerns.
"""

from __future__ import annotations

from datetime import UTC, datetime

import discord

from questkeeper.config import RewardSettings
from questkeeper.constants import (
    BORDER_IMAGE_URL,
    QUEST_COLOR_EXPIRED,
    QUEST_COLOR_SUCCESS,
)
from questkeeper.database.models import CompletionReason, ProgressStatus, Quest, QuestParticipant
from questkeeper.engine.formula import describe_reward, parse_reward_expression
from questkeeper.engine.quest_types import get_handler
from questkeeper.services.distribution_service import DistributionResult

_FIELD_LIMIT = 1024
_MAX_LISTED_PARTICIPANTS = 20


def _base_embed(title: str, description: str, color: int = QUEST_COLOR_SUCCESS) -> discord.Embed:
    embed = discord.Embed(
        title=title,
        description=description,
        color=discord.Color(color),
        timestamp=datetime.now(UTC),
    )
    embed.set_image(url=BORDER_IMAGE_URL)
    return embed


def _add_quest_info(embed: discord.Embed, quest: Quest) -> None:
    embed.add_field(name="Quest ID", value=f"`{quest.quest_id}`", inline=True)
    embed.add_field(name="Quest Type", value=quest.quest_type, inline=True)


def build_reward_embed(
    quest: Quest,
    participant: QuestParticipant,
    result: DistributionResult,
) -> discord.Embed:
    """Celebrate one participant's payout."""
    embed = _base_embed(
        "🎉 Quest Reward Received!",
        f"**{participant.character_name}** has received their rewards for "
        f"completing **{quest.title}**!",
    )
    bonus = result.token_breakdown.entertainer_bonus
    if result.tokens_added > 0:
        embed.add_field(
            name="💰 Tokens",
            value=f"{result.tokens_added} tokens"
            + (" (Entertainer bonus applied)" if bonus else ""),
            inline=True,
        )
    if bonus:
        embed.add_field(name="🎭 Entertainer Bonus", value=f"+{bonus} tokens", inline=True)
    if result.items_distributed:
        embed.add_field(
            name="📦 Item Rewards" if len(result.items_distributed) > 1 else "📦 Item Reward",
            value=", ".join(f"{i['quantity']}x {i['name']}" for i in result.items_distributed),
            inline=True,
        )
    _add_quest_info(embed, quest)
    return embed


def build_completion_embed(
    quest: Quest,
    participant: QuestParticipant,
    settings: RewardSettings,
) -> discord.Embed:
    """Per-type "quest completed" embed driven by the handler registry."""
    handler = get_handler(quest.quest_type)
    embed = _base_embed(handler.title(), handler.description(participant.character_name))
    _add_quest_info(embed, quest)
    name, value = handler.progress_field(quest, participant, settings)
    if name != "Status":
        embed.add_field(name=name, value=value, inline=True)
    embed.add_field(name="Status", value="✅ Completed", inline=True)
    return embed


def build_summary_embed(quest: Quest, reason: str) -> discord.Embed:
    """End-of-quest roll call."""
    participants = list(quest.participants.values())
    finished = [
        p for p in participants
        if p.progress in (ProgressStatus.COMPLETED, ProgressStatus.REWARDED)
    ]
    rewarded = [p for p in participants if p.progress == ProgressStatus.REWARDED]

    if reason == CompletionReason.TIME_EXPIRED:
        title = "⏰ Quest Time Expired!"
        description = f"The quest **{quest.title}** has ended due to time expiration."
        color = QUEST_COLOR_EXPIRED
    else:
        title = "🏁 Quest Completed!"
        description = f"The quest **{quest.title}** has been completed!"
        color = QUEST_COLOR_SUCCESS

    embed = _base_embed(title, description, color)
    _add_quest_info(embed, quest)
    embed.add_field(name="Total Participants", value=str(len(participants)), inline=True)
    embed.add_field(name="Completed", value=str(len(finished)), inline=True)
    embed.add_field(name="Rewarded", value=str(len(rewarded)), inline=True)
    embed.add_field(
        name="Completion Reason", value=reason.replace("_", " ").upper(), inline=True
    )
    embed.add_field(
        name="Reward", value=describe_reward(parse_reward_expression(quest.token_reward)), inline=True
    )

    if 0 < len(finished) <= _MAX_LISTED_PARTICIPANTS:
        listing = "\n".join(
            f"• {p.character_name}{' ✅' if p.progress == ProgressStatus.REWARDED else ''}"
            for p in finished
        )
        if len(listing) > _FIELD_LIMIT:
            listing = listing[: _FIELD_LIMIT - 4] + "..."
        embed.add_field(name="Completed Participants", value=listing, inline=False)
    return embed
