"""
questkeeper.services.announcement_service — Discord Quest Announcements
========================================================================

Discord implementation of :class:`~questkeeper.services.notifier.Notifier`.

The reward services call the notifier from a worker thread (via
``run_db``) with the DB session still open.  Embeds are therefore built
right away, while ORM attributes are loadable, and only the network send
is shipped to the bot's event loop with
:func:`asyncio.run_coroutine_threadsafe`.

Embed construction lives in :mod:`questkeeper.services.embeds`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from discord.abc import Messageable

from questkeeper.database.models import SUBMISSION_QUEST_TYPES
from questkeeper.services.embeds import (
    build_completion_embed,
    build_reward_embed,
    build_summary_embed,
)

if TYPE_CHECKING:
    import discord

    from questkeeper.bot.core import QuestKeeperBot
    from questkeeper.database.models import Quest, QuestParticipant
    from questkeeper.services.distribution_service import DistributionResult

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Channel resolution
# ---------------------------------------------------------------------------
def resolve_quest_channel_id(bot: QuestKeeperBot, quest: Quest) -> int | None:
    """Pick the channel for a quest's announcements.

    Art and writing quests always announce in the rewards channel; other
    quests use their own channel when one is set.
    """
    if quest.type_enum not in SUBMISSION_QUEST_TYPES and quest.target_channel_id:
        try:
            return int(quest.target_channel_id)
        except ValueError:
            logger.warning(
                "Quest %s has invalid target channel %r",
                quest.quest_id, quest.target_channel_id,
            )
    return bot.cfg.rewards_channel_id


async def _send_embeds(
    bot: QuestKeeperBot,
    channel_id: int | None,
    embeds: list[discord.Embed],
    content: str | None = None,
) -> None:
    if channel_id is None:
        logger.warning("No announcement channel configured; dropping %d embed(s)", len(embeds))
        return
    channel = bot.get_channel(channel_id)
    if channel is None:
        try:
            channel = await bot.fetch_channel(channel_id)
        except Exception:
            logger.exception("Could not fetch announcement channel %d", channel_id)
            return
    if not isinstance(channel, Messageable):
        logger.warning("Channel %d cannot receive messages", channel_id)
        return
    try:
        await channel.send(content=content, embeds=embeds)
    except Exception:
        logger.exception("Failed to send quest announcement to channel %d", channel_id)


# ---------------------------------------------------------------------------
# Notifier
# ---------------------------------------------------------------------------
class DiscordNotifier:
    """Posts reward and summary embeds through the running bot."""

    def __init__(self, bot: QuestKeeperBot) -> None:
        self.bot = bot

    def _schedule(self, coro) -> None:
        loop = self.bot.loop
        if loop is None or loop.is_closed():
            coro.close()
            logger.warning("Cannot send quest announcement — no event loop available")
            return
        asyncio.run_coroutine_threadsafe(coro, loop)

    def notify_rewarded(
        self, quest: Quest, participant: QuestParticipant, result: DistributionResult
    ) -> None:
        embeds = [
            build_completion_embed(quest, participant, self.bot.cfg.rewards),
            build_reward_embed(quest, participant, result),
        ]
        self._schedule(_send_embeds(
            self.bot,
            resolve_quest_channel_id(self.bot, quest),
            embeds,
            content=f"<@{participant.user_id}>",
        ))

    def notify_quest_summary(self, quest: Quest, reason: str) -> None:
        embed = build_summary_embed(quest, reason)
        self._schedule(_send_embeds(self.bot, self.bot.cfg.rewards_channel_id, [embed]))
