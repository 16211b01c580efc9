"""
questkeeper.bot.cogs.tasks — Periodic Background Tasks
=======================================================

Scheduled jobs that run on ``discord.ext.tasks`` loops:

- **Quest expiry** — every ``expiry_check_minutes`` (default 10), closes
  quests whose time limit has passed and settles their rewards.
- **Monthly reconciliation** — every ``reconciliation_interval_hours``
  (default 720), pays any reward the immediate path missed.

Both run via ``run_db()`` to avoid blocking the event loop.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from discord.ext import commands, tasks

from questkeeper.database.engine import run_db

if TYPE_CHECKING:
    from questkeeper.bot.core import QuestKeeperBot

logger = logging.getLogger(__name__)


class PeriodicTasks(commands.Cog):
    """Cog for scheduled quest maintenance."""

    def __init__(self, bot: QuestKeeperBot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        """Apply configured intervals and start the loops."""
        self.expiry_loop.change_interval(minutes=self.bot.cfg.expiry_check_minutes)
        self.reconciliation_loop.change_interval(
            hours=self.bot.cfg.reconciliation_interval_hours
        )
        self.expiry_loop.start()
        self.reconciliation_loop.start()

    async def cog_unload(self) -> None:
        self.expiry_loop.cancel()
        self.reconciliation_loop.cancel()

    # -------------------------------------------------------------------
    # Quest expiry
    # -------------------------------------------------------------------
    @tasks.loop(minutes=10)
    async def expiry_loop(self):
        """Close and settle quests past their time limit."""
        from questkeeper.services.quest_reward_service import expire_due_quests

        try:
            result = await run_db(
                expire_due_quests, self.bot.engine, self.bot.cfg.rewards, self.bot.notifier,
            )
            if result["expired"]:
                logger.info(
                    "Expiry task complete: %d quest(s) closed", len(result["expired"]),
                )
        except Exception:
            logger.exception("Expiry task failed", extra={"task": "quest_expiry"})

    @expiry_loop.before_loop
    async def _wait_expiry(self):
        await self.bot.wait_until_ready()

    # -------------------------------------------------------------------
    # Monthly reconciliation
    # -------------------------------------------------------------------
    @tasks.loop(hours=720)  # ~30 days
    async def reconciliation_loop(self):
        """Re-check completed quests and pay outstanding rewards."""
        from questkeeper.services.reconciliation_service import run_monthly_reconciliation

        try:
            result = await run_db(
                run_monthly_reconciliation,
                self.bot.engine,
                self.bot.cfg.rewards,
                self.bot.notifier,
            )
            logger.info(
                "Reconciliation task complete: quests=%d rewarded=%d already=%d errors=%d",
                result["quests"], result["rewarded"],
                result["already_rewarded"], result["errors"],
            )
        except Exception:
            logger.exception("Reconciliation task failed", extra={"task": "monthly_reconciliation"})

    @reconciliation_loop.before_loop
    async def _wait_reconciliation(self):
        await self.bot.wait_until_ready()


async def setup(bot: QuestKeeperBot) -> None:
    await bot.add_cog(PeriodicTasks(bot))
