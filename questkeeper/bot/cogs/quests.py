"""
questkeeper.bot.cogs.quests — Quest Admin Slash Commands
=========================================================

Discord slash commands for quest admins:
- /quest-process   — settle a quest now (pay everyone who has finished)
- /quest-complete  — close an active quest and settle it
- /quest-status    — per-participant reward state
- /quest-reconcile — run the monthly reconciliation sweep immediately

All commands require the configured admin_role_id.  Replies are
ephemeral; public celebrations go through the bot's notifier.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from questkeeper.constants import QUEST_COLOR_INFO
from questkeeper.database.engine import run_db
from questkeeper.errors import QuestKeeperError
from questkeeper.services.quest_reward_service import (
    manually_complete_quest,
    process_quest_completion,
    validate_quest_reward_status,
)
from questkeeper.services.reconciliation_service import run_monthly_reconciliation

if TYPE_CHECKING:
    from questkeeper.bot.core import QuestKeeperBot

logger = logging.getLogger(__name__)

_STATUS_ICONS = {
    "already_rewarded": "✅",
    "needs_rewarding": "⏳",
    "not_completed": "▫️",
}


def is_admin():
    """Decorator that checks if the user has the configured admin role."""
    async def predicate(interaction: discord.Interaction) -> bool:
        bot: QuestKeeperBot = interaction.client  # type: ignore[assignment]
        if not interaction.user or not hasattr(interaction.user, "roles"):
            return False
        admin_role_id = bot.cfg.admin_role_id
        return any(role.id == admin_role_id for role in interaction.user.roles)
    return app_commands.check(predicate)


def _format_settlement(summary: dict) -> str:
    return (
        f"Processed **{summary['processed']}** participant(s): "
        f"{summary['rewarded']} rewarded, {summary['already_rewarded']} already rewarded, "
        f"{summary['not_completed']} not completed"
        + (f", {summary['failed']} failed" if summary.get("failed") else "")
        + (f", {summary['errors']} error(s)" if summary.get("errors") else "")
    )


def build_status_embed(report: dict) -> discord.Embed:
    embed = discord.Embed(
        title=f"📜 {report['quest_title']}",
        description=(
            f"Quest `{report['quest_id']}` — **{report['quest_status']}** — "
            f"{report['total_participants']} participant(s)"
        ),
        color=discord.Color(QUEST_COLOR_INFO),
    )
    lines = [
        f"{_STATUS_ICONS.get(p['status'], '•')} **{p['character_name']}** — "
        f"{p['progress']}, {p['tokens_earned']} tokens"
        + (f" ({p['reward_source']})" if p["reward_source"] else "")
        for p in report["participants"][:25]
    ]
    embed.add_field(name="Participants", value="\n".join(lines) or "None", inline=False)
    return embed


class QuestAdmin(commands.Cog, name="Quests"):
    """Quest reward administration."""

    def __init__(self, bot: QuestKeeperBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # /quest-process
    # -------------------------------------------------------------------
    @app_commands.command(name="quest-process", description="Settle rewards for a quest now.")
    @app_commands.describe(quest_id="The quest ID (e.g. Q123456)")
    @is_admin()
    async def quest_process(self, interaction: discord.Interaction, quest_id: str) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            summary = await run_db(
                process_quest_completion,
                self.bot.engine,
                self.bot.cfg.rewards,
                quest_id,
                self.bot.notifier,
            )
        except QuestKeeperError as exc:
            await interaction.followup.send(f"❌ {exc}", ephemeral=True)
            return
        await interaction.followup.send(f"✅ {_format_settlement(summary)}", ephemeral=True)

    # -------------------------------------------------------------------
    # /quest-complete
    # -------------------------------------------------------------------
    @app_commands.command(
        name="quest-complete", description="Close an active quest and pay finished participants."
    )
    @app_commands.describe(quest_id="The quest ID (e.g. Q123456)")
    @is_admin()
    async def quest_complete(self, interaction: discord.Interaction, quest_id: str) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            summary = await run_db(
                manually_complete_quest,
                self.bot.engine,
                self.bot.cfg.rewards,
                quest_id,
                self.bot.notifier,
                str(interaction.user.id),
            )
        except QuestKeeperError as exc:
            await interaction.followup.send(f"❌ {exc}", ephemeral=True)
            return
        await interaction.followup.send(
            f"🏁 Quest `{quest_id}` closed. {_format_settlement(summary)}", ephemeral=True
        )

    # -------------------------------------------------------------------
    # /quest-status
    # -------------------------------------------------------------------
    @app_commands.command(name="quest-status", description="Show reward status for a quest.")
    @app_commands.describe(quest_id="The quest ID (e.g. Q123456)")
    @is_admin()
    async def quest_status(self, interaction: discord.Interaction, quest_id: str) -> None:
        try:
            report = await run_db(validate_quest_reward_status, self.bot.engine, quest_id)
        except QuestKeeperError as exc:
            await interaction.response.send_message(f"❌ {exc}", ephemeral=True)
            return
        await interaction.response.send_message(embed=build_status_embed(report), ephemeral=True)

    # -------------------------------------------------------------------
    # /quest-reconcile
    # -------------------------------------------------------------------
    @app_commands.command(
        name="quest-reconcile", description="Run the monthly reward reconciliation now."
    )
    @is_admin()
    async def quest_reconcile(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)
        result = await run_db(
            run_monthly_reconciliation,
            self.bot.engine,
            self.bot.cfg.rewards,
            self.bot.notifier,
        )
        logger.info("Manual reconciliation by %s: %s", interaction.user.id, result)
        await interaction.followup.send(
            f"🔁 Checked **{result['quests']}** completed quest(s): "
            f"{result['rewarded']} reward(s) paid, "
            f"{result['already_rewarded']} already rewarded, {result['errors']} error(s).",
            ephemeral=True,
        )


async def setup(bot: QuestKeeperBot) -> None:
    await bot.add_cog(QuestAdmin(bot))
