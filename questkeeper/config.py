"""
questkeeper.config — YAML Configuration Loader
===============================================

**Why this file exists:**
Reads ``config.yaml`` once at startup.  The result is an immutable
:class:`QuestKeeperConfig` that gets handed to the bot, the API and every
reward service that needs tuning values — nothing reads configuration
from module globals.

Usage::

    from questkeeper.config import load_config

    cfg = load_config()                           # reads ./config.yaml
    print(cfg.rewards.entertainer_bonus_amount)   # 100
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Reward tuning
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RewardSettings:
    """Knobs for the quest reward pipeline.

    The defaults match the values the community has always used, so a
    config file without a ``rewards:`` block behaves like production.
    """

    entertainer_bonus_amount: int = 100
    entertainer_job: str = "entertainer"
    default_post_requirement: int = 15
    default_roll_requirement: int = 1
    submission_match_window_seconds: int = 60


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class QuestKeeperConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # Discord
    bot_prefix: str
    guild_id: int

    # Admin / Hardened Access
    admin_role_id: int  # Discord role required for quest admin commands

    # Reward pipeline
    rewards: RewardSettings = field(default_factory=RewardSettings)

    # Background jobs
    reconciliation_interval_hours: int = 720
    expiry_check_minutes: int = 10

    # Optional
    rewards_channel_id: int | None = None  # Where reward / summary embeds go


def _load_reward_settings(raw: dict | None) -> RewardSettings:
    if not raw:
        return RewardSettings()
    defaults = RewardSettings()
    return RewardSettings(
        entertainer_bonus_amount=int(
            raw.get("entertainer_bonus_amount", defaults.entertainer_bonus_amount)
        ),
        entertainer_job=str(raw.get("entertainer_job", defaults.entertainer_job)),
        default_post_requirement=int(
            raw.get("default_post_requirement", defaults.default_post_requirement)
        ),
        default_roll_requirement=int(
            raw.get("default_roll_requirement", defaults.default_roll_requirement)
        ),
        submission_match_window_seconds=int(
            raw.get(
                "submission_match_window_seconds",
                defaults.submission_match_window_seconds,
            )
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> QuestKeeperConfig:
    """Read *path* and return a :class:`QuestKeeperConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh)

    return QuestKeeperConfig(
        community_name=raw["community_name"],
        bot_prefix=raw["bot_prefix"],
        guild_id=int(raw["guild_id"]),
        admin_role_id=int(raw["admin_role_id"]),
        rewards=_load_reward_settings(raw.get("rewards")),
        reconciliation_interval_hours=int(raw.get("reconciliation_interval_hours", 720)),
        expiry_check_minutes=int(raw.get("expiry_check_minutes", 10)),
        rewards_channel_id=(
            int(raw["rewards_channel_id"]) if raw.get("rewards_channel_id") else None
        ),
    )
