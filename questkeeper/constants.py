"""
questkeeper.constants — Shared Presentation Constants
======================================================

Single source of truth for embed colours and decorations.
Import from here instead of duplicating in cogs and services.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Embed colours
# ---------------------------------------------------------------------------
QUEST_COLOR_SUCCESS = 0x00FF00
QUEST_COLOR_EXPIRED = 0xFFA500
QUEST_COLOR_INFO = 0x0099FF

BORDER_IMAGE_URL = "https://storage.googleapis.com/tinglebot/Graphics/border.png"

# ---------------------------------------------------------------------------
# Reward-free markers in quest reward fields
# ---------------------------------------------------------------------------
NO_REWARD_MARKERS: frozenset[str] = frozenset({
    "n/a",
    "no reward",
    "no reward specified",
    "none",
})
