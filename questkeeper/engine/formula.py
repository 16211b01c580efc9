"""
questkeeper.engine.formula — Reward Expression Parser
======================================================

Quest authors write token rewards as small expressions::

    250
    "flat:300"
    "per_unit:50 unit:submission max:3"
    "flat:100 per_unit:25 unit:\"approved piece\" collab_bonus:20"
    "No reward"

Keys are case-insensitive, order-independent and found anywhere in the
string.  Parsing never raises: anything unrecognised contributes nothing.
Pure module — no DB I/O.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from questkeeper.constants import NO_REWARD_MARKERS

_FLAT_RE = re.compile(r"flat:(\d+)", re.IGNORECASE)
_PER_UNIT_RE = re.compile(r"per_unit:(\d+)", re.IGNORECASE)
_UNIT_QUOTED_RE = re.compile(r'\bunit:"((?:[^"\\]|\\.)*)"', re.IGNORECASE)
_UNIT_BARE_RE = re.compile(r"\bunit:(\S+)", re.IGNORECASE)
_MAX_RE = re.compile(r"max:(\d+)", re.IGNORECASE)
_COLLAB_RE = re.compile(r"collab_bonus:(\d+)", re.IGNORECASE)
_NUMERIC_RE = re.compile(r"^\d+(?:\.\d+)?$")
_LEADING_NUMBER_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)")
_ESCAPE_RE = re.compile(r"\\(.)")


@dataclass(frozen=True, slots=True)
class RewardSpec:
    """Parsed reward expression."""

    flat: int = 0
    per_unit: int = 0
    unit: str | None = None
    max_units: int | None = None
    collab_bonus: int = 0

    @property
    def counts_units(self) -> bool:
        """True when the reward scales with the participant's units."""
        return self.per_unit > 0 and bool(self.unit)

    @property
    def cap(self) -> int | None:
        """Unit cap, or ``None`` for unbounded (a missing or zero ``max``)."""
        if self.max_units and self.max_units > 0:
            return self.max_units
        return None

    def capped(self, units: int) -> int:
        cap = self.cap
        units = max(0, units)
        return units if cap is None else min(units, cap)

    def base_tokens(self, units: int = 0) -> int:
        """``flat + per_unit × min(units, cap)``."""
        return self.flat + self.per_unit * self.capped(units)

    @property
    def is_empty(self) -> bool:
        return self.flat == 0 and self.per_unit == 0 and self.collab_bonus == 0


def _is_no_reward(text: str) -> bool:
    return not text or text.lower() in NO_REWARD_MARKERS


def _int_match(pattern: re.Pattern[str], text: str) -> int | None:
    match = pattern.search(text)
    return int(match.group(1)) if match else None


def _parse_unit(text: str) -> str | None:
    quoted = _UNIT_QUOTED_RE.search(text)
    if quoted:
        return _ESCAPE_RE.sub(r"\1", quoted.group(1))
    bare = _UNIT_BARE_RE.search(text)
    return bare.group(1) if bare else None


def parse_reward_expression(raw: str | int | float | None) -> RewardSpec:
    """Parse a quest's ``token_reward`` into a :class:`RewardSpec`.

    Bare numbers and plain numeric strings are flat rewards.  The
    no-reward markers (``"N/A"``, ``"No reward"``, ``"None"``,
    ``"No reward specified"``) and ``None`` yield an all-zero spec.
    """
    if raw is None or isinstance(raw, bool):
        return RewardSpec()
    if isinstance(raw, int | float):
        return RewardSpec(flat=max(0, int(raw)))

    text = str(raw).strip()
    if _is_no_reward(text):
        return RewardSpec()
    if _NUMERIC_RE.match(text):
        return RewardSpec(flat=int(float(text)))

    return RewardSpec(
        flat=_int_match(_FLAT_RE, text) or 0,
        per_unit=_int_match(_PER_UNIT_RE, text) or 0,
        unit=_parse_unit(text),
        max_units=_int_match(_MAX_RE, text),
        collab_bonus=_int_match(_COLLAB_RE, text) or 0,
    )


def legacy_token_reward(raw: str | int | float | None) -> int:
    """Single-number reading of a ``token_reward`` field.

    Older quests stored rewards like ``"100 tokens"``; the leading number
    wins.  Never negative.
    """
    if raw is None or isinstance(raw, bool):
        return 0
    if isinstance(raw, int | float):
        return max(0, int(raw))

    text = str(raw).strip()
    if _is_no_reward(text):
        return 0
    match = _LEADING_NUMBER_RE.match(text)
    if not match:
        return 0
    return max(0, int(float(match.group(1))))


def describe_reward(spec: RewardSpec) -> str:
    """Human-readable summary used on quest embeds."""
    if spec.counts_units:
        text = f"{spec.per_unit} tokens per {spec.unit}"
        if spec.cap is not None:
            text += f" (max {spec.cap})"
        if spec.flat:
            text = f"{spec.flat} tokens + {text}"
        return text
    if spec.flat:
        return f"{spec.flat} tokens (flat rate)"
    return "No token reward"
