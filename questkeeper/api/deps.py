"""
questkeeper.api.deps — FastAPI dependency injection
====================================================

The admin API shares the reward services with the bot but has no Discord
connection, so announcements triggered over HTTP go to the log through
:class:`~questkeeper.services.notifier.LoggingNotifier`.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from questkeeper.config import QuestKeeperConfig, RewardSettings, load_config
from questkeeper.database.engine import create_db_engine
from questkeeper.services.notifier import LoggingNotifier, Notifier

JWT_ALGORITHM = "HS256"

_MIN_SECRET_LENGTH = 32
_WEAK_SECRETS = frozenset({
    "questkeeper-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
})


def _load_jwt_secret() -> str:
    """Read JWT_SECRET and refuse to start the API with a weak one."""
    secret = os.getenv("JWT_SECRET", "").strip()
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(f"JWT_SECRET is a known weak default ('{secret}'); set a unique one.")
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars, need {_MIN_SECRET_LENGTH})."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> QuestKeeperConfig:
    return load_config()


def get_reward_settings(
    cfg: Annotated[QuestKeeperConfig, Depends(get_config)],
) -> RewardSettings:
    return cfg.rewards


def get_notifier() -> Notifier:
    return LoggingNotifier()


def get_current_admin(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Decode the bearer token; 401 when missing/invalid, 403 when not an admin."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme != "Bearer" or not token:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if not payload.get("is_admin"):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not a quest admin")
    return payload
