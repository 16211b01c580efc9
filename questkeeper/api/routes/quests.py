"""
questkeeper.api.routes.quests — Admin quest reward endpoints (JWT‑protected)
============================================================================
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import Engine

from questkeeper.api.deps import get_current_admin, get_engine, get_notifier, get_reward_settings
from questkeeper.config import RewardSettings
from questkeeper.errors import NotFoundError, QuestStateError
from questkeeper.services import quest_reward_service, reconciliation_service
from questkeeper.services.notifier import Notifier

router = APIRouter(prefix="/admin/quests", tags=["quests"])


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class SettlementResult(BaseModel):
    quest_id: str
    processed: int
    rewarded: int
    already_rewarded: int
    not_completed: int
    failed: int
    errors: int
    quest_completed: bool


class ReconciliationResult(BaseModel):
    quests: int
    processed: int
    rewarded: int
    already_rewarded: int
    not_completed: int
    failed: int
    errors: int
    timestamp: str


class ParticipantRewardStatus(BaseModel):
    user_id: str
    character_name: str
    progress: str
    tokens_earned: int
    items_earned: list[dict[str, Any]]
    reward_processed: bool
    reward_source: str | None
    rewarded_at: str | None
    last_reward_check: str | None
    status: str


class QuestRewardStatus(BaseModel):
    quest_id: str
    quest_title: str
    quest_status: str
    total_participants: int
    participants: list[ParticipantRewardStatus]


class RewardSummary(BaseModel):
    """Totals across completed quests, including the unpaid backlog."""
    completed_quests: int
    total_participants: int
    rewarded: int
    pending_rewards: int
    not_completed: int
    by_source: dict[str, int]
    timestamp: str


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.get("/summary", response_model=RewardSummary)
def reward_summary(
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),  # noqa: ARG001
):
    return RewardSummary(**quest_reward_service.get_quest_reward_summary(engine))


@router.post("/reconcile", response_model=ReconciliationResult)
def reconcile(
    engine: Engine = Depends(get_engine),
    settings: RewardSettings = Depends(get_reward_settings),
    notifier: Notifier = Depends(get_notifier),
    admin: dict = Depends(get_current_admin),  # noqa: ARG001
):
    """Run the monthly reconciliation sweep now."""
    return ReconciliationResult(
        **reconciliation_service.run_monthly_reconciliation(engine, settings, notifier)
    )


@router.get("/{quest_id}/rewards", response_model=QuestRewardStatus)
def reward_status(
    quest_id: str,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),  # noqa: ARG001
):
    try:
        report = quest_reward_service.validate_quest_reward_status(engine, quest_id)
    except NotFoundError as exc:
        raise HTTPException(404, str(exc))
    return QuestRewardStatus(**report)


@router.post("/{quest_id}/process", response_model=SettlementResult)
def process_quest(
    quest_id: str,
    engine: Engine = Depends(get_engine),
    settings: RewardSettings = Depends(get_reward_settings),
    notifier: Notifier = Depends(get_notifier),
    admin: dict = Depends(get_current_admin),  # noqa: ARG001
):
    """Settle a quest immediately."""
    try:
        summary = quest_reward_service.process_quest_completion(
            engine, settings, quest_id, notifier,
        )
    except NotFoundError as exc:
        raise HTTPException(404, str(exc))
    except QuestStateError as exc:
        raise HTTPException(409, str(exc))
    return SettlementResult(**summary)


@router.post("/{quest_id}/complete", response_model=SettlementResult)
def complete_quest(
    quest_id: str,
    engine: Engine = Depends(get_engine),
    settings: RewardSettings = Depends(get_reward_settings),
    notifier: Notifier = Depends(get_notifier),
    admin: dict = Depends(get_current_admin),
):
    """Close an active quest and settle it."""
    try:
        summary = quest_reward_service.manually_complete_quest(
            engine, settings, quest_id, notifier, admin_id=str(admin.get("sub")),
        )
    except NotFoundError as exc:
        raise HTTPException(404, str(exc))
    except QuestStateError as exc:
        raise HTTPException(409, str(exc))
    return SettlementResult(**summary)
