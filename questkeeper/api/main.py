"""
questkeeper.api.main — FastAPI application entry point
=======================================================

Run with::

    uvicorn questkeeper.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

load_dotenv()

from questkeeper.api.routes.quests import router as quests_router  # noqa: E402

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    logger.info("QuestKeeper API started")
    yield
    logger.info("QuestKeeper API shutting down")


app = FastAPI(
    title="QuestKeeper Admin API",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(quests_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
