"""
Drive poller endpoints.

Route summary
-------------
POST /run     - run one polling cycle now and return its result.
GET  /status  - poller state and the last cycle's result.
"""
from __future__ import annotations

import dataclasses
import logging

from fastapi import APIRouter, Depends

from app.config import settings
from app.dependencies.services import get_poller
from app.models.schemas import PollerStatusResponse, PollRunResponse
from app.services.poller import DrivePoller

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/run", response_model=PollRunResponse)
async def run_poll(poller: DrivePoller = Depends(get_poller)) -> PollRunResponse:
    result = await poller.run_once()
    return PollRunResponse(**dataclasses.asdict(result))


@router.get("/status", response_model=PollerStatusResponse)
async def poller_status(poller: DrivePoller = Depends(get_poller)) -> PollerStatusResponse:
    last = poller.last_result
    return PollerStatusResponse(
        enabled=settings.POLL_ENABLED,
        running=poller.is_running,
        runs=poller.runs,
        seen_documents=len(poller.store),
        interval_seconds=poller.interval_seconds,
        last_result=PollRunResponse(**dataclasses.asdict(last)) if last else None,
    )
