from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from crnaclub.guidance.api.schemas import InteractionResponse
from crnaclub.guidance.orchestrator.guidance_service import get_interaction_service
from crnaclub.guidance.orchestrator.interactions import InteractionService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["admin"])


@router.delete("/guidance/{user_id}/state", response_model=InteractionResponse)
async def reset_state(
    user_id: str,
    svc: InteractionService = Depends(get_interaction_service),
):
    persisted = await svc.clear_all(user_id)
    logger.info("Reset guidance state for user %s (persisted=%s)", user_id, persisted)
    return InteractionResponse(status="ok", persisted=persisted)
