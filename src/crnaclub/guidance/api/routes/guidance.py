"""User-facing guidance endpoints.

POST /guidance/{user_id}/evaluate                         – run all engines over a snapshot
GET  /guidance/{user_id}/state                            – persisted state blob
POST /guidance/{user_id}/nudges/{nudge_id}/shown          – analytics only
POST /guidance/{user_id}/nudges/{nudge_id}/dismiss        – hide for the dismiss window
POST /guidance/{user_id}/nudges/{nudge_id}/permanent-dismiss
POST /guidance/{user_id}/nudges/{nudge_id}/snooze?days=N
POST /guidance/{user_id}/nudges/{nudge_id}/reset
POST /guidance/{user_id}/prompts/{prompt_id}/dismiss
POST /guidance/{user_id}/celebrations/{event_id}

Mutations always answer 200; a failed durable write is reported as
`persisted: false`, never as an HTTP error.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query

from crnaclub.guidance.api.schemas import InteractionResponse, PromptDismissRequest
from crnaclub.guidance.engine.rules.models import DASHBOARD, UserStateSnapshot
from crnaclub.guidance.orchestrator.guidance_service import (
    GuidanceService,
    get_guidance_service,
    get_interaction_service,
)
from crnaclub.guidance.orchestrator.interactions import (
    InteractionResult,
    InteractionService,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/guidance", tags=["guidance"])


def _ack(result: InteractionResult) -> InteractionResponse:
    return InteractionResponse(status="ok", persisted=result.persisted, state=result.state)


# ---------------------------------------------------------------------------
# Evaluation and state
# ---------------------------------------------------------------------------


@router.post("/{user_id}/evaluate")
async def evaluate(
    user_id: str,
    snapshot: UserStateSnapshot,
    page: Optional[str] = Query(None, description="Return only the nudges for this page key"),
    svc: GuidanceService = Depends(get_guidance_service),
) -> Any:
    result = await svc.evaluate(user_id, snapshot)
    if page is None:
        return result.model_dump(mode="json", by_alias=True)

    nudges = result.dashboard if page == DASHBOARD else result.inline.get(page, [])
    return [n.model_dump(mode="json", by_alias=True) for n in nudges]


@router.get("/{user_id}/state")
async def get_state(
    user_id: str,
    svc: GuidanceService = Depends(get_guidance_service),
) -> dict:
    blob = await svc.store.load(user_id)
    return blob.to_json()


# ---------------------------------------------------------------------------
# Nudge interactions
# ---------------------------------------------------------------------------


@router.post("/{user_id}/nudges/{nudge_id}/shown", response_model=InteractionResponse)
async def mark_shown(
    user_id: str,
    nudge_id: str,
    svc: InteractionService = Depends(get_interaction_service),
):
    return _ack(await svc.mark_shown(user_id, nudge_id))


@router.post("/{user_id}/nudges/{nudge_id}/dismiss", response_model=InteractionResponse)
async def dismiss(
    user_id: str,
    nudge_id: str,
    svc: InteractionService = Depends(get_interaction_service),
):
    return _ack(await svc.dismiss(user_id, nudge_id))


@router.post(
    "/{user_id}/nudges/{nudge_id}/permanent-dismiss", response_model=InteractionResponse
)
async def permanently_dismiss(
    user_id: str,
    nudge_id: str,
    svc: InteractionService = Depends(get_interaction_service),
):
    return _ack(await svc.permanently_dismiss(user_id, nudge_id))


@router.post("/{user_id}/nudges/{nudge_id}/snooze", response_model=InteractionResponse)
async def snooze(
    user_id: str,
    nudge_id: str,
    days: Optional[int] = Query(None, ge=1, description="Defaults to DEFAULT_SNOOZE_DAYS"),
    svc: InteractionService = Depends(get_interaction_service),
):
    return _ack(await svc.snooze(user_id, nudge_id, days))


@router.post("/{user_id}/nudges/{nudge_id}/reset", response_model=InteractionResponse)
async def reset_nudge(
    user_id: str,
    nudge_id: str,
    svc: InteractionService = Depends(get_interaction_service),
):
    return _ack(await svc.reset_nudge(user_id, nudge_id))


# ---------------------------------------------------------------------------
# Prompts and celebrations
# ---------------------------------------------------------------------------


@router.post("/{user_id}/prompts/{prompt_id}/dismiss", response_model=InteractionResponse)
async def dismiss_prompt(
    user_id: str,
    prompt_id: str,
    body: PromptDismissRequest,
    svc: InteractionService = Depends(get_interaction_service),
):
    return _ack(await svc.dismiss_prompt(user_id, prompt_id, body.dismiss_type, body.context))


@router.post("/{user_id}/celebrations/{event_id}", response_model=InteractionResponse)
async def mark_celebrated(
    user_id: str,
    event_id: str,
    svc: InteractionService = Depends(get_interaction_service),
):
    return _ack(await svc.mark_celebrated(user_id, event_id))
