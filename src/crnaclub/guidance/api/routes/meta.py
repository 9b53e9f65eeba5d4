from __future__ import annotations

import logging

from fastapi import APIRouter

from crnaclub.guidance.api.schemas import RuleOut
from crnaclub.guidance.config.settings import settings
from crnaclub.guidance.seed.loader import load_catalog

logger = logging.getLogger(__name__)

router = APIRouter(tags=["meta"])


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/meta/rules", response_model=list[RuleOut])
async def list_rules():
    return [
        RuleOut(
            id=r.id,
            name=r.name,
            kind=r.kind,
            enabled=r.enabled,
            urgency=r.urgency,
            surface=r.surface,
        )
        for r in load_catalog(settings.CATALOG_PATH)
    ]
