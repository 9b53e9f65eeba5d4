"""Shared Pydantic schemas for the guidance API.

Request bodies and response models that are not domain models live here so
they appear in the OpenAPI docs and can be reused across routers.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from crnaclub.guidance.engine.rules.models import DismissType, NudgeState, Urgency


# ---------------------------------------------------------------------------
# Common
# ---------------------------------------------------------------------------


class StatusResponse(BaseModel):
    """Generic operation acknowledgement."""

    status: str = Field(..., examples=["ok"])


class InteractionResponse(StatusResponse):
    """Acknowledgement for a state mutation. `persisted` is False if only the in-memory copy was updated."""

    persisted: bool
    state: Optional[NudgeState] = None


# ---------------------------------------------------------------------------
# Prompt dismissals
# ---------------------------------------------------------------------------


class PromptDismissRequest(BaseModel):
    dismiss_type: DismissType = DismissType.permanent
    context: Optional[str] = None


# ---------------------------------------------------------------------------
# Meta
# ---------------------------------------------------------------------------


class RuleOut(BaseModel):
    id: str
    name: Optional[str] = None
    kind: str
    enabled: bool
    urgency: Urgency
    surface: str
