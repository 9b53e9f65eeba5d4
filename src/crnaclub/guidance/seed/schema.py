from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from crnaclub.guidance.engine.rules.models import Urgency, validate_surface


class TemplateSeed(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str
    body: str
    cta_label: Optional[str] = None
    href: Optional[str] = None


class RuleSeed(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    name: Optional[str] = None
    kind: str
    enabled: bool = True
    urgency: Urgency = Urgency.medium
    surface: str = "dashboard"
    # kind-specific thresholds and options
    definition: Dict[str, Any] = Field(default_factory=dict)
    # "default" plus any variant names the kind knows about
    templates: Dict[str, TemplateSeed] = Field(default_factory=dict)

    @field_validator("surface")
    @classmethod
    def _check_surface(cls, v: str) -> str:
        return validate_surface(v)

    @field_validator("id")
    @classmethod
    def _check_id(cls, v: str) -> str:
        if not v or ":" in v:
            raise ValueError("rule id must be non-empty and must not contain ':'")
        return v
