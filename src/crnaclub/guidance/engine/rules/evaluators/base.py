from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Callable, ClassVar, Dict, Protocol, Type, runtime_checkable

from crnaclub.guidance.engine.rules.models import Nudge, Urgency, UserStateSnapshot
from crnaclub.guidance.engine.templates.renderer import render, render_text
from crnaclub.guidance.seed.schema import RuleSeed, TemplateSeed


@runtime_checkable
class RuleEngine(Protocol):
    """Pure function of a snapshot. Must not touch the state store or do I/O."""

    engine_id: str

    def evaluate(self, snapshot: UserStateSnapshot) -> list[Nudge]: ...


_KINDS: Dict[str, Type["CatalogRule"]] = {}


def register_kind(kind: str) -> Callable[[Type["CatalogRule"]], Type["CatalogRule"]]:
    def decorator(cls: Type["CatalogRule"]) -> Type["CatalogRule"]:
        cls.kind = kind
        _KINDS[kind] = cls
        return cls

    return decorator


def get_kind(kind: str) -> Type["CatalogRule"] | None:
    return _KINDS.get(kind)


def known_kinds() -> list[str]:
    return sorted(_KINDS)


# -----------------------------
# Time helpers
# -----------------------------


def days_since(ts: datetime | None, now: datetime) -> float | None:
    """Elapsed days (fractional). None when the timestamp is missing."""
    if ts is None:
        return None
    return (now - ts).total_seconds() / 86400


def days_until(ts: datetime | None, now: datetime) -> int | None:
    """Whole days remaining, rounded up. Negative once the date has passed."""
    if ts is None:
        return None
    return math.ceil((ts - now).total_seconds() / 86400)


def reached(elapsed: float | None, threshold: float) -> bool:
    # thresholds are inclusive
    return elapsed is not None and elapsed >= threshold


def program_label(program: Any) -> str:
    return getattr(program, "name", None) or "your program"


# -----------------------------
# Catalog-backed engine base
# -----------------------------


class CatalogRule:
    """Base for engines configured from a catalog entry (see seed/catalog)."""

    kind: ClassVar[str] = ""

    def __init__(self, seed: RuleSeed):
        self.seed = seed
        self.engine_id = seed.id

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.engine_id}>"

    def option(self, key: str, default: Any = None) -> Any:
        return (self.seed.definition or {}).get(key, default)

    def template(self, variant: str = "default") -> TemplateSeed:
        tmpl = self.seed.templates.get(variant) or self.seed.templates.get("default")
        if tmpl is None:
            raise LookupError(
                f"rule {self.engine_id} has no template for variant={variant!r}"
            )
        return tmpl

    def nudge_id(self, *parts: Any) -> str:
        return ":".join([self.engine_id, *(str(p) for p in parts)])

    def make_nudge(
        self,
        nudge_id: str,
        ctx: dict,
        *,
        variant: str = "default",
        urgency: Urgency | str | None = None,
        surface: str | None = None,
        context: str | None = None,
        event_id: str | None = None,
    ) -> Nudge:
        tmpl = self.template(variant)
        title, body = render(tmpl.title, tmpl.body, ctx)
        cta = None
        if tmpl.cta_label or tmpl.href:
            cta = {
                "label": render_text(tmpl.cta_label, ctx),
                "href": render_text(tmpl.href, ctx),
            }
        return Nudge(
            id=nudge_id,
            engine_id=self.engine_id,
            urgency=Urgency(urgency) if urgency else self.seed.urgency,
            surface=surface or self.seed.surface,
            payload={"title": title, "body": body, "cta": cta, "data": dict(ctx)},
            prompt_id=f"{self.engine_id}.{variant}",
            context=context,
            event_id=event_id,
        )

    def evaluate(self, snapshot: UserStateSnapshot) -> list[Nudge]:
        raise NotImplementedError
