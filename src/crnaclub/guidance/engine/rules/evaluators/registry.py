from __future__ import annotations

import importlib
import importlib.util
import logging
from functools import lru_cache
from pathlib import Path
from typing import Callable, Iterable, Iterator

from crnaclub.guidance.config.settings import settings
from crnaclub.guidance.engine.rules.evaluators.base import (
    CatalogRule,
    RuleEngine,
    get_kind,
    register_kind,
)
from crnaclub.guidance.engine.rules.models import Nudge, UserStateSnapshot
from crnaclub.guidance.seed.loader import load_catalog
from crnaclub.guidance.seed.schema import RuleSeed

# built-in kinds register themselves on import
from crnaclub.guidance.engine.rules.evaluators import (  # noqa: F401
    celebrations,
    deadlines,
    engagement,
    interviews,
    prerequisites,
    trackers,
)

logger = logging.getLogger(__name__)


class EngineRegistry:
    """Ordered set of rule engines. Registration order is the priority tie-break."""

    def __init__(self, engines: Iterable[RuleEngine] = ()):
        self._engines: list[RuleEngine] = []
        for engine in engines:
            self.register(engine)

    def register(self, engine: RuleEngine) -> RuleEngine:
        if engine.engine_id in self:
            raise ValueError(f"Engine already registered: {engine.engine_id}")
        self._engines.append(engine)
        return engine

    def get(self, engine_id: str) -> RuleEngine | None:
        return next((e for e in self._engines if e.engine_id == engine_id), None)

    def order(self, engine_id: str) -> int:
        for i, e in enumerate(self._engines):
            if e.engine_id == engine_id:
                return i
        return len(self._engines)

    @property
    def engine_ids(self) -> list[str]:
        return [e.engine_id for e in self._engines]

    def __contains__(self, engine_id: object) -> bool:
        return any(e.engine_id == engine_id for e in self._engines)

    def __iter__(self) -> Iterator[RuleEngine]:
        return iter(list(self._engines))

    def __len__(self) -> int:
        return len(self._engines)


# -----------------------------
# Custom evaluators (definition.evaluator_module / evaluator_path)
# -----------------------------


def _load_custom_evaluator(module_path: str) -> Callable | None:
    try:
        mod = importlib.import_module(module_path)
        fn = getattr(mod, "evaluate", None)
        if callable(fn):
            return fn
    except Exception:
        logger.exception("Failed loading evaluator module: %s", module_path)
    return None


_PATH_CACHE: dict[str, Callable] = {}


def _load_evaluator_from_path(path: str) -> Callable | None:
    if path in _PATH_CACHE:
        return _PATH_CACHE[path]
    try:
        module_name = f"rule_eval_{abs(hash(path))}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec and spec.loader:
            mod = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(mod)
            fn = getattr(mod, "evaluate", None)
            if callable(fn):
                _PATH_CACHE[path] = fn
                return fn
    except Exception:
        logger.exception("Failed loading evaluator path: %s", path)
    return None


@register_kind("custom")
class CustomRule(CatalogRule):
    """
    Delegates to `evaluate(rule, snapshot)` in a user module.
    The function returns Nudge objects or plain dicts; `engine_id` is forced.
    """

    def __init__(self, seed: RuleSeed):
        super().__init__(seed)
        self._fn: Callable | None = None

    def _resolve(self) -> Callable:
        if self._fn is not None:
            return self._fn

        evaluator_path = self.option("evaluator_path")
        module_path = self.option("evaluator_module")
        fn = None
        if isinstance(evaluator_path, str) and evaluator_path:
            p = Path(evaluator_path)
            if not p.is_absolute() and settings.CATALOG_PATH:
                p = Path(settings.CATALOG_PATH).parent / p
            fn = _load_evaluator_from_path(str(p))
        elif isinstance(module_path, str) and module_path:
            fn = _load_custom_evaluator(module_path)

        if fn is None:
            raise LookupError(f"evaluator not found for rule {self.engine_id}")
        self._fn = fn
        return fn

    def evaluate(self, snapshot: UserStateSnapshot) -> list[Nudge]:
        out: list[Nudge] = []
        for item in self._resolve()(self, snapshot) or []:
            if isinstance(item, Nudge):
                item = item.model_dump()
            data = {
                "urgency": self.seed.urgency,
                "surface": self.seed.surface,
                **dict(item),
                "engine_id": self.engine_id,
            }
            out.append(Nudge.model_validate(data))
        return out


# -----------------------------
# Registry construction
# -----------------------------


def build_registry(seeds: Iterable[RuleSeed]) -> EngineRegistry:
    registry = EngineRegistry()
    for seed in seeds:
        if not seed.enabled:
            logger.debug("Rule %s disabled, skipping", seed.id)
            continue
        cls = get_kind(seed.kind)
        if cls is None:
            logger.warning("Unknown rule kind %r for rule %s, skipping", seed.kind, seed.id)
            continue
        registry.register(cls(seed))
    return registry


@lru_cache(maxsize=1)
def get_default_registry() -> EngineRegistry:
    return build_registry(load_catalog(settings.CATALOG_PATH))
