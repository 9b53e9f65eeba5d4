from __future__ import annotations

from crnaclub.guidance.config.settings import Settings, settings
from crnaclub.guidance.state.backends.base import StateBackend
from crnaclub.guidance.state.backends.file import JsonFileBackend
from crnaclub.guidance.state.backends.memory import InMemoryBackend


def get_backend(cfg: Settings = settings) -> StateBackend:
    kind = cfg.STATE_BACKEND
    if kind == "memory":
        return InMemoryBackend()
    if kind == "file":
        return JsonFileBackend(cfg.STATE_DIR)
    if kind == "database":
        from crnaclub.guidance.db.session import get_sessionmaker
        from crnaclub.guidance.state.backends.database import SqlAlchemyBackend

        return SqlAlchemyBackend(get_sessionmaker())
    raise ValueError(f"No state backend registered for {kind!r}")
