from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crnaclub.guidance.db.models import UserGuidanceState, utc_now
from crnaclub.guidance.state.backends.base import StoreUnavailable

logger = logging.getLogger(__name__)


class SqlAlchemyBackend:
    """Stores the blob in `user_guidance_state.prompt_state`."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self._sessionmaker = sessionmaker

    async def load(self, user_id: str) -> dict[str, Any] | None:
        try:
            async with self._sessionmaker() as db:
                res = await db.execute(
                    select(UserGuidanceState.prompt_state).where(
                        UserGuidanceState.user_id == user_id
                    )
                )
                return res.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"load failed for {user_id}: {e}") from e

    async def save(self, user_id: str, blob: dict[str, Any]) -> None:
        try:
            async with self._sessionmaker() as db:
                row = await db.get(UserGuidanceState, user_id)
                if row is None:
                    db.add(UserGuidanceState(user_id=user_id, prompt_state=blob))
                else:
                    row.prompt_state = blob
                    row.updated_at = utc_now()
                await db.commit()
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"save failed for {user_id}: {e}") from e

    async def delete(self, user_id: str) -> None:
        try:
            async with self._sessionmaker() as db:
                await db.execute(
                    delete(UserGuidanceState).where(UserGuidanceState.user_id == user_id)
                )
                await db.commit()
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"delete failed for {user_id}: {e}") from e
