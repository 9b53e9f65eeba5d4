from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any
from urllib.parse import quote

from crnaclub.guidance.state.backends.base import StoreUnavailable

logger = logging.getLogger(__name__)


class JsonFileBackend:
    """One `<user_id>.json` file per user under `root`."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _path(self, user_id: str) -> Path:
        return self.root / f"{quote(user_id, safe='')}.json"

    async def load(self, user_id: str) -> dict[str, Any] | None:
        path = self._path(user_id)
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StoreUnavailable(f"cannot read {path}: {e}") from e

    async def save(self, user_id: str, blob: dict[str, Any]) -> None:
        path = self._path(user_id)
        tmp = path.with_suffix(".json.tmp")
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(blob), encoding="utf-8")
            os.replace(tmp, path)
        except OSError as e:
            raise StoreUnavailable(f"cannot write {path}: {e}") from e

    async def delete(self, user_id: str) -> None:
        try:
            self._path(user_id).unlink(missing_ok=True)
        except OSError as e:
            raise StoreUnavailable(f"cannot delete state for {user_id}: {e}") from e
