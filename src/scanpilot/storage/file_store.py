"""JSON-file index store: one ``<key>.json`` per key."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from scanpilot.exceptions import StorageFailure

logger = logging.getLogger(__name__)


class JsonFileIndexStore:
    """Stores each key as a pretty-printed JSON file under *state_dir*."""

    def __init__(self, state_dir: str | Path) -> None:
        self._dir = Path(state_dir)
        self._dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self._dir / f"{key}.json"

    def read(self, key: str) -> dict[str, Any] | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageFailure(f"Could not read {path}: {exc}") from exc

    def write(self, key: str, value: dict[str, Any]) -> None:
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        try:
            tmp.write_text(json.dumps(value, indent=2), encoding="utf-8")
            # rename is atomic on POSIX, readers never see a half-written file
            os.replace(tmp, path)
        except (OSError, TypeError, ValueError) as exc:
            tmp.unlink(missing_ok=True)
            raise StorageFailure(f"Could not write {path}: {exc}") from exc
        logger.debug("Wrote %s.", path)
