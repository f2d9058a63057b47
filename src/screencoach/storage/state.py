"""Durable local key/value state.

A small JSON document on disk holding the credential list and the daily
usage counter. Every mutation is written through immediately.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

API_KEYS_KEY = "api_keys"
DAILY_QUOTA_KEY = "daily_quota"
QUOTA_DATE_KEY = "quota_date"


class LocalStateStore:
    """JSON-file backed key/value store.

    Pass ``path=None`` for an in-memory store that never touches disk.
    """

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path).expanduser() if path is not None else None
        self._data: dict[str, Any] = {}

    @property
    def path(self) -> Path | None:
        return self._path

    def load(self) -> LocalStateStore:
        """Read the state file. A missing or unreadable file yields empty state."""
        if self._path is None or not self._path.exists():
            self._data = {}
            return self
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable state file %s: %s", self._path, e)
            data = {}
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed state file %s", self._path)
            data = {}
        self._data = data
        return self

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self.save()

    def update(self, values: dict[str, Any]) -> None:
        self._data.update(values)
        self.save()

    def save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".state-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
