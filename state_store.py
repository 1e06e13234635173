"""Durable record of the last snapshot, its timestamp, attribution and interval.

A single key is rewritten after every refresh cycle. Missing or corrupt
content never fails a cycle; the store falls back to the initial state.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from config import STORE_KEY
from models import PersistedState

logger = logging.getLogger(__name__)


class KeyValueStorage(Protocol):
    def load(self, key: str) -> str | None: ...

    def save(self, key: str, value: str) -> None: ...


class JsonFileStorage:
    """One ``<key>.json`` file per key under ``directory``."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def load(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text()

    def save(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self._path(key).write_text(value)


class StateStore:
    def __init__(self, storage: KeyValueStorage, key: str = STORE_KEY) -> None:
        self.storage = storage
        self.key = key

    def load(self) -> PersistedState:
        try:
            raw = self.storage.load(self.key)
        except OSError as err:
            logger.warning("Could not read %s: %s", self.key, err)
            return PersistedState()
        if not raw:
            return PersistedState()

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as err:
            logger.warning("Ignoring corrupt state %s: %s", self.key, err)
            return PersistedState()
        if not isinstance(payload, dict):
            logger.warning("Ignoring state %s: expected an object, got %s", self.key, type(payload).__name__)
            return PersistedState()

        try:
            return PersistedState.model_validate(payload)
        except ValidationError as err:
            logger.warning("Ignoring invalid state %s: %s", self.key, err)
            return PersistedState()

    def save(self, state: PersistedState) -> None:
        # No-data placeholders are written as null and read back as NaN.
        payload = state.model_dump(mode="json", by_alias=True)
        self.storage.save(self.key, json.dumps(payload, indent=2, allow_nan=False))
