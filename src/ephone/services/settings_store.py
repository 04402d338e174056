"""Key-value persistence backing the toggle governor."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Protocol

from ephone.config import EphoneSettings
from ephone.core.errors import StoreUnavailable
from ephone.logging import get_logger


class SettingsStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class MemorySettingsStore:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def snapshot(self) -> dict[str, str]:
        return dict(self._data)


class JsonFileSettingsStore:
    """Flat ``{key: value}`` JSON document, rewritten atomically on every set."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.logger = get_logger("settings-store")

    def _read(self, key: str) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StoreUnavailable(key, str(e)) from e
        if not isinstance(data, dict):
            raise StoreUnavailable(key, f"{self.path} does not hold a JSON object")
        return data

    def get(self, key: str) -> str | None:
        value = self._read(key).get(key)
        if value is None or isinstance(value, str):
            return value
        # hand-edited files may hold raw JSON values such as `true`
        return json.dumps(value)

    def set(self, key: str, value: str) -> None:
        data = self._read(key)
        data[key] = value
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            raise StoreUnavailable(key, str(e)) from e
        self.logger.debug(f"Persisted {key}={value}")


def build_store(settings: EphoneSettings) -> SettingsStore:
    if settings.store.backend == "memory":
        return MemorySettingsStore()
    return JsonFileSettingsStore(settings.paths.data_dir / settings.store.filename)
