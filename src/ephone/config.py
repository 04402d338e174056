"""Application configuration models and helpers."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class AppPaths(BaseModel):
    """Resolved directories for ephone runtime assets."""

    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("EPHONE_HOME", Path.home() / ".ephone"))
    )

    @property
    def logs_dir(self) -> Path:
        return self.base_dir / "logs"

    @property
    def data_dir(self) -> Path:
        return self.base_dir / "data"

    def ensure(self) -> None:
        for path in (self.base_dir, self.logs_dir, self.data_dir):
            path.mkdir(parents=True, exist_ok=True)


class OverlaySettings(BaseModel):
    view_ms: int = Field(default=8000, ge=0)
    resolve_ms: int = Field(default=1500, ge=0)
    success_settle_ms: int = Field(default=1500, ge=0)
    failure_settle_ms: int = Field(default=2000, ge=0)
    success_probability: float = Field(default=0.5, ge=0.0, le=1.0)
    default_subject: str = "Partner"
    seed: int | None = None
    stop_reactions: list[str] = Field(
        default_factory=lambda: [
            "??? What are you doing?",
            "Tch, stingy.",
            "Got something to hide? 😒",
            "Fine, fine, I won't look. No need to be so fierce.",
            "[You have been blocked]",
        ]
    )


class ToggleKeys(BaseModel):
    check_in: str = "ephone_ri_checkin"
    shura_mode: str = "ephone_ri_shura"


class StoreSettings(BaseModel):
    backend: Literal["memory", "json"] = "json"
    filename: str = "settings.json"


class EphoneSettings(BaseModel):
    app_name: str = "ephone"
    paths: AppPaths = Field(default_factory=AppPaths)
    overlay: OverlaySettings = Field(default_factory=OverlaySettings)
    toggles: ToggleKeys = Field(default_factory=ToggleKeys)
    store: StoreSettings = Field(default_factory=StoreSettings)


def _maybe_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _maybe_float(value: str | None) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def load_settings(env_path: Path | None = None) -> EphoneSettings:
    """Load user settings from environment variables and defaults."""

    env_file = env_path or Path('.env')
    if env_file.exists():
        load_dotenv(env_file)

    overrides: dict[str, Any] = {}

    if backend := os.getenv('EPHONE_STORE'):
        overrides.setdefault('store', {})['backend'] = backend.lower()

    if (view_ms := _maybe_int(os.getenv('EPHONE_VIEW_MS'))) is not None:
        overrides.setdefault('overlay', {})['view_ms'] = view_ms

    if (probability := _maybe_float(os.getenv('EPHONE_SUCCESS_PROBABILITY'))) is not None:
        overrides.setdefault('overlay', {})['success_probability'] = probability

    if (seed := _maybe_int(os.getenv('EPHONE_SEED'))) is not None:
        overrides.setdefault('overlay', {})['seed'] = seed

    settings = EphoneSettings(**overrides)
    settings.paths.ensure()
    return settings
