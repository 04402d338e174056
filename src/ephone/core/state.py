"""Runtime state containers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ephone.core.errors import InvalidOperation


class SecureLevel(str, Enum):
    SAFE = "SAFE"
    MODERATE = "MODERATE"
    CRITICAL = "CRITICAL"


@dataclass(frozen=True, slots=True)
class ToggleState:
    """The check-in / shura-mode pair.

    Shura mode depends on check-in, so a state with shura on and check-in off
    cannot be constructed. Use :meth:`with_check_in` and
    :meth:`with_shura_mode` to derive new states.
    """

    check_in_enabled: bool = False
    shura_mode_enabled: bool = False

    def __post_init__(self) -> None:
        if self.shura_mode_enabled and not self.check_in_enabled:
            raise InvalidOperation("shura mode requires check-in to be enabled")

    @property
    def secure_level(self) -> SecureLevel:
        if self.shura_mode_enabled:
            return SecureLevel.CRITICAL
        if self.check_in_enabled:
            return SecureLevel.MODERATE
        return SecureLevel.SAFE

    def with_check_in(self, enabled: bool) -> ToggleState:
        # disabling check-in takes shura mode down with it
        shura = self.shura_mode_enabled and enabled
        return ToggleState(check_in_enabled=enabled, shura_mode_enabled=shura)

    def with_shura_mode(self, enabled: bool) -> ToggleState:
        if enabled and not self.check_in_enabled:
            raise InvalidOperation("enable check-in before shura mode")
        return ToggleState(check_in_enabled=self.check_in_enabled, shura_mode_enabled=enabled)

    def as_dict(self) -> dict[str, object]:
        return {
            "check_in_enabled": self.check_in_enabled,
            "shura_mode_enabled": self.shura_mode_enabled,
            "secure_level": self.secure_level.value,
        }
