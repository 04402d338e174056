"""Governor for the check-in and shura-mode toggles."""

from __future__ import annotations

import json
from dataclasses import dataclass

from ephone.config import ToggleKeys
from ephone.core.errors import InvalidOperation, StoreUnavailable
from ephone.core.events import TOGGLES_CHANGED, EventBus
from ephone.core.state import ToggleState
from ephone.logging import get_logger
from ephone.services.settings_store import SettingsStore


@dataclass(frozen=True, slots=True)
class ToggleResult:
    state: ToggleState
    error: InvalidOperation | None = None
    warning: StoreUnavailable | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ToggleGovernor:
    """Owns the toggle pair and keeps memory and store consistent with it.

    Mutations never raise for rejected intents or store failures; both come
    back on the :class:`ToggleResult`. A store failure does not roll back the
    in-memory state, which stays valid but may run ahead of what is persisted.
    """

    def __init__(
        self,
        store: SettingsStore,
        keys: ToggleKeys | None = None,
        events: EventBus | None = None,
    ) -> None:
        self.store = store
        self.keys = keys or ToggleKeys()
        self.events = events
        self.logger = get_logger("toggles")
        self._state = ToggleState()
        self.load()

    @property
    def state(self) -> ToggleState:
        return self._state

    def load(self) -> ToggleResult:
        warning: StoreUnavailable | None = None
        try:
            check_in = self._read_flag(self.keys.check_in)
            shura = self._read_flag(self.keys.shura_mode)
        except StoreUnavailable as e:
            self.logger.warning(f"Falling back to defaults: {e}")
            check_in, shura = False, False
            warning = e

        if shura and not check_in:
            self.logger.warning("Stored shura mode without check-in; disabling shura mode")
            shura = False

        self._state = ToggleState(check_in_enabled=check_in, shura_mode_enabled=shura)
        self.logger.debug(f"Loaded toggles {self._state}")
        return ToggleResult(self._state, warning=warning)

    def set_check_in(self, enabled: bool) -> ToggleResult:
        new_state = self._state.with_check_in(enabled)
        # write order keeps the stored pair valid between the two writes
        if enabled:
            order = (self.keys.check_in, self.keys.shura_mode)
        else:
            order = (self.keys.shura_mode, self.keys.check_in)
        return self._commit(new_state, order)

    def set_shura_mode(self, enabled: bool) -> ToggleResult:
        try:
            new_state = self._state.with_shura_mode(enabled)
        except InvalidOperation as e:
            self.logger.info(f"Rejected shura mode change: {e}")
            return ToggleResult(self._state, error=e)
        return self._commit(new_state, (self.keys.shura_mode,))

    def _commit(self, new_state: ToggleState, keys: tuple[str, ...]) -> ToggleResult:
        self._state = new_state
        warning: StoreUnavailable | None = None
        try:
            for key in keys:
                self.store.set(key, json.dumps(self._value_for(key)))
        except StoreUnavailable as e:
            self.logger.warning(f"Toggle change kept in memory only: {e}")
            warning = e

        self.logger.info(
            f"Toggles now check_in={new_state.check_in_enabled} "
            f"shura={new_state.shura_mode_enabled} ({new_state.secure_level.value})"
        )
        if self.events is not None:
            self.events.emit(TOGGLES_CHANGED, new_state)
        return ToggleResult(new_state, warning=warning)

    def _value_for(self, key: str) -> bool:
        if key == self.keys.check_in:
            return self._state.check_in_enabled
        return self._state.shura_mode_enabled

    def _read_flag(self, key: str) -> bool:
        raw = self.store.get(key)
        if raw is None:
            return False
        try:
            value = json.loads(raw)
        except ValueError:
            value = None
        if not isinstance(value, bool):
            self.logger.warning(f"Ignoring non-boolean value {raw!r} for {key}")
            return False
        return value
