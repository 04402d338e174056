"""ephone application composition root."""

from __future__ import annotations

from dataclasses import dataclass

from ephone.config import EphoneSettings
from ephone.core.events import EventBus
from ephone.core.rng import RandomSource
from ephone.core.timers import Scheduler
from ephone.logging import get_logger
from ephone.services.overlay import OverlayHost
from ephone.services.settings_store import SettingsStore, build_store
from ephone.services.toggle_governor import ToggleGovernor


@dataclass(slots=True)
class EphoneContext:
    settings: EphoneSettings
    events: EventBus
    store: SettingsStore
    toggles: ToggleGovernor
    overlay: OverlayHost

    def start(self) -> None:
        self.overlay.attach()

    def stop(self) -> None:
        self.overlay.detach()


def build_context(
    settings: EphoneSettings,
    scheduler: Scheduler,
    store: SettingsStore | None = None,
    rng: RandomSource | None = None,
) -> EphoneContext:
    events = EventBus()
    store = store if store is not None else build_store(settings)
    toggles = ToggleGovernor(store, settings.toggles, events)
    overlay = OverlayHost(settings.overlay, scheduler, events, rng=rng)

    logger = get_logger("bootstrap")
    logger.info("ephone context ready")

    return EphoneContext(
        settings=settings,
        events=events,
        store=store,
        toggles=toggles,
        overlay=overlay,
    )
