"""Timed intrusion overlay: the session state machine and its host.

Session lifecycle::

    VIEWING --(view_ms, no stop)---------------------> CLOSED(ALLOWED)
    VIEWING --request_stop()--> STOPPING
    STOPPING --(resolve_ms, draw < p)--> SUCCEEDED --(success_settle_ms)--> CLOSED(STOPPED)
    STOPPING --(resolve_ms, draw >= p)--> FAILED --(failure_settle_ms)--> CLOSED(FAILED_TO_STOP)

A session holds at most one pending timer. Every transition releases the
timer of the state being left before anything else happens, so a stale timer
can never move the machine.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ephone.config import OverlaySettings
from ephone.core.errors import InvalidState
from ephone.core.events import CHAT_INJECT, INVESTIGATION_TRIGGER, OVERLAY_CLOSED, EventBus
from ephone.core.rng import RandomSource, SystemRandomSource
from ephone.core.timers import Scheduler, TimerHandle
from ephone.logging import get_logger


class OverlayStatus(str, Enum):
    VIEWING = "viewing"
    STOPPING = "stopping"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CLOSED = "closed"


class Outcome(str, Enum):
    ALLOWED = "allowed"
    STOPPED = "stopped"
    FAILED_TO_STOP = "failed"


CloseCallback = Callable[[Outcome], None]


@dataclass(frozen=True, slots=True)
class Transition:
    at_ms: float
    status: OverlayStatus


class OverlaySession:
    """One run of the intrusion overlay, from open to a terminal outcome.

    Constructing a session opens it: it starts in VIEWING with the view timer
    already scheduled.
    """

    def __init__(
        self,
        subject_name: str,
        scheduler: Scheduler,
        rng: RandomSource,
        on_close: CloseCallback,
        settings: OverlaySettings | None = None,
    ) -> None:
        self.subject_name = subject_name
        self.scheduler = scheduler
        self.rng = rng
        self.settings = settings or OverlaySettings()
        self._on_close = on_close
        self.logger = get_logger("overlay")
        self._outcome: Outcome | None = None
        self._timer: TimerHandle | None = None
        self._opened_at = scheduler.now_ms()
        self.history: list[Transition] = []
        self._enter(OverlayStatus.VIEWING, self.settings.view_ms, self._on_view_elapsed)
        self.logger.info(f"{self.subject_name} is viewing the account")

    @property
    def status(self) -> OverlayStatus:
        return self._status

    @property
    def outcome(self) -> Outcome | None:
        return self._outcome

    @property
    def closed(self) -> bool:
        return self._status is OverlayStatus.CLOSED

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    def request_stop(self) -> bool:
        """Try to interrupt the viewing. Returns ``False`` outside VIEWING."""
        if self._status is not OverlayStatus.VIEWING:
            self.logger.debug(
                f"Ignoring stop request: {InvalidState(f'session is {self._status.value}')}"
            )
            return False
        self._enter(OverlayStatus.STOPPING, self.settings.resolve_ms, self._on_resolve)
        self.logger.info(f"Trying to kick {self.subject_name} out")
        return True

    def dispose(self) -> None:
        """Tear the session down early. No outcome is delivered."""
        if self.closed:
            return
        self._release_timer()
        self._status = OverlayStatus.CLOSED
        self._record()
        self.logger.debug(f"Session for {self.subject_name} disposed")

    def elapsed_ms(self) -> float:
        return self.scheduler.now_ms() - self._opened_at

    def _on_view_elapsed(self) -> None:
        self._timer = None
        self._close(Outcome.ALLOWED)

    def _on_resolve(self) -> None:
        self._timer = None
        draw = self.rng.next()
        if draw < self.settings.success_probability:
            self._enter(
                OverlayStatus.SUCCEEDED,
                self.settings.success_settle_ms,
                lambda: self._settle(Outcome.STOPPED),
            )
        else:
            self._enter(
                OverlayStatus.FAILED,
                self.settings.failure_settle_ms,
                lambda: self._settle(Outcome.FAILED_TO_STOP),
            )
        self.logger.debug(f"Stop attempt drew {draw:.3f} -> {self._status.value}")

    def _settle(self, outcome: Outcome) -> None:
        self._timer = None
        self._close(outcome)

    def _enter(self, status: OverlayStatus, delay_ms: float, callback: Callable[[], None]) -> None:
        self._release_timer()
        self._status = status
        self._record()
        self._timer = self.scheduler.call_later(delay_ms, callback)

    def _close(self, outcome: Outcome) -> None:
        self._release_timer()
        self._status = OverlayStatus.CLOSED
        self._outcome = outcome
        self._record()
        self.logger.info(f"Session for {self.subject_name} closed: {outcome.value}")
        self._on_close(outcome)

    def _release_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _record(self) -> None:
        self.history.append(Transition(self.elapsed_ms(), self._status))


@dataclass(frozen=True, slots=True)
class OverlayClosed:
    handle: str
    subject_name: str
    outcome: Outcome


@dataclass(frozen=True, slots=True)
class ChatInjection:
    subject_name: str
    content: str
    role: str = "assistant"


@dataclass(slots=True)
class OverlayHost:
    """Owns sessions on behalf of the presentation layer.

    At most one session is active per handle. Closed sessions are dropped as
    soon as their outcome has been published, so the handle can be reused.
    """

    settings: OverlaySettings
    scheduler: Scheduler
    events: EventBus
    rng: RandomSource | None = None
    reaction_rng: RandomSource | None = None
    _active: dict[str, OverlaySession] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.rng is None:
            self.rng = SystemRandomSource(self.settings.seed)
        if self.reaction_rng is None:
            # own stream, so the reaction is not tied to the stop draw
            seed = self.settings.seed
            self.reaction_rng = SystemRandomSource(None if seed is None else seed + 1)

    def attach(self) -> None:
        self.events.subscribe(INVESTIGATION_TRIGGER, self._handle_trigger)

    def detach(self) -> None:
        self.events.unsubscribe(INVESTIGATION_TRIGGER, self._handle_trigger)
        for session in list(self._active.values()):
            session.dispose()
        self._active.clear()

    def active(self, handle: str = "default") -> OverlaySession | None:
        return self._active.get(handle)

    def open(
        self,
        subject_name: str | None = None,
        handle: str = "default",
        on_close: CloseCallback | None = None,
    ) -> OverlaySession:
        if handle in self._active:
            raise InvalidState(f"an overlay session is already open on {handle!r}")
        subject = subject_name or self.settings.default_subject

        def closed(outcome: Outcome) -> None:
            self._active.pop(handle, None)
            if on_close is not None:
                on_close(outcome)
            self._publish(handle, subject, outcome)

        session = OverlaySession(subject, self.scheduler, self.rng, closed, self.settings)
        self._active[handle] = session
        return session

    def request_stop(self, handle: str = "default") -> bool:
        session = self._active.get(handle)
        if session is None:
            return False
        return session.request_stop()

    def _handle_trigger(self, payload: Any) -> None:
        logger = get_logger("overlay-host")
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            logger.warning(f"Trigger ignored, unexpected payload {payload!r}")
            return
        handle = payload.get("handle", "default")
        if handle in self._active:
            logger.warning(f"Trigger ignored, {handle!r} already has an open overlay")
            return
        self.open(payload.get("subject_name"), handle=handle)

    def _publish(self, handle: str, subject: str, outcome: Outcome) -> None:
        self.events.emit(OVERLAY_CLOSED, OverlayClosed(handle, subject, outcome))
        if outcome is Outcome.STOPPED and self.settings.stop_reactions:
            reactions = self.settings.stop_reactions
            index = min(int(self.reaction_rng.next() * len(reactions)), len(reactions) - 1)
            self.events.emit(CHAT_INJECT, ChatInjection(subject, reactions[index]))
