"""Tests for the intrusion overlay session and host."""

import pytest

from ephone.config import OverlaySettings
from ephone.core.errors import InvalidState
from ephone.core.events import CHAT_INJECT, INVESTIGATION_TRIGGER, OVERLAY_CLOSED, EventBus
from ephone.core.rng import ScriptedRandomSource
from ephone.core.timers import ManualScheduler
from ephone.services.overlay import (
    ChatInjection,
    OverlayClosed,
    OverlayHost,
    OverlaySession,
    OverlayStatus,
    Outcome,
    Transition,
)

SUCCESS = 0.0
FAILURE = 0.9


def open_session(draws=(), subject="Aria"):
    scheduler = ManualScheduler()
    outcomes = []
    session = OverlaySession(subject, scheduler, ScriptedRandomSource(draws), outcomes.append)
    return scheduler, session, outcomes


def test_unopposed_session_is_allowed_at_8000ms():
    scheduler, session, outcomes = open_session()
    assert session.status is OverlayStatus.VIEWING
    scheduler.advance_to(7999)
    assert outcomes == []
    scheduler.advance_to(8000)
    assert outcomes == [Outcome.ALLOWED]
    assert session.status is OverlayStatus.CLOSED
    assert session.outcome is Outcome.ALLOWED
    assert not session.has_pending_timer


def test_stop_then_success_timeline():
    scheduler, session, outcomes = open_session([SUCCESS])
    scheduler.advance_to(1000)
    assert session.request_stop() is True
    assert session.status is OverlayStatus.STOPPING

    scheduler.advance_to(2499)
    assert session.status is OverlayStatus.STOPPING
    scheduler.advance_to(2500)
    assert session.status is OverlayStatus.SUCCEEDED
    scheduler.advance_to(3999)
    assert outcomes == []
    scheduler.advance_to(4000)

    assert outcomes == [Outcome.STOPPED]
    assert session.history == [
        Transition(0, OverlayStatus.VIEWING),
        Transition(1000, OverlayStatus.STOPPING),
        Transition(2500, OverlayStatus.SUCCEEDED),
        Transition(4000, OverlayStatus.CLOSED),
    ]


def test_stop_then_failure_timeline():
    scheduler, session, outcomes = open_session([FAILURE])
    scheduler.advance_to(1000)
    session.request_stop()
    scheduler.advance_to(2500)
    assert session.status is OverlayStatus.FAILED
    scheduler.advance_to(4499)
    assert outcomes == []
    scheduler.advance_to(4500)
    assert outcomes == [Outcome.FAILED_TO_STOP]


def test_auto_timeout_never_fires_after_stop():
    scheduler, session, outcomes = open_session([FAILURE])
    scheduler.advance_to(7999)
    session.request_stop()
    scheduler.advance_to(8000)
    assert session.status is OverlayStatus.STOPPING
    scheduler.run_until_idle()
    assert outcomes == [Outcome.FAILED_TO_STOP]
    assert scheduler.now_ms() == 7999 + 1500 + 2000


def test_stop_is_accepted_once():
    # a second draw would exhaust the scripted source
    scheduler, session, outcomes = open_session([SUCCESS])
    assert session.request_stop() is True
    assert session.request_stop() is False
    scheduler.advance(1500)
    assert session.request_stop() is False
    scheduler.run_until_idle()
    assert session.request_stop() is False
    assert outcomes == [Outcome.STOPPED]


def test_session_holds_one_timer_at_a_time():
    scheduler, session, _ = open_session([SUCCESS])
    assert scheduler.pending == 1
    session.request_stop()
    assert scheduler.pending == 1
    scheduler.advance(1500)
    assert scheduler.pending == 1
    scheduler.advance(1500)
    assert scheduler.pending == 0


def test_new_session_is_already_viewing():
    scheduler, session, outcomes = open_session()
    assert session.status is OverlayStatus.VIEWING
    assert session.history == [Transition(0, OverlayStatus.VIEWING)]
    assert scheduler.pending == 1
    assert outcomes == []


def test_dispose_releases_timer_without_outcome():
    scheduler, session, outcomes = open_session([SUCCESS])
    session.request_stop()
    session.dispose()
    assert scheduler.pending == 0
    scheduler.advance(20_000)
    assert outcomes == []
    assert session.closed
    assert session.outcome is None


def test_success_probability_is_configurable():
    scheduler = ManualScheduler()
    outcomes = []
    settings = OverlaySettings(success_probability=0.0)
    session = OverlaySession("Aria", scheduler, ScriptedRandomSource([0.0]), outcomes.append, settings)
    session.request_stop()
    scheduler.run_until_idle()
    assert outcomes == [Outcome.FAILED_TO_STOP]


def test_draw_at_half_counts_as_failure():
    scheduler, session, outcomes = open_session([0.5])
    session.request_stop()
    scheduler.run_until_idle()
    assert outcomes == [Outcome.FAILED_TO_STOP]


@pytest.fixture
def host():
    scheduler = ManualScheduler()
    events = EventBus()
    overlay = OverlayHost(
        OverlaySettings(),
        scheduler,
        events,
        rng=ScriptedRandomSource([SUCCESS, FAILURE]),
        reaction_rng=ScriptedRandomSource([0.0]),
    )
    return scheduler, events, overlay


def test_host_allows_one_session_per_handle(host):
    _, _, overlay = host
    overlay.open("Aria")
    with pytest.raises(InvalidState):
        overlay.open("Bea")
    other = overlay.open("Bea", handle="second")
    assert other.subject_name == "Bea"


def test_host_defaults_subject_and_frees_handle_on_close(host):
    scheduler, _, overlay = host
    session = overlay.open()
    assert session.subject_name == "Partner"
    scheduler.run_until_idle()
    assert overlay.active() is None
    assert overlay.open("Aria").status is OverlayStatus.VIEWING


def test_host_publishes_close_and_reaction_on_stop(host):
    scheduler, events, overlay = host
    closed, injected, direct = [], [], []
    events.subscribe(OVERLAY_CLOSED, closed.append)
    events.subscribe(CHAT_INJECT, injected.append)
    overlay.open("Aria", on_close=direct.append)
    assert overlay.request_stop() is True
    scheduler.run_until_idle()

    assert direct == [Outcome.STOPPED]
    assert closed == [OverlayClosed("default", "Aria", Outcome.STOPPED)]
    assert injected == [ChatInjection("Aria", OverlaySettings().stop_reactions[0])]


def test_host_publishes_no_reaction_when_allowed(host):
    scheduler, events, overlay = host
    closed, injected = [], []
    events.subscribe(OVERLAY_CLOSED, closed.append)
    events.subscribe(CHAT_INJECT, injected.append)
    overlay.open("Aria")
    scheduler.run_until_idle()
    assert [event.outcome for event in closed] == [Outcome.ALLOWED]
    assert injected == []


def test_request_stop_without_session(host):
    _, _, overlay = host
    assert overlay.request_stop() is False


def test_trigger_event_opens_once(host):
    _, events, overlay = host
    overlay.attach()
    events.emit(INVESTIGATION_TRIGGER, {"subject_name": "Aria"})
    first = overlay.active()
    events.emit(INVESTIGATION_TRIGGER, {"subject_name": "Bea"})
    assert overlay.active() is first
    assert first.subject_name == "Aria"


def test_detach_disposes_sessions(host):
    scheduler, events, overlay = host
    overlay.attach()
    events.emit(INVESTIGATION_TRIGGER, None)
    session = overlay.active()
    overlay.detach()
    assert session.closed
    assert scheduler.pending == 0
    events.emit(INVESTIGATION_TRIGGER, None)
    assert overlay.active() is None


def test_trigger_with_unexpected_payload_is_ignored(host):
    _, events, overlay = host
    overlay.attach()
    events.emit(INVESTIGATION_TRIGGER, "Aria")
    assert overlay.active() is None


def test_seeded_hosts_can_pick_every_reaction():
    reactions = OverlaySettings().stop_reactions
    picked = set()
    for seed in range(200):
        scheduler = ManualScheduler()
        events = EventBus()
        injected = []
        events.subscribe(CHAT_INJECT, injected.append)
        overlay = OverlayHost(OverlaySettings(seed=seed), scheduler, events)
        overlay.open("Aria")
        overlay.request_stop()
        scheduler.run_until_idle()
        picked.update(reactions.index(event.content) for event in injected)
    assert picked == set(range(len(reactions)))
