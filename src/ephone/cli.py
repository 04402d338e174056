"""Typer CLI for ephone."""

from __future__ import annotations

import asyncio
import json
import platform
from enum import Enum

import typer

from ephone.config import EphoneSettings, load_settings
from ephone.core.app import build_context
from ephone.core.events import CHAT_INJECT, INVESTIGATION_TRIGGER, OVERLAY_CLOSED
from ephone.core.rng import RandomSource, ScriptedRandomSource
from ephone.core.timers import AsyncioScheduler, ManualScheduler
from ephone.logging import configure_logging
from ephone.services.overlay import ChatInjection, OverlayClosed
from ephone.services.settings_store import MemorySettingsStore, build_store
from ephone.services.toggle_governor import ToggleGovernor, ToggleResult

app = typer.Typer(no_args_is_help=True)
toggles_app = typer.Typer(no_args_is_help=True, help="Inspect or flip the check-in toggles.")
app.add_typer(toggles_app, name="toggles")


class Force(str, Enum):
    success = "success"
    failure = "failure"
    random = "random"


def _forced_rng(force: Force) -> RandomSource | None:
    if force is Force.success:
        return ScriptedRandomSource([0.0])
    if force is Force.failure:
        return ScriptedRandomSource([0.999])
    return None


def _bootstrap() -> EphoneSettings:
    settings = load_settings()
    configure_logging(settings, level="WARNING")
    return settings


@app.command()
def doctor() -> None:
    """Print environment diagnostics."""

    settings = _bootstrap()
    info = {
        "python": platform.python_version(),
        "platform": platform.platform(),
        "store": settings.store.backend,
        "paths": {
            "home": str(settings.paths.base_dir),
            "logs": str(settings.paths.logs_dir),
            "data": str(settings.paths.data_dir),
        },
    }
    typer.echo(json.dumps(info, indent=2))


@app.command()
def settings(key: str | None = typer.Argument(None)) -> None:
    """Display current settings or a specific section."""

    data = load_settings().model_dump()
    if key:
        data = data.get(key, {})
    typer.echo(json.dumps(data, indent=2, default=str))


def _governor() -> ToggleGovernor:
    settings = _bootstrap()
    return ToggleGovernor(build_store(settings), settings.toggles)


def _report(result: ToggleResult) -> None:
    typer.echo(json.dumps(result.state.as_dict(), indent=2))
    if result.warning is not None:
        typer.secho(f"warning: {result.warning}", fg=typer.colors.YELLOW, err=True)
    if result.error is not None:
        typer.secho(f"rejected: {result.error}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


@toggles_app.command("show")
def toggles_show() -> None:
    """Print the current toggle state."""

    governor = _governor()
    typer.echo(json.dumps(governor.state.as_dict(), indent=2))


@toggles_app.command("check-in")
def toggles_check_in(enabled: bool = typer.Argument(..., help="on/off")) -> None:
    """Enable or disable check-in. Disabling also turns shura mode off."""

    _report(_governor().set_check_in(enabled))


@toggles_app.command("shura")
def toggles_shura(enabled: bool = typer.Argument(..., help="on/off")) -> None:
    """Enable or disable shura mode. Requires check-in to be on."""

    _report(_governor().set_shura_mode(enabled))


@app.command()
def simulate(
    subject: str = typer.Option("Aria", help="Name shown as the intruder."),
    stop_at: float | None = typer.Option(None, help="Send a stop request at this many ms."),
    force: Force = typer.Option(Force.random, help="Force the stop attempt outcome."),
) -> None:
    """Replay one overlay session on a virtual clock and print its timeline."""

    settings = _bootstrap()
    scheduler = ManualScheduler()
    ctx = build_context(settings, scheduler, store=MemorySettingsStore(), rng=_forced_rng(force))
    closed: list[OverlayClosed] = []
    reactions: list[ChatInjection] = []
    ctx.events.subscribe(OVERLAY_CLOSED, closed.append)
    ctx.events.subscribe(CHAT_INJECT, reactions.append)
    ctx.start()

    ctx.events.emit(INVESTIGATION_TRIGGER, {"subject_name": subject})
    session = ctx.overlay.active()
    if stop_at is not None:
        scheduler.advance_to(stop_at)
        if not ctx.overlay.request_stop():
            typer.echo(f"{stop_at:>8.0f} ms  stop request ignored")
    scheduler.run_until_idle()
    ctx.stop()

    for transition in session.history:
        typer.echo(f"{transition.at_ms:>8.0f} ms  {transition.status.value}")
    for event in closed:
        typer.echo(f"outcome: {event.outcome.value}")
    for reaction in reactions:
        typer.echo(f"{reaction.subject_name}: {reaction.content}")


async def _watch(settings: EphoneSettings, subject: str, stop_after: float | None) -> OverlayClosed:
    loop = asyncio.get_running_loop()
    ctx = build_context(settings, AsyncioScheduler(loop), store=MemorySettingsStore())
    done: asyncio.Future[OverlayClosed] = loop.create_future()
    ctx.events.subscribe(OVERLAY_CLOSED, done.set_result)
    ctx.events.subscribe(
        CHAT_INJECT, lambda reaction: typer.echo(f"{reaction.subject_name}: {reaction.content}")
    )
    ctx.start()
    try:
        ctx.overlay.open(subject)
        typer.echo(f"{subject} is viewing your account...")
        if stop_after is not None:
            loop.call_later(stop_after, ctx.overlay.request_stop)
        return await done
    finally:
        ctx.stop()


@app.command()
def watch(
    subject: str = typer.Option("Partner", help="Name shown as the intruder."),
    stop_after: float | None = typer.Option(None, help="Seconds before sending a stop request."),
) -> None:
    """Run one overlay session in real time."""

    settings = _bootstrap()
    event = asyncio.run(_watch(settings, subject, stop_after))
    typer.echo(f"outcome: {event.outcome.value}")
