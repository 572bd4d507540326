"""Leitner CLI: study, statistics and local card management."""

import asyncio
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any

import typer

from leitner.application.config import AppConfig, resolve_config

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="leitner: Leitner-box flashcard scheduler.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(help="Manage leitner configuration.")
app.add_typer(config_app, name="config")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

LOG_LEVELS = {0: logging.WARNING, 1: logging.INFO}


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 0,
    backend: Annotated[
        str | None, typer.Option(help="Card store: memory, sqlite, rest.")
    ] = None,
    db_path: Annotated[Path | None, typer.Option(help="SQLite database file.")] = None,
    user: Annotated[str | None, typer.Option(help="User whose cards to use.")] = None,
):
    """Global settings for leitner."""
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {
        "backend": backend,
        "db_path": db_path,
        "user_id": user,
        # Only an explicit -v overrides LEITNER_VERBOSE / the config file
        "verbose": verbose or None,
    }


def _config(ctx: typer.Context) -> AppConfig:
    overrides: dict[str, Any] = (ctx.obj or {}).get("overrides", {})
    config = resolve_config(overrides)
    logging.getLogger().setLevel(LOG_LEVELS.get(config.verbose, logging.DEBUG))
    return config


def _run(config: AppConfig, work):
    """Open the configured store, run ``work(store)`` and close the store."""
    from leitner.application.factory import get_card_store

    store = get_card_store(config)
    logger.debug(f"Using {config.backend} store for user={config.user_id}")

    async def runner():
        try:
            return await work(store)
        finally:
            aclose = getattr(store, "aclose", None)
            if aclose is not None:
                await aclose()

    try:
        return asyncio.run(runner())
    finally:
        close = getattr(store, "close", None)
        if close is not None:
            close()


def _now() -> datetime:
    return datetime.now().astimezone()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def boxes(ctx: typer.Context):
    """Show the five boxes and their review intervals."""
    from leitner.domain.boxes import all_box_info

    config = _config(ctx)
    for info in all_box_info(config.interval_table):
        typer.echo(f"Box {info.number}  {info.name} {info.emoji}  {info.display_interval}")


@app.command()
def stats(
    ctx: typer.Context,
    subject: Annotated[str | None, typer.Option(help="Only cards in this subject.")] = None,
    topic: Annotated[str | None, typer.Option(help="Only cards in this topic.")] = None,
    box: Annotated[int | None, typer.Option(help="Only cards in this box.")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output results as JSON.")] = False,
):
    """Per-box card counts and how many cards are due today."""
    from leitner.application.aggregator import BoxStatsService
    from leitner.domain.models import CardQuery

    config = _config(ctx)
    query = CardQuery(
        user_id=config.user_id, subject_name=subject, topic_name=topic, box_number=box
    )

    async def work(store):
        return await BoxStatsService(store, config.due_policy).load(query, _now())

    outcome = _run(config, work)
    if not outcome.ok:
        typer.secho(f"Could not load cards: {outcome.error}", fg="red")
        raise typer.Exit(1)

    agg = outcome.aggregate
    if json_output:
        data = {f"box{n}": count for n, count in agg.counts.items()}
        data.update(
            total_due=agg.total_due,
            total_frozen=agg.total_frozen,
            total_in_study_bank=agg.total_in_study_bank,
        )
        typer.echo(json.dumps(data, indent=2))
        return

    for n, count in agg.counts.items():
        typer.echo(f"Box {n}: {count}")
    typer.secho(f"Due today: {agg.total_due}", fg="green" if agg.total_due else None)
    typer.echo(f"Frozen: {agg.total_frozen}")
    typer.echo(f"Study bank: {agg.total_in_study_bank}")


@app.command()
def due(ctx: typer.Context):
    """Daily reminder: cards due across all active subjects."""
    from leitner.application.digest import DigestService, format_digest

    config = _config(ctx)

    async def work(store):
        return await DigestService(store, config.due_policy).for_user(config.user_id, _now())

    outcome = _run(config, work)
    if not outcome.ok:
        typer.secho(f"Could not load cards: {outcome.error}", fg="red")
        raise typer.Exit(1)
    typer.echo(format_digest(outcome.digest))


@app.command()
def study(
    ctx: typer.Context,
    subject: Annotated[str | None, typer.Option(help="Study one subject.")] = None,
    topic: Annotated[str | None, typer.Option(help="Study one topic.")] = None,
    box: Annotated[int | None, typer.Option(help="Review a single box.")] = None,
    daily: Annotated[
        bool, typer.Option("--daily", help="Daily review across all active subjects.")
    ] = False,
):
    """[bold green]Study[/bold green] cards interactively."""
    from leitner.application.session import SessionState, StudyMode, StudySession
    from leitner.domain.boxes import box_compact_display
    from leitner.domain.models import CardQuery

    config = _config(ctx)
    if daily:
        mode = StudyMode.DAILY
    elif box is not None:
        mode = StudyMode.BOX
    else:
        mode = StudyMode.SUBJECT

    query = CardQuery(
        user_id=config.user_id, subject_name=subject, topic_name=topic, box_number=box
    )

    async def work(store):
        session = StudySession(
            store,
            table=config.interval_table,
            due_policy=config.due_policy,
            await_persistence=config.await_persistence,
            on_failure=lambda f: typer.secho(
                f"  (not saved: {f.error})", fg="yellow", err=True
            ),
        )
        state = await session.start(query, mode)
        if state == SessionState.LOAD_FAILED:
            typer.secho(f"Could not load cards: {session.load_error}", fg="red")
            raise typer.Exit(1)
        if state == SessionState.EMPTY:
            typer.secho("No cards found.", fg="yellow")
            return None

        while session.state == SessionState.VIEWING:
            entry = session.current
            position = f"[{session.current_index + 1}/{len(session.cards)}]"
            label = box_compact_display(entry.card.box_number, config.interval_table)
            typer.echo(f"\n{position} {label}")
            typer.echo(entry.card.question or "(no question)")

            if entry.status.is_frozen:
                typer.secho(
                    f"Frozen: due in {entry.status.days_until_review} day(s).", fg="cyan"
                )
                session.advance()
                continue

            typer.prompt("Press Enter to reveal", default="", show_default=False)
            typer.echo(entry.card.answer or "(no answer)")
            correct = typer.confirm("Did you answer correctly?")
            result = await session.answer(correct)
            typer.echo(f"  Box {result.previous_box} -> {result.new_box}")

        if session.failures and typer.confirm(
            f"{len(session.failures)} card(s) were not saved. Retry?"
        ):
            remaining = await session.retry_failures()
            if remaining:
                typer.secho(f"{len(remaining)} card(s) still not saved.", fg="red")

        return await session.close()

    summary = _run(config, work)
    if summary is None:
        return

    typer.secho("\nSession complete!", fg="green")
    typer.echo(f"Correct: {summary.correct}  Incorrect: {summary.incorrect}")
    typer.echo(f"Success rate: {summary.success_rate:.0f}%")
    typer.echo(f"Points earned: {summary.points_earned}")
    if summary.deferred_card_ids:
        typer.echo(f"Back tomorrow: {len(summary.deferred_card_ids)} card(s)")


@app.command()
def add(
    ctx: typer.Context,
    question: Annotated[str, typer.Argument(help="Front of the card.")],
    answer: Annotated[str, typer.Argument(help="Back of the card.")],
    subject: Annotated[str, typer.Option(help="Subject the card belongs to.")],
    topic: Annotated[str, typer.Option(help="Topic within the subject.")] = "",
):
    """Add a card to the local store, due immediately in box 1."""
    from leitner.domain.models import Card

    config = _config(ctx)
    if config.backend != "sqlite":
        typer.secho("Adding cards is only supported with the sqlite backend.", fg="red")
        raise typer.Exit(2)

    from leitner.infrastructure.adapters.sqlite_store import SqliteCardStore

    with SqliteCardStore(config.db_path) as store:
        card = store.add_card(
            Card(
                id="",
                box_number=1,
                next_review_date=_now(),
                subject_name=subject,
                topic_name=topic,
                question=question,
                answer=answer,
                user_id=config.user_id,
            )
        )
    typer.secho(f"Added card {card.id}", fg="green")


@app.command()
def subjects(
    ctx: typer.Context,
    names: Annotated[list[str], typer.Argument(help="Subjects to mark as active.")],
):
    """Set the subjects you currently study (replaces the previous list)."""
    config = _config(ctx)
    if config.backend != "sqlite":
        typer.secho("Editing subjects is only supported with the sqlite backend.", fg="red")
        raise typer.Exit(2)

    from leitner.infrastructure.adapters.sqlite_store import SqliteCardStore

    with SqliteCardStore(config.db_path) as store:
        store.set_active_subjects(config.user_id, names)
    typer.echo(f"Active subjects: {', '.join(names)}")


@app.command()
def serve(
    port: Annotated[int, typer.Option(help="Port to bind the server to.")] = 8777,
    host: Annotated[str, typer.Option(help="Host to bind the server to.")] = "127.0.0.1",
    reload: Annotated[bool, typer.Option(help="Enable auto-reload.")] = False,
):
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("leitner.server:app", host=host, port=port, reload=reload)


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Display final resolved configuration."""
    config = _config(ctx)
    d = config.model_dump(mode="json")
    if d.get("rest_api_key"):
        d["rest_api_key"] = "***"
    typer.echo(json.dumps(d, indent=2))
