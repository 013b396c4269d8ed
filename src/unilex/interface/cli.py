"""unilex CLI — session, vocabulary and config commands."""

import asyncio
import json
import logging
import sys
import time
from collections.abc import Coroutine
from dataclasses import replace
from pathlib import Path
from typing import Annotated, Any, NoReturn, TypeVar

import typer
from pydantic import TypeAdapter

from unilex.application.config import AppConfig, resolve_config
from unilex.application.engine import SessionEngine, effective_cursor, utc_now
from unilex.application.factory import build_engine, get_session_repository, get_vocabulary_store
from unilex.application.outcomes import format_accuracy, format_seconds
from unilex.application.pool_loader import load_candidates
from unilex.application.scheduler import days_until_due, is_due
from unilex.application.translation_evaluator import evaluate_translation
from unilex.domain import constants
from unilex.domain.errors import ContentError, PersistenceError
from unilex.domain.ports import SessionRepository, VocabularyStore
from unilex.domain.session.models import (
    Grade,
    ItemKind,
    PresentationSide,
    Recap,
    ReviewMode,
    Session,
    SessionConfig,
    VocabCandidate,
)

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="unilex: spaced-repetition practice sessions.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

session_app = typer.Typer(help="Create, inspect and practise sessions.", no_args_is_help=True)
app.add_typer(session_app, name="session")

vocab_app = typer.Typer(help="Vocabulary scheduler state.", no_args_is_help=True)
app.add_typer(vocab_app, name="vocab")

config_app = typer.Typer(help="Manage unilex configuration.", no_args_is_help=True)
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

_SESSION_JSON = TypeAdapter(Session)

T = TypeVar("T")

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
    data_dir: Annotated[
        Path | None, typer.Option("--data-dir", help="Directory holding session data.")
    ] = None,
    backend: Annotated[str | None, typer.Option(help="Storage backend: json, memory.")] = None,
):
    """Global settings for unilex."""
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {
        "data_dir": data_dir,
        "backend": backend,
        "verbose": verbose or None,
    }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _Context:
    def __init__(self, config: AppConfig):
        self.config = config
        self.sessions: SessionRepository = get_session_repository(config)
        self.vocabulary: VocabularyStore = get_vocabulary_store(config)
        self.engine: SessionEngine = build_engine(config, self.sessions, self.vocabulary)


def _apply_verbosity(verbose: int) -> None:
    if verbose >= 2:
        logging.getLogger().setLevel(logging.DEBUG)
    elif verbose == 1:
        logging.getLogger().setLevel(logging.INFO)


def _resolve(ctx: typer.Context, **overrides: Any) -> _Context:
    merged = dict((ctx.obj or {}).get("overrides", {}))
    merged.update(overrides)
    config = resolve_config(merged)
    _apply_verbosity(config.verbose)
    return _Context(config)


def _fail(message: str, code: int = 1) -> NoReturn:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine, turning storage failures into a clean exit."""
    try:
        return asyncio.run(coro)
    except PersistenceError as e:
        _fail(f"Storage error: {e}")


async def _load(c: _Context, session_id: str) -> Session:
    session = await c.engine.open(session_id)
    if session is None:
        _fail(f"Session {session_id} not found.")
    return session


async def _with_scheduler(
    store: VocabularyStore, candidates: list[VocabCandidate]
) -> list[VocabCandidate]:
    enriched = []
    for candidate in candidates:
        if candidate.vocab_id is None:
            enriched.append(candidate)
            continue
        state = await store.get_scheduler_state(candidate.vocab_id)
        enriched.append(replace(candidate, scheduler=state))
    return enriched


def _print_recap(recap: Recap) -> None:
    typer.secho("Session complete!", fg=typer.colors.GREEN, bold=True)
    typer.echo(
        f"Accuracy: {format_accuracy(recap.accuracy)} "
        f"({recap.correct_count} correct, {recap.incorrect_count} missed)"
    )
    typer.echo(f"Average time: {format_seconds(recap.average_duration_seconds)}")
    for action in recap.recommended_actions:
        typer.echo(f"  - {action}")
    if recap.focus_areas:
        typer.echo("Focus areas:")
        for insight in recap.focus_areas:
            typer.echo(f"  {insight.prompt} ({format_accuracy(insight.score)})")
    if recap.due_queue:
        typer.echo("Next reviews:")
        for entry in recap.due_queue:
            typer.echo(f"  {entry.vocab_id}: {entry.due_at.isoformat()}")


# ---------------------------------------------------------------------------
# Session commands
# ---------------------------------------------------------------------------


@session_app.command("new")
def session_new(
    ctx: typer.Context,
    pool: Annotated[Path, typer.Argument(help="YAML file with a 'cards' list.")],
    count: Annotated[int | None, typer.Option("--count", "-n", help="Number of items.")] = None,
    mode: Annotated[ReviewMode, typer.Option(help="Review mode.")] = ReviewMode.MIXED,
    side: Annotated[
        PresentationSide, typer.Option(help="Side shown first.")
    ] = PresentationSide.TERM,
    target: Annotated[str, typer.Option(help="Target language code.")] = "es",
    native: Annotated[str, typer.Option(help="Native language code.")] = "en",
    difficulty: Annotated[str, typer.Option(help="Difficulty label.")] = "intermediate",
    topic: Annotated[list[str] | None, typer.Option(help="Topic tag (repeatable).")] = None,
    profile: Annotated[str | None, typer.Option(help="Profile id.")] = None,
):
    """[bold green]Create[/bold green] a practice session from a candidate pool."""
    c = _resolve(ctx, profile_id=profile)
    question_count = count if count is not None else c.config.default_question_count

    config = SessionConfig(
        target_language=target,
        native_language=native,
        difficulty=difficulty,
        review_mode=mode,
        question_count=question_count,
        topic_tags=tuple(topic or ()),
        presentation_side=side,
    )

    async def run() -> Session:
        candidates = await _with_scheduler(c.vocabulary, load_candidates(pool))
        logger.debug(f"Loaded {len(candidates)} candidates from {pool}")
        return await c.engine.create(config, candidates, profile_id=c.config.profile_id)

    try:
        session = asyncio.run(run())
    except ContentError as e:
        _fail(f"Could not build session: {e}")
    except PersistenceError as e:
        _fail(f"Could not save session: {e}")
    typer.echo(session.session_id)


@session_app.command("list")
def session_list(ctx: typer.Context):
    """List stored sessions."""
    c = _resolve(ctx)
    list_ids = getattr(c.sessions, "list_ids", None)
    if list_ids is None:
        _fail("The configured backend cannot list sessions.")

    async def run() -> list[Session]:
        found = []
        for session_id in list_ids():
            try:
                session = await c.sessions.load(session_id)
            except PersistenceError as e:
                logger.warning(f"Skipping unreadable session {session_id}: {e}")
                continue
            if session is not None:
                found.append(session)
        return found

    for session in _run(run()):
        progress = session.progress
        typer.echo(
            f"{session.session_id}  {session.state.value:<12} "
            f"{min(progress.current_index, len(session.items))}/{len(session.items)}  "
            f"{session.created_at.isoformat()}"
        )


@session_app.command("show")
def session_show(
    ctx: typer.Context,
    session_id: Annotated[str, typer.Argument(help="Session id.")],
):
    """Print a stored session as JSON."""
    c = _resolve(ctx)
    session = _run(c.sessions.load(session_id))
    if session is None:
        _fail(f"Session {session_id} not found.")
    typer.echo(_SESSION_JSON.dump_json(session, indent=2).decode("utf-8"))


@session_app.command("recap")
def session_recap(
    ctx: typer.Context,
    session_id: Annotated[str, typer.Argument(help="Session id.")],
):
    """Print the recap of a completed session."""
    c = _resolve(ctx)
    session = _run(c.sessions.load(session_id))
    if session is None:
        _fail(f"Session {session_id} not found.")
    if session.recap is None:
        _fail(f"Session {session_id} has no recap yet.")
    _print_recap(session.recap)


@session_app.command("practice")
def session_practice(
    ctx: typer.Context,
    session_id: Annotated[str, typer.Argument(help="Session id.")],
):
    """Practise a session interactively: y/n to grade, u undo, f flag, q quit."""
    c = _resolve(ctx)
    _run(_practice(c, session_id))


async def _practice(c: _Context, session_id: str) -> None:
    engine = c.engine
    session = await _load(c, session_id)
    typer.echo(f"Resuming at item {effective_cursor(session) + 1}/{len(session.items)}")

    while True:
        item = session.current_item
        if item is None:
            break

        index = session.progress.current_index
        typer.secho(f"[{index + 1}/{len(session.items)}] {item.prompt}", bold=True)
        started = time.monotonic()
        answer = None
        if item.kind is ItemKind.TRANSLATION:
            answer = typer.prompt("Your translation", default="", show_default=False)
        typer.prompt("Press Enter to reveal", default="", show_default=False)
        typer.echo(f"  {item.answer}")
        if item.example:
            typer.echo(f"  e.g. {item.example}")
        suggested = None
        if answer and item.rubric:
            suggested = evaluate_translation(answer, item.rubric)
            typer.echo(f"  Score: {format_accuracy(suggested.score)}. {suggested.feedback}")

        choice = typer.prompt("Correct? [y]es/[n]o/[u]ndo/[f]lag/[q]uit").strip().lower()
        try:
            if choice in ("y", "n"):
                grade = Grade(
                    correct=choice == "y",
                    answer=answer or None,
                    elapsed_seconds=time.monotonic() - started,
                )
                if suggested is not None:
                    # The learner's call decides the outcome, the rubric the score
                    grade = replace(
                        suggested, correct=grade.correct, elapsed_seconds=grade.elapsed_seconds
                    )
                session = await engine.grade(session, item.item_id, grade)
            elif choice == "u":
                if engine.can_undo(session):
                    session = await engine.undo(session)
                else:
                    typer.echo("Nothing to undo.")
            elif choice == "f":
                session = await engine.toggle_flag(session, item.item_id)
                flagged = session.items[index].is_flagged
                typer.echo("Flagged for priority review." if flagged else "Flag removed.")
            elif choice == "q":
                return
        except PersistenceError as e:
            typer.secho(f"Could not record that: {e}. Please try again.", fg=typer.colors.RED)

    if session.recap is not None:
        _print_recap(session.recap)


@session_app.command("restart")
def session_restart(
    ctx: typer.Context,
    session_id: Annotated[str, typer.Argument(help="Session id.")],
    missed: Annotated[
        bool, typer.Option("--missed/--all", help="Replay only missed items, or all items.")
    ] = True,
):
    """Start a new session from the missed (or all) items of a session."""
    c = _resolve(ctx)

    async def run() -> Session | None:
        session = await _load(c, session_id)
        selector = constants.MISSED if missed else constants.ALL
        return await c.engine.restart_with_subset(session, selector)

    replay = _run(run())
    if replay is None:
        typer.echo("Nice work! No missed items to review.")
        return
    typer.echo(replay.session_id)


# ---------------------------------------------------------------------------
# Vocabulary commands
# ---------------------------------------------------------------------------


@vocab_app.command("due")
def vocab_due(ctx: typer.Context):
    """List vocabulary entries that are due for review."""
    c = _resolve(ctx)
    states = getattr(c.vocabulary, "scheduler_states", None)
    if states is None:
        _fail("The configured backend cannot list vocabulary.")

    try:
        known = states()
    except PersistenceError as e:
        _fail(f"Storage error: {e}")

    now = utc_now()
    due = sorted(
        ((vocab_id, state) for vocab_id, state in known.items() if is_due(state, now)),
        key=lambda pair: pair[1].due_at,
    )
    if not due:
        typer.echo("Nothing due.")
        return
    for vocab_id, state in due:
        typer.echo(
            f"{vocab_id}  streak={state.streak}  due {days_until_due(state, now)}d "
            f"({state.algorithm})"
        )


# ---------------------------------------------------------------------------
# Config commands
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Print the resolved configuration as JSON."""
    config = resolve_config((ctx.obj or {}).get("overrides"))
    typer.echo(json.dumps(config.model_dump(mode="json"), indent=2))
