"""
Session Engine — Application layer orchestrator for practice sessions.

Owns the session lifecycle: creation, item traversal, grading, undo,
completion, recap and restart-with-subset. Every state change is applied to
a copy of the session and only becomes visible after persistence succeeds.
"""

import asyncio
import logging
import math
import random
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Literal, TypeVar

from unilex.domain import constants
from unilex.domain.errors import InvalidOperation, PersistenceError
from unilex.domain.ports import SessionRepository, VocabularyStore
from unilex.domain.session.models import (
    Attempt,
    Grade,
    Item,
    Progress,
    Session,
    SessionConfig,
    SessionState,
    UndoEntry,
    VocabCandidate,
    VocabSnapshot,
)
from unilex.domain.srs.models import DueEntry, Outcome, SchedulerState

from .id_service import generate_attempt_id, generate_session_id
from .outcomes import missed_items
from .recap_builder import build_recap
from .scheduler import DEFAULT_POLICY, SchedulerPolicy, next_state, prioritize, quality_for, record_performance
from .session_builder import build_session

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], datetime]
SubsetSelector = Literal["missed", "all"] | Callable[[Item], bool]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def effective_cursor(session: Session) -> int:
    """
    Display index for a (re)opened session.

    Clamped to the last item so a stale or corrupted progress value can never
    index out of bounds.
    """
    last_index = max(len(session.items) - 1, 0)
    if session.progress.is_complete:
        return last_index
    return min(max(session.progress.current_index, 0), last_index)


@dataclass(frozen=True)
class _FlagRecord:
    """Scheduler state before a flag, and the priority state the flag wrote."""

    before: SchedulerState | None
    written: SchedulerState


class SessionEngine:
    """
    Runs practice sessions against injected persistence ports.

    Operations on one session are serialized in submission order; sessions
    with different ids are independent. The engine tracks the last committed
    version of every opened session and applies queued operations to it.
    """

    def __init__(
        self,
        sessions: SessionRepository,
        vocabulary: VocabularyStore,
        *,
        policy: SchedulerPolicy = DEFAULT_POLICY,
        recap_threshold: float = constants.RECAP_ACCURACY_THRESHOLD,
        clock: Clock = utc_now,
        rng: random.Random | None = None,
    ):
        """
        Args:
            sessions: Session Repository port.
            vocabulary: Vocabulary Store port.
            policy: Scheduler bounds.
            recap_threshold: Accuracy at which the recap recommends a harder set.
            clock: Source of "now"; injectable for deterministic tests.
            rng: Random source for candidate selection and missed-item shuffles.
        """
        self._sessions = sessions
        self._vocab = vocabulary
        self._policy = policy
        self._recap_threshold = recap_threshold
        self._clock = clock
        self._rng = rng or random.Random()

        self._live: dict[str, Session] = {}
        self._undo: dict[str, list[UndoEntry]] = {}
        self._due: dict[str, dict[str, datetime]] = {}
        self._flags: dict[str, dict[str, _FlagRecord]] = {}

        self._session_locks: dict[str, asyncio.Lock] = {}
        self._vocab_locks: dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create(
        self,
        config: SessionConfig,
        candidates: Iterable[VocabCandidate],
        *,
        profile_id: str,
    ) -> Session:
        """
        Build and persist a new session.

        Raises:
            ContentError: if the candidate pool cannot satisfy the request.
            PersistenceError: if the session could not be saved.
        """
        session = build_session(
            config, candidates, profile_id=profile_id, now=self._clock(), rng=self._rng
        )
        await self._call("save session", self._sessions.save(session))
        self._register(session)
        logger.info(
            f"[engine] Created {session.session_id} with {len(session.items)} items "
            f"({config.review_mode.value})"
        )
        return session

    async def open(self, session_id: str) -> Session | None:
        """
        Load a session, clamp its progress and stamp `last_opened_at`.

        Resets the undo stack and scratch buffers: undo never crosses a
        reopen.
        """
        async with self._session_lock(session_id):
            stored = await self._call("load session", self._sessions.load(session_id))
            if stored is None:
                logger.info(f"[engine] Session {session_id} not found")
                return None

            session = _normalize(stored)
            session = replace(
                session, progress=replace(session.progress, last_opened_at=self._clock())
            )
            await self._call("save session", self._sessions.save(session))
            self._register(session)
            return session

    def resume(self, session: Session) -> int:
        """Register an already loaded session and return its effective cursor."""
        session = _normalize(session)
        self._register(session)
        return effective_cursor(session)

    def close(self, session_id: str) -> None:
        """Forget the live copy and scratch state of a session."""
        self._live.pop(session_id, None)
        self._undo.pop(session_id, None)
        self._due.pop(session_id, None)
        self._flags.pop(session_id, None)
        lock = self._session_locks.get(session_id)
        if lock is not None and not lock.locked():
            del self._session_locks[session_id]

    def current(self, session_id: str) -> Session | None:
        return self._live.get(session_id)

    # ------------------------------------------------------------------
    # Grading
    # ------------------------------------------------------------------

    async def grade(self, session: Session, item_id: str, grade: Grade) -> Session:
        """
        Record the learner's outcome for the current item.

        Appends the attempt, updates scheduler state and performance counters
        of the linked vocabulary entry, advances progress and builds the recap
        when the last item is graded. All of it commits together or not at all.

        Returns:
            The updated session, or the unchanged session when grading is not
            allowed (complete session, finished cursor, item is not current).

        Raises:
            PersistenceError: if the transaction could not be persisted. The
                caller-visible session is unchanged.
        """
        session_id = session.session_id
        async with self._session_lock(session_id):
            current = self._live.get(session_id, session)
            reason = _grade_blocker(current, item_id)
            if reason is not None:
                logger.debug(f"[engine] grade no-op on {session_id}: {reason}")
                return current

            index = current.progress.current_index
            item = current.items[index]
            now = self._clock()
            outcome, score = _resolve_grade(grade)

            attempt = Attempt(
                attempt_id=generate_attempt_id(),
                outcome=outcome,
                score=score,
                graded_at=now,
                answer=grade.answer,
                error_tags=tuple(grade.error_tags),
                feedback=grade.feedback,
                elapsed_seconds=_clean_seconds(grade.elapsed_seconds),
            )
            next_index = index + 1
            is_complete = next_index >= len(current.items)
            draft = replace(
                current.with_item(index, item.with_attempt(attempt)),
                progress=Progress(
                    current_index=next_index, is_complete=is_complete, last_opened_at=now
                ),
            )

            captures = dict(self._due.get(session_id, {}))
            entry = UndoEntry(item_id=item.item_id, progress_before=current.progress)

            if item.vocab_id is None:
                draft = self._with_recap(draft, captures)
                await self._commit(draft)
            else:
                vocab_id = item.vocab_id
                async with self._vocab_lock(vocab_id):
                    before = await self._read_vocab(vocab_id)
                    scheduler = next_state(
                        before.scheduler,
                        outcome,
                        now=now,
                        quality=quality_for(item.kind, outcome, score),
                        policy=self._policy,
                    )
                    performance = record_performance(
                        before.performance, item.kind.activity, outcome, now=now
                    )
                    after = VocabSnapshot(vocab_id, scheduler, performance)

                    previous_due = captures.get(vocab_id)
                    entry = replace(
                        entry,
                        vocab_before=before,
                        due_capture_before=(
                            DueEntry(vocab_id, previous_due) if previous_due is not None else None
                        ),
                    )
                    captures[vocab_id] = scheduler.due_at
                    draft = self._with_recap(draft, captures)
                    await self._commit(draft, before=before, after=after)

            self._live[session_id] = draft
            self._due[session_id] = captures
            self._undo.setdefault(session_id, []).append(entry)
            logger.info(
                f"[engine] Graded {item.item_id} in {session_id}: {outcome.value} "
                f"({next_index}/{len(draft.items)})"
            )
            return draft

    async def undo(self, session: Session) -> Session:
        """
        Reverse the most recent grading transaction.

        Removes the item's last attempt, restores the vocabulary entry's
        scheduler state and performance counters (clearing them if they were
        absent), restores progress and clears the recap. A no-op returning the
        unchanged session when there is nothing to undo.

        Raises:
            PersistenceError: if the reversal could not be persisted. The undo
                entry stays on the stack and the session is unchanged.
        """
        session_id = session.session_id
        async with self._session_lock(session_id):
            current = self._live.get(session_id, session)
            stack = self._undo.get(session_id)
            if not stack:
                logger.debug(f"[engine] undo no-op on {session_id}: nothing to undo")
                return current

            entry = stack.pop()
            index = current.index_of(entry.item_id)
            if index is None or not current.items[index].history:
                logger.warning(
                    f"[engine] Dropping undo entry for {entry.item_id}: item has no history"
                )
                return current

            item = current.items[index]
            draft = replace(
                current.with_item(index, item.without_last_attempt()),
                progress=entry.progress_before,
                recap=None,
            )
            captures = dict(self._due.get(session_id, {}))
            records = self._flags.setdefault(session_id, {})
            refreshed = None

            try:
                if entry.vocab_before is None:
                    await self._commit(draft)
                else:
                    vocab_id = entry.vocab_before.vocab_id
                    if entry.due_capture_before is None:
                        captures.pop(vocab_id, None)
                    else:
                        captures[vocab_id] = entry.due_capture_before.due_at
                    restored = entry.vocab_before
                    record = records.get(vocab_id)
                    if record is not None and restored.scheduler != record.written:
                        # Flagged after this grade: the flag outlives the undo
                        written = prioritize(
                            restored.scheduler, now=self._clock(), policy=self._policy
                        )
                        refreshed = _FlagRecord(before=restored.scheduler, written=written)
                        restored = replace(restored, scheduler=written)
                    async with self._vocab_lock(vocab_id):
                        latest = await self._read_vocab(vocab_id)
                        await self._commit(draft, before=latest, after=restored)
            except PersistenceError:
                stack.append(entry)
                raise

            self._live[session_id] = draft
            self._due[session_id] = captures
            if refreshed is not None:
                records[entry.vocab_before.vocab_id] = refreshed
            logger.info(f"[engine] Undid {entry.item_id} in {session_id}")
            return draft

    async def toggle_flag(self, session: Session, item_id: str) -> Session:
        """
        Flip an item's flag.

        Flagging a linked item forces a short priority due interval on its
        vocabulary entry; unflagging restores the pre-flag scheduler state if
        the entry has not been graded since. Flags never enter undo history,
        and undoing a grade made before the flag keeps the priority interval.
        """
        session_id = session.session_id
        async with self._session_lock(session_id):
            current = self._live.get(session_id, session)
            index = current.index_of(item_id)
            if index is None:
                logger.debug(f"[engine] flag no-op on {session_id}: unknown item {item_id}")
                return current

            item = current.items[index]
            flagged = not item.is_flagged
            draft = current.with_item(index, item.with_flag(flagged))
            records = self._flags.setdefault(session_id, {})

            if item.vocab_id is None:
                await self._commit(draft)
            else:
                vocab_id = item.vocab_id
                async with self._vocab_lock(vocab_id):
                    before = await self._read_vocab(vocab_id)
                    if flagged:
                        written = prioritize(before.scheduler, now=self._clock(), policy=self._policy)
                        after = VocabSnapshot(vocab_id, written, before.performance)
                        await self._commit(draft, before=before, after=after)
                        records[vocab_id] = _FlagRecord(before=before.scheduler, written=written)
                    else:
                        record = records.get(vocab_id)
                        if record is not None and before.scheduler == record.written:
                            after = VocabSnapshot(vocab_id, record.before, before.performance)
                            await self._commit(draft, before=before, after=after)
                        else:
                            await self._commit(draft)
                        records.pop(vocab_id, None)

            self._live[session_id] = draft
            logger.info(f"[engine] {'Flagged' if flagged else 'Unflagged'} {item_id} in {session_id}")
            return draft

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    async def restart_with_subset(
        self, session: Session, selector: SubsetSelector = constants.MISSED
    ) -> Session | None:
        """
        Start a new session over a subset of this session's items.

        "missed" replays items whose last attempt was incorrect, shuffled;
        "all" replays every item in order; a callable selects by predicate.
        The new session keeps configuration and vocabulary links but starts
        with empty histories. The original record is left unchanged.

        Returns:
            The new persisted session, or None if the subset is empty.
        """
        session_id = session.session_id
        async with self._session_lock(session_id):
            current = self._live.get(session_id, session)

            if selector == constants.MISSED:
                chosen = missed_items(current.items)
                self._rng.shuffle(chosen)
            elif selector == constants.ALL:
                chosen = list(current.items)
            elif callable(selector):
                chosen = [item for item in current.items if selector(item)]
            else:
                raise ValueError(f"Unknown subset selector: {selector!r}")

            if not chosen:
                logger.info(f"[engine] Nothing to replay from {session_id}")
                return None

            now = self._clock()
            replay = Session(
                session_id=generate_session_id(),
                profile_id=current.profile_id,
                created_at=now,
                config=current.config,
                items=tuple(item.reset() for item in chosen),
                progress=Progress(current_index=0, is_complete=False, last_opened_at=now),
                recap=None,
            )
            await self._call("save session", self._sessions.save(replay))

            self._reset_scratch(session_id)
            self._register(replay)
            logger.info(
                f"[engine] Restarted {session_id} as {replay.session_id} "
                f"with {len(chosen)} items"
            )
            return replay

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def check_grade(self, session: Session, item_id: str | None = None) -> None:
        """
        Raise InvalidOperation if grading is not allowed right now.

        Without `item_id`, only the session state is checked.
        """
        current = self._live.get(session.session_id, session)
        if self._session_lock(session.session_id).locked():
            raise InvalidOperation("an operation is already in flight for this session")
        target = item_id
        if target is None and current.current_item is not None:
            target = current.current_item.item_id
        reason = _grade_blocker(current, target)
        if reason is not None:
            raise InvalidOperation(reason)

    def can_grade(self, session: Session) -> bool:
        try:
            self.check_grade(session)
        except InvalidOperation:
            return False
        return True

    def can_undo(self, session: Session) -> bool:
        return self.undo_depth(session.session_id) > 0

    def undo_depth(self, session_id: str) -> int:
        return len(self._undo.get(session_id, ()))

    def due_captures(self, session_id: str) -> dict[str, datetime]:
        return dict(self._due.get(session_id, {}))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _register(self, session: Session) -> None:
        self._live[session.session_id] = session
        self._reset_scratch(session.session_id)

    def _reset_scratch(self, session_id: str) -> None:
        self._undo[session_id] = []
        self._due[session_id] = {}
        self._flags[session_id] = {}

    def _session_lock(self, session_id: str) -> asyncio.Lock:
        return self._session_locks.setdefault(session_id, asyncio.Lock())

    def _vocab_lock(self, vocab_id: str) -> asyncio.Lock:
        return self._vocab_locks.setdefault(vocab_id, asyncio.Lock())

    def _with_recap(self, draft: Session, captures: dict[str, datetime]) -> Session:
        if not draft.progress.is_complete:
            return draft
        return replace(
            draft, recap=build_recap(draft.items, captures, threshold=self._recap_threshold)
        )

    async def _call(self, what: str, call: Awaitable[T]) -> T:
        try:
            return await call
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"{what} failed: {e}") from e

    async def _read_vocab(self, vocab_id: str) -> VocabSnapshot:
        scheduler = await self._call(
            "read scheduler state", self._vocab.get_scheduler_state(vocab_id)
        )
        performance = await self._call("read performance", self._vocab.get_performance(vocab_id))
        return VocabSnapshot(vocab_id, scheduler, performance)

    async def _write_vocab(self, snapshot: VocabSnapshot) -> None:
        vocab_id = snapshot.vocab_id
        if snapshot.scheduler is None:
            await self._call("clear scheduler state", self._vocab.clear_scheduler_state(vocab_id))
        else:
            await self._call(
                "write scheduler state",
                self._vocab.set_scheduler_state(vocab_id, snapshot.scheduler),
            )
        if snapshot.performance is None:
            await self._call("clear performance", self._vocab.clear_performance(vocab_id))
        else:
            await self._call(
                "write performance", self._vocab.set_performance(vocab_id, snapshot.performance)
            )

    async def _commit(
        self,
        draft: Session,
        *,
        before: VocabSnapshot | None = None,
        after: VocabSnapshot | None = None,
    ) -> None:
        """
        Persist vocabulary state, then the session.

        If any step fails, the vocabulary entry is written back to `before`
        and the original PersistenceError propagates.
        """
        if after is not None:
            try:
                await self._write_vocab(after)
            except PersistenceError:
                await self._compensate(before)
                raise

        try:
            await self._call("save session", self._sessions.save(draft))
        except PersistenceError:
            if after is not None:
                await self._compensate(before)
            raise

    async def _compensate(self, snapshot: VocabSnapshot | None) -> None:
        if snapshot is None:
            return
        try:
            await self._write_vocab(snapshot)
            logger.warning(f"[engine] Rolled back vocabulary entry {snapshot.vocab_id}")
        except PersistenceError as e:
            logger.error(
                f"[engine] Rollback of vocabulary entry {snapshot.vocab_id} failed, "
                f"store may be inconsistent: {e}"
            )


def _normalize(session: Session) -> Session:
    progress = session.progress.clamped(len(session.items))
    if progress is session.progress:
        return session
    logger.warning(
        f"[engine] Clamped progress of {session.session_id} from "
        f"{session.progress.current_index} to {progress.current_index}"
    )
    return replace(session, progress=progress)


def _grade_blocker(session: Session, item_id: str | None) -> str | None:
    if session.state is SessionState.COMPLETE:
        return "session is already complete"
    current = session.current_item
    if current is None:
        return "no current item"
    if item_id is not None and current.item_id != item_id:
        return f"item {item_id} is not the current item"
    return None


def _resolve_grade(grade: Grade) -> tuple[Outcome, float]:
    if grade.score is not None:
        score = grade.score if math.isfinite(grade.score) else 0.0
        score = min(1.0, max(0.0, score))
        correct = grade.correct if grade.correct is not None else score >= constants.PASS_SCORE
    elif grade.correct is not None:
        correct = grade.correct
        score = 1.0 if correct else 0.0
    else:
        raise ValueError("Grade needs either `correct` or `score`")
    return (Outcome.CORRECT if correct else Outcome.INCORRECT), score


def _clean_seconds(value: float) -> float:
    if not math.isfinite(value) or value < 0:
        return 0.0
    return float(value)
