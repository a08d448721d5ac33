"""Report Generator - orchestrates the four generation stages.

``ReportPipeline`` owns the collaborators (session store, data source,
completion service, blueprint) and exposes ``create_session`` and ``run``.
Each ``run`` builds a ``ReportGenerator`` bound to one session id that walks
the stages in order:

1. Data collection (0-20%): fixture first and fatal on failure, then
   best-effort statistics, injuries, lineups, head-to-head and standings.
2. Signal generation (20-70%): every blueprint signal through a bounded
   worker pool. A failed signal is logged and left absent.
3. Category merge (70-90%): sequential, a category with no partials or a
   failed merge is skipped.
4. Final synthesis (90-100%): always runs, even when every category was
   skipped, and is fatal on failure.

Key behaviors:
- The generator never holds a session object across awaits; every read goes
  through the store so workers see each other's writes.
- A fatal failure sets the session to ``error`` with the message verbatim and
  re-raises; later stages do not run.
- Cancellation is cooperative: an optional ``asyncio.Event`` is checked before
  each remote call and each worker claim.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Mapping, Protocol

from ..config import GenerationConfig, LLMConfig
from ..errors import (
    GenerationCancelledError,
    PipelineError,
    PlanRestrictionError,
    SessionNotFoundError,
    SessionStateError,
    ValidationError,
)
from ..llm.client import CompletionService
from ..logging import logger
from ..report.analysis import analyze_signal, merge_category, synthesize_final
from ..report.blueprint import (
    DATA_FRAGMENTS,
    FIXTURE,
    H2H,
    INJURIES,
    LINEUPS,
    REPORT_BLUEPRINT,
    STANDINGS,
    STATISTICS,
    Blueprint,
    SignalTask,
)
from ..report.context import MatchContext
from ..report.markdown import format_final_report_as_markdown
from ..session.models import Session, SessionStatus, SessionUpdate, partial_key
from ..session.store import SessionStore
from .progress import ProgressSink, ProgressStage, ProgressTracker

DEFAULT_FALLBACK_SEASON = 2023


class FixtureDataSource(Protocol):
    """The subset of ``FootballAPIClient`` the application needs.

    The generator uses the per-fixture reads; ``get_fixtures`` backs the
    fixture listing.
    """

    async def get_fixtures(self, params: Mapping[str, Any]) -> list[dict[str, Any]]: ...

    async def get_fixture(self, fixture_id: int) -> dict[str, Any] | None: ...

    async def get_statistics(self, fixture_id: int) -> list[dict[str, Any]]: ...

    async def get_injuries(self, fixture_id: int) -> list[dict[str, Any]]: ...

    async def get_lineups(self, fixture_id: int) -> list[dict[str, Any]]: ...

    async def get_head_to_head(self, home_team_id: int, away_team_id: int) -> list[dict[str, Any]]: ...

    async def get_standings(self, league_id: int, season: int) -> list[list[dict[str, Any]]]: ...


def validate_subject_id(subject_id: Any) -> int:
    """Accept positive ints and digit strings; reject everything else."""
    if isinstance(subject_id, bool):
        raise ValidationError("fixtureId must be a positive integer")
    if isinstance(subject_id, str) and subject_id.strip().isdigit():
        subject_id = int(subject_id.strip())
    if not isinstance(subject_id, int) or subject_id <= 0:
        raise ValidationError("fixtureId must be a positive integer", {"fixtureId": subject_id})
    return subject_id


class ReportPipeline:
    """Entry point for report generation.

    Collaborators are injected so tests and multiple pipelines in one process
    stay isolated.
    """

    def __init__(
        self,
        store: SessionStore,
        data_source: FixtureDataSource,
        completion: CompletionService,
        *,
        blueprint: Blueprint = REPORT_BLUEPRINT,
        llm_config: LLMConfig | None = None,
        generation_config: GenerationConfig | None = None,
        standings_fallback_season: int = DEFAULT_FALLBACK_SEASON,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.data_source = data_source
        self.completion = completion
        self.blueprint = blueprint
        self.llm_config = llm_config or LLMConfig()
        self.generation_config = generation_config or GenerationConfig()
        self.standings_fallback_season = standings_fallback_season
        self.sleep = sleep

    def create_session(self, subject_id: Any) -> str:
        return self.store.create(validate_subject_id(subject_id))

    async def run(
        self,
        session_id: str,
        sink: ProgressSink,
        cancel_event: asyncio.Event | None = None,
    ) -> Session:
        """Generate the report for ``session_id`` and return the final snapshot.

        Raises:
            SessionNotFoundError: the session is unknown or expired.
            SessionStateError: the session is not pending.
            Exception: whatever fatal error ended the run; the session is
                already in ``error`` when it propagates.
        """
        generator = ReportGenerator(self, session_id, sink, cancel_event)
        return await generator.generate()


class ReportGenerator:
    """One generation run bound to a single session id."""

    def __init__(
        self,
        pipeline: ReportPipeline,
        session_id: str,
        sink: ProgressSink,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.store = pipeline.store
        self.session_id = session_id
        self.cancel_event = cancel_event
        self.blueprint = pipeline.blueprint
        self.tracker = ProgressTracker(
            total_fragments=len(DATA_FRAGMENTS),
            total_signals=self.blueprint.total_signals,
            total_categories=len(self.blueprint),
            sink=sink,
        )
        self.stage = ProgressStage.DATA_COLLECTION

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------
    async def generate(self) -> Session:
        session = self.store.require(self.session_id)
        if session.status is not SessionStatus.PENDING:
            raise SessionStateError(
                f"Session {self.session_id} is {session.status.value}; generation can only start from pending",
            )

        self.store.update(self.session_id, SessionUpdate(status=SessionStatus.GENERATING))
        logger.info(
            "generation_started",
            session_id=self.session_id,
            fixture_id=session.subject_id,
            signals=self.blueprint.total_signals,
            categories=len(self.blueprint),
        )

        try:
            self.stage = ProgressStage.DATA_COLLECTION
            await self.collect_data(session.subject_id)
            self.stage = ProgressStage.SIGNAL_GENERATION
            await self.generate_signals()
            self.stage = ProgressStage.CATEGORY_MERGE
            await self.merge_categories()
            self.stage = ProgressStage.FINAL_SYNTHESIS
            final = await self.synthesize_final()
        except asyncio.CancelledError:
            self._fail("Generation cancelled")
            raise
        except Exception as exc:
            self._fail(str(exc) or exc.__class__.__name__, exc)
            raise

        self.tracker.completed()
        logger.info("generation_completed", session_id=self.session_id, report_length=len(final.final_artifact or ""))
        return final

    def _fail(self, message: str, exc: BaseException | None = None) -> None:
        logger.error(
            "generation_failed",
            session_id=self.session_id,
            stage=self.stage.value,
            error=message,
            error_type=exc.__class__.__name__ if exc else None,
        )
        try:
            self.store.update(self.session_id, SessionUpdate(status=SessionStatus.ERROR, error=message))
        except (SessionNotFoundError, SessionStateError) as update_exc:
            logger.warning("generation_error_not_recorded", session_id=self.session_id, error=str(update_exc))

    def _check_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise GenerationCancelledError("Generation cancelled", self.stage.value)

    def _current(self) -> Session:
        return self.store.require(self.session_id)

    def _match_context(self, session: Session) -> MatchContext:
        fixture = session.collected_data.get(FIXTURE)
        if not fixture:
            raise PipelineError("Fixture data not available", self.stage.value)
        return MatchContext.from_fixture(fixture)

    def _store_fragment(self, name: str, value: Any) -> None:
        self.store.update(self.session_id, SessionUpdate(collected_data={name: value}))

    # -------------------------------------------------------------------------
    # Stage 1: data collection
    # -------------------------------------------------------------------------
    async def collect_data(self, fixture_id: int) -> None:
        source = self.pipeline.data_source
        self.tracker.data_collection("Fetching fixture details...")
        self._check_cancelled()
        try:
            fixture = await source.get_fixture(fixture_id)
        except (GenerationCancelledError, SessionNotFoundError):
            raise
        except Exception as exc:
            logger.error("fixture_fetch_failed", session_id=self.session_id, fixture_id=fixture_id, error=str(exc))
            raise PipelineError("Failed to fetch fixture details", self.stage.value) from exc
        if not fixture:
            logger.error("fixture_not_found", session_id=self.session_id, fixture_id=fixture_id)
            raise PipelineError("Failed to fetch fixture details", self.stage.value)

        self._store_fragment(FIXTURE, fixture)
        self.tracker.fragment_done()
        context = MatchContext.from_fixture(fixture)

        await self._fetch_optional(
            STATISTICS, "Fetching match statistics...", lambda: source.get_statistics(fixture_id)
        )
        await self._fetch_optional(INJURIES, "Fetching injury reports...", lambda: source.get_injuries(fixture_id))
        await self._fetch_optional(LINEUPS, "Fetching team lineups...", lambda: source.get_lineups(fixture_id))

        if context.home_team_id is not None and context.away_team_id is not None:
            await self._fetch_optional(
                H2H,
                "Fetching head-to-head history...",
                lambda: source.get_head_to_head(context.home_team_id, context.away_team_id),
            )
        else:
            logger.warning("h2h_skipped_missing_team_ids", session_id=self.session_id)
            self.tracker.fragment_done()

        await self._collect_standings(context)
        self.tracker.data_collection("Data collection completed")

    async def _fetch_optional(
        self,
        name: str,
        message: str,
        fetch: Callable[[], Awaitable[Any]],
    ) -> None:
        """Fetch a best-effort fragment; failures leave it absent."""
        self.tracker.data_collection(message)
        self._check_cancelled()
        try:
            value = await fetch()
        except (GenerationCancelledError, SessionNotFoundError):
            raise
        except Exception as exc:
            logger.warning("fragment_fetch_failed", session_id=self.session_id, fragment=name, error=str(exc))
        else:
            if value:
                self._store_fragment(name, value)
            else:
                logger.info("fragment_empty", session_id=self.session_id, fragment=name)
        finally:
            self.tracker.fragment_done()

    async def _collect_standings(self, context: MatchContext) -> None:
        source = self.pipeline.data_source
        if context.league_id is None or context.season is None:
            logger.warning("standings_skipped_missing_league", session_id=self.session_id)
            self.tracker.fragment_done()
            return

        self.tracker.data_collection("Fetching league standings...")
        self._check_cancelled()
        try:
            standings = await source.get_standings(context.league_id, context.season)
        except PlanRestrictionError as exc:
            standings = await self._standings_fallback(context, exc)
        except (GenerationCancelledError, SessionNotFoundError):
            raise
        except Exception as exc:
            logger.warning("fragment_fetch_failed", session_id=self.session_id, fragment=STANDINGS, error=str(exc))
            standings = None

        if standings:
            self._store_fragment(STANDINGS, standings)
        self.tracker.fragment_done()

    async def _standings_fallback(self, context: MatchContext, exc: PlanRestrictionError) -> Any:
        season = exc.allowed_range[1] if exc.allowed_range else self.pipeline.standings_fallback_season
        if season == context.season:
            logger.warning("standings_fallback_unavailable", session_id=self.session_id, season=season)
            return None

        logger.info(
            "standings_season_fallback",
            session_id=self.session_id,
            requested_season=context.season,
            fallback_season=season,
            restriction=exc.detail,
        )
        self._check_cancelled()
        try:
            return await self.pipeline.data_source.get_standings(context.league_id, season)
        except (GenerationCancelledError, SessionNotFoundError):
            raise
        except Exception as fallback_exc:
            logger.warning(
                "standings_fallback_failed",
                session_id=self.session_id,
                season=season,
                error=str(fallback_exc),
            )
            return None

    # -------------------------------------------------------------------------
    # Stage 2: signal generation
    # -------------------------------------------------------------------------
    async def generate_signals(self) -> None:
        self._match_context(self._current())

        queue: asyncio.Queue[SignalTask] = asyncio.Queue()
        for task in self.blueprint.all_signals():
            queue.put_nowait(task)

        pool_size = min(max(1, self.pipeline.generation_config.signal_concurrency), queue.qsize())
        if pool_size == 0:
            return

        results = await asyncio.gather(
            *(self._signal_worker(queue, worker_id) for worker_id in range(pool_size)),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

    async def _signal_worker(self, queue: asyncio.Queue[SignalTask], worker_id: int) -> None:
        while True:
            self._check_cancelled()
            try:
                task = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                await self._run_signal_task(task)
            finally:
                queue.task_done()

    async def _run_signal_task(self, task: SignalTask) -> None:
        signal = task.signal
        self.tracker.signal_started(task.category_id, signal.id, signal.name)
        try:
            # Re-read: sibling workers write to the same session.
            session = self._current()
            context = self._match_context(session)
            report = await analyze_signal(
                self.pipeline.completion,
                task.category_id,
                signal,
                session.collected_data,
                context,
                self.pipeline.llm_config,
                sleep=self.pipeline.sleep,
            )
            self._check_cancelled()
            self.store.update(self.session_id, SessionUpdate(partial_report=report))
        except (GenerationCancelledError, SessionNotFoundError):
            raise
        except Exception as exc:
            logger.error(
                "signal_generation_failed",
                session_id=self.session_id,
                category_id=task.category_id,
                signal_id=signal.id,
                error=str(exc),
            )
            return
        self.tracker.signal_completed(task.category_id, signal.id)

    # -------------------------------------------------------------------------
    # Stage 3: category merge
    # -------------------------------------------------------------------------
    async def merge_categories(self) -> None:
        session = self._current()
        context = self._match_context(session)

        for category in self.blueprint:
            self.tracker.category_started(category.id, category.name)
            partials = [
                session.partial_results[key]
                for key in (partial_key(category.id, signal.id) for signal in category.signals)
                if key in session.partial_results
            ]
            if not partials:
                logger.warning("category_skipped_no_partials", session_id=self.session_id, category_id=category.id)
                continue

            self._check_cancelled()
            try:
                report = await merge_category(
                    self.pipeline.completion,
                    category,
                    partials,
                    context,
                    self.pipeline.llm_config,
                )
                self.store.update(self.session_id, SessionUpdate(category_report=report))
            except (GenerationCancelledError, SessionNotFoundError):
                raise
            except Exception as exc:
                logger.error(
                    "category_merge_failed",
                    session_id=self.session_id,
                    category_id=category.id,
                    error=str(exc),
                )
                continue
            self.tracker.category_completed(category.id)

    # -------------------------------------------------------------------------
    # Stage 4: final synthesis
    # -------------------------------------------------------------------------
    async def synthesize_final(self) -> Session:
        self.tracker.final_synthesis("Synthesizing final report...", 5)
        session = self._current()
        context = self._match_context(session)

        reports = [
            session.category_results[category.id]
            for category in self.blueprint
            if category.id in session.category_results
        ]
        complete = [report for report in reports if report.is_complete]
        if len(complete) < len(reports):
            logger.warning(
                "incomplete_category_reports_skipped",
                session_id=self.session_id,
                skipped=len(reports) - len(complete),
            )
        if not complete:
            logger.warning("final_synthesis_without_category_reports", session_id=self.session_id)

        self.tracker.final_synthesis("Generating comprehensive analysis...", 7)
        self._check_cancelled()
        output = await synthesize_final(self.pipeline.completion, complete, context, self.pipeline.llm_config)

        self.tracker.final_synthesis("Formatting final report...", 9)
        markdown = format_final_report_as_markdown(output)
        return self.store.update(
            self.session_id,
            SessionUpdate(final_artifact=markdown, status=SessionStatus.COMPLETED),
        )
