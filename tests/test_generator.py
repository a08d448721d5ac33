"""Tests for orchestrator/generator.py module."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from fakes import (
    SMALL_BLUEPRINT,
    FakeCompletionService,
    FakeDataSource,
    make_fixture,
    make_standings,
    no_sleep,
)
from match_report.config import GenerationConfig
from match_report.errors import (
    CompletionError,
    ExternalServiceError,
    GenerationCancelledError,
    PipelineError,
    PlanRestrictionError,
    SessionNotFoundError,
    SessionStateError,
    ValidationError,
)
from match_report.llm.client import CompletionPrompt
from match_report.orchestrator.generator import ReportPipeline, validate_subject_id
from match_report.orchestrator.progress import ProgressStage, ProgressUpdate
from match_report.session.models import SessionStatus
from match_report.session.store import SessionStore


def make_pipeline(
    store: SessionStore,
    data_source: FakeDataSource,
    completion: FakeCompletionService,
    **kwargs: Any,
) -> ReportPipeline:
    kwargs.setdefault("blueprint", SMALL_BLUEPRINT)
    return ReportPipeline(store, data_source, completion, sleep=no_sleep, **kwargs)


class TestValidateSubjectId:
    """Tests for validate_subject_id."""

    @pytest.mark.parametrize("value,expected", [(12345, 12345), ("12345", 12345), (" 7 ", 7)])
    def test_accepts_positive_ids(self, value: Any, expected: int) -> None:
        assert validate_subject_id(value) == expected

    @pytest.mark.parametrize("value", [None, 0, -3, "abc", "", 1.5, True, [1]])
    def test_rejects_everything_else(self, value: Any) -> None:
        with pytest.raises(ValidationError, match="fixtureId must be a positive integer"):
            validate_subject_id(value)


class TestHappyPath:
    """End-to-end runs over the small blueprint."""

    @pytest.mark.asyncio
    async def test_failed_signal_is_absent_and_report_completes(
        self,
        store: SessionStore,
        data_source: FakeDataSource,
    ) -> None:
        completion = FakeCompletionService(fail_signals={"sig_2"})
        pipeline = make_pipeline(store, data_source, completion)
        session_id = pipeline.create_session(12345)
        updates: list[ProgressUpdate] = []

        final = await pipeline.run(session_id, updates.append)

        assert final.status is SessionStatus.COMPLETED
        assert set(final.partial_results) == {"cat_a.sig_1", "cat_b.sig_3", "cat_b.sig_4"}
        assert set(final.category_results) == {"cat_a", "cat_b"}
        assert final.final_artifact.startswith("# Liverpool vs Manchester City")
        assert "## 🎙️ Quick Talking Points" in final.final_artifact
        assert final.error is None
        assert store.get(session_id).status is SessionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_collects_every_fragment(
        self,
        store: SessionStore,
        data_source: FakeDataSource,
        completion: FakeCompletionService,
    ) -> None:
        pipeline = make_pipeline(store, data_source, completion)
        session_id = pipeline.create_session(12345)

        final = await pipeline.run(session_id, lambda update: None)

        # Lineups come back empty and are left out.
        assert set(final.collected_data) == {"fixture", "statistics", "injuries", "h2h", "standings"}
        assert data_source.called("get_head_to_head") == [(40, 50)]
        assert data_source.called("get_standings") == [(39, 2024)]

    @pytest.mark.asyncio
    async def test_prompts_follow_blueprint(
        self,
        store: SessionStore,
        data_source: FakeDataSource,
        completion: FakeCompletionService,
    ) -> None:
        pipeline = make_pipeline(store, data_source, completion)

        await pipeline.run(pipeline.create_session(12345), lambda update: None)

        assert sorted(completion.names("signal")) == ["sig_1", "sig_2", "sig_3", "sig_4"]
        assert completion.names("category") == ["cat_a", "cat_b"]
        assert [p.name for p in completion.prompts if p.name == "final"] == ["final"]

    @pytest.mark.asyncio
    async def test_progress_is_monotonic_and_ends_at_100(
        self,
        store: SessionStore,
        data_source: FakeDataSource,
        completion: FakeCompletionService,
    ) -> None:
        pipeline = make_pipeline(store, data_source, completion)
        updates: list[ProgressUpdate] = []

        await pipeline.run(pipeline.create_session(12345), updates.append)

        values = [u.progress for u in updates]
        assert values == sorted(values)
        assert values[0] == 0
        assert values[-1] == 100
        assert updates[0].stage is ProgressStage.DATA_COLLECTION
        assert updates[-1].message == "Report generation completed!"
        stages = [u.stage for u in updates]
        assert stages.index(ProgressStage.SIGNAL_GENERATION) < stages.index(ProgressStage.CATEGORY_MERGE)
        assert stages.index(ProgressStage.CATEGORY_MERGE) < stages.index(ProgressStage.FINAL_SYNTHESIS)

    @pytest.mark.asyncio
    async def test_sink_failure_does_not_abort(
        self,
        store: SessionStore,
        data_source: FakeDataSource,
        completion: FakeCompletionService,
    ) -> None:
        def broken(update: ProgressUpdate) -> None:
            raise RuntimeError("client gone")

        pipeline = make_pipeline(store, data_source, completion)

        final = await pipeline.run(pipeline.create_session(12345), broken)

        assert final.status is SessionStatus.COMPLETED


class TestFatalFailures:
    """Failures that end the session in ``error``."""

    @pytest.mark.asyncio
    async def test_missing_fixture_is_fatal(self, store: SessionStore, completion: FakeCompletionService) -> None:
        pipeline = make_pipeline(store, FakeDataSource(None), completion)
        session_id = pipeline.create_session(12345)

        with pytest.raises(PipelineError, match="Failed to fetch fixture details"):
            await pipeline.run(session_id, lambda update: None)

        session = store.get(session_id)
        assert session.status is SessionStatus.ERROR
        assert session.error == "Failed to fetch fixture details"
        assert completion.prompts == []

    @pytest.mark.asyncio
    async def test_fixture_fetch_error_is_fatal(self, store: SessionStore, completion: FakeCompletionService) -> None:
        source = FakeDataSource(
            make_fixture(),
            failures={"get_fixture": ExternalServiceError("down", service="api-football")},
        )
        pipeline = make_pipeline(store, source, completion)
        session_id = pipeline.create_session(12345)

        with pytest.raises(PipelineError):
            await pipeline.run(session_id, lambda update: None)

        assert store.get(session_id).error == "Failed to fetch fixture details"
        assert source.called("get_statistics") == []

    @pytest.mark.asyncio
    async def test_final_synthesis_error_message_verbatim(
        self,
        store: SessionStore,
        data_source: FakeDataSource,
    ) -> None:
        completion = FakeCompletionService(final_error=RuntimeError("boom"))
        pipeline = make_pipeline(store, data_source, completion)
        session_id = pipeline.create_session(12345)
        updates: list[ProgressUpdate] = []

        with pytest.raises(RuntimeError, match="boom"):
            await pipeline.run(session_id, updates.append)

        session = store.get(session_id)
        assert session.status is SessionStatus.ERROR
        assert session.error == "boom"
        assert session.final_artifact is None
        assert updates[-1].progress < 100

    @pytest.mark.asyncio
    async def test_final_synthesis_runs_without_category_reports(
        self,
        store: SessionStore,
        data_source: FakeDataSource,
    ) -> None:
        completion = FakeCompletionService(fail_categories={"cat_a", "cat_b"})
        pipeline = make_pipeline(store, data_source, completion)
        session_id = pipeline.create_session(12345)

        await pipeline.run(session_id, lambda update: None)

        session = store.get(session_id)
        assert session.status is SessionStatus.COMPLETED
        assert session.category_results == {}
        assert [p.name for p in completion.prompts].count("final") == 1
        assert session.final_artifact.startswith("# Liverpool vs Manchester City")

    @pytest.mark.asyncio
    async def test_final_error_without_category_reports_is_fatal(
        self,
        store: SessionStore,
        data_source: FakeDataSource,
    ) -> None:
        completion = FakeCompletionService(
            fail_categories={"cat_a", "cat_b"},
            final_error=CompletionError("final synthesis failed"),
        )
        pipeline = make_pipeline(store, data_source, completion)
        session_id = pipeline.create_session(12345)

        with pytest.raises(CompletionError, match="final synthesis failed"):
            await pipeline.run(session_id, lambda update: None)

        assert store.get(session_id).status is SessionStatus.ERROR

    @pytest.mark.asyncio
    async def test_run_requires_pending_session(
        self,
        store: SessionStore,
        data_source: FakeDataSource,
        completion: FakeCompletionService,
    ) -> None:
        pipeline = make_pipeline(store, data_source, completion)
        session_id = pipeline.create_session(12345)
        await pipeline.run(session_id, lambda update: None)

        with pytest.raises(SessionStateError):
            await pipeline.run(session_id, lambda update: None)

        assert store.get(session_id).status is SessionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_unknown_session(
        self,
        store: SessionStore,
        data_source: FakeDataSource,
        completion: FakeCompletionService,
    ) -> None:
        pipeline = make_pipeline(store, data_source, completion)

        with pytest.raises(SessionNotFoundError):
            await pipeline.run("missing", lambda update: None)

    @pytest.mark.asyncio
    async def test_session_lost_mid_run(
        self,
        store: SessionStore,
        data_source: FakeDataSource,
        completion: FakeCompletionService,
    ) -> None:
        pipeline = make_pipeline(store, data_source, completion)
        session_id = pipeline.create_session(12345)

        def sink(update: ProgressUpdate) -> None:
            if update.stage is ProgressStage.SIGNAL_GENERATION:
                store.delete(session_id)

        with pytest.raises(SessionNotFoundError):
            await pipeline.run(session_id, sink)


class TestBestEffort:
    """Failures that degrade the report without failing it."""

    @pytest.mark.asyncio
    async def test_optional_fragment_failure(self, store: SessionStore, completion: FakeCompletionService) -> None:
        source = FakeDataSource(
            make_fixture(),
            failures={"get_statistics": ExternalServiceError("down", service="api-football")},
        )
        pipeline = make_pipeline(store, source, completion)

        final = await pipeline.run(pipeline.create_session(12345), lambda update: None)

        assert final.status is SessionStatus.COMPLETED
        assert "statistics" not in final.collected_data
        assert "injuries" in final.collected_data

    @pytest.mark.asyncio
    async def test_h2h_skipped_without_team_ids(self, store: SessionStore, completion: FakeCompletionService) -> None:
        fixture = make_fixture()
        fixture["teams"] = {"home": {"name": "Liverpool"}, "away": {"name": "Manchester City"}}
        source = FakeDataSource(fixture)
        pipeline = make_pipeline(store, source, completion)

        final = await pipeline.run(pipeline.create_session(12345), lambda update: None)

        assert source.called("get_head_to_head") == []
        assert "h2h" not in final.collected_data

    @pytest.mark.asyncio
    async def test_standings_fall_back_to_allowed_season(
        self,
        store: SessionStore,
        completion: FakeCompletionService,
    ) -> None:
        restriction = PlanRestrictionError(
            "Free plans do not have access to this season, try from 2021 to 2023.",
            service="api-football",
        )
        source = FakeDataSource(make_fixture(), standings_by_season={2024: restriction, 2023: make_standings()})
        pipeline = make_pipeline(store, source, completion)

        final = await pipeline.run(pipeline.create_session(12345), lambda update: None)

        assert source.called("get_standings") == [(39, 2024), (39, 2023)]
        assert final.collected_data["standings"] == make_standings()

    @pytest.mark.asyncio
    async def test_standings_fallback_uses_configured_season(
        self,
        store: SessionStore,
        completion: FakeCompletionService,
    ) -> None:
        restriction = PlanRestrictionError("Upgrade your plan", service="api-football")
        source = FakeDataSource(make_fixture(), standings_by_season={2024: restriction, 2022: make_standings()})
        pipeline = make_pipeline(store, source, completion, standings_fallback_season=2022)

        final = await pipeline.run(pipeline.create_session(12345), lambda update: None)

        assert source.called("get_standings") == [(39, 2024), (39, 2022)]
        assert "standings" in final.collected_data

    @pytest.mark.asyncio
    async def test_failed_category_is_skipped(self, store: SessionStore, data_source: FakeDataSource) -> None:
        completion = FakeCompletionService(fail_categories={"cat_b"})
        pipeline = make_pipeline(store, data_source, completion)

        final = await pipeline.run(pipeline.create_session(12345), lambda update: None)

        assert final.status is SessionStatus.COMPLETED
        assert set(final.category_results) == {"cat_a"}
        assert completion.names("category") == ["cat_a", "cat_b", "cat_b"]

    @pytest.mark.asyncio
    async def test_category_without_partials_is_skipped(
        self,
        store: SessionStore,
        data_source: FakeDataSource,
    ) -> None:
        completion = FakeCompletionService(fail_signals={"sig_3", "sig_4"})
        pipeline = make_pipeline(store, data_source, completion)

        final = await pipeline.run(pipeline.create_session(12345), lambda update: None)

        assert completion.names("category") == ["cat_a"]
        assert set(final.category_results) == {"cat_a"}


class CountingCompletion(FakeCompletionService):
    """Tracks how many signal calls are in flight at once."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.in_flight = 0
        self.peak = 0

    async def invoke(self, prompt: CompletionPrompt, schema: type) -> Any:
        if not prompt.name.startswith("signal:"):
            return await super().invoke(prompt, schema)
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(0.001)
            return await super().invoke(prompt, schema)
        finally:
            self.in_flight -= 1


class TestConcurrency:
    """Tests for the signal worker pool."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("concurrency,expected_peak", [(1, 1), (2, 2), (10, 4)])
    async def test_pool_bounds_in_flight_calls(
        self,
        store: SessionStore,
        data_source: FakeDataSource,
        concurrency: int,
        expected_peak: int,
    ) -> None:
        completion = CountingCompletion()
        pipeline = make_pipeline(
            store,
            data_source,
            completion,
            generation_config=GenerationConfig(signal_concurrency=concurrency),
        )

        final = await pipeline.run(pipeline.create_session(12345), lambda update: None)

        assert completion.peak == expected_peak
        assert len(final.partial_results) == 4

    @pytest.mark.asyncio
    async def test_sessions_are_isolated(self, store: SessionStore, data_source: FakeDataSource) -> None:
        completion = FakeCompletionService()
        pipeline = make_pipeline(store, data_source, completion)
        first = pipeline.create_session(12345)
        second = pipeline.create_session(12345)

        results = await asyncio.gather(
            pipeline.run(first, lambda update: None),
            pipeline.run(second, lambda update: None),
        )

        assert [r.id for r in results] == [first, second]
        assert all(len(r.partial_results) == 4 for r in results)


class TestCancellation:
    """Tests for cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_before_start(
        self,
        store: SessionStore,
        data_source: FakeDataSource,
        completion: FakeCompletionService,
    ) -> None:
        pipeline = make_pipeline(store, data_source, completion)
        session_id = pipeline.create_session(12345)
        cancel = asyncio.Event()
        cancel.set()

        with pytest.raises(GenerationCancelledError):
            await pipeline.run(session_id, lambda update: None, cancel)

        assert data_source.calls == []
        assert store.get(session_id).error == "Generation cancelled"

    @pytest.mark.asyncio
    async def test_cancel_during_signals(
        self,
        store: SessionStore,
        data_source: FakeDataSource,
        completion: FakeCompletionService,
    ) -> None:
        pipeline = make_pipeline(store, data_source, completion)
        session_id = pipeline.create_session(12345)
        cancel = asyncio.Event()

        def sink(update: ProgressUpdate) -> None:
            if update.stage is ProgressStage.SIGNAL_GENERATION:
                cancel.set()

        with pytest.raises(GenerationCancelledError):
            await pipeline.run(session_id, sink, cancel)

        session = store.get(session_id)
        assert session.status is SessionStatus.ERROR
        assert session.partial_results == {}
        assert completion.names("category") == []

    @pytest.mark.asyncio
    async def test_task_cancellation_marks_error(
        self,
        store: SessionStore,
        data_source: FakeDataSource,
        completion: FakeCompletionService,
    ) -> None:
        pipeline = make_pipeline(store, data_source, completion)
        session_id = pipeline.create_session(12345)
        started = asyncio.Event()

        def sink(update: ProgressUpdate) -> None:
            started.set()

        task = asyncio.create_task(pipeline.run(session_id, sink))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert store.get(session_id).error == "Generation cancelled"
