"""Explicitly constructed collaborators for one application instance.

Nothing here is a module-level singleton: each ``build_container`` call
returns an independent store, cache, throttle and client set.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from .chat import ChatService
from .config import Settings
from .football.client import FootballAPIClient
from .football.rate_limit import RequestThrottle
from .llm.client import CompletionService, OpenAICompletionService
from .orchestrator.generator import FixtureDataSource, ReportPipeline
from .session.store import SessionStore
from .utils.cache import APICache


@dataclass
class Container:
    settings: Settings
    store: SessionStore
    cache: APICache
    data_source: FixtureDataSource
    completion: CompletionService
    pipeline: ReportPipeline
    chat: ChatService

    async def aclose(self) -> None:
        close = getattr(self.data_source, "aclose", None)
        if close is not None:
            await close()


def build_container(
    settings: Settings,
    *,
    data_source: FixtureDataSource | None = None,
    completion: CompletionService | None = None,
) -> Container:
    """Wire the application. ``data_source``/``completion`` override the real clients."""
    store = SessionStore(ttl_seconds=settings.session_config.ttl_seconds)
    cache = APICache(
        default_ttl=settings.cache_config.default_ttl_seconds,
        max_entries=settings.cache_config.max_entries,
    )
    if data_source is None:
        data_source = FootballAPIClient(
            settings.football_config,
            settings.football_api_key,
            cache=cache,
            throttle=RequestThrottle(settings.football_config.requests_per_minute),
        )
    if completion is None:
        completion = OpenAICompletionService(settings.llm_config, settings.openai_api_key)

    pipeline = ReportPipeline(
        store,
        data_source,
        completion,
        llm_config=settings.llm_config,
        generation_config=settings.generation_config,
        standings_fallback_season=settings.football_config.standings_fallback_season,
    )
    return Container(
        settings=settings,
        store=store,
        cache=cache,
        data_source=data_source,
        completion=completion,
        pipeline=pipeline,
        chat=ChatService(store, completion, settings.llm_config),
    )


def get_container(request: Request) -> Container:
    return request.app.state.container
