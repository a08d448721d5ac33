"""
LLM chains for the three generation steps.

- ``analyze_signal``: one signal over its data slice. An incomplete answer is
  retried, then filled with defaults. Output that never parses degrades to a
  low-confidence default report; any other error that persists propagates
  so the task is recorded as failed.
- ``merge_category``: the partial reports of one category into sections and
  talking points. Retries, then raises.
- ``synthesize_final``: every complete category report into the final report.
  Raises on failure.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Iterable, Mapping

from ..config import LLMConfig
from ..errors import CompletionError, MalformedOutputError
from ..llm.client import CompletionService
from ..llm.prompts import build_category_prompt, build_final_prompt, build_signal_prompt
from ..llm.schemas import CategoryReportOutput, FinalReportOutput, SignalReportOutput
from ..logging import logger
from ..session.models import CategoryReport, PartialReport, ReportSection
from .blueprint import CategoryDefinition, SignalDefinition
from .context import MatchContext, format_collected_data_for_signal, truncate_text

DEFAULT_INSIGHTS = ["Data analysis in progress"]
DEFAULT_EMOJI = "⚽"
DEFAULT_CONFIDENCE = 0.5
MALFORMED_CONFIDENCE = 0.3

PARTIAL_NARRATIVE_CHARS = 900
PARTIAL_INSIGHT_LIMIT = 5
FINAL_SECTION_CHARS = 900
FINAL_TOTAL_CHARS = 24000


def _is_complete(output: SignalReportOutput) -> bool:
    return bool(output.insights) and bool(output.narrative.strip()) and bool(output.emoji) and output.confidence is not None


def _clamp_confidence(value: float | None, default: float) -> float:
    if value is None:
        return default
    return min(1.0, max(0.0, float(value)))


def _fill_defaults(signal: SignalDefinition, output: SignalReportOutput) -> SignalReportOutput:
    return SignalReportOutput(
        insights=output.insights or list(DEFAULT_INSIGHTS),
        narrative=output.narrative.strip() or f"Analysis of {signal.name.lower()} for this fixture.",
        emoji=output.emoji or DEFAULT_EMOJI,
        confidence=_clamp_confidence(output.confidence, DEFAULT_CONFIDENCE),
    )


async def analyze_signal(
    service: CompletionService,
    category_id: str,
    signal: SignalDefinition,
    collected_data: Mapping[str, Any],
    context: MatchContext,
    config: LLMConfig,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> PartialReport:
    """Run one signal analysis.

    Incomplete answers are retried; the last attempt's gaps are filled with
    defaults. If every attempt raised, a ``MalformedOutputError`` yields a
    default report at ``MALFORMED_CONFIDENCE``; any other last error is
    re-raised.
    """
    data = format_collected_data_for_signal(collected_data, signal.data_requirements)
    prompt = build_signal_prompt(signal, context, data, config.max_tokens)
    attempts = max(1, config.signal_attempts)
    output: SignalReportOutput | None = None
    last_error: Exception | None = None

    for attempt in range(1, attempts + 1):
        try:
            output = await service.invoke(prompt, SignalReportOutput)
        except Exception as exc:
            logger.warning(
                "signal_attempt_failed",
                category_id=category_id,
                signal_id=signal.id,
                attempt=attempt,
                max_attempts=attempts,
                error=str(exc),
            )
            last_error = exc
        else:
            if _is_complete(output):
                break
            logger.info("signal_output_incomplete", category_id=category_id, signal_id=signal.id, attempt=attempt)

        if attempt < attempts:
            await sleep(config.signal_retry_delay_seconds * attempt)

    if output is None:
        if not isinstance(last_error, MalformedOutputError):
            raise last_error or CompletionError(f"Signal {signal.id} produced no output")
        logger.warning("signal_output_malformed", category_id=category_id, signal_id=signal.id, attempts=attempts)
        output = _fill_defaults(signal, SignalReportOutput(confidence=MALFORMED_CONFIDENCE))
    elif not _is_complete(output):
        output = _fill_defaults(signal, output)

    return PartialReport(
        category_id=category_id,
        signal_id=signal.id,
        title=signal.name,
        insights=list(output.insights),
        narrative=output.narrative,
        emoji=output.emoji,
        confidence=_clamp_confidence(output.confidence, DEFAULT_CONFIDENCE),
    )


def format_partial_reports_for_category(partials: Iterable[PartialReport]) -> str:
    blocks = []
    for partial in partials:
        insights = "\n".join(f"- {insight}" for insight in partial.insights[:PARTIAL_INSIGHT_LIMIT])
        blocks.append(
            f"### {partial.emoji} {partial.title}\n"
            f"Confidence: {round(partial.confidence * 100)}%\n"
            f"Insights:\n{insights}\n"
            f"Narrative: {truncate_text(partial.narrative, PARTIAL_NARRATIVE_CHARS)}"
        )
    return "\n\n".join(blocks)


def format_category_reports_for_final(reports: Iterable[CategoryReport]) -> str:
    """Render complete category reports for the final prompt, capped in size."""
    blocks = []
    for report in reports:
        if not report.is_complete:
            continue
        lines = [f"## {report.title}"]
        for section in report.sections:
            heading = f"{section.emoji} {section.title}" if section.emoji else section.title
            lines.append(f"### {heading}")
            lines.append(truncate_text(section.content, FINAL_SECTION_CHARS))
        if report.talking_points:
            lines.append("Talking points:")
            lines.extend(f"- {point}" for point in report.talking_points)
        blocks.append("\n".join(lines))
    return truncate_text("\n\n".join(blocks), FINAL_TOTAL_CHARS)


async def merge_category(
    service: CompletionService,
    category: CategoryDefinition,
    partials: list[PartialReport],
    context: MatchContext,
    config: LLMConfig,
) -> CategoryReport:
    prompt = build_category_prompt(
        category,
        context,
        format_partial_reports_for_category(partials),
        config.max_tokens,
    )
    attempts = max(1, config.category_attempts)
    last_error: Exception | None = None

    for attempt in range(1, attempts + 1):
        try:
            output = await service.invoke(prompt, CategoryReportOutput)
        except Exception as exc:
            last_error = exc
            logger.warning(
                "category_merge_attempt_failed",
                category_id=category.id,
                attempt=attempt,
                max_attempts=attempts,
                error=str(exc),
            )
            continue
        return CategoryReport(
            category_id=category.id,
            title=output.title or category.name,
            sections=[
                ReportSection(title=s.title, content=s.content, emoji=s.emoji or category.emoji)
                for s in output.sections
            ],
            talking_points=list(output.talking_points),
        )

    raise last_error or CompletionError(f"Category {category.id} produced no report")


async def synthesize_final(
    service: CompletionService,
    reports: list[CategoryReport],
    context: MatchContext,
    config: LLMConfig,
) -> FinalReportOutput:
    prompt = build_final_prompt(context, format_category_reports_for_final(reports), config.final_max_tokens)
    return await service.invoke(prompt, FinalReportOutput)
