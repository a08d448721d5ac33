"""Progress tracking for report generation.

Stage bands:
    data_collection     0-20   fragments attempted / total
    signal_generation  20-70   signals completed / total
    category_merge     70-90   categories completed / total
    final_synthesis    90-100  fixed steps, exactly 100 on completion

Percentages come from counters only and the emitted value never decreases.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from ..logging import logger


class ProgressStage(str, Enum):
    DATA_COLLECTION = "data_collection"
    SIGNAL_GENERATION = "signal_generation"
    CATEGORY_MERGE = "category_merge"
    FINAL_SYNTHESIS = "final_synthesis"


@dataclass(frozen=True)
class ProgressUpdate:
    stage: ProgressStage
    progress: int
    message: str
    current_task: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "stage": self.stage.value,
            "progress": self.progress,
            "message": self.message,
        }
        if self.current_task:
            payload["currentTask"] = self.current_task
        if self.details:
            payload["details"] = {_camel(k): v for k, v in self.details.items()}
        return payload


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


ProgressSink = Callable[[ProgressUpdate], None]

DATA_BAND = (0, 20)
SIGNAL_BAND = (20, 70)
CATEGORY_BAND = (70, 90)
FINAL_BASE = 90


def _band(bounds: tuple[int, int], done: int, total: int) -> int:
    start, end = bounds
    if total <= 0:
        return end
    return start + (end - start) * min(done, total) // total


class ProgressTracker:
    """Turns pipeline milestones into ``ProgressUpdate`` values for a sink.

    The sink is called synchronously. A sink that raises is logged and
    otherwise ignored; progress reporting never aborts generation.
    """

    def __init__(
        self,
        total_fragments: int,
        total_signals: int,
        total_categories: int,
        sink: ProgressSink,
    ) -> None:
        self.total_fragments = total_fragments
        self.total_signals = total_signals
        self.total_categories = total_categories
        self.done_fragments = 0
        self.completed_signals = 0
        self.completed_categories = 0
        self._sink = sink
        self._last_progress = 0

    @property
    def last_progress(self) -> int:
        return self._last_progress

    def _emit(
        self,
        stage: ProgressStage,
        progress: int,
        message: str,
        current_task: str | None = None,
        **details: Any,
    ) -> ProgressUpdate:
        progress = max(self._last_progress, min(100, progress))
        self._last_progress = progress
        update = ProgressUpdate(
            stage=stage,
            progress=progress,
            message=message,
            current_task=current_task,
            details={k: v for k, v in details.items() if v is not None},
        )
        try:
            self._sink(update)
        except Exception as exc:
            logger.warning("progress_sink_failed", stage=stage.value, progress=progress, error=str(exc))
        return update

    # Data collection

    def data_collection(self, message: str) -> ProgressUpdate:
        progress = _band(DATA_BAND, self.done_fragments, self.total_fragments)
        return self._emit(ProgressStage.DATA_COLLECTION, progress, message, current_task=message)

    def fragment_done(self) -> None:
        self.done_fragments += 1

    # Signal generation

    def signal_started(self, category_id: str, signal_id: str, signal_name: str) -> ProgressUpdate:
        return self._emit(
            ProgressStage.SIGNAL_GENERATION,
            _band(SIGNAL_BAND, self.completed_signals, self.total_signals),
            f"Analyzing: {signal_name}",
            current_task=signal_name,
            current=min(self.completed_signals + 1, self.total_signals),
            total=self.total_signals,
            category_id=category_id,
            signal_id=signal_id,
        )

    def signal_completed(self, category_id: str, signal_id: str) -> ProgressUpdate:
        self.completed_signals += 1
        return self._emit(
            ProgressStage.SIGNAL_GENERATION,
            _band(SIGNAL_BAND, self.completed_signals, self.total_signals),
            f"Completed {self.completed_signals}/{self.total_signals} signals",
            current=self.completed_signals,
            total=self.total_signals,
            category_id=category_id,
            signal_id=signal_id,
        )

    # Category merge

    def category_started(self, category_id: str, category_name: str) -> ProgressUpdate:
        return self._emit(
            ProgressStage.CATEGORY_MERGE,
            _band(CATEGORY_BAND, self.completed_categories, self.total_categories),
            f"Merging category: {category_name}",
            current_task=category_name,
            current=min(self.completed_categories + 1, self.total_categories),
            total=self.total_categories,
            category_id=category_id,
        )

    def category_completed(self, category_id: str) -> ProgressUpdate:
        self.completed_categories += 1
        return self._emit(
            ProgressStage.CATEGORY_MERGE,
            _band(CATEGORY_BAND, self.completed_categories, self.total_categories),
            f"Completed {self.completed_categories}/{self.total_categories} categories",
            current=self.completed_categories,
            total=self.total_categories,
            category_id=category_id,
        )

    # Final synthesis

    def final_synthesis(self, message: str, step: int) -> ProgressUpdate:
        return self._emit(ProgressStage.FINAL_SYNTHESIS, FINAL_BASE + min(step, 9), message, current_task=message)

    def completed(self, message: str = "Report generation completed!") -> ProgressUpdate:
        return self._emit(ProgressStage.FINAL_SYNTHESIS, 100, message)
