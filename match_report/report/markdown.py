"""Markdown rendering for the final report."""

from __future__ import annotations

from datetime import datetime

from ..llm.schemas import FinalReportOutput
from ..utils.datetime_utils import now_utc


def format_final_report_as_markdown(report: FinalReportOutput, generated_at: datetime | None = None) -> str:
    generated_at = generated_at or now_utc()
    parts = [f"# {report.title}"]
    if report.subtitle:
        parts.append(f"### {report.subtitle}")

    for section in report.sections:
        heading = f"{section.emoji} {section.title}" if section.emoji else section.title
        parts.append(f"## {heading}\n\n{section.content}\n\n---")

    if report.quick_talking_points:
        points = "\n".join(f"{index}. {point}" for index, point in enumerate(report.quick_talking_points, start=1))
        parts.append(f"## 🎙️ Quick Talking Points\n\n{points}\n\n---")

    parts.append(f"*Report generated on {generated_at.strftime('%Y-%m-%d %H:%M UTC')}*")
    return "\n\n".join(parts) + "\n"
