"""Structured output schemas for the completion service.

Field defaults are deliberately permissive: the signal chain decides what
counts as complete and fills gaps itself, instead of rejecting a response
that is merely missing one field.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class SignalReportOutput(BaseModel):
    insights: list[str] = Field(default_factory=list, description="3-5 key insights from the data")
    narrative: str = Field(default="", description="100-150 word paragraph connecting the insights")
    emoji: str = Field(default="", description="A single emoji representing this signal")
    confidence: float | None = Field(default=None, description="Confidence in the analysis (0-1)")


class SectionOutput(BaseModel):
    title: str
    content: str
    emoji: str = ""


class CategoryReportOutput(BaseModel):
    title: str
    sections: list[SectionOutput]
    talking_points: list[str] = Field(default_factory=list, alias="talkingPoints")

    model_config = {"populate_by_name": True}


class FinalReportOutput(BaseModel):
    title: str
    subtitle: str = ""
    sections: list[SectionOutput]
    quick_talking_points: list[str] = Field(default_factory=list, alias="quickTalkingPoints")

    model_config = {"populate_by_name": True}
