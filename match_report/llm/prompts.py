"""Prompt builders for each generation step.

Prompts stay short: the data payloads carry most of the context, and every
structured prompt spells out the JSON shape the schema expects.
"""

from __future__ import annotations

from ..report.blueprint import CategoryDefinition, SignalDefinition
from ..report.context import MatchContext
from .client import CompletionPrompt

ANALYST_SYSTEM = (
    "You are an expert football analyst writing pre-match briefings for "
    "broadcasters. Be specific, use the numbers you are given, and never "
    "invent facts that are not supported by the data. Respond with JSON only."
)

CHAT_SYSTEM = (
    "You are a football analyst assistant. Answer follow-up questions about a "
    "pre-match report concisely, grounded in the report and match data. If the "
    "data does not cover the question, say so."
)


def _match_line(context: MatchContext) -> str:
    line = f"{context.home_team} vs {context.away_team} ({context.league}, {context.date})"
    if context.venue:
        line += f" at {context.venue}"
    return line


def build_signal_prompt(
    signal: SignalDefinition,
    context: MatchContext,
    data: str,
    max_tokens: int,
) -> CompletionPrompt:
    user = f"""Match: {_match_line(context)}

Analyze this signal: {signal.name}
Focus: {signal.description}

Available data (JSON):
{data}

Return JSON:
{{"insights": ["3-5 specific insights"], "narrative": "100-150 word paragraph",
"emoji": "one emoji", "confidence": 0.0-1.0}}"""
    return CompletionPrompt(system=ANALYST_SYSTEM, user=user, max_tokens=max_tokens, name=f"signal:{signal.id}")


def build_category_prompt(
    category: CategoryDefinition,
    context: MatchContext,
    partials: str,
    max_tokens: int,
) -> CompletionPrompt:
    user = f"""Match: {_match_line(context)}

Combine these signal analyses into the "{category.name}" section ({category.description}).
Remove repetition and keep the strongest points.

{partials}

Return JSON:
{{"title": "section title", "sections": [{{"title": "...", "content": "...", "emoji": "..."}}],
"talking_points": ["3-5 broadcast-ready lines"]}}"""
    return CompletionPrompt(system=ANALYST_SYSTEM, user=user, max_tokens=max_tokens, name=f"category:{category.id}")


def build_final_prompt(context: MatchContext, categories: str, max_tokens: int) -> CompletionPrompt:
    user = f"""Match: {_match_line(context)}

Write the final pre-match report from these category briefings:

{categories}

Return JSON:
{{"title": "report title", "subtitle": "one line", "sections": [{{"title": "...", "content": "...", "emoji": "..."}}],
"quick_talking_points": ["5-8 short lines"]}}"""
    return CompletionPrompt(system=ANALYST_SYSTEM, user=user, max_tokens=max_tokens, name="final")


def build_chat_prompt(context_block: str, question: str, max_tokens: int) -> CompletionPrompt:
    user = f"""{context_block}

Question: {question}"""
    return CompletionPrompt(system=CHAT_SYSTEM, user=user, max_tokens=max_tokens, name="chat")
