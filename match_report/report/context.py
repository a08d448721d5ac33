"""Match context and compact data views for prompts.

Collected API-Football payloads are large; prompts only get the fields a
signal needs, trimmed to keep latency and cost down.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from ..utils.datetime_utils import format_match_date
from .blueprint import FIXTURE, H2H, INJURIES, LINEUPS, STANDINGS, STATISTICS

SIGNAL_DATA_CHAR_LIMIT = 14000

KEEP_STAT_TYPES = frozenset({
    "Shots on Goal",
    "Shots off Goal",
    "Total Shots",
    "Ball Possession",
    "Fouls",
    "Corner Kicks",
    "Offsides",
    "Yellow Cards",
    "Red Cards",
    "Total passes",
    "Passes accurate",
    "Passes %",
    "expected_goals",
    "Expected Goals",
})


def truncate_text(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return f"{text[:max_chars]}…"


@dataclass(frozen=True)
class MatchContext:
    """Team and competition names pulled from a fixture payload."""

    home_team: str
    away_team: str
    home_team_id: int | None
    away_team_id: int | None
    league: str
    league_id: int | None
    season: int | None
    date: str
    venue: str | None = None

    @classmethod
    def from_fixture(cls, fixture: Mapping[str, Any]) -> MatchContext:
        teams = fixture.get("teams") or {}
        home = teams.get("home") or {}
        away = teams.get("away") or {}
        league = fixture.get("league") or {}
        details = fixture.get("fixture") or {}
        venue = details.get("venue") or {}
        return cls(
            home_team=home.get("name") or "Home",
            away_team=away.get("name") or "Away",
            home_team_id=home.get("id"),
            away_team_id=away.get("id"),
            league=league.get("name") or "Unknown league",
            league_id=league.get("id"),
            season=league.get("season"),
            date=format_match_date(details.get("date")),
            venue=venue.get("name"),
        )


def _compact_fixture(fixture: Mapping[str, Any]) -> dict[str, Any]:
    details = fixture.get("fixture") or {}
    return {
        "teams": fixture.get("teams"),
        "league": fixture.get("league"),
        "venue": details.get("venue"),
        "date": details.get("date"),
        "status": details.get("status"),
    }


def _compact_statistics(rows: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    compact = []
    for row in rows:
        team = row.get("team") or {}
        stats = [s for s in row.get("statistics") or [] if s.get("type") in KEEP_STAT_TYPES]
        compact.append({"team": {"id": team.get("id"), "name": team.get("name")}, "statistics": stats[:20]})
    return compact


def _compact_injuries(rows: list[Mapping[str, Any]]) -> list[dict[str, Any]]:
    compact = []
    for row in rows[:12]:
        team = row.get("team") or {}
        player = row.get("player") or {}
        compact.append({
            "team": {"id": team.get("id"), "name": team.get("name")},
            "player": {
                "id": player.get("id"),
                "name": player.get("name"),
                "type": player.get("type"),
                "reason": player.get("reason"),
            },
        })
    return compact


def _compact_players(entries: list[Mapping[str, Any]], limit: int) -> list[dict[str, Any]]:
    players = []
    for entry in entries[:limit]:
        player = entry.get("player") or {}
        players.append({
            "id": player.get("id"),
            "name": player.get("name"),
            "number": player.get("number"),
            "pos": player.get("pos"),
        })
    return players


def _compact_lineups(rows: list[Mapping[str, Any]]) -> list[dict[str, Any]]:
    compact = []
    for row in rows[:2]:
        team = row.get("team") or {}
        coach = row.get("coach") or {}
        compact.append({
            "team": {"id": team.get("id"), "name": team.get("name")},
            "formation": row.get("formation"),
            "coach": {"id": coach.get("id"), "name": coach.get("name")},
            "startXI": _compact_players(row.get("startXI") or [], 11),
            "substitutes": _compact_players(row.get("substitutes") or [], 9),
        })
    return compact


def _compact_h2h(rows: list[Mapping[str, Any]]) -> list[dict[str, Any]]:
    compact = []
    for match in rows[:5]:
        details = match.get("fixture") or {}
        league = match.get("league") or {}
        teams = match.get("teams") or {}
        score = match.get("score") or {}
        compact.append({
            "fixture": {"id": details.get("id"), "date": details.get("date"), "status": details.get("status")},
            "league": {"id": league.get("id"), "name": league.get("name"), "season": league.get("season")},
            "teams": {
                side: {"id": (teams.get(side) or {}).get("id"), "name": (teams.get(side) or {}).get("name")}
                for side in ("home", "away")
            },
            "goals": match.get("goals"),
            "score": {"halftime": score.get("halftime"), "fulltime": score.get("fulltime")},
        })
    return compact


def _compact_standings(groups: list[list[Mapping[str, Any]]], team_ids: set[int]) -> list[dict[str, Any]]:
    table = groups[0] if groups else []
    rows = list(table[:8]) + [row for row in table if (row.get("team") or {}).get("id") in team_ids]
    seen: set[Any] = set()
    compact = []
    for row in rows:
        team = row.get("team") or {}
        if team.get("id") in seen:
            continue
        seen.add(team.get("id"))
        compact.append({
            "rank": row.get("rank"),
            "team": {"id": team.get("id"), "name": team.get("name")},
            "points": row.get("points"),
            "goalsDiff": row.get("goalsDiff"),
            "form": row.get("form"),
            "all": row.get("all"),
        })
    return compact


def format_collected_data_for_signal(
    collected_data: Mapping[str, Any],
    data_requirements: Iterable[str],
    max_chars: int = SIGNAL_DATA_CHAR_LIMIT,
) -> str:
    """Serialize only the fragments a signal declares, compacted and capped.

    Missing fragments are simply left out; the model is told what it has.
    """
    fixture = collected_data.get(FIXTURE)
    team_ids: set[int] = set()
    if fixture:
        context = MatchContext.from_fixture(fixture)
        team_ids = {tid for tid in (context.home_team_id, context.away_team_id) if isinstance(tid, int)}

    relevant: dict[str, Any] = {}
    for requirement in data_requirements:
        value = collected_data.get(requirement)
        if value is None:
            continue
        if requirement == FIXTURE:
            relevant[FIXTURE] = _compact_fixture(value)
        elif requirement == STATISTICS:
            relevant[STATISTICS] = _compact_statistics(value)
        elif requirement == INJURIES:
            relevant[INJURIES] = _compact_injuries(value)
        elif requirement == LINEUPS:
            relevant[LINEUPS] = _compact_lineups(value)
        elif requirement == H2H:
            relevant[H2H] = _compact_h2h(value)
        elif requirement == STANDINGS:
            relevant[STANDINGS] = _compact_standings(value, team_ids)

    return truncate_text(json.dumps(relevant, ensure_ascii=False, default=str), max_chars)
