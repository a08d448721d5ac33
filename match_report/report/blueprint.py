"""Report blueprint: the static plan of categories and signals.

The blueprint is configuration, not runtime state. It is frozen and may be
shared by any number of sessions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

# Named collected-data fragments a signal may require.
FIXTURE = "fixture"
STATISTICS = "statistics"
INJURIES = "injuries"
LINEUPS = "lineups"
H2H = "h2h"
STANDINGS = "standings"

DATA_FRAGMENTS = (FIXTURE, STATISTICS, INJURIES, LINEUPS, H2H, STANDINGS)


@dataclass(frozen=True)
class SignalDefinition:
    id: str
    name: str
    description: str
    data_requirements: tuple[str, ...]


@dataclass(frozen=True)
class CategoryDefinition:
    id: str
    name: str
    description: str
    emoji: str
    signals: tuple[SignalDefinition, ...]


@dataclass(frozen=True)
class SignalTask:
    """One (category, signal) pair scheduled during signal generation."""

    category_id: str
    signal: SignalDefinition


@dataclass(frozen=True)
class Blueprint:
    categories: tuple[CategoryDefinition, ...]

    def __iter__(self) -> Iterator[CategoryDefinition]:
        return iter(self.categories)

    def __len__(self) -> int:
        return len(self.categories)

    def all_signals(self) -> list[SignalTask]:
        """Every signal across all categories, in blueprint order."""
        return [
            SignalTask(category_id=category.id, signal=signal)
            for category in self.categories
            for signal in category.signals
        ]

    @property
    def total_signals(self) -> int:
        return sum(len(category.signals) for category in self.categories)

    def get_category(self, category_id: str) -> CategoryDefinition | None:
        return next((c for c in self.categories if c.id == category_id), None)

    def get_signal(self, category_id: str, signal_id: str) -> SignalDefinition | None:
        category = self.get_category(category_id)
        if category is None:
            return None
        return next((s for s in category.signals if s.id == signal_id), None)


def _signal(id: str, name: str, description: str, *requirements: str) -> SignalDefinition:
    return SignalDefinition(id=id, name=name, description=description, data_requirements=requirements)


REPORT_BLUEPRINT = Blueprint(
    categories=(
        CategoryDefinition(
            id="game_context",
            name="Game Context",
            description="Essential match information and context",
            emoji="⚽",
            signals=(
                _signal(
                    "home_vs_away",
                    "Home vs Away Analysis",
                    "Team names, venue advantage, and basic matchup info",
                    FIXTURE,
                ),
                _signal(
                    "competition_round_schedule",
                    "Competition Context",
                    "League, round, season context, and schedule positioning",
                    FIXTURE,
                    STANDINGS,
                ),
                _signal(
                    "kickoff_weather_pitch",
                    "Match Conditions",
                    "Kickoff time, weather conditions, pitch status",
                    FIXTURE,
                ),
            ),
        ),
        CategoryDefinition(
            id="team_context",
            name="Team Context",
            description="Recent form and tactical trends",
            emoji="📊",
            signals=(
                _signal(
                    "recent_form_results",
                    "Recent Form & Results",
                    "Last 5-10 matches for each team, win/loss patterns",
                    STANDINGS,
                    H2H,
                ),
                _signal(
                    "tactical_shape_trends",
                    "Tactical Shape & Trends",
                    "Formation preferences, style of play, tactical evolution",
                    LINEUPS,
                    STATISTICS,
                ),
            ),
        ),
        CategoryDefinition(
            id="key_players",
            name="Key Players",
            description="Critical players and lineup information",
            emoji="⭐",
            signals=(
                _signal(
                    "key_players_lineup",
                    "Key Players & Expected Lineup",
                    "Star players, probable starting XI, tactical roles",
                    LINEUPS,
                    STATISTICS,
                ),
                _signal(
                    "injury_report",
                    "Injuries & Suspensions",
                    "Unavailable players, impact on team strength",
                    INJURIES,
                ),
            ),
        ),
        CategoryDefinition(
            id="tactical_battle",
            name="Tactical Battle",
            description="Strategic matchups and managerial approach",
            emoji="🎯",
            signals=(
                _signal(
                    "managerial_approach",
                    "Managerial Approach",
                    "Coach philosophy, recent tactical decisions",
                    LINEUPS,
                    STATISTICS,
                ),
                _signal(
                    "matchup_analysis",
                    "Key Matchups",
                    "Position-by-position battles, tactical weaknesses to exploit",
                    LINEUPS,
                    STATISTICS,
                ),
            ),
        ),
        CategoryDefinition(
            id="psych_context",
            name="Psychological Context",
            description="Mental factors and historical context",
            emoji="🧠",
            signals=(
                _signal(
                    "motivation_factors",
                    "Motivation & Stakes",
                    "What each team is playing for, psychological drivers",
                    FIXTURE,
                    STANDINGS,
                ),
                _signal(
                    "h2h_history_psychology",
                    "Head-to-Head Psychology",
                    "Recent H2H results, psychological edge, historical trends",
                    H2H,
                ),
            ),
        ),
    )
)
