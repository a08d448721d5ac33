"""Tests for report/blueprint.py module."""

from __future__ import annotations

from match_report.report.blueprint import DATA_FRAGMENTS, REPORT_BLUEPRINT


class TestReportBlueprint:
    """Tests for the built-in blueprint."""

    def test_shape(self) -> None:
        assert len(REPORT_BLUEPRINT) == 5
        assert REPORT_BLUEPRINT.total_signals == 11
        assert [c.id for c in REPORT_BLUEPRINT] == [
            "game_context",
            "team_context",
            "key_players",
            "tactical_battle",
            "psych_context",
        ]

    def test_all_signals_in_blueprint_order(self) -> None:
        tasks = REPORT_BLUEPRINT.all_signals()

        assert len(tasks) == 11
        assert (tasks[0].category_id, tasks[0].signal.id) == ("game_context", "home_vs_away")
        assert (tasks[-1].category_id, tasks[-1].signal.id) == ("psych_context", "h2h_history_psychology")

    def test_signal_ids_unique_within_category(self) -> None:
        for category in REPORT_BLUEPRINT:
            ids = [s.id for s in category.signals]
            assert len(ids) == len(set(ids))

    def test_requirements_are_known_fragments(self) -> None:
        for task in REPORT_BLUEPRINT.all_signals():
            assert task.signal.data_requirements
            assert set(task.signal.data_requirements) <= set(DATA_FRAGMENTS)

    def test_lookup(self) -> None:
        category = REPORT_BLUEPRINT.get_category("key_players")
        signal = REPORT_BLUEPRINT.get_signal("key_players", "injury_report")

        assert category is not None and category.emoji == "⭐"
        assert signal is not None and signal.name == "Injuries & Suspensions"
        assert REPORT_BLUEPRINT.get_category("nope") is None
        assert REPORT_BLUEPRINT.get_signal("key_players", "nope") is None
        assert REPORT_BLUEPRINT.get_signal("nope", "injury_report") is None
