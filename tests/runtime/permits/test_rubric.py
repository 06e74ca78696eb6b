"""Tests for the step rubric."""

from __future__ import annotations

import pytest

from goalguard.core.contract import GoalContract
from goalguard.runtime.permits.rubric import score_step, scope_creep_phrase

LOGIN = GoalContract(goal="Add login", success_criteria=["form renders", "auth call wired"])


class TestScoreStep:
    def test_no_goal(self) -> None:
        result = score_step(GoalContract(), "Build form", ["SC1"])
        assert (result.on_goal, result.score) == (False, 0.0)
        assert "initialize_contract" in result.reason

    def test_no_criteria(self) -> None:
        result = score_step(GoalContract(goal="Add login"), "Build form", ["SC1"])
        assert result.score == 0.0
        assert "success criteri" in result.reason

    def test_unknown_ids(self) -> None:
        result = score_step(LOGIN, "Build form", ["SC1", "SC9"])
        assert result.score == 0.2
        assert "SC9" in result.reason
        assert result.suggested_revision == "Pick from: SC1, SC2."

    def test_empty_maps_to(self) -> None:
        assert score_step(LOGIN, "Build form", []).score == 0.2

    def test_ids_are_case_insensitive(self) -> None:
        assert score_step(LOGIN, "Build form", ["sc2"]).on_goal

    def test_scope_creep(self) -> None:
        result = score_step(LOGIN, "Build form and also restyle the navbar", ["SC1"])
        assert (result.on_goal, result.score) == (False, 0.4)
        assert "'also'" in result.reason

    def test_approved(self) -> None:
        result = score_step(LOGIN, "Render the login form", ["SC1"])
        assert (result.on_goal, result.score) == (True, 1.0)
        assert result.suggested_revision is None


class TestScopeCreepPhrase:
    @pytest.mark.parametrize(
        "step",
        ["By the way, bump deps", "Add an EXTRA page", "Bonus: dark mode", "While we're at it, refactor"],
    )
    def test_detected(self, step: str) -> None:
        assert scope_creep_phrase(step) is not None

    def test_clean(self) -> None:
        assert scope_creep_phrase("Wire the auth call") is None

    @pytest.mark.parametrize(
        "step",
        ["Extract the auth helper", "Render the bonuses table", "Call the alsoRan hook"],
    )
    def test_embedded_words_ignored(self, step: str) -> None:
        assert scope_creep_phrase(step) is None

    def test_returns_matched_phrase(self) -> None:
        assert scope_creep_phrase("Also add dark mode") == "also"


class TestScopeCreepScoring:
    def test_extract_step_is_approved(self) -> None:
        result = score_step(LOGIN, "Extract the auth helper", ["SC1"])
        assert (result.on_goal, result.score) == (True, 1.0)

    def test_leading_also_still_flagged(self) -> None:
        result = score_step(LOGIN, "Also add dark mode", ["SC1"])
        assert (result.on_goal, result.score) == (False, 0.4)
