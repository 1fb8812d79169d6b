"""
Tests for archgen/agents/budget.py - Soft Turn Budget.
"""

import pytest

from archgen.agents.budget import DEFAULT_MAX_TURNS, TurnBudget
from archgen.core.prompts import FINAL_TURN_ADVISORY


class TestTurnBudget:
    """Tests for TurnBudget."""

    def test_defaults(self):
        budget = TurnBudget()

        assert budget.max_turns == DEFAULT_MAX_TURNS == 3
        assert budget.turn == 1
        assert budget.remaining == 2
        assert budget.status_line() == "Current turn: 1/3"

    def test_rejects_zero(self):
        with pytest.raises(ValueError):
            TurnBudget(max_turns=0)

    def test_advisory_only_from_final_turn(self):
        """Test the advisory appears once the final turn is reached."""
        budget = TurnBudget(max_turns=2)
        assert budget.advisory() == ""

        assert budget.advance() == 2
        assert budget.is_final_turn
        assert not budget.exhausted
        assert budget.advisory() == FINAL_TURN_ADVISORY

    def test_budget_is_soft(self):
        """Test advancing past the limit keeps working and keeps the advisory."""
        budget = TurnBudget(max_turns=1)
        assert budget.is_final_turn

        budget.advance()
        budget.advance()

        assert budget.turn == 3
        assert budget.exhausted
        assert budget.remaining == 0
        assert budget.advisory() == FINAL_TURN_ADVISORY

    def test_to_dict(self):
        assert TurnBudget(max_turns=4).to_dict() == {
            "turn": 1,
            "max_turns": 4,
            "is_final_turn": False,
        }
