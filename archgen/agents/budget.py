"""
Turn Budget for the ArchGen agent loop.

A soft limit on the number of model turns. Reaching the limit never stops the
loop; it only adds a "final turn" advisory to the next request so the model is
nudged to finish. The loop ends when a response contains no tool calls.
"""

import logging

from archgen.core.prompts import FINAL_TURN_ADVISORY

logger = logging.getLogger(__name__)


DEFAULT_MAX_TURNS = 3


class TurnBudget:
    """
    Soft turn budget.

    Attributes:
        max_turns: Turn count at which the advisory starts.
        turn: Current 1-based turn number.

    Example:
        >>> budget = TurnBudget(max_turns=2)
        >>> budget.is_final_turn
        False
        >>> budget.advance()
        2
        >>> budget.is_final_turn
        True
    """

    def __init__(self, max_turns: int = DEFAULT_MAX_TURNS):
        if max_turns < 1:
            raise ValueError(f"max_turns must be at least 1, got {max_turns}")
        self.max_turns = max_turns
        self.turn = 1

    def advance(self) -> int:
        """Move to the next turn. Called only when tool results go back upstream."""
        self.turn += 1
        if self.exhausted:
            logger.info(f"Turn budget exceeded ({self.turn}/{self.max_turns}), continuing with advisory")
        elif self.is_final_turn:
            logger.info(f"Entering final turn ({self.turn}/{self.max_turns})")
        return self.turn

    @property
    def is_final_turn(self) -> bool:
        return self.turn >= self.max_turns

    @property
    def exhausted(self) -> bool:
        """True once past the budget. The loop still continues."""
        return self.turn > self.max_turns

    @property
    def remaining(self) -> int:
        return max(self.max_turns - self.turn, 0)

    def status_line(self) -> str:
        return f"Current turn: {self.turn}/{self.max_turns}"

    def advisory(self) -> str:
        """Final-turn advisory text, empty before the final turn."""
        if not self.is_final_turn:
            return ""
        return FINAL_TURN_ADVISORY

    def to_dict(self) -> dict:
        return {
            "turn": self.turn,
            "max_turns": self.max_turns,
            "is_final_turn": self.is_final_turn,
        }


__all__ = ["TurnBudget", "DEFAULT_MAX_TURNS"]
