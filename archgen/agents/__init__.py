"""
Conversation loop for the ArchGen architecture agent.

- state: ControllerState, Conversation and ToolOutput models
- budget: soft turn budget with final-turn advisory
- controller: the streaming multi-turn tool-calling loop

Key Features:
- One controller and one graph per session, nothing shared
- Duplicate tool call ids skipped
- Continuation via previous_response_id
- Clean cancellation at delta boundaries

The controller imports the tool registry, which itself depends on
``agents.state``; import it from ``archgen.agents.controller`` directly.
"""

from archgen.agents.state import (
    ControllerState,
    Conversation,
    TurnRecord,
    ToolOutput,
    create_initial_conversation,
    persistent_items,
)
from archgen.agents.budget import TurnBudget

__all__ = [
    # State
    "ControllerState",
    "Conversation",
    "TurnRecord",
    "ToolOutput",
    "create_initial_conversation",
    "persistent_items",
    # Budget
    "TurnBudget",
]
