"""
Tool Registry for ArchGen.

Maps tool names to handlers and handles structured invocation for the
conversation controller.

Architecture:
- Tools are registered with metadata (name, description, parameters schema)
- The controller requests tools by name with the raw ``arguments`` string
- Registry decodes the arguments, runs the handler against the session graph
- Results returned as ToolExecution (new graph + ToolOutput)

Safety:
- Handlers never mutate the graph they are given; they return a new one
- Decode and validation failures propagate to the controller, which ends the
  session with an error frame
"""

from typing import Any, Callable, Dict, List, Optional
from datetime import datetime
import logging

from archgen.agents.state import ToolOutput
from archgen.graph.applier import apply_batch, applied_summary
from archgen.graph.model import Graph
from archgen.tools.schema import (
    BATCH_UPDATE_TOOL,
    BATCH_UPDATE_TOOL_NAME,
    DecodeError,
    decode_batch_update,
)

logger = logging.getLogger(__name__)


SUCCESS_INSTRUCTION = (
    "Continue building the architecture by calling the next required function. "
    "Do not provide any explanation or acknowledgment."
)


# ============================================================================
# TOOL METADATA
# ============================================================================

class ToolDefinition:
    """
    Tool metadata for registration.

    Attributes:
        name: Tool name (unique identifier).
        description: Human-readable description.
        function: Callable taking (arguments, graph) and returning ToolExecution.
        schema: Responses-API function tool definition sent upstream.
    """

    def __init__(
        self,
        name: str,
        description: str,
        function: Callable,
        schema: Optional[Dict[str, Any]] = None
    ):
        self.name = name
        self.description = description
        self.function = function
        self.schema = schema or {
            "type": "function",
            "name": name,
            "description": description,
            "parameters": {"type": "object", "properties": {}},
        }


class ToolExecution:
    """
    Result of invoking a tool.

    Attributes:
        graph: Graph after the tool ran (a new object).
        output: ToolOutput sent back to the model.
    """

    def __init__(self, graph: Graph, output: ToolOutput):
        self.graph = graph
        self.output = output


# ============================================================================
# TOOL HANDLERS
# ============================================================================

def run_batch_update(arguments: str, graph: Graph) -> ToolExecution:
    """
    Decode and apply one batch_update call.

    Args:
        arguments: Raw JSON arguments from the function call.
        graph: Current session graph (not mutated).

    Returns:
        ToolExecution with the updated graph.

    Raises:
        DecodeError: Malformed arguments.
        GraphValidationError: An operation is invalid for the graph.
    """
    operations = decode_batch_update(arguments)
    new_graph = apply_batch(graph, operations)

    applied = applied_summary(operations)
    for line in applied:
        logger.debug(f"  {line}")

    output = ToolOutput(
        tool_name=BATCH_UPDATE_TOOL_NAME,
        success=True,
        result={
            "success": True,
            "operation": BATCH_UPDATE_TOOL_NAME,
            "applied": len(operations),
            "graph": new_graph.summary(),
            "message": f"Successfully executed {BATCH_UPDATE_TOOL_NAME} ({len(operations)} operations). The graph has been updated.",
            "instruction": SUCCESS_INSTRUCTION,
        },
        timestamp=datetime.now().isoformat(),
    )
    return ToolExecution(graph=new_graph, output=output)


# ============================================================================
# TOOL REGISTRY
# ============================================================================

class ToolRegistry:
    """
    Centralized tool registry for the conversation controller.

    Example:
        >>> registry = ToolRegistry()
        >>> registry.register_default_tools()
        >>> execution = registry.invoke_tool("batch_update", '{"operations": []}', Graph.empty())
        >>> execution.output.success
        True
    """

    def __init__(self):
        self.tools: Dict[str, ToolDefinition] = {}

    def register_tool(self, tool: ToolDefinition) -> None:
        """
        Register a tool.

        Args:
            tool: ToolDefinition to register.

        Raises:
            ValueError: If tool name already registered.
        """
        if tool.name in self.tools:
            raise ValueError(f"Tool already registered: {tool.name}")

        self.tools[tool.name] = tool
        logger.debug(f"Registered tool: {tool.name}")

    def register_default_tools(self) -> None:
        """Register batch_update, the only tool the agent may invoke."""
        self.register_tool(ToolDefinition(
            name=BATCH_UPDATE_TOOL_NAME,
            description=BATCH_UPDATE_TOOL["description"],
            function=run_batch_update,
            schema=BATCH_UPDATE_TOOL,
        ))

    def has_tool(self, tool_name: str) -> bool:
        return tool_name in self.tools

    def get_tool_schemas(self) -> List[Dict[str, Any]]:
        """Tool definitions for the upstream request, in registration order."""
        return [tool.schema for tool in self.tools.values()]

    def invoke_tool(
        self,
        tool_name: str,
        arguments: str,
        graph: Graph,
        call_id: Optional[str] = None
    ) -> ToolExecution:
        """
        Invoke a registered tool.

        Args:
            tool_name: Name of tool to invoke.
            arguments: Raw JSON arguments string.
            graph: Current session graph.
            call_id: Function call id, copied onto the ToolOutput.

        Returns:
            ToolExecution with the new graph and the output for the model.

        Raises:
            DecodeError: Unknown tool or malformed arguments.
            GraphValidationError: The batch is invalid for the graph.
        """
        logger.info(f"Invoking tool: {tool_name} (call_id={call_id})")

        if tool_name not in self.tools:
            raise DecodeError(f"Tool not found: {tool_name}")

        execution = self.tools[tool_name].function(arguments, graph)
        execution.output.call_id = call_id
        return execution


def create_default_registry() -> ToolRegistry:
    """Registry with the default tool set."""
    registry = ToolRegistry()
    registry.register_default_tools()
    return registry


__all__ = [
    "ToolRegistry",
    "ToolDefinition",
    "ToolExecution",
    "run_batch_update",
    "create_default_registry",
    "SUCCESS_INSTRUCTION",
]
