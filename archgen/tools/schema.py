"""
batch_update Tool Schema and Decoder for ArchGen.

The agent has exactly one tool, ``batch_update({operations: [...]})``. This
module holds:

- BATCH_UPDATE_TOOL: the Responses-API function tool definition sent upstream
- decode_batch_update: turns the raw ``arguments`` string of a function call
  into a list of typed operations, or raises DecodeError

Decoding is shape-only. Whether ids exist is checked later by the applier,
because operations earlier in a batch may create ids that later ones use.
"""

from typing import Any, Dict, List, Optional
import json
import logging

from pydantic import TypeAdapter, ValidationError

from archgen.graph.operations import Operation, OPERATION_NAMES

logger = logging.getLogger(__name__)


BATCH_UPDATE_TOOL_NAME = "batch_update"


class DecodeError(Exception):
    """
    Raised when tool-call arguments are not a well-formed operation batch.

    Attributes:
        index: Index of the offending element in ``operations`` (None when the
            problem is with the envelope itself).
    """

    def __init__(self, message: str, index: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.index = index

    def __str__(self) -> str:
        if self.index is None:
            return self.message
        return f"operations[{self.index}]: {self.message}"


# ============================================================================
# TOOL DEFINITION
# ============================================================================

BATCH_UPDATE_DESCRIPTION = (
    "Executes a series of graph operations in order. CRITICAL: You must pass "
    "{ operations: [...] } structure. NEVER pass a graph object with id/children/edges.\n\n"
    "EXACT FORMAT EXAMPLES:\n\n"
    'ADD_NODE: { "name": "add_node", "nodename": "api_gateway", "parentId": "root", '
    '"data": { "label": "API Gateway", "icon": "gateway" } }\n\n'
    'ADD_EDGE: { "name": "add_edge", "edgeId": "e1", "sourceId": "api_gateway", '
    '"targetId": "database", "label": "queries" }\n\n'
    'GROUP_NODES: { "name": "group_nodes", "nodeIds": ["api_gateway", "database"], '
    '"parentId": "root", "groupId": "backend", "groupIconName": "gcp_system" }\n\n'
    'WRONG keys: "type", "id", "properties", "source", "target", "from", "to"\n'
    'CORRECT keys: "nodename", "parentId", "data", "sourceId", "targetId", "edgeId"'
)

BATCH_UPDATE_TOOL: Dict[str, Any] = {
    "type": "function",
    "name": BATCH_UPDATE_TOOL_NAME,
    "description": BATCH_UPDATE_DESCRIPTION,
    "strict": False,
    "parameters": {
        "type": "object",
        "properties": {
            "operations": {
                "type": "array",
                "description": (
                    "REQUIRED: Array of operations to execute. Each operation must have a "
                    '"name" field. Do NOT pass a graph object here!'
                ),
                "items": {
                    "type": "object",
                    "properties": {
                        "name": {
                            "type": "string",
                            "description": f"Operation to perform ({', '.join(OPERATION_NAMES)})",
                            "enum": list(OPERATION_NAMES),
                        },
                        "nodename": {
                            "type": "string",
                            "description": "For add_node: id of the new node",
                        },
                        "parentId": {
                            "type": "string",
                            "description": "For add_node or group_nodes: id of the containing node",
                        },
                        "nodeId": {
                            "type": "string",
                            "description": "For delete_node or move_node: id of the node to operate on",
                        },
                        "newParentId": {
                            "type": "string",
                            "description": "For move_node: id of the new parent node",
                        },
                        "edgeId": {
                            "type": "string",
                            "description": "For add_edge or delete_edge: id of the edge",
                        },
                        "sourceId": {
                            "type": "string",
                            "description": "For add_edge: id of the source node",
                        },
                        "targetId": {
                            "type": "string",
                            "description": "For add_edge: id of the target node",
                        },
                        "label": {
                            "type": "string",
                            "description": "For add_edge: descriptive edge label (action verb)",
                        },
                        "nodeIds": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "For group_nodes: ids of the nodes to group",
                        },
                        "groupId": {
                            "type": "string",
                            "description": "For group_nodes or remove_group: id of the group",
                        },
                        "groupIconName": {
                            "type": "string",
                            "description": "For group_nodes: group icon used for visual theming",
                        },
                        "style": {
                            "type": "string",
                            "description": "For group_nodes: optional style tag (e.g. BLUE)",
                        },
                        "data": {
                            "type": "object",
                            "description": "For add_node: node attributes such as label and icon",
                        },
                    },
                    "required": ["name"],
                },
            },
        },
        "required": ["operations"],
    },
}


# ============================================================================
# DECODER
# ============================================================================

_operation_adapter = TypeAdapter(Operation)


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "")
    if location:
        return f"{location}: {first.get('msg', 'invalid value')}"
    return first.get("msg", "invalid value")


def decode_batch_update(arguments: str) -> List[Any]:
    """
    Decode raw batch_update arguments into typed operations.

    Args:
        arguments: The function call's ``arguments`` JSON string.

    Returns:
        List of operation models, in the order given.

    Raises:
        DecodeError: If the payload is not ``{"operations": [...]}`` or any
            element is malformed. The whole batch is rejected.
    """
    try:
        payload = json.loads(arguments) if arguments else None
    except (TypeError, ValueError) as e:
        raise DecodeError(f"Arguments are not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise DecodeError(
            f"Arguments must be an object with an 'operations' array, got {type(payload).__name__}"
        )

    if "operations" not in payload:
        keys = ", ".join(sorted(payload)) or "none"
        raise DecodeError(
            f"Missing 'operations' array (got keys: {keys}). "
            "Use {operations: [...]}, never a graph object"
        )

    raw_operations = payload["operations"]
    if not isinstance(raw_operations, list):
        raise DecodeError(f"'operations' must be an array, got {type(raw_operations).__name__}")

    operations = []
    for index, raw in enumerate(raw_operations):
        if not isinstance(raw, dict):
            raise DecodeError(f"Operation must be an object, got {type(raw).__name__}", index=index)

        name = raw.get("name")
        if name not in OPERATION_NAMES:
            raise DecodeError(
                f"Unknown operation '{name}'. Expected one of: {', '.join(OPERATION_NAMES)}",
                index=index,
            )

        try:
            operations.append(_operation_adapter.validate_python(raw))
        except ValidationError as e:
            raise DecodeError(f"Invalid {name}: {_first_error(e)}", index=index) from e

    logger.debug(f"Decoded batch of {len(operations)} operation(s)")
    return operations


__all__ = [
    "BATCH_UPDATE_TOOL",
    "BATCH_UPDATE_TOOL_NAME",
    "DecodeError",
    "decode_batch_update",
]
