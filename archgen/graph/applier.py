"""
Operation Applier for ArchGen.

Applies decoded graph operations to a ``Graph``.

- ``apply_operation`` mutates the given (working) graph in place.
- ``apply_batch`` is the public entry point: it works on a deep copy, applies
  operations strictly in array order and only returns the copy when every
  operation succeeded. On failure the caller's graph is untouched.

Referential checks (does the parent exist, is the id free, would the move form
a cycle) happen here at apply time, so later operations in a batch can use ids
created by earlier ones.
"""

from typing import Callable, Dict, List, Sequence, Type
import logging

from archgen.graph.model import Graph, GraphInvariantError, Node, Edge, ROOT_ID
from archgen.graph.operations import (
    AddNode,
    DeleteNode,
    MoveNode,
    AddEdge,
    DeleteEdge,
    GroupNodes,
    RemoveGroup,
)

logger = logging.getLogger(__name__)


class GraphValidationError(Exception):
    """
    Raised when an operation is not valid against the current graph.

    Attributes:
        operation: Operation name that failed.
        index: Position of the operation in its batch (None outside a batch).
    """

    def __init__(self, message: str, operation: str = "", index=None):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.index = index

    def __str__(self) -> str:
        if self.index is None:
            return self.message
        return f"Operation {self.index + 1} ({self.operation}) failed: {self.message}"


# ============================================================================
# PRIMITIVES
# ============================================================================

def _require_node(graph: Graph, node_id: str, role: str = "Node") -> Node:
    node = graph.get_node(node_id)
    if node is None:
        raise GraphValidationError(f"{role} not found: {node_id}")
    return node


def _detach(graph: Graph, node: Node) -> None:
    parent = graph.nodes[node.parentId]
    parent.children.remove(node.id)


def _reparent(graph: Graph, node_id: str, new_parent_id: str) -> None:
    """Shared move logic for move_node and group_nodes."""
    if node_id == ROOT_ID:
        raise GraphValidationError("The root node cannot be moved")
    node = _require_node(graph, node_id)
    new_parent = _require_node(graph, new_parent_id, role="New parent")

    if new_parent_id == node_id or graph.is_descendant(new_parent_id, node_id):
        raise GraphValidationError(
            f"Cannot move {node_id} under {new_parent_id}: it would create a cycle"
        )

    _detach(graph, node)
    new_parent.children.append(node_id)
    node.parentId = new_parent_id


def add_node(graph: Graph, op: AddNode) -> None:
    parent = _require_node(graph, op.parentId, role="Parent node")
    if graph.has_node(op.nodename):
        path = " → ".join(graph.path_to(op.nodename))
        raise GraphValidationError(f"Node {op.nodename} already exists at: {path}")

    graph.nodes[op.nodename] = Node(id=op.nodename, parentId=parent.id, data=dict(op.data))
    parent.children.append(op.nodename)


def delete_node(graph: Graph, op: DeleteNode) -> None:
    if op.nodeId == ROOT_ID:
        raise GraphValidationError("The root node cannot be deleted")
    node = _require_node(graph, op.nodeId)

    doomed = [n.id for n in graph.iter_subtree(node.id)]
    for edge_id in graph.edges_touching(doomed):
        del graph.edges[edge_id]

    _detach(graph, node)
    # children first
    for node_id in reversed(doomed):
        del graph.nodes[node_id]

    logger.debug(f"Deleted {len(doomed)} node(s) under {op.nodeId}")


def move_node(graph: Graph, op: MoveNode) -> None:
    _reparent(graph, op.nodeId, op.newParentId)


def add_edge(graph: Graph, op: AddEdge) -> None:
    if graph.has_edge(op.edgeId):
        raise GraphValidationError(f"Edge {op.edgeId} already exists")
    _require_node(graph, op.sourceId, role="Source node")
    _require_node(graph, op.targetId, role="Target node")

    graph.edges[op.edgeId] = Edge(
        id=op.edgeId, sourceId=op.sourceId, targetId=op.targetId, label=op.label
    )


def delete_edge(graph: Graph, op: DeleteEdge) -> None:
    if not graph.has_edge(op.edgeId):
        raise GraphValidationError(f"Edge not found: {op.edgeId}")
    del graph.edges[op.edgeId]


def group_nodes(graph: Graph, op: GroupNodes) -> None:
    parent = _require_node(graph, op.parentId, role="Parent node")
    if graph.has_node(op.groupId):
        path = " → ".join(graph.path_to(op.groupId))
        raise GraphValidationError(f"Group {op.groupId} already exists at: {path}")

    if len(set(op.nodeIds)) != len(op.nodeIds):
        raise GraphValidationError(f"Duplicate node ids in group {op.groupId}")

    missing = [node_id for node_id in op.nodeIds if not graph.has_node(node_id)]
    if missing:
        raise GraphValidationError(f"Nodes not found: {', '.join(missing)}")

    outside = [node_id for node_id in op.nodeIds if not graph.is_descendant(node_id, op.parentId)]
    if outside:
        available = ", ".join(parent.children) or "none"
        raise GraphValidationError(
            f"Nodes not inside parent {op.parentId}: {', '.join(outside)}. "
            f"Available nodes in parent {op.parentId}: {available}"
        )

    data = {"label": op.groupId, "isGroup": True}
    if op.style is not None:
        data["style"] = op.style
    if op.groupIconName:
        data["groupIconName"] = op.groupIconName

    graph.nodes[op.groupId] = Node(id=op.groupId, parentId=parent.id, data=data)
    parent.children.append(op.groupId)

    for node_id in op.nodeIds:
        _reparent(graph, node_id, op.groupId)


def remove_group(graph: Graph, op: RemoveGroup) -> None:
    group = _require_node(graph, op.groupId, role="Group")
    if not group.is_group:
        raise GraphValidationError(f"Node {op.groupId} is not a group")

    parent = graph.nodes[group.parentId]
    position = parent.children.index(group.id)
    promoted = list(group.children)

    for child_id in promoted:
        graph.nodes[child_id].parentId = parent.id
    parent.children[position:position + 1] = promoted
    del graph.nodes[group.id]


# ============================================================================
# DISPATCH
# ============================================================================

OPERATION_HANDLERS: Dict[Type, Callable[[Graph, object], None]] = {
    AddNode: add_node,
    DeleteNode: delete_node,
    MoveNode: move_node,
    AddEdge: add_edge,
    DeleteEdge: delete_edge,
    GroupNodes: group_nodes,
    RemoveGroup: remove_group,
}


def apply_operation(graph: Graph, op) -> Graph:
    """
    Apply a single operation to ``graph`` in place.

    Args:
        graph: Working graph (mutated).
        op: One decoded operation.

    Returns:
        The same graph instance.

    Raises:
        GraphValidationError: If the operation is invalid for this graph.
    """
    handler = OPERATION_HANDLERS.get(type(op))
    if handler is None:
        raise TypeError(f"No handler for operation type {type(op).__name__}")

    try:
        handler(graph, op)
    except GraphValidationError as e:
        e.operation = e.operation or op.name
        raise
    return graph


def apply_batch(graph: Graph, operations: Sequence) -> Graph:
    """
    Apply a batch of operations atomically.

    Args:
        graph: Current graph (never mutated).
        operations: Decoded operations, applied in order.

    Returns:
        A new graph with every operation applied.

    Raises:
        GraphValidationError: On the first failing operation. The input graph
            is left exactly as it was.

    Example:
        >>> graph = apply_batch(Graph.empty(), [AddNode(nodename="a", parentId="root")])
        >>> graph.all_node_ids()
        ['a']
    """
    working = graph.copy_graph()
    total = len(operations)
    logger.debug(f"Applying batch of {total} operation(s)")

    for index, op in enumerate(operations):
        try:
            apply_operation(working, op)
        except GraphValidationError as e:
            e.index = index
            e.operation = op.name
            logger.info(f"Batch rejected: {e}")
            raise

    try:
        working.check_invariants()
    except GraphInvariantError as e:
        # An operation produced a broken graph; reject the batch rather than keep it
        logger.error(f"Invariant violated after batch: {e}")
        raise GraphValidationError(f"Graph invariant violated: {e}") from e

    return working


def applied_summary(operations: Sequence) -> List[str]:
    """Short human-readable description of each operation, for logs and tool output."""
    lines = []
    for op in operations:
        if isinstance(op, AddNode):
            lines.append(f"add_node {op.nodename} → {op.parentId}")
        elif isinstance(op, DeleteNode):
            lines.append(f"delete_node {op.nodeId}")
        elif isinstance(op, MoveNode):
            lines.append(f"move_node {op.nodeId} → {op.newParentId}")
        elif isinstance(op, AddEdge):
            lines.append(f"add_edge {op.edgeId} ({op.sourceId} → {op.targetId})")
        elif isinstance(op, DeleteEdge):
            lines.append(f"delete_edge {op.edgeId}")
        elif isinstance(op, GroupNodes):
            lines.append(f"group_nodes [{', '.join(op.nodeIds)}] → {op.groupId}")
        elif isinstance(op, RemoveGroup):
            lines.append(f"remove_group {op.groupId}")
    return lines


__all__ = [
    "GraphValidationError",
    "OPERATION_HANDLERS",
    "apply_operation",
    "apply_batch",
    "applied_summary",
]
