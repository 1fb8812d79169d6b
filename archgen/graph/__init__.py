"""
Diagram model and mutation engine.

- model: Node / Edge / Graph with invariant checking and traversal helpers
- operations: the seven operation kinds as a discriminated union
- applier: atomic application of operation batches
"""

from archgen.graph.model import ROOT_ID, Node, Edge, Graph, GraphInvariantError
from archgen.graph.operations import (
    AddNode,
    DeleteNode,
    MoveNode,
    AddEdge,
    DeleteEdge,
    GroupNodes,
    RemoveGroup,
    Operation,
    OPERATION_TYPES,
    OPERATION_NAMES,
)
from archgen.graph.applier import GraphValidationError, apply_operation, apply_batch

__all__ = [
    # Model
    "ROOT_ID",
    "Node",
    "Edge",
    "Graph",
    "GraphInvariantError",
    # Operations
    "AddNode",
    "DeleteNode",
    "MoveNode",
    "AddEdge",
    "DeleteEdge",
    "GroupNodes",
    "RemoveGroup",
    "Operation",
    "OPERATION_TYPES",
    "OPERATION_NAMES",
    # Applier
    "GraphValidationError",
    "apply_operation",
    "apply_batch",
]
