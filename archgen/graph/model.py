"""
Hierarchical Diagram Model for ArchGen.

The graph is a tree of nodes hanging off a synthetic ``root`` node plus a flat
collection of edges. Nodes are stored flat (keyed by id) with explicit
``parentId`` / ``children`` links so that lookups, subtree walks and
re-parenting are O(depth) instead of recursive searches.

Invariants (checked by ``Graph.check_invariants``):
- Node ids and edge ids are unique.
- Every node's parentId refers to an existing node; the parent chain reaches
  root without cycles.
- Every edge's sourceId/targetId refer to existing nodes.
- A node's children list holds exactly the ids of nodes whose parentId is it.
"""

from typing import Any, Dict, Iterator, List, Optional
import logging

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


ROOT_ID = "root"


class GraphInvariantError(Exception):
    """Raised when a graph violates one of its structural invariants."""
    pass


# ============================================================================
# ENTITIES
# ============================================================================

class Node(BaseModel):
    """
    A diagram node.

    Attributes:
        id: Unique node id.
        parentId: Id of the containing node (None only for root).
        children: Ordered ids of direct children (display order).
        data: Free-form attributes (label, icon, style, groupIconName, isGroup).
    """
    id: str
    parentId: Optional[str] = None
    children: List[str] = Field(default_factory=list)
    data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_group(self) -> bool:
        """True when the node is a container created by group_nodes."""
        return bool(self.data.get("isGroup"))

    @property
    def label(self) -> str:
        return self.data.get("label") or self.id


class Edge(BaseModel):
    """A directed relationship between two nodes."""
    id: str
    sourceId: str
    targetId: str
    label: Optional[str] = None


# ============================================================================
# GRAPH
# ============================================================================

class Graph(BaseModel):
    """
    The per-session diagram.

    ``nodes`` always contains the root node. Insertion order of ``edges`` is
    preserved for stable output.
    """
    nodes: Dict[str, Node] = Field(default_factory=dict)
    edges: Dict[str, Edge] = Field(default_factory=dict)

    @classmethod
    def empty(cls) -> "Graph":
        """Create a graph holding only the root node."""
        return cls(nodes={ROOT_ID: Node(id=ROOT_ID)})

    def copy_graph(self) -> "Graph":
        """Deep copy, used as the working copy for atomic batches."""
        return self.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def root(self) -> Node:
        return self.nodes[ROOT_ID]

    def has_node(self, node_id: str) -> bool:
        return node_id in self.nodes

    def has_edge(self, edge_id: str) -> bool:
        return edge_id in self.edges

    def get_node(self, node_id: str) -> Optional[Node]:
        return self.nodes.get(node_id)

    def all_node_ids(self, include_root: bool = False) -> List[str]:
        """All node ids in depth-first display order."""
        ids = [node.id for node in self.iter_subtree(ROOT_ID)]
        return ids if include_root else ids[1:]

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def iter_subtree(self, node_id: str) -> Iterator[Node]:
        """
        Yield ``node_id`` and all its descendants, parents before children.

        Iterative walk, so deep trees don't hit the recursion limit.
        """
        stack = [node_id]
        while stack:
            current = self.nodes[stack.pop()]
            yield current
            stack.extend(reversed(current.children))

    def descendant_ids(self, node_id: str) -> List[str]:
        """Ids strictly below ``node_id``."""
        return [node.id for node in self.iter_subtree(node_id)][1:]

    def is_descendant(self, node_id: str, ancestor_id: str) -> bool:
        """True if ``node_id`` sits (directly or indirectly) under ``ancestor_id``."""
        current = self.nodes.get(node_id)
        seen = set()
        while current is not None and current.parentId is not None:
            if current.parentId == ancestor_id:
                return True
            if current.parentId in seen:
                return False
            seen.add(current.parentId)
            current = self.nodes.get(current.parentId)
        return False

    def path_to(self, node_id: str) -> List[str]:
        """Ids from root down to ``node_id`` (inclusive)."""
        path = []
        current = self.nodes.get(node_id)
        while current is not None:
            path.append(current.id)
            if current.parentId is None:
                break
            current = self.nodes.get(current.parentId)
        return list(reversed(path))

    def edges_touching(self, node_ids) -> List[str]:
        """Ids of edges with either endpoint in ``node_ids``."""
        targets = set(node_ids)
        return [
            edge.id for edge in self.edges.values()
            if edge.sourceId in targets or edge.targetId in targets
        ]

    # ------------------------------------------------------------------
    # Invariants
    # ------------------------------------------------------------------

    def check_invariants(self) -> None:
        """
        Verify all structural invariants.

        Raises:
            GraphInvariantError: On the first violation found.
        """
        if ROOT_ID not in self.nodes:
            raise GraphInvariantError("Root node is missing")
        if self.root.parentId is not None:
            raise GraphInvariantError("Root node must not have a parent")

        for key, node in self.nodes.items():
            if key != node.id:
                raise GraphInvariantError(f"Node stored under '{key}' has id '{node.id}'")
            if node.id == ROOT_ID:
                continue
            if node.parentId not in self.nodes:
                raise GraphInvariantError(f"Node '{node.id}' has missing parent '{node.parentId}'")
            if node.id not in self.nodes[node.parentId].children:
                raise GraphInvariantError(
                    f"Node '{node.id}' is not listed in children of '{node.parentId}'"
                )

        for node in self.nodes.values():
            if len(set(node.children)) != len(node.children):
                raise GraphInvariantError(f"Node '{node.id}' lists a child twice")
            for child_id in node.children:
                child = self.nodes.get(child_id)
                if child is None or child.parentId != node.id:
                    raise GraphInvariantError(
                        f"Child '{child_id}' of '{node.id}' does not point back to it"
                    )

        # Every node must be reachable from root (rules out detached cycles)
        reachable = {node.id for node in self.iter_subtree(ROOT_ID)}
        if len(reachable) != len(self.nodes):
            orphans = sorted(set(self.nodes) - reachable)
            raise GraphInvariantError(f"Nodes unreachable from root: {', '.join(orphans)}")

        for key, edge in self.edges.items():
            if key != edge.id:
                raise GraphInvariantError(f"Edge stored under '{key}' has id '{edge.id}'")
            if edge.sourceId not in self.nodes or edge.targetId not in self.nodes:
                raise GraphInvariantError(
                    f"Edge '{edge.id}' references missing node ({edge.sourceId} -> {edge.targetId})"
                )

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def summary(self) -> Dict[str, Any]:
        """
        Compact graph description returned to the model after each tool call.

        Returns:
            Dict with nodeCount, edgeCount, groupCount, nodes and edges.
            Nodes carry their data (icon, style, groupIconName) when set.
        """
        nodes = []
        for node_id in self.all_node_ids():
            node = self.nodes[node_id]
            entry: Dict[str, Any] = {
                "id": node.id,
                "label": node.label,
                "type": "group" if node.is_group else "node",
                "parentId": node.parentId,
            }
            if node.data:
                entry["data"] = dict(node.data)
            nodes.append(entry)

        edges = [
            {
                "id": edge.id,
                "source": edge.sourceId,
                "target": edge.targetId,
                "label": edge.label or "",
            }
            for edge in self.edges.values()
        ]

        return {
            "nodeCount": len(nodes),
            "edgeCount": len(edges),
            "groupCount": sum(1 for n in nodes if n["type"] == "group"),
            "nodes": nodes,
            "edges": edges,
        }

    def to_nested(self) -> Dict[str, Any]:
        """Render as the nested ``{id, children, edges}`` layout-engine shape."""
        def render(node_id: str) -> Dict[str, Any]:
            node = self.nodes[node_id]
            rendered: Dict[str, Any] = {
                "id": node.id,
                "labels": [{"text": node.label}],
                "children": [render(child_id) for child_id in node.children],
            }
            if node.data:
                rendered["data"] = dict(node.data)
            return rendered

        nested = render(ROOT_ID)
        nested.pop("labels")
        nested.pop("data", None)
        nested["edges"] = [
            {
                "id": edge.id,
                "sources": [edge.sourceId],
                "targets": [edge.targetId],
                **({"labels": [{"text": edge.label}]} if edge.label else {}),
            }
            for edge in self.edges.values()
        ]
        return nested


__all__ = [
    "ROOT_ID",
    "Node",
    "Edge",
    "Graph",
    "GraphInvariantError",
]
