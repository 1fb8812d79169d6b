"""
Tests for archgen/graph/model.py - Hierarchical Diagram Model.

Tests:
- Empty graph and root node
- Traversal helpers (subtree walk, descendants, paths)
- Invariant checking
- Summary and nested rendering
"""

import pytest

from archgen.graph.model import ROOT_ID, Edge, Graph, GraphInvariantError, Node


class TestEmptyGraph:
    """Tests for Graph.empty."""

    def test_empty_graph_has_only_root(self, empty_graph):
        """Test a fresh graph holds just the root node and no edges."""
        assert list(empty_graph.nodes) == [ROOT_ID]
        assert empty_graph.edges == {}
        assert empty_graph.root.parentId is None
        assert empty_graph.all_node_ids() == []

    def test_empty_graph_include_root(self, empty_graph):
        assert empty_graph.all_node_ids(include_root=True) == [ROOT_ID]

    def test_empty_graph_passes_invariants(self, empty_graph):
        empty_graph.check_invariants()


class TestTraversal:
    """Tests for lookups and tree walks."""

    def test_all_node_ids_depth_first_order(self, nested_graph):
        """Test node ids come parents first, children in display order."""
        assert nested_graph.all_node_ids() == ["users", "gcp", "api", "gw", "svc", "db"]

    def test_descendant_ids(self, nested_graph):
        assert nested_graph.descendant_ids("gcp") == ["api", "gw", "svc", "db"]
        assert nested_graph.descendant_ids("gw") == []

    def test_is_descendant(self, nested_graph):
        """Test direct and indirect containment."""
        assert nested_graph.is_descendant("api", "gcp")
        assert nested_graph.is_descendant("gw", "gcp")
        assert nested_graph.is_descendant("gw", ROOT_ID)
        assert not nested_graph.is_descendant("gcp", "api")
        assert not nested_graph.is_descendant("users", "gcp")
        assert not nested_graph.is_descendant("gcp", "gcp")

    def test_path_to(self, nested_graph):
        assert nested_graph.path_to("svc") == [ROOT_ID, "gcp", "api", "svc"]
        assert nested_graph.path_to(ROOT_ID) == [ROOT_ID]
        assert nested_graph.path_to("missing") == []

    def test_edges_touching(self, nested_graph):
        """Test edges with either endpoint in the set are returned."""
        assert nested_graph.edges_touching(["gw"]) == ["e_users_gw", "e_gw_svc"]
        assert nested_graph.edges_touching(["users"]) == ["e_users_gw"]
        assert nested_graph.edges_touching([]) == []

    def test_deep_tree_does_not_recurse(self):
        """Test subtree walks handle chains deeper than the recursion limit."""
        graph = Graph.empty()
        parent = ROOT_ID
        for i in range(3000):
            node_id = f"n{i}"
            graph.nodes[node_id] = Node(id=node_id, parentId=parent)
            graph.nodes[parent].children.append(node_id)
            parent = node_id

        assert len(graph.all_node_ids()) == 3000
        graph.check_invariants()

    def test_node_label_falls_back_to_id(self, nested_graph):
        assert nested_graph.get_node("gw").label == "API Gateway"
        assert nested_graph.get_node("svc").label == "svc"

    def test_copy_graph_is_deep(self, scenario_a_graph):
        """Test mutating a copy never touches the source graph."""
        copy = scenario_a_graph.copy_graph()
        copy.root.children.append("zzz")
        copy.edges["e1"].label = "changed"

        assert "zzz" not in scenario_a_graph.root.children
        assert scenario_a_graph.edges["e1"].label == "calls"


class TestInvariants:
    """Tests for Graph.check_invariants."""

    def test_missing_parent_detected(self, scenario_a_graph):
        scenario_a_graph.nodes["a"].parentId = "ghost"

        with pytest.raises(GraphInvariantError, match="missing parent"):
            scenario_a_graph.check_invariants()

    def test_child_not_listed_detected(self, scenario_a_graph):
        scenario_a_graph.root.children.remove("b")

        with pytest.raises(GraphInvariantError, match="not listed"):
            scenario_a_graph.check_invariants()

    def test_duplicate_child_detected(self, scenario_a_graph):
        scenario_a_graph.root.children.append("a")

        with pytest.raises(GraphInvariantError, match="twice"):
            scenario_a_graph.check_invariants()

    def test_dangling_edge_detected(self, scenario_a_graph):
        scenario_a_graph.edges["e2"] = Edge(id="e2", sourceId="a", targetId="ghost")

        with pytest.raises(GraphInvariantError, match="missing node"):
            scenario_a_graph.check_invariants()

    def test_detached_cycle_detected(self, empty_graph):
        """Test two nodes parenting each other are unreachable from root."""
        empty_graph.nodes["x"] = Node(id="x", parentId="y", children=["y"])
        empty_graph.nodes["y"] = Node(id="y", parentId="x", children=["x"])

        with pytest.raises(GraphInvariantError, match="unreachable"):
            empty_graph.check_invariants()

    def test_missing_root_detected(self):
        with pytest.raises(GraphInvariantError, match="Root"):
            Graph().check_invariants()


class TestRendering:
    """Tests for summary and to_nested."""

    def test_summary_counts(self, nested_graph):
        summary = nested_graph.summary()

        assert summary["nodeCount"] == 6
        assert summary["edgeCount"] == 3
        assert summary["groupCount"] == 0
        assert summary["nodes"][0] == {
            "id": "users",
            "label": "Users",
            "type": "node",
            "parentId": ROOT_ID,
            "data": {"label": "Users"},
        }
        assert "data" not in summary["nodes"][4]
        assert summary["edges"][0] == {
            "id": "e_users_gw",
            "source": "users",
            "target": "gw",
            "label": "HTTPS",
        }

    def test_summary_of_empty_graph(self, empty_graph):
        assert empty_graph.summary() == {
            "nodeCount": 0,
            "edgeCount": 0,
            "groupCount": 0,
            "nodes": [],
            "edges": [],
        }

    def test_to_nested_shape(self, scenario_a_graph):
        """Test the nested layout shape keeps children order and edge labels."""
        nested = scenario_a_graph.to_nested()

        assert nested["id"] == ROOT_ID
        assert [child["id"] for child in nested["children"]] == ["a", "b"]
        assert nested["children"][0]["labels"] == [{"text": "a"}]
        assert nested["edges"] == [
            {"id": "e1", "sources": ["a"], "targets": ["b"], "labels": [{"text": "calls"}]}
        ]

    def test_to_nested_keeps_node_data(self, nested_graph):
        gcp = nested_graph.to_nested()["children"][1]

        assert gcp["data"] == {"label": "Google Cloud"}
        assert [child["id"] for child in gcp["children"]] == ["api", "db"]
