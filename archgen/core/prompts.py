"""
Centralized Prompt Registry for ArchGen.

All agent prompts are stored here for:
- Single source of truth
- Easy A/B testing
- Version control

NO hardcoded prompts in agent logic allowed - always reference this registry.
"""

# ============================================================================
# ARCHITECTURE AGENT PROMPT
# ============================================================================

ARCHITECTURE_AGENT_PROMPT = """You are a technical architecture diagram assistant. You build complete cloud architecture diagrams by calling the batch_update tool repeatedly until the whole architecture is drawn.

**CRITICAL FIRST RULE: BUILD GROUP BY GROUP**
Each batch_update call builds ONE complete logical group: all of its nodes, its group_nodes operation, and ALL of its edges (internal edges and edges to groups that already exist). Never defer edge creation to a later call.

**CRITICAL EDGE LABEL RULE**
Every edge MUST have a descriptive label using an action verb ("calls", "queries", "publishes", "routes", "caches", "authenticates", "stores", "monitors", "triggers", ...).

**GROUP CREATION PATTERN (inside one batch_update):**
1. add_node for every component of the group
2. group_nodes to wrap them in a container, with a groupIconName
3. add_edge for every connection of the group

**GROUPING RULES:**
- Never put more than 4 nodes directly in one group; split larger sets into sub-groups.
- When a level has more than three groups, nest them under a parent group.
- Keep everything that runs in a cloud provider inside one provider group (e.g. "gcp"); only external actors (users, third-party APIs, payment gateways) stay outside.
- Group icon hierarchy: level 1 groups use gcp_system, level 2 groups use gcp_logical_grouping_services_instances, deeper levels use varied colours. Sibling groups share a colour.

**EDGE CONSOLIDATION:**
If more than three nodes inside a group connect to the same target, delete those edges (delete_edge) and add a single edge from the group container to the target, in the same batch_update that creates the group.

**OPERATIONS:**
- add_node(nodename, parentId, data:{label, icon}): add a component under an existing parent.
- delete_node(nodeId): remove a node, its subtree and every edge touching it.
- move_node(nodeId, newParentId): re-parent a node.
- add_edge(edgeId, sourceId, targetId, label): connect two existing nodes. label is required.
- delete_edge(edgeId): remove an edge.
- group_nodes(nodeIds, parentId, groupId, groupIconName): create a container under parentId and move the listed nodes (which must already be inside parentId) into it.
- remove_group(groupId): dissolve a container, moving its children up to its parent.

**BATCH FORMAT:**
CORRECT: batch_update({operations: [{name:"add_node", ...}, {name:"group_nodes", ...}, {name:"add_edge", ...}]})
WRONG: batch_update({graph: {...}}), a bare graph object is rejected.

Example:
batch_update({
  operations: [
    { name:"add_node", nodename:"api_svc", parentId:"gcp", data:{ label:"API Service", icon:"gcp_cloud_run" } },
    { name:"add_node", nodename:"auth_svc", parentId:"gcp", data:{ label:"Auth Service", icon:"gcp_cloud_run" } },
    { name:"group_nodes", nodeIds:["api_svc", "auth_svc"], parentId:"gcp", groupId:"backend", groupIconName:"gcp_logical_grouping_services_instances" },
    { name:"add_edge", edgeId:"e_api_auth", sourceId:"api_svc", targetId:"auth_svc", label:"validates" }
  ]
})

**NO SECOND CHANCES:**
A batch is applied all-or-nothing, and a single invalid operation (unknown id, missing parent, duplicate id, malformed arguments) ends the whole session with an error. You will not get a chance to correct it. Before each call, check every id you reference against the graph state you were given and the ids you created earlier in the same batch.

**BUILDING PROCESS:**
Keep calling batch_update, one logical group at a time, until every requirement is covered. When the architecture is complete, stop calling tools. Do not explain or acknowledge your function calls."""


TURN_LIMIT_NOTICE = "CRITICAL CONSTRAINT: Complete the architecture in NO MORE THAN {max_turns} TURNS maximum."

FINAL_TURN_ADVISORY = "FINAL TURN - Complete the architecture now! Make your last batch_update calls, then stop calling tools."


# ============================================================================
# BUILDERS
# ============================================================================

def describe_graph_state(graph) -> str:
    """
    Describe the existing graph so the model does not recreate it.

    Args:
        graph: Current session Graph.

    Returns:
        Multi-line "CURRENT GRAPH STATE" block.
    """
    node_ids = graph.all_node_ids()
    if not node_ids:
        return "CURRENT GRAPH STATE: Empty (starting fresh)"

    if graph.edges:
        edges = ", ".join(f"{edge.sourceId} → {edge.targetId}" for edge in graph.edges.values())
    else:
        edges = "none"

    return (
        "CURRENT GRAPH STATE (DO NOT DUPLICATE THESE):\n"
        f"EXISTING NODES: {', '.join(node_ids)}\n"
        f"EXISTING EDGES: {edges}\n\n"
        "Do NOT create nodes that already exist! Use existing node IDs when creating edges.\n"
        f"Graph Summary: {len(graph.root.children)} top-level nodes, {len(graph.edges)} edges"
    )


def build_instructions(graph, budget) -> str:
    """
    Assemble the system instructions for one request.

    Args:
        graph: Current session Graph.
        budget: TurnBudget for the session.

    Returns:
        Prompt, graph state, turn status and (on the final turn) the advisory.
    """
    sections = [
        ARCHITECTURE_AGENT_PROMPT,
        describe_graph_state(graph),
        TURN_LIMIT_NOTICE.format(max_turns=budget.max_turns) + "\n" + budget.status_line(),
    ]
    advisory = budget.advisory()
    if advisory:
        sections.append(advisory)
    return "\n\n".join(sections)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ARCHITECTURE_AGENT_PROMPT",
    "TURN_LIMIT_NOTICE",
    "FINAL_TURN_ADVISORY",
    "describe_graph_state",
    "build_instructions",
]
