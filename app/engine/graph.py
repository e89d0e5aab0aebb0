"""
Graph Model for the Workflow Engine.

A workflow is a set of nodes joined by directed edges. Execution always
enters through a synthetic start node (the goal node) and follows at most
one outgoing edge per node.
"""

from typing import Any, Dict, Iterable, List, Optional
from dataclasses import dataclass, field
from enum import Enum


# Fixed id of the synthetic entry node
START_NODE_ID = "goal_node"


class NodeKind(str, Enum):
    """Kinds of nodes in a workflow graph."""
    AGENT = "agent"    # Invoke an agent
    DELAY = "delay"    # Wait for a fixed time
    START = "start"    # Synthetic entry point
    OTHER = "other"    # Anything else (passed through)


# Node "type" values sent by the graph editor
_KIND_ALIASES: Dict[str, NodeKind] = {
    "customAgentNode": NodeKind.AGENT,
    "agent": NodeKind.AGENT,
    "delayNode": NodeKind.DELAY,
    "delay": NodeKind.DELAY,
    "goalNode": NodeKind.START,
    "goal": NodeKind.START,
    "start": NodeKind.START,
}


def resolve_kind(node_type: Optional[str]) -> NodeKind:
    """Map an editor node type to a NodeKind."""
    if not node_type:
        return NodeKind.OTHER
    return _KIND_ALIASES.get(node_type, NodeKind.OTHER)


@dataclass
class WorkflowNode:
    """
    A node in the workflow graph.

    Attributes:
        id: Unique identifier for the node
        kind: What the engine does with the node
        data: Kind-specific payload (agentName/task, delayMs, ...)
        node_type: The raw type string the node was submitted with
    """
    id: str
    kind: NodeKind = NodeKind.OTHER
    data: Dict[str, Any] = field(default_factory=dict)
    node_type: Optional[str] = None

    def __post_init__(self):
        if not self.id:
            raise ValueError("Node id cannot be empty")

    @property
    def agent_name(self) -> Optional[str]:
        return self.data.get("agentName") or None

    @property
    def task(self) -> Optional[str]:
        return self.data.get("task") or None

    def delay_ms(self, default: int = 1000) -> float:
        """
        Delay for a delay node; unset, unparsable or non-positive values
        use the default. Whole numbers come back as int.
        """
        raw = self.data.get("delayMs", self.data.get("delay"))
        try:
            delay = float(raw) if raw is not None else 0.0
        except (TypeError, ValueError):
            delay = 0.0
        if not delay > 0 or delay == float("inf"):
            return default
        return int(delay) if delay.is_integer() else delay

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.node_type or self.kind.value,
            "kind": self.kind.value,
            "data": self.data,
        }


@dataclass
class WorkflowEdge:
    """A directed edge connecting two nodes."""
    source: str
    target: str
    id: Optional[str] = None

    def __post_init__(self):
        if not self.id:
            self.id = f"{self.source}->{self.target}"

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
        }


class WorkflowGraph:
    """
    Nodes plus ordered edges, indexed for traversal.

    The graph is built fresh for every execution request and is not
    modified afterwards. Successor lists keep edge-list order, so
    the first successor of a node is the target of its first edge.

    Usage:
        graph = WorkflowGraph.from_payload(nodes, edges)
        first = graph.first_successor(START_NODE_ID)
    """

    def __init__(
        self,
        nodes: Iterable[WorkflowNode] = (),
        edges: Iterable[WorkflowEdge] = (),
    ):
        self._nodes: Dict[str, WorkflowNode] = {}
        self._edges: List[WorkflowEdge] = list(edges)
        self._successors: Dict[str, List[str]] = {}

        for node in nodes:
            if node.kind == NodeKind.START or node.id == START_NODE_ID:
                continue
            if node.id in self._nodes:
                raise ValueError(f"Node '{node.id}' already exists in the graph")
            self._nodes[node.id] = node

        for edge in self._edges:
            self._successors.setdefault(edge.source, []).append(edge.target)

    @classmethod
    def from_payload(
        cls,
        nodes: Iterable[Dict[str, Any]],
        edges: Iterable[Dict[str, Any]],
    ) -> "WorkflowGraph":
        """
        Build a graph from editor JSON.

        Args:
            nodes: Dicts with "id", "type" and "data" keys
            edges: Dicts with "source", "target" and optional "id" keys

        Returns:
            A WorkflowGraph
        """
        parsed_nodes = [
            WorkflowNode(
                id=str(n.get("id", "")),
                kind=resolve_kind(n.get("type")),
                data=dict(n.get("data") or {}),
                node_type=n.get("type"),
            )
            for n in nodes
        ]
        parsed_edges = []
        for e in edges:
            if "source" not in e or "target" not in e:
                raise ValueError(f"Edge {e!r} must have a source and a target")
            parsed_edges.append(
                WorkflowEdge(source=str(e["source"]), target=str(e["target"]), id=e.get("id"))
            )
        return cls(parsed_nodes, parsed_edges)

    @property
    def nodes(self) -> Dict[str, WorkflowNode]:
        return self._nodes

    @property
    def edges(self) -> List[WorkflowEdge]:
        return self._edges

    def node_by_id(self, node_id: str) -> Optional[WorkflowNode]:
        """Get a node by id, or None if it is not in the graph."""
        return self._nodes.get(node_id)

    def successors(self, node_id: str) -> List[str]:
        """Targets of all edges leaving node_id, in edge-list order."""
        return list(self._successors.get(node_id, ()))

    def first_successor(self, node_id: str) -> Optional[str]:
        """The node reached by following the first outgoing edge, if any."""
        targets = self._successors.get(node_id)
        return targets[0] if targets else None

    def agent_names(self) -> List[str]:
        """Names of all agents bound to agent nodes, in node order."""
        return [
            n.agent_name
            for n in self._nodes.values()
            if n.kind == NodeKind.AGENT and n.agent_name
        ]

    def validate(self) -> List[str]:
        """
        Check edge references.

        Returns:
            List of problems found (empty if none)
        """
        errors = []
        known = set(self._nodes) | {START_NODE_ID}
        for edge in self._edges:
            if edge.source not in known:
                errors.append(f"Edge '{edge.id}' has unknown source '{edge.source}'")
            if edge.target not in known:
                errors.append(f"Edge '{edge.id}' has unknown target '{edge.target}'")
        if self._nodes and not self._successors.get(START_NODE_ID):
            errors.append("No edge leaves the goal node")
        return errors

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the graph to a dictionary."""
        return {
            "nodes": [node.to_dict() for node in self._nodes.values()],
            "edges": [edge.to_dict() for edge in self._edges],
        }

    def to_mermaid(self) -> str:
        """Generate a Mermaid diagram of the graph."""
        lines = ["graph TD", f'    {START_NODE_ID}(("Goal"))']

        for node_id, node in self._nodes.items():
            if node.kind == NodeKind.AGENT:
                label = node.agent_name or "Unassigned agent"
            elif node.kind == NodeKind.DELAY:
                label = f"Delay {node.delay_ms()}ms"
            else:
                label = node_id
            lines.append(f'    {node_id}["{label}"]')

        for edge in self._edges:
            lines.append(f"    {edge.source} --> {edge.target}")

        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return f"WorkflowGraph(nodes={list(self._nodes.keys())}, edges={len(self._edges)})"
