"""
Execution Graph - Validated workflow DAG.

Takes the node and edge lists of a workflow, rejects structurally invalid
graphs, and derives the adjacency the scheduler needs. Read-only once built.
"""

from __future__ import annotations

from collections import deque
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set

from pydantic import ValidationError

from flowys.node_sdk.basenode import NodeType

from .errors import StructuralError
from .models import WorkflowEdge, WorkflowNode, parse_edges, parse_nodes


class ExecutionGraph:
    """
    Validated workflow graph.

    Contains:
    - Nodes by ID, in declaration order
    - Incoming and outgoing edges per node
    - A topological order (Kahn's algorithm)

    Usage:
        graph = ExecutionGraph.build(nodes, edges)
        for node_id in graph.roots():
            ...
    """

    def __init__(self, nodes: List[WorkflowNode], edges: List[WorkflowEdge]):
        """
        Validate and index the graph.

        Args:
            nodes: Workflow nodes
            edges: Workflow edges

        Raises:
            StructuralError: If the graph cannot be executed
        """
        if not nodes:
            raise StructuralError("Workflow has no nodes")

        self._nodes: Dict[str, WorkflowNode] = {}
        duplicates: List[str] = []
        for node in nodes:
            if node.id in self._nodes:
                duplicates.append(node.id)
            self._nodes[node.id] = node
        if duplicates:
            raise StructuralError(
                f"Duplicate node IDs: {', '.join(sorted(set(duplicates)))}",
                node_ids=sorted(set(duplicates)),
            )

        self._edges = list(edges)
        self._incoming: Dict[str, List[WorkflowEdge]] = {n: [] for n in self._nodes}
        self._outgoing: Dict[str, List[WorkflowEdge]] = {n: [] for n in self._nodes}

        for edge in self._edges:
            unknown = [n for n in (edge.source, edge.target) if n not in self._nodes]
            if unknown:
                raise StructuralError(
                    f"Edge '{edge.id}' references unknown node: {', '.join(unknown)}",
                    node_ids=unknown,
                )
            self._incoming[edge.target].append(edge)
            self._outgoing[edge.source].append(edge)

        self._order = self._compute_topological_order()

        if not any(n.type == NodeType.OUTPUT for n in self._nodes.values()):
            raise StructuralError("Workflow must contain at least one output node")

    @classmethod
    def build(cls, nodes: Sequence[Any], edges: Sequence[Any]) -> "ExecutionGraph":
        """
        Build from raw dicts or model instances.

        Unknown node types and malformed node or edge objects are
        structural errors.
        """
        try:
            parsed_nodes = parse_nodes(list(nodes))
            parsed_edges = parse_edges(list(edges))
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first.get("loc", ()))
            raise StructuralError(
                f"Invalid workflow definition: {location}: {first.get('msg')}"
            ) from e
        return cls(parsed_nodes, parsed_edges)

    def _compute_topological_order(self) -> List[str]:
        """
        Kahn's algorithm over the dependency graph.

        Repeatedly removes nodes with in-degree zero; anything left over
        sits on a cycle. Self-loops count as cycles.
        """
        in_degree = {node_id: len(edges) for node_id, edges in self._incoming.items()}
        queue = deque(n for n in self._nodes if in_degree[n] == 0)
        order: List[str] = []

        while queue:
            node_id = queue.popleft()
            order.append(node_id)
            for edge in self._outgoing[node_id]:
                in_degree[edge.target] -= 1
                if in_degree[edge.target] == 0:
                    queue.append(edge.target)

        if len(order) != len(self._nodes):
            remaining = [n for n in self._nodes if in_degree[n] > 0]
            raise StructuralError(
                "Workflow contains a cycle - cannot execute "
                f"(nodes involved: {', '.join(remaining)})",
                node_ids=remaining,
            )

        return order

    # ==== Accessors ====

    @property
    def topological_order(self) -> List[str]:
        return list(self._order)

    @property
    def nodes(self) -> List[WorkflowNode]:
        return list(self._nodes.values())

    @property
    def edges(self) -> List[WorkflowEdge]:
        return list(self._edges)

    def get_node(self, node_id: str) -> WorkflowNode:
        return self._nodes[node_id]

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def incoming_edges(self, node_id: str) -> List[WorkflowEdge]:
        return list(self._incoming[node_id])

    def outgoing_edges(self, node_id: str) -> List[WorkflowEdge]:
        return list(self._outgoing[node_id])

    def dependencies(self, node_id: str) -> List[str]:
        """Distinct source node IDs, in incoming edge order."""
        seen: Dict[str, None] = {}
        for edge in self._incoming[node_id]:
            seen.setdefault(edge.source, None)
        return list(seen)

    def dependents(self, node_id: str) -> List[str]:
        """Distinct target node IDs, in outgoing edge order."""
        seen: Dict[str, None] = {}
        for edge in self._outgoing[node_id]:
            seen.setdefault(edge.target, None)
        return list(seen)

    def roots(self) -> List[str]:
        """Nodes with no dependencies, in declaration order."""
        return [n for n in self._nodes if not self._incoming[n]]

    def descendants(self, node_id: str) -> List[str]:
        """All nodes transitively depending on `node_id` (BFS order)."""
        visited: Set[str] = set()
        result: List[str] = []
        queue = deque(self.dependents(node_id))
        while queue:
            current = queue.popleft()
            if current in visited:
                continue
            visited.add(current)
            result.append(current)
            queue.extend(self.dependents(current))
        return result

    def ancestors(self, node_id: str) -> Set[str]:
        """All nodes `node_id` transitively depends on."""
        visited: Set[str] = set()
        queue = deque(self.dependencies(node_id))
        while queue:
            current = queue.popleft()
            if current in visited:
                continue
            visited.add(current)
            queue.extend(self.dependencies(current))
        return visited

    def nodes_of_type(self, node_type: NodeType) -> List[WorkflowNode]:
        return [n for n in self._nodes.values() if n.type == node_type]

    # ==== Data flow ====

    def collect_inputs(
        self,
        node_id: str,
        outputs: Mapping[str, Any],
        global_input: Any,
    ) -> Any:
        """
        Merge dependency outputs into a node's input.

        A node without dependencies receives the global input directly.
        Otherwise the result maps each incoming edge's source handle (or,
        without one, the source node ID) to that source's output.
        """
        incoming = self._incoming[node_id]
        if not incoming:
            return global_input

        merged: Dict[str, Any] = {}
        for edge in incoming:
            if edge.source not in outputs:
                continue
            key = edge.source_handle or edge.source
            merged[key] = outputs[edge.source]
        return merged

    def summary(self) -> Dict[str, Any]:
        """Shape summary, logged when a run starts."""
        return {
            "nodes": len(self._nodes),
            "edges": len(self._edges),
            "roots": self.roots(),
            "outputs": [n.id for n in self.nodes_of_type(NodeType.OUTPUT)],
            "order": self.topological_order,
        }


def try_build(nodes: Sequence[Any], edges: Sequence[Any]) -> Optional[StructuralError]:
    """Return the StructuralError a graph would raise, or None if valid."""
    try:
        ExecutionGraph.build(nodes, edges)
    except StructuralError as e:
        return e
    return None


__all__ = ["ExecutionGraph", "try_build"]
