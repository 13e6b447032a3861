"""
Run context - the global input plus the outputs produced so far.

NodeOutputStore is append-only and keyed by node ID. Each key is written
once, by the task that ran that node; insertion takes a lock, reads do not.
Values are deep-copied on the way in and out so no node can mutate data
another node sees.
"""

from __future__ import annotations

import copy
import threading
import uuid
from typing import Any, Dict, Iterable, Iterator, Optional


class NodeOutputStore:
    """Append-only map from node ID to that node's output."""

    def __init__(self) -> None:
        self._outputs: Dict[str, Any] = {}
        self._insert_lock = threading.Lock()

    def put(self, node_id: str, output: Any) -> None:
        """
        Record a node's output.

        Raises:
            RuntimeError: If the node already has an output
        """
        value = copy.deepcopy(output)
        with self._insert_lock:
            if node_id in self._outputs:
                raise RuntimeError(f"Output for node '{node_id}' already recorded")
            self._outputs[node_id] = value

    def get(self, node_id: str, default: Any = None) -> Any:
        if node_id not in self._outputs:
            return default
        return copy.deepcopy(self._outputs[node_id])

    def snapshot(self, node_ids: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """Copy of all outputs, or only those of `node_ids`."""
        # Readers never take the insert lock
        current = dict(self._outputs)
        if node_ids is not None:
            wanted = set(node_ids)
            current = {k: v for k, v in current.items() if k in wanted}
        return copy.deepcopy(current)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._outputs

    def __len__(self) -> int:
        return len(self._outputs)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._outputs))


class RunContext:
    """Per-run state shared by every node task."""

    def __init__(self, global_input: Any = None, run_id: Optional[str] = None) -> None:
        self.run_id = run_id or str(uuid.uuid4())
        self._global_input = copy.deepcopy(global_input)
        self.outputs = NodeOutputStore()

    @property
    def global_input(self) -> Any:
        return copy.deepcopy(self._global_input)
