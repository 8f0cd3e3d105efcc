"""
PatchRouter - DAG-based signal routing for the audio graph

Provides:
- Directed Acyclic Graph for signal flow
- Audio edges (src output -> dst input) and param edges
  (src output -> dst parameter, summed onto its automated value)
- Kahn's algorithm for topological sorting
- Cycle detection to prevent feedback loops
- Pre-allocated work buffers for block processing
"""

import numpy as np
from typing import Dict, List, Optional, Tuple
from collections import deque, defaultdict

from .config import VERBOSE
from .modules.base import BaseNode


Edge = Tuple[str, str, Optional[str]]


class PatchRouter:
    """
    Manages signal routing between nodes using a DAG.

    Ensures:
    - No cycles (feedback loops)
    - Correct processing order
    - Allocation-free block processing
    """

    # Maximum limits for pre-allocation
    MAX_NODES = 32
    MAX_EDGES = 64

    def __init__(self, buffer_size: int = 256, verbose: bool = VERBOSE):
        """
        Initialize the patch router.

        Args:
            buffer_size: Largest block in samples
            verbose: Report every add/connect, not just failures
        """
        self.buffer_size = buffer_size
        self.verbose = verbose

        # Graph structure
        self.nodes: Dict[str, BaseNode] = {}
        self.edges: List[Edge] = []
        self.adjacency_list: Dict[str, List[str]] = defaultdict(list)
        self.in_degree: Dict[str, int] = defaultdict(int)

        # Per-destination input lists, kept in sync with self.edges
        self._audio_inputs: Dict[str, List[str]] = defaultdict(list)
        self._param_inputs: Dict[str, List[Tuple[str, str]]] = defaultdict(list)

        # Pre-allocated buffers
        self.work_buffers: Dict[str, np.ndarray] = {}
        self.mix_buffer = np.zeros(buffer_size, dtype=np.float64)
        self._silence = np.zeros(buffer_size, dtype=np.float64)

        # External I/O
        self.input_id: Optional[str] = None
        self.output_id: Optional[str] = None

        # Processing order cache
        self._processing_order: Optional[List[str]] = None
        self._order_valid = False

    def _log(self, message: str) -> None:
        if self.verbose:
            print(f"[Router] {message}")

    def add_node(self, node_id: str, node: BaseNode) -> bool:
        """
        Add a node to the graph.

        Args:
            node_id: Unique identifier for the node
            node: Node instance

        Returns:
            True if added successfully, False if duplicate or at capacity
        """
        if len(self.nodes) >= self.MAX_NODES:
            print(f"[Router] Cannot add node '{node_id}' - at max capacity ({self.MAX_NODES})")
            return False

        if node_id in self.nodes:
            print(f"[Router] Node '{node_id}' already exists")
            return False

        if node.buffer_size < self.buffer_size:
            print(f"[Router] Node '{node_id}' buffer too small "
                  f"({node.buffer_size} < {self.buffer_size})")
            return False

        node.node_id = node_id
        self.nodes[node_id] = node
        self.adjacency_list[node_id] = []
        self.in_degree[node_id] = 0
        self.work_buffers[node_id] = np.zeros(self.buffer_size, dtype=np.float64)
        self._order_valid = False

        self._log(f"Added node: {node_id}")
        return True

    def remove_node(self, node_id: str) -> bool:
        """
        Remove a node and all its connections.

        Returns:
            True if removed, False if not found
        """
        if node_id not in self.nodes:
            return False

        for source, dest, param in list(self.edges):
            if node_id in (source, dest):
                self.disconnect(source, dest, param)

        del self.nodes[node_id]
        self.adjacency_list.pop(node_id, None)
        self.in_degree.pop(node_id, None)
        self._audio_inputs.pop(node_id, None)
        self._param_inputs.pop(node_id, None)
        self.work_buffers.pop(node_id, None)
        if self.input_id == node_id:
            self.input_id = None
        if self.output_id == node_id:
            self.output_id = None

        self._order_valid = False
        self._log(f"Removed node: {node_id}")
        return True

    def connect(self, source_id: str, dest_id: str, param: Optional[str] = None) -> bool:
        """
        Create a connection between two nodes.

        Args:
            source_id: Source node ID
            dest_id: Destination node ID
            param: Destination parameter name; None connects to the audio input

        Returns:
            True if connected, False if invalid or would create cycle
        """
        label = f"{source_id} -> {dest_id}" + (f".{param}" if param else "")

        if source_id not in self.nodes or dest_id not in self.nodes:
            print(f"[Router] Cannot connect {label} - node not found")
            return False

        if param is not None and self.nodes[dest_id].get_param(param) is None:
            print(f"[Router] Cannot connect {label} - no such param")
            return False

        edge = (source_id, dest_id, param)
        if edge in self.edges:
            self._log(f"Already connected: {label}")
            return True

        if len(self.edges) >= self.MAX_EDGES:
            print(f"[Router] Cannot connect - at max edge capacity ({self.MAX_EDGES})")
            return False

        # Temporarily add edge to check for cycles
        self.adjacency_list[source_id].append(dest_id)
        self.in_degree[dest_id] += 1

        if self._has_cycle():
            self.adjacency_list[source_id].remove(dest_id)
            self.in_degree[dest_id] -= 1
            print(f"[Router] Cannot connect {label} - would create cycle")
            return False

        self.edges.append(edge)
        if param is None:
            self._audio_inputs[dest_id].append(source_id)
        else:
            self._param_inputs[dest_id].append((source_id, param))

        self._order_valid = False
        self._log(f"Connected: {label}")
        return True

    def disconnect(self, source_id: str, dest_id: str, param: Optional[str] = None) -> bool:
        """
        Remove a connection between two nodes.

        Returns:
            True if disconnected, False if not connected
        """
        edge = (source_id, dest_id, param)
        if edge not in self.edges:
            return False

        self.edges.remove(edge)
        self.adjacency_list[source_id].remove(dest_id)
        self.in_degree[dest_id] -= 1
        if param is None:
            self._audio_inputs[dest_id].remove(source_id)
        else:
            self._param_inputs[dest_id].remove((source_id, param))

        self._order_valid = False
        self._log(f"Disconnected: {source_id} -> {dest_id}" + (f".{param}" if param else ""))
        return True

    def set_io(self, input_id: str, output_id: str) -> bool:
        """
        Mark the node that receives the external input block and the node
        whose output is returned from process().
        """
        if input_id not in self.nodes or output_id not in self.nodes:
            print(f"[Router] Cannot set I/O {input_id} -> {output_id} - node not found")
            return False
        self.input_id = input_id
        self.output_id = output_id
        return True

    def get_processing_order(self) -> List[str]:
        """
        Get the topological processing order using Kahn's algorithm.

        Returns:
            List of node IDs in processing order
        """
        if self._order_valid and self._processing_order is not None:
            return self._processing_order

        in_degree_copy = dict(self.in_degree)
        queue = deque()

        # Find all nodes with no incoming edges
        for node_id in self.nodes:
            if in_degree_copy[node_id] == 0:
                queue.append(node_id)

        processing_order = []

        while queue:
            current = queue.popleft()
            processing_order.append(current)

            for neighbor in self.adjacency_list[current]:
                in_degree_copy[neighbor] -= 1
                if in_degree_copy[neighbor] == 0:
                    queue.append(neighbor)

        if len(processing_order) != len(self.nodes):
            print("[Router] Warning: Graph has cycles!")
            return []

        self._processing_order = processing_order
        self._order_valid = True
        return processing_order

    def _has_cycle(self) -> bool:
        """
        Check if the graph has a cycle using DFS.

        Returns:
            True if cycle detected, False otherwise
        """
        # White (0): Not visited, Gray (1): In progress, Black (2): Completed
        colors = {node: 0 for node in self.nodes}

        def dfs(node: str) -> bool:
            colors[node] = 1

            for neighbor in self.adjacency_list[node]:
                if colors[neighbor] == 1:
                    return True
                if colors[neighbor] == 0 and dfs(neighbor):
                    return True

            colors[node] = 2
            return False

        for node in self.nodes:
            if colors[node] == 0:
                if dfs(node):
                    return True

        return False

    def validate_graph(self) -> bool:
        """
        Validate the graph structure.

        Returns:
            True if valid (no cycles, I/O assigned), False otherwise
        """
        if self.input_id is None or self.output_id is None:
            return False
        return not self._has_cycle()

    def process(self, input_buffer: np.ndarray, frame: int) -> np.ndarray:
        """
        Process one block through the graph.

        Args:
            input_buffer: External mono input, at most buffer_size samples
            frame: Absolute sample frame of the first sample

        Returns:
            View into the output node's work buffer (valid until next call)
        """
        n = len(input_buffer)
        if n > self.buffer_size:
            raise ValueError(f"Block of {n} samples exceeds buffer size {self.buffer_size}")

        order = self.get_processing_order()
        if not order or self.output_id is None:
            return self._silence[:n]

        mix = self.mix_buffer[:n]

        for node_id in order:
            node = self.nodes[node_id]
            out = self.work_buffers[node_id][:n]

            if not node.active:
                out.fill(0.0)
                continue

            node.prepare(frame, n)

            # Sum audio inputs
            if node_id == self.input_id:
                np.copyto(mix, input_buffer)
            else:
                mix.fill(0.0)
            for source_id in self._audio_inputs[node_id]:
                np.add(mix, self.work_buffers[source_id][:n], out=mix)

            # Sum modulation onto rendered params
            for source_id, param in self._param_inputs[node_id]:
                param_buf = node.params[param].buffer[:n]
                np.add(param_buf, self.work_buffers[source_id][:n], out=param_buf)

            node.process_buffer(mix, out)

        return self.work_buffers[self.output_id][:n]

    def teardown(self) -> None:
        """Disconnect every edge and drop every node."""
        for source, dest, param in list(self.edges):
            self.disconnect(source, dest, param)
        for node_id in list(self.nodes):
            self.remove_node(node_id)
        self._processing_order = None
        self._order_valid = False

    def get_connections(self) -> List[Edge]:
        """
        Get all connections.

        Returns:
            List of (source, dest, param) tuples; param is None for audio edges
        """
        return list(self.edges)

    def get_node_inputs(self, node_id: str) -> List[str]:
        """Nodes feeding the audio input of node_id."""
        return list(self._audio_inputs.get(node_id, []))

    def get_node_outputs(self, node_id: str) -> List[str]:
        """Nodes fed by node_id (audio or param)."""
        return list(self.adjacency_list.get(node_id, []))

    def to_dict(self) -> dict:
        """
        Serialize router state to dictionary.

        Returns:
            Dictionary representation
        """
        return {
            "nodes": {node_id: node.get_state() for node_id, node in self.nodes.items()},
            "connections": self.get_connections(),
            "input": self.input_id,
            "output": self.output_id,
            "processing_order": self.get_processing_order() if self.nodes else None
        }

    def __repr__(self) -> str:
        return (f"PatchRouter(nodes={len(self.nodes)}, "
                f"connections={len(self.edges)})")
