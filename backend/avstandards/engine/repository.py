"""Standards Repository — explicit, id-indexed view of the standards hierarchy.

Holds the node forest and the standards attached to standard nodes, and
answers "which standards apply here" by walking a node's ancestry. Parent
links are checked on every insert and move so the forest never contains a
cycle.
"""

from collections.abc import Iterable
from typing import Optional

from avstandards.engine.errors import HierarchyCycleError, HierarchyError
from avstandards.engine.models import NodeType, Standard, StandardNode


def ensure_acyclic(nodes: Iterable[StandardNode]) -> None:
    """Raise HierarchyCycleError if any parent chain loops back on itself."""
    parents = {node.id: node.parent_id for node in nodes}
    cleared: set[str] = set()
    for start in parents:
        path: list[str] = []
        on_path: set[str] = set()
        current: Optional[str] = start
        while current is not None and current not in cleared:
            if current in on_path:
                loop = path[path.index(current):] + [current]
                raise HierarchyCycleError(loop)
            on_path.add(current)
            path.append(current)
            current = parents.get(current)
        cleared.update(path)


class StandardsRepository:
    """Nodes and standards kept in insertion order with id → index maps."""

    def __init__(self, nodes: Iterable[StandardNode] = (), standards: Iterable[Standard] = ()):
        self._nodes: list[StandardNode] = []
        self._node_index: dict[str, int] = {}
        self._standards: list[Standard] = []
        self._standard_index: dict[str, int] = {}
        self._standards_by_node: dict[str, list[int]] = {}

        nodes = list(nodes)
        for node in nodes:
            if node.id in self._node_index:
                raise HierarchyError(f"Duplicate node id '{node.id}'")
            self._node_index[node.id] = len(self._nodes)
            self._nodes.append(node)
        for node in nodes:
            if node.parent_id is not None and node.parent_id not in self._node_index:
                raise HierarchyError(f"Node '{node.id}' has unknown parent '{node.parent_id}'")
        ensure_acyclic(self._nodes)

        for standard in standards:
            self.add_standard(standard)

    # ── Lookups ──

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._node_index

    @property
    def nodes(self) -> list[StandardNode]:
        return list(self._nodes)

    @property
    def standards(self) -> list[Standard]:
        return list(self._standards)

    def get_node(self, node_id: str) -> Optional[StandardNode]:
        index = self._node_index.get(node_id)
        return None if index is None else self._nodes[index]

    def get_standard(self, standard_id: str) -> Optional[Standard]:
        index = self._standard_index.get(standard_id)
        return None if index is None else self._standards[index]

    def standards_for_node(self, node_id: str) -> list[Standard]:
        return [self._standards[i] for i in self._standards_by_node.get(node_id, [])]

    def _require_node(self, node_id: str) -> StandardNode:
        node = self.get_node(node_id)
        if node is None:
            raise HierarchyError(f"Unknown node '{node_id}'")
        return node

    def roots(self) -> list[StandardNode]:
        return self._sorted(n for n in self._nodes if n.parent_id is None)

    def children(self, node_id: str) -> list[StandardNode]:
        return self._sorted(n for n in self._nodes if n.parent_id == node_id)

    @staticmethod
    def _sorted(nodes: Iterable[StandardNode]) -> list[StandardNode]:
        return sorted(nodes, key=lambda n: (n.order, n.name))

    def ancestry(self, node_id: str) -> list[StandardNode]:
        """The node itself, then its parent, up to the root."""
        chain = []
        current: Optional[StandardNode] = self._require_node(node_id)
        while current is not None:
            chain.append(current)
            current = self.get_node(current.parent_id) if current.parent_id else None
        return chain

    def get_applicable_standards(self, node_id: str) -> list[Standard]:
        """Standards inherited along the ancestry, most specific first."""
        return [s for node in self.ancestry(node_id) for s in self.standards_for_node(node.id)]

    # ── Mutations ──

    def add_node(self, node: StandardNode) -> None:
        if node.id in self._node_index:
            raise HierarchyError(f"Duplicate node id '{node.id}'")
        if node.parent_id is not None:
            if node.parent_id == node.id:
                raise HierarchyCycleError([node.id, node.id])
            self._require_node(node.parent_id)
        self._node_index[node.id] = len(self._nodes)
        self._nodes.append(node)

    def move_node(self, node_id: str, new_parent_id: Optional[str]) -> StandardNode:
        """Re-parent a node; refuses moves under itself or its own descendants."""
        node = self._require_node(node_id)
        if new_parent_id is not None:
            ancestors = [n.id for n in self.ancestry(new_parent_id)]
            if node_id in ancestors:
                raise HierarchyCycleError([node_id] + ancestors[: ancestors.index(node_id) + 1])
        moved = node.model_copy(update={"parent_id": new_parent_id})
        self._nodes[self._node_index[node_id]] = moved
        return moved

    def add_standard(self, standard: Standard) -> None:
        if standard.id in self._standard_index:
            raise HierarchyError(f"Duplicate standard id '{standard.id}'")
        node = self._require_node(standard.node_id)
        if node.type != NodeType.STANDARD:
            raise HierarchyError(f"Standard '{standard.id}' is attached to folder node '{node.id}'")
        index = len(self._standards)
        self._standard_index[standard.id] = index
        self._standards.append(standard)
        self._standards_by_node.setdefault(standard.node_id, []).append(index)
