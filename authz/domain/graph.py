from __future__ import annotations

from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass, field


@dataclass
class GraphNode:
    id: str
    # member id -> role the member holds on this node
    in_edges: dict[str, str] = field(default_factory=dict)
    # group id -> role this node holds on the group
    out_edges: dict[str, str] = field(default_factory=dict)


class MembershipGraph:
    """Membership edges pointing from a member to the group (or resource) it belongs to.

    ``traverse_in`` walks towards members, ``traverse_out`` towards containing groups.
    Both yield lazily in breadth-first order, visit every node at most once even when
    the groups form cycles, start with the node itself and can be restarted by calling
    them again.
    """

    def __init__(self) -> None:
        self._nodes: dict[str, GraphNode] = {}

    def add_node(self, node_id: str) -> GraphNode:
        node = self._nodes.get(node_id)
        if node is None:
            node = GraphNode(id=node_id)
            self._nodes[node_id] = node
        return node

    def add_edge(self, member_id: str, group_id: str, role: str) -> None:
        self.add_node(member_id).out_edges[group_id] = role
        self.add_node(group_id).in_edges[member_id] = role

    def get_node(self, node_id: str) -> GraphNode | None:
        return self._nodes.get(node_id)

    def node_ids(self) -> list[str]:
        return list(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def traverse_in(self, node_id: str) -> Iterator[str]:
        return self._traverse(node_id, inbound=True)

    def traverse_out(self, node_id: str) -> Iterator[str]:
        return self._traverse(node_id, inbound=False)

    def _traverse(self, node_id: str, *, inbound: bool) -> Iterator[str]:
        if node_id not in self._nodes:
            return
        visited = {node_id}
        queue = deque([node_id])
        while queue:
            current = self._nodes[queue.popleft()]
            yield current.id
            neighbours = current.in_edges if inbound else current.out_edges
            for neighbour_id in sorted(neighbours):
                if neighbour_id in visited:
                    continue
                visited.add(neighbour_id)
                queue.append(neighbour_id)
