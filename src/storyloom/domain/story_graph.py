"""Indexed, read-only view over an authored story graph."""
from __future__ import annotations

from types import MappingProxyType
from typing import Dict, List, Mapping, Sequence

from storyloom.domain.defs import (
    EndNodeDef,
    SceneNodeDef,
    StartNodeDef,
    StoryEdgeDef,
    StoryMetadataDef,
    StoryNodeDef,
)
from storyloom.domain.defs.story_def import EdgeType


class StoryGraph:
    """Nodes and edges of one story, with O(1) lookups by id."""

    def __init__(
        self,
        nodes: Mapping[str, StoryNodeDef],
        edges: Mapping[str, StoryEdgeDef],
        *,
        metadata: StoryMetadataDef | None = None,
        version: int = 1,
    ) -> None:
        self._nodes: Dict[str, StoryNodeDef] = dict(nodes)
        self._edges: Dict[str, StoryEdgeDef] = dict(edges)
        self.metadata = metadata or StoryMetadataDef()
        self.version = version
        self._outgoing: Dict[str, List[StoryEdgeDef]] = {}
        for edge in self._edges.values():
            self._outgoing.setdefault(edge.from_node_id, []).append(edge)

    @property
    def nodes(self) -> Mapping[str, StoryNodeDef]:
        return MappingProxyType(self._nodes)

    @property
    def edges(self) -> Mapping[str, StoryEdgeDef]:
        return MappingProxyType(self._edges)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def get_node(self, node_id: str) -> StoryNodeDef:
        """Return a node by id, raising KeyError when it does not exist."""
        try:
            return self._nodes[node_id]
        except KeyError as exc:
            raise KeyError(node_id) from exc

    def find_node(self, node_id: str | None) -> StoryNodeDef | None:
        if node_id is None:
            return None
        return self._nodes.get(node_id)

    def get_edge(self, edge_id: str) -> StoryEdgeDef:
        try:
            return self._edges[edge_id]
        except KeyError as exc:
            raise KeyError(edge_id) from exc

    def edges_from(self, node_id: str, edge_type: EdgeType | None = None) -> List[StoryEdgeDef]:
        """Return edges leaving ``node_id`` in authored order."""
        edges = self._outgoing.get(node_id, [])
        if edge_type is None:
            return list(edges)
        return [edge for edge in edges if edge.edge_type == edge_type]

    def start_nodes(self) -> List[StartNodeDef]:
        return [node for node in self._nodes.values() if isinstance(node, StartNodeDef)]

    def start_node(self) -> StartNodeDef | None:
        starts = self.start_nodes()
        return starts[0] if starts else None

    def scene_nodes(self) -> List[SceneNodeDef]:
        return [node for node in self._nodes.values() if isinstance(node, SceneNodeDef)]

    def end_nodes(self) -> List[EndNodeDef]:
        return [node for node in self._nodes.values() if isinstance(node, EndNodeDef)]


def order_edges(edges: Sequence[StoryEdgeDef]) -> List[StoryEdgeDef]:
    """Return candidate edges in evaluation order.

    Authored order is kept unless some candidate carries a priority; then
    ascending priority wins, unprioritized edges go last and ties keep
    authored order.
    """
    if all(edge.priority is None for edge in edges):
        return list(edges)
    return sorted(
        edges,
        key=lambda edge: (edge.priority is None, edge.priority if edge.priority is not None else 0),
    )
