"""
Mindtree — Layered Layout
==========================
Sugiyama-style layout specialised for trees, drawn rank by rank
(left → right by default, top → bottom with ``direction="TB"``).

Phases:
  1. Measure   — a box per node from its level and label length.
  2. Rank      — rank = tree level (valid because the input is a tree).
  3. Order     — DFS order, refined by barycenter sweeps on parent
                 positions while the crossing count improves.
  4. Place     — children centred on their parent, separation sweep,
                 parents re-centred over their children, separation again.

Output positions are top-left corners: the rank-slot centre minus half
the box, so boxes are centred on their computed anchor.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import networkx as nx

from mindtree.core.config import settings
from mindtree.engine.nodes import copy_nodes
from mindtree.schemas.mindmap import Node, Position

logger = logging.getLogger(__name__)

# Box geometry (canvas pixels).
LEVEL_WIDTHS = [220, 200, 180, 160]
LEVEL_HEIGHTS = [80, 70, 60]
LABEL_HEIGHT_BANDS = [(120, 60), (80, 40), (50, 20)]  # (longer than, extra height)


@dataclass(frozen=True)
class LayoutConfig:
    nodesep: float = 50
    ranksep: float = 120
    direction: str = "LR"
    max_passes: int = 24

    @classmethod
    def from_settings(cls, **overrides) -> "LayoutConfig":
        values = {
            "nodesep": settings.LAYOUT_NODESEP,
            "ranksep": settings.LAYOUT_RANKSEP,
            "direction": settings.LAYOUT_DIRECTION,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


# ── Measure ──────────────────────────────────────────────────────────────────

def node_box(node: Node) -> Tuple[float, float]:
    """(width, height) for a node: shallower levels and longer labels get bigger boxes."""
    level = max(node.level, 0)
    width = LEVEL_WIDTHS[min(level, len(LEVEL_WIDTHS) - 1)]
    height = LEVEL_HEIGHTS[min(level, len(LEVEL_HEIGHTS) - 1)]
    for threshold, extra in LABEL_HEIGHT_BANDS:
        if len(node.label) > threshold:
            height += extra
            break
    return float(width), float(height)


# ── Graph ────────────────────────────────────────────────────────────────────

def build_graph(nodes: List[Node]) -> nx.DiGraph:
    """Directed parent → child graph; successors iterate in display order."""
    graph: nx.DiGraph = nx.DiGraph()
    index: Dict[str, Node] = {}
    for node in nodes:
        if node.id in index:
            continue
        index[node.id] = node
        graph.add_node(node.id, rank=max(node.level, 0), box=node_box(node))

    for node in index.values():
        for child_id in node.children:
            if child_id in index and child_id != node.id and graph.in_degree(child_id) == 0:
                graph.add_edge(node.id, child_id)

    # Fall back on parent pointers for links the children lists miss.
    for node in index.values():
        if node.parent in index and node.parent != node.id and graph.in_degree(node.id) == 0:
            graph.add_edge(node.parent, node.id)
    return graph


# ── Order ────────────────────────────────────────────────────────────────────

def initial_ordering(graph: nx.DiGraph, ranks: List[int]) -> Dict[int, List[str]]:
    visited: List[str] = []
    seen = set()
    sources = [n for n in graph.nodes if graph.in_degree(n) == 0]
    for source in sources + list(graph.nodes):
        if source in seen:
            continue
        for node_id in nx.dfs_preorder_nodes(graph, source):
            if node_id not in seen:
                seen.add(node_id)
                visited.append(node_id)

    ordering: Dict[int, List[str]] = {rank: [] for rank in ranks}
    for node_id in visited:
        ordering[graph.nodes[node_id]["rank"]].append(node_id)
    return ordering


def _barycenter(node_id: str, graph: nx.DiGraph, parent_pos: Dict[str, float]) -> float:
    positions = [parent_pos[p] for p in graph.predecessors(node_id) if p in parent_pos]
    if not positions:
        return float("inf")
    return sum(positions) / len(positions)


def count_crossings(ordering: Dict[int, List[str]], graph: nx.DiGraph, ranks: List[int]) -> int:
    """Count edge crossings between consecutive ranks (inversion count)."""
    total = 0
    for upper, lower in zip(ranks, ranks[1:]):
        lower_pos = {node_id: i for i, node_id in enumerate(ordering[lower])}
        edges: List[Tuple[int, int]] = []
        for sp, src in enumerate(ordering[upper]):
            for target in graph.successors(src):
                if target in lower_pos:
                    edges.append((sp, lower_pos[target]))
        for i in range(len(edges)):
            for j in range(i + 1, len(edges)):
                a, b = edges[i], edges[j]
                if (a[0] - b[0]) * (a[1] - b[1]) < 0:
                    total += 1
    return total


def minimise_crossings(
    graph: nx.DiGraph,
    ordering: Dict[int, List[str]],
    ranks: List[int],
    max_passes: int,
) -> Dict[int, List[str]]:
    best = count_crossings(ordering, graph, ranks)
    for _pass in range(max_passes):
        if best == 0:
            break
        candidate = {rank: list(ids) for rank, ids in ordering.items()}
        for upper, lower in zip(ranks, ranks[1:]):
            parent_pos = {node_id: float(i) for i, node_id in enumerate(candidate[upper])}
            candidate[lower].sort(key=lambda n, p=parent_pos: _barycenter(n, graph, p))
        crossings = count_crossings(candidate, graph, ranks)
        if crossings >= best:
            break
        ordering, best = candidate, crossings
    return ordering


# ── Place ────────────────────────────────────────────────────────────────────

def _order_extent(graph: nx.DiGraph, node_id: str, direction: str) -> float:
    width, height = graph.nodes[node_id]["box"]
    return height if direction == "LR" else width


def _rank_extent(graph: nx.DiGraph, node_id: str, direction: str) -> float:
    width, height = graph.nodes[node_id]["box"]
    return width if direction == "LR" else height


def _separate(row: List[str], centers: Dict[str, float], extents: Dict[str, float], nodesep: float) -> None:
    """Push nodes forward along the order axis until neighbours are ``nodesep`` apart."""
    for prev, current in zip(row, row[1:]):
        minimum = centers[prev] + extents[prev] / 2 + extents[current] / 2 + nodesep
        if centers[current] < minimum:
            centers[current] = minimum


def assign_order_coordinates(
    graph: nx.DiGraph,
    ordering: Dict[int, List[str]],
    ranks: List[int],
    config: LayoutConfig,
) -> Dict[str, float]:
    extents = {n: _order_extent(graph, n, config.direction) for n in graph.nodes}
    centers: Dict[str, float] = {}

    # Top-down: fan children out around their parent.
    for rank in ranks:
        row = ordering[rank]
        cursor = 0.0
        groups: List[Tuple[Optional[str], List[str]]] = []
        for node_id in row:
            parents = [p for p in graph.predecessors(node_id) if p in centers]
            parent = parents[0] if parents else None
            if groups and groups[-1][0] == parent and parent is not None:
                groups[-1][1].append(node_id)
            else:
                groups.append((parent, [node_id]))

        for parent, members in groups:
            span = sum(extents[m] for m in members) + config.nodesep * (len(members) - 1)
            start = centers[parent] - span / 2 if parent is not None else cursor
            for member in members:
                centers[member] = start + extents[member] / 2
                start += extents[member] + config.nodesep
            cursor = start
        _separate(row, centers, extents, config.nodesep)

    # Bottom-up: re-centre parents over their children.
    for rank in reversed(ranks):
        row = ordering[rank]
        for node_id in row:
            child_centers = [centers[c] for c in graph.successors(node_id) if c in centers]
            if child_centers:
                centers[node_id] = (min(child_centers) + max(child_centers)) / 2
        _separate(row, centers, extents, config.nodesep)

    if centers:
        offset = min(centers[n] - extents[n] / 2 for n in centers)
        for node_id in centers:
            centers[node_id] -= offset
    return centers


def assign_rank_coordinates(
    graph: nx.DiGraph,
    ordering: Dict[int, List[str]],
    ranks: List[int],
    config: LayoutConfig,
) -> Dict[int, float]:
    rank_centers: Dict[int, float] = {}
    offset = 0.0
    for rank in ranks:
        extent = max((_rank_extent(graph, n, config.direction) for n in ordering[rank]), default=0.0)
        rank_centers[rank] = offset + extent / 2
        offset += extent + config.ranksep
    return rank_centers


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ENTRY POINTS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def layout(nodes: List[Node], config: Optional[LayoutConfig] = None) -> Dict[str, Position]:
    """Compute a top-left position for every node. Same input, same output."""
    if not nodes:
        return {}
    config = config or LayoutConfig.from_settings()

    graph = build_graph(nodes)
    ranks = sorted({graph.nodes[n]["rank"] for n in graph.nodes})
    ordering = initial_ordering(graph, ranks)
    ordering = minimise_crossings(graph, ordering, ranks, config.max_passes)

    order_centers = assign_order_coordinates(graph, ordering, ranks, config)
    rank_centers = assign_rank_coordinates(graph, ordering, ranks, config)

    positions: Dict[str, Position] = {}
    for node_id in graph.nodes:
        width, height = graph.nodes[node_id]["box"]
        rank_center = rank_centers[graph.nodes[node_id]["rank"]]
        order_center = order_centers[node_id]
        if config.direction == "LR":
            positions[node_id] = Position(x=rank_center - width / 2, y=order_center - height / 2)
        else:
            positions[node_id] = Position(x=order_center - width / 2, y=rank_center - height / 2)

    logger.info(f"[LAYOUT] ✓ Placed {len(positions)} nodes on {len(ranks)} rank(s) ({config.direction})")
    return positions


def apply_layout(nodes: List[Node], config: Optional[LayoutConfig] = None) -> List[Node]:
    """Copies of ``nodes`` with ``x`` / ``y`` filled in from :func:`layout`."""
    positions = layout(nodes, config)
    result = copy_nodes(nodes)
    for node in result:
        position = positions.get(node.id)
        if position is not None:
            node.x, node.y = position.x, position.y
    return result
