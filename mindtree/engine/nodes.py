"""
Mindtree — Node Helpers
========================
Pure predicates and tree operations over a flat ``List[Node]``.
Nothing here mutates its input: every operation returns copies.
"""

import logging
from typing import Dict, Iterable, List, Optional

from mindtree.core.exceptions import InvalidOperation, NodeNotFound
from mindtree.schemas.mindmap import Edge, Node

logger = logging.getLogger(__name__)

LEVEL_COLORS = ["#8b5cf6", "#3b82f6", "#10b981", "#f59e0b", "#ef4444", "#ec4899"]


def color_for_level(level: int) -> str:
    """Level-band color; everything from level 5 down shares the last band."""
    return LEVEL_COLORS[min(max(level, 0), len(LEVEL_COLORS) - 1)]


def is_root(node: Node) -> bool:
    return node.level == 0 and node.parent is None


def is_leaf(node: Node) -> bool:
    return not node.children


def copy_nodes(nodes: Iterable[Node]) -> List[Node]:
    return [node.model_copy(deep=True) for node in nodes]


def index_by_id(nodes: Iterable[Node]) -> Dict[str, Node]:
    """Map id -> node. On duplicate ids the first occurrence wins."""
    index: Dict[str, Node] = {}
    for node in nodes:
        index.setdefault(node.id, node)
    return index


def find_root(nodes: Iterable[Node]) -> Optional[Node]:
    for node in nodes:
        if node.level == 0:
            return node
    return None


def get_node(nodes: Iterable[Node], node_id: str) -> Node:
    for node in nodes:
        if node.id == node_id:
            return node
    raise NodeNotFound(node_id)


def descendants(nodes: Iterable[Node], node_id: str) -> List[str]:
    """Ids of every transitive descendant of ``node_id`` (not including it), breadth-first."""
    index = index_by_id(nodes)
    if node_id not in index:
        raise NodeNotFound(node_id)

    found: List[str] = []
    seen = {node_id}
    frontier = [node_id]
    while frontier:
        next_frontier = []
        for current in frontier:
            for child_id in index[current].children:
                if child_id in seen or child_id not in index:
                    continue
                seen.add(child_id)
                found.append(child_id)
                next_frontier.append(child_id)
        frontier = next_frontier
    return found


def delete_subtree(nodes: List[Node], node_id: str) -> List[Node]:
    """Remove a node and its whole subtree, then repair remaining ``children`` lists."""
    target = get_node(nodes, node_id)
    if target.level == 0:
        raise InvalidOperation("The root node cannot be deleted")

    removed = {node_id, *descendants(nodes, node_id)}
    result = [node for node in copy_nodes(nodes) if node.id not in removed]
    for node in result:
        if any(child_id in removed for child_id in node.children):
            node.children = [c for c in node.children if c not in removed]

    logger.info(f"[NODES] Deleted '{node_id}' and {len(removed) - 1} descendant(s)")
    return result


def rename_node(nodes: List[Node], node_id: str, label: str, description: Optional[str] = None) -> List[Node]:
    result = copy_nodes(nodes)
    node = get_node(result, node_id)
    node.label = label
    if description is not None:
        node.description = description
    return result


def build_edges(nodes: Iterable[Node]) -> List[Edge]:
    """Derive one edge per parent -> child link, in display order."""
    nodes = list(nodes)
    known = {node.id for node in nodes}
    return [
        Edge(id=f"{node.id}-{child_id}", source=node.id, target=child_id)
        for node in nodes
        for child_id in node.children
        if child_id in known
    ]


def validate_tree(nodes: List[Node]) -> List[str]:
    """Return a list of human-readable invariant violations; empty means a well-formed tree."""
    problems: List[str] = []
    if not nodes:
        return problems

    seen_ids = set()
    for node in nodes:
        if node.id in seen_ids:
            problems.append(f"duplicate id '{node.id}'")
        seen_ids.add(node.id)

    roots = [node for node in nodes if node.level == 0]
    if len(roots) != 1:
        problems.append(f"expected exactly one root, found {len(roots)}")
        return problems
    root = roots[0]
    if root.parent is not None:
        problems.append(f"root '{root.id}' has a parent")

    index = index_by_id(nodes)
    for node in nodes:
        for child_id in node.children:
            child = index.get(child_id)
            if child is None:
                problems.append(f"'{node.id}' lists unknown child '{child_id}'")
            elif child.parent != node.id:
                problems.append(f"'{child_id}' is a child of '{node.id}' but points to '{child.parent}'")
            elif child.level != node.level + 1:
                problems.append(f"'{child_id}' has level {child.level}, parent '{node.id}' has {node.level}")
        if node.parent is not None:
            parent = index.get(node.parent)
            if parent is None:
                problems.append(f"'{node.id}' points to unknown parent '{node.parent}'")
            elif node.id not in parent.children:
                problems.append(f"'{node.id}' points to '{node.parent}' which does not list it")

    # Reachability: every node must climb to the root without looping.
    for node in nodes:
        hops = 0
        current = node
        while current.parent is not None and hops <= len(nodes):
            parent = index.get(current.parent)
            if parent is None:
                break
            current = parent
            hops += 1
        if current.id != root.id:
            problems.append(f"'{node.id}' is not connected to the root")
    return problems
