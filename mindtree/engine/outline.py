"""
Mindtree — Outline Parser
==========================
Turns a numbered outline into a tree without calling the generator:

    Photosynthesis          ← optional unnumbered title line (the root)
    1 Light reactions
    1.1 Photosystem II
    2. Calvin cycle         ← a trailing dot after the number is accepted

Numbered lines become ``node-<number>`` and hang under the longest
numeric prefix that exists (``1.2.3`` → ``1.2`` → ``1`` → root).
Unnumbered lines after the first numbered one extend the previous
node's description. Structure is explicit, so no reconciliation runs.
"""

import logging
import re
from typing import Dict, List, Optional, Set

from mindtree.engine.nodes import color_for_level
from mindtree.schemas.mindmap import Node

logger = logging.getLogger(__name__)

ROOT_ID = "root"
DEFAULT_TITLE = "Mind Map"

_NUMBERED_LINE = re.compile(r"^\s*(\d+(?:\.\d+)*)\.?\s+(.+?)\s*$")

_TOPIC_PATTERNS = [
    re.compile(r"^\s*\d+\."),          # 1. 2. 3.
    re.compile(r"^\s*\d+\)\s"),        # 1) 2) 3)
    re.compile(r"^\s*[a-zA-Z]\.\s"),   # a. b. c.
    re.compile(r"^\s*[a-zA-Z]\)\s"),   # a) b) c)
    re.compile(r"^\s*[-*+]\s"),        # - * +
    re.compile(r"^\s*#{1,6}\s"),       # markdown headings
    re.compile(r"^\s*\d+\.\d+"),       # 1.1 1.2 2.1
    re.compile(r"^\s*\d+\s+\S"),       # 1 Topic
]


def looks_like_outline(text: str, threshold: float = 0.3) -> bool:
    """True when at least ``threshold`` of the non-blank lines look like list items."""
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        return False
    matching = sum(1 for line in lines if any(p.match(line) for p in _TOPIC_PATTERNS))
    return matching / len(lines) >= threshold


def parse_outline(text: str, title: Optional[str] = None) -> List[Node]:
    """Parse ``text`` into a tree rooted at ``root``. Raises ValueError on blank input."""
    lines = [line.rstrip() for line in text.splitlines() if line.strip()]
    if not lines:
        raise ValueError("Outline is empty")

    if not _NUMBERED_LINE.match(lines[0]):
        title = lines[0].strip()
        lines = lines[1:]

    root = Node(id=ROOT_ID, label=title or DEFAULT_TITLE, level=0, color=color_for_level(0))
    nodes: List[Node] = [root]
    by_number: Dict[str, Node] = {}
    taken_ids = {ROOT_ID}
    last: Optional[Node] = None

    for line in lines:
        match = _NUMBERED_LINE.match(line)
        if not match:
            if last is not None:
                text_part = line.strip()
                last.description = f"{last.description} {text_part}".strip()
            continue

        number, label = match.group(1), match.group(2)
        parent = _find_parent(number, by_number) or root
        node_id = _unique_id(f"node-{number}", taken_ids)
        level = parent.level + 1

        node = Node(
            id=node_id,
            label=label,
            level=level,
            color=color_for_level(level),
            parent=parent.id,
        )
        parent.children.append(node.id)
        by_number.setdefault(number, node)
        taken_ids.add(node_id)
        nodes.append(node)
        last = node

    logger.info(f"[OUTLINE] ✓ Parsed {len(nodes)} nodes under '{root.label}'")
    return nodes


def _find_parent(number: str, by_number: Dict[str, Node]) -> Optional[Node]:
    parts = number.split(".")
    for cut in range(len(parts) - 1, 0, -1):
        candidate = by_number.get(".".join(parts[:cut]))
        if candidate is not None:
            return candidate
    return None


def _unique_id(base: str, taken: Set[str]) -> str:
    if base not in taken:
        return base
    suffix = 2
    while f"{base}-{suffix}" in taken:
        suffix += 1
    return f"{base}-{suffix}"
