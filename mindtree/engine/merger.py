"""
Mindtree — Expansion Merger
============================
Appends a batch of generated children under one node of an existing tree.

  • Candidates whose id is already in the tree are dropped (retries are safe).
  • Candidates repeating the label of an existing sibling, or of an earlier
    candidate, are dropped too, so re-submitting a batch is a no-op.
  • Survivors get fresh ids "{parent}_{batch}_{index}" from an injected
    generator, ``level = parent.level + 1`` and the "not laid out" (0, 0).

Only the target parent is modified; nothing outside the batch is
re-homed or re-levelled. Callers re-run the layout afterwards.
"""

import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol

from mindtree.core.exceptions import Issue, IssueCode
from mindtree.engine.nodes import color_for_level, copy_nodes, get_node
from mindtree.schemas.mindmap import Node

logger = logging.getLogger(__name__)


# ── Id generation ────────────────────────────────────────────────────────────

class IdGenerator(Protocol):
    def next_batch(self) -> int: ...


class SequentialIdGenerator:
    """Batch stamps from a plain counter. Deterministic; used in tests and sessions."""

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)

    def next_batch(self) -> int:
        return next(self._counter)


class TimestampIdGenerator:
    """Batch stamps from a millisecond clock, forced strictly increasing."""

    def __init__(self, clock: Callable[[], int] = time.time_ns):
        self._clock = clock
        self._last = 0

    def next_batch(self) -> int:
        stamp = self._clock() // 1_000_000
        if stamp <= self._last:
            stamp = self._last + 1
        self._last = stamp
        return stamp


default_id_generator = TimestampIdGenerator()


def make_child_id(parent_id: str, batch: int, index: int) -> str:
    return f"{parent_id}_{batch}_{index}"


def _label_key(label: str) -> str:
    return " ".join(label.split()).casefold()


@dataclass
class MergeResult:
    nodes: List[Node]
    added_ids: List[str] = field(default_factory=list)
    dropped_ids: List[str] = field(default_factory=list)
    issues: List[Issue] = field(default_factory=list)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# MERGE
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def merge(
    tree: List[Node],
    parent_id: str,
    candidates: List[Node],
    id_generator: Optional[IdGenerator] = None,
) -> MergeResult:
    """Return ``tree`` plus the accepted candidates, hung under ``parent_id``.

    Raises NodeNotFound when ``parent_id`` is not in ``tree``.
    """
    id_generator = id_generator or default_id_generator
    result = copy_nodes(tree)
    parent = get_node(result, parent_id)

    existing_ids = {node.id for node in result}
    by_id = {node.id: node for node in result}
    seen_labels = {_label_key(by_id[c].label) for c in parent.children if c in by_id}
    seen_labels.add(_label_key(parent.label))

    accepted: List[Node] = []
    dropped: List[str] = []
    for candidate in candidates:
        key = _label_key(candidate.label)
        if candidate.id in existing_ids or key in seen_labels:
            dropped.append(candidate.id)
            continue
        seen_labels.add(key)
        accepted.append(candidate.model_copy(deep=True))

    issues: List[Issue] = []
    if dropped:
        issues.append(Issue(IssueCode.DUPLICATE_ID_IGNORED, f"Ignored {len(dropped)} duplicate candidate(s)", dropped))
        logger.info(f"[MERGE] Ignored duplicates under '{parent_id}': {dropped}")

    if not accepted:
        return MergeResult(nodes=result, dropped_ids=dropped, issues=issues)

    new_ids = _allocate_ids(parent_id, len(accepted), existing_ids, id_generator)
    level = parent.level + 1
    for node, new_id in zip(accepted, new_ids):
        node.id = new_id
        node.parent = parent_id
        node.level = level
        node.color = color_for_level(level)
        node.children = []
        node.child_mind_map_ids = []
        node.x = 0
        node.y = 0

    parent.children = parent.children + [i for i in new_ids if i not in parent.children]
    result.extend(accepted)

    logger.info(f"[MERGE] ✓ Added {len(accepted)} node(s) under '{parent_id}' at level {level}")
    return MergeResult(nodes=result, added_ids=new_ids, dropped_ids=dropped, issues=issues)


def _allocate_ids(parent_id: str, count: int, taken: set, id_generator: IdGenerator) -> List[str]:
    while True:
        batch = id_generator.next_batch()
        ids = [make_child_id(parent_id, batch, i + 1) for i in range(count)]
        if not taken.intersection(ids):
            return ids
        logger.warning(f"[MERGE] Batch {batch} collides with existing ids, drawing another")
