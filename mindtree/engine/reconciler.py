"""
Mindtree — Hierarchy Reconciler
================================
Rebuilds parent/children links for a node set so it forms exactly one
rooted tree. Generators are unreliable about ``parent`` fields, so by
default the stated links are discarded and every level is wired to the
level above it round-robin:

  1. Group nodes by level (input order kept inside each group).
  2. Reset every ``parent`` / ``children``.
  3. No level-0 node  → return the input untouched, report NoRootFound.
  4. Extra level-0 nodes → demoted to level 1 (appended to that group).
  5. Child i of level L → parent pool[i mod len(pool)] at level L-1.

Gaps between levels (nodes at 3, none at 2) are closed by shifting the
stranded levels up (``orphan_policy="rehome"``) or left disconnected
(``orphan_policy="detach"``). Either way an OrphanSubtree issue is reported.

The function is pure and never raises on malformed input.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional

from mindtree.core.exceptions import Issue, IssueCode
from mindtree.engine.nodes import color_for_level, copy_nodes, index_by_id
from mindtree.schemas.mindmap import Node

logger = logging.getLogger(__name__)

OrphanPolicy = Literal["rehome", "detach"]
ParentPolicy = Literal["round_robin", "trust_consistent"]


@dataclass
class ReconcileResult:
    nodes: List[Node]
    issues: List[Issue] = field(default_factory=list)

    @property
    def has_root(self) -> bool:
        return not any(issue.code == IssueCode.NO_ROOT_FOUND for issue in self.issues)

    @property
    def root_id(self) -> Optional[str]:
        if not self.has_root or not self.nodes:
            return None
        return self.nodes[0].id


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# ENTRY POINT
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def reconcile(
    nodes: List[Node],
    *,
    orphan_policy: OrphanPolicy = "rehome",
    parent_policy: ParentPolicy = "round_robin",
) -> ReconcileResult:
    """Repair ``nodes`` into a single rooted tree. See module docstring."""
    working = copy_nodes(nodes)
    issues: List[Issue] = []

    if not any(node.level == 0 for node in working):
        logger.error(f"[RECONCILE] ✗ No root among {len(working)} node(s)")
        issues.append(Issue(IssueCode.NO_ROOT_FOUND, "No node has level 0; the set cannot be rendered as a tree"))
        return ReconcileResult(nodes=working, issues=issues)

    _dedupe_ids(working)
    _clamp_negative_levels(working, issues)

    if parent_policy == "trust_consistent" and _links_are_consistent(working):
        logger.info(f"[RECONCILE] ✓ Generator links are consistent, keeping them ({len(working)} nodes)")
        return ReconcileResult(nodes=_rebuild_from_parents(working), issues=issues)

    before = {node.id: node.level for node in working}
    groups = _group_by_level(working)
    for node in working:
        node.parent = None
        node.children = []

    _demote_extra_roots(groups, issues)
    _handle_gaps(groups, orphan_policy, issues)
    _distribute(groups)

    ordered = [node for level in sorted(groups) for node in groups[level]]
    for node in ordered:
        if not node.color or node.level != before[node.id]:
            node.color = color_for_level(node.level)

    logger.info(
        f"[RECONCILE] ✓ {len(ordered)} nodes across {len(groups)} level(s), "
        f"{len(issues)} issue(s)"
    )
    return ReconcileResult(nodes=ordered, issues=issues)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# STEPS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def _dedupe_ids(nodes: List[Node]) -> None:
    seen: Dict[str, int] = {}
    taken = {node.id for node in nodes}
    for node in nodes:
        if node.id not in seen:
            seen[node.id] = 1
            continue
        original = node.id
        suffix = seen[original] + 1
        while f"{original}-{suffix}" in taken:
            suffix += 1
        seen[original] = suffix
        node.id = f"{original}-{suffix}"
        taken.add(node.id)
        logger.warning(f"[RECONCILE] Duplicate id '{original}' renamed to '{node.id}'")


def _clamp_negative_levels(nodes: List[Node], issues: List[Issue]) -> None:
    clamped = [node for node in nodes if node.level < 0]
    for node in clamped:
        node.level = 1
        node.color = color_for_level(1)
    if clamped:
        ids = [node.id for node in clamped]
        issues.append(Issue(IssueCode.ORPHAN_SUBTREE, "Negative levels moved to level 1", ids))
        logger.warning(f"[RECONCILE] Negative level on {ids}, moved to level 1")


def _group_by_level(nodes: List[Node]) -> Dict[int, List[Node]]:
    groups: Dict[int, List[Node]] = defaultdict(list)
    for node in nodes:
        groups[node.level].append(node)
    return dict(groups)


def _demote_extra_roots(groups: Dict[int, List[Node]], issues: List[Issue]) -> None:
    roots = groups[0]
    if len(roots) == 1:
        return
    extras = roots[1:]
    groups[0] = roots[:1]
    for node in extras:
        node.level = 1
    groups.setdefault(1, []).extend(extras)

    ids = [node.id for node in extras]
    issues.append(Issue(
        IssueCode.MULTIPLE_ROOTS,
        f"Kept '{roots[0].id}' as root, moved {len(extras)} extra root(s) to level 1",
        ids,
    ))
    logger.warning(f"[RECONCILE] Multiple roots, demoted {ids} to level 1")


def _handle_gaps(groups: Dict[int, List[Node]], policy: OrphanPolicy, issues: List[Issue]) -> None:
    levels = sorted(groups)
    present = set(levels)
    expected = 0
    for level in levels:
        if level == expected:
            expected += 1
            continue

        stranded = groups[level]
        ids = [node.id for node in stranded]
        gap_above = level - 1 not in present

        if policy == "detach":
            if gap_above:
                issues.append(Issue(
                    IssueCode.ORPHAN_SUBTREE,
                    f"No parents at level {level - 1}; level {level} left disconnected",
                    ids,
                ))
                logger.warning(f"[RECONCILE] Level {level} has no parent pool, left disconnected")
            continue

        # Levels below a gap shift up with it; only the first one is an orphan.
        del groups[level]
        for node in stranded:
            node.level = expected
        groups[expected] = stranded
        if gap_above:
            issues.append(Issue(
                IssueCode.ORPHAN_SUBTREE,
                f"No parents at level {level - 1}; level {level} re-homed to level {expected}",
                ids,
            ))
            logger.warning(f"[RECONCILE] Level {level} re-homed to level {expected}")
        expected += 1


def _distribute(groups: Dict[int, List[Node]]) -> None:
    for level in sorted(groups):
        if level == 0:
            continue
        pool = groups.get(level - 1, [])
        children = groups[level]
        if not pool or not children:
            continue
        for i, child in enumerate(children):
            parent = pool[i % len(pool)]
            child.parent = parent.id
            parent.children.append(child.id)


# ── Trusting the generator ───────────────────────────────────────────────────

def _links_are_consistent(nodes: List[Node]) -> bool:
    roots = [node for node in nodes if node.level == 0]
    if len(roots) != 1 or roots[0].parent is not None:
        return False
    index = index_by_id(nodes)
    for node in nodes:
        if node.level == 0:
            continue
        parent = index.get(node.parent) if node.parent else None
        if parent is None or parent.level != node.level - 1:
            return False
    return True


def _rebuild_from_parents(nodes: List[Node]) -> List[Node]:
    by_parent: Dict[str, List[Node]] = defaultdict(list)
    for node in nodes:
        node.children = []
        if node.parent is not None:
            by_parent[node.parent].append(node)

    ordered: List[Node] = []
    frontier = [node for node in nodes if node.level == 0]
    while frontier:
        ordered.extend(frontier)
        next_frontier = []
        for parent in frontier:
            for child in by_parent.get(parent.id, []):
                parent.children.append(child.id)
                next_frontier.append(child)
        frontier = next_frontier
    for node in ordered:
        if not node.color:
            node.color = color_for_level(node.level)
    return ordered
