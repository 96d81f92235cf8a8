"""
Mindtree — Errors & Reported Conditions
========================================
Two families live here:

  • Exceptions — raised at the boundaries (generation, storage, lookups)
    and translated to HTTP errors by the routers.
  • Issues — structural anomalies the engine repairs on its own. They are
    returned alongside results, logged, and never raised.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List


# ── Reported conditions ──────────────────────────────────────────────────────

class IssueCode(str, Enum):
    NO_ROOT_FOUND = "NoRootFound"
    MULTIPLE_ROOTS = "MultipleRoots"
    DUPLICATE_ID_IGNORED = "DuplicateIdIgnored"
    ORPHAN_SUBTREE = "OrphanSubtree"
    STALE_NAVIGATION_TARGET = "StaleNavigationTarget"


@dataclass
class Issue:
    """A repaired (or unrepairable) anomaly reported by the engine."""
    code: IssueCode
    message: str
    node_ids: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {"code": self.code.value, "message": self.message, "nodeIds": list(self.node_ids)}


# ── Exceptions ───────────────────────────────────────────────────────────────

class MindtreeError(Exception):
    """Base class for every error raised by this package."""


class GenerationFailed(MindtreeError):
    """The generation service errored or returned a payload we cannot use."""

    user_message = "invalid response format"


class GenerationTimeout(GenerationFailed):
    """The generation service did not answer within the configured bound."""

    user_message = "generation timed out"


class NodeNotFound(MindtreeError):
    def __init__(self, node_id: str):
        super().__init__(f"Node '{node_id}' not found")
        self.node_id = node_id


class MindMapNotFound(MindtreeError):
    def __init__(self, mind_map_id: str):
        super().__init__(f"Mind map '{mind_map_id}' not found")
        self.mind_map_id = mind_map_id


class InvalidOperation(MindtreeError):
    """The requested mutation is not allowed on the current tree."""


class SessionNotFound(MindtreeError):
    def __init__(self, session_id: str):
        super().__init__(f"Session '{session_id}' not found")
        self.session_id = session_id
