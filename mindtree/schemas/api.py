"""
Mindtree — Response Envelopes
==============================
Every tree-returning endpoint wraps its payload in TreeResponse;
every failure is returned as ErrorResponse.
"""

from __future__ import annotations

from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from mindtree.schemas.mindmap import HistoryEntry, Node


class IssueOut(BaseModel):
    """A structural anomaly repaired (or left in place) by the engine."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    code: str
    message: str
    node_ids: List[str] = []


# ── Processing Metadata ─────────────────────────────────────────────────────

class ProcessingMeta(BaseModel):
    """Metadata about the processing run."""
    processing_time: str = Field(..., description="e.g. '12.4s'")
    node_count: int
    source: Optional[str] = None


# ── Tree Envelopes ───────────────────────────────────────────────────────────

class TreeResponse(BaseModel):
    """Standard success envelope for anything that returns a node tree."""
    status: str = "success"
    meta: ProcessingMeta
    nodes: List[Node]
    issues: List[IssueOut] = []


class Breadcrumb(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    title: str
    parent_node_id: Optional[str] = None


class SessionState(BaseModel):
    """Snapshot of a session: the current map plus the navigation trail."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: str
    current: Optional[HistoryEntry] = None
    breadcrumbs: List[Breadcrumb] = []
    issues: List[IssueOut] = []


class SpawnedMapsOut(BaseModel):
    """Maps spun off from one node. A single map is navigated to directly."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    node_id: str
    navigated: bool
    choices: List[Breadcrumb] = []
    state: SessionState


class ErrorResponse(BaseModel):
    """
    Standard error envelope.
    Clients always deserialise this shape.
    """
    status: str = "error"
    message: str
    detail: Optional[str] = None
