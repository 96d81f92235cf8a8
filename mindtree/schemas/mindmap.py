from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Node ─────────────────────────────────────────────────────────────────────

class Node(_CamelModel):
    """One concept bubble of a mind map.

    `children` holds in-map node ids in display order; `child_mind_map_ids`
    holds ids of separate mind maps spun off from this node.
    """
    id: str
    label: str
    description: str = ""
    level: int = 0
    x: float = 0
    y: float = 0
    color: str = ""
    children: List[str] = []
    parent: Optional[str] = None
    child_mind_map_ids: List[str] = []

    @model_validator(mode="before")
    @classmethod
    def _coerce_loose_fields(cls, data: Any) -> Any:
        # Generators hand back numeric ids, nulls and empty strings.
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for key in ("id", "parent"):
            if isinstance(data.get(key), (int, float)):
                data[key] = str(data[key])
        if data.get("parent") == "":
            data["parent"] = None
        if data.get("children") is None:
            data["children"] = []
        elif isinstance(data["children"], list):
            data["children"] = [str(c) for c in data["children"]]
        for key in ("description", "color"):
            if data.get(key) is None:
                data[key] = ""
        for key in ("x", "y"):
            if data.get(key) is None:
                data[key] = 0
        for key in ("childMindMapIds", "child_mind_map_ids"):
            if key in data and data[key] is None:
                data[key] = []
        return data


class Position(BaseModel):
    x: float
    y: float


class Edge(BaseModel):
    id: str
    source: str
    target: str
    type: str = "smoothstep"


# ── Mind maps & history ──────────────────────────────────────────────────────

class CreationMethod(str, Enum):
    auto = "auto"
    pdf = "pdf"
    text = "text"
    items = "items"


class MindMap(_CamelModel):
    id: str
    title: str
    nodes: List[Node] = []


class HistoryEntry(MindMap):
    """A mind map inside the history forest."""
    parent_mind_map_id: Optional[str] = None
    parent_node_id: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    creation_method: CreationMethod = CreationMethod.auto

    @property
    def is_root(self) -> bool:
        return self.parent_mind_map_id is None


class MindMapRecord(_CamelModel):
    """A mind map as kept by the persistence store."""
    id: str
    title: str
    description: Optional[str] = None
    nodes: List[Node] = []
    edges: List[Edge] = []
    is_public: bool = False
    tags: List[str] = []
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


# ── Generation contract ──────────────────────────────────────────────────────

class GenerationRequest(_CamelModel):
    """Request body for the generation service."""
    content: str = Field(..., min_length=1, description="Text, outline or topic to map")
    expand_node: bool = False
    parent_node_id: Optional[str] = None
    parent_level: Optional[int] = Field(default=None, ge=0)
    new_mind_map: bool = False

    @model_validator(mode="after")
    def _expansion_needs_parent(self) -> "GenerationRequest":
        if self.expand_node and not self.parent_node_id:
            raise ValueError("parentNodeId is required when expandNode is set")
        return self


class GenerationResponse(BaseModel):
    nodes: List[Node]


# ── Request bodies ───────────────────────────────────────────────────────────

class OutlineRequest(_CamelModel):
    text: str = Field(..., min_length=1)
    title: Optional[str] = None


class LayoutRequest(_CamelModel):
    nodes: List[Node]
    direction: Optional[str] = Field(default=None, pattern=r"^(LR|TB)$")


class LayoutResponse(BaseModel):
    positions: dict[str, Position]


class RecordCreate(_CamelModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    nodes: List[Node]
    is_public: bool = False
    tags: List[str] = []


class RecordUpdate(_CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    nodes: Optional[List[Node]] = None
    is_public: Optional[bool] = None
    tags: Optional[List[str]] = None


class DuplicateRequest(_CamelModel):
    title: Optional[str] = None


class ExpandRequest(_CamelModel):
    content: Optional[str] = None


class SpinOffRequest(_CamelModel):
    content: Optional[str] = None
    method: CreationMethod = CreationMethod.auto
    title: Optional[str] = None


class NodeUpdate(_CamelModel):
    label: str = Field(..., min_length=1)
    description: Optional[str] = None


# ── Node Q&A ─────────────────────────────────────────────────────────────────

class ChatContext(_CamelModel):
    node_label: str = Field(..., min_length=1)
    node_description: str = ""
    level: int = Field(default=0, ge=0)


class ChatRequest(_CamelModel):
    """Stateless question about one node, described by ``context``."""
    message: str = Field(..., min_length=1)
    context: ChatContext


class NodeQuestion(_CamelModel):
    message: str = Field(..., min_length=1)


class ChatResponse(BaseModel):
    response: str
