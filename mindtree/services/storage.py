"""
Mindtree — Mind-Map Store
==========================
Saved mind maps, kept as JSON documents (camelCase, lossless) so every
read hands back a fresh copy that callers may mutate freely.

Older payloads flagged spawned maps with ``hasChildMindMap`` /
``hasChildMindMaps`` and a single ``childMindMapId``. Those are folded into
``childMindMapIds`` here, on the way in, and nowhere else.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

from mindtree.core.exceptions import MindMapNotFound
from mindtree.engine.nodes import build_edges
from mindtree.schemas.mindmap import Edge, MindMapRecord, Node

logger = logging.getLogger(__name__)

_LEGACY_FLAGS = ("hasChildMindMap", "hasChildMindMaps")
_UPDATABLE_FIELDS = {"title", "description", "nodes", "is_public", "tags"}
_NULLABLE_FIELDS = {"description"}


# ── Legacy migration ─────────────────────────────────────────────────────────

def migrate_legacy_node(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Fold legacy spawned-map fields of a raw node dict into ``childMindMapIds``."""
    data = dict(payload)
    ids = list(data.pop("childMindMapIds", None) or [])
    for extra in data.pop("child_mind_map_ids", None) or []:
        if extra not in ids:
            ids.append(extra)
    legacy_id = data.pop("childMindMapId", None)
    if legacy_id and legacy_id not in ids:
        ids.append(legacy_id)
    for flag in _LEGACY_FLAGS:
        data.pop(flag, None)
    data["childMindMapIds"] = ids
    return data


def load_nodes(payload: List[Dict[str, Any]]) -> List[Node]:
    return [Node.model_validate(migrate_legacy_node(raw)) for raw in payload]


def load_record(document: str) -> MindMapRecord:
    data = json.loads(document)
    data["nodes"] = [migrate_legacy_node(raw) for raw in data.get("nodes") or []]
    return MindMapRecord.model_validate(data)


def dump_record(record: MindMapRecord) -> str:
    return record.model_dump_json(by_alias=True)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# REPOSITORY
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class MindMapRepository(Protocol):
    async def create(
        self,
        title: str,
        nodes: List[Node],
        *,
        description: Optional[str] = None,
        edges: Optional[List[Edge]] = None,
        is_public: bool = False,
        tags: Optional[List[str]] = None,
    ) -> MindMapRecord: ...

    async def update(self, record_id: str, **fields: Any) -> MindMapRecord: ...

    async def delete(self, record_id: str) -> None: ...

    async def get(self, record_id: str) -> MindMapRecord: ...

    async def list(self, search: Optional[str] = None, public_only: bool = False) -> List[MindMapRecord]: ...

    async def duplicate(self, record_id: str, title: Optional[str] = None) -> MindMapRecord: ...


class InMemoryMindMapRepository:
    """Process-local store. Documents are JSON strings; reads always deserialize."""

    def __init__(self):
        self._documents: Dict[str, str] = {}
        self._revisions: Dict[str, int] = {}
        self._revision = 0

    def __len__(self) -> int:
        return len(self._documents)

    def _write(self, record: MindMapRecord) -> MindMapRecord:
        self._revision += 1
        self._documents[record.id] = dump_record(record)
        self._revisions[record.id] = self._revision
        return load_record(self._documents[record.id])

    def _read(self, record_id: str) -> MindMapRecord:
        document = self._documents.get(record_id)
        if document is None:
            raise MindMapNotFound(record_id)
        return load_record(document)

    async def create(
        self,
        title: str,
        nodes: List[Node],
        *,
        description: Optional[str] = None,
        edges: Optional[List[Edge]] = None,
        is_public: bool = False,
        tags: Optional[List[str]] = None,
    ) -> MindMapRecord:
        now = _utcnow()
        record = MindMapRecord(
            id=str(uuid.uuid4()),
            title=title,
            description=description,
            nodes=nodes,
            edges=edges if edges is not None else build_edges(nodes),
            is_public=is_public,
            tags=tags or [],
            created_at=now,
            updated_at=now,
        )
        saved = self._write(record)
        logger.info(f"[STORE] ✓ Created '{saved.id}' ({title}, {len(nodes)} nodes)")
        return saved

    async def update(self, record_id: str, **fields: Any) -> MindMapRecord:
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")

        cleared = sorted(key for key, value in fields.items() if value is None and key not in _NULLABLE_FIELDS)
        if cleared:
            raise ValueError(f"Fields cannot be null: {cleared}")

        record = self._read(record_id)
        changes = dict(fields)
        if "nodes" in changes:
            changes["edges"] = build_edges(changes["nodes"])
        changes["updated_at"] = _utcnow()

        saved = self._write(record.model_copy(update=changes))
        logger.info(f"[STORE] ✓ Updated '{record_id}' ({', '.join(sorted(fields)) or 'touch'})")
        return saved

    async def delete(self, record_id: str) -> None:
        if record_id not in self._documents:
            raise MindMapNotFound(record_id)
        del self._documents[record_id]
        del self._revisions[record_id]
        logger.info(f"[STORE] Deleted '{record_id}'")

    async def get(self, record_id: str) -> MindMapRecord:
        return self._read(record_id)

    async def list(self, search: Optional[str] = None, public_only: bool = False) -> List[MindMapRecord]:
        """Newest first. ``search`` matches title or description, case-insensitively."""
        needle = (search or "").strip().casefold()
        records = []
        for record_id in sorted(self._documents, key=lambda r: self._revisions[r], reverse=True):
            record = self._read(record_id)
            if public_only and not record.is_public:
                continue
            if needle:
                haystack = f"{record.title}\n{record.description or ''}".casefold()
                if needle not in haystack:
                    continue
            records.append(record)
        records.sort(key=lambda r: r.updated_at, reverse=True)
        return records

    async def duplicate(self, record_id: str, title: Optional[str] = None) -> MindMapRecord:
        original = self._read(record_id)
        copy = await self.create(
            title or f"{original.title} (Copy)",
            original.nodes,
            description=original.description,
            edges=original.edges,
            is_public=False,
            tags=original.tags,
        )
        logger.info(f"[STORE] ✓ Duplicated '{record_id}' → '{copy.id}'")
        return copy
