"""
Mindtree — Mind-Map Session
============================
One user's working state: the history forest, the current map, and the
link to the store. Every mutation runs under a single asyncio.Lock and
commits a new snapshot only after it fully succeeded:

    generate / outline / pdf   → reconcile → layout → new forest root
    expand node                → generate → merge   → layout → same entry
    spin off node              → generate → reconcile → layout → child entry
    rename / delete node       → edit → layout → same entry

A failed or timed-out generation leaves the snapshot exactly as it was.
Auto-save is debounced and runs in the background; its failures are logged
and never roll back in-memory state.
"""

import asyncio
import logging
import time
import uuid
from typing import Dict, List, Optional, Tuple

from mindtree.core.exceptions import (
    GenerationFailed,
    InvalidOperation,
    Issue,
    IssueCode,
    SessionNotFound,
)
from mindtree.engine.history import HistoryGraph, SpawnedMaps
from mindtree.engine.layout import LayoutConfig, apply_layout
from mindtree.engine.merger import IdGenerator, SequentialIdGenerator, merge
from mindtree.engine.nodes import delete_subtree, find_root, get_node
from mindtree.engine.nodes import rename_node as rename_in_tree
from mindtree.engine.outline import parse_outline
from mindtree.schemas.mindmap import (
    CreationMethod,
    GenerationRequest,
    HistoryEntry,
    MindMapRecord,
    Node,
)
from mindtree.services.file_service import extract_text_from_pdf
from mindtree.services.generation import (
    NodeAnswerer,
    NodeGenerator,
    answer_question,
    generate,
    request_nodes,
)
from mindtree.services.storage import MindMapRepository

logger = logging.getLogger(__name__)


class MindMapSession:
    def __init__(
        self,
        session_id: str,
        repository: Optional[MindMapRepository] = None,
        generator: NodeGenerator = request_nodes,
        answerer: NodeAnswerer = answer_question,
        id_generator: Optional[IdGenerator] = None,
        layout_config: Optional[LayoutConfig] = None,
        timeout: Optional[float] = None,
        autosave_delay: Optional[float] = None,
    ):
        self.session_id = session_id
        self.history = HistoryGraph()
        self.issues: List[Issue] = []
        self._repository = repository
        self._generator = generator
        self._answerer = answerer
        self._id_generator = id_generator or SequentialIdGenerator()
        self._layout_config = layout_config
        self._timeout = timeout
        self._autosave_delay = autosave_delay
        self._record_ids: Dict[str, str] = {}
        self._lock = asyncio.Lock()
        self._autosave_task: Optional[asyncio.Task] = None
        self._dirty: List[str] = []
        self.last_used = time.monotonic()

    # ── Queries ──────────────────────────────────────────────────────────────

    @property
    def current(self) -> Optional[HistoryEntry]:
        return self.history.current

    def require_current(self) -> HistoryEntry:
        current = self.history.current
        if current is None:
            raise InvalidOperation("No mind map is open in this session")
        return current

    def breadcrumbs(self) -> List[HistoryEntry]:
        return self.history.breadcrumb_path()

    def record_id_for(self, entry_id: str) -> Optional[str]:
        return self._record_ids.get(entry_id)

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _layout(self, nodes: List[Node]) -> List[Node]:
        return apply_layout(nodes, self._layout_config)

    async def _generate_tree(self, request: GenerationRequest) -> Tuple[List[Node], List[Issue]]:
        result = await generate(request, self._generator, self._timeout)
        if any(issue.code == IssueCode.NO_ROOT_FOUND for issue in result.issues):
            raise GenerationFailed("Generated nodes contain no root")
        return self._layout(result.nodes), result.issues

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # NEW MAPS
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    async def generate_from_text(
        self,
        content: str,
        title: Optional[str] = None,
        method: CreationMethod = CreationMethod.text,
    ) -> HistoryEntry:
        """First generation: a brand-new forest root built from ``content``."""
        async with self._lock:
            nodes, issues = await self._generate_tree(GenerationRequest(content=content))
            root = find_root(nodes)
            entry = self.history.add_root(nodes, title or (root.label if root else "Mind Map"), method)
            self.issues = issues
            logger.info(f"[SESSION] ✓ {self.session_id}: generated '{entry.title}' ({len(nodes)} nodes)")
        self._schedule_autosave(entry.id)
        return entry

    async def from_outline(self, text: str, title: Optional[str] = None) -> HistoryEntry:
        async with self._lock:
            nodes = self._layout(parse_outline(text, title))
            self.issues = []
            entry = self.history.add_root(nodes, nodes[0].label, CreationMethod.items)
            logger.info(f"[SESSION] ✓ {self.session_id}: outline '{entry.title}' ({len(nodes)} nodes)")
        self._schedule_autosave(entry.id)
        return entry

    async def from_pdf(self, file_content: bytes, filename: str, title: Optional[str] = None) -> HistoryEntry:
        text = await extract_text_from_pdf(file_content, filename)
        return await self.generate_from_text(text, title, CreationMethod.pdf)

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # NODE OPERATIONS
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    async def expand_node(self, node_id: str, content: Optional[str] = None) -> HistoryEntry:
        """Ask for children of ``node_id`` and merge them into the current map."""
        async with self._lock:
            current = self.require_current()
            node = get_node(current.nodes, node_id)
            request = GenerationRequest(
                content=content or _node_topic(node),
                expand_node=True,
                parent_node_id=node_id,
                parent_level=node.level,
            )
            result = await generate(request, self._generator, self._timeout)

            # Re-read the snapshot: the parent must still exist when we commit.
            current = self.require_current()
            merged = merge(current.nodes, node_id, result.nodes, self._id_generator)
            self.issues = result.issues + merged.issues
            entry = self.history.replace_nodes(current.id, self._layout(merged.nodes))
            logger.info(f"[SESSION] ✓ {self.session_id}: expanded '{node_id}' (+{len(merged.added_ids)})")
        self._schedule_autosave(entry.id)
        return entry

    async def spin_off(
        self,
        node_id: str,
        content: Optional[str] = None,
        method: CreationMethod = CreationMethod.auto,
        title: Optional[str] = None,
    ) -> HistoryEntry:
        """Generate a separate map about ``node_id`` and hang it under the current map."""
        async with self._lock:
            current = self.require_current()
            node = get_node(current.nodes, node_id)
            request = GenerationRequest(content=content or _node_topic(node), new_mind_map=True)
            nodes, issues = await self._generate_tree(request)
            entry = self.history.create_child(current.id, node_id, nodes, title or node.label, method)
            self.issues = issues
            logger.info(f"[SESSION] ✓ {self.session_id}: spun off '{entry.id}' from '{node_id}'")
        self._schedule_autosave(current.id, entry.id)
        return entry

    async def delete_node(self, node_id: str) -> HistoryEntry:
        async with self._lock:
            current = self.require_current()
            nodes = self._layout(delete_subtree(current.nodes, node_id))
            self.issues = []
            entry = self.history.replace_nodes(current.id, nodes)
        self._schedule_autosave(entry.id)
        return entry

    async def rename_node(self, node_id: str, label: str, description: Optional[str] = None) -> HistoryEntry:
        async with self._lock:
            current = self.require_current()
            nodes = self._layout(rename_in_tree(current.nodes, node_id, label, description))
            self.issues = []
            entry = self.history.replace_nodes(current.id, nodes)
        self._schedule_autosave(entry.id)
        return entry

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # NAVIGATION
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    async def navigate_to(self, entry_id: str) -> bool:
        async with self._lock:
            navigated = self.history.navigate_to(entry_id)
            self.issues = [] if navigated else [
                Issue(IssueCode.STALE_NAVIGATION_TARGET, f"Mind map '{entry_id}' is no longer available", [])
            ]
            return navigated

    async def navigate_back(self) -> bool:
        async with self._lock:
            self.issues = []
            return self.history.navigate_back()

    async def resolve_spawned(self, node_id: str) -> SpawnedMaps:
        """Maps spun off from ``node_id``; a single one is opened right away."""
        async with self._lock:
            get_node(self.require_current().nodes, node_id)
            self.issues = []
            return self.history.resolve_spawned(node_id)

    async def ask_about_node(self, node_id: str, question: str) -> str:
        """Answer a question about one node of the current map. Read-only."""
        node = get_node(self.require_current().nodes, node_id)
        self.last_used = time.monotonic()
        return await self._answerer(node, question)

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # PERSISTENCE
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def _require_repository(self) -> MindMapRepository:
        if self._repository is None:
            raise InvalidOperation("This session has no store attached")
        return self._repository

    async def load(self, record_id: str) -> HistoryEntry:
        """Open a saved map as a new forest root."""
        repository = self._require_repository()
        record = await repository.get(record_id)
        nodes = record.nodes
        if all(node.x == 0 and node.y == 0 for node in nodes):
            nodes = self._layout(nodes)
        async with self._lock:
            entry = self.history.add_root(nodes, record.title, CreationMethod.auto)
            self._record_ids[entry.id] = record.id
            self.issues = []
        logger.info(f"[SESSION] ✓ {self.session_id}: loaded record '{record_id}' as '{entry.id}'")
        return entry

    async def save(self, entry_id: Optional[str] = None) -> MindMapRecord:
        """Persist an entry (default: current). The first save creates the record."""
        repository = self._require_repository()
        entry = self.history.get(entry_id) if entry_id else self.require_current()
        record_id = self._record_ids.get(entry.id)
        if record_id is None:
            record = await repository.create(entry.title, entry.nodes)
            self._record_ids[entry.id] = record.id
        else:
            record = await repository.update(record_id, title=entry.title, nodes=entry.nodes)
        return record

    def _schedule_autosave(self, *entry_ids: str) -> None:
        self.last_used = time.monotonic()
        if self._repository is None or self._autosave_delay is None:
            return
        self._dirty.extend(i for i in entry_ids if i not in self._dirty)
        if self._autosave_task is not None and not self._autosave_task.done():
            self._autosave_task.cancel()
        self._autosave_task = asyncio.create_task(self._autosave(self._autosave_delay))

    async def _autosave(self, delay: float) -> None:
        await asyncio.sleep(delay)
        await asyncio.shield(self._save_dirty())

    async def _save_dirty(self) -> None:
        """Save every entry changed since the last auto-save."""
        dirty, self._dirty = self._dirty, []
        for entry_id in dirty:
            try:
                record = await self.save(entry_id)
                logger.info(f"[SESSION] ✓ {self.session_id}: auto-saved '{entry_id}' to '{record.id}'")
            except Exception as e:
                logger.error(f"[SESSION] ✗ {self.session_id}: auto-save of '{entry_id}' failed: {e}")

    async def flush(self) -> None:
        """Wait for a pending auto-save to finish."""
        task = self._autosave_task
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)

    async def close(self) -> None:
        """Stop the debounce timer and save pending changes right away."""
        task = self._autosave_task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        await self._save_dirty()


def _node_topic(node: Node) -> str:
    if node.description:
        return f"{node.label}: {node.description}"
    return node.label


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# REGISTRY
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class SessionRegistry:
    """Live sessions by id. Sessions share one store and one generator.

    Sessions idle for longer than ``ttl`` seconds are closed and dropped
    whenever a new session is created.
    """

    def __init__(
        self,
        repository: Optional[MindMapRepository] = None,
        generator: NodeGenerator = request_nodes,
        answerer: NodeAnswerer = answer_question,
        autosave_delay: Optional[float] = None,
        ttl: Optional[float] = None,
    ):
        self._repository = repository
        self._generator = generator
        self._answerer = answerer
        self._autosave_delay = autosave_delay
        self._ttl = ttl
        self._sessions: Dict[str, MindMapSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    async def create(self) -> MindMapSession:
        await self.evict_idle()
        session = MindMapSession(
            session_id=uuid.uuid4().hex,
            repository=self._repository,
            generator=self._generator,
            answerer=self._answerer,
            autosave_delay=self._autosave_delay,
        )
        self._sessions[session.session_id] = session
        logger.info(f"[SESSION] New session '{session.session_id}'")
        return session

    def get(self, session_id: str) -> MindMapSession:
        try:
            session = self._sessions[session_id]
        except KeyError:
            raise SessionNotFound(session_id) from None
        session.last_used = time.monotonic()
        return session

    async def close(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFound(session_id)
        await session.close()
        logger.info(f"[SESSION] Closed session '{session_id}'")

    async def evict_idle(self) -> int:
        if self._ttl is None:
            return 0
        cutoff = time.monotonic() - self._ttl
        idle = [sid for sid, session in self._sessions.items() if session.last_used < cutoff]
        for session_id in idle:
            await self.close(session_id)
        if idle:
            logger.info(f"[SESSION] Evicted {len(idle)} idle session(s)")
        return len(idle)

    async def close_all(self) -> None:
        for session in self._sessions.values():
            await session.close()
        self._sessions.clear()
