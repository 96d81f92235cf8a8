"""
Mindtree — Mind-Map History Forest
===================================
Every generated mind map becomes an entry. Entries spun off from a node
hang under the map that node lives in, linked by
``(parentMindMapId, parentNodeId)``; entries without a parent are forest
roots. A single ``current`` pointer tracks the map being shown.

Entries are snapshots: any change (new nodes after an expansion, a new
spawned-map id on an origin node) replaces the entry with a patched copy.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from mindtree.core.exceptions import MindMapNotFound, NodeNotFound
from mindtree.engine.nodes import copy_nodes
from mindtree.schemas.mindmap import CreationMethod, HistoryEntry, Node

logger = logging.getLogger(__name__)


@dataclass
class SpawnedMaps:
    """Maps spun off from one node of the current map.

    With exactly one, the graph has already navigated to it. With several,
    the caller must surface ``entries`` as a choice.
    """
    node_id: str
    entries: List[HistoryEntry] = field(default_factory=list)
    navigated: bool = False

    @property
    def needs_choice(self) -> bool:
        return len(self.entries) > 1


def _new_entry_id() -> str:
    return f"mm-{uuid.uuid4().hex[:12]}"


class HistoryGraph:
    def __init__(self, id_factory: Callable[[], str] = _new_entry_id):
        self._id_factory = id_factory
        self._entries: Dict[str, HistoryEntry] = {}
        self._current_id: Optional[str] = None

    # ── Queries ──────────────────────────────────────────────────────────────

    @property
    def current(self) -> Optional[HistoryEntry]:
        if self._current_id is None:
            return None
        return self._entries.get(self._current_id)

    @property
    def entries(self) -> List[HistoryEntry]:
        return list(self._entries.values())

    def __contains__(self, entry_id: str) -> bool:
        return entry_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, entry_id: str) -> HistoryEntry:
        try:
            return self._entries[entry_id]
        except KeyError:
            raise MindMapNotFound(entry_id) from None

    def roots(self) -> List[HistoryEntry]:
        return [entry for entry in self._entries.values() if entry.is_root]

    def breadcrumb_path(self, entry_id: Optional[str] = None) -> List[HistoryEntry]:
        """Entries from the forest root down to ``entry_id`` (default: current)."""
        entry_id = entry_id or self._current_id
        path: List[HistoryEntry] = []
        seen = set()
        while entry_id is not None and entry_id in self._entries and entry_id not in seen:
            seen.add(entry_id)
            entry = self._entries[entry_id]
            path.append(entry)
            entry_id = entry.parent_mind_map_id
        path.reverse()
        return path

    def children_of(self, node_id: str, entry_id: Optional[str] = None) -> List[HistoryEntry]:
        """Entries spun off from ``node_id`` of ``entry_id`` (default: current)."""
        entry_id = entry_id or self._current_id
        if entry_id is None:
            return []
        return [
            entry for entry in self._entries.values()
            if entry.parent_mind_map_id == entry_id and entry.parent_node_id == node_id
        ]

    # ── Transitions ──────────────────────────────────────────────────────────

    def add_root(
        self,
        nodes: List[Node],
        title: str,
        creation_method: CreationMethod = CreationMethod.auto,
        entry_id: Optional[str] = None,
    ) -> HistoryEntry:
        entry = HistoryEntry(
            id=entry_id or self._id_factory(),
            title=title,
            nodes=copy_nodes(nodes),
            creation_method=creation_method,
        )
        self._entries[entry.id] = entry
        self._current_id = entry.id
        logger.info(f"[HISTORY] ✓ New forest root '{entry.id}' ({title})")
        return entry

    def create_child(
        self,
        parent_entry_id: str,
        parent_node_id: str,
        nodes: List[Node],
        title: str,
        creation_method: CreationMethod = CreationMethod.auto,
    ) -> HistoryEntry:
        """Hang a new map off ``parent_node_id`` of ``parent_entry_id`` and make it current."""
        parent_entry = self.get(parent_entry_id)
        if not any(node.id == parent_node_id for node in parent_entry.nodes):
            raise NodeNotFound(parent_node_id)

        entry = HistoryEntry(
            id=self._id_factory(),
            title=title,
            nodes=copy_nodes(nodes),
            parent_mind_map_id=parent_entry_id,
            parent_node_id=parent_node_id,
            creation_method=creation_method,
        )
        self._entries[entry.id] = entry
        self._link_origin(parent_entry, parent_node_id, entry.id)
        self._current_id = entry.id

        logger.info(f"[HISTORY] ✓ '{entry.id}' spun off from '{parent_entry_id}/{parent_node_id}'")
        return entry

    def navigate_to(self, entry_id: Optional[str]) -> bool:
        """Make ``entry_id`` current. Unknown ids are ignored and reported as False."""
        if entry_id is None or entry_id not in self._entries:
            logger.warning(f"[HISTORY] StaleNavigationTarget: '{entry_id}' is not in the forest")
            return False
        self._current_id = entry_id
        return True

    def navigate_back(self) -> bool:
        current = self.current
        if current is None or current.is_root:
            return False
        return self.navigate_to(current.parent_mind_map_id)

    def resolve_spawned(self, node_id: str) -> SpawnedMaps:
        entries = self.children_of(node_id)
        navigated = False
        if len(entries) == 1:
            navigated = self.navigate_to(entries[0].id)
        return SpawnedMaps(node_id=node_id, entries=entries, navigated=navigated)

    def replace_nodes(self, entry_id: str, nodes: List[Node]) -> HistoryEntry:
        entry = self.get(entry_id).model_copy(update={"nodes": copy_nodes(nodes)})
        self._entries[entry_id] = entry
        return entry

    def remove(self, entry_id: str) -> List[str]:
        """Drop an entry with every entry spun off below it. Returns the removed ids."""
        entry = self.get(entry_id)
        doomed = [entry_id]
        frontier = [entry_id]
        while frontier:
            children = [e.id for e in self._entries.values() if e.parent_mind_map_id in frontier]
            doomed.extend(children)
            frontier = children

        for doomed_id in doomed:
            del self._entries[doomed_id]

        if entry.parent_mind_map_id in self._entries:
            self._unlink_origin(self._entries[entry.parent_mind_map_id], entry.parent_node_id, entry_id)
        if self._current_id in doomed:
            self._current_id = entry.parent_mind_map_id if entry.parent_mind_map_id in self._entries else None

        logger.info(f"[HISTORY] Removed {len(doomed)} entr{'y' if len(doomed) == 1 else 'ies'} from '{entry_id}'")
        return doomed

    # ── Origin-node patching ─────────────────────────────────────────────────

    def _link_origin(self, parent_entry: HistoryEntry, node_id: str, child_entry_id: str) -> None:
        nodes = copy_nodes(parent_entry.nodes)
        for node in nodes:
            if node.id == node_id and child_entry_id not in node.child_mind_map_ids:
                node.child_mind_map_ids = node.child_mind_map_ids + [child_entry_id]
        self._entries[parent_entry.id] = parent_entry.model_copy(update={"nodes": nodes})

    def _unlink_origin(self, parent_entry: HistoryEntry, node_id: Optional[str], child_entry_id: str) -> None:
        nodes = copy_nodes(parent_entry.nodes)
        for node in nodes:
            if node.id == node_id:
                node.child_mind_map_ids = [i for i in node.child_mind_map_ids if i != child_entry_id]
        self._entries[parent_entry.id] = parent_entry.model_copy(update={"nodes": nodes})
