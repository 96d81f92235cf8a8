"""
History Forest Tests
====================
"""

import itertools

import pytest

from mindtree.core.exceptions import MindMapNotFound, NodeNotFound
from mindtree.engine.history import HistoryGraph
from mindtree.schemas.mindmap import CreationMethod


@pytest.fixture
def graph():
    counter = itertools.count(1)
    return HistoryGraph(id_factory=lambda: f"m{next(counter)}")


def _node(entry, node_id):
    return next(node for node in entry.nodes if node.id == node_id)


class TestForest:
    def test_add_root_becomes_current(self, graph, sample_tree):
        entry = graph.add_root(sample_tree, "Photosynthesis", CreationMethod.text)
        assert entry.id == "m1"
        assert entry.is_root
        assert graph.current.id == "m1"
        assert graph.roots() == [entry]

    def test_entries_hold_copies(self, graph, sample_tree):
        graph.add_root(sample_tree, "Photosynthesis")
        sample_tree[0].label = "Changed"
        assert graph.current.nodes[0].label == "Photosynthesis"

    def test_create_child_links_origin(self, graph, sample_tree, generated_map):
        root = graph.add_root(sample_tree, "Photosynthesis")
        child = graph.create_child(root.id, "a", generated_map, "Light reactions", CreationMethod.auto)

        assert graph.current.id == child.id
        assert child.parent_mind_map_id == root.id
        assert child.parent_node_id == "a"
        origin = _node(graph.get(root.id), "a")
        assert origin.child_mind_map_ids == [child.id]
        assert origin.children == ["a1", "a2"]

    def test_create_child_on_unknown_node(self, graph, sample_tree, generated_map):
        root = graph.add_root(sample_tree, "Photosynthesis")
        with pytest.raises(NodeNotFound):
            graph.create_child(root.id, "ghost", generated_map, "Nope")
        assert len(graph) == 1

    def test_get_unknown_entry(self, graph):
        with pytest.raises(MindMapNotFound):
            graph.get("missing")


class TestNavigation:
    def _build(self, graph, sample_tree, generated_map):
        root = graph.add_root(sample_tree, "Photosynthesis")
        child = graph.create_child(root.id, "a", generated_map, "Light reactions")
        grandchild = graph.create_child(child.id, "2", generated_map, "Organelles")
        return root, child, grandchild

    def test_breadcrumbs_root_first(self, graph, sample_tree, generated_map):
        root, child, grandchild = self._build(graph, sample_tree, generated_map)
        assert [e.id for e in graph.breadcrumb_path()] == [root.id, child.id, grandchild.id]
        assert [e.id for e in graph.breadcrumb_path(child.id)] == [root.id, child.id]

    def test_back_walks_up_and_stops_at_root(self, graph, sample_tree, generated_map):
        root, child, _ = self._build(graph, sample_tree, generated_map)
        assert graph.navigate_back()
        assert graph.current.id == child.id
        assert graph.navigate_back()
        assert graph.current.id == root.id
        assert not graph.navigate_back()
        assert graph.current.id == root.id

    def test_stale_target_is_a_no_op(self, graph, sample_tree, generated_map):
        _, _, grandchild = self._build(graph, sample_tree, generated_map)
        assert not graph.navigate_to("gone")
        assert graph.current.id == grandchild.id

    def test_single_spawned_map_auto_navigates(self, graph, sample_tree, generated_map):
        root, child, _ = self._build(graph, sample_tree, generated_map)
        graph.navigate_to(root.id)
        spawned = graph.resolve_spawned("a")
        assert spawned.navigated
        assert not spawned.needs_choice
        assert graph.current.id == child.id

    def test_several_spawned_maps_need_a_choice(self, graph, sample_tree, generated_map):
        root = graph.add_root(sample_tree, "Photosynthesis")
        graph.create_child(root.id, "b", generated_map, "First")
        graph.create_child(root.id, "b", generated_map, "Second")
        graph.navigate_to(root.id)

        spawned = graph.resolve_spawned("b")
        assert spawned.needs_choice
        assert not spawned.navigated
        assert [e.title for e in spawned.entries] == ["First", "Second"]
        assert graph.current.id == root.id
        assert _node(graph.current, "b").child_mind_map_ids == [e.id for e in spawned.entries]

    def test_no_spawned_maps(self, graph, sample_tree):
        graph.add_root(sample_tree, "Photosynthesis")
        spawned = graph.resolve_spawned("b")
        assert spawned.entries == []
        assert not spawned.navigated


class TestEdits:
    def test_replace_nodes(self, graph, sample_tree):
        entry = graph.add_root(sample_tree, "Photosynthesis")
        graph.replace_nodes(entry.id, sample_tree[:1])
        assert len(graph.current.nodes) == 1

    def test_remove_drops_descendants_and_unlinks(self, graph, sample_tree, generated_map):
        root = graph.add_root(sample_tree, "Photosynthesis")
        child = graph.create_child(root.id, "a", generated_map, "Light reactions")
        grandchild = graph.create_child(child.id, "2", generated_map, "Organelles")

        removed = graph.remove(child.id)
        assert set(removed) == {child.id, grandchild.id}
        assert len(graph) == 1
        assert graph.current.id == root.id
        assert _node(graph.current, "a").child_mind_map_ids == []
