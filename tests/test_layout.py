"""
Layout Engine Tests
===================
"""

import math

from mindtree.engine.layout import (
    LayoutConfig,
    apply_layout,
    build_graph,
    count_crossings,
    layout,
    node_box,
)
from mindtree.engine.reconciler import reconcile
from mindtree.schemas.mindmap import Node

LR = LayoutConfig(nodesep=50, ranksep=120, direction="LR")
TB = LayoutConfig(nodesep=50, ranksep=120, direction="TB")


def _centers(nodes, positions, axis):
    boxes = {node.id: node_box(node) for node in nodes}
    result = {}
    for node_id, pos in positions.items():
        width, height = boxes[node_id]
        result[node_id] = pos.y + height / 2 if axis == "y" else pos.x + width / 2
    return result


class TestBoxes:
    def test_width_and_height_by_level(self):
        assert node_box(Node(id="r", label="Root", level=0)) == (220.0, 80.0)
        assert node_box(Node(id="a", label="A", level=1)) == (200.0, 70.0)
        assert node_box(Node(id="b", label="B", level=2)) == (180.0, 60.0)
        assert node_box(Node(id="c", label="C", level=7)) == (160.0, 60.0)

    def test_long_labels_get_taller(self):
        assert node_box(Node(id="a", label="x" * 51, level=2))[1] == 80.0
        assert node_box(Node(id="a", label="x" * 81, level=2))[1] == 100.0
        assert node_box(Node(id="a", label="x" * 121, level=2))[1] == 120.0


class TestLayout:
    def test_empty_input(self):
        assert layout([], LR) == {}

    def test_single_node_at_rank_zero(self):
        positions = layout([Node(id="1", label="Only", level=0)], LR)
        assert set(positions) == {"1"}
        assert positions["1"].x == 0
        assert positions["1"].y == 0

    def test_deterministic(self, sample_tree):
        first = layout(sample_tree, LR)
        second = layout([node.model_copy(deep=True) for node in sample_tree], LR)
        assert first == second

    def test_positions_are_finite(self, generated_map):
        tree = reconcile(generated_map).nodes
        for pos in layout(tree, LR).values():
            assert math.isfinite(pos.x) and math.isfinite(pos.y)

    def test_ranks_progress_left_to_right(self, sample_tree):
        positions = layout(sample_tree, LR)
        assert positions["root"].x < positions["a"].x < positions["a1"].x
        assert positions["a"].x == positions["b"].x

    def test_top_to_bottom(self, sample_tree):
        positions = layout(sample_tree, TB)
        assert positions["root"].y < positions["a"].y < positions["a1"].y

    def test_same_rank_nodes_do_not_overlap(self, generated_map):
        tree = reconcile(generated_map).nodes
        positions = layout(tree, LR)
        centers = _centers(tree, positions, "y")
        boxes = {node.id: node_box(node) for node in tree}
        for level in {node.level for node in tree}:
            row = sorted((n.id for n in tree if n.level == level), key=lambda i: centers[i])
            for upper, lower in zip(row, row[1:]):
                gap = centers[lower] - centers[upper]
                assert gap >= boxes[upper][1] / 2 + boxes[lower][1] / 2 + LR.nodesep - 1e-6

    def test_parent_centred_over_children(self, sample_tree):
        positions = layout(sample_tree, LR)
        centers = _centers(sample_tree, positions, "y")
        assert math.isclose(centers["a"], (centers["a1"] + centers["a2"]) / 2)

    def test_apply_layout_writes_copies(self, sample_tree):
        placed = apply_layout(sample_tree, LR)
        assert all(node.x == 0 and node.y == 0 for node in sample_tree)
        assert any(node.x != 0 or node.y != 0 for node in placed)
        assert [node.id for node in placed] == [node.id for node in sample_tree]


class TestCrossings:
    def test_reconciled_tree_has_no_crossings(self, generated_map):
        tree = reconcile(generated_map).nodes
        graph = build_graph(tree)
        ranks = sorted({graph.nodes[n]["rank"] for n in graph.nodes})
        ordering = {rank: [] for rank in ranks}
        positions = layout(tree, LR)
        centers = _centers(tree, positions, "y")
        for node_id in sorted(graph.nodes, key=lambda n: centers[n]):
            ordering[graph.nodes[node_id]["rank"]].append(node_id)
        assert count_crossings(ordering, graph, ranks) == 0

    def test_crossing_count(self):
        nodes = [
            Node(id="r", label="R", level=0, children=["a", "b"]),
            Node(id="a", label="A", level=1, parent="r", children=["b1"]),
            Node(id="b", label="B", level=1, parent="r", children=["a1"]),
            Node(id="a1", label="A1", level=2, parent="b"),
            Node(id="b1", label="B1", level=2, parent="a"),
        ]
        graph = build_graph(nodes)
        crossed = {0: ["r"], 1: ["a", "b"], 2: ["a1", "b1"]}
        assert count_crossings(crossed, graph, [0, 1, 2]) == 1
