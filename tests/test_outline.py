"""
Outline Parser Tests
====================
"""

import pytest

from mindtree.engine.nodes import validate_tree
from mindtree.engine.outline import looks_like_outline, parse_outline


def _by_id(nodes):
    return {node.id: node for node in nodes}


class TestParseOutline:
    def test_title_and_numbered_topics(self):
        nodes = parse_outline("Title\n1 A\n1.1 A1\n2 B")
        by_id = _by_id(nodes)
        assert len(nodes) == 4
        assert by_id["root"].label == "Title"
        assert by_id["root"].children == ["node-1", "node-2"]
        assert by_id["node-1"].label == "A"
        assert by_id["node-1"].children == ["node-1.1"]
        assert by_id["node-1.1"].label == "A1"
        assert by_id["node-1.1"].level == 2
        assert by_id["node-2"].label == "B"
        assert validate_tree(nodes) == []

    def test_trailing_dot_after_number(self):
        by_id = _by_id(parse_outline("1. Intro\n1.1. Scope\n2. Body"))
        assert by_id["node-1"].label == "Intro"
        assert by_id["node-1.1"].parent == "node-1"

    def test_default_and_explicit_titles(self):
        assert parse_outline("1 A")[0].label == "Mind Map"
        assert parse_outline("1 A", title="Biology")[0].label == "Biology"

    def test_missing_prefix_falls_back_to_nearest_ancestor(self):
        by_id = _by_id(parse_outline("1 A\n1.2.3 Deep\n4.1 Lost"))
        assert by_id["node-1.2.3"].parent == "node-1"
        assert by_id["node-1.2.3"].level == 2
        assert by_id["node-4.1"].parent == "root"

    def test_duplicate_numbers_get_suffix(self):
        nodes = parse_outline("1 A\n1 Again\n1 Third")
        assert [node.id for node in nodes] == ["root", "node-1", "node-1-2", "node-1-3"]
        assert validate_tree(nodes) == []

    def test_unnumbered_lines_extend_description(self):
        by_id = _by_id(parse_outline("Cells\n1 Nucleus\nholds the DNA\nand the nucleolus\n2 Ribosome"))
        assert by_id["node-1"].description == "holds the DNA and the nucleolus"
        assert by_id["node-2"].description == ""

    def test_colors_by_level(self):
        by_id = _by_id(parse_outline("T\n1 A\n1.1 B"))
        assert by_id["root"].color == "#8b5cf6"
        assert by_id["node-1"].color == "#3b82f6"
        assert by_id["node-1.1"].color == "#10b981"

    def test_blank_input(self):
        with pytest.raises(ValueError):
            parse_outline("   \n\n")


class TestLooksLikeOutline:
    def test_numbered_list(self):
        assert looks_like_outline("Plan\n1. Intro\n2. Body\n3. End")

    def test_bullets_and_headings(self):
        assert looks_like_outline("# Topic\n- one\n- two")

    def test_prose(self):
        text = (
            "Photosynthesis converts light into chemical energy.\n"
            "It happens in the chloroplasts of plant cells.\n"
            "Oxygen is released as a by-product.\n"
        )
        assert not looks_like_outline(text)

    def test_empty(self):
        assert not looks_like_outline("")
