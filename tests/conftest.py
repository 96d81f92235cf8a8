"""
Pytest Configuration
====================

Puts the project root on the Python path and provides shared node
fixtures plus a scripted stand-in for the generation service.
"""

import sys
from pathlib import Path
from typing import List, Optional

import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent.absolute()
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from mindtree.engine.nodes import color_for_level  # noqa: E402
from mindtree.schemas.mindmap import GenerationRequest, Node  # noqa: E402


def make_node(
    node_id: str,
    level: int,
    label: Optional[str] = None,
    parent: Optional[str] = None,
    children: Optional[List[str]] = None,
    **extra,
) -> Node:
    return Node(
        id=node_id,
        label=label or f"Topic {node_id}",
        level=level,
        parent=parent,
        children=children or [],
        color=color_for_level(level),
        **extra,
    )


@pytest.fixture
def node_factory():
    return make_node


@pytest.fixture
def sample_tree() -> List[Node]:
    """root → (a → a1, a2), (b)"""
    return [
        make_node("root", 0, "Photosynthesis", children=["a", "b"]),
        make_node("a", 1, "Light reactions", parent="root", children=["a1", "a2"]),
        make_node("b", 1, "Calvin cycle", parent="root"),
        make_node("a1", 2, "Photosystem II", parent="a"),
        make_node("a2", 2, "Photosystem I", parent="a"),
    ]


class ScriptedGenerator:
    """Async stand-in for the generation service.

    Each call pops the next scripted reply; an Exception instance is raised
    instead of returned. Requests are recorded for assertions.
    """

    def __init__(self, *replies):
        self.replies = list(replies)
        self.requests: List[GenerationRequest] = []

    async def __call__(self, request: GenerationRequest) -> List[Node]:
        self.requests.append(request)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return [node.model_copy(deep=True) for node in reply]


@pytest.fixture
def generated_map() -> List[Node]:
    """A typical first-generation payload: levels right, links missing."""
    return [
        Node(id="1", label="Cells", level=0),
        Node(id="2", label="Organelles", level=1),
        Node(id="3", label="Membrane", level=1),
        Node(id="4", label="Nucleus", level=2),
        Node(id="5", label="Mitochondria", level=2),
        Node(id="6", label="Lipid bilayer", level=2),
    ]


@pytest.fixture
def child_batch() -> List[Node]:
    return [
        Node(id="x1", label="Chlorophyll", level=1),
        Node(id="x2", label="Water splitting", level=1),
        Node(id="x3", label="ATP synthase", level=1),
    ]


@pytest.fixture
def scripted():
    return ScriptedGenerator
