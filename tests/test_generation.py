"""
Generation Client Tests
=======================

Provider calls are replaced by monkeypatching ``_hybrid_call``; nothing
here touches the network.
"""

import asyncio
import json

import pytest

from mindtree.core.exceptions import GenerationFailed, GenerationTimeout, IssueCode
from mindtree.engine.nodes import validate_tree
from mindtree.schemas.mindmap import GenerationRequest, Node
from mindtree.services import generation
from mindtree.services.generation import (
    EXPANSION_SYSTEM_PROMPT,
    FREE_TEXT_SYSTEM_PROMPT,
    NEW_MAP_SYSTEM_PROMPT,
    OUTLINE_SYSTEM_PROMPT,
    CHAT_SYSTEM_PROMPT,
    answer_question,
    build_chat_prompt,
    build_user_prompt,
    clean_and_parse_json,
    generate,
    generate_with_timeout,
    parse_nodes,
    request_nodes,
    select_prompt,
    shape_generated,
)

PAYLOAD = {
    "nodes": [
        {"id": 1, "label": "Cells", "level": 0, "parent": None},
        {"id": 2, "label": "Nucleus", "level": 1, "parent": 1},
        {"id": 3, "label": "Ribosome", "level": 1, "parent": 1},
    ]
}


class TestJsonRecovery:
    def test_plain_json(self):
        assert clean_and_parse_json(json.dumps(PAYLOAD)) == PAYLOAD

    def test_fenced_json(self):
        raw = "Here you go:\n```json\n" + json.dumps(PAYLOAD) + "\n```"
        assert clean_and_parse_json(raw) == PAYLOAD

    def test_json_wrapped_in_prose(self):
        raw = "Sure! " + json.dumps(PAYLOAD) + " Hope this helps."
        assert clean_and_parse_json(raw) == PAYLOAD

    def test_garbage(self):
        with pytest.raises(ValueError):
            clean_and_parse_json("no json here")

    def test_empty(self):
        with pytest.raises(ValueError):
            clean_and_parse_json("   ")

    def test_parse_nodes_coerces_ids(self):
        nodes = parse_nodes(PAYLOAD)
        assert [node.id for node in nodes] == ["1", "2", "3"]
        assert nodes[1].parent == "1"

    def test_parse_nodes_rejects_bad_shapes(self):
        with pytest.raises(ValueError):
            parse_nodes({"nodes": [{"label": "no id"}]})
        with pytest.raises(ValueError):
            parse_nodes({"nodes": []})
        with pytest.raises(ValueError):
            parse_nodes({"items": []})


class TestPrompts:
    def test_prompt_selection(self):
        assert select_prompt(GenerationRequest(content="x", expand_node=True, parent_node_id="p")) is EXPANSION_SYSTEM_PROMPT
        assert select_prompt(GenerationRequest(content="x", new_mind_map=True)) is NEW_MAP_SYSTEM_PROMPT
        assert select_prompt(GenerationRequest(content="1. A\n2. B")) is OUTLINE_SYSTEM_PROMPT
        assert select_prompt(GenerationRequest(content="Plain prose about cells.")) is FREE_TEXT_SYSTEM_PROMPT

    def test_content_is_truncated(self, monkeypatch):
        monkeypatch.setattr(generation.settings, "MAX_CONTENT_LENGTH", 10)
        prompt = build_user_prompt(GenerationRequest(content="a" * 50))
        assert "a" * 11 not in prompt
        assert prompt.endswith("a" * 10 + "...")

    def test_expansion_prompt_names_parent(self):
        prompt = build_user_prompt(GenerationRequest(content="Nucleus", expand_node=True, parent_node_id="n-1"))
        assert '"parent": "n-1"' in prompt

    def test_expansion_requires_parent(self):
        with pytest.raises(ValueError):
            GenerationRequest(content="x", expand_node=True)


class TestRequestNodes:
    @pytest.mark.asyncio
    async def test_valid_reply(self, monkeypatch):
        async def fake_call(system_prompt, user_prompt, primary="gemini"):
            return json.dumps(PAYLOAD)

        monkeypatch.setattr(generation, "_hybrid_call", fake_call)
        nodes = await request_nodes(GenerationRequest(content="cells"))
        assert [node.label for node in nodes] == ["Cells", "Nucleus", "Ribosome"]

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, monkeypatch):
        replies = ["not json", json.dumps(PAYLOAD)]

        async def fake_call(system_prompt, user_prompt, primary="gemini"):
            return replies.pop(0)

        monkeypatch.setattr(generation, "_hybrid_call", fake_call)
        monkeypatch.setattr(generation.settings, "MAX_RETRIES", 2)
        nodes = await request_nodes(GenerationRequest(content="cells"))
        assert len(nodes) == 3

    @pytest.mark.asyncio
    async def test_invalid_format_fails_closed(self, monkeypatch):
        async def fake_call(system_prompt, user_prompt, primary="gemini"):
            return '{"nodes": "nope"}'

        monkeypatch.setattr(generation, "_hybrid_call", fake_call)
        with pytest.raises(GenerationFailed) as info:
            await request_nodes(GenerationRequest(content="cells"))
        assert info.value.user_message == "invalid response format"

    @pytest.mark.asyncio
    async def test_all_providers_down(self, monkeypatch):
        async def broken(system_prompt, user_prompt, json_mode=True):
            raise RuntimeError("503")

        monkeypatch.setattr(generation.settings, "AI_PROVIDER", "hybrid")
        monkeypatch.setattr(generation, "_call_groq", broken)
        monkeypatch.setattr(generation, "_call_gemini", broken)
        with pytest.raises(GenerationFailed):
            await request_nodes(GenerationRequest(content="cells"))

    @pytest.mark.asyncio
    async def test_failover_to_second_provider(self, monkeypatch):
        async def broken(system_prompt, user_prompt, json_mode=True):
            raise RuntimeError("quota")

        async def working(system_prompt, user_prompt, json_mode=True):
            return json.dumps(PAYLOAD)

        monkeypatch.setattr(generation.settings, "AI_PROVIDER", "hybrid")
        monkeypatch.setattr(generation, "_call_gemini", broken)
        monkeypatch.setattr(generation, "_call_groq", working)
        nodes = await request_nodes(GenerationRequest(content="cells"))
        assert len(nodes) == 3


class TestGenerate:
    @pytest.mark.asyncio
    async def test_timeout(self):
        async def slow(request):
            await asyncio.sleep(5)
            return []

        with pytest.raises(GenerationTimeout):
            await generate_with_timeout(slow, GenerationRequest(content="x"), timeout=0.01)

    @pytest.mark.asyncio
    async def test_first_generation_is_reconciled(self, generated_map, scripted):
        generated_map[0].child_mind_map_ids = ["stale"]
        generated_map[0].x = 300
        result = await generate(GenerationRequest(content="cells"), scripted(generated_map))
        assert result.issues == []
        assert validate_tree(result.nodes) == []
        assert all(node.child_mind_map_ids == [] for node in result.nodes)
        assert all(node.x == 0 for node in result.nodes)

    @pytest.mark.asyncio
    async def test_rootless_generation_reports_issue(self, scripted):
        reply = [Node(id="a", label="A", level=1)]
        result = await generate(GenerationRequest(content="cells"), scripted(reply))
        assert [issue.code for issue in result.issues] == [IssueCode.NO_ROOT_FOUND]

    def test_expansion_batch_keeps_generated_ids(self, child_batch):
        request = GenerationRequest(content="x", expand_node=True, parent_node_id="5")
        echoed = [Node(id="5", label="Mitochondria", level=0, children=["9"])] + child_batch
        result = shape_generated(request, echoed)
        assert [node.id for node in result.nodes] == ["5", "x1", "x2", "x3"]
        assert all(node.parent == "5" for node in result.nodes)
        assert all(node.children == [] for node in result.nodes)
        assert [node.level for node in result.nodes] == [0, 1, 1, 1]

    def test_expansion_batch_levels_follow_parent(self, child_batch):
        request = GenerationRequest(content="x", expand_node=True, parent_node_id="p", parent_level=2)
        result = shape_generated(request, child_batch)
        assert all(node.level == 3 for node in result.nodes)
        assert all(node.color == "#f59e0b" for node in result.nodes)
        assert child_batch[0].level == 1


class TestNodeQuestions:
    def test_prompt_carries_node_context(self):
        node = Node(id="5", label="Mitochondria", description="Powerhouse of the cell", level=2)
        prompt = build_chat_prompt(node, "  How do they make ATP? ")
        assert "Topic: Mitochondria" in prompt
        assert "Description: Powerhouse of the cell" in prompt
        assert "Level: 2" in prompt
        assert prompt.endswith("User Question: How do they make ATP?")

    @pytest.mark.asyncio
    async def test_answer_uses_prose_mode(self, monkeypatch):
        calls = []

        async def fake_call(system_prompt, user_prompt, primary="gemini", json_mode=True):
            calls.append((system_prompt, json_mode))
            return "  They use oxidative phosphorylation.  "

        monkeypatch.setattr(generation, "_hybrid_call", fake_call)
        answer = await answer_question(Node(id="5", label="Mitochondria"), "How?")
        assert answer == "They use oxidative phosphorylation."
        assert calls == [(CHAT_SYSTEM_PROMPT, False)]

    @pytest.mark.asyncio
    async def test_blank_question_is_rejected(self):
        with pytest.raises(ValueError):
            await answer_question(Node(id="5", label="Mitochondria"), "   ")

    @pytest.mark.asyncio
    async def test_empty_answer_fails(self, monkeypatch):
        async def fake_call(system_prompt, user_prompt, primary="gemini", json_mode=True):
            return ""

        monkeypatch.setattr(generation, "_hybrid_call", fake_call)
        with pytest.raises(GenerationFailed):
            await answer_question(Node(id="5", label="Mitochondria"), "How?")

    @pytest.mark.asyncio
    async def test_answer_timeout(self, monkeypatch):
        async def slow_call(system_prompt, user_prompt, primary="gemini", json_mode=True):
            await asyncio.sleep(5)
            return "late"

        monkeypatch.setattr(generation, "_hybrid_call", slow_call)
        with pytest.raises(GenerationTimeout):
            await answer_question(Node(id="5", label="Mitochondria"), "How?", timeout=0.01)
