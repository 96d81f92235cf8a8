"""
Mindtree — Generation Client
=============================
Asks an LLM (Groq + Gemini) for mind-map nodes and hands back only
payloads that fully validate:

  - Prompt selection: node expansion / new map / outline / free text
  - Multi-provider hybrid call with automatic failover
  - Robust JSON extraction with retry logic
  - Explicit timeout → GenerationTimeout
  - Anything unparseable → GenerationFailed ("invalid response format")

The caller decides what to do with the nodes: first generations go
through the reconciler, expansions through the merger.
"""

import json
import re
import logging
import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

import google.generativeai as genai
from groq import AsyncGroq
from pydantic import ValidationError

from mindtree.core.config import settings
from mindtree.core.exceptions import GenerationFailed, GenerationTimeout, Issue
from mindtree.engine.nodes import color_for_level
from mindtree.engine.outline import looks_like_outline
from mindtree.engine.reconciler import reconcile
from mindtree.schemas.mindmap import GenerationRequest, GenerationResponse, Node

logger = logging.getLogger(__name__)

NodeGenerator = Callable[[GenerationRequest], Awaitable[List[Node]]]

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# CLIENT INITIALIZATION
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

logger.info(f"[AI-ENGINE] Provider mode: {settings.AI_PROVIDER}")

groq_client: Optional[AsyncGroq] = None
if settings.GROQ_API_KEY:
    groq_client = AsyncGroq(api_key=settings.GROQ_API_KEY)
    logger.info("[AI-ENGINE] ✓ Groq client ready")
else:
    logger.warning("[AI-ENGINE] ✗ Groq API key missing")

if settings.GOOGLE_API_KEY:
    genai.configure(api_key=settings.GOOGLE_API_KEY, transport="rest")
    logger.info("[AI-ENGINE] ✓ Gemini client ready")
else:
    logger.warning("[AI-ENGINE] ✗ Google API key missing")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# SYSTEM PROMPTS (STRICT JSON)
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

_NODE_SCHEMA = (
    "Output MUST be valid JSON matching this EXACT schema:\n"
    "{\n"
    '  "nodes": [\n'
    "    {\n"
    '      "id": "1",\n'
    '      "label": "Short label",\n'
    '      "description": "Educational explanation...",\n'
    '      "level": 0,\n'
    '      "x": 0,\n'
    '      "y": 0,\n'
    '      "color": "#8b5cf6",\n'
    '      "parent": null,\n'
    '      "children": []\n'
    "    }\n"
    "  ]\n"
    "}\n\n"
    "Colors by level: 0 #8b5cf6, 1 #3b82f6, 2 #10b981, 3 #f59e0b, 4 #ef4444, 5+ #ec4899.\n"
    "Output ONLY the JSON object — no markdown fences, no commentary.\n"
)

FREE_TEXT_SYSTEM_PROMPT = (
    "You are a knowledge-structuring expert.\n"
    "Analyse the text and build a structured mind map.\n"
    "- Exactly one central topic at level 0.\n"
    "- 5-7 main branches at level 1 covering the fundamental concepts.\n"
    "- 3-4 sub-branches (level 2) per branch with specific details.\n"
    "- Add level 3 only for concrete examples.\n"
    "- Labels in the SAME language as the source text.\n\n"
    + _NODE_SCHEMA
)

OUTLINE_SYSTEM_PROMPT = (
    "You are a knowledge-structuring expert.\n"
    "Convert the given topic outline into a mind map.\n"
    "- Use the first topic as the central node (level 0).\n"
    "- Keep the original hierarchy and the original texts as labels.\n"
    "- Add an educational description to every topic.\n\n"
    + _NODE_SCHEMA
)

NEW_MAP_SYSTEM_PROMPT = (
    "You are a knowledge-structuring expert.\n"
    "Create a detailed mind map about the given subject.\n"
    "- Central node (level 0): the subject itself.\n"
    "- 5-7 main branches (level 1) covering fundamental aspects.\n"
    "- 3-4 subtopics (level 2) per branch.\n"
    "- Examples and characteristics at level 3.\n\n"
    + _NODE_SCHEMA
)

EXPANSION_SYSTEM_PROMPT = (
    "You are a knowledge-structuring expert.\n"
    "Expand the given topic into 3-5 detailed child nodes.\n"
    "- Return ONLY the new child nodes, never the topic itself.\n"
    "- Each child needs a concise label (2-3 words) and an educational description.\n"
    "- Use temporary positions (x: 0, y: 0).\n\n"
    + _NODE_SCHEMA
)


def select_prompt(request: GenerationRequest) -> str:
    if request.expand_node:
        return EXPANSION_SYSTEM_PROMPT
    if request.new_mind_map:
        return NEW_MAP_SYSTEM_PROMPT
    if looks_like_outline(request.content):
        return OUTLINE_SYSTEM_PROMPT
    return FREE_TEXT_SYSTEM_PROMPT


def build_user_prompt(request: GenerationRequest) -> str:
    content = request.content
    if len(content) > settings.MAX_CONTENT_LENGTH:
        content = content[: settings.MAX_CONTENT_LENGTH] + "..."

    if request.expand_node:
        return (
            f"Topic to expand: {content}\n"
            f'Every child must have "parent": "{request.parent_node_id}" '
            f'and a new id of the form "{request.parent_node_id}-new-<n>".'
        )
    if request.new_mind_map:
        return f"Create a mind map about: {content}"
    return f"SOURCE TEXT:\n{content}"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# JSON RECOVERY
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def clean_and_parse_json(raw_text: str) -> Dict[str, Any]:
    """
    Robust JSON extractor:
    1. Strip markdown code fences (```json ... ```)
    2. Extract first { ... } block
    3. Parse with json.loads
    Raises ValueError on failure with diagnostic info.
    """
    if not raw_text or not raw_text.strip():
        raise ValueError("Empty AI response received")

    cleaned = raw_text.strip()

    # Strategy 1: Remove ```json ... ``` wrapper
    fence_match = re.search(r"```(?:json)?\s*\n?(.*?)\n?\s*```", cleaned, re.DOTALL)
    if fence_match:
        cleaned = fence_match.group(1).strip()

    # Strategy 2: Find the first { ... } block (greedy from first { to last })
    if not cleaned.startswith("{"):
        brace_match = re.search(r"\{.*\}", cleaned, re.DOTALL)
        if brace_match:
            cleaned = brace_match.group(0)

    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"JSON parse failed. Raw (first 500 chars): {raw_text[:500]}")
        raise ValueError(f"AI returned invalid JSON: {e}")

    if not isinstance(parsed, dict):
        raise ValueError("AI returned JSON that is not an object")
    return parsed


def parse_nodes(parsed: Dict[str, Any]) -> List[Node]:
    """Validate a decoded payload into nodes. All or nothing."""
    try:
        response = GenerationResponse.model_validate(parsed)
    except ValidationError as e:
        raise ValueError(f"AI payload does not match the node schema: {e.error_count()} error(s)")
    if not response.nodes:
        raise ValueError("AI payload contains no nodes")
    return response.nodes


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# PROVIDER CALLS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

async def _call_groq(system_prompt: str, user_prompt: str, json_mode: bool = True) -> str:
    """Call Groq (Llama 3), in JSON mode with temperature=0 unless asked for prose."""
    if not groq_client:
        raise ValueError("Groq API Key missing")

    options = {"response_format": {"type": "json_object"}, "temperature": 0} if json_mode else {"temperature": 0.4}

    logger.info(f"[AI-ENGINE] Calling Groq ({settings.GROQ_MODEL})...")
    completion = await groq_client.chat.completions.create(
        model=settings.GROQ_MODEL,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        max_tokens=8000,
        **options,
    )
    result = completion.choices[0].message.content
    logger.info("[AI-ENGINE] ✓ Groq call succeeded")
    return result


async def _call_gemini(system_prompt: str, user_prompt: str, json_mode: bool = True) -> str:
    """Call Gemini, in JSON mode with temperature=0 unless asked for prose."""
    if not settings.GOOGLE_API_KEY:
        raise ValueError("Google API Key missing")

    logger.info(f"[AI-ENGINE] Calling Gemini ({settings.GEMINI_MODEL})...")
    model = genai.GenerativeModel(
        model_name=settings.GEMINI_MODEL,
        generation_config={
            "response_mime_type": "application/json" if json_mode else "text/plain",
            "temperature": 0 if json_mode else 0.4,
        },
    )
    full_prompt = f"{system_prompt}\n\nUser Task:\n{user_prompt}"
    response = await asyncio.to_thread(model.generate_content, full_prompt)
    logger.info("[AI-ENGINE] ✓ Gemini call succeeded")
    return response.text


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# HYBRID CALL WITH FAILOVER
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

async def _hybrid_call(
    system_prompt: str,
    user_prompt: str,
    primary: str = "gemini",
    json_mode: bool = True,
) -> str:
    """
    Execute AI call with automatic failover.
    In 'hybrid' mode: tries primary first, then the other.
    """
    provider = settings.AI_PROVIDER

    if provider == "groq":
        callers = [("Groq", _call_groq)]
    elif provider == "gemini":
        callers = [("Gemini", _call_gemini)]
    else:  # hybrid
        if primary == "groq":
            callers = [("Groq", _call_groq), ("Gemini", _call_gemini)]
        else:
            callers = [("Gemini", _call_gemini), ("Groq", _call_groq)]

    last_error = None
    for name, caller in callers:
        try:
            return await caller(system_prompt, user_prompt, json_mode=json_mode)
        except Exception as e:
            last_error = e
            logger.warning(f"[AI-ENGINE] {name} failed: {str(e)[:200]}. Trying next...")

    raise GenerationFailed(f"All AI providers failed. Last error: {last_error}")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# GENERATION WITH RETRY
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

async def request_nodes(request: GenerationRequest) -> List[Node]:
    """
    Ask the providers for nodes, retrying on unusable payloads.
    Returns the validated nodes exactly as generated (links untrusted).
    """
    mode = "expand" if request.expand_node else "new-map" if request.new_mind_map else "first"
    logger.info(f"[MINDMAP] Starting generation ({mode})...")

    system_prompt = select_prompt(request)
    user_prompt = build_user_prompt(request)

    last_error = None
    for attempt in range(1, settings.MAX_RETRIES + 1):
        try:
            raw = await _hybrid_call(system_prompt, user_prompt, primary="gemini")
            nodes = parse_nodes(clean_and_parse_json(raw))
            logger.info(f"[MINDMAP] ✓ Generated {len(nodes)} nodes (attempt {attempt})")
            return nodes
        except ValueError as e:
            last_error = e
            logger.warning(f"[MINDMAP] Attempt {attempt}/{settings.MAX_RETRIES} failed: {e}")

    raise GenerationFailed(f"Mind map generation failed after {settings.MAX_RETRIES} attempts: {last_error}")


async def generate_with_timeout(
    generator: NodeGenerator,
    request: GenerationRequest,
    timeout: Optional[float] = None,
) -> List[Node]:
    """Run ``generator`` under a hard deadline; nothing partial ever escapes."""
    timeout = settings.GENERATION_TIMEOUT_SECONDS if timeout is None else timeout
    try:
        return await asyncio.wait_for(generator(request), timeout=timeout)
    except asyncio.TimeoutError:
        logger.error(f"[MINDMAP] ✗ Generation timed out after {timeout}s")
        raise GenerationTimeout(f"Generation timed out after {timeout}s")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# RESPONSE SHAPING
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass
class GenerationResult:
    nodes: List[Node]
    issues: List[Issue] = field(default_factory=list)


def shape_generated(request: GenerationRequest, nodes: List[Node]) -> GenerationResult:
    """
    Expansion batches keep their generated ids (the merger drops echoes of
    existing nodes and assigns the final ids) and get the requested parent;
    whole maps are reconciled into a single tree. Positions are always reset.
    """
    if request.expand_node:
        update: Dict[str, Any] = {
            "parent": request.parent_node_id,
            "children": [],
            "child_mind_map_ids": [],
            "x": 0,
            "y": 0,
        }
        if request.parent_level is not None:
            update["level"] = request.parent_level + 1
            update["color"] = color_for_level(request.parent_level + 1)
        return GenerationResult(nodes=[node.model_copy(update=update) for node in nodes])

    fresh = [
        node.model_copy(update={"child_mind_map_ids": [], "x": 0, "y": 0})
        for node in nodes
    ]
    result = reconcile(fresh)
    return GenerationResult(nodes=result.nodes, issues=result.issues)


async def generate(
    request: GenerationRequest,
    generator: Optional[NodeGenerator] = None,
    timeout: Optional[float] = None,
) -> GenerationResult:
    """Full generation contract: bounded call, validation, then shaping."""
    nodes = await generate_with_timeout(generator or request_nodes, request, timeout)
    return shape_generated(request, nodes)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# NODE Q&A
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

NodeAnswerer = Callable[[Node, str], Awaitable[str]]

CHAT_SYSTEM_PROMPT = (
    "You are an expert educational assistant helping a user understand one topic of a mind map.\n"
    "- Answer the user's question directly.\n"
    "- Use clear, accessible language and give concrete examples where they help.\n"
    "- Relate the answer back to the topic.\n"
    "- Keep it concise: 2-4 short paragraphs at most.\n"
    "- Reply in the same language as the question.\n"
)


def build_chat_prompt(node: Node, question: str) -> str:
    question = question.strip()
    if len(question) > settings.MAX_CONTENT_LENGTH:
        question = question[: settings.MAX_CONTENT_LENGTH] + "..."
    return (
        "Context:\n"
        f"- Topic: {node.label}\n"
        f"- Description: {node.description or '(none)'}\n"
        f"- Level: {node.level}\n\n"
        f"User Question: {question}"
    )


async def answer_question(node: Node, question: str, timeout: Optional[float] = None) -> str:
    """Free-text answer about one node, bounded by the generation timeout."""
    if not question or not question.strip():
        raise ValueError("Message is required")

    timeout = settings.GENERATION_TIMEOUT_SECONDS if timeout is None else timeout
    logger.info(f"[CHAT] Question about '{node.label}'")
    try:
        answer = await asyncio.wait_for(
            _hybrid_call(CHAT_SYSTEM_PROMPT, build_chat_prompt(node, question), json_mode=False),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.error(f"[CHAT] ✗ Answer timed out after {timeout}s")
        raise GenerationTimeout(f"Answer timed out after {timeout}s")

    if not answer or not answer.strip():
        raise GenerationFailed("AI returned an empty answer")
    logger.info(f"[CHAT] ✓ Answered ({len(answer)} chars)")
    return answer.strip()
