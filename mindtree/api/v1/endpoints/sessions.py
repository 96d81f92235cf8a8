import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile

from mindtree.api.deps import get_sessions
from mindtree.api.errors import to_http_exception
from mindtree.schemas.api import Breadcrumb, IssueOut, SessionState, SpawnedMapsOut
from mindtree.schemas.mindmap import (
    ChatResponse,
    ExpandRequest,
    MindMapRecord,
    NodeQuestion,
    NodeUpdate,
    OutlineRequest,
    SpinOffRequest,
)
from mindtree.services.session import MindMapSession, SessionRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["Sessions"])


class GenerateBody(OutlineRequest):
    """``text`` is free text or an outline; the generator picks the prompt."""


# ── Helpers ──────────────────────────────────────────────────────────────────

def _breadcrumbs(session: MindMapSession) -> List[Breadcrumb]:
    return [
        Breadcrumb(id=entry.id, title=entry.title, parent_node_id=entry.parent_node_id)
        for entry in session.breadcrumbs()
    ]


def _state(session: MindMapSession) -> SessionState:
    return SessionState(
        session_id=session.session_id,
        current=session.current,
        breadcrumbs=_breadcrumbs(session),
        issues=[IssueOut(**issue.as_dict()) for issue in session.issues],
    )


def _session(session_id: str, sessions: SessionRegistry) -> MindMapSession:
    try:
        return sessions.get(session_id)
    except Exception as e:
        raise to_http_exception(e, "Session lookup")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 1. SESSION LIFECYCLE
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.post("", response_model=SessionState, status_code=201)
async def create_session(sessions: SessionRegistry = Depends(get_sessions)):
    return _state(await sessions.create())


@router.get("/{session_id}", response_model=SessionState)
async def get_session(session_id: str, sessions: SessionRegistry = Depends(get_sessions)):
    return _state(_session(session_id, sessions))


@router.delete("/{session_id}", status_code=204)
async def close_session(session_id: str, sessions: SessionRegistry = Depends(get_sessions)):
    """Save pending changes and drop the session."""
    try:
        await sessions.close(session_id)
        return Response(status_code=204)
    except Exception as e:
        raise to_http_exception(e, "Session close")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 2. NEW MAPS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.post("/{session_id}/generate", response_model=SessionState)
async def generate_map(session_id: str, body: GenerateBody, sessions: SessionRegistry = Depends(get_sessions)):
    """First generation from free text or an outline-shaped text."""
    session = _session(session_id, sessions)
    try:
        await session.generate_from_text(body.text, body.title)
        return _state(session)
    except Exception as e:
        raise to_http_exception(e, "Mind map generation")


@router.post("/{session_id}/outline", response_model=SessionState)
async def outline_map(session_id: str, body: OutlineRequest, sessions: SessionRegistry = Depends(get_sessions)):
    session = _session(session_id, sessions)
    try:
        await session.from_outline(body.text, body.title)
        return _state(session)
    except Exception as e:
        raise to_http_exception(e, "Outline parsing")


@router.post("/{session_id}/upload", response_model=SessionState)
async def upload_map(
    session_id: str,
    file: UploadFile = File(...),
    title: Optional[str] = Form(default=None),
    sessions: SessionRegistry = Depends(get_sessions),
):
    session = _session(session_id, sessions)
    try:
        content = await file.read()
        await session.from_pdf(content, file.filename or "", title)
        return _state(session)
    except Exception as e:
        raise to_http_exception(e, "Upload")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 3. NODE OPERATIONS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.post("/{session_id}/nodes/{node_id}/expand", response_model=SessionState)
async def expand_node(
    session_id: str,
    node_id: str,
    body: Optional[ExpandRequest] = None,
    sessions: SessionRegistry = Depends(get_sessions),
):
    session = _session(session_id, sessions)
    try:
        await session.expand_node(node_id, body.content if body else None)
        return _state(session)
    except Exception as e:
        raise to_http_exception(e, "Node expansion")


@router.post("/{session_id}/nodes/{node_id}/spin-off", response_model=SessionState)
async def spin_off_node(
    session_id: str,
    node_id: str,
    body: Optional[SpinOffRequest] = None,
    sessions: SessionRegistry = Depends(get_sessions),
):
    """New mind map about one node, linked back to it in the history forest."""
    session = _session(session_id, sessions)
    body = body or SpinOffRequest()
    try:
        await session.spin_off(node_id, body.content, body.method, body.title)
        return _state(session)
    except Exception as e:
        raise to_http_exception(e, "Spin-off")


@router.patch("/{session_id}/nodes/{node_id}", response_model=SessionState)
async def update_node(
    session_id: str,
    node_id: str,
    body: NodeUpdate,
    sessions: SessionRegistry = Depends(get_sessions),
):
    session = _session(session_id, sessions)
    try:
        await session.rename_node(node_id, body.label, body.description)
        return _state(session)
    except Exception as e:
        raise to_http_exception(e, "Node update")


@router.delete("/{session_id}/nodes/{node_id}", response_model=SessionState)
async def delete_node(session_id: str, node_id: str, sessions: SessionRegistry = Depends(get_sessions)):
    session = _session(session_id, sessions)
    try:
        await session.delete_node(node_id)
        return _state(session)
    except Exception as e:
        raise to_http_exception(e, "Node deletion")


@router.get("/{session_id}/nodes/{node_id}/spawned", response_model=SpawnedMapsOut)
async def spawned_maps(session_id: str, node_id: str, sessions: SessionRegistry = Depends(get_sessions)):
    """Maps spun off from a node. Exactly one is opened; several are listed as choices."""
    session = _session(session_id, sessions)
    try:
        spawned = await session.resolve_spawned(node_id)
        return SpawnedMapsOut(
            node_id=node_id,
            navigated=spawned.navigated,
            choices=[
                Breadcrumb(id=entry.id, title=entry.title, parent_node_id=entry.parent_node_id)
                for entry in spawned.entries
            ] if spawned.needs_choice else [],
            state=_state(session),
        )
    except Exception as e:
        raise to_http_exception(e, "Spawned lookup")


@router.post("/{session_id}/nodes/{node_id}/chat", response_model=ChatResponse)
async def chat_about_node(
    session_id: str,
    node_id: str,
    body: NodeQuestion,
    sessions: SessionRegistry = Depends(get_sessions),
):
    """Question about one node of the current map. The map is not changed."""
    session = _session(session_id, sessions)
    try:
        return ChatResponse(response=await session.ask_about_node(node_id, body.message))
    except Exception as e:
        raise to_http_exception(e, "Chat")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 4. NAVIGATION
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.post("/{session_id}/navigate/{entry_id}", response_model=SessionState)
async def navigate(session_id: str, entry_id: str, sessions: SessionRegistry = Depends(get_sessions)):
    """Unknown targets leave the session where it is and report StaleNavigationTarget."""
    session = _session(session_id, sessions)
    await session.navigate_to(entry_id)
    return _state(session)


@router.post("/{session_id}/back", response_model=SessionState)
async def navigate_back(session_id: str, sessions: SessionRegistry = Depends(get_sessions)):
    session = _session(session_id, sessions)
    await session.navigate_back()
    return _state(session)


@router.get("/{session_id}/breadcrumbs", response_model=List[Breadcrumb])
async def breadcrumbs(session_id: str, sessions: SessionRegistry = Depends(get_sessions)):
    return _breadcrumbs(_session(session_id, sessions))


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 5. PERSISTENCE
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.post("/{session_id}/load/{record_id}", response_model=SessionState)
async def load_record(session_id: str, record_id: str, sessions: SessionRegistry = Depends(get_sessions)):
    session = _session(session_id, sessions)
    try:
        await session.load(record_id)
        return _state(session)
    except Exception as e:
        raise to_http_exception(e, "Load")


@router.post("/{session_id}/save", response_model=MindMapRecord, response_model_by_alias=True)
async def save_current(session_id: str, sessions: SessionRegistry = Depends(get_sessions)):
    session = _session(session_id, sessions)
    try:
        return await session.save()
    except Exception as e:
        raise to_http_exception(e, "Save")
