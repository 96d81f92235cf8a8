import time
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile

from mindtree.api.deps import get_answerer, get_generator, get_repository
from mindtree.api.errors import to_http_exception
from mindtree.core.exceptions import GenerationFailed, IssueCode
from mindtree.engine.layout import LayoutConfig, apply_layout, layout
from mindtree.engine.outline import parse_outline
from mindtree.schemas.api import IssueOut, ProcessingMeta, TreeResponse
from mindtree.schemas.mindmap import (
    ChatRequest,
    ChatResponse,
    DuplicateRequest,
    GenerationRequest,
    GenerationResponse,
    LayoutRequest,
    LayoutResponse,
    MindMapRecord,
    Node,
    OutlineRequest,
    RecordCreate,
    RecordUpdate,
)
from mindtree.services.file_service import extract_text_from_pdf
from mindtree.services.generation import NodeAnswerer, NodeGenerator, generate
from mindtree.services.storage import MindMapRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/mindmaps", tags=["Mind Maps"])


def _tree_response(nodes, issues, started: float, source: Optional[str] = None) -> TreeResponse:
    return TreeResponse(
        meta=ProcessingMeta(
            processing_time=f"{time.perf_counter() - started:.1f}s",
            node_count=len(nodes),
            source=source,
        ),
        nodes=nodes,
        issues=[IssueOut(**issue.as_dict()) for issue in issues],
    )


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 1. GENERATION
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.post("/generate", response_model=GenerationResponse, response_model_by_alias=True)
async def generate_mindmap(request: GenerationRequest, generator: NodeGenerator = Depends(get_generator)):
    """
    Generation contract: ``{content, expandNode?, parentNodeId?, parentLevel?, newMindMap?}`` → ``{nodes}``.
    Whole maps come back reconciled. Expansion batches come back as
    unmerged candidates under the requested parent: their ids are the
    generator's own, and level/color are only set when ``parentLevel`` is
    given. Callers merge them into their tree before rendering.
    """
    try:
        if not request.content.strip():
            raise HTTPException(status_code=400, detail="Content cannot be empty.")
        result = await generate(request, generator)
        if any(issue.code == IssueCode.NO_ROOT_FOUND for issue in result.issues):
            raise GenerationFailed("Generated nodes contain no root")
        return GenerationResponse(nodes=result.nodes)
    except Exception as e:
        raise to_http_exception(e, "Mind map generation")


@router.post("/outline", response_model=TreeResponse)
async def outline_mindmap(request: OutlineRequest):
    """Numbered outline → positioned tree. No generator involved."""
    started = time.perf_counter()
    try:
        nodes = apply_layout(parse_outline(request.text, request.title))
        return _tree_response(nodes, [], started, source="outline")
    except Exception as e:
        raise to_http_exception(e, "Outline parsing")


@router.post("/layout", response_model=LayoutResponse)
async def layout_mindmap(request: LayoutRequest):
    """Positions for an already-structured node set."""
    try:
        config = LayoutConfig.from_settings(direction=request.direction)
        return LayoutResponse(positions=layout(request.nodes, config))
    except Exception as e:
        raise to_http_exception(e, "Layout")


@router.post("/upload", response_model=TreeResponse)
async def upload_pdf(file: UploadFile = File(...), generator: NodeGenerator = Depends(get_generator)):
    """PDF → text → generated, reconciled and positioned tree."""
    started = time.perf_counter()
    try:
        if not file.filename:
            raise HTTPException(status_code=400, detail="No filename provided.")

        content = await file.read()
        try:
            text = await extract_text_from_pdf(content, file.filename)
        except ValueError as ve:
            raise HTTPException(status_code=400, detail=str(ve))

        result = await generate(GenerationRequest(content=text), generator)
        if any(issue.code == IssueCode.NO_ROOT_FOUND for issue in result.issues):
            raise GenerationFailed("Generated nodes contain no root")
        nodes = apply_layout(result.nodes)

        logger.info(f"[PROCESS] ✓ {file.filename} — {len(nodes)} nodes — {time.perf_counter() - started:.1f}s")
        return _tree_response(nodes, result.issues, started, source=file.filename)
    except Exception as e:
        raise to_http_exception(e, "Upload")


@router.post("/chat", response_model=ChatResponse)
async def chat_about_node(request: ChatRequest, answerer: NodeAnswerer = Depends(get_answerer)):
    """Question about one node, answered from its label, description and level."""
    try:
        node = Node(
            id="context",
            label=request.context.node_label,
            description=request.context.node_description,
            level=request.context.level,
        )
        return ChatResponse(response=await answerer(node, request.message))
    except Exception as e:
        raise to_http_exception(e, "Chat")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# 2. SAVED MIND MAPS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@router.get("/saved", response_model=List[MindMapRecord], response_model_by_alias=True)
async def list_saved(
    search: Optional[str] = Query(default=None),
    public_only: bool = Query(default=False, alias="publicOnly"),
    repository: MindMapRepository = Depends(get_repository),
):
    return await repository.list(search=search, public_only=public_only)


@router.post("/saved", response_model=MindMapRecord, response_model_by_alias=True, status_code=201)
async def create_saved(body: RecordCreate, repository: MindMapRepository = Depends(get_repository)):
    try:
        return await repository.create(
            body.title,
            body.nodes,
            description=body.description,
            is_public=body.is_public,
            tags=body.tags,
        )
    except Exception as e:
        raise to_http_exception(e, "Save")


@router.get("/saved/{record_id}", response_model=MindMapRecord, response_model_by_alias=True)
async def get_saved(record_id: str, repository: MindMapRepository = Depends(get_repository)):
    try:
        return await repository.get(record_id)
    except Exception as e:
        raise to_http_exception(e, "Load")


@router.patch("/saved/{record_id}", response_model=MindMapRecord, response_model_by_alias=True)
async def update_saved(record_id: str, body: RecordUpdate, repository: MindMapRepository = Depends(get_repository)):
    try:
        fields = {name: getattr(body, name) for name in body.model_fields_set}
        return await repository.update(record_id, **fields)
    except Exception as e:
        raise to_http_exception(e, "Update")


@router.delete("/saved/{record_id}", status_code=204)
async def delete_saved(record_id: str, repository: MindMapRepository = Depends(get_repository)):
    try:
        await repository.delete(record_id)
        return Response(status_code=204)
    except Exception as e:
        raise to_http_exception(e, "Delete")


@router.post("/saved/{record_id}/duplicate", response_model=MindMapRecord, response_model_by_alias=True, status_code=201)
async def duplicate_saved(
    record_id: str,
    body: Optional[DuplicateRequest] = None,
    repository: MindMapRepository = Depends(get_repository),
):
    try:
        return await repository.duplicate(record_id, body.title if body else None)
    except Exception as e:
        raise to_http_exception(e, "Duplicate")
