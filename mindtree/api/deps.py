"""
Process-wide singletons handed to the routers through ``Depends``.
Tests swap them with ``app.dependency_overrides``.
"""

from mindtree.core.config import settings
from mindtree.services.generation import NodeAnswerer, NodeGenerator, answer_question, request_nodes
from mindtree.services.session import SessionRegistry
from mindtree.services.storage import InMemoryMindMapRepository, MindMapRepository

_repository = InMemoryMindMapRepository()
_registry = SessionRegistry(
    repository=_repository,
    generator=request_nodes,
    answerer=answer_question,
    autosave_delay=settings.AUTOSAVE_DEBOUNCE_SECONDS,
    ttl=settings.SESSION_TTL_SECONDS,
)


def get_repository() -> MindMapRepository:
    return _repository


def get_generator() -> NodeGenerator:
    return request_nodes


def get_answerer() -> NodeAnswerer:
    return answer_question


def get_sessions() -> SessionRegistry:
    return _registry
