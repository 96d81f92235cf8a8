import logging

from fastapi import HTTPException

from mindtree.core.exceptions import (
    GenerationFailed,
    GenerationTimeout,
    InvalidOperation,
    MindMapNotFound,
    NodeNotFound,
    SessionNotFound,
)

logger = logging.getLogger(__name__)


def to_http_exception(exc: Exception, action: str) -> HTTPException:
    """Translate a domain error raised while doing ``action`` into an HTTP error."""
    if isinstance(exc, HTTPException):
        return exc
    if isinstance(exc, (NodeNotFound, MindMapNotFound, SessionNotFound)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, GenerationTimeout):
        logger.warning(f"{action} timed out: {exc}")
        return HTTPException(status_code=504, detail=exc.user_message)
    if isinstance(exc, GenerationFailed):
        logger.warning(f"{action} failed: {exc}")
        return HTTPException(status_code=502, detail=exc.user_message)
    if isinstance(exc, InvalidOperation):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, ValueError):
        return HTTPException(status_code=422, detail=str(exc))
    logger.error(f"{action} failed: {exc}")
    return HTTPException(status_code=500, detail=f"Internal error: {str(exc)}")
