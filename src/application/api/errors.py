"""Mapping from domain errors to HTTP responses."""

import logging

from fastapi import HTTPException

from domain.errors import (
    HierarchySyncError,
    NotFoundError,
    RebuildFailure,
    TransientStoreError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def to_http_exception(error: HierarchySyncError) -> HTTPException:
    """Translate a domain error into the matching HTTPException."""
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, ValidationError):
        return HTTPException(status_code=422, detail=str(error))
    if isinstance(error, TransientStoreError):
        return HTTPException(status_code=503, detail=str(error))
    if isinstance(error, RebuildFailure):
        logger.error(f"Rebuild failed: {error}")
        return HTTPException(status_code=500, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))
