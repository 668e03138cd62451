"""Indexing API endpoints.

Documents are always rebuilt from the catalog row, so callers only name
the resource that changed.
"""

import sqlite3

from fastapi import APIRouter, Depends, HTTPException

from src.api.cache import RedisCache
from src.api.dependencies import get_cache, get_db_path, get_gateway
from src.api.schemas import IndexResponse
from src.search.documents import load_document, load_documents
from src.search.errors import IndexingError
from src.search.gateway import SearchGateway
from src.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/index", tags=["index"])


@router.put("/{resource_id}", response_model=IndexResponse)
def index_resource(
    resource_id: str,
    gateway: SearchGateway = Depends(get_gateway),
    db_path: str = Depends(get_db_path),
    cache: RedisCache | None = Depends(get_cache),
) -> IndexResponse:
    """Push the current catalog state of one resource to the index.

    A resource that is no longer listed and active is removed instead.

    Raises:
        HTTPException: 404 if the resource is not in the catalog, 503 if
            the backend rejected the write.
    """
    try:
        document = load_document(db_path, resource_id)
    except sqlite3.Error as e:
        logger.error("Catalog read failed for %s: %s", resource_id, e)
        raise HTTPException(status_code=503, detail="Catalog unavailable")
    if document is None:
        raise HTTPException(status_code=404, detail=f"Resource {resource_id} not found")

    try:
        if document.is_listed:
            gateway.index_resource(document)
            action = "indexed"
        else:
            gateway.remove_resource(resource_id)
            action = "removed"
    except IndexingError as e:
        raise HTTPException(status_code=503, detail=str(e))

    if cache is not None:
        cache.invalidate_resource(resource_id)
    return IndexResponse(action=action, resource_id=resource_id)


@router.delete("/{resource_id}", response_model=IndexResponse)
def remove_resource(
    resource_id: str,
    gateway: SearchGateway = Depends(get_gateway),
    cache: RedisCache | None = Depends(get_cache),
) -> IndexResponse:
    """Remove one resource from the index; unknown ids are a no-op."""
    try:
        gateway.remove_resource(resource_id)
    except IndexingError as e:
        raise HTTPException(status_code=503, detail=str(e))

    if cache is not None:
        cache.invalidate_resource(resource_id)
    return IndexResponse(action="removed", resource_id=resource_id)


@router.post("/rebuild", response_model=IndexResponse)
def rebuild_index(
    gateway: SearchGateway = Depends(get_gateway),
    db_path: str = Depends(get_db_path),
) -> IndexResponse:
    """Rebuild the whole index from every listed/active resource."""
    try:
        documents = load_documents(db_path)
    except sqlite3.Error as e:
        logger.error("Catalog read failed during rebuild: %s", e)
        raise HTTPException(status_code=503, detail="Catalog unavailable")

    try:
        gateway.reindex_all(documents)
    except IndexingError as e:
        raise HTTPException(status_code=503, detail=str(e))

    logger.info("Rebuilt %s index with %d documents", gateway.vendor, len(documents))
    return IndexResponse(action="rebuilt", count=len(documents))
