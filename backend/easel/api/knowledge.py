"""
Style knowledge base API endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
import logging

from ..errors import (
    DuplicateStyleError,
    ProtectedStyleError,
    RetrievalError,
    StyleNotFoundError,
)
from ..knowledge.schema import (
    BatchDeleteResult,
    IndexStats,
    SearchOptions,
    StyleCreate,
    StyleUpdate,
)
from ..knowledge.vector_db import StyleIndex
from .models import (
    BatchDeleteRequest,
    StyleList,
    StyleResponse,
    StyleSearchResponse,
    StyleSearchResult,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/knowledge", tags=["knowledge"])


def get_style_index(request: Request) -> StyleIndex:
    """Style index of the running application"""
    return request.app.state.services.style_index


@router.get("/styles", response_model=StyleList)
async def list_styles(index: StyleIndex = Depends(get_style_index)):
    """List all styles"""
    records = await index.list_styles()
    return StyleList(
        styles=[StyleResponse.from_record(record) for record in records],
        total=len(records),
    )


@router.get("/search", response_model=StyleSearchResponse)
async def search_styles(
    q: str = Query(..., min_length=1),
    limit: int = Query(3, ge=1, le=50),
    min_similarity: float = Query(0.4, ge=0.0, le=1.0),
    index: StyleIndex = Depends(get_style_index),
):
    """Search styles by similarity"""
    try:
        hits = await index.search(q, SearchOptions(limit=limit, min_similarity=min_similarity))
    except RetrievalError as e:
        raise HTTPException(status_code=503, detail=e.message)
    return StyleSearchResponse(
        query=q,
        results=[
            StyleSearchResult(
                style_id=hit.style_id,
                label=hit.label,
                prompt_fragment=hit.prompt_fragment,
                similarity=hit.similarity,
            )
            for hit in hits
        ],
    )


@router.get("/stats", response_model=IndexStats)
async def get_stats(index: StyleIndex = Depends(get_style_index)):
    """Get index statistics"""
    return await index.stats()


@router.get("/styles/{style_id}", response_model=StyleResponse)
async def get_style(style_id: str, index: StyleIndex = Depends(get_style_index)):
    """Get a specific style"""
    try:
        record = await index.get(style_id)
    except StyleNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return StyleResponse.from_record(record)


@router.post("/styles", response_model=StyleResponse, status_code=201)
async def create_style(style: StyleCreate, index: StyleIndex = Depends(get_style_index)):
    """Add a user style"""
    if style.is_system_protected:
        raise HTTPException(status_code=403, detail="System styles cannot be created via the API")

    try:
        record = await index.add(style)
    except DuplicateStyleError as e:
        raise HTTPException(status_code=409, detail=e.message)
    return StyleResponse.from_record(record)


@router.patch("/styles/{style_id}", response_model=StyleResponse)
async def update_style(
    style_id: str,
    changes: StyleUpdate,
    index: StyleIndex = Depends(get_style_index),
):
    """Update a style"""
    try:
        record = await index.update(style_id, changes)
    except StyleNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ProtectedStyleError as e:
        raise HTTPException(status_code=403, detail=e.message)
    return StyleResponse.from_record(record)


@router.delete("/styles/{style_id}")
async def delete_style(style_id: str, index: StyleIndex = Depends(get_style_index)):
    """Delete a style"""
    try:
        await index.delete(style_id)
    except StyleNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ProtectedStyleError as e:
        raise HTTPException(status_code=403, detail=e.message)
    return {"message": "Style deleted successfully", "id": style_id}


@router.post("/styles/batch-delete", response_model=BatchDeleteResult)
async def batch_delete_styles(
    request: BatchDeleteRequest,
    index: StyleIndex = Depends(get_style_index),
):
    """Delete several styles"""
    result = await index.delete_many(request.ids)
    logger.info(f"Batch delete: {len(result.deleted)} deleted, {len(result.failed)} failed")
    return result
