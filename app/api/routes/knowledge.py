"""
Knowledge API endpoints.

These endpoints expose the knowledge base for:
1. The web UI search page (keyword / semantic / hybrid)
2. Ingesting one of the caller's assistant messages (backfills, retries)
"""

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from app.api.dependencies import (
    get_current_user_id,
    get_database,
    get_knowledge_service,
    is_valid_uuid,
)
from app.api.models import (
    IngestRequest,
    IngestResponse,
    PipelineResultModel,
    SearchRequest,
    SearchResponse,
    SearchResultModel,
)
from app.core.logging_utils import sanitize_for_logging
from app.features.knowledge import KnowledgeService, SearchFilters
from app.services.database import KnowledgeDatabase
from app.shared.errors import APIError, ErrorCode, ValidationError

logger = logging.getLogger("TeamMemory.API.Knowledge")
router = APIRouter(tags=["knowledge"])


@router.post("/search", response_model=SearchResponse)
async def search_knowledge(
    request: SearchRequest,
    user_id: str = Depends(get_current_user_id),
    knowledge: KnowledgeService = Depends(get_knowledge_service),
):
    """
    Search the team knowledge base.

    Modes: ``hybrid`` (default, semantic 0.7 + keyword 0.3), ``semantic``,
    ``keyword``. Search never fails on backend errors; it returns no results.
    """
    query = request.query.strip()
    if not query:
        raise ValidationError("Query cannot be empty.")

    filters = request.filters
    if filters.user_id and not is_valid_uuid(filters.user_id):
        raise ValidationError("Filter user_id must be a valid UUID.")

    logger.info(
        f"Search by {user_id} ({request.mode}): {sanitize_for_logging(query, max_len=80)}"
    )
    results = await knowledge.search(
        query,
        mode=request.mode,
        filters=SearchFilters(
            tag=filters.tag,
            user_id=filters.user_id,
            visibility=filters.visibility,
            limit=filters.limit,
        ),
    )
    return SearchResponse(results=[SearchResultModel(**r.to_dict()) for r in results])


@router.post("/knowledge/ingest")
async def ingest_message(
    request: IngestRequest,
    wait: bool = Query(False, description="Run inline and return the pipeline result"),
    user_id: str = Depends(get_current_user_id),
    database: KnowledgeDatabase = Depends(get_database),
    knowledge: KnowledgeService = Depends(get_knowledge_service),
):
    """
    Turn one of the caller's assistant messages into a knowledge card.

    By default the pipeline is scheduled in the background and 202 is
    returned immediately. ``?wait=true`` runs it inline and returns its
    result, for backfills and debugging.
    """
    message_id = request.assistant_message_id
    if not is_valid_uuid(message_id):
        raise ValidationError("assistant_message_id must be a valid UUID.")

    message = await database.get_message(message_id)
    if message is None:
        raise APIError(ErrorCode.MESSAGE_NOT_FOUND, "Message not found.", 404)
    if message.get("user_id") != user_id:
        logger.warning(f"User {user_id} tried to ingest message {message_id} owned by another user")
        raise APIError(ErrorCode.FORBIDDEN, "You do not have access to this message.", 403)

    if wait:
        result = await knowledge.ingest(message_id, user_id)
        return PipelineResultModel(**result.to_dict())

    knowledge.ingest_detached(message_id, user_id)
    return JSONResponse(
        status_code=202,
        content=IngestResponse(
            status="accepted",
            assistant_message_id=message_id,
        ).model_dump(),
    )
