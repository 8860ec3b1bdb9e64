from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any, Literal

from app.features.chat import ChatExchange

# =========================================================================
# CHAT MODELS
# =========================================================================

class ChatMetadata(BaseModel):
    client: Optional[str] = None
    tags: Optional[List[str]] = None

class ChatRequest(BaseModel):
    message: str = Field(..., description="The user's question")
    conversation_id: Optional[str] = Field(None, description="Existing conversation UUID")
    model: Optional[str] = Field(None, description="Chat model override")
    metadata: Optional[ChatMetadata] = None

ChatResponse = ChatExchange

# =========================================================================
# SEARCH MODELS
# =========================================================================

class SearchFiltersModel(BaseModel):
    tag: Optional[str] = None
    user_id: Optional[str] = Field(None, description="Only cards owned by this user UUID")
    visibility: Optional[Literal["team", "private", "all"]] = None
    limit: Optional[int] = Field(None, ge=1, le=100)

class SearchRequest(BaseModel):
    query: str = Field(..., description="Search query text")
    mode: Literal["hybrid", "semantic", "keyword"] = "hybrid"
    filters: SearchFiltersModel = Field(default_factory=SearchFiltersModel)

class SearchResultModel(BaseModel):
    knowledge_card_id: str
    title: str
    summary: str
    main_answer: Optional[str] = None
    tags: List[str] = []
    score: float
    created_at: Optional[str] = None

class SearchResponse(BaseModel):
    results: List[SearchResultModel]

# =========================================================================
# INGESTION MODELS
# =========================================================================

class IngestRequest(BaseModel):
    assistant_message_id: str = Field(..., description="Assistant message UUID owned by the caller")

class IngestResponse(BaseModel):
    status: str
    assistant_message_id: str

class PipelineResultModel(BaseModel):
    success: bool
    knowledge_card_id: Optional[str] = None
    embedding_id: Optional[str] = None
    error: Optional[str] = None

class HealthStatus(BaseModel):
    status: str
    supabase_connected: Optional[bool] = None
    pending_ingestions: Optional[int] = None
    details: Dict[str, Any] = {}
