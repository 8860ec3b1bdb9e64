from fastapi import APIRouter, Depends

from app.api.dependencies import get_database, get_knowledge_service
from app.api.models import HealthStatus
from app.features.knowledge import KnowledgeService
from app.services.database import KnowledgeDatabase

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthStatus)
async def health_check():
    """Simple health endpoint for monitoring."""
    return HealthStatus(status="healthy")


@router.get("/health/ready", response_model=HealthStatus)
async def readiness_check(
    db: KnowledgeDatabase = Depends(get_database),
    knowledge: KnowledgeService = Depends(get_knowledge_service),
):
    """Readiness: datastore reachable, plus the number of in-flight ingestions."""
    connected = await db.health_check()
    return HealthStatus(
        status="healthy" if connected else "degraded",
        supabase_connected=connected,
        pending_ingestions=knowledge.pipeline.pending,
    )
