from fastapi import APIRouter

from app.api.routes import chat, health, knowledge


router = APIRouter()

router.include_router(chat.router)
router.include_router(knowledge.router)
router.include_router(health.router)
