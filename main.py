import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError

from app.api.endpoints import router
from app.core.config import settings
from app.core.database import create_supabase_client
from app.core.tracing import instrument_app, setup_tracing, shutdown_tracing
from app.features.chat import ChatService
from app.features.knowledge import KnowledgeService
from app.services.database import KnowledgeDatabase
from app.services.openai_client import create_openai_client
from app.shared.correlation import CorrelationMiddleware
from app.shared.errors import (
    APIError,
    ChatCompletionError,
    ErrorCode,
    PersistenceError,
    ValidationError,
    chat_completion_error,
    error_response,
    forbidden_error,
    get_correlation_id,
    internal_error,
    unauthorized_error,
    validation_error,
)
from app.shared.logging_config import setup_logging

setup_logging(service_name=settings.SERVICE_NAME)
setup_tracing()

logger = logging.getLogger("TeamMemory.Main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    openai_client = create_openai_client()
    supabase = await create_supabase_client()
    database = KnowledgeDatabase(supabase)
    knowledge = KnowledgeService.from_clients(openai_client, database)

    app.state.database = database
    app.state.knowledge = knowledge
    app.state.chat = ChatService(openai_client, database, knowledge)
    logger.info("TeamMemory knowledge service started")

    yield

    await knowledge.shutdown()
    await openai_client.close()
    shutdown_tracing()
    logger.info("TeamMemory knowledge service stopped")


app = FastAPI(
    title="TeamMemory Knowledge Service",
    description="Chat proxy that turns team Q&A into searchable knowledge cards",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(CorrelationMiddleware)
instrument_app(app)


@app.exception_handler(APIError)
async def handle_api_error(request: Request, exc: APIError):
    correlation_id = get_correlation_id(request)
    if exc.status_code == 401:
        return unauthorized_error(str(exc), exc.code, correlation_id)
    if exc.status_code == 403:
        return forbidden_error(str(exc), exc.code, correlation_id)
    return error_response(exc.code, str(exc), exc.status_code, correlation_id=correlation_id)


@app.exception_handler(ChatCompletionError)
async def handle_chat_completion_error(request: Request, exc: ChatCompletionError):
    logger.warning(f"Chat completion failed ({exc.code}): {exc}")
    return chat_completion_error(exc, get_correlation_id(request))


@app.exception_handler(PersistenceError)
async def handle_persistence_error(request: Request, exc: PersistenceError):
    logger.error(f"Database error on {request.url.path}: {exc}")
    return error_response(
        ErrorCode.DATABASE_ERROR,
        "A database error occurred. Please try again.",
        500,
        correlation_id=get_correlation_id(request),
    )


@app.exception_handler(ValidationError)
async def handle_validation_error(request: Request, exc: ValidationError):
    return validation_error(str(exc), correlation_id=get_correlation_id(request))


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    return validation_error(
        "Invalid request body.",
        details={
            "errors": [
                {"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()
            ]
        },
        correlation_id=get_correlation_id(request),
    )


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=True)
    return internal_error(correlation_id=get_correlation_id(request))


app.include_router(router, prefix="/api/v1")


@app.get("/")
async def root():
    return {"message": "TeamMemory Knowledge Service Running"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
