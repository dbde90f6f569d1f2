import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.database import (
    AsyncSessionLocal,
    ReadonlyDatabase,
    create_readonly_engine,
    engine,
)
from app.core.errors import AppError
from app.api.router import api_router
from app.ai_feature.llm_client import create_llm_client
from app.ai_feature.pipeline import AIQueryPipeline, PipelineConfig
from app.ai_feature.query_executor import QueryExecutor
from app.ai_feature.schema_context import SchemaContextService
from app.ai_feature.service import ChatService

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger(__name__)


# Build the AI collaborators once, close engines and client on shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(level=settings.LOG_LEVEL, format=LOG_FORMAT)

    readonly_db = ReadonlyDatabase(
        create_readonly_engine(
            settings.DATABASE_READONLY_URL,
            statement_timeout_ms=settings.READONLY_STATEMENT_TIMEOUT_MS,
            pool_size=settings.READONLY_POOL_SIZE,
        )
    )
    llm_client = create_llm_client(settings)

    pipeline = AIQueryPipeline(
        llm_client,
        SchemaContextService(AsyncSessionLocal),
        config=PipelineConfig.from_settings(settings),
    )
    app.state.chat_service = ChatService(pipeline, QueryExecutor(readonly_db))
    logger.info(f"{settings.APP_NAME} started (model={settings.OPENAI_MODEL})")

    yield

    await llm_client.close()
    await readonly_db.dispose()
    await engine.dispose()


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

# Include the master router containing all our endpoints
app.include_router(api_router)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    # Messages are already safe for the caller, the cause only goes to the log
    logger.warning(
        f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: "
        f"{exc.message} (cause: {exc.__cause__!r})"
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/")
async def root():
    return {"message": "Welcome to the Store Analytics AI API"}


@app.get("/health")
async def health():
    return {"status": "ok"}
