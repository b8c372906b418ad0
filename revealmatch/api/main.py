from contextlib import asynccontextmanager
from typing import AsyncGenerator

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.redis import RedisIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sqlalchemy import text

from revealmatch.api.routes import chat_router, credits_router, internal_router, matches_router
from revealmatch.config import settings
from revealmatch.utils.cache import RedisClient
from revealmatch.utils.database import Database, init_database
from revealmatch.utils.errors import RevealMatchError
from revealmatch.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

# Initialize Sentry if DSN is provided
if settings.SENTRY_DSN:
    logger.info("Initializing Sentry...")
    try:
        sentry_sdk.init(
            dsn=settings.SENTRY_DSN,
            environment=settings.ENVIRONMENT,
            traces_sample_rate=1.0 if settings.ENVIRONMENT == "development" else 0.1,
            profiles_sample_rate=1.0 if settings.ENVIRONMENT == "development" else 0.1,
            integrations=[
                FastApiIntegration(transaction_style="url"),
                SqlalchemyIntegration(),
                RedisIntegration(),
                AsyncioIntegration(),
            ],
        )
        logger.info("Sentry initialized")
    except Exception as e:
        logger.error("Failed to initialize Sentry", error=str(e))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan."""
    # Startup
    configure_logging()
    logger.info("Starting API...")

    try:
        await init_database()
    except Exception as e:
        error_details = {}
        if hasattr(e, "details"):
            error_details = e.details
        logger.error("Failed to initialize database", error=str(e), details=error_details)
        raise

    yield

    # Shutdown
    logger.info("Shutting down API...")
    await RedisClient.close()
    await Database.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    description="RevealMatch matchmaking API",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(matches_router)
app.include_router(chat_router)
app.include_router(credits_router)
app.include_router(internal_router)


@app.exception_handler(RevealMatchError)
async def revealmatch_error_handler(request: Request, exc: RevealMatchError) -> JSONResponse:
    """Render domain errors as JSON with their own status code."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "Request failed",
        path=request.url.path,
        error_code=exc.code,
        error=exc.message,
        details=exc.details,
    )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    try:
        async with Database.get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        database_ok = True
    except Exception as e:
        logger.error("Health check database query failed", error=str(e))
        database_ok = False

    return JSONResponse(
        status_code=200 if database_ok else 503,
        content={
            "status": "ok" if database_ok else "error",
            "database": database_ok,
            "app": settings.APP_NAME,
            "environment": settings.ENVIRONMENT,
        },
    )


@app.get("/")
async def root() -> JSONResponse:
    """Root endpoint."""
    return JSONResponse(
        content={
            "message": "RevealMatch API is running",
            "docs_url": "/docs",
        }
    )
