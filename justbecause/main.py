from contextlib import asynccontextmanager
from typing import AsyncGenerator
import traceback

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from justbecause.core.config import APP_NAME, APP_VERSION, CORS_ORIGINS
from justbecause.core.logging import configure_logging
from justbecause.db import mongo
from justbecause.routes import (
    auth, profiles, projects, applications, matching, messages, notifications,
    payments, admin, social, ai, platform, support,
)
from justbecause.services.utils import log_error

configure_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("Starting API", service=APP_NAME, version=APP_VERSION)
    try:
        await mongo.ensure_indexes()
    except PyMongoError as e:
        logger.error("Index creation failed", error=str(e))
        raise

    yield

    logger.info("Shutting down API")
    mongo.client.close()


app = FastAPI(
    title=f"{APP_NAME} API",
    description="Marketplace connecting skilled Impact Agents with NGOs",
    version=APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials="*" not in CORS_ORIGINS,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled error",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    try:
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        await log_error(type(exc).__name__, str(exc), request.url.path, stack_trace=stack)
    except PyMongoError as e:
        logger.error("Could not persist error log", error=str(e))
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.include_router(auth.router, prefix="/api")
app.include_router(profiles.router, prefix="/api")
app.include_router(projects.router, prefix="/api")
app.include_router(applications.router, prefix="/api")
app.include_router(matching.router, prefix="/api")
app.include_router(messages.router, prefix="/api")
app.include_router(notifications.router, prefix="/api")
app.include_router(payments.router, prefix="/api")
app.include_router(admin.router, prefix="/api")
app.include_router(admin.public_router, prefix="/api")
app.include_router(social.router, prefix="/api")
app.include_router(support.router, prefix="/api")
app.include_router(ai.router, prefix="/api")
app.include_router(platform.router, prefix="/api")


@app.get("/")
async def root():
    return {"name": f"{APP_NAME} API", "version": APP_VERSION, "docs": "/docs", "health": "/api/health"}
