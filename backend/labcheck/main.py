from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from labcheck.core.config import settings
from labcheck.modules.compliance.router import router as compliance_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info(
        "Starting Lab Compliance API",
        llm_provider=settings.llm_provider,
        loq_policy=settings.loq_policy,
        bulk_max_concurrency=settings.bulk_max_concurrency,
    )
    if not Path(settings.ceirsa_dataset_path).is_file():
        logger.warning(
            "CEIRSA dataset not found, CEIRSA checks will fail",
            path=settings.ceirsa_dataset_path,
        )
    if not settings.tavily_api_key:
        logger.warning("No TAVILY_API_KEY, beverage and swab checks yield no results")
    yield
    logger.info("Shutting down Lab Compliance API")


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/api/docs",
    openapi_url="/api/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(compliance_router, prefix=settings.api_prefix)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
