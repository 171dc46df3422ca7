"""Compliance API — /compliance/ endpoints.

  - /bulk-pdf-check     — check many PDFs, JSON response in input order
  - /single-pdf-check   — check one PDF
  - /tools              — tool descriptors (name, description, input schema)
  - /tools/{tool_name}  — invoke a tool, Markdown text content
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException

from labcheck.core.config import settings
from labcheck.modules.compliance.errors import InternalError, InvalidParamsError, UnsupportedOperation
from labcheck.modules.compliance.schemas import BulkPdfCheckResponse, SinglePdfResult
from labcheck.modules.compliance.service import BulkPdfCheckService, build_bulk_check_service
from labcheck.modules.compliance.tools import (
    BulkPdfCheckRequest,
    ComplianceToolbox,
    SinglePdfCheckRequest,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/compliance", tags=["compliance"])


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


@lru_cache
def get_bulk_check_service() -> BulkPdfCheckService:
    """One pipeline per process, built from settings on first request.

    The service holds no per-request state: every ``execute`` call gets its
    own semaphore and results, so requests share only the read-only CEIRSA
    corpus and the lazily created provider clients. Swap it through
    ``app.dependency_overrides[get_bulk_check_service]``.
    """
    return build_bulk_check_service(settings)


def get_toolbox(
    service: BulkPdfCheckService = Depends(get_bulk_check_service),
) -> ComplianceToolbox:
    return ComplianceToolbox(service)


# ---------------------------------------------------------------------------
# Typed endpoints
# ---------------------------------------------------------------------------


@router.post("/bulk-pdf-check", response_model=BulkPdfCheckResponse)
async def bulk_pdf_check(
    request: BulkPdfCheckRequest,
    toolbox: ComplianceToolbox = Depends(get_toolbox),
) -> BulkPdfCheckResponse:
    """Check every PDF path; per-document failures are reported, not raised."""
    return await toolbox.bulk_pdf_check(request)


@router.post("/single-pdf-check", response_model=SinglePdfResult)
async def single_pdf_check(
    request: SinglePdfCheckRequest,
    toolbox: ComplianceToolbox = Depends(get_toolbox),
) -> SinglePdfResult:
    """Check one PDF path."""
    try:
        return await toolbox.single_pdf_check(request)
    except InternalError as e:
        logger.error("Single PDF check failed", path=request.pdf_path, error=str(e))
        raise HTTPException(status_code=500, detail=str(e))


# ---------------------------------------------------------------------------
# Tool surface
# ---------------------------------------------------------------------------


@router.get("/tools")
async def list_tools() -> list[dict[str, Any]]:
    return ComplianceToolbox.list_tools()


@router.post("/tools/{tool_name}")
async def invoke_tool(
    tool_name: str,
    arguments: dict[str, Any] | None = Body(None),
    toolbox: ComplianceToolbox = Depends(get_toolbox),
) -> dict[str, Any]:
    """Invoke a tool by name; the result is returned as Markdown text content."""
    try:
        text = await toolbox.invoke(tool_name, arguments)
    except UnsupportedOperation as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidParamsError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InternalError as e:
        logger.error("Tool invocation failed", tool=tool_name, error=str(e))
        raise HTTPException(status_code=500, detail=str(e))

    return {"content": [{"type": "text", "text": text}]}
