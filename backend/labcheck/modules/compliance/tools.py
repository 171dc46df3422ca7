"""Compliance tool surface — typed requests and closed dispatch.

Assistants call the pipeline as tools: ``bulk_pdf_check`` over many paths,
``single_pdf_check`` over one. Arguments are validated into typed requests
before anything runs; results are rendered as Markdown text.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, cast

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from labcheck.modules.compliance.errors import InvalidParamsError, UnsupportedOperation
from labcheck.modules.compliance.presenter import format_bulk_response, format_single_result
from labcheck.modules.compliance.schemas import BulkPdfCheckResponse, SinglePdfResult
from labcheck.modules.compliance.service import BulkPdfCheckService

logger = structlog.get_logger()


class ToolName(str, Enum):
    BULK_PDF_CHECK = "bulk_pdf_check"
    SINGLE_PDF_CHECK = "single_pdf_check"


# ---------------------------------------------------------------------------
# Typed requests
# ---------------------------------------------------------------------------


class _ToolRequest(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )


class BulkPdfCheckRequest(_ToolRequest):
    """Arguments of ``bulk_pdf_check``."""

    pdf_paths: list[str] = Field(
        ..., min_length=1, description="Absolute paths of the PDF files to analyze"
    )

    @field_validator("pdf_paths")
    @classmethod
    def _paths_not_blank(cls, value: list[str]) -> list[str]:
        paths = [path.strip() for path in value]
        if any(not path for path in paths):
            raise ValueError("PDF paths must not be blank")
        return paths


class SinglePdfCheckRequest(_ToolRequest):
    """Arguments of ``single_pdf_check``."""

    pdf_path: str = Field(..., description="Absolute path of the PDF file to analyze")

    @field_validator("pdf_path")
    @classmethod
    def _path_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("PDF path must not be blank")
        return value


_REQUEST_MODELS: dict[ToolName, type[_ToolRequest]] = {
    ToolName.BULK_PDF_CHECK: BulkPdfCheckRequest,
    ToolName.SINGLE_PDF_CHECK: SinglePdfCheckRequest,
}

_DESCRIPTIONS: dict[ToolName, str] = {
    ToolName.BULK_PDF_CHECK: (
        "Analyze multiple laboratory PDF reports and check the compliance of every "
        "analytical parameter against CEIRSA, beverage or surface swab limits. "
        "Each document succeeds or fails independently."
    ),
    ToolName.SINGLE_PDF_CHECK: (
        "Analyze one laboratory PDF report and check the compliance of every "
        "analytical parameter against the applicable regulatory limits."
    ),
}


def parse_request(name: ToolName, arguments: dict[str, Any] | None) -> _ToolRequest:
    """Validate raw tool arguments into the typed request of ``name``."""
    try:
        return _REQUEST_MODELS[name].model_validate(arguments or {})
    except ValidationError as e:
        messages = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or 'arguments'}: {err['msg']}"
            for err in e.errors()
        )
        raise InvalidParamsError(f"Invalid arguments for {name.value}: {messages}") from e


# ---------------------------------------------------------------------------
# Toolbox
# ---------------------------------------------------------------------------


class ComplianceToolbox:
    """Typed operations plus name-based dispatch over the bulk check service."""

    def __init__(self, service: BulkPdfCheckService) -> None:
        self.service = service

    async def bulk_pdf_check(self, request: BulkPdfCheckRequest) -> BulkPdfCheckResponse:
        return await self.service.execute(list(request.pdf_paths))

    async def single_pdf_check(self, request: SinglePdfCheckRequest) -> SinglePdfResult:
        return await self.service.single(request.pdf_path)

    async def invoke(self, name: str, arguments: dict[str, Any] | None = None) -> str:
        """Run the tool called ``name`` and render its result as Markdown.

        Raises:
            UnsupportedOperation: ``name`` is not a known tool.
            InvalidParamsError: ``arguments`` do not match the tool's request.
        """
        try:
            tool = ToolName(name)
        except ValueError:
            raise UnsupportedOperation(name) from None

        request = parse_request(tool, arguments)
        logger.info("Tool invoked", tool=tool.value)

        if tool is ToolName.BULK_PDF_CHECK:
            bulk = cast(BulkPdfCheckRequest, request)
            return format_bulk_response(await self.bulk_pdf_check(bulk))
        single = cast(SinglePdfCheckRequest, request)
        return format_single_result(await self.single_pdf_check(single))

    @staticmethod
    def list_tools() -> list[dict[str, Any]]:
        """Tool descriptors with their JSON input schemas."""
        return [
            {
                "name": tool.value,
                "description": _DESCRIPTIONS[tool],
                "inputSchema": _REQUEST_MODELS[tool].model_json_schema(by_alias=True),
            }
            for tool in ToolName
        ]
