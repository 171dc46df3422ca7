"""Unit tests for the compliance tool surface."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from labcheck.modules.compliance.errors import InternalError, InvalidParamsError, UnsupportedOperation
from labcheck.modules.compliance.schemas import BulkPdfCheckResponse, SinglePdfResult
from labcheck.modules.compliance.tools import (
    BulkPdfCheckRequest,
    ComplianceToolbox,
    SinglePdfCheckRequest,
    ToolName,
    parse_request,
)


def _response(*results: SinglePdfResult) -> BulkPdfCheckResponse:
    return BulkPdfCheckResponse.from_results(list(results))


def _toolbox(response: BulkPdfCheckResponse) -> ComplianceToolbox:
    service = AsyncMock()
    service.execute.return_value = response
    if response.results:
        service.single.return_value = response.results[0]
    return ComplianceToolbox(service)


A_OK = SinglePdfResult(pdf_path="/x/a.pdf", file_name="a.pdf", status="success")
MISSING = SinglePdfResult(
    pdf_path="/x/missing.pdf",
    file_name="missing.pdf",
    status="error",
    error="PDF resource was not found at path: /x/missing.pdf",
)


# ---------------------------------------------------------------------------
# Request validation
# ---------------------------------------------------------------------------


def test_parse_bulk_request_accepts_camel_case() -> None:
    request = parse_request(ToolName.BULK_PDF_CHECK, {"pdfPaths": [" /x/a.pdf ", "/x/b.pdf"]})
    assert isinstance(request, BulkPdfCheckRequest)
    assert request.pdf_paths == ["/x/a.pdf", "/x/b.pdf"]


@pytest.mark.parametrize(
    "arguments",
    [
        None,
        {},
        {"pdfPaths": []},
        {"pdfPaths": ["/x/a.pdf", "  "]},
        {"pdfPaths": "/x/a.pdf"},
        {"pdfPaths": ["/x/a.pdf"], "recursive": True},
    ],
)
def test_invalid_bulk_arguments_are_rejected(arguments: dict | None) -> None:
    with pytest.raises(InvalidParamsError, match="bulk_pdf_check"):
        parse_request(ToolName.BULK_PDF_CHECK, arguments)


def test_invalid_single_arguments_are_rejected() -> None:
    with pytest.raises(InvalidParamsError):
        parse_request(ToolName.SINGLE_PDF_CHECK, {"pdfPath": ""})


# ---------------------------------------------------------------------------
# Typed operations
# ---------------------------------------------------------------------------


async def test_bulk_pdf_check_passes_paths_through() -> None:
    toolbox = _toolbox(_response(A_OK, MISSING))

    response = await toolbox.bulk_pdf_check(BulkPdfCheckRequest(pdf_paths=["/x/a.pdf", "/x/missing.pdf"]))

    toolbox.service.execute.assert_awaited_once_with(["/x/a.pdf", "/x/missing.pdf"])
    assert (response.total_processed, response.success_count, response.error_count) == (2, 1, 1)


async def test_single_pdf_check_delegates_to_service() -> None:
    toolbox = _toolbox(_response(MISSING))

    result = await toolbox.single_pdf_check(SinglePdfCheckRequest(pdf_path="/x/missing.pdf"))

    toolbox.service.single.assert_awaited_once_with("/x/missing.pdf")
    assert result.status == "error"
    assert "not found" in result.error


async def test_single_pdf_check_propagates_internal_error() -> None:
    toolbox = _toolbox(_response())
    toolbox.service.single.side_effect = InternalError("Bulk check returned no result for /x/a.pdf")

    with pytest.raises(InternalError):
        await toolbox.single_pdf_check(SinglePdfCheckRequest(pdf_path="/x/a.pdf"))


# ---------------------------------------------------------------------------
# Name-based dispatch
# ---------------------------------------------------------------------------


async def test_invoke_bulk_renders_markdown() -> None:
    toolbox = _toolbox(_response(A_OK, MISSING))

    text = await toolbox.invoke("bulk_pdf_check", {"pdfPaths": ["/x/a.pdf", "/x/missing.pdf"]})

    assert "**Total Processed:** 2" in text
    assert "## missing.pdf" in text


async def test_invoke_single_renders_markdown() -> None:
    toolbox = _toolbox(_response(A_OK))

    text = await toolbox.invoke("single_pdf_check", {"pdfPath": "/x/a.pdf"})

    assert text.startswith("## a.pdf")


async def test_invoke_unknown_tool() -> None:
    toolbox = _toolbox(_response())

    with pytest.raises(UnsupportedOperation, match="Unknown tool: delete_pdf"):
        await toolbox.invoke("delete_pdf", {"pdfPath": "/x/a.pdf"})
    toolbox.service.execute.assert_not_called()


async def test_invoke_invalid_arguments_runs_nothing() -> None:
    toolbox = _toolbox(_response())

    with pytest.raises(InvalidParamsError):
        await toolbox.invoke("bulk_pdf_check", {"pdfPaths": []})
    toolbox.service.execute.assert_not_called()


def test_list_tools_describes_both_tools() -> None:
    tools = {tool["name"]: tool for tool in ComplianceToolbox.list_tools()}

    assert set(tools) == {"bulk_pdf_check", "single_pdf_check"}
    assert tools["bulk_pdf_check"]["inputSchema"]["required"] == ["pdfPaths"]
    assert tools["single_pdf_check"]["inputSchema"]["required"] == ["pdfPath"]
