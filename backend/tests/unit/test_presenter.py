"""Unit tests for the Markdown result presenter."""

from __future__ import annotations

from labcheck.modules.compliance.presenter import (
    format_bulk_response,
    format_check,
    format_single_result,
)
from labcheck.modules.compliance.schemas import (
    AnalysisSource,
    BulkPdfCheckResponse,
    ComplianceResult,
    SinglePdfResult,
    Verdict,
)

LAW = AnalysisSource(
    id="law-a1b2c3d4e5",
    title="D.Lgs. 18/2023",
    url="https://www.gazzettaufficiale.it/eli/id/2023/03/06/23G00025/sg",
    excerpt="Nitrati 50 mg/l\nNitriti 0,50 mg/l",
)
CEIRSA = AnalysisSource(id="ceirsa-12-enterobatteriaceae", title="CEIRSA – Enterobatteriaceae")


def _check(verdict: Verdict, sources: list[AnalysisSource]) -> ComplianceResult:
    return ComplianceResult(
        name="Nitrati",
        value="≤ 50 mg/l",
        is_compliant=verdict,
        description="Value 12 mg/l is within the limit '≤ 50 mg/l'.",
        sources=sources,
    )


def test_format_check_markers_and_sources() -> None:
    lines = format_check(_check(Verdict.COMPLIANT, [LAW, CEIRSA]))

    assert lines[0] == "- **Nitrati:** ≤ 50 mg/l ✅ (compliant)"
    assert "  - Value 12 mg/l is within the limit '≤ 50 mg/l'." in lines
    assert f"    - `law-a1b2c3d4e5` D.Lgs. 18/2023 ([link]({LAW.url}))" in lines
    assert "      > Nitrati 50 mg/l" in lines
    assert "      > Nitriti 0,50 mg/l" in lines
    # Sources without a URL are listed without a link
    assert "    - `ceirsa-12-enterobatteriaceae` CEIRSA – Enterobatteriaceae" in lines


def test_format_check_verdict_markers() -> None:
    assert "❌ (non-compliant)" in format_check(_check(Verdict.NON_COMPLIANT, [LAW]))[0]
    assert "⚠️ (to confirm)" in format_check(_check(Verdict.UNRESOLVED, []))[0]


def test_unresolved_check_without_sources_has_no_sources_block() -> None:
    lines = format_check(_check(Verdict.UNRESOLVED, []))
    assert "  - Sources:" not in lines


def test_format_error_result() -> None:
    text = format_single_result(
        SinglePdfResult(
            pdf_path="/x/missing.pdf",
            file_name="missing.pdf",
            status="error",
            error="PDF resource was not found at path: /x/missing.pdf",
        )
    )
    assert text.startswith("## missing.pdf")
    assert "**Status:** ❌ Error" in text
    assert "**Path:** /x/missing.pdf" in text
    assert "**Error:** PDF resource was not found at path: /x/missing.pdf" in text


def test_format_success_without_checks() -> None:
    text = format_single_result(
        SinglePdfResult(pdf_path="/x/invoice.pdf", file_name="invoice.pdf", status="success")
    )
    assert "**Status:** ✅ Success" in text
    assert "No compliance checks applicable for this document" in text
    assert "### Compliance Results" not in text


def test_format_success_with_checks() -> None:
    text = format_single_result(
        SinglePdfResult(
            pdf_path="/x/water.pdf",
            file_name="water.pdf",
            status="success",
            compliance_results=[_check(Verdict.COMPLIANT, [LAW])],
        )
    )
    assert "### Compliance Results" in text
    assert "- **Nitrati:** ≤ 50 mg/l ✅ (compliant)" in text


def test_format_bulk_response_header_and_order() -> None:
    response = BulkPdfCheckResponse.from_results(
        [
            SinglePdfResult(pdf_path="/x/a.pdf", file_name="a.pdf", status="success"),
            SinglePdfResult(
                pdf_path="/x/missing.pdf", file_name="missing.pdf", status="error", error="not found"
            ),
        ]
    )
    text = format_bulk_response(response)

    assert text.startswith("# Bulk PDF Analysis Results")
    assert "**Total Processed:** 2" in text
    assert "**Success:** 1" in text
    assert "**Errors:** 1" in text
    assert text.index("## a.pdf") < text.index("## missing.pdf")
