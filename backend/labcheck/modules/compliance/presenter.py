"""Markdown rendering of bulk and single PDF check results."""

from __future__ import annotations

from labcheck.modules.compliance.schemas import (
    BulkPdfCheckResponse,
    ComplianceResult,
    SinglePdfResult,
    Verdict,
)

VERDICT_MARKERS: dict[Verdict, str] = {
    Verdict.COMPLIANT: "✅",
    Verdict.NON_COMPLIANT: "❌",
    Verdict.UNRESOLVED: "⚠️",
}

VERDICT_LABELS: dict[Verdict, str] = {
    Verdict.COMPLIANT: "compliant",
    Verdict.NON_COMPLIANT: "non-compliant",
    Verdict.UNRESOLVED: "to confirm",
}


def _excerpt_lines(excerpt: str) -> list[str]:
    return [f"      > {line}" for line in excerpt.strip().splitlines() if line.strip()]


def format_check(check: ComplianceResult) -> list[str]:
    """Lines for one check: marker, value, description, then every source."""
    verdict = check.is_compliant
    lines = [
        f"- **{check.name}:** {check.value} {VERDICT_MARKERS[verdict]} ({VERDICT_LABELS[verdict]})",
    ]
    if check.description:
        lines.append(f"  - {check.description}")
    if check.sources:
        lines.append("  - Sources:")
        for source in check.sources:
            link = f" ([link]({source.url}))" if source.url else ""
            lines.append(f"    - `{source.id}` {source.title}{link}")
            if source.excerpt:
                lines.extend(_excerpt_lines(source.excerpt))
    return lines


def format_single_result(result: SinglePdfResult) -> str:
    """Format one PDF result as a Markdown section."""
    lines = [f"## {result.file_name}", ""]

    if result.status == "error":
        lines.append("**Status:** ❌ Error")
        lines.append(f"**Path:** {result.pdf_path}")
        lines.append(f"**Error:** {result.error}")
        return "\n".join(lines)

    lines.append("**Status:** ✅ Success")
    lines.append(f"**Path:** {result.pdf_path}")
    lines.append("")

    if not result.compliance_results:
        lines.append(
            "*No compliance checks applicable for this document "
            "(no CEIRSA, beverage or swab criteria found)*"
        )
        return "\n".join(lines)

    lines.append("### Compliance Results")
    lines.append("")
    for check in result.compliance_results:
        lines.extend(format_check(check))

    return "\n".join(lines)


def format_bulk_response(response: BulkPdfCheckResponse) -> str:
    """Format a bulk check response: totals header, then one section per PDF."""
    lines = [
        "# Bulk PDF Analysis Results",
        "",
        f"**Total Processed:** {response.total_processed}",
        f"**Success:** {response.success_count}",
        f"**Errors:** {response.error_count}",
        "",
        "---",
        "",
    ]
    for result in response.results:
        lines.append(format_single_result(result))
        lines.extend(["", "---", ""])
    return "\n".join(lines)
