"""Compliance pipeline — Pydantic schemas for extracted text and check results.

Wire format uses camelCase aliases (``pdfPath``, ``isCompliant``, ...) so the
JSON returned to tool callers and HTTP clients keeps its historical shape.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    """Frozen model serialized with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


# ---------------------------------------------------------------------------
# Tri-state verdict
# ---------------------------------------------------------------------------


class Verdict(str, Enum):
    """Outcome of a single compliance check.

    UNRESOLVED means "requires human confirmation". It is a terminal state on
    its own, never a low-confidence pass or fail.
    """

    COMPLIANT = "compliant"
    NON_COMPLIANT = "non_compliant"
    UNRESOLVED = "unresolved"

    @property
    def is_determinate(self) -> bool:
        return self is not Verdict.UNRESOLVED

    def to_wire(self) -> bool | None:
        """Render as the ``isCompliant`` wire value: true / false / null."""
        if self is Verdict.COMPLIANT:
            return True
        if self is Verdict.NON_COMPLIANT:
            return False
        return None

    @classmethod
    def from_wire(cls, value: Any) -> Verdict:
        """Parse an ``isCompliant``-style value (bool, null, or a label)."""
        if isinstance(value, Verdict):
            return value
        if value is None:
            return cls.UNRESOLVED
        if isinstance(value, bool):
            return cls.COMPLIANT if value else cls.NON_COMPLIANT
        if isinstance(value, str):
            label = value.strip().lower().replace("-", "_").replace(" ", "_")
            if label in _COMPLIANT_LABELS:
                return cls.COMPLIANT
            if label in _NON_COMPLIANT_LABELS:
                return cls.NON_COMPLIANT
            if label in _UNRESOLVED_LABELS:
                return cls.UNRESOLVED
        raise ValueError(f"Not a verdict value: {value!r}")


_COMPLIANT_LABELS = {"true", "compliant", "conforme", "pass", "yes"}
_NON_COMPLIANT_LABELS = {"false", "non_compliant", "noncompliant", "non_conforme", "fail", "no"}
_UNRESOLVED_LABELS = {"null", "none", "unknown", "unresolved", "da_confermare", ""}


# ---------------------------------------------------------------------------
# Extractor output
# ---------------------------------------------------------------------------


class ExtractedTextEntry(_WireModel):
    """One page of extracted text, tied back to its position in the PDF."""

    source_locator: str = Field(..., description="e.g. 'report.pdf#page=2'")
    page_number: int = Field(..., ge=1)
    text: str = ""


# ---------------------------------------------------------------------------
# Check results
# ---------------------------------------------------------------------------


class AnalysisSource(_WireModel):
    """A citation backing a verdict."""

    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    url: str | None = None
    excerpt: str = ""

    @field_validator("id", "title")
    @classmethod
    def _strip_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("url")
    @classmethod
    def _blank_url_is_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if not value or value.lower() in {"null", "n/a", "none"}:
            return None
        return value


class ComplianceResult(_WireModel):
    """Compliance determination for one analytical parameter."""

    name: str
    value: str = ""
    is_compliant: Verdict
    description: str = ""
    sources: list[AnalysisSource] = []

    @field_validator("is_compliant", mode="before")
    @classmethod
    def _parse_verdict(cls, value: Any) -> Verdict:
        return Verdict.from_wire(value)

    @field_serializer("is_compliant")
    def _serialize_verdict(self, verdict: Verdict) -> bool | None:
        return verdict.to_wire()

    @model_validator(mode="after")
    def _sources_back_verdict(self) -> ComplianceResult:
        if not self.sources and self.is_compliant.is_determinate:
            raise ValueError(
                f"check '{self.name}' asserts {self.is_compliant.value} without any source"
            )
        ids = [source.id for source in self.sources]
        if len(ids) != len(set(ids)):
            raise ValueError(f"check '{self.name}' has duplicate source ids")
        return self


class SinglePdfResult(_WireModel):
    """Outcome of checking one PDF."""

    pdf_path: str
    file_name: str
    status: Literal["success", "error"]
    error: str | None = None
    compliance_results: list[ComplianceResult] = []

    @model_validator(mode="after")
    def _status_matches_payload(self) -> SinglePdfResult:
        if self.status == "error":
            if not self.error:
                raise ValueError("an error result must carry an error message")
            if self.compliance_results:
                raise ValueError("an error result must not carry compliance results")
        elif self.error is not None:
            raise ValueError("a successful result must not carry an error")
        return self


class BulkPdfCheckResponse(_WireModel):
    """Aggregate outcome of a bulk check, results in input order."""

    total_processed: int
    success_count: int
    error_count: int
    results: list[SinglePdfResult]

    @model_validator(mode="after")
    def _counts_add_up(self) -> BulkPdfCheckResponse:
        successes = sum(1 for r in self.results if r.status == "success")
        if (
            self.total_processed != len(self.results)
            or self.success_count != successes
            or self.success_count + self.error_count != self.total_processed
        ):
            raise ValueError("bulk response counts do not match its results")
        return self

    @classmethod
    def from_results(cls, results: list[SinglePdfResult]) -> BulkPdfCheckResponse:
        successes = sum(1 for r in results if r.status == "success")
        return cls(
            total_processed=len(results),
            success_count=successes,
            error_count=len(results) - successes,
            results=results,
        )
