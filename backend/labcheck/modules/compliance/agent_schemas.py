"""Compliance Engine contracts — models flowing between the engine and its agents.

  Matrix classifier  -> Engine:  MatrixClassification
  Analyses extractor -> Engine:  Analysis
  CEIRSA corpus      -> Engine:  CeirsaCategory / CeirsaParameter
  Engine -> Judge:               JudgmentRequest
  Judge  -> Engine:              JudgedCheck
"""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from labcheck.modules.compliance.schemas import AnalysisSource, Verdict


class RegulatoryRegime(str, Enum):
    """Which body of limits applies to a document."""

    CEIRSA = "ceirsa"
    BEVERAGE = "beverage"
    ENVIRONMENTAL_SWAB = "environmental_swab"


# ---------------------------------------------------------------------------
# Document classification
# ---------------------------------------------------------------------------


class MatrixClassification(BaseModel):
    """Sampled matrix and category markers detected in a report."""

    matrix: str = "Non determinato"
    description: str | None = None
    product: str | None = None
    category: Literal["food", "beverage", "other"] = "other"
    ceirsa_category: str | None = None
    special_features: list[str] = []
    source: Literal["llm", "heuristic"] = "llm"


# ---------------------------------------------------------------------------
# Parameter detection
# ---------------------------------------------------------------------------


class Analysis(BaseModel):
    """One analytical parameter row from a laboratory report."""

    parameter: str
    result: str = ""
    unit: str = ""
    method: str = ""


# ---------------------------------------------------------------------------
# CEIRSA corpus
# ---------------------------------------------------------------------------


class CeirsaParameter(BaseModel):
    """Limits for one parameter within a CEIRSA food category."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    parameter: str
    satisfactory_value: str | None = None
    acceptable_value: str | None = None
    unsatisfactory_value: str | None = None
    microbiological_criterion: str | None = None
    analysis_method: str | None = None
    bibliographic_references: str | None = None
    notes: str | None = None

    def limits_text(self) -> str:
        lines = [
            f"Satisfactory: {self.satisfactory_value}" if self.satisfactory_value else "",
            f"Acceptable: {self.acceptable_value}" if self.acceptable_value else "",
            f"Unsatisfactory: {self.unsatisfactory_value}" if self.unsatisfactory_value else "",
        ]
        return "\n".join(line for line in lines if line) or "No limits specified"


class CeirsaCategory(BaseModel):
    """A CEIRSA food category and its per-parameter limits."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    data: list[CeirsaParameter] = []


# ---------------------------------------------------------------------------
# Judgment step
# ---------------------------------------------------------------------------


class JudgmentRequest(BaseModel):
    """Everything the judge may use to decide one parameter."""

    regime: RegulatoryRegime
    parameter: str
    value: str
    unit: str = ""
    method: str = ""
    category_label: str = Field(..., description="CEIRSA category, beverage type or swab matrix")
    limits_text: str | None = Field(None, description="CEIRSA limits, when the regime has them")
    suggested_rationale: str | None = Field(None, description="Outcome of the deterministic rules")
    context: list[AnalysisSource] = Field(
        default_factory=list, description="Regulatory documents the judge may cite"
    )
    document_excerpt: str = ""


class JudgedCheck(BaseModel):
    """A candidate verdict returned by the judge, sources already validated."""

    name: str
    value: str = ""
    verdict: Verdict
    description: str = ""
    sources: list[AnalysisSource] = []
