"""Compliance Agent 1: Matrix Classifier.

Identifies the sampled matrix of a laboratory report (food, beverage,
environmental swab, ...) and the closest CEIRSA category, using the first
pages of the report plus the list of CEIRSA category names.

Falls back to keyword heuristics when the LLM call fails.
"""

from __future__ import annotations

import re

import structlog

from labcheck.modules.compliance.agent_schemas import MatrixClassification
from labcheck.modules.compliance.agents.base import BaseAgent
from labcheck.modules.compliance.agents.sanitizer import sanitize_matrix

logger = structlog.get_logger()

# Max chars from document to send to the classifier (~first 2 pages)
_MAX_CONTENT_CHARS = 6000


# ---------------------------------------------------------------------------
# Keyword heuristics
# ---------------------------------------------------------------------------

_SWAB_PATTERNS = [
    r"\btampon[ei]\b",
    r"\bswabs?\b",
    r"\bsuperfici[ei]?\b",
    r"\bambiental[ei]\b",
    r"\bufc\s*/\s*cm\s*(?:2|²)",
    r"\bcfu\s*/\s*cm\s*(?:2|²)",
]

_PERSONNEL_PATTERNS = [
    r"campionamento\s+personale",
    r"\bmani\s+(?:dell'?\s*)?operatore",
    r"tampone\s+al\s+personale",
]

_BEVERAGE_PATTERNS = [
    r"\bacqua\s+(?:potabile|destinata\s+al\s+consumo|minerale|di\s+rete)",
    r"\bdrinking\s+water\b",
    r"\bbevand[ae]\b",
    r"\bbibit[ae]\b",
    r"\bsucc[oh]i?\s+di\b",
    r"\bbirra\b",
    r"\bvino\b",
    r"\bbeverages?\b",
]

_FOOD_PATTERNS = [
    r"\bprodotto\s+alimentare\b",
    r"\balimento\b",
    r"\bgelato\b",
    r"\bformaggi[oe]?\b",
    r"\bcarne\b",
    r"\bprosciutto\b",
    r"\bpizza\b",
    r"\bpasta\b",
    r"\bpreparazion[ei]\s+gastronomic",
    r"\bfood\b",
]


def _matches_any(patterns: list[str], text: str) -> bool:
    return any(re.search(p, text, re.IGNORECASE) for p in patterns)


def heuristic_classification(
    markdown: str,
    category_names: list[str] | None = None,
) -> MatrixClassification:
    """Classify a report by scanning the first pages for keyword patterns."""
    sample = markdown[:_MAX_CONTENT_CHARS]
    lowered = sample.lower()

    if _matches_any(_PERSONNEL_PATTERNS, sample):
        return MatrixClassification(
            matrix="Tampone al personale",
            category="other",
            special_features=["personale"],
            source="heuristic",
        )
    if _matches_any(_SWAB_PATTERNS, sample):
        return MatrixClassification(matrix="Tampone ambientale", category="other", source="heuristic")
    if _matches_any(_BEVERAGE_PATTERNS, sample):
        return MatrixClassification(matrix="Bevanda", category="beverage", source="heuristic")

    # Longest category name first so specific categories win over generic ones
    for name in sorted(category_names or [], key=len, reverse=True):
        if len(name) >= 6 and name.lower() in lowered:
            return MatrixClassification(
                matrix="Prodotto alimentare",
                category="food",
                ceirsa_category=name,
                source="heuristic",
            )

    if _matches_any(_FOOD_PATTERNS, sample):
        return MatrixClassification(matrix="Prodotto alimentare", category="food", source="heuristic")

    return MatrixClassification(source="heuristic")


# ---------------------------------------------------------------------------
# Agent
# ---------------------------------------------------------------------------


class MatrixAgent(BaseAgent):
    """Agent 1: sampled matrix + CEIRSA category via LLM."""

    agent_name = "MatrixClassifier"

    def __init__(
        self,
        provider: str | None = None,
        model: str | None = None,
    ) -> None:
        super().__init__(provider=provider, model=model)
        self._system_prompt = self.load_prompt("matrix.txt")

    def classify(
        self,
        markdown: str,
        category_names: list[str],
        file_name: str = "",
    ) -> MatrixClassification:
        """Classify the sampled matrix of a report.

        Args:
            markdown: Full document markdown (truncated to the first pages).
            category_names: CEIRSA category names the LLM may choose from.
            file_name: Original filename, used for logging only.

        Returns:
            MatrixClassification, from the LLM or from keyword heuristics.
        """
        content_sample = markdown[:_MAX_CONTENT_CHARS]
        categories = "\n".join(f"- {name}" for name in category_names) or "- (none)"

        user_content = (
            f"CEIRSA categories (choose the closest match or null):\n{categories}\n\n"
            f"--- Document Content (first pages) ---\n\n"
            f"{content_sample}"
        )

        try:
            result = self.call_llm(
                system_prompt=self._system_prompt,
                user_content=user_content,
                response_json=True,
                file_name=file_name,
            )
            classification = MatrixClassification.model_validate(
                sanitize_matrix(result["content"])
            )
        except Exception as e:
            logger.error(
                "Matrix classification failed, falling back to heuristics",
                file=file_name,
                error=str(e),
            )
            return heuristic_classification(markdown, category_names)

        logger.info(
            "Matrix classified",
            file=file_name,
            matrix=classification.matrix,
            category=classification.category,
            ceirsa_category=classification.ceirsa_category,
        )
        return classification
