"""CEIRSA corpus — microbiological criteria per food category.

Loads the CEIRSA JSON export once, then serves category and parameter lookups
read-only. Safe to share between documents evaluated concurrently.
"""

from __future__ import annotations

import json
import re
import threading
from pathlib import Path

import structlog
from pydantic import ValidationError

from labcheck.modules.compliance.agent_schemas import CeirsaCategory, CeirsaParameter
from labcheck.modules.compliance.errors import EvaluationFailure
from labcheck.modules.compliance.schemas import AnalysisSource

logger = structlog.get_logger()

# Containment matches only count when the shorter name is at least this long
_MIN_CONTAINED_NAME_CHARS = 10


def normalize_name(name: str | None) -> str:
    """Lowercase, punctuation to spaces, single spaces."""
    if not name:
        return ""
    text = re.sub(r"[^\w\s]", " ", name.lower())
    return re.sub(r"\s+", " ", text).strip()


def parameters_match(analysis_parameter: str, ceirsa_parameter: str) -> bool:
    """Same parameter name, or one name containing the other when long enough."""
    left = normalize_name(analysis_parameter)
    right = normalize_name(ceirsa_parameter)
    if not left or not right:
        return False
    if left == right:
        return True
    if left in right or right in left:
        return min(len(left), len(right)) >= _MIN_CONTAINED_NAME_CHARS
    return False


class CeirsaCorpus:
    """Read-only view over the CEIRSA categories dataset."""

    def __init__(self, dataset_path: str | Path) -> None:
        self.dataset_path = Path(dataset_path)
        self._categories: list[CeirsaCategory] | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_categories(cls, categories: list[CeirsaCategory]) -> CeirsaCorpus:
        """Build a corpus from already-loaded categories."""
        corpus = cls(dataset_path="<memory>")
        corpus._categories = list(categories)
        return corpus

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def categories(self) -> list[CeirsaCategory]:
        """All categories, loading the dataset on first use."""
        if self._categories is None:
            with self._lock:
                if self._categories is None:
                    self._categories = self._load()
        return self._categories

    def _load(self) -> list[CeirsaCategory]:
        try:
            raw = json.loads(self.dataset_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("CEIRSA dataset unavailable", path=str(self.dataset_path), error=str(exc))
            raise EvaluationFailure(f"Failed to load CEIRSA categories: {exc}") from exc

        if not isinstance(raw, list):
            raise EvaluationFailure("Failed to load CEIRSA categories: expected a JSON array")

        try:
            categories = [CeirsaCategory.model_validate(item) for item in raw]
        except ValidationError as exc:
            raise EvaluationFailure(f"Malformed CEIRSA dataset: {exc}") from exc

        logger.info(
            "CEIRSA dataset loaded",
            path=str(self.dataset_path),
            categories=len(categories),
            parameters=sum(len(c.data) for c in categories),
        )
        return categories

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def category_names(self) -> list[str]:
        return [category.name for category in self.categories()]

    def find_category(self, name_or_id: str | None) -> CeirsaCategory | None:
        """Case-insensitive match on category name or id."""
        target = (name_or_id or "").strip().lower()
        if not target:
            return None
        for category in self.categories():
            if category.name.strip().lower() == target or category.id.strip().lower() == target:
                return category
        return None

    @staticmethod
    def match_parameter(category: CeirsaCategory, analysis_parameter: str) -> CeirsaParameter | None:
        """First parameter of the category matching the reported parameter name."""
        for parameter in category.data:
            if parameter.parameter and parameters_match(analysis_parameter, parameter.parameter):
                return parameter
        return None

    # ------------------------------------------------------------------
    # Citations
    # ------------------------------------------------------------------

    @staticmethod
    def sources_for(category: CeirsaCategory, parameter: CeirsaParameter) -> list[AnalysisSource]:
        """Citations for a CEIRSA parameter: its limits, then notes/references."""
        slug = normalize_name(parameter.parameter).replace(" ", "-")
        excerpt_parts = [parameter.limits_text()]
        if parameter.microbiological_criterion:
            excerpt_parts.append(f"Criterion: {parameter.microbiological_criterion}")
        if parameter.analysis_method:
            excerpt_parts.append(f"Method: {parameter.analysis_method}")

        sources = [
            AnalysisSource(
                id=f"ceirsa-{category.id}-{slug}",
                title=f"CEIRSA limits for {parameter.parameter} ({category.name})",
                url=None,
                excerpt="\n".join(excerpt_parts),
            )
        ]

        notes = [
            text
            for text in (parameter.notes, parameter.bibliographic_references)
            if text and text.strip()
        ]
        if notes:
            sources.append(
                AnalysisSource(
                    id=f"ceirsa-notes-{category.id}-{slug}",
                    title=f"CEIRSA notes for {parameter.parameter}",
                    url=None,
                    excerpt="\n".join(note.strip() for note in notes),
                )
            )
        return sources
