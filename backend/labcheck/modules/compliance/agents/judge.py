"""Compliance Agent 3: Judge.

Decides one parameter against the regulatory context supplied by the engine
and returns candidate checks. The judge is a black box: every verdict it
returns is parsed leniently and every source it cites is validated against the
AnalysisSource shape and resolved to a document that was actually supplied.
Citations that do not resolve are dropped.
"""

from __future__ import annotations

import re
from typing import Any

import structlog
from pydantic import ValidationError

from labcheck.core.config import settings
from labcheck.modules.compliance.agent_schemas import (
    JudgedCheck,
    JudgmentRequest,
    RegulatoryRegime,
)
from labcheck.modules.compliance.agents.base import BaseAgent
from labcheck.modules.compliance.agents.sanitizer import sanitize_checks
from labcheck.modules.compliance.schemas import AnalysisSource, Verdict

logger = structlog.get_logger()

_PROMPT_FILES: dict[RegulatoryRegime, str] = {
    RegulatoryRegime.CEIRSA: "judge_ceirsa.txt",
    RegulatoryRegime.BEVERAGE: "judge_beverage.txt",
    RegulatoryRegime.ENVIRONMENTAL_SWAB: "judge_swab.txt",
}

_SUBJECT_LABELS: dict[RegulatoryRegime, str] = {
    RegulatoryRegime.CEIRSA: "CEIRSA category",
    RegulatoryRegime.BEVERAGE: "Beverage type",
    RegulatoryRegime.ENVIRONMENTAL_SWAB: "Sampled matrix",
}


# ---------------------------------------------------------------------------
# Source resolution
# ---------------------------------------------------------------------------


def _squash(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip().lower()


def _canonical_url(url: str | None) -> str:
    return (url or "").strip().rstrip("/").lower()


def resolve_sources(
    raw_sources: list[dict[str, Any]],
    context: list[AnalysisSource],
) -> list[AnalysisSource]:
    """Keep only citations that resolve to a supplied context document.

    A citation resolves by id, else by URL. The context document is returned
    in its place; the cited excerpt is kept only when it appears verbatim in
    that document.
    """
    by_id = {doc.id: doc for doc in context}
    by_url = {_canonical_url(doc.url): doc for doc in context if doc.url}

    resolved: list[AnalysisSource] = []
    seen: set[str] = set()
    for raw in raw_sources:
        try:
            cited = AnalysisSource.model_validate(raw)
        except ValidationError:
            logger.warning("Judge cited a malformed source", source=raw)
            continue

        doc = by_id.get(cited.id) or by_url.get(_canonical_url(cited.url))
        if doc is None:
            logger.warning("Judge cited a source outside the supplied context", source_id=cited.id)
            continue
        if doc.id in seen:
            continue
        seen.add(doc.id)

        if cited.excerpt and _squash(cited.excerpt) in _squash(doc.excerpt):
            doc = doc.model_copy(update={"excerpt": cited.excerpt})
        resolved.append(doc)
    return resolved


# ---------------------------------------------------------------------------
# Agent
# ---------------------------------------------------------------------------


class JudgeAgent(BaseAgent):
    """Agent 3: verdict + cited sources for one parameter."""

    agent_name = "Judge"

    def __init__(
        self,
        provider: str | None = None,
        model: str | None = None,
        context_chars: int | None = None,
    ) -> None:
        super().__init__(provider=provider, model=model)
        self.context_chars = context_chars or settings.judge_context_chars
        self._prompts = {regime: self.load_prompt(name) for regime, name in _PROMPT_FILES.items()}

    def _user_content(self, request: JudgmentRequest) -> str:
        parts = [
            "ANALYSED PARAMETER",
            f"- Name: {request.parameter}",
            f"- Reported result: {request.value} {request.unit}".rstrip(),
            f"- Method: {request.method or 'not specified'}",
            f"- {_SUBJECT_LABELS[request.regime]}: {request.category_label}",
        ]
        if request.limits_text:
            parts += ["", "LIMITS", request.limits_text]
        if request.suggested_rationale:
            parts += ["", "AUTOMATIC BAND RULES", request.suggested_rationale]

        parts += ["", "REGULATORY DOCUMENTS (cite by id)"]
        for doc in request.context:
            parts += [
                f"[id: {doc.id}] {doc.title}",
                f"URL: {doc.url or 'null'}",
                doc.excerpt,
                "",
            ]

        if request.document_excerpt:
            parts += ["ORIGINAL REPORT (excerpt)", request.document_excerpt[: self.context_chars]]
        return "\n".join(parts)

    def judge(self, request: JudgmentRequest, file_name: str = "") -> list[JudgedCheck]:
        """Ask the judge for candidate checks on one parameter.

        Malformed replies yield no candidates. LLM provider errors propagate
        as EvaluationFailure.
        """
        try:
            result = self.call_llm(
                system_prompt=self._prompts[request.regime],
                user_content=self._user_content(request),
                response_json=True,
                file_name=file_name,
            )
        except ValueError as e:
            logger.warning(
                "Judge reply was not JSON",
                file=file_name,
                parameter=request.parameter,
                error=str(e),
            )
            return []

        checks: list[JudgedCheck] = []
        for candidate in sanitize_checks(result["content"]):
            try:
                verdict = Verdict.from_wire(candidate["verdict"])
            except ValueError:
                verdict = Verdict.UNRESOLVED

            checks.append(
                JudgedCheck(
                    name=candidate["name"] or request.parameter,
                    value=candidate["value"],
                    verdict=verdict,
                    description=candidate["description"],
                    sources=resolve_sources(candidate["sources"], request.context),
                )
            )

        logger.info(
            "Parameter judged",
            file=file_name,
            parameter=request.parameter,
            regime=request.regime.value,
            candidates=len(checks),
            verdicts=[c.verdict.value for c in checks],
        )
        return checks
