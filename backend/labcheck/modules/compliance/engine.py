"""Compliance Engine — per-parameter verdicts with cited sources.

Pipeline for one document:

    entries -> compose Markdown -> classify matrix -> resolve regime
            -> extract analyses -> per parameter:
                 CEIRSA:              corpus limits -> band rules -> (judge) -> reconcile
                 BEVERAGE / SWAB:     law search    -> judge               -> reconcile

A parameter without a regulatory reference yields no result. A result without
sources is never emitted as compliant or non-compliant.
"""

from __future__ import annotations

import time
from collections import Counter

import structlog

from labcheck.core.config import settings
from labcheck.modules.compliance.agent_schemas import (
    Analysis,
    CeirsaCategory,
    CeirsaParameter,
    JudgedCheck,
    JudgmentRequest,
    MatrixClassification,
    RegulatoryRegime,
)
from labcheck.modules.compliance.agents.analyses import AnalysesAgent
from labcheck.modules.compliance.agents.judge import JudgeAgent
from labcheck.modules.compliance.agents.matrix import MatrixAgent
from labcheck.modules.compliance.ceirsa_corpus import CeirsaCorpus
from labcheck.modules.compliance.errors import EvaluationFailure
from labcheck.modules.compliance.law_search import LawSearchClient
from labcheck.modules.compliance.pdf_service import compose_markdown
from labcheck.modules.compliance.rules import LoqPolicy, decide_band, reconcile_with_limit
from labcheck.modules.compliance.schemas import ComplianceResult, ExtractedTextEntry, Verdict

logger = structlog.get_logger()

_SWAB_MARKERS = ("tampone", "tamponi", "swab", "superficie", "superfici", "surface", "ambientale")


def is_swab_matrix(classification: MatrixClassification) -> bool:
    """Environmental or surface swab, judged from matrix wording."""
    haystack = " ".join(
        [
            classification.matrix,
            classification.description or "",
            *classification.special_features,
        ]
    ).lower()
    return any(marker in haystack for marker in _SWAB_MARKERS)


class ComplianceEngine:
    """Turns the extracted pages of one report into ComplianceResults.

    Collaborators are injected; the corpus is shared read-only between
    documents evaluated concurrently.
    """

    def __init__(
        self,
        corpus: CeirsaCorpus,
        matrix_agent: MatrixAgent,
        analyses_agent: AnalysesAgent,
        judge: JudgeAgent,
        law_search: LawSearchClient,
        loq_policy: LoqPolicy | None = None,
    ) -> None:
        self.corpus = corpus
        self.matrix_agent = matrix_agent
        self.analyses_agent = analyses_agent
        self.judge = judge
        self.law_search = law_search
        self.loq_policy: LoqPolicy = loq_policy or settings.loq_policy

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def evaluate(
        self,
        entries: list[ExtractedTextEntry],
        file_name: str = "",
    ) -> list[ComplianceResult]:
        """Evaluate every detected parameter of a document.

        Returns an empty list when the document has no text, no recognizable
        category markers, or no analytical parameters.

        Raises:
            EvaluationFailure: the CEIRSA corpus or the LLM backend is unavailable.
        """
        start = time.time()
        markdown = compose_markdown(entries)
        if not markdown:
            logger.info("Engine: empty document", file=file_name)
            return []

        classification = self.matrix_agent.classify(
            markdown, self._category_names(file_name), file_name=file_name
        )
        regime, category = self.resolve_regime(classification)
        if regime is None:
            logger.info(
                "Engine: no applicable regime",
                file=file_name,
                matrix=classification.matrix,
                category=classification.category,
            )
            return []

        analyses = self.analyses_agent.extract(markdown, file_name=file_name)
        if not analyses:
            logger.info("Engine: no analyses detected", file=file_name, regime=regime.value)
            return []

        results: list[ComplianceResult] = []
        for analysis in analyses:
            if regime is RegulatoryRegime.CEIRSA and category is not None:
                result = self._evaluate_ceirsa(analysis, category, markdown, file_name)
                if result is not None:
                    results.append(result)
            else:
                results.extend(
                    self._evaluate_with_law_search(
                        analysis, regime, classification, markdown, file_name
                    )
                )

        verdicts = Counter(r.is_compliant.value for r in results)
        logger.info(
            "Engine: document evaluated",
            file=file_name,
            regime=regime.value,
            analyses=len(analyses),
            results=len(results),
            compliant=verdicts.get(Verdict.COMPLIANT.value, 0),
            non_compliant=verdicts.get(Verdict.NON_COMPLIANT.value, 0),
            unresolved=verdicts.get(Verdict.UNRESOLVED.value, 0),
            duration_ms=int((time.time() - start) * 1000),
        )
        return results

    def _category_names(self, file_name: str) -> list[str]:
        # Beverage and swab reports are still classifiable without the corpus
        try:
            return self.corpus.category_names()
        except EvaluationFailure as e:
            logger.warning(
                "Engine: classifying without CEIRSA categories",
                file=file_name,
                error=str(e),
            )
            return []

    def resolve_regime(
        self,
        classification: MatrixClassification,
    ) -> tuple[RegulatoryRegime | None, CeirsaCategory | None]:
        """Pick the body of limits that applies to a classified document.

        Raises:
            EvaluationFailure: a CEIRSA category was named but the corpus is
                unavailable.
        """
        category = self.corpus.find_category(classification.ceirsa_category)
        if category is not None:
            return RegulatoryRegime.CEIRSA, category
        if classification.category == "beverage":
            return RegulatoryRegime.BEVERAGE, None
        if is_swab_matrix(classification):
            return RegulatoryRegime.ENVIRONMENTAL_SWAB, None
        return None, None

    # ------------------------------------------------------------------
    # CEIRSA
    # ------------------------------------------------------------------

    def _match_ceirsa_parameter(
        self,
        analysis: Analysis,
        category: CeirsaCategory,
        file_name: str,
    ) -> CeirsaParameter | None:
        parameter = self.corpus.match_parameter(category, analysis.parameter)
        if parameter is not None:
            return parameter

        name = self.analyses_agent.match_parameter(
            analysis.parameter,
            [p.parameter for p in category.data],
            file_name=file_name,
        )
        return next((p for p in category.data if p.parameter == name), None)

    def _evaluate_ceirsa(
        self,
        analysis: Analysis,
        category: CeirsaCategory,
        markdown: str,
        file_name: str,
    ) -> ComplianceResult | None:
        parameter = self._match_ceirsa_parameter(analysis, category, file_name)
        if parameter is None:
            logger.info(
                "Engine: no CEIRSA criterion for parameter",
                file=file_name,
                parameter=analysis.parameter,
                category=category.name,
            )
            return None

        sources = self.corpus.sources_for(category, parameter)
        reported = f"{analysis.result} {analysis.unit}".strip()
        decision = decide_band(
            analysis.result,
            analysis.unit or None,
            satisfactory=parameter.satisfactory_value,
            acceptable=parameter.acceptable_value,
            unsatisfactory=parameter.unsatisfactory_value,
            loq_policy=self.loq_policy,
        )

        if decision.verdict.is_determinate or decision.settled:
            return ComplianceResult(
                name=parameter.parameter,
                value=decision.applied_limit or parameter.limits_text(),
                is_compliant=decision.verdict,
                description=f"Reported result: {reported}. {decision.describe()}",
                sources=sources,
            )

        request = JudgmentRequest(
            regime=RegulatoryRegime.CEIRSA,
            parameter=parameter.parameter,
            value=analysis.result,
            unit=analysis.unit,
            method=analysis.method,
            category_label=f"{category.name} (ID: {category.id})",
            limits_text=parameter.limits_text(),
            suggested_rationale=decision.describe(),
            context=sources,
            document_excerpt=markdown,
        )
        candidate = next((c for c in self.judge.judge(request, file_name) if c.sources), None)
        if candidate is None:
            return ComplianceResult(
                name=parameter.parameter,
                value=parameter.limits_text(),
                is_compliant=Verdict.UNRESOLVED,
                description=(
                    f"Reported result: {reported}. {decision.describe()} "
                    f"Requires confirmation against the CEIRSA limits."
                ),
                sources=sources,
            )

        return self._reconciled_result(
            analysis, candidate, name=parameter.parameter, ceirsa_notation=True
        )

    # ------------------------------------------------------------------
    # Beverage / environmental swab
    # ------------------------------------------------------------------

    def _evaluate_with_law_search(
        self,
        analysis: Analysis,
        regime: RegulatoryRegime,
        classification: MatrixClassification,
        markdown: str,
        file_name: str,
    ) -> list[ComplianceResult]:
        subject = classification.product or classification.description or classification.matrix
        context = self.law_search.search(regime, analysis.parameter, subject)
        if not context:
            logger.info(
                "Engine: no regulatory documents for parameter",
                file=file_name,
                parameter=analysis.parameter,
                regime=regime.value,
            )
            return []

        request = JudgmentRequest(
            regime=regime,
            parameter=analysis.parameter,
            value=analysis.result,
            unit=analysis.unit,
            method=analysis.method,
            category_label=subject,
            context=context,
            document_excerpt=markdown,
        )

        results: list[ComplianceResult] = []
        for candidate in self.judge.judge(request, file_name):
            if not candidate.sources:
                logger.info(
                    "Engine: dropping judged check without resolvable sources",
                    file=file_name,
                    parameter=analysis.parameter,
                    check=candidate.name,
                )
                continue
            results.append(self._reconciled_result(analysis, candidate, name=candidate.name))
        return results

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def _reconciled_result(
        self,
        analysis: Analysis,
        candidate: JudgedCheck,
        *,
        name: str,
        ceirsa_notation: bool = False,
    ) -> ComplianceResult:
        reconciliation = reconcile_with_limit(
            reported=analysis.result,
            reported_unit=analysis.unit or None,
            limit_text=candidate.value,
            verdict=candidate.verdict,
            description=candidate.description,
            loq_policy=self.loq_policy,
            ceirsa_notation=ceirsa_notation,
        )
        if reconciliation.changed:
            logger.info(
                "Engine: judged verdict overridden by limit check",
                parameter=analysis.parameter,
                judged=candidate.verdict.value,
                decided=reconciliation.verdict.value,
                loq_applied=reconciliation.loq_applied,
            )
        return ComplianceResult(
            name=name,
            value=candidate.value,
            is_compliant=reconciliation.verdict,
            description=reconciliation.description,
            sources=candidate.sources,
        )
