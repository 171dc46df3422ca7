"""Unit tests for the ComplianceEngine with mocked agents and law search."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from labcheck.modules.compliance.agent_schemas import (
    Analysis,
    JudgedCheck,
    MatrixClassification,
    RegulatoryRegime,
)
from labcheck.modules.compliance.ceirsa_corpus import CeirsaCorpus
from labcheck.modules.compliance.engine import ComplianceEngine, is_swab_matrix
from labcheck.modules.compliance.errors import EvaluationFailure
from labcheck.modules.compliance.schemas import AnalysisSource, ExtractedTextEntry, Verdict

ENTRIES = [
    ExtractedTextEntry(source_locator="report.pdf#page=1", page_number=1, text="Rapporto di prova"),
    ExtractedTextEntry(source_locator="report.pdf#page=2", page_number=2, text="Risultati analitici"),
]

GELATO = MatrixClassification(
    matrix="Prodotto alimentare",
    product="gelato",
    category="food",
    ceirsa_category="Gelati e dessert a base di latte",
)

WATER = MatrixClassification(matrix="Bevanda", product="acqua potabile", category="beverage")

SWAB = MatrixClassification(matrix="Tampone ambientale", description="superficie banco")

LAW_DOC = AnalysisSource(
    id="law-nitrates",
    title="D.Lgs. 18/2023 Allegato I",
    url="https://www.gazzettaufficiale.it/eli/id/2023/03/06/23G00025/sg",
    excerpt="Nitrati 50 mg/l",
)


def build_engine(
    corpus: CeirsaCorpus,
    classification: MatrixClassification,
    analyses: list[Analysis],
    *,
    judged: list[JudgedCheck] | None = None,
    law_docs: list[AnalysisSource] | None = None,
    loq_policy: str | None = None,
) -> ComplianceEngine:
    matrix_agent = MagicMock()
    matrix_agent.classify.return_value = classification
    analyses_agent = MagicMock()
    analyses_agent.extract.return_value = analyses
    analyses_agent.match_parameter.return_value = None
    judge = MagicMock()
    judge.judge.return_value = judged or []
    law_search = MagicMock()
    law_search.search.return_value = law_docs or []
    return ComplianceEngine(
        corpus=corpus,
        matrix_agent=matrix_agent,
        analyses_agent=analyses_agent,
        judge=judge,
        law_search=law_search,
        loq_policy=loq_policy,  # type: ignore[arg-type]
    )


# ---------------------------------------------------------------------------
# Regime resolution
# ---------------------------------------------------------------------------


def test_resolve_regime(ceirsa_corpus: CeirsaCorpus) -> None:
    engine = build_engine(ceirsa_corpus, GELATO, [])

    regime, category = engine.resolve_regime(GELATO)
    assert regime is RegulatoryRegime.CEIRSA
    assert category is not None and category.id == "12"

    assert engine.resolve_regime(WATER) == (RegulatoryRegime.BEVERAGE, None)
    assert engine.resolve_regime(SWAB) == (RegulatoryRegime.ENVIRONMENTAL_SWAB, None)
    assert engine.resolve_regime(MatrixClassification(matrix="Cosmetico")) == (None, None)


def test_is_swab_matrix_reads_special_features() -> None:
    assert is_swab_matrix(MatrixClassification(matrix="Campione", special_features=["swab"]))
    assert not is_swab_matrix(MatrixClassification(matrix="Prodotto alimentare"))


def test_no_applicable_regime_yields_no_results(ceirsa_corpus: CeirsaCorpus) -> None:
    engine = build_engine(ceirsa_corpus, MatrixClassification(matrix="Fattura"), [])

    assert engine.evaluate(ENTRIES, "invoice.pdf") == []
    engine.analyses_agent.extract.assert_not_called()


def test_empty_document_yields_no_results(ceirsa_corpus: CeirsaCorpus) -> None:
    engine = build_engine(ceirsa_corpus, GELATO, [])
    blank = [ExtractedTextEntry(source_locator="x.pdf#page=1", page_number=1, text="")]

    assert engine.evaluate(blank, "x.pdf") == []
    engine.matrix_agent.classify.assert_not_called()


def test_classifier_receives_ceirsa_category_names(ceirsa_corpus: CeirsaCorpus) -> None:
    engine = build_engine(ceirsa_corpus, GELATO, [])
    engine.evaluate(ENTRIES, "report.pdf")

    args = engine.matrix_agent.classify.call_args
    assert args.args[1] == ["Gelati e dessert a base di latte", "Prodotti di gastronomia cotti"]


# ---------------------------------------------------------------------------
# CEIRSA
# ---------------------------------------------------------------------------


def test_ceirsa_band_rules_decide_without_judge(ceirsa_corpus: CeirsaCorpus) -> None:
    analyses = [
        Analysis(parameter="Enterobatteri", result="< 10", unit="UFC/g"),
        Analysis(parameter="Listeria monocytogenes", result="Non rilevato in 25 g"),
        Analysis(parameter="Stafilococchi coagulasi positivi", result="2,0 x 10^1", unit="UFC/g"),
    ]
    engine = build_engine(ceirsa_corpus, GELATO, analyses)

    results = engine.evaluate(ENTRIES, "gelato.pdf")

    assert [r.name for r in results] == [
        "Enterobatteriaceae",
        "Listeria monocytogenes",
        "Stafilococchi coagulasi positivi",
    ]
    assert [r.is_compliant for r in results] == [
        Verdict.COMPLIANT,
        Verdict.COMPLIANT,
        Verdict.COMPLIANT,
    ]
    enterobacteria = results[0]
    assert enterobacteria.value == "<10 (ufc/g)"
    assert enterobacteria.description.startswith("Reported result: < 10 UFC/g.")
    assert "LOQ" in enterobacteria.description
    assert [s.id for s in enterobacteria.sources] == [
        "ceirsa-12-enterobatteriaceae",
        "ceirsa-notes-12-enterobatteriaceae",
    ]
    engine.judge.judge.assert_not_called()


def test_ceirsa_unsatisfactory_result_is_non_compliant(ceirsa_corpus: CeirsaCorpus) -> None:
    analyses = [Analysis(parameter="Enterobatteriaceae", result="350", unit="UFC/g")]
    engine = build_engine(ceirsa_corpus, GELATO, analyses)

    (result,) = engine.evaluate(ENTRIES, "gelato.pdf")

    assert result.is_compliant is Verdict.NON_COMPLIANT
    assert result.value == "≥102 (ufc/g)"
    assert result.sources


def test_ceirsa_coarse_loq_is_unresolved_under_strict_policy(ceirsa_corpus: CeirsaCorpus) -> None:
    analyses = [Analysis(parameter="Enterobatteriaceae", result="< 1000", unit="UFC/g")]
    engine = build_engine(ceirsa_corpus, GELATO, analyses, loq_policy="strict")

    (result,) = engine.evaluate(ENTRIES, "gelato.pdf")

    assert result.is_compliant is Verdict.UNRESOLVED
    assert "LOQ" in result.description
    assert result.sources
    engine.judge.judge.assert_not_called()


def test_ceirsa_coarse_loq_is_compliant_by_default(ceirsa_corpus: CeirsaCorpus) -> None:
    analyses = [Analysis(parameter="Enterobatteriaceae", result="< 1000", unit="UFC/g")]
    engine = build_engine(ceirsa_corpus, GELATO, analyses)

    (result,) = engine.evaluate(ENTRIES, "gelato.pdf")

    assert result.is_compliant is Verdict.COMPLIANT
    assert "does not evidence a violation" in result.description


def test_ceirsa_unit_mismatch_is_unresolved(ceirsa_corpus: CeirsaCorpus) -> None:
    analyses = [Analysis(parameter="Enterobatteriaceae", result="5", unit="UFC/ml")]
    engine = build_engine(ceirsa_corpus, GELATO, analyses)

    (result,) = engine.evaluate(ENTRIES, "gelato.pdf")

    assert result.is_compliant is Verdict.UNRESOLVED
    assert "not comparable" in result.description
    engine.judge.judge.assert_not_called()


def test_ceirsa_undetermined_result_goes_to_judge(ceirsa_corpus: CeirsaCorpus) -> None:
    category = ceirsa_corpus.find_category("12")
    staph = category.data[2]
    corpus_sources = CeirsaCorpus.sources_for(category, staph)
    judged = [
        JudgedCheck(
            name="Stafilococchi coagulasi positivi",
            value="<102 (ufc/g)",
            verdict=Verdict.COMPLIANT,
            description="The note reports a count well below 10^2.",
            sources=corpus_sources,
        )
    ]
    analyses = [Analysis(parameter="Stafilococchi coagulasi positivi", result="vedi nota", unit="UFC/g")]
    engine = build_engine(ceirsa_corpus, GELATO, analyses, judged=judged)

    (result,) = engine.evaluate(ENTRIES, "gelato.pdf")

    assert result.is_compliant is Verdict.COMPLIANT
    assert result.value == "<102 (ufc/g)"
    assert result.sources == corpus_sources

    request = engine.judge.judge.call_args.args[0]
    assert request.regime is RegulatoryRegime.CEIRSA
    assert request.context == corpus_sources
    assert "Satisfactory: <102 (ufc/g)" in request.limits_text


def test_ceirsa_judge_without_citations_leaves_result_unresolved(ceirsa_corpus: CeirsaCorpus) -> None:
    judged = [JudgedCheck(name="Stafilococchi", verdict=Verdict.COMPLIANT, sources=[])]
    analyses = [Analysis(parameter="Stafilococchi coagulasi positivi", result="vedi nota", unit="UFC/g")]
    engine = build_engine(ceirsa_corpus, GELATO, analyses, judged=judged)

    (result,) = engine.evaluate(ENTRIES, "gelato.pdf")

    assert result.is_compliant is Verdict.UNRESOLVED
    assert result.sources
    assert "Requires confirmation" in result.description



def test_unmatched_ceirsa_parameter_is_skipped(ceirsa_corpus: CeirsaCorpus) -> None:
    analyses = [Analysis(parameter="pH", result="6,5")]
    engine = build_engine(ceirsa_corpus, GELATO, analyses)

    assert engine.evaluate(ENTRIES, "gelato.pdf") == []
    engine.analyses_agent.match_parameter.assert_called_once()


def test_llm_parameter_match_is_used_as_fallback(ceirsa_corpus: CeirsaCorpus) -> None:
    analyses = [Analysis(parameter="S. aureus coag+", result="< 10", unit="UFC/g")]
    engine = build_engine(ceirsa_corpus, GELATO, analyses)
    engine.analyses_agent.match_parameter.return_value = "Stafilococchi coagulasi positivi"

    (result,) = engine.evaluate(ENTRIES, "gelato.pdf")

    assert result.name == "Stafilococchi coagulasi positivi"
    assert result.is_compliant is Verdict.COMPLIANT


def test_unavailable_corpus_is_an_evaluation_failure(tmp_path: Path) -> None:
    engine = build_engine(CeirsaCorpus(tmp_path / "absent.json"), GELATO, [])

    with pytest.raises(EvaluationFailure):
        engine.evaluate(ENTRIES, "gelato.pdf")


def test_beverage_is_evaluated_without_ceirsa_corpus(tmp_path: Path) -> None:
    judged = [
        JudgedCheck(
            name="Nitrati",
            value="≤ 50 mg/l",
            verdict=Verdict.COMPLIANT,
            description="Within D.Lgs. 18/2023.",
            sources=[LAW_DOC],
        )
    ]
    analyses = [Analysis(parameter="Nitrati", result="12", unit="mg/l")]
    engine = build_engine(
        CeirsaCorpus(tmp_path / "absent.json"), WATER, analyses, judged=judged, law_docs=[LAW_DOC]
    )

    (result,) = engine.evaluate(ENTRIES, "water.pdf")

    assert result.is_compliant is Verdict.COMPLIANT
    assert result.sources == [LAW_DOC]
    assert engine.matrix_agent.classify.call_args.args[1] == []


# ---------------------------------------------------------------------------
# Beverage / swab
# ---------------------------------------------------------------------------


def test_beverage_verdict_is_reconciled_with_cited_limit(ceirsa_corpus: CeirsaCorpus) -> None:
    judged = [
        JudgedCheck(
            name="Nitrati",
            value="≤ 50 mg/l",
            verdict=Verdict.NON_COMPLIANT,
            description="Judged against D.Lgs. 18/2023.",
            sources=[LAW_DOC],
        ),
        JudgedCheck(name="Nitrati (WHO)", value="50 mg/l", verdict=Verdict.COMPLIANT, sources=[]),
    ]
    analyses = [Analysis(parameter="Nitrati", result="12", unit="mg/l")]
    engine = build_engine(ceirsa_corpus, WATER, analyses, judged=judged, law_docs=[LAW_DOC])

    results = engine.evaluate(ENTRIES, "water.pdf")

    assert len(results) == 1
    assert results[0].name == "Nitrati"
    assert results[0].is_compliant is Verdict.COMPLIANT
    assert results[0].sources == [LAW_DOC]
    engine.law_search.search.assert_called_once_with(
        RegulatoryRegime.BEVERAGE, "Nitrati", "acqua potabile"
    )


def test_beverage_without_regulatory_documents_yields_no_results(ceirsa_corpus: CeirsaCorpus) -> None:
    analyses = [Analysis(parameter="Nitrati", result="12", unit="mg/l")]
    engine = build_engine(ceirsa_corpus, WATER, analyses, law_docs=[])

    assert engine.evaluate(ENTRIES, "water.pdf") == []
    engine.judge.judge.assert_not_called()


def test_swab_parameters_use_swab_regime(ceirsa_corpus: CeirsaCorpus) -> None:
    analyses = [Analysis(parameter="Enterobatteri", result="< 1", unit="UFC/cm²")]
    engine = build_engine(ceirsa_corpus, SWAB, analyses, law_docs=[LAW_DOC])

    engine.evaluate(ENTRIES, "swab.pdf")

    regime = engine.law_search.search.call_args.args[0]
    assert regime is RegulatoryRegime.ENVIRONMENTAL_SWAB
    request = engine.judge.judge.call_args.args[0]
    assert request.regime is RegulatoryRegime.ENVIRONMENTAL_SWAB
    assert request.category_label == "superficie banco"


def test_drinking_water_below_loq_against_zero_limit_is_compliant(ceirsa_corpus: CeirsaCorpus) -> None:
    judged = [
        JudgedCheck(
            name="Escherichia coli",
            value="0 UFC/100 ml",
            verdict=Verdict.COMPLIANT,
            description="Not detected.",
            sources=[LAW_DOC],
        )
    ]
    analyses = [Analysis(parameter="Escherichia coli", result="<1", unit="UFC/100 ml")]
    engine = build_engine(ceirsa_corpus, WATER, analyses, judged=judged, law_docs=[LAW_DOC])

    (result,) = engine.evaluate(ENTRIES, "water.pdf")

    assert engine.loq_policy == "lenient"
    assert result.is_compliant is Verdict.COMPLIANT
    assert "LOQ" in result.description


def test_drinking_water_below_loq_is_unresolved_when_strict(ceirsa_corpus: CeirsaCorpus) -> None:
    judged = [
        JudgedCheck(
            name="Escherichia coli",
            value="0 UFC/100 ml",
            verdict=Verdict.COMPLIANT,
            sources=[LAW_DOC],
        )
    ]
    analyses = [Analysis(parameter="Escherichia coli", result="<1", unit="UFC/100 ml")]
    engine = build_engine(
        ceirsa_corpus, WATER, analyses, judged=judged, law_docs=[LAW_DOC], loq_policy="strict"
    )

    (result,) = engine.evaluate(ENTRIES, "water.pdf")

    assert result.is_compliant is Verdict.UNRESOLVED
