"""Compliance Agent 2: Analyses Extractor.

Extracts the analytical parameter rows (parameter, result, unit, method) from
a report, and resolves report parameter names to CEIRSA parameter names when
the deterministic name match fails.
"""

from __future__ import annotations

import structlog
from pydantic import ValidationError

from labcheck.modules.compliance.agent_schemas import Analysis
from labcheck.modules.compliance.agents.base import BaseAgent
from labcheck.modules.compliance.agents.sanitizer import sanitize_analyses
from labcheck.modules.compliance.errors import EvaluationFailure

logger = structlog.get_logger()


class AnalysesAgent(BaseAgent):
    """Agent 2: analytical parameter extraction via LLM."""

    agent_name = "AnalysesExtractor"

    def __init__(
        self,
        provider: str | None = None,
        model: str | None = None,
    ) -> None:
        super().__init__(provider=provider, model=model)
        self._system_prompt = self.load_prompt("analyses.txt")
        self._match_prompt = self.load_prompt("parameter_match.txt")

    def extract(self, markdown: str, file_name: str = "") -> list[Analysis]:
        """Extract every analytical parameter row of a report.

        Raises:
            EvaluationFailure: the LLM call failed or its reply is unusable.
        """
        user_content = f"--- Document Content ---\n\n{markdown}"

        try:
            result = self.call_llm(
                system_prompt=self._system_prompt,
                user_content=user_content,
                response_json=True,
                file_name=file_name,
            )
        except ValueError as e:
            raise EvaluationFailure(f"Analyses extraction returned malformed JSON: {e}") from e

        try:
            analyses = [Analysis.model_validate(row) for row in sanitize_analyses(result["content"])]
        except ValidationError as e:
            raise EvaluationFailure(f"Analyses extraction returned invalid rows: {e}") from e

        logger.info("Analyses extracted", file=file_name, count=len(analyses))
        return analyses

    def match_parameter(
        self,
        parameter: str,
        candidates: list[str],
        file_name: str = "",
    ) -> str | None:
        """Pick the CEIRSA parameter equivalent to ``parameter``, if any.

        Only names present in ``candidates`` are returned. Malformed replies
        count as "no match".
        """
        if not candidates:
            return None

        listing = "\n".join(f"{i}. {name}" for i, name in enumerate(candidates, start=1))
        user_content = f"Report parameter: {parameter}\n\nCEIRSA parameters:\n{listing}"

        try:
            result = self.call_llm(
                system_prompt=self._match_prompt,
                user_content=user_content,
                response_json=True,
                file_name=file_name,
            )
        except ValueError:
            logger.warning("Parameter match reply was not JSON", file=file_name, parameter=parameter)
            return None

        content = result["content"]
        match = content.get("match") if isinstance(content, dict) else None
        if not isinstance(match, str):
            return None

        wanted = match.strip().lower()
        for name in candidates:
            if name.strip().lower() == wanted:
                logger.info("Parameter matched by LLM", parameter=parameter, ceirsa_parameter=name)
                return name
        return None
