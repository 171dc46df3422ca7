"""Compliance BaseAgent — Shared LLM call logic and JSON parsing.

Providers supported:
  - openai (GPT-4.1 family)
  - anthropic (Claude Sonnet via direct API)
  - google (Gemini Flash / Pro)

Provider SDKs are imported lazily so only the configured one must be installed
and keyed. Any provider-side failure surfaces as EvaluationFailure.
"""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any

import structlog

from labcheck.core.config import settings
from labcheck.modules.compliance.agents.sanitizer import strip_code_fences
from labcheck.modules.compliance.errors import EvaluationFailure

logger = structlog.get_logger()

# Default models per provider
DEFAULT_MODELS: dict[str, str] = {
    "anthropic": "claude-sonnet-4-20250514",
    "google": "gemini-2.5-flash",
    "openai": "gpt-4.1",
}

# Directory where prompt templates live
_PROMPTS_DIR = Path(__file__).parent / "prompts"


class BaseAgent:
    """Base class for all compliance agents.

    Provides:
      - LLM client initialization (OpenAI / Anthropic / Gemini)
      - Unified call_llm() with token and duration logging
      - Prompt loading from prompts/ directory
      - JSON parsing with code-fence stripping
    """

    agent_name: str = "base"

    def __init__(
        self,
        provider: str | None = None,
        model: str | None = None,
        timeout_s: float | None = None,
    ) -> None:
        self.provider = provider or settings.llm_provider
        self.model = model or settings.llm_model or DEFAULT_MODELS.get(self.provider, "")
        self.timeout_s = timeout_s or settings.llm_timeout_s

        # Lazy-initialized clients
        self._openai_client: Any = None
        self._anthropic_client: Any = None
        self._gemini_client: Any = None

        logger.info(
            f"{self.agent_name} initialized",
            provider=self.provider,
            model=self.model,
        )

    # ------------------------------------------------------------------
    # Prompt loading
    # ------------------------------------------------------------------

    @staticmethod
    def load_prompt(filename: str) -> str:
        """Load a prompt template from the prompts/ directory."""
        path = _PROMPTS_DIR / filename
        if not path.exists():
            raise FileNotFoundError(f"Prompt file not found: {path}")
        return path.read_text(encoding="utf-8").strip()

    # ------------------------------------------------------------------
    # LLM client builders (lazy)
    # ------------------------------------------------------------------

    def _get_openai_client(self) -> Any:
        if self._openai_client is None:
            from openai import OpenAI

            self._openai_client = OpenAI(
                api_key=settings.openai_api_key or None,
                timeout=self.timeout_s,
            )
        return self._openai_client

    def _get_anthropic_client(self) -> Any:
        if self._anthropic_client is None:
            import anthropic

            self._anthropic_client = anthropic.Anthropic(
                api_key=settings.anthropic_api_key or None,
                timeout=self.timeout_s,
            )
        return self._anthropic_client

    def _get_gemini_client(self) -> Any:
        if self._gemini_client is None:
            from google import genai
            from google.genai import types as genai_types

            self._gemini_client = genai.Client(
                api_key=settings.google_ai_api_key or None,
                http_options=genai_types.HttpOptions(timeout=int(self.timeout_s * 1000)),
            )
        return self._gemini_client

    # ------------------------------------------------------------------
    # Unified LLM call
    # ------------------------------------------------------------------

    def call_llm(
        self,
        system_prompt: str,
        user_content: str,
        *,
        response_json: bool = True,
        file_name: str = "",
        temperature: float = 0.0,
    ) -> dict[str, Any]:
        """Call the configured LLM provider and return parsed result + metadata.

        Returns:
            {
                "content": str | dict | list,  # Raw text or parsed JSON
                "input_tokens": int,
                "output_tokens": int,
                "duration_ms": int,
                "provider": str,
                "model": str,
            }

        Raises:
            EvaluationFailure: the provider is unknown or the call failed.
            ValueError: ``response_json`` was requested and the reply is not JSON.
        """
        callers = {
            "openai": self._call_openai,
            "anthropic": self._call_anthropic,
            "google": self._call_gemini,
        }
        caller = callers.get(self.provider)
        if caller is None:
            raise EvaluationFailure(f"Unsupported LLM provider: {self.provider}")

        start = time.time()
        try:
            raw_text, input_tokens, output_tokens = caller(
                system_prompt,
                user_content,
                response_json=response_json,
                temperature=temperature,
            )
        except Exception as e:
            logger.error(
                f"{self.agent_name} LLM call failed",
                provider=self.provider,
                model=self.model,
                file=file_name,
                error=str(e),
            )
            raise EvaluationFailure(f"{self.provider} call failed: {e}") from e

        duration_ms = int((time.time() - start) * 1000)
        logger.info(
            f"{self.agent_name} LLM call",
            provider=self.provider,
            model=self.model,
            file=file_name,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            duration_ms=duration_ms,
        )

        content: Any = raw_text
        if response_json:
            content = self.parse_json(raw_text)

        return {
            "content": content,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "duration_ms": duration_ms,
            "provider": self.provider,
            "model": self.model,
        }

    def _call_openai(
        self,
        system_prompt: str,
        user_content: str,
        *,
        response_json: bool,
        temperature: float,
    ) -> tuple[str, int, int]:
        client = self._get_openai_client()

        kwargs: dict[str, Any] = {
            "model": self.model,
            "temperature": temperature,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
        }
        if response_json:
            kwargs["response_format"] = {"type": "json_object"}

        response = client.chat.completions.create(**kwargs)
        usage = response.usage
        return (
            response.choices[0].message.content or "",
            getattr(usage, "prompt_tokens", 0) or 0,
            getattr(usage, "completion_tokens", 0) or 0,
        )

    def _call_anthropic(
        self,
        system_prompt: str,
        user_content: str,
        *,
        response_json: bool,
        temperature: float,
    ) -> tuple[str, int, int]:
        client = self._get_anthropic_client()

        # Prompt caching: the system prompt is identical across documents
        system_messages: Any = [
            {
                "type": "text",
                "text": system_prompt,
                "cache_control": {"type": "ephemeral"},
            }
        ]

        response = client.messages.create(
            model=self.model,
            max_tokens=4096,
            temperature=temperature,
            system=system_messages,
            messages=[{"role": "user", "content": user_content}],
        )
        usage = response.usage
        return (
            response.content[0].text,
            getattr(usage, "input_tokens", 0) or 0,
            getattr(usage, "output_tokens", 0) or 0,
        )

    def _call_gemini(
        self,
        system_prompt: str,
        user_content: str,
        *,
        response_json: bool,
        temperature: float,
    ) -> tuple[str, int, int]:
        from google.genai import types

        client = self._get_gemini_client()

        config_kwargs: dict[str, Any] = {
            "system_instruction": system_prompt,
            "temperature": temperature,
        }
        if response_json:
            config_kwargs["response_mime_type"] = "application/json"

        response = client.models.generate_content(
            model=self.model,
            contents=user_content,
            config=types.GenerateContentConfig(**config_kwargs),
        )
        usage = response.usage_metadata
        return (
            response.text or "",
            getattr(usage, "prompt_token_count", 0) or 0,
            getattr(usage, "candidates_token_count", 0) or 0,
        )

    # ------------------------------------------------------------------
    # JSON parsing
    # ------------------------------------------------------------------

    @staticmethod
    def parse_json(raw_text: str) -> Any:
        """Parse LLM output as JSON, stripping code fences if present."""
        text = strip_code_fences(raw_text)
        return json.loads(text)
