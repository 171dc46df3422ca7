from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    app_name: str = "Lab Compliance Checker"
    debug: bool = False
    api_prefix: str = "/api/v1"

    # LLM (multi-provider: openai | anthropic | google)
    llm_provider: str = "openai"
    llm_model: str = ""  # auto-defaults per provider if empty
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    google_ai_api_key: str = ""
    llm_timeout_s: float = 120.0

    # Regulatory law search (Tavily) for beverage and swab checks
    tavily_api_key: str = ""
    tavily_max_results: int = 5
    law_search_timeout_s: float = 30.0

    # CEIRSA corpus (JSON export of the CEIRSA microbiological criteria)
    ceirsa_dataset_path: str = "dataset/ceirsa_categories.json"

    # Compliance rules
    # lenient: "< LOQ" never evidences a violation and resolves to compliant
    # strict: "< LOQ" above a stricter limit stays unresolved
    loq_policy: Literal["strict", "lenient"] = "lenient"
    judge_context_chars: int = 6000

    # Bulk checks
    bulk_max_concurrency: int = 4
    document_timeout_s: float = 300.0
    max_file_size_mb: int = 20

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
