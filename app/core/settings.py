from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    app_env: str
    log_level: str
    llm_provider: str
    llm_model: str | None
    gemini_api_key: str
    openai_api_key: str
    llm_timeout: float
    fetch_timeout: float
    supabase_url: str
    supabase_service_role_key: str
    db_path: str

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)

    @staticmethod
    def from_env() -> "Settings":
        def _s(name: str, default: str = "") -> str:
            return os.getenv(name, default).strip()

        def _f(name: str, default: str) -> float:
            return float(os.getenv(name, default).strip())

        provider = _s("LLM_PROVIDER", "gemini").lower()

        return Settings(
            app_env=_s("APP_ENV", "dev"),
            log_level=_s("LOG_LEVEL", "INFO").upper(),
            llm_provider=provider,
            llm_model=_s("LLM_MODEL") or _s(f"{provider.upper()}_MODEL") or None,
            gemini_api_key=_s("GEMINI_API_KEY"),
            openai_api_key=_s("OPENAI_API_KEY"),
            llm_timeout=_f("LLM_TIMEOUT", "60"),
            fetch_timeout=_f("FETCH_TIMEOUT", "30"),
            supabase_url=_s("SUPABASE_URL"),
            supabase_service_role_key=_s("SUPABASE_SERVICE_ROLE_KEY"),
            db_path=_s("DB_PATH"),
        )
