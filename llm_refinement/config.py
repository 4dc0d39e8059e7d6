# llm_refinement/config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv

# Load environment variables from .env before reading provider defaults
load_dotenv()

# ---------- Provider defaults ----------
LLM_PROVIDER          = os.getenv("LLM_PROVIDER", "openai")
LLM_API_KEY           = os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY") or ""
AZURE_OPENAI_ENDPOINT = os.getenv("AZURE_OPENAI_ENDPOINT")
LLM_MODEL             = os.getenv("LLM_MODEL") or None
DEFAULT_MODEL         = "gpt-4o-mini"
OPENAI_CHAT_URL       = os.getenv("OPENAI_CHAT_URL", "https://api.openai.com/v1/chat/completions")

# ---------- Batching / transport ----------
# Max candidates per request, keeps token counts bounded
LLM_BATCH_SIZE      = int(os.getenv("LLM_BATCH_SIZE", "120"))
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))
LLM_MAX_RETRIES     = int(os.getenv("LLM_MAX_RETRIES", "0"))


@dataclass(frozen=True)
class LlmConfig:
    """Session-scoped provider settings. Never written to disk."""
    provider: str                      # "openai" | "azure"
    api_key: str
    # Azure only: full chat-completions URL including deployment and api-version
    azure_endpoint: Optional[str] = None
    model: Optional[str] = None

    @property
    def resolved_model(self) -> str:
        return self.model or DEFAULT_MODEL

    @property
    def endpoint(self) -> str:
        if self.provider == "azure":
            return self.azure_endpoint or ""
        return OPENAI_CHAT_URL

    def headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.provider == "azure":
            headers["api-key"] = self.api_key
        else:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def to_safe_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "api_key": "[REDACTED]" if self.api_key else "",
            "azure_endpoint": self.azure_endpoint,
            "model": self.resolved_model,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LlmConfig":
        return cls(
            provider=str(data.get("provider") or LLM_PROVIDER),
            api_key=str(data.get("api_key") or ""),
            azure_endpoint=data.get("azure_endpoint") or None,
            model=data.get("model") or None,
        )

    @classmethod
    def from_env(cls) -> Optional["LlmConfig"]:
        """Provider settings from the environment, or None when no key is set."""
        if not LLM_API_KEY:
            return None
        return cls(
            provider=LLM_PROVIDER,
            api_key=LLM_API_KEY,
            azure_endpoint=AZURE_OPENAI_ENDPOINT,
            model=LLM_MODEL,
        )
