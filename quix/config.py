"""
Runtime configuration for Quix.
"""

import os
from dataclasses import dataclass
from typing import Optional

from .engine import DEFAULT_MAX_CYCLES
from .llm import LLMConfig, _resolve_provider
from .tracker import MAX_RESULT_LENGTH


def _env_float(name: str) -> Optional[float]:
    value = os.environ.get(name)
    return float(value) if value else None


@dataclass
class QuixConfig:
    """Configuration for the orchestrator and its model backend."""

    model: str = "gpt-4o"
    provider: Optional[str] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    temperature: float = 0.1
    max_tokens: int = 4096

    max_cycles: int = DEFAULT_MAX_CYCLES
    model_timeout: Optional[float] = None
    tool_timeout: Optional[float] = None
    max_result_length: int = MAX_RESULT_LENGTH

    bridge_config_path: Optional[str] = None
    log_level: str = "info"
    assistant_name: str = "Quix"

    def __post_init__(self):
        if self.max_cycles < 1:
            raise ValueError("max_cycles must be at least 1")
        if self.api_key is None:
            provider = self.provider or _resolve_provider(self.model)
            if provider == "anthropic":
                self.api_key = os.environ.get("ANTHROPIC_API_KEY")
            elif provider == "gemini":
                self.api_key = os.environ.get("GEMINI_API_KEY")
            else:
                self.api_key = os.environ.get("OPENAI_API_KEY")

    @classmethod
    def from_env(cls) -> "QuixConfig":
        """Create configuration from environment variables."""
        return cls(
            model=os.environ.get("QUIX_MODEL", "gpt-4o"),
            provider=os.environ.get("QUIX_PROVIDER") or None,
            api_key=os.environ.get("QUIX_API_KEY") or None,
            base_url=os.environ.get("QUIX_BASE_URL") or None,
            temperature=float(os.environ.get("QUIX_TEMPERATURE", "0.1")),
            max_tokens=int(os.environ.get("QUIX_MAX_TOKENS", "4096")),
            max_cycles=int(os.environ.get("QUIX_MAX_CYCLES", str(DEFAULT_MAX_CYCLES))),
            model_timeout=_env_float("QUIX_MODEL_TIMEOUT"),
            tool_timeout=_env_float("QUIX_TOOL_TIMEOUT"),
            max_result_length=int(
                os.environ.get("QUIX_MAX_RESULT_LENGTH", str(MAX_RESULT_LENGTH))
            ),
            bridge_config_path=os.environ.get("QUIX_BRIDGES") or None,
            log_level=os.environ.get("QUIX_LOG_LEVEL", "info"),
            assistant_name=os.environ.get("QUIX_ASSISTANT_NAME", "Quix"),
        )

    def llm_config(self) -> LLMConfig:
        """The model backend settings derived from this configuration."""
        return LLMConfig(
            model=self.model,
            provider=self.provider,
            api_key=self.api_key,
            base_url=self.base_url,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
