# config/settings.py
"""
Environment-driven settings for the AI analysis pipeline.

Everything is read once from the process environment (a local .env is
loaded first) and cached by get_settings().  Tests build AnalysisSettings
directly instead of touching the environment.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("settings_invalid_float name=%s value=%r default=%s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("settings_invalid_int name=%s value=%r default=%s", name, raw, default)
        return default


@dataclass
class ProviderSettings:
    api_key: str = ""
    model: str = ""
    base_url: str = ""
    timeout_s: float = 60.0


@dataclass
class AnalysisSettings:
    default_provider: str = "claude"
    temperature: float = 0.7
    max_tokens: int = 4096

    claude: ProviderSettings = field(default_factory=lambda: ProviderSettings(
        model="claude-3-haiku-20240307",
        base_url="https://api.anthropic.com/v1",
    ))
    gemini: ProviderSettings = field(default_factory=lambda: ProviderSettings(
        model="gemini-1.5-flash",
        base_url="https://generativelanguage.googleapis.com/v1beta",
    ))
    openai: ProviderSettings = field(default_factory=lambda: ProviderSettings(
        model="gpt-4o-mini",
        base_url="https://api.openai.com/v1",
    ))

    # Provider retry policy
    max_retries: int = 3
    retry_base_delay_s: float = 1.0

    # Admission control
    daily_limit: int = 3

    # 0 disables the whole-task deadline
    analysis_timeout_s: float = 0.0

    @staticmethod
    def from_env() -> "AnalysisSettings":
        return AnalysisSettings(
            default_provider=(os.getenv("AI_DEFAULT_PROVIDER") or "claude").strip().lower(),
            temperature=_env_float("AI_TEMPERATURE", 0.7),
            max_tokens=_env_int("AI_MAX_TOKENS", 4096),

            claude=ProviderSettings(
                api_key=os.getenv("CLAUDE_API_KEY", ""),
                model=os.getenv("CLAUDE_MODEL") or "claude-3-haiku-20240307",
                base_url=os.getenv("CLAUDE_BASE_URL") or "https://api.anthropic.com/v1",
                timeout_s=_env_float("CLAUDE_TIMEOUT_S", 60.0),
            ),
            gemini=ProviderSettings(
                api_key=os.getenv("GEMINI_API_KEY", ""),
                model=os.getenv("GEMINI_MODEL") or "gemini-1.5-flash",
                base_url=os.getenv("GEMINI_BASE_URL") or "https://generativelanguage.googleapis.com/v1beta",
                timeout_s=_env_float("GEMINI_TIMEOUT_S", 60.0),
            ),
            openai=ProviderSettings(
                api_key=os.getenv("OPENAI_API_KEY", ""),
                model=os.getenv("OPENAI_MODEL") or "gpt-4o-mini",
                base_url=os.getenv("OPENAI_BASE_URL") or "https://api.openai.com/v1",
                timeout_s=_env_float("OPENAI_TIMEOUT_S", 60.0),
            ),

            max_retries=max(1, _env_int("AI_MAX_RETRIES", 3)),
            retry_base_delay_s=max(0.0, _env_float("AI_RETRY_BASE_DELAY_S", 1.0)),
            daily_limit=max(0, _env_int("ANALYSIS_DAILY_LIMIT", 3)),
            analysis_timeout_s=max(0.0, _env_float("ANALYSIS_TIMEOUT_S", 0.0)),
        )

    def provider(self, name: str) -> Optional[ProviderSettings]:
        return {
            "claude": self.claude,
            "gemini": self.gemini,
            "openai": self.openai,
        }.get((name or "").lower())

    def warn_if_misconfigured(self) -> None:
        """Log (never raise) when AI analysis cannot work with the current env."""
        if not (self.claude.api_key or self.gemini.api_key or self.openai.api_key):
            logger.warning(
                "No AI API keys configured (CLAUDE_API_KEY, GEMINI_API_KEY or OPENAI_API_KEY). "
                "AI analysis will fail until one is set."
            )
            return

        default = self.provider(self.default_provider)
        if default is None:
            logger.warning("AI_DEFAULT_PROVIDER=%s is not a known provider", self.default_provider)
        elif not default.api_key:
            logger.warning(
                "Default AI provider is %s but its API key is not set.", self.default_provider
            )


_settings: Optional[AnalysisSettings] = None


def get_settings() -> AnalysisSettings:
    global _settings
    if _settings is None:
        _settings = AnalysisSettings.from_env()
    return _settings
