# services/analysis/errors.py
"""
Domain errors for AI portfolio analysis.

Every error carries the HTTP status and a stable `code` the frontend can
switch on.  Routes turn them into HTTPException(detail={"message", "code"}).
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class AnalysisError(Exception):
    status_code: int = 500
    code: str = "ANALYSIS_ERROR"
    default_message: str = "Analysis request failed."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_detail(self) -> Dict[str, Any]:
        return {"message": self.message, "code": self.code}


# ─── Synchronous phase ───────────────────────────────────────────


class QuotaExceeded(AnalysisError):
    status_code = 429
    code = "DAILY_LIMIT"
    default_message = "Daily analysis limit exceeded. Please try again tomorrow."


class PreconditionFailed(AnalysisError):
    status_code = 402
    code = "STRATEGY_REQUIRED"
    default_message = "Investment strategy must be defined before requesting an analysis."


class AnalysisNotFound(AnalysisError):
    status_code = 404
    code = "ANALYSIS_NOT_FOUND"
    default_message = "Analysis not found or access denied."


class StoreFailure(AnalysisError):
    status_code = 500
    code = "STORE_FAILURE"
    default_message = "Failed to read or write analysis data."


# ─── Provider resolution ─────────────────────────────────────────


class ProviderUnavailable(AnalysisError):
    status_code = 503
    code = "PROVIDER_UNAVAILABLE"
    default_message = "No AI provider is available."


class ProviderNotFound(ProviderUnavailable):
    pass


class ProviderNotConfigured(ProviderUnavailable):
    pass


# ─── Provider calls ──────────────────────────────────────────────


class ProviderError(AnalysisError):
    """Anything that went wrong talking to, or reading from, an AI vendor."""

    status_code = 502
    code = "PROVIDER_ERROR"
    default_message = "AI provider call failed."

    def __init__(self, provider: str, message: Optional[str] = None):
        self.provider = provider
        super().__init__(message)


class ProviderCallFailed(ProviderError):
    """Raised once the retry budget for a vendor call is exhausted."""

    def __init__(self, provider: str, message: Optional[str] = None, *, attempts: int = 0):
        self.attempts = attempts
        super().__init__(provider, message)


class ProviderHTTPError(ProviderError):
    def __init__(self, provider: str, message: Optional[str] = None, *, status: Optional[int] = None):
        self.status = status
        super().__init__(provider, message)


class ProviderAuthError(ProviderHTTPError):
    pass


class ProviderRateLimitError(ProviderHTTPError):
    pass


class ProviderBadRequestError(ProviderHTTPError):
    pass


class ProviderResponseError(ProviderError):
    """The vendor answered 2xx but the envelope had no usable text."""


class ResponseParseError(ProviderError):
    code = "RESPONSE_INVALID"


class ResponseValidationFailed(ProviderError):
    code = "RESPONSE_INVALID"
