"""
Shared behaviour for AI vendor integrations.

A provider only has to implement `_request_text(prompt)`: one HTTP round
trip returning the model's raw text.  BaseAIProvider wraps it with:

  1. configuration check (missing key -> ProviderNotConfigured)
  2. retry with linear-in-attempt backoff (attempt * base delay)
  3. JSON extraction (no retry: a malformed answer is returned as-is)
  4. schema validation into AIAnalysisResult
"""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from config.settings import ProviderSettings
from schemas.ai_analysis import AIAnalysisResult, PortfolioData
from services.ai.providers.parsing import parse_response, validate_response
from services.analysis.errors import (
    ProviderAuthError,
    ProviderBadRequestError,
    ProviderCallFailed,
    ProviderHTTPError,
    ProviderNotConfigured,
    ProviderRateLimitError,
)

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[Any]]


class BaseAIProvider(ABC):
    name: str = "base"

    def __init__(
        self,
        settings: ProviderSettings,
        *,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        max_retries: int = 3,
        retry_base_delay_s: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.api_key = settings.api_key or ""
        self.model = settings.model
        self.base_url = (settings.base_url or "").rstrip("/")
        self.timeout_s = settings.timeout_s
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_retries = max(1, max_retries)
        self.retry_base_delay_s = max(0.0, retry_base_delay_s)
        # injectable for tests (httpx.MockTransport / no-op sleep)
        self._transport = transport
        self._sleep = sleep

    # ---- contract ----

    def is_configured(self) -> bool:
        return bool(self.api_key.strip())

    async def analyze(self, prompt: str, portfolio_data: PortfolioData) -> AIAnalysisResult:
        if not self.is_configured():
            raise ProviderNotConfigured(f"{self.name} API key is not configured")

        text = await self.with_retry(lambda: self._request_text(prompt))
        payload = parse_response(self.name, text)
        result = validate_response(self.name, payload)

        logger.info(
            "ai_analysis_received provider=%s model=%s user_id=%s recommendations=%d",
            self.name, self.model, portfolio_data.user_id, len(result.recommendations),
            extra={"provider": self.name},
        )
        return result

    @abstractmethod
    async def _request_text(self, prompt: str) -> str:
        """One vendor round trip. Raise a ProviderError subclass on failure."""

    # ---- retry ----

    def _log_failed_attempt(self, state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        logger.warning(
            "ai_provider_attempt_failed provider=%s attempt=%d/%d err=%s",
            self.name, state.attempt_number, self.max_retries, exc,
            extra={"provider": self.name, "attempt": state.attempt_number},
        )

    async def with_retry(self, fn: Callable[[], Awaitable[Any]]) -> Any:
        """
        Run `fn` up to max_retries times, sleeping attempt * base delay
        between attempts.  Raises ProviderCallFailed carrying the last
        underlying error message once the budget is spent.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_incrementing(start=self.retry_base_delay_s, increment=self.retry_base_delay_s),
            retry=retry_if_exception_type(Exception),
            after=self._log_failed_attempt,
            sleep=self._sleep,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await fn()
        except RetryError as exc:
            last = exc.last_attempt.exception()
            raise ProviderCallFailed(
                self.name,
                f"{self.name} API failed after {self.max_retries} attempts: {last}",
                attempts=self.max_retries,
            ) from last

    # ---- HTTP helpers ----

    def _client(self, headers: Optional[dict] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers or {},
            timeout=self.timeout_s,
            transport=self._transport,
        )

    async def _post_json(
        self,
        path: str,
        body: dict,
        *,
        headers: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> dict:
        async with self._client(headers) as client:
            try:
                r = await client.post(path, json=body, params=params)
            except httpx.HTTPError as exc:
                raise ProviderHTTPError(self.name, f"{self.name} API request failed: {exc!r}") from exc

        if not r.is_success:
            self._raise_for_status(r.status_code, _error_message(r))

        try:
            return r.json()
        except ValueError as exc:
            raise ProviderHTTPError(
                self.name, f"{self.name} API returned a non-JSON body", status=r.status_code
            ) from exc

    def _raise_for_status(self, status: int, message: str) -> None:
        """Map vendor HTTP errors onto provider-tagged exceptions."""
        if status in (401, 403):
            raise ProviderAuthError(self.name, f"Invalid {self.name} API key or access denied: {message}", status=status)
        if status == 429:
            raise ProviderRateLimitError(self.name, f"{self.name} API rate limit exceeded", status=status)
        if status == 400:
            raise ProviderBadRequestError(self.name, f"{self.name} API request error: {message}", status=status)
        raise ProviderHTTPError(self.name, f"{self.name} API error ({status}): {message}", status=status)


def _error_message(r: httpx.Response) -> str:
    try:
        data = r.json()
    except ValueError:
        return (r.text or r.reason_phrase or "").strip()[:300]

    err = data.get("error") if isinstance(data, dict) else None
    if isinstance(err, dict) and err.get("message"):
        return str(err["message"])
    if isinstance(err, str):
        return err
    return r.reason_phrase or "unknown error"
