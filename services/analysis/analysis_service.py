# services/analysis/analysis_service.py
"""
AI portfolio analysis orchestration.

trigger_analysis runs inside the request: quota check, strategy check,
placeholder row (which also reserves quota).  The vendor call happens in
a detached asyncio task that owns its own error boundary, so the HTTP
response (202 + analysisId) never waits on the AI provider.

Clients poll GET /api/v1/analyses/{id}; the row moves from PENDING to
COMPLETED (summary + recommendations) or FAILED ("Analysis failed: ...").
"""
from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, Dict, Optional, Set

from config.settings import AnalysisSettings
from schemas.ai_analysis import (
    AnalysisDetailsResponse,
    AnalysisInitiatedResponse,
    AnalysisListItem,
    PaginatedAnalysesResponse,
    PaginationDetails,
    RecommendationResponse,
)
from services.ai.providers.registry import ProviderRegistry
from services.analysis.errors import AnalysisNotFound, PreconditionFailed
from services.analysis.prompt_builder import PromptBuilder
from services.analysis.rate_limiter import AnalysisRateLimiter
from services.analysis.store import AnalysisStore

logger = logging.getLogger(__name__)

PLACEHOLDER_SUMMARY = "Analysis in progress..."
INITIATED_MESSAGE = "Analysis has been initiated. You will be notified when it's complete."
MAX_PAGE_SIZE = 100


class AnalysisService:
    def __init__(
        self,
        store: AnalysisStore,
        registry: ProviderRegistry,
        rate_limiter: AnalysisRateLimiter,
        prompt_builder: Optional[PromptBuilder] = None,
        settings: Optional[AnalysisSettings] = None,
    ):
        self.store = store
        self.registry = registry
        self.rate_limiter = rate_limiter
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.settings = settings or AnalysisSettings()
        self._tasks: Set[asyncio.Task] = set()

    # ─── Synchronous phase ───────────────────────────────────────

    def require_strategy(self, user_id: int) -> None:
        if self.store.get_strategy(user_id) is None:
            raise PreconditionFailed()

    def _placeholder_model(self) -> str:
        provider = self.registry.get()
        return provider.model if provider is not None else "unknown"

    async def trigger_analysis(self, user_id: int) -> AnalysisInitiatedResponse:
        """
        Admit the request, record a PENDING analysis and start the
        background run.  Raises QuotaExceeded / PreconditionFailed /
        StoreFailure; never calls the AI provider.
        """
        await asyncio.to_thread(self.rate_limiter.check, user_id)
        await asyncio.to_thread(self.require_strategy, user_id)

        value = await asyncio.to_thread(self.store.get_current_portfolio_value, user_id)
        analysis = await asyncio.to_thread(
            self.store.create_analysis,
            user_id,
            value,
            self._placeholder_model(),
            PLACEHOLDER_SUMMARY,
            reserve_on=self.rate_limiter.today(),
        )

        logger.info(
            "analysis_triggered user_id=%s analysis_id=%s portfolio_value=%.2f",
            user_id, analysis.id, value,
            extra={"user_id": user_id, "analysis_id": analysis.id},
        )
        self._spawn(user_id, analysis.id)
        return AnalysisInitiatedResponse(message=INITIATED_MESSAGE, analysisId=analysis.id)

    def _spawn(self, user_id: int, analysis_id: str) -> asyncio.Task:
        task = asyncio.create_task(
            self.run_analysis(user_id, analysis_id),
            name=f"analysis:{analysis_id}",
        )
        # keep a strong reference until it finishes
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ─── Background phase ────────────────────────────────────────

    async def run_analysis(self, user_id: int, analysis_id: str) -> None:
        """Run one analysis to a terminal state. Never raises except on cancellation."""
        ctx = {"user_id": user_id, "analysis_id": analysis_id}
        timeout = self.settings.analysis_timeout_s
        try:
            if timeout and timeout > 0:
                await asyncio.wait_for(self._execute(user_id, analysis_id), timeout=timeout)
            else:
                await self._execute(user_id, analysis_id)
        except asyncio.TimeoutError:
            logger.error("analysis_timed_out analysis_id=%s timeout_s=%s", analysis_id, timeout, extra=ctx)
            await self._mark_failed(analysis_id, f"Analysis timed out after {timeout:g}s")
        except asyncio.CancelledError:
            logger.warning("analysis_cancelled analysis_id=%s", analysis_id, extra=ctx)
            # inline: the task is being cancelled
            self._write_failure(analysis_id, "Analysis was cancelled")
            raise
        except Exception as exc:
            logger.exception("analysis_failed analysis_id=%s err=%s", analysis_id, exc, extra=ctx)
            await self._mark_failed(analysis_id, str(exc) or exc.__class__.__name__)

    async def _execute(self, user_id: int, analysis_id: str) -> None:
        # store calls use blocking sessions; keep them off the event loop
        portfolio = await asyncio.to_thread(self.store.get_portfolio_data, user_id)
        prompt = self.prompt_builder.build(portfolio)
        provider = self.registry.resolve()

        logger.info(
            "analysis_started analysis_id=%s provider=%s model=%s positions=%d",
            analysis_id, provider.name, provider.model, len(portfolio.positions),
            extra={"analysis_id": analysis_id, "provider": provider.name},
        )

        result = await provider.analyze(prompt, portfolio)

        await asyncio.to_thread(
            self.store.complete_analysis,
            analysis_id,
            summary=result.summary,
            ai_model=provider.model,
            prompt=prompt,
            recommendations=result.recommendations,
        )
        logger.info(
            "analysis_completed analysis_id=%s recommendations=%d",
            analysis_id, len(result.recommendations),
            extra={"analysis_id": analysis_id, "provider": provider.name},
        )

    async def _mark_failed(self, analysis_id: str, message: str) -> None:
        await asyncio.to_thread(self._write_failure, analysis_id, message)

    def _write_failure(self, analysis_id: str, message: str) -> None:
        try:
            self.store.fail_analysis(analysis_id, message)
        except Exception:
            logger.exception(
                "analysis_fail_marker_not_written analysis_id=%s", analysis_id,
                extra={"analysis_id": analysis_id},
            )

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight analyses (shutdown hook / tests)."""
        if not self._tasks:
            return
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning("analysis_drain_incomplete pending=%d", len(pending))

    # ─── Reads ───────────────────────────────────────────────────

    def get_analysis_details(self, user_id: int, analysis_id: str) -> AnalysisDetailsResponse:
        a = self.store.get_analysis(user_id, analysis_id)
        if a is None:
            raise AnalysisNotFound()

        return AnalysisDetailsResponse(
            id=a.id,
            analysisDate=a.analysis_date,
            portfolioValue=a.portfolio_value,
            aiModel=a.ai_model,
            status=a.status,
            analysisSummary=a.analysis_summary,
            analysisPrompt=a.analysis_prompt,
            recommendations=[
                RecommendationResponse(
                    id=r.id,
                    ticker=r.ticker,
                    action=r.action,
                    reasoning=r.reasoning,
                    confidence=r.confidence,
                    targetAllocation=r.target_allocation,
                    currentAllocation=r.current_allocation,
                )
                for r in a.recommendations
            ],
        )

    def list_analyses(self, user_id: int, page: int = 1, limit: int = 10) -> PaginatedAnalysesResponse:
        page = max(1, int(page))
        limit = max(1, min(int(limit), MAX_PAGE_SIZE))

        rows, total = self.store.list_analyses(user_id, offset=(page - 1) * limit, limit=limit)
        return PaginatedAnalysesResponse(
            data=[
                AnalysisListItem(
                    id=a.id,
                    analysisDate=a.analysis_date,
                    portfolioValue=a.portfolio_value,
                    aiModel=a.ai_model,
                    status=a.status,
                )
                for a in rows
            ],
            pagination=PaginationDetails(
                currentPage=page,
                totalPages=math.ceil(total / limit) if total else 0,
                totalItems=total,
                itemsPerPage=limit,
            ),
        )

    def providers(self) -> Dict[str, Any]:
        return {
            "default": self.registry.default_provider,
            "available": self.registry.list_available(),
            "configured": self.registry.list_configured(),
        }
