# routers/analysis_routes.py
"""
FastAPI routes for AI portfolio analysis.

POST starts an analysis and returns 202 immediately; the result is polled
through GET /{analysis_id}.
"""
from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from middleware.rate_limit import ANALYSIS_TRIGGER_LIMIT, limiter
from models.user import User
from schemas.ai_analysis import (
    AnalysisDetailsResponse,
    AnalysisInitiatedResponse,
    PaginatedAnalysesResponse,
    ProvidersResponse,
)
from services.analysis.analysis_service import AnalysisService
from services.analysis.errors import AnalysisError
from services.supabase_auth import get_current_db_user

logger = logging.getLogger(__name__)

router = APIRouter()


def get_analysis_service(request: Request) -> AnalysisService:
    """The service is built once at startup (main.lifespan) and kept on app.state."""
    return request.app.state.analysis_service


def _http_error(exc: AnalysisError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())


# ============================================================================
# ENDPOINTS
# ============================================================================

@router.post("", response_model=AnalysisInitiatedResponse, status_code=status.HTTP_202_ACCEPTED)
@limiter.limit(ANALYSIS_TRIGGER_LIMIT)
async def trigger_analysis(
    request: Request,
    user: User = Depends(get_current_db_user),
    service: AnalysisService = Depends(get_analysis_service),
):
    """
    Start an AI analysis of the caller's portfolio.

    - 429 when today's quota is used up
    - 402 when no investment strategy is defined yet
    """
    try:
        return await service.trigger_analysis(user.id)
    except AnalysisError as e:
        if e.status_code >= 500:
            logger.error("analysis_trigger_failed user_id=%s code=%s", user.id, e.code)
        raise _http_error(e)
    except Exception as e:
        logger.exception("analysis_trigger_failed user_id=%s: %s", user.id, e)
        raise HTTPException(status_code=500, detail="Failed to start analysis")


@router.get("/providers", response_model=ProvidersResponse)
async def list_providers(service: AnalysisService = Depends(get_analysis_service)):
    return service.providers()


@router.get("", response_model=PaginatedAnalysesResponse)
def list_analyses(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_db_user),
    service: AnalysisService = Depends(get_analysis_service),
):
    try:
        return service.list_analyses(user.id, page=page, limit=limit)
    except AnalysisError as e:
        raise _http_error(e)


@router.get("/{analysis_id}", response_model=AnalysisDetailsResponse)
def get_analysis(
    analysis_id: UUID,
    user: User = Depends(get_current_db_user),
    service: AnalysisService = Depends(get_analysis_service),
):
    try:
        return service.get_analysis_details(user.id, str(analysis_id))
    except AnalysisError as e:
        raise _http_error(e)
