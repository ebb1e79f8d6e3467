from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ============================================================================
# ENUMS
# ============================================================================


class RecommendationAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"
    REDUCE = "REDUCE"
    INCREASE = "INCREASE"


class ConfidenceLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class AnalysisStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


RiskLevel = Literal["LOW", "MEDIUM", "HIGH"]
TimeHorizon = Literal["SHORT_TERM", "MEDIUM_TERM", "LONG_TERM"]


# ============================================================================
# PORTFOLIO INPUT (what the prompt builder and providers see)
# ============================================================================


class Position(BaseModel):
    ticker: str
    quantity: float
    average_price: float
    current_price: float
    total_value: float
    percentage_of_portfolio: float = 0.0
    profit_loss: float = 0.0
    profit_loss_percentage: float = 0.0


class InvestmentStrategyData(BaseModel):
    risk_level: RiskLevel
    time_horizon: TimeHorizon
    investment_goals: str = ""
    preferred_sectors: List[str] = Field(default_factory=list)
    avoided_sectors: List[str] = Field(default_factory=list)


class PortfolioData(BaseModel):
    user_id: int
    total_value: float
    positions: List[Position] = Field(default_factory=list)
    strategy: InvestmentStrategyData


# ============================================================================
# PROVIDER OUTPUT (validated before anything is persisted)
# ============================================================================


def _non_empty(value: str, what: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{what} must be a non-empty string")
    return value.strip()


class AIRecommendationResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    ticker: str
    action: RecommendationAction
    reasoning: str
    confidence: ConfidenceLevel
    target_allocation: Optional[float] = Field(default=None, alias="targetAllocation")
    current_allocation: Optional[float] = Field(default=None, alias="currentAllocation")

    @field_validator("ticker")
    @classmethod
    def _ticker(cls, v: str) -> str:
        return _non_empty(v, "ticker")

    @field_validator("reasoning")
    @classmethod
    def _reasoning(cls, v: str) -> str:
        return _non_empty(v, "reasoning")


class AIAnalysisResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    summary: str
    recommendations: List[AIRecommendationResult]
    overall_score: Optional[float] = Field(default=None, alias="overallScore")
    risk_assessment: Optional[str] = Field(default=None, alias="riskAssessment")

    @field_validator("summary")
    @classmethod
    def _summary(cls, v: str) -> str:
        return _non_empty(v, "summary")


# ============================================================================
# RESPONSE MODELS
# ============================================================================


class AnalysisInitiatedResponse(BaseModel):
    message: str
    analysisId: str


class RecommendationResponse(BaseModel):
    id: str
    ticker: str
    action: str
    reasoning: str
    confidence: Optional[str] = None
    targetAllocation: Optional[float] = None
    currentAllocation: Optional[float] = None


class AnalysisDetailsResponse(BaseModel):
    id: str
    analysisDate: datetime
    portfolioValue: float
    aiModel: str
    status: AnalysisStatus
    analysisSummary: str
    analysisPrompt: Optional[str] = None
    recommendations: List[RecommendationResponse]


class AnalysisListItem(BaseModel):
    id: str
    analysisDate: datetime
    portfolioValue: float
    aiModel: str
    status: AnalysisStatus


class PaginationDetails(BaseModel):
    currentPage: int
    totalPages: int
    totalItems: int
    itemsPerPage: int


class PaginatedAnalysesResponse(BaseModel):
    data: List[AnalysisListItem]
    pagination: PaginationDetails


class ProvidersResponse(BaseModel):
    default: str
    available: List[str]
    configured: List[str]
