"""Portfolio insights DTOs"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from equity_insights.schemas.technical import TechnicalSignal

AlertType = Literal[
    "oversold",
    "overbought",
    "near_support",
    "near_resistance",
    "near_52w_high",
    "near_52w_low",
]
Priority = Literal["high", "medium", "low"]
OpportunityType = Literal["dip_buy", "take_profit"]
HealthAssessment = Literal["excellent", "good", "fair", "needs_attention"]


class Alert(BaseModel):
    type: AlertType
    ticker: str
    message: str
    priority: Priority
    action_hint: Optional[str] = None


class Opportunity(BaseModel):
    type: OpportunityType
    tickers: List[str]
    rationale: str
    priority: Priority = "medium"


class HealthBreakdown(BaseModel):
    diversification: int = Field(..., ge=0, le=100)
    momentum: int = Field(..., ge=0, le=100)
    risk_balance: int = Field(..., ge=0, le=100)


class PortfolioHealth(BaseModel):
    score: int = Field(..., ge=0, le=100)
    breakdown: HealthBreakdown
    assessment: HealthAssessment
    summary: str


class PortfolioInsights(BaseModel):
    signals: List[TechnicalSignal] = Field(default_factory=list)
    alerts: List[Alert] = Field(default_factory=list, description="Highest priority first, at most 10")
    opportunities: List[Opportunity] = Field(default_factory=list)
    health: PortfolioHealth
    calculated_at: datetime


class InsightsResponse(BaseModel):
    insights: PortfolioInsights
    holdings_count: int = Field(..., description="Holdings submitted, including those not analysed")
    signals_generated: int


class HoldingIn(BaseModel):
    ticker: str = Field(..., min_length=1, max_length=16)
    category: Optional[str] = Field(None, description="Sector / theme used for diversification")


class PortfolioInsightsRequest(BaseModel):
    holdings: List[HoldingIn] = Field(default_factory=list)
