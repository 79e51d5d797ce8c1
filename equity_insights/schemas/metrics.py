"""Historical metric / implied volatility DTOs"""
from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field


class PercentileSummary(BaseModel):
    """Where a value sits against its trailing-year history"""
    percentile: Optional[int] = Field(None, ge=0, le=100, description="None while building history or on a flat range")
    high: Optional[float] = None
    low: Optional[float] = None
    sample_count: int = 0
    building_history: bool = True

    @classmethod
    def empty(cls) -> "PercentileSummary":
        return cls(percentile=None, high=None, low=None, sample_count=0, building_history=True)


class MetricHistoryView(BaseModel):
    current: float
    percentile: Optional[int] = None
    high_52w: Optional[float] = None
    low_52w: Optional[float] = None
    data_points: int = 0
    building_history: bool = True

    @classmethod
    def from_summary(cls, current: float, summary: PercentileSummary) -> "MetricHistoryView":
        return cls(
            current=current,
            percentile=summary.percentile,
            high_52w=summary.high,
            low_52w=summary.low,
            data_points=summary.sample_count,
            building_history=summary.building_history,
        )


class HistoricalMetricsResponse(BaseModel):
    ticker: str
    metrics: Dict[str, Optional[MetricHistoryView]]
    snapshot_recorded: bool


class IVResponse(BaseModel):
    ticker: str
    current_iv: float = Field(..., description="Percent, e.g. 58.3")
    iv_percentile: Optional[int] = None
    iv_52w_high: Optional[float] = None
    iv_52w_low: Optional[float] = None
    data_points: int = 0
    building_history: bool = True
    expiration_used: datetime
