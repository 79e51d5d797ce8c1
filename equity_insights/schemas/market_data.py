"""Market data DTOs exchanged with the price-history / quote / options providers"""
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class PriceBar(BaseModel):
    """One daily OHLCV bar. Series are ordered ascending by date."""
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


class QuoteMetrics(BaseModel):
    """Quote-level statistics; any field may be missing"""
    market_cap: Optional[float] = None
    fifty_two_week_high: Optional[float] = None
    fifty_two_week_low: Optional[float] = None
    regular_market_price: Optional[float] = None
    average_volume: Optional[float] = None
    beta: Optional[float] = None
    short_percent_of_float: Optional[float] = Field(None, description="Fraction, e.g. 0.042 for 4.2%")
    next_earnings_date: Optional[datetime] = None


class OptionQuote(BaseModel):
    strike: float
    implied_volatility: Optional[float] = Field(None, description="Decimal, e.g. 0.583")


class OptionsSnapshot(BaseModel):
    """Listed option expirations for an underlying"""
    ticker: str
    underlying_price: float
    expirations: List[datetime] = Field(default_factory=list)
