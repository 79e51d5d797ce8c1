"""Implied volatility tracking

Reads the at-the-money call IV from a near-month option chain and keeps a
daily history of it (metric "iv") so the current reading can be ranked
against the trailing year.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Sequence

from equity_insights.core.exceptions import OptionsDataUnavailableError
from equity_insights.providers.base import OptionsDataProvider
from equity_insights.providers.technical_calculator import round_half_up
from equity_insights.schemas.market_data import OptionQuote
from equity_insights.schemas.metrics import IVResponse
from equity_insights.services.metric_history_service import MetricHistoryService

logger = logging.getLogger(__name__)

IV_METRIC = "iv"
MIN_DAYS_OUT = 7
TARGET_MIN_DAYS = 20
TARGET_MAX_DAYS = 60


def is_monthly_expiration(expiration: datetime) -> bool:
    """Monthly contracts expire on the third Friday of the month."""
    return expiration.weekday() == 4 and 15 <= expiration.day <= 21


def select_expiration(expirations: Sequence[datetime], now: datetime) -> Optional[datetime]:
    """Pick the expiration to read IV from.

    Only expirations more than 7 days out qualify. Preference order: first
    monthly expiration 20-60 days out, then the first one at least 20 days
    out, then the nearest qualifying one.
    """
    def days_out(exp: datetime) -> float:
        return (exp - now).total_seconds() / 86400

    candidates = sorted(exp for exp in expirations if days_out(exp) > MIN_DAYS_OUT)
    if not candidates:
        return None

    for exp in candidates:
        if TARGET_MIN_DAYS <= days_out(exp) <= TARGET_MAX_DAYS and is_monthly_expiration(exp):
            return exp

    for exp in candidates:
        if days_out(exp) >= TARGET_MIN_DAYS:
            return exp

    return candidates[0]


def find_atm_call(calls: Sequence[OptionQuote], price: float) -> Optional[OptionQuote]:
    """Call whose strike is closest to ``price`` (first one wins a tie)"""
    if not calls:
        return None
    return min(calls, key=lambda c: abs(c.strike - price))


class ImpliedVolatilityService:
    """ATM implied volatility with its trailing-year percentile"""

    def __init__(self, market_data: OptionsDataProvider, metric_history: MetricHistoryService):
        self.market_data = market_data
        self.metric_history = metric_history

    async def get_iv(self, ticker: str, now: Optional[datetime] = None) -> IVResponse:
        """Current ATM IV (percent) for ``ticker``; records today's reading.

        Raises:
            OptionsDataUnavailableError: no chain, price, expiration, calls or IV
        """
        ticker = ticker.upper().strip()
        now = now or datetime.now(timezone.utc)

        snapshot = await self.market_data.get_options_snapshot(ticker)
        if snapshot is None or not snapshot.expirations:
            raise OptionsDataUnavailableError(ticker, "No options data available")
        if snapshot.underlying_price <= 0:
            raise OptionsDataUnavailableError(ticker, "Could not determine current price")

        expiration = select_expiration(snapshot.expirations, now)
        if expiration is None:
            raise OptionsDataUnavailableError(ticker, "No suitable expiration found")

        calls = await self.market_data.get_option_calls(ticker, expiration)
        atm_call = find_atm_call(calls, snapshot.underlying_price)
        if atm_call is None:
            raise OptionsDataUnavailableError(ticker, "No call options in chain")

        raw_iv = atm_call.implied_volatility
        if raw_iv is None or raw_iv <= 0:
            raise OptionsDataUnavailableError(ticker, "No IV data on ATM option")

        current_iv = round_half_up(raw_iv * 100, 2)
        logger.info(
            f"{ticker} ATM IV {current_iv}% (strike {atm_call.strike}, expiry {expiration:%Y-%m-%d})"
        )

        summary = await self.metric_history.record_and_summarize(ticker, IV_METRIC, current_iv, now)
        return IVResponse(
            ticker=ticker,
            current_iv=current_iv,
            iv_percentile=summary.percentile,
            iv_52w_high=summary.high,
            iv_52w_low=summary.low,
            data_points=summary.sample_count,
            building_history=summary.building_history,
            expiration_used=expiration,
        )
