"""Market data provider (Yahoo Finance)

yfinance is synchronous, so every call runs in a thread pool and is bounded
by a semaphore (EXTERNAL_API_CONCURRENCY).

Cache policy:
- daily bars: BARS_CACHE_TTL_SECONDS (default 5 minutes), at most 100 entries
- quotes / option chains: not cached, the callers above already are
"""

import asyncio
import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd
import yfinance as yf

from equity_insights.core.config import Settings, settings as default_settings
from equity_insights.schemas.market_data import OptionQuote, OptionsSnapshot, PriceBar, QuoteMetrics

logger = logging.getLogger(__name__)

BARS_CACHE_MAX_ENTRIES = 100


def _finite_or_none(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


class MarketDataProvider:
    """Yahoo Finance backed price history, quote and option chain provider"""

    def __init__(self, config: Settings = default_settings):
        self._executor = ThreadPoolExecutor(max_workers=config.EXTERNAL_API_CONCURRENCY)
        self._ext_api_semaphore = asyncio.Semaphore(config.EXTERNAL_API_CONCURRENCY)

        # bars cache: {(ticker, start, end): (bars, timestamp)}
        self._bars_cache: Dict[Tuple[str, date, date], Tuple[List[PriceBar], float]] = {}
        self._bars_cache_ttl = config.BARS_CACHE_TTL_SECONDS

    async def _run_in_executor(self, func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        if kwargs:
            return await loop.run_in_executor(self._executor, lambda: func(*args, **kwargs))
        return await loop.run_in_executor(self._executor, func, *args)

    async def _run_external(self, func, *args, **kwargs):
        """Bounded external API call"""
        async with self._ext_api_semaphore:
            return await self._run_in_executor(func, *args, **kwargs)

    @lru_cache(maxsize=100)
    def get_ticker(self, ticker: str) -> "yf.Ticker":
        return yf.Ticker(ticker)

    # ==================== price history ====================

    async def get_daily_bars(self, ticker: str, start: date, end: date) -> List[PriceBar]:
        """Daily bars between start and end (inclusive), oldest first.

        Provider failures are logged and reported as an empty list.
        """
        cache_key = (ticker, start, end)
        cached = self._get_cached_bars(cache_key)
        if cached is not None:
            logger.debug(f"Using cached bars for {ticker}")
            return cached

        try:
            # yfinance treats `end` as exclusive
            df = await self._run_external(
                self.get_ticker(ticker).history,
                start=start.isoformat(),
                end=(end + timedelta(days=1)).isoformat(),
                interval="1d",
                auto_adjust=False,
            )
        except Exception as e:
            logger.warning(f"Yahoo Finance history failed for {ticker}: {e}")
            return []

        bars = self._frame_to_bars(df)
        if bars:
            self._cache_bars(cache_key, bars)
        else:
            logger.info(f"Yahoo Finance returned no bars for {ticker}")
        return bars

    @staticmethod
    def _frame_to_bars(df: Optional[pd.DataFrame]) -> List[PriceBar]:
        if df is None or df.empty:
            return []

        frame = df.dropna(subset=["Open", "High", "Low", "Close"]).sort_index()
        bars = []
        for ts, row in frame.iterrows():
            volume = row.get("Volume")
            bars.append(
                PriceBar(
                    date=pd.Timestamp(ts).date(),
                    open=float(row["Open"]),
                    high=float(row["High"]),
                    low=float(row["Low"]),
                    close=float(row["Close"]),
                    volume=0.0 if pd.isna(volume) else float(volume),
                )
            )
        return bars

    def _get_cached_bars(self, cache_key: tuple) -> Optional[List[PriceBar]]:
        if cache_key in self._bars_cache:
            data, timestamp = self._bars_cache[cache_key]
            if time.time() - timestamp < self._bars_cache_ttl:
                return data
            del self._bars_cache[cache_key]
        return None

    def _cache_bars(self, cache_key: tuple, data: List[PriceBar]) -> None:
        self._bars_cache[cache_key] = (data, time.time())
        if len(self._bars_cache) > BARS_CACHE_MAX_ENTRIES:
            oldest_key = min(self._bars_cache.items(), key=lambda x: x[1][1])[0]
            del self._bars_cache[oldest_key]

    # ==================== quote ====================

    async def get_quote_metrics(self, ticker: str) -> Optional[QuoteMetrics]:
        """Quote statistics, or None when the quote cannot be fetched"""
        try:
            info = await self._run_external(lambda: self.get_ticker(ticker).info)
        except Exception as e:
            logger.warning(f"Yahoo Finance quote failed for {ticker}: {e}")
            return None

        if not info:
            return None

        earnings_ts = info.get("earningsTimestamp")
        return QuoteMetrics(
            market_cap=_finite_or_none(info.get("marketCap")),
            fifty_two_week_high=_finite_or_none(info.get("fiftyTwoWeekHigh")),
            fifty_two_week_low=_finite_or_none(info.get("fiftyTwoWeekLow")),
            regular_market_price=_finite_or_none(info.get("regularMarketPrice") or info.get("currentPrice")),
            average_volume=_finite_or_none(info.get("averageDailyVolume3Month") or info.get("averageVolume")),
            beta=_finite_or_none(info.get("beta")),
            short_percent_of_float=_finite_or_none(info.get("shortPercentOfFloat")),
            next_earnings_date=(
                datetime.fromtimestamp(earnings_ts, tz=timezone.utc) if earnings_ts else None
            ),
        )

    # ==================== options ====================

    async def get_options_snapshot(self, ticker: str) -> Optional[OptionsSnapshot]:
        """Listed expirations plus the underlying price; None when the ticker has no options"""
        try:
            yticker = self.get_ticker(ticker)
            expirations = await self._run_external(lambda: yticker.options)
            info = await self._run_external(lambda: yticker.info)
        except Exception as e:
            logger.warning(f"Yahoo Finance options lookup failed for {ticker}: {e}")
            return None

        if not expirations:
            return None

        price = _finite_or_none((info or {}).get("regularMarketPrice") or (info or {}).get("currentPrice"))
        return OptionsSnapshot(
            ticker=ticker,
            underlying_price=price or 0.0,
            expirations=[
                datetime.strptime(exp, "%Y-%m-%d").replace(tzinfo=timezone.utc) for exp in expirations
            ],
        )

    async def get_option_calls(self, ticker: str, expiration: datetime) -> List[OptionQuote]:
        """Call side of the chain for one expiration"""
        try:
            chain = await self._run_external(
                self.get_ticker(ticker).option_chain, expiration.strftime("%Y-%m-%d")
            )
        except Exception as e:
            logger.warning(f"Yahoo Finance option chain failed for {ticker} {expiration:%Y-%m-%d}: {e}")
            return []

        calls = getattr(chain, "calls", None)
        if calls is None or calls.empty:
            return []

        return [
            OptionQuote(strike=float(row["strike"]), implied_volatility=_finite_or_none(row.get("impliedVolatility")))
            for _, row in calls.iterrows()
            if not pd.isna(row.get("strike"))
        ]

    def close(self) -> None:
        self._executor.shutdown(wait=False)
