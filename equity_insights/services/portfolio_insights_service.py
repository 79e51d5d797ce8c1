"""Portfolio insights service

Per request pipeline: FETCHING -> SCORING -> AGGREGATING -> DONE.

Tickers are analysed in sequential batches (INSIGHTS_BATCH_SIZE, default 3);
within a batch every ticker runs concurrently under its own timeout. A ticker
that fails, times out or has too little history is dropped from the result
and never fails the request.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Mapping, Optional, Sequence, Tuple

from equity_insights.core.config import Settings, settings as default_settings
from equity_insights.core.exceptions import InsufficientHistoryError
from equity_insights.engine.signal_composer import compute_technical_signal
from equity_insights.providers.base import PriceHistoryProvider
from equity_insights.providers.technical_calculator import MACD_SLOW, round_half_up
from equity_insights.schemas.insights import (
    Alert,
    HealthBreakdown,
    InsightsResponse,
    Opportunity,
    PortfolioHealth,
    PortfolioInsights,
)
from equity_insights.schemas.market_data import PriceBar, QuoteMetrics
from equity_insights.schemas.technical import TechnicalSignal

logger = logging.getLogger(__name__)

MIN_BARS = MACD_SLOW
MAX_ALERTS = 10
UNCATEGORIZED = "Uncategorized"

PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}

HEALTH_BANDS = [
    (75, "excellent", "Portfolio showing strong technicals with good diversification"),
    (55, "good", "Portfolio in good shape with some areas to monitor"),
    (35, "fair", "Portfolio has some concerning signals - review recommended"),
]
NEEDS_ATTENTION_SUMMARY = "Multiple holdings showing warning signals - review positions"
EMPTY_PORTFOLIO_SUMMARY = "Add holdings to get portfolio insights"


class InsightsStage(str, Enum):
    FETCHING = "fetching"
    SCORING = "scoring"
    AGGREGATING = "aggregating"
    DONE = "done"


@dataclass(frozen=True)
class TickerOutcome:
    """Result of one per-ticker unit: exactly one of signal / error is set"""
    ticker: str
    signal: Optional[TechnicalSignal] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.signal is not None


def resolve_52_week_range(quote: Optional[QuoteMetrics], bars: Sequence[PriceBar]) -> Tuple[float, float]:
    """52-week high/low from the quote, falling back to the bars' extremes when missing or zero."""
    high = quote.fifty_two_week_high if quote else None
    low = quote.fifty_two_week_low if quote else None
    if not high:
        high = max((b.high for b in bars), default=0.0)
    if not low:
        low = min((b.low for b in bars), default=0.0)
    return high, low


def build_alerts(signals: Sequence[TechnicalSignal]) -> List[Alert]:
    """Up to three alerts per ticker, highest priority first, top 10 kept."""
    alerts: List[Alert] = []
    for s in signals:
        t = s.ticker

        if s.rsi.signal == "oversold":
            alerts.append(Alert(
                type="oversold",
                ticker=t,
                message=f"{t} RSI at {s.rsi.value:.0f} - potential entry opportunity",
                priority="medium",
                action_hint="Consider adding to position",
            ))
        elif s.rsi.signal == "overbought":
            alerts.append(Alert(
                type="overbought",
                ticker=t,
                message=f"{t} RSI at {s.rsi.value:.0f} - extended, consider taking profits",
                priority="medium",
                action_hint="Consider trimming position",
            ))

        sr = s.support_resistance
        if sr.near_level == "resistance":
            alerts.append(Alert(
                type="near_resistance",
                ticker=t,
                message=f"{t} near resistance at ${sr.resistance:.2f}",
                priority="low",
                action_hint="Watch for breakout or reversal",
            ))
        elif sr.near_level == "support":
            alerts.append(Alert(
                type="near_support",
                ticker=t,
                message=f"{t} testing support at ${sr.support:.2f}",
                priority="medium",
                action_hint="Potential bounce opportunity",
            ))

        if s.fifty_two_week.signal == "near_high":
            alerts.append(Alert(
                type="near_52w_high",
                ticker=t,
                message=f"{t} trading near 52-week high",
                priority="low",
            ))
        elif s.fifty_two_week.signal == "near_low":
            alerts.append(Alert(
                type="near_52w_low",
                ticker=t,
                message=f"{t} trading near 52-week low - potential value play",
                priority="high",
                action_hint="Research fundamentals before adding",
            ))

    # sorted() is stable, so equal priorities keep ticker order
    alerts = sorted(alerts, key=lambda a: PRIORITY_ORDER[a.priority])
    return alerts[:MAX_ALERTS]


def build_opportunities(signals: Sequence[TechnicalSignal]) -> List[Opportunity]:
    opportunities: List[Opportunity] = []

    dip = [s.ticker for s in signals if s.rsi.signal == "oversold" or s.fifty_two_week.position_pct < 30]
    if dip:
        opportunities.append(Opportunity(
            type="dip_buy",
            tickers=dip,
            rationale=f"{len(dip)} holding(s) showing oversold conditions or near 52-week lows",
            priority="medium",
        ))

    extended = [s.ticker for s in signals if s.rsi.signal == "overbought" and s.fifty_two_week.position_pct > 80]
    if extended:
        opportunities.append(Opportunity(
            type="take_profit",
            tickers=extended,
            rationale=f"{len(extended)} holding(s) overbought and near 52-week highs",
            priority="medium",
        ))

    return opportunities


def assess_health(score: int) -> Tuple[str, str]:
    for threshold, assessment, summary in HEALTH_BANDS:
        if score >= threshold:
            return assessment, summary
    return "needs_attention", NEEDS_ATTENTION_SUMMARY


def compute_health(signals: Sequence[TechnicalSignal], category_count: int, holdings_count: int) -> PortfolioHealth:
    """Weighted blend of diversification (30%), momentum (40%) and risk balance (30%).

    Args:
        signals: signals that were actually generated
        category_count: distinct categories across *all* holdings
        holdings_count: all holdings, analysed or not
    """
    diversification = min(100.0, category_count / max(5, holdings_count) * 100)

    mean_score = sum(s.signal_score for s in signals) / len(signals) if signals else 0.0
    momentum = max(0.0, min(100.0, 50 + mean_score))

    oversold = sum(1 for s in signals if s.rsi.signal == "oversold")
    overbought = sum(1 for s in signals if s.rsi.signal == "overbought")
    risk_balance = 100 - abs(oversold - overbought) / max(1, len(signals)) * 50

    score = int(round_half_up(diversification * 0.3 + momentum * 0.4 + risk_balance * 0.3))
    assessment, summary = assess_health(score)

    return PortfolioHealth(
        score=score,
        breakdown=HealthBreakdown(
            diversification=int(round_half_up(diversification)),
            momentum=int(round_half_up(momentum)),
            risk_balance=int(round_half_up(risk_balance)),
        ),
        assessment=assessment,
        summary=summary,
    )


def empty_insights(now: datetime) -> InsightsResponse:
    return InsightsResponse(
        insights=PortfolioInsights(
            signals=[],
            alerts=[],
            opportunities=[],
            health=PortfolioHealth(
                score=0,
                breakdown=HealthBreakdown(diversification=0, momentum=0, risk_balance=0),
                assessment="needs_attention",
                summary=EMPTY_PORTFOLIO_SUMMARY,
            ),
            calculated_at=now,
        ),
        holdings_count=0,
        signals_generated=0,
    )


class PortfolioInsightsService:
    """Technical signals, alerts, opportunities and health for a set of holdings"""

    def __init__(self, market_data: PriceHistoryProvider, config: Settings = default_settings):
        self.market_data = market_data
        self.max_tickers = config.INSIGHTS_MAX_TICKERS
        self.batch_size = config.INSIGHTS_BATCH_SIZE
        self.ticker_timeout = config.INSIGHTS_TICKER_TIMEOUT_SECONDS
        self.lookback_days = config.INSIGHTS_LOOKBACK_DAYS
        self.technical_lookback_days = config.TECHNICAL_LOOKBACK_DAYS

    async def _fetch_signal(self, ticker: str, lookback_days: int, now: datetime) -> TechnicalSignal:
        end = now.date()
        start = end - timedelta(days=lookback_days)
        bars, quote = await asyncio.gather(
            self.market_data.get_daily_bars(ticker, start, end),
            self.market_data.get_quote_metrics(ticker),
        )
        if len(bars) < MIN_BARS:
            raise InsufficientHistoryError(ticker, len(bars), MIN_BARS)

        high, low = resolve_52_week_range(quote, bars)
        return compute_technical_signal(ticker, bars, high, low, now=now)

    async def _analyse(self, ticker: str, now: datetime) -> TickerOutcome:
        try:
            signal = await asyncio.wait_for(
                self._fetch_signal(ticker, self.lookback_days, now),
                timeout=self.ticker_timeout,
            )
            return TickerOutcome(ticker=ticker, signal=signal)
        except InsufficientHistoryError as e:
            logger.debug(f"Skipping {ticker}: {e}")
            return TickerOutcome(ticker=ticker, error="insufficient_history")
        except asyncio.TimeoutError:
            logger.warning(f"Timed out analysing {ticker} after {self.ticker_timeout}s")
            return TickerOutcome(ticker=ticker, error="timeout")
        except Exception as e:
            logger.warning(f"Failed to analyze {ticker}: {e}")
            return TickerOutcome(ticker=ticker, error=str(e) or type(e).__name__)

    async def _analyse_in_batches(self, tickers: Sequence[str], now: datetime) -> List[TickerOutcome]:
        outcomes: List[TickerOutcome] = []
        for i in range(0, len(tickers), self.batch_size):
            batch = tickers[i:i + self.batch_size]
            outcomes.extend(await asyncio.gather(*[self._analyse(t, now) for t in batch]))
        return outcomes

    async def compute_portfolio_insights(
        self,
        tickers: Sequence[str],
        category_lookup: Optional[Mapping[str, Optional[str]]] = None,
        now: Optional[datetime] = None,
    ) -> InsightsResponse:
        """Analyse up to ``max_tickers`` holdings and summarise them.

        Args:
            tickers: holdings in display order
            category_lookup: ticker -> category, used for diversification
            now: evaluation time (UTC); defaults to the current time
        """
        now = now or datetime.now(timezone.utc)
        category_lookup = {k.upper().strip(): v for k, v in (category_lookup or {}).items()}
        tickers = [t.upper().strip() for t in tickers]

        if not tickers:
            return empty_insights(now)

        to_analyse = tickers[:self.max_tickers]
        logger.debug(f"{InsightsStage.FETCHING.value}: {len(to_analyse)}/{len(tickers)} tickers")
        outcomes = await self._analyse_in_batches(to_analyse, now)

        logger.debug(f"{InsightsStage.SCORING.value}: {sum(o.ok for o in outcomes)} signals")
        signals = [o.signal for o in outcomes if o.ok]

        logger.debug(InsightsStage.AGGREGATING.value)
        categories = {category_lookup.get(t) or UNCATEGORIZED for t in tickers}
        insights = PortfolioInsights(
            signals=signals,
            alerts=build_alerts(signals),
            opportunities=build_opportunities(signals),
            health=compute_health(signals, len(categories), len(tickers)),
            calculated_at=now,
        )

        logger.debug(f"{InsightsStage.DONE.value}: health={insights.health.score}")
        return InsightsResponse(
            insights=insights,
            holdings_count=len(tickers),
            signals_generated=len(signals),
        )

    async def compute_single_signal(self, ticker: str, now: Optional[datetime] = None) -> TechnicalSignal:
        """Technical signal for one ticker over the longer single-ticker lookback.

        Raises:
            InsufficientHistoryError: fewer than 26 daily bars are available
        """
        now = now or datetime.now(timezone.utc)
        return await self._fetch_signal(ticker.upper().strip(), self.technical_lookback_days, now)
