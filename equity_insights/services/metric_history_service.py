"""Historical percentile tracker

Keeps one observation per (entity, metric, UTC day) in a time-series store and
answers "where does today's value sit within the trailing year".

Store layout (keys are relative to the store prefix):
- metrics:{ENTITY}:{metric}:history        sorted set, member {"value": v, "date": "YYYY-MM-DD"},
                                           score = midnight UTC of that day in epoch ms
- metrics:{ENTITY}:{metric}:last-snapshot  ISO date of the last write, 24h expiry

Everything here is advisory analytics: store failures are logged and degrade
to "not recorded" / empty summaries instead of propagating.
"""

import asyncio
import json
import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from equity_insights.core.config import Settings, settings as default_settings
from equity_insights.core.timeseries_store import TimeSeriesStore
from equity_insights.providers.technical_calculator import round_half_up
from equity_insights.schemas.market_data import QuoteMetrics
from equity_insights.schemas.metrics import MetricHistoryView, PercentileSummary

logger = logging.getLogger(__name__)

MARKER_TTL_SECONDS = 86400
DAY_MS = 24 * 60 * 60 * 1000

# metric name -> extractor over a quote
QUOTE_METRICS = {
    "marketCap": lambda q: q.market_cap,
    "shortInterest": lambda q: q.short_percent_of_float * 100 if q.short_percent_of_float is not None else None,
    "beta": lambda q: q.beta,
    "avgVolume": lambda q: q.average_volume,
}


def _utc(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def _epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def _is_finite_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def quote_metric_values(quote: QuoteMetrics) -> Dict[str, Optional[float]]:
    """Tracked metric values of a quote; missing or non-finite ones map to None."""
    values = {}
    for metric, extract in QUOTE_METRICS.items():
        value = extract(quote)
        values[metric] = float(value) if _is_finite_number(value) else None
    return values


class MetricHistoryService:
    """Rolling daily baselines and percentile summaries for scalar metrics"""

    def __init__(self, store: TimeSeriesStore, config: Settings = default_settings):
        self.store = store
        self.config = config

    @staticmethod
    def _history_key(entity_key: str, metric: str) -> str:
        return f"metrics:{entity_key.upper()}:{metric}:history"

    @staticmethod
    def _marker_key(entity_key: str, metric: str) -> str:
        return f"metrics:{entity_key.upper()}:{metric}:last-snapshot"

    async def record_snapshot(
        self,
        entity_key: str,
        metric: str,
        value: float,
        now: Optional[datetime] = None,
    ) -> bool:
        """Store today's value unless one is already stored.

        Returns True only when a new observation was written.
        """
        if not _is_finite_number(value):
            logger.debug(f"Skip snapshot {entity_key}/{metric}: non-finite value {value!r}")
            return False

        now = _utc(now)
        today = now.date()
        marker_key = self._marker_key(entity_key, metric)
        history_key = self._history_key(entity_key, metric)

        try:
            previous = await self.store.swap(marker_key, today.isoformat(), expire=MARKER_TTL_SECONDS)
        except Exception as e:
            logger.warning(f"Snapshot marker update failed for {entity_key}/{metric}: {e}")
            return False

        if previous == today.isoformat():
            logger.debug(f"Snapshot {entity_key}/{metric} already recorded for {today}")
            return False

        midnight = datetime(today.year, today.month, today.day, tzinfo=timezone.utc)
        member = json.dumps({"value": value, "date": today.isoformat()})
        try:
            await self.store.zadd(history_key, _epoch_ms(midnight), member)
        except Exception as e:
            logger.warning(f"Failed to record snapshot {entity_key}/{metric}: {e}")
            await self._restore_marker(marker_key, previous)
            return False

        cutoff = _epoch_ms(now) - self.config.retention_days_for(metric) * DAY_MS
        try:
            pruned = await self.store.zremrangebyscore(history_key, 0, cutoff)
            if pruned:
                logger.debug(f"Pruned {pruned} expired snapshots for {entity_key}/{metric}")
        except Exception as e:
            logger.warning(f"Prune failed for {entity_key}/{metric}: {e}")

        return True

    async def _restore_marker(self, marker_key: str, previous: Optional[str]) -> None:
        # best effort: a stale marker only delays the next write by a day
        try:
            if previous is None:
                await self.store.delete(marker_key)
            else:
                await self.store.set(marker_key, previous, expire=MARKER_TTL_SECONDS)
        except Exception as e:
            logger.warning(f"Could not roll back snapshot marker {marker_key}: {e}")

    async def compute_summary(
        self,
        entity_key: str,
        metric: str,
        current_value: float,
        now: Optional[datetime] = None,
    ) -> PercentileSummary:
        """Percentile of ``current_value`` within the trailing window.

        The current value always takes part, even before it is stored.
        """
        if not _is_finite_number(current_value):
            return PercentileSummary.empty()

        now = _utc(now)
        window_start = _epoch_ms(now) - self.config.PERCENTILE_WINDOW_DAYS * DAY_MS
        try:
            members = await self.store.zrangebyscore(
                self._history_key(entity_key, metric), window_start, math.inf
            )
        except Exception as e:
            logger.warning(f"Failed to load history for {entity_key}/{metric}: {e}")
            return PercentileSummary.empty()

        samples = []
        for member in members:
            try:
                value = json.loads(member).get("value")
            except (TypeError, ValueError, AttributeError):
                logger.debug(f"Skipping malformed snapshot for {entity_key}/{metric}: {member!r}")
                continue
            if _is_finite_number(value):
                samples.append(float(value))
            else:
                logger.debug(f"Skipping snapshot without numeric value for {entity_key}/{metric}: {member!r}")

        if current_value not in samples:
            samples.append(float(current_value))

        sample_count = len(samples)
        low, high = min(samples), max(samples)
        building_history = sample_count < self.config.MIN_PERCENTILE_SAMPLES

        percentile = None
        if not building_history and high > low:
            ratio = min(1.0, max(0.0, (current_value - low) / (high - low)))
            percentile = int(round_half_up(ratio * 100))

        return PercentileSummary(
            percentile=percentile,
            high=high,
            low=low,
            sample_count=sample_count,
            building_history=building_history,
        )

    async def record_and_summarize(
        self,
        entity_key: str,
        metric: str,
        value: float,
        now: Optional[datetime] = None,
    ) -> PercentileSummary:
        now = _utc(now)
        await self.record_snapshot(entity_key, metric, value, now)
        return await self.compute_summary(entity_key, metric, value, now)

    # ==================== quote metrics ====================

    async def record_quote_metrics(
        self,
        ticker: str,
        quote: QuoteMetrics,
        now: Optional[datetime] = None,
    ) -> bool:
        """Record every available tracked metric; True if at least one was written."""
        now = _utc(now)
        recorded = False
        for metric, value in quote_metric_values(quote).items():
            if value is None:
                continue
            if await self.record_snapshot(ticker, metric, value, now):
                recorded = True
        return recorded

    async def summarize_quote_metrics(
        self,
        ticker: str,
        quote: QuoteMetrics,
        now: Optional[datetime] = None,
    ) -> Dict[str, Optional[MetricHistoryView]]:
        now = _utc(now)
        values = quote_metric_values(quote)

        async def summarize(metric: str, value: Optional[float]) -> Optional[MetricHistoryView]:
            if value is None:
                return None
            summary = await self.compute_summary(ticker, metric, value, now)
            return MetricHistoryView.from_summary(value, summary)

        views = await asyncio.gather(*(summarize(metric, value) for metric, value in values.items()))
        return dict(zip(values.keys(), views))
