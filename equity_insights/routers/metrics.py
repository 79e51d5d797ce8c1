"""Historical quote metric routes"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Path

from equity_insights.providers.market_data_provider import MarketDataProvider
from equity_insights.routers.deps import get_market_data, get_metric_history_service
from equity_insights.schemas.metrics import HistoricalMetricsResponse
from equity_insights.services.metric_history_service import MetricHistoryService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/metrics/historical/{ticker}", response_model=HistoricalMetricsResponse)
async def get_historical_metrics(
    ticker: str = Path(..., min_length=1, max_length=16),
    market_data: MarketDataProvider = Depends(get_market_data),
    metric_history: MetricHistoryService = Depends(get_metric_history_service),
):
    """Record today's marketCap / shortInterest / beta / avgVolume and rank each against the last year."""
    ticker = ticker.upper().strip()

    quote = await market_data.get_quote_metrics(ticker)
    if quote is None:
        raise HTTPException(status_code=500, detail="Failed to fetch quote data")

    try:
        snapshot_recorded = await metric_history.record_quote_metrics(ticker, quote)
        metrics = await metric_history.summarize_quote_metrics(ticker, quote)
    except Exception as e:
        logger.error(f"Metrics historical error for {ticker}: {e}")
        raise HTTPException(status_code=500, detail="Failed to compute historical metrics")

    return HistoricalMetricsResponse(ticker=ticker, metrics=metrics, snapshot_recorded=snapshot_recorded)
