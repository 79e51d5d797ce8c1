"""Technical signal and portfolio insights routes"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Path

from equity_insights.core.exceptions import InsufficientHistoryError
from equity_insights.routers.deps import get_insights_service
from equity_insights.schemas.insights import InsightsResponse, PortfolioInsightsRequest
from equity_insights.schemas.technical import TechnicalSignalResponse
from equity_insights.services.portfolio_insights_service import PortfolioInsightsService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/insights/technical/{ticker}", response_model=TechnicalSignalResponse)
async def get_technical_signal(
    ticker: str = Path(..., min_length=1, max_length=16),
    service: PortfolioInsightsService = Depends(get_insights_service),
):
    """RSI, MACD, support/resistance and 52-week position for one ticker (6 months of bars)."""
    try:
        signal = await service.compute_single_signal(ticker)
    except InsufficientHistoryError as e:
        logger.info(f"Technical analysis rejected: {e}")
        raise HTTPException(status_code=400, detail="Insufficient historical data for technical analysis")
    except Exception as e:
        logger.error(f"Technical analysis error for {ticker}: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate technical analysis")
    return TechnicalSignalResponse(signal=signal)


@router.post("/insights/portfolio", response_model=InsightsResponse)
async def get_portfolio_insights(
    body: PortfolioInsightsRequest,
    service: PortfolioInsightsService = Depends(get_insights_service),
):
    """Signals, alerts, opportunities and a health score for the posted holdings.

    Only the first 10 holdings are analysed; all of them count towards
    diversification.
    """
    tickers = [h.ticker for h in body.holdings]
    categories = {h.ticker.upper().strip(): h.category for h in body.holdings}
    try:
        return await service.compute_portfolio_insights(tickers, categories)
    except Exception as e:
        logger.error(f"Portfolio insights error: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate portfolio insights")
