"""Option implied volatility routes"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Path

from equity_insights.core.exceptions import OptionsDataUnavailableError
from equity_insights.routers.deps import get_iv_service
from equity_insights.schemas.metrics import IVResponse
from equity_insights.services.implied_volatility_service import ImpliedVolatilityService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/options/iv/{ticker}", response_model=IVResponse)
async def get_implied_volatility(
    ticker: str = Path(..., min_length=1, max_length=16),
    service: ImpliedVolatilityService = Depends(get_iv_service),
):
    """ATM call IV (percent) with its trailing-year percentile"""
    try:
        return await service.get_iv(ticker)
    except OptionsDataUnavailableError as e:
        raise HTTPException(status_code=404, detail=e.reason)
    except Exception as e:
        logger.error(f"Options IV error for {ticker}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch options data")
