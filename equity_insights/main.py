from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import ORJSONResponse

from equity_insights.core.config import settings
from equity_insights.core.logging_config import setup_logging
from equity_insights.core.timeseries_store import make_timeseries_store
from equity_insights.providers.market_data_provider import MarketDataProvider
from equity_insights.routers import insights, metrics, options
from equity_insights.services.implied_volatility_service import ImpliedVolatilityService
from equity_insights.services.metric_history_service import MetricHistoryService
from equity_insights.services.portfolio_insights_service import PortfolioInsightsService

setup_logging(settings.LOG_LEVEL)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the shared store, provider and services on startup; release them on shutdown"""
    store = make_timeseries_store(settings)
    market_data = MarketDataProvider(settings)
    metric_history = MetricHistoryService(store, settings)

    app.state.store = store
    app.state.market_data = market_data
    app.state.metric_history = metric_history
    app.state.insights_service = PortfolioInsightsService(market_data, settings)
    app.state.iv_service = ImpliedVolatilityService(market_data, metric_history)
    logger.info(f"{settings.APP_NAME} started (store={store.name})")

    yield

    market_data.close()
    try:
        await store.close()
        logger.info("Time-series store closed")
    except Exception as e:
        logger.warning(f"Failed to close time-series store gracefully: {e}")


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan, default_response_class=ORJSONResponse)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1024)

app.include_router(insights.router, prefix="/api/v1", tags=["insights"])
app.include_router(metrics.router, prefix="/api/v1", tags=["metrics"])
app.include_router(options.router, prefix="/api/v1", tags=["options"])


@app.get("/health")
async def health():
    store = getattr(app.state, "store", None)
    return {"status": "ok", "store": store.name if store else None}
