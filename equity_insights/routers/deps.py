# Dependency providers: services are built once in the lifespan handler and
# kept on app.state; tests swap them through app.dependency_overrides.
from fastapi import Request

from equity_insights.providers.market_data_provider import MarketDataProvider
from equity_insights.services.implied_volatility_service import ImpliedVolatilityService
from equity_insights.services.metric_history_service import MetricHistoryService
from equity_insights.services.portfolio_insights_service import PortfolioInsightsService


def get_market_data(request: Request) -> MarketDataProvider:
    return request.app.state.market_data


def get_insights_service(request: Request) -> PortfolioInsightsService:
    return request.app.state.insights_service


def get_metric_history_service(request: Request) -> MetricHistoryService:
    return request.app.state.metric_history


def get_iv_service(request: Request) -> ImpliedVolatilityService:
    return request.app.state.iv_service
