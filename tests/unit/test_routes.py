from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from equity_insights.core.exceptions import InsufficientHistoryError, OptionsDataUnavailableError
from equity_insights.core.timeseries_store import InMemoryTimeSeriesStore
from equity_insights.main import app
from equity_insights.routers.deps import (
    get_insights_service,
    get_iv_service,
    get_market_data,
    get_metric_history_service,
)
from equity_insights.schemas.market_data import QuoteMetrics
from equity_insights.schemas.metrics import IVResponse
from equity_insights.services.metric_history_service import MetricHistoryService
from equity_insights.services.portfolio_insights_service import PortfolioInsightsService


class StubMarketData:
    def __init__(self, make_bars, quote=None):
        self.make_bars = make_bars
        self.quote = quote

    async def get_daily_bars(self, ticker, start, end):
        return self.make_bars([100 + 0.05 * i ** 2 for i in range(80)])

    async def get_quote_metrics(self, ticker):
        return self.quote


class StubInsightsService:
    async def compute_single_signal(self, ticker, now=None):
        raise InsufficientHistoryError(ticker, 12, 26)


class StubIVService:
    def __init__(self, error=None):
        self.error = error

    async def get_iv(self, ticker, now=None):
        if self.error:
            raise self.error
        return IVResponse(
            ticker=ticker.upper(),
            current_iv=58.3,
            data_points=1,
            building_history=True,
            expiration_used=datetime(2025, 7, 18, tzinfo=timezone.utc),
        )


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_technical_signal_insufficient_history(client):
    app.dependency_overrides[get_insights_service] = lambda: StubInsightsService()

    response = client.get("/api/v1/insights/technical/NEWCO")

    assert response.status_code == 400
    assert response.json()["detail"] == "Insufficient historical data for technical analysis"


def test_technical_signal(client, make_bars):
    service = PortfolioInsightsService(StubMarketData(make_bars))
    app.dependency_overrides[get_insights_service] = lambda: service

    response = client.get("/api/v1/insights/technical/aapl")

    assert response.status_code == 200
    signal = response.json()["signal"]
    assert signal["ticker"] == "AAPL"
    assert signal["macd"]["trend"] == "bullish"
    assert -100 <= signal["signal_score"] <= 100


def test_portfolio_insights(client, make_bars):
    service = PortfolioInsightsService(StubMarketData(make_bars))
    app.dependency_overrides[get_insights_service] = lambda: service

    response = client.post(
        "/api/v1/insights/portfolio",
        json={"holdings": [{"ticker": "AAPL", "category": "Tech"}, {"ticker": "XOM", "category": "Energy"}]},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["holdings_count"] == 2
    assert body["signals_generated"] == 2
    assert body["insights"]["health"]["breakdown"]["diversification"] == 40


def test_portfolio_insights_empty(client, make_bars):
    app.dependency_overrides[get_insights_service] = lambda: PortfolioInsightsService(StubMarketData(make_bars))

    response = client.post("/api/v1/insights/portfolio", json={"holdings": []})

    assert response.status_code == 200
    assert response.json()["insights"]["health"]["summary"] == "Add holdings to get portfolio insights"


def test_historical_metrics(client, make_bars):
    quote = QuoteMetrics(market_cap=3e12, short_percent_of_float=0.01, beta=1.2, average_volume=None)
    app.dependency_overrides[get_market_data] = lambda: StubMarketData(make_bars, quote)
    app.dependency_overrides[get_metric_history_service] = lambda: MetricHistoryService(InMemoryTimeSeriesStore())

    response = client.get("/api/v1/metrics/historical/aapl")

    assert response.status_code == 200
    body = response.json()
    assert body["ticker"] == "AAPL"
    assert body["snapshot_recorded"] is True
    assert body["metrics"]["avgVolume"] is None
    assert body["metrics"]["beta"]["current"] == 1.2
    assert body["metrics"]["beta"]["building_history"] is True


def test_historical_metrics_without_quote(client, make_bars):
    app.dependency_overrides[get_market_data] = lambda: StubMarketData(make_bars, None)
    app.dependency_overrides[get_metric_history_service] = lambda: MetricHistoryService(InMemoryTimeSeriesStore())

    response = client.get("/api/v1/metrics/historical/aapl")

    assert response.status_code == 500


def test_iv(client):
    app.dependency_overrides[get_iv_service] = lambda: StubIVService()

    response = client.get("/api/v1/options/iv/aapl")

    assert response.status_code == 200
    assert response.json()["current_iv"] == 58.3


def test_iv_unavailable(client):
    app.dependency_overrides[get_iv_service] = lambda: StubIVService(
        OptionsDataUnavailableError("ZZZ", "No options data available")
    )

    response = client.get("/api/v1/options/iv/zzz")

    assert response.status_code == 404
    assert response.json()["detail"] == "No options data available"
