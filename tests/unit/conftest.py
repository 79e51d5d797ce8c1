from datetime import date, timedelta

import pytest

from equity_insights.schemas.market_data import PriceBar


def _make_bars(closes, start=date(2025, 1, 1), spread=0.01):
    return [
        PriceBar(
            date=start + timedelta(days=i),
            open=c,
            high=c * (1 + spread),
            low=c * (1 - spread),
            close=c,
            volume=1_000_000,
        )
        for i, c in enumerate(closes)
    ]


@pytest.fixture
def make_bars():
    """Daily bars from a list of closes (high/low +-1% around the close)"""
    return _make_bars
