from datetime import date, datetime
from typing import List, Optional, Protocol

from equity_insights.schemas.market_data import OptionQuote, OptionsSnapshot, PriceBar, QuoteMetrics


class PriceHistoryProvider(Protocol):
    """Daily bars and quote statistics for one ticker"""

    async def get_daily_bars(self, ticker: str, start: date, end: date) -> List[PriceBar]:
        """Ascending daily bars in [start, end]; an empty list when nothing is available."""
        ...

    async def get_quote_metrics(self, ticker: str) -> Optional[QuoteMetrics]:
        ...


class OptionsDataProvider(Protocol):
    """Listed option expirations and call chains"""

    async def get_options_snapshot(self, ticker: str) -> Optional[OptionsSnapshot]:
        ...

    async def get_option_calls(self, ticker: str, expiration: datetime) -> List[OptionQuote]:
        ...
