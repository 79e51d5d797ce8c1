"""Exceptions raised by the insights engine.

Data-quality problems (short history, flat ranges) are normally absorbed into
neutral defaults; these types cover the few cases a caller has to react to.
"""


class InsightsError(Exception):
    """Base exception for the insights engine"""


class InsufficientHistoryError(InsightsError):
    """Raised when a single-ticker request has too few bars to analyse"""

    def __init__(self, ticker: str, bars: int, required: int):
        self.ticker = ticker
        self.bars = bars
        self.required = required
        super().__init__(f"{ticker}: {bars} bars available, {required} required")


class DataProviderError(InsightsError):
    """Raised when a market data collaborator cannot answer"""


class OptionsDataUnavailableError(DataProviderError):
    """Raised when no usable option chain / ATM implied volatility exists"""

    def __init__(self, ticker: str, reason: str):
        self.ticker = ticker
        self.reason = reason
        super().__init__(f"{ticker}: {reason}")


class StoreError(InsightsError):
    """Raised by time-series store adapters on backend failures"""
