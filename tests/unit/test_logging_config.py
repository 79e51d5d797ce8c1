import logging

from equity_insights.core.logging_config import setup_logging


def test_setup_logging_accepts_level_names():
    try:
        assert setup_logging("debug").level == logging.DEBUG
        assert setup_logging("not-a-level").level == logging.INFO
        assert len(logging.getLogger().handlers) == 1
        assert logging.getLogger("yfinance").level == logging.WARNING
    finally:
        setup_logging(logging.INFO)
