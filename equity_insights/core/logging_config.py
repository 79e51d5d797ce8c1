import logging
import sys
from typing import Iterable, Union

LOG_FORMAT = "%(asctime)s.%(msecs)03d | %(levelname)-7s | %(name)s:%(funcName)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ("uvicorn.access", "httpcore", "httpx", "yfinance", "peewee", "urllib3")


def setup_logging(level: Union[int, str] = logging.INFO, quiet: Iterable[str] = NOISY_LOGGERS) -> logging.Logger:
    """Install a single stdout handler on the root logger.

    Lines look like ``2025-06-02 10:00:00.123 | INFO    | module:function:line - message``.
    Calling it again replaces the handler instead of stacking a second one.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)

    # uvicorn installs its own handlers; align their format with ours
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        if uvicorn_logger.handlers:
            for h in uvicorn_logger.handlers:
                h.setFormatter(formatter)
        else:
            uvicorn_logger.addHandler(handler)
            uvicorn_logger.propagate = False

    logging.getLogger(__name__).debug(f"Logging configured at {logging.getLevelName(level)}")
    return root_logger
