"""
Logging for the sniper.

Console gets colored one-liners. ``bot.log`` and ``errors.log`` get JSON
lines, and every BUY fill and tier SELL also lands in ``trades.log``.
Records from one discovery cycle share a short correlation id.
"""

import logging
import logging.handlers
import json
import os
from contextlib import contextmanager
from datetime import datetime
from typing import Optional
import uuid

LOG_DIR = "logs"


class StructuredFormatter(logging.Formatter):
    """JSON line per record; ``extra_data`` keys are merged into the object."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        if hasattr(record, 'correlation_id'):
            log_data['correlation_id'] = record.correlation_id

        if hasattr(record, 'extra_data'):
            log_data.update(record.extra_data)

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """``[HH:MM:SS] [LEVEL] message (slot=... | correlation_id=...)``"""

    COLOR_CODES = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLOR_CODES.get(record.levelname, self.COLOR_CODES['RESET'])
        reset = self.COLOR_CODES['RESET']

        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')

        msg = f"{color}[{timestamp}] [{record.levelname:8s}]{reset} {record.getMessage()}"

        if hasattr(record, 'extra_data') and record.extra_data:
            context = " | ".join(
                f"{k}={v}" for k, v in record.extra_data.items() if k != 'trade_event'
            )
            if context:
                msg += f" ({context})"

        if record.exc_info:
            msg += f"\n{self.formatException(record.exc_info)}"

        return msg


def _is_trade_record(record: logging.LogRecord) -> bool:
    extra = getattr(record, 'extra_data', None)
    return bool(extra and extra.get('trade_event'))


def setup_logging(
    level: str = "INFO",
    log_dir: Optional[str] = None,
    enable_console: bool = True,
    enable_file: bool = True
):
    """
    Install the console and rotating file handlers on the root logger.

    Args:
        level: console and root level name (``LOG_LEVEL`` / ``--log-level``)
        log_dir: where bot.log, errors.log and trades.log rotate (``LOG_DIR``)
        enable_console: colored console output
        enable_file: file handlers; only the ``start`` command writes files
    """
    global LOG_DIR
    if log_dir:
        LOG_DIR = log_dir

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    if enable_console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(HumanReadableFormatter())
        console_handler.setLevel(getattr(logging, level.upper(), logging.INFO))
        root_logger.addHandler(console_handler)

    if enable_file:
        os.makedirs(LOG_DIR, exist_ok=True)

        main_handler = logging.handlers.RotatingFileHandler(
            os.path.join(LOG_DIR, "bot.log"),
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5
        )
        main_handler.setFormatter(StructuredFormatter())
        main_handler.setLevel(logging.DEBUG)
        root_logger.addHandler(main_handler)

        error_handler = logging.handlers.RotatingFileHandler(
            os.path.join(LOG_DIR, "errors.log"),
            maxBytes=5 * 1024 * 1024,  # 5MB
            backupCount=3
        )
        error_handler.setFormatter(StructuredFormatter())
        error_handler.setLevel(logging.ERROR)
        root_logger.addHandler(error_handler)

        trade_handler = logging.handlers.RotatingFileHandler(
            os.path.join(LOG_DIR, "trades.log"),
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=10
        )
        trade_handler.setFormatter(StructuredFormatter())
        trade_handler.addFilter(_is_trade_record)
        root_logger.addHandler(trade_handler)

    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


class CorrelationLogger:
    """
    Logger that stamps a correlation id and keyword context on records.

    The discovery loop opens one context per poll cycle, so the slot
    lookup, signature scan and transaction fetches of that cycle can be
    grepped together in bot.log:

        with self.log.correlation_context():
            self.log.debug("Cycle 7: 10 signatures, 2 new", slot=301234567)
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.correlation_id = None

    def _log(self, level: int, msg: str, **kwargs):
        extra_dict = kwargs.copy()

        if self.correlation_id:
            extra_dict['correlation_id'] = self.correlation_id

        if extra_dict:
            self.logger.log(level, msg, extra={'extra_data': extra_dict})
        else:
            self.logger.log(level, msg)

    def debug(self, msg: str, **extra):
        self._log(logging.DEBUG, msg, **extra)

    def info(self, msg: str, **extra):
        self._log(logging.INFO, msg, **extra)

    def warning(self, msg: str, **extra):
        self._log(logging.WARNING, msg, **extra)

    def error(self, msg: str, **extra):
        self._log(logging.ERROR, msg, **extra)

    @contextmanager
    def correlation_context(self):
        previous = self.correlation_id
        self.correlation_id = uuid.uuid4().hex[:8]
        try:
            yield self
        finally:
            self.correlation_id = previous


class TradeLogger:
    """
    BUY when the acquisition pipeline records a fill, SELL for every tier
    exit the position monitor completes. Records carry ``trade_event`` so
    only they reach trades.log.
    """

    def __init__(self):
        self.logger = logging.getLogger("trades")

    def log_buy(
        self,
        mint: str,
        symbol: str,
        amount_sol: float,
        signature: str,
        entry_price: float = 0.0,
        token_amount: float = 0.0
    ):
        self.logger.info(f"BUY {symbol}", extra={'extra_data': {
            'trade_event': True,
            'event_type': 'BUY',
            'mint': mint,
            'amount_sol': amount_sol,
            'signature': signature,
            'entry_price': entry_price,
            'token_amount': token_amount,
            'timestamp': datetime.now().isoformat()
        }})

    def log_sell(
        self,
        mint: str,
        symbol: str,
        signature: str,
        sell_pct: float,
        sold_pct_total: float,
        price_ratio: float,
        token_amount: float = 0.0
    ):
        """Log a tier exit"""
        self.logger.info(f"SELL {symbol}", extra={'extra_data': {
            'trade_event': True,
            'event_type': 'SELL',
            'mint': mint,
            'signature': signature,
            'sell_pct': sell_pct,
            'sold_pct_total': sold_pct_total,
            'price_ratio': round(price_ratio, 4),
            'token_amount': token_amount,
            'timestamp': datetime.now().isoformat()
        }})


trade_logger = TradeLogger()
