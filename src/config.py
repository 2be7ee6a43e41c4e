from dataclasses import dataclass
from pathlib import Path
import os
from dotenv import load_dotenv
import logging
import sys
from typing import Optional
import structlog

from src.exceptions import ConfigurationError

# Load environment variables early
load_dotenv()

# Step 1: Configure stdlib logging to use stderr
logging.basicConfig(
    format='%(asctime)s [%(levelname)-8s] %(message)s',
    stream=sys.stderr,
    level=logging.INFO,
    force=True
)

# Step 2: Configure structlog
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.KeyValueRenderer(key_order=['timestamp', 'level', 'event']),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = logging.getLogger(__name__)

VALID_SELL_POLICIES = ("ignore", "reject")
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _get_env_var(var: str, default: Optional[str] = None) -> str:
    """Get environment variable, falling back to a default."""
    value = os.environ.get(var, default)
    return (value or "").strip()


def _get_int(var: str, default: int) -> int:
    raw = _get_env_var(var, str(default))
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"{var} must be an integer",
            config_key=var,
            expected="integer",
            cause=e
        )
    if value <= 0:
        raise ConfigurationError(f"{var} must be positive", config_key=var, expected="> 0")
    return value


@dataclass
class Config:
    """Configuration for the portfolio reconciler."""

    portfolio_db_path: Path = Path(_get_env_var("PORTFOLIO_DB_PATH", "./portfolio.db"))
    default_portfolio_name: str = _get_env_var("PORTFOLIO_NAME", "My Portfolio")
    base_currency: str = _get_env_var("BASE_CURRENCY", "USD").upper()

    # What to do with a sell for a symbol that is not held: "ignore" or "reject"
    untracked_sell_policy: str = _get_env_var("UNTRACKED_SELL_POLICY", "ignore").lower()

    quote_timeout: int = _get_int("QUOTE_TIMEOUT", 15)
    quote_retry_attempts: int = _get_int("QUOTE_RETRY_ATTEMPTS", 3)

    log_level: str = _get_env_var("LOG_LEVEL", "INFO").upper()

    def __post_init__(self):
        if self.untracked_sell_policy not in VALID_SELL_POLICIES:
            raise ConfigurationError(
                f"Unknown untracked sell policy: {self.untracked_sell_policy}",
                config_key="UNTRACKED_SELL_POLICY",
                expected=" | ".join(VALID_SELL_POLICIES)
            )
        if self.log_level not in VALID_LOG_LEVELS:
            raise ConfigurationError(
                f"Unknown log level: {self.log_level}",
                config_key="LOG_LEVEL",
                expected=" | ".join(VALID_LOG_LEVELS)
            )

        # Set logging level
        log_level = getattr(logging, self.log_level)
        logging.getLogger().setLevel(log_level)
        for name in logging.root.manager.loggerDict:
            logging.getLogger(name).setLevel(log_level)


config = Config()
