"""
Settings Manager

Bot configuration as a tree of dataclasses, loaded from an optional
YAML/JSON file and then overridden by environment variables.
"""

import os
import json
import yaml
import logging
from typing import Dict, Any, Optional, List, Tuple
from dataclasses import dataclass, field, asdict
from pathlib import Path

from ..constants import (
    DEFAULT_PROFIT_TIERS, MAINNET_HTTP_ENDPOINTS, MAINNET_STREAM_ENDPOINTS,
    DEVNET_HTTP_ENDPOINTS, DEVNET_STREAM_ENDPOINTS, PUMP_PROGRAM,
    PUMP_ACCOUNT_DATA_SIZE, JUPITER_QUOTE_API, JUPITER_SWAP_API, JUPITER_PRICE_API
)
from ..core.tiers import ProfitTier, ProfitTierTable
from ..exceptions import ConfigurationException
from ..utils.retry import RetryOptions

logger = logging.getLogger(__name__)


@dataclass
class EndpointConfig:
    """RPC endpoints, premium first"""
    premium_http_url: str = ""
    premium_stream_url: str = ""
    http_urls: List[str] = field(default_factory=lambda: list(MAINNET_HTTP_ENDPOINTS))
    stream_urls: List[str] = field(default_factory=lambda: list(MAINNET_STREAM_ENDPOINTS))
    request_timeout_sec: float = 10.0

    def http_pool(self, devnet: bool = False) -> List[str]:
        if devnet:
            return list(DEVNET_HTTP_ENDPOINTS)
        return [u for u in [self.premium_http_url, *self.http_urls] if u]

    def stream_pool(self, devnet: bool = False) -> List[str]:
        if devnet:
            return list(DEVNET_STREAM_ENDPOINTS)
        return [u for u in [self.premium_stream_url, *self.stream_urls] if u]


@dataclass
class RetryConfig:
    """Backoff for one class of call"""
    max_retries: int = 5
    initial_delay: float = 0.5
    backoff_factor: float = 2.0

    def to_options(self, description: str) -> RetryOptions:
        return RetryOptions(
            max_retries=self.max_retries,
            initial_delay=self.initial_delay,
            backoff_factor=self.backoff_factor,
            description=description
        )


@dataclass
class RetryProfiles:
    """Retry budgets per call class"""
    default: RetryConfig = field(default_factory=RetryConfig)
    tip: RetryConfig = field(default_factory=lambda: RetryConfig(max_retries=10, initial_delay=1.0))
    signatures: RetryConfig = field(default_factory=lambda: RetryConfig(max_retries=3, initial_delay=1.0))
    enumeration: RetryConfig = field(default_factory=lambda: RetryConfig(max_retries=3, initial_delay=1.0))
    account_signatures: RetryConfig = field(default_factory=lambda: RetryConfig(max_retries=2, initial_delay=1.0))
    transaction: RetryConfig = field(default_factory=lambda: RetryConfig(max_retries=3, initial_delay=1.0))
    price: RetryConfig = field(default_factory=lambda: RetryConfig(max_retries=7, initial_delay=0.3))
    swap: RetryConfig = field(default_factory=lambda: RetryConfig(max_retries=5, initial_delay=0.5))

    def options(self, call_class: str, description: Optional[str] = None) -> RetryOptions:
        config = getattr(self, call_class, None)
        if not isinstance(config, RetryConfig):
            config = self.default
        return config.to_options(description or call_class)


@dataclass
class DiscoveryConfig:
    """Discovery loop timing and limits"""
    program_id: str = str(PUMP_PROGRAM)
    poll_interval_sec: float = 10.0
    signature_limit: int = 10
    dedup_capacity: int = 100
    account_data_size: int = PUMP_ACCOUNT_DATA_SIZE
    fallback_account_limit: int = 3
    account_signature_limit: int = 3
    account_cooldown_sec: float = 60.0
    account_query_delay_sec: float = 0.2
    transaction_delay_sec: float = 0.1
    restart_base_delay_sec: float = 5.0
    restart_backoff_factor: float = 1.5
    restart_max_delay_sec: float = 60.0


@dataclass
class MonitorConfig:
    """Position monitor timing"""
    tick_interval_sec: float = 5.0
    retention_sec: float = 0.0  # 0 keeps closed positions forever
    snapshot_path: str = "logs/positions.json"


@dataclass
class TradingConfig:
    """Buy size, slippage and exit tiers"""
    buy_amount_sol: float = 0.1
    slippage_bps: int = 200
    profit_tiers: List[Tuple[float, float]] = field(default_factory=lambda: list(DEFAULT_PROFIT_TIERS))
    jupiter_quote_api: str = JUPITER_QUOTE_API
    jupiter_swap_api: str = JUPITER_SWAP_API
    jupiter_price_api: str = JUPITER_PRICE_API
    confirm_timeout_sec: float = 60.0


@dataclass
class SafetyConfig:
    """Token filtering rules"""
    enable_keyword_checks: bool = True
    enable_mint_authority_checks: bool = True
    enable_cpi_checks: bool = True
    suspicious_log_path: str = "logs/suspicious.jsonl"


@dataclass
class Settings:
    """Complete bot configuration"""
    endpoints: EndpointConfig = field(default_factory=EndpointConfig)
    retry: RetryProfiles = field(default_factory=RetryProfiles)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    trading: TradingConfig = field(default_factory=TradingConfig)
    safety: SafetyConfig = field(default_factory=SafetyConfig)

    simulation_mode: bool = False
    devnet_mode: bool = False
    log_level: str = "INFO"
    log_dir: str = "logs"
    wallet_private_key: str = ""
    wallet_path: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        data = asdict(self)
        data.pop("wallet_private_key", None)
        data["trading"]["profit_tiers"] = [list(t) for t in self.trading.profit_tiers]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        """Create from dictionary"""
        retry_data = data.get("retry", {}) or {}
        trading_data = dict(data.get("trading", {}) or {})
        if "profit_tiers" in trading_data:
            trading_data["profit_tiers"] = [tuple(t) for t in trading_data["profit_tiers"]]

        return cls(
            endpoints=EndpointConfig(**(data.get("endpoints", {}) or {})),
            retry=RetryProfiles(**{k: RetryConfig(**v) for k, v in retry_data.items()}),
            discovery=DiscoveryConfig(**(data.get("discovery", {}) or {})),
            monitor=MonitorConfig(**(data.get("monitor", {}) or {})),
            trading=TradingConfig(**trading_data),
            safety=SafetyConfig(**(data.get("safety", {}) or {})),
            simulation_mode=data.get("simulation_mode", False),
            devnet_mode=data.get("devnet_mode", False),
            log_level=data.get("log_level", "INFO"),
            log_dir=data.get("log_dir", "logs"),
            wallet_private_key=data.get("wallet_private_key", ""),
            wallet_path=data.get("wallet_path", ""),
        )

    def tier_table(self) -> ProfitTierTable:
        return ProfitTierTable(self.trading.profit_tiers)

    def http_endpoints(self) -> List[str]:
        return self.endpoints.http_pool(self.devnet_mode)

    def stream_endpoints(self) -> List[str]:
        return self.endpoints.stream_pool(self.devnet_mode)


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(value: str) -> List[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


def _ms_to_sec(value: str) -> float:
    return int(value) / 1000


def _tier_pairs(value: str) -> List[Tuple[float, float]]:
    return ProfitTierTable.parse(value).as_pairs()


# (env names, settings section, attribute, converter)
_ENV_OVERRIDES = [
    (("PREMIUM_RPC_URL", "ALCHEMY_RPC_URL"), "endpoints", "premium_http_url", str),
    (("PREMIUM_WS_URL", "ALCHEMY_WS_URL"), "endpoints", "premium_stream_url", str),
    (("RPC_FALLBACK_URLS",), "endpoints", "http_urls", _env_list),
    (("WS_FALLBACK_URLS",), "endpoints", "stream_urls", _env_list),
    (("BUY_AMOUNT_SOL",), "trading", "buy_amount_sol", float),
    (("SLIPPAGE_BPS",), "trading", "slippage_bps", int),
    (("PROFIT_TIERS",), "trading", "profit_tiers", _tier_pairs),
    (("POLLING_INTERVAL_MS",), "discovery", "poll_interval_sec", _ms_to_sec),
    (("MONITOR_INTERVAL_MS",), "monitor", "tick_interval_sec", _ms_to_sec),
    (("ENABLE_CPI_CHECKS",), "safety", "enable_cpi_checks", _env_bool),
    (("ENABLE_MINT_AUTHORITY_CHECKS",), "safety", "enable_mint_authority_checks", _env_bool),
    (("SIMULATION_MODE",), None, "simulation_mode", _env_bool),
    (("DEVNET_MODE",), None, "devnet_mode", _env_bool),
    (("LOG_LEVEL",), None, "log_level", str.upper),
    (("LOG_DIR",), None, "log_dir", str),
    (("WALLET_PRIVATE_KEY",), None, "wallet_private_key", str),
    (("WALLET_PATH",), None, "wallet_path", str),
]


def apply_env_overrides(settings: Settings, environ: Optional[Dict[str, str]] = None) -> Settings:
    """Overlay environment variables onto ``settings`` in place."""
    env = os.environ if environ is None else environ

    def get(*names: str) -> Optional[str]:
        for name in names:
            value = env.get(name)
            if value not in (None, ""):
                return value
        return None

    for names, section, attr, convert in _ENV_OVERRIDES:
        value = get(*names)
        if value is None:
            continue
        target = getattr(settings, section) if section else settings
        try:
            setattr(target, attr, convert(value))
        except ValueError as e:
            raise ConfigurationException("Invalid environment value", name=names[0], error=str(e))

    solana_rpc = get("SOLANA_RPC_URL")
    if solana_rpc is not None:
        settings.endpoints.http_urls = [solana_rpc] + [
            u for u in settings.endpoints.http_urls if u != solana_rpc
        ]

    return settings


class SettingsManager:
    """
    Loads settings from file plus environment and validates them.

    Usage:
        manager = SettingsManager("config/sniper.yaml")
        settings = manager.load()
        errors = manager.validate()
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = Path(config_path) if config_path else None
        self._settings: Optional[Settings] = None

    def load(self, environ: Optional[Dict[str, str]] = None) -> Settings:
        settings = self._load_from_file()
        self._settings = apply_env_overrides(settings, environ)
        return self._settings

    def _load_from_file(self) -> Settings:
        if self.config_path is None:
            return Settings()
        if not self.config_path.exists():
            raise ConfigurationException("Config file not found", path=str(self.config_path))

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                if self.config_path.suffix in ['.yaml', '.yml']:
                    data = yaml.safe_load(f) or {}
                else:
                    data = json.load(f)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationException("Config file is not valid", path=str(self.config_path), error=str(e))

        try:
            settings = Settings.from_dict(data)
        except TypeError as e:
            raise ConfigurationException("Unknown config key", path=str(self.config_path), error=str(e))

        logger.info(f"Settings loaded from {self.config_path}")
        return settings

    def get_settings(self) -> Settings:
        if self._settings is None:
            self._settings = Settings()
        return self._settings

    def save(self, path: str):
        """Write current settings (without secrets) to YAML or JSON"""
        target = Path(path)
        data = self.get_settings().to_dict()
        data.pop("wallet_private_key", None)
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, 'w', encoding='utf-8') as f:
            if target.suffix in ['.yaml', '.yml']:
                yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
            else:
                json.dump(data, f, indent=2, ensure_ascii=False)
        logger.info(f"Settings saved to {target}")

    def validate(self) -> List[str]:
        """Validate current settings, return list of errors"""
        errors = []
        settings = self.get_settings()

        if not settings.http_endpoints():
            errors.append("at least one HTTP RPC endpoint is required")

        if settings.trading.buy_amount_sol <= 0:
            errors.append("buy_amount_sol must be > 0")
        if not 0 < settings.trading.slippage_bps <= 10_000:
            errors.append("slippage_bps must be between 1 and 10000")

        errors.extend(_validate_tiers(settings.trading.profit_tiers))

        if settings.discovery.poll_interval_sec <= 0:
            errors.append("poll_interval_sec must be > 0")
        if settings.discovery.dedup_capacity <= 0:
            errors.append("dedup_capacity must be > 0")
        if settings.monitor.tick_interval_sec <= 0:
            errors.append("tick_interval_sec must be > 0")

        for name in ("default", "tip", "signatures", "enumeration",
                     "account_signatures", "transaction", "price", "swap"):
            config = getattr(settings.retry, name)
            if config.max_retries < 0:
                errors.append(f"retry.{name}.max_retries must be >= 0")
            if config.initial_delay < 0:
                errors.append(f"retry.{name}.initial_delay must be >= 0")
            if config.backoff_factor < 1:
                errors.append(f"retry.{name}.backoff_factor must be >= 1")

        return errors


def _validate_tiers(pairs) -> List[str]:
    try:
        tiers = [ProfitTier(float(m), float(p)) for m, p in pairs]
    except (TypeError, ValueError):
        return ["profit_tiers must be a list of [multiplier, percent] pairs"]
    return ProfitTierTable.validate(tiers)


def load_settings(config_path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> Settings:
    """Load and validate settings; raises ConfigurationException on errors."""
    env = os.environ if environ is None else environ
    manager = SettingsManager(config_path or env.get("BOT_CONFIG_PATH") or None)
    manager.load(environ)
    errors = manager.validate()
    if errors:
        raise ConfigurationException("Invalid configuration", errors="; ".join(errors))
    return manager.get_settings()
