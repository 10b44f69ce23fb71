"""Config package"""
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from .settings import (
    Settings,
    SettingsManager,
    load_settings,
    apply_env_overrides,
    EndpointConfig,
    RetryConfig,
    RetryProfiles,
    DiscoveryConfig,
    MonitorConfig,
    TradingConfig,
    SafetyConfig
)
