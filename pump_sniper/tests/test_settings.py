"""
Unit tests for settings loading and validation
"""

import pytest
import json
import sys
import os

# Add repo root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from pump_sniper.config.settings import Settings, SettingsManager, apply_env_overrides, load_settings
from pump_sniper.constants import DEVNET_HTTP_ENDPOINTS, MAINNET_HTTP_ENDPOINTS
from pump_sniper.exceptions import ConfigurationException


class TestDefaults:
    """Default settings"""

    def test_defaults_are_valid(self):
        settings = load_settings(environ={})
        assert settings.trading.buy_amount_sol == 0.1
        assert settings.discovery.poll_interval_sec == 10.0
        assert settings.monitor.tick_interval_sec == 5.0
        assert settings.http_endpoints() == MAINNET_HTTP_ENDPOINTS
        assert len(settings.tier_table()) == 5

    def test_retry_profiles(self):
        profiles = Settings().retry
        assert profiles.options("tip").max_retries == 10
        assert profiles.options("price").initial_delay == 0.3
        assert profiles.options("nonexistent").max_retries == 5

    def test_premium_endpoint_first(self):
        settings = Settings()
        settings.endpoints.premium_http_url = "https://premium.example"
        assert settings.http_endpoints()[0] == "https://premium.example"

    def test_devnet(self):
        settings = Settings(devnet_mode=True)
        assert settings.http_endpoints() == DEVNET_HTTP_ENDPOINTS


class TestEnvironment:
    """Environment overrides"""

    def test_overrides(self):
        settings = apply_env_overrides(Settings(), {
            "BUY_AMOUNT_SOL": "0.25",
            "SLIPPAGE_BPS": "500",
            "POLLING_INTERVAL_MS": "2500",
            "MONITOR_INTERVAL_MS": "1000",
            "PROFIT_TIERS": "1.5:25,3:100",
            "SIMULATION_MODE": "true",
            "ALCHEMY_RPC_URL": "https://alchemy.example",
            "RPC_FALLBACK_URLS": "https://x.example, https://y.example",
            "log_level": "ignored",
            "LOG_LEVEL": "debug",
        })
        assert settings.trading.buy_amount_sol == 0.25
        assert settings.trading.slippage_bps == 500
        assert settings.discovery.poll_interval_sec == 2.5
        assert settings.monitor.tick_interval_sec == 1.0
        assert settings.trading.profit_tiers == [(1.5, 25.0), (3.0, 100.0)]
        assert settings.simulation_mode is True
        assert settings.log_level == "DEBUG"
        assert settings.http_endpoints() == [
            "https://alchemy.example", "https://x.example", "https://y.example",
        ]

    def test_solana_rpc_url_prepended(self):
        settings = apply_env_overrides(Settings(), {"SOLANA_RPC_URL": "https://mine.example"})
        assert settings.endpoints.http_urls[0] == "https://mine.example"

    def test_bad_number(self):
        with pytest.raises(ConfigurationException):
            apply_env_overrides(Settings(), {"BUY_AMOUNT_SOL": "lots"})


class TestFiles:
    """YAML / JSON config files"""

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "sniper.yaml"
        path.write_text(
            "trading:\n"
            "  buy_amount_sol: 0.5\n"
            "  profit_tiers:\n"
            "    - [2.0, 50]\n"
            "    - [4.0, 100]\n"
            "discovery:\n"
            "  poll_interval_sec: 3\n"
        )
        settings = load_settings(str(path), environ={})
        assert settings.trading.buy_amount_sol == 0.5
        assert settings.tier_table().max_cumulative_percent == 100.0
        assert settings.discovery.poll_interval_sec == 3

    def test_json_file_and_env_precedence(self, tmp_path):
        path = tmp_path / "sniper.json"
        path.write_text(json.dumps({"trading": {"buy_amount_sol": 0.5}}))
        settings = load_settings(str(path), environ={"BUY_AMOUNT_SOL": "0.05"})
        assert settings.trading.buy_amount_sol == 0.05

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationException):
            load_settings(str(tmp_path / "nope.yaml"), environ={})

    def test_unknown_key(self, tmp_path):
        path = tmp_path / "sniper.json"
        path.write_text(json.dumps({"trading": {"buy_amount": 1}}))
        with pytest.raises(ConfigurationException):
            load_settings(str(path), environ={})

    def test_save_round_trip_drops_secret(self, tmp_path):
        manager = SettingsManager()
        settings = manager.load(environ={"WALLET_PRIVATE_KEY": "secret", "BUY_AMOUNT_SOL": "0.3"})
        assert settings.wallet_private_key == "secret"
        target = tmp_path / "out.yaml"
        manager.save(str(target))
        text = target.read_text()
        assert "secret" not in text
        reloaded = SettingsManager(str(target)).load(environ={})
        assert reloaded.trading.buy_amount_sol == 0.3


class TestValidation:
    """SettingsManager.validate"""

    def manager_with(self, **env):
        manager = SettingsManager()
        manager.load(environ=env)
        return manager

    def test_invalid_tiers(self):
        manager = self.manager_with()
        manager.get_settings().trading.profit_tiers = [(2.0, 50), (1.5, 60)]
        assert any("strictly increasing" in e for e in manager.validate())

    def test_invalid_amounts(self):
        manager = self.manager_with(BUY_AMOUNT_SOL="0", SLIPPAGE_BPS="20000")
        errors = manager.validate()
        assert "buy_amount_sol must be > 0" in errors
        assert "slippage_bps must be between 1 and 10000" in errors

    def test_load_settings_raises(self):
        with pytest.raises(ConfigurationException):
            load_settings(environ={"POLLING_INTERVAL_MS": "0"})


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
