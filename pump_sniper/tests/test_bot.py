"""
Integration tests for SniperBot wiring and the command line
"""

import pytest
import asyncio
import json
import sys
import os

# Add repo root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from pump_sniper.config.settings import Settings
from pump_sniper.core.bot import SniperBot
from pump_sniper.core.simulation import SimulatedDiscovery, SimulatedTrader
from pump_sniper.dashboard import get_positions_table
from pump_sniper.exceptions import WalletException
from pump_sniper.main import build_parser, cli


class TestSniperBot:
    """Start/stop in simulation mode"""

    def test_simulation_wiring(self, tmp_path):
        settings = Settings(simulation_mode=True)
        settings.monitor.snapshot_path = str(tmp_path / "positions.json")

        async def scenario():
            bot = SniperBot(settings)
            assert isinstance(bot.discovery, SimulatedDiscovery)
            assert isinstance(bot.trader, SimulatedTrader)
            asyncio.get_running_loop().call_later(0.05, bot.stop)
            await asyncio.wait_for(bot.start(), timeout=5.0)
            return bot

        bot = asyncio.run(scenario())
        assert bot._tasks == []
        snapshot = json.loads((tmp_path / "positions.json").read_text())
        assert snapshot["positions"] == []

    def test_live_mode_requires_wallet(self):
        async def scenario():
            SniperBot(Settings())

        with pytest.raises(WalletException):
            asyncio.run(scenario())


class TestCli:
    """Argument parsing and exit codes"""

    def test_default_command(self):
        args = build_parser().parse_args(["--simulate"])
        assert args.command is None
        assert args.simulate

    def test_dashboard_snapshot_option(self):
        args = build_parser().parse_args(["dashboard", "--snapshot", "x.json"])
        assert args.command == "dashboard"
        assert args.snapshot == "x.json"

    def test_bad_config_exits_1(self, tmp_path):
        assert cli(["--config", str(tmp_path / "missing.yaml"), "wallet"]) == 1


class TestDashboard:
    def test_table_rows(self):
        data = {"ts": 0, "positions": [{
            "name": "Alpha", "symbol": "ALP", "entry_price": 0.0001, "current_price": 0.0002,
            "created_at": 0, "status_label": "Sold 15%",
        }]}
        table = get_positions_table(data)
        assert table.row_count == 1

    def test_empty_table(self):
        assert get_positions_table({"positions": []}).row_count == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
