"""
Unit tests for simulation mode
"""

import pytest
import asyncio
import random
import sys
import os

# Add repo root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from pump_sniper.core.discovery import AcquisitionPipeline
from pump_sniper.core.position_monitor import PositionMonitor
from pump_sniper.core.position_store import PositionStore
from pump_sniper.core.safety import KeywordSafetyFilter
from pump_sniper.core.simulation import (
    PUMP_AND_DUMP, STEADY_RISE, TEST_TOKENS, SimulatedDiscovery, SimulatedMarket, SimulatedTrader
)
from pump_sniper.core.tiers import ProfitTierTable
from pump_sniper.utils.retry import RetryPolicy


class ManualClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestMarket:
    """Synthetic price walks"""

    def test_price_unchanged_before_first_update(self):
        clock = ManualClock()
        market = SimulatedMarket(random.Random(1), clock)
        market.list_asset("MintA", 0.001, STEADY_RISE)
        assert asyncio.run(market.get_price("MintA")) == pytest.approx(0.001)

    def test_steady_rise_goes_up(self):
        clock = ManualClock()
        market = SimulatedMarket(random.Random(1), clock)
        market.list_asset("MintA", 0.001, STEADY_RISE)
        clock.now += 600
        assert asyncio.run(market.get_price("MintA")) > 0.001

    def test_pump_and_dump_turns_at_ten_x(self):
        market = SimulatedMarket(random.Random(1), ManualClock())
        walk = market.list_asset("MintA", 1.0, PUMP_AND_DUMP)
        peak = 0.0
        for _ in range(30):
            peak = max(peak, market.step(walk))
        assert 10.0 <= peak < 12.0
        assert walk.multiplier < peak

    def test_unknown_asset(self):
        market = SimulatedMarket(random.Random(1), ManualClock())
        with pytest.raises(KeyError):
            asyncio.run(market.get_price("Nope"))


class TestDiscovery:
    """Synthetic discovery feed"""

    def make(self):
        market = SimulatedMarket(random.Random(7), ManualClock())
        store = PositionStore()
        pipeline = AcquisitionPipeline(KeywordSafetyFilter(), SimulatedTrader(market), store, 0.1, 200)
        discovery = SimulatedDiscovery(pipeline, poll_interval_sec=0.0, rng=random.Random(7))
        return discovery, store, market

    def test_test_tokens_first_then_fresh_mints(self):
        discovery, _, _ = self.make()
        events = [discovery.next_event() for _ in range(len(TEST_TOKENS) + 1)]
        assert [e.asset_id for e in events[:5]] == [t[2] for t in TEST_TOKENS]
        assert events[5].name == f"{TEST_TOKENS[0][0]} #2"
        assert events[5].asset_id not in {t[2] for t in TEST_TOKENS}

    def test_poll_buys_and_lists_asset(self):
        discovery, store, market = self.make()
        position = asyncio.run(discovery.poll_once())
        assert position is not None
        assert position.asset_id in store
        assert asyncio.run(market.get_price(position.asset_id)) == pytest.approx(position.entry_price)
        assert 10_000 <= position.token_amount < 110_000

    def test_monitor_runs_against_simulated_market(self):
        discovery, store, market = self.make()
        position = asyncio.run(discovery.poll_once())
        market._walks[position.asset_id].multiplier = 2.5

        async def no_sleep(delay):
            return None

        monitor = PositionMonitor(
            store, ProfitTierTable.default(), market, SimulatedTrader(market),
            RetryPolicy(sleep=no_sleep), slippage_bps=200,
        )
        exits = asyncio.run(monitor.tick())
        assert len(exits) == 1
        assert exits[0].receipt_id.startswith("sim-sell-")
        assert position.sold_percentage == 15.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
