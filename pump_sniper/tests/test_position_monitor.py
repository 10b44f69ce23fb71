"""
Unit tests for PositionMonitor

Tests core functionality:
1. One tier per tick, lowest unsold tier first
2. Sell and price failures leave positions untouched
3. Terminal positions are skipped
"""

import pytest
import asyncio
import sys
import os

# Add repo root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from pump_sniper.core.models import BuyFill, CreationEvent, Position, PositionStatus
from pump_sniper.core.position_monitor import PositionMonitor
from pump_sniper.core.position_store import PositionStore
from pump_sniper.core.tiers import ProfitTierTable
from pump_sniper.utils.retry import RetryOptions, RetryPolicy


async def no_sleep(delay):
    return None


class FakePriceSource:
    def __init__(self, prices=None):
        self.prices = dict(prices or {})
        self.errors = []
        self.calls = 0

    async def get_price(self, asset_id):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.prices[asset_id]


class FakeTrader:
    def __init__(self):
        self.sells = []
        self.fail_next = 0

    async def sell(self, asset_id, token_amount, slippage_bps):
        if self.fail_next:
            self.fail_next -= 1
            raise RuntimeError("swap failed")
        self.sells.append((asset_id, token_amount))
        return f"sell-{len(self.sells)}"


def make_monitor(store, prices, trader=None, tiers=None):
    return PositionMonitor(
        store,
        tiers or ProfitTierTable.default(),
        prices,
        trader or FakeTrader(),
        RetryPolicy(sleep=no_sleep),
        slippage_bps=200,
        price_options=RetryOptions(max_retries=2, initial_delay=0.0),
        clock=lambda: 1000.0,
    )


def add_position(store, asset_id="MintA", entry=1.0, tokens=1000.0):
    event = CreationEvent(asset_id, "Test Token", "TEST", "sig-1")
    position = Position.from_fill(event, BuyFill(entry, tokens, "buy-1", 0.1))
    store.add(position)
    return position


class TestTierFiring:
    """Tier state machine driven by ticks"""

    def test_empty_store_noop(self):
        prices = FakePriceSource()
        monitor = make_monitor(PositionStore(), prices)
        assert asyncio.run(monitor.tick()) == []
        assert prices.calls == 0

    def test_no_tier_below_first_multiplier(self):
        store = PositionStore()
        position = add_position(store)
        monitor = make_monitor(store, FakePriceSource({"MintA": 1.2}))
        assert asyncio.run(monitor.tick()) == []
        assert position.status == PositionStatus.ACTIVE
        assert position.current_price == 1.2

    def test_price_jump_fires_one_tier_per_tick(self):
        store = PositionStore()
        position = add_position(store)
        trader = FakeTrader()
        monitor = make_monitor(store, FakePriceSource({"MintA": 5.0}), trader)

        sold = []
        for _ in range(5):
            asyncio.run(monitor.tick())
            sold.append(position.sold_percentage)

        assert sold == [15.0, 50.0, 65.0, 80.0, 80.0]
        assert [amount for _, amount in trader.sells] == pytest.approx([150.0, 350.0, 150.0, 150.0])
        assert position.status == PositionStatus.PARTIALLY_SOLD

    def test_final_tier_closes_position(self):
        store = PositionStore()
        position = add_position(store)
        prices = FakePriceSource({"MintA": 8.0})
        monitor = make_monitor(store, prices)
        for _ in range(5):
            asyncio.run(monitor.tick())
        assert position.sold_percentage == 85.0
        assert position.status == PositionStatus.FULLY_SOLD

        calls = prices.calls
        assert asyncio.run(monitor.tick()) == []
        assert prices.calls == calls

    def test_gradual_rise_end_to_end(self):
        store = PositionStore()
        position = add_position(store, entry=0.0001)
        prices = FakePriceSource({"MintA": 0.00011})
        trader = FakeTrader()
        monitor = make_monitor(store, prices, trader, ProfitTierTable([(1.3, 15), (2.0, 50)]))

        asyncio.run(monitor.tick())
        assert position.sold_percentage == 0

        prices.prices["MintA"] = 0.0002
        exits = asyncio.run(monitor.tick())
        assert len(exits) == 1
        assert exits[0].tier.cumulative_sell_percent == 15.0
        assert exits[0].receipt_id == "sell-1"

        asyncio.run(monitor.tick())
        assert position.sold_percentage == 50.0
        assert position.sell_receipts == ["sell-1", "sell-2"]
        assert position.status == PositionStatus.FULLY_SOLD


class TestRetention:
    """Closed positions age on the monitor's clock"""

    def test_closed_position_pruned_after_retention(self):
        now = [1000.0]
        store = PositionStore()
        position = add_position(store)
        monitor = PositionMonitor(
            store,
            ProfitTierTable([(1.3, 15), (2.0, 50)]),
            FakePriceSource({"MintA": 2.0}),
            FakeTrader(),
            RetryPolicy(sleep=no_sleep),
            slippage_bps=200,
            retention_sec=60,
            clock=lambda: now[0],
        )

        asyncio.run(monitor.tick())
        asyncio.run(monitor.tick())
        assert position.status == PositionStatus.FULLY_SOLD
        assert position.last_updated_at == 1000.0

        now[0] = 1030.0
        asyncio.run(monitor.tick())
        assert "MintA" in store

        now[0] = 1100.0
        asyncio.run(monitor.tick())
        assert len(store) == 0


class TestFailures:
    """Failed sells and price lookups"""

    def test_sell_failure_leaves_position_unchanged(self):
        store = PositionStore()
        position = add_position(store)
        trader = FakeTrader()
        trader.fail_next = 1
        monitor = make_monitor(store, FakePriceSource({"MintA": 1.5}), trader)

        assert asyncio.run(monitor.tick()) == []
        assert position.sold_percentage == 0
        assert position.status == PositionStatus.ACTIVE

        exits = asyncio.run(monitor.tick())
        assert len(exits) == 1
        assert position.sold_percentage == 15.0

    def test_price_failure_skips_evaluation(self):
        store = PositionStore()
        position = add_position(store)
        prices = FakePriceSource({"MintA": 5.0})
        prices.errors = [ValueError("no route")]
        trader = FakeTrader()
        monitor = make_monitor(store, prices, trader)

        assert asyncio.run(monitor.tick()) == []
        assert position.current_price == 1.0
        assert trader.sells == []

    def test_transient_price_errors_retried(self):
        store = PositionStore()
        position = add_position(store)
        prices = FakePriceSource({"MintA": 2.0})
        prices.errors = [Exception("429 Too Many Requests"), Exception("timeout")]
        monitor = make_monitor(store, prices)

        exits = asyncio.run(monitor.tick())
        assert prices.calls == 3
        assert len(exits) == 1
        assert position.sold_percentage == 15.0

    def test_one_bad_position_does_not_block_others(self):
        store = PositionStore()
        add_position(store, "MintA")
        other = add_position(store, "MintB")
        prices = FakePriceSource({"MintB": 1.4})
        monitor = make_monitor(store, prices)

        exits = asyncio.run(monitor.tick())
        assert [e.asset_id for e in exits] == ["MintB"]
        assert other.sold_percentage == 15.0


class TestRunLoop:
    """run() honours the stop event"""

    def test_stops_after_current_tick(self):
        store = PositionStore()
        add_position(store)

        async def scenario():
            stop_event = asyncio.Event()

            class StoppingPrices(FakePriceSource):
                async def get_price(self, asset_id):
                    stop_event.set()
                    return 1.0

            prices = StoppingPrices()
            monitor = make_monitor(store, prices)
            await asyncio.wait_for(monitor.run(stop_event), timeout=2.0)
            return monitor.ticks

        assert asyncio.run(scenario()) == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
