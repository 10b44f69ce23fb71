"""
Simulation Mode

Runs the whole pipeline without touching the chain: a synthetic
discovery feed, fills that cost nothing and price walks that follow one
of four trend patterns. The position monitor and tier logic run
unchanged against it.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Callable

from solders.keypair import Keypair  # type: ignore

from ..utils.helpers import wait_or_stop
from .models import BuyFill, CreationEvent

logger = logging.getLogger(__name__)

TEST_TOKENS = [
    ("SuperCoin", "SUPER", "JBu1AL4obBcCMqKBBxhpWCNUt136ijcuMZLFvTP7iWdB"),
    ("MoonRocket", "MOON", "5RpUwQ8wtdPCZHhu6MERp2RGrpobsbZ6MH5dDHkUjs2"),
    ("TradeFi Protocol", "TRFI", "AVKnHiay8LsEeieL8QpwZ4SDH5iuRjpWbPc9uAg9UHwN"),
    ("DeFi Alliance", "DEFA", "AZ1jmdqQzC3jKJfuVzVqd25J8pYRCz9qRFY67TGxABz"),
    ("ElonDoge Token", "ELOND", "E1onDXmKLA8JEVREsR5h8sdwv5dhoGXXP2XYYSXy9MeZ"),
]

PUMP_AND_DUMP = 0
STEADY_RISE = 1
PUMP_THEN_FLAT = 2
VOLATILE = 3


@dataclass
class PriceWalk:
    entry_price: float
    pattern: int
    multiplier: float = 1.0
    next_update_at: float = 0.0
    last_reported: float = 1.0

    @property
    def price(self) -> float:
        return self.entry_price * self.multiplier

    @property
    def stalled(self) -> bool:
        return self.multiplier <= 0.1


class SimulatedMarket:
    """Per-asset synthetic prices, updated every 5-35 seconds."""

    def __init__(self, rng: random.Random | None = None, clock: Callable[[], float] = time.time):
        self.rng = rng or random.Random()
        self.clock = clock
        self._walks: dict[str, PriceWalk] = {}

    def list_asset(self, asset_id: str, entry_price: float, pattern: int | None = None) -> PriceWalk:
        walk = PriceWalk(
            entry_price=entry_price,
            pattern=self.rng.randrange(4) if pattern is None else pattern,
            next_update_at=self.clock() + self._update_interval(),
        )
        self._walks[asset_id] = walk
        return walk

    def _update_interval(self) -> float:
        return 5.0 + self.rng.random() * 30.0

    def step(self, walk: PriceWalk) -> float:
        """Advance ``walk`` by one update and return the new multiplier."""
        r = self.rng.random
        if walk.pattern == PUMP_AND_DUMP:
            walk.multiplier *= 1.2 if walk.multiplier < 10 else 0.7
        elif walk.pattern == STEADY_RISE:
            walk.multiplier *= 1.05 + r() * 0.1
        elif walk.pattern == PUMP_THEN_FLAT:
            walk.multiplier *= 1.15 if walk.multiplier < 4 else 0.99 + r() * 0.03
        else:
            walk.multiplier *= (1.1 + r() * 0.1) if r() > 0.5 else (0.9 + r() * 0.05)
        return walk.multiplier

    async def get_price(self, asset_id: str) -> float:
        walk = self._walks.get(asset_id)
        if walk is None:
            raise KeyError(f"Unknown simulated asset {asset_id}")

        now = self.clock()
        while not walk.stalled and now >= walk.next_update_at:
            self.step(walk)
            walk.next_update_at += self._update_interval()
            if abs(walk.multiplier - walk.last_reported) > 0.5:
                walk.last_reported = walk.multiplier
                logger.info(f"🧪 [SIM] {asset_id[:8]}... price {walk.price:.10f} SOL ({walk.multiplier:.2f}x)")
        return walk.price


class SimulatedTrader:
    """Fills every order instantly; buys list the asset on the market."""

    def __init__(self, market: SimulatedMarket):
        self.market = market
        self.rng = market.rng

    async def buy(self, asset_id: str, sol_amount: float, slippage_bps: int) -> BuyFill:
        token_amount = float(self.rng.randrange(10_000, 110_000))
        price = sol_amount / token_amount
        self.market.list_asset(asset_id, price)
        receipt = f"sim-buy-{int(time.time() * 1000)}"
        logger.info(f"🧪 [SIM] Bought {token_amount:,.0f} tokens of {asset_id[:8]}... for {sol_amount} SOL")
        return BuyFill(fill_price=price, token_amount=token_amount, receipt_id=receipt, sol_amount=sol_amount)

    async def sell(self, asset_id: str, token_amount: float, slippage_bps: int) -> str:
        logger.info(f"🧪 [SIM] Sold {token_amount:,.2f} tokens of {asset_id[:8]}...")
        return f"sim-sell-{int(time.time() * 1000)}"


class SimulatedDiscovery:
    """
    Feeds synthetic creation events into the acquisition pipeline.

    Events arrive every poll interval plus up to 40 seconds. The five
    test tokens come first; later rounds use freshly generated mints.
    """

    def __init__(
        self,
        pipeline,
        poll_interval_sec: float,
        rng: random.Random | None = None,
        max_jitter_sec: float = 40.0
    ):
        self.pipeline = pipeline
        self.poll_interval_sec = poll_interval_sec
        self.max_jitter_sec = max_jitter_sec
        self.rng = rng or random.Random()
        self._index = 0

    def next_event(self) -> CreationEvent:
        name, symbol, mint = TEST_TOKENS[self._index % len(TEST_TOKENS)]
        rounds = self._index // len(TEST_TOKENS)
        if rounds:
            mint = str(Keypair().pubkey())
            name = f"{name} #{rounds + 1}"
        self._index += 1
        return CreationEvent(
            asset_id=mint,
            name=name,
            symbol=symbol,
            source_transaction_id=f"simulation-{int(time.time() * 1000)}",
        )

    async def poll_once(self):
        event = self.next_event()
        logger.info(f"🧪 [SIM] New token found: {event.name} ({event.symbol})")
        return await self.pipeline.handle(event)

    async def run(self, stop_event: asyncio.Event):
        logger.info("🧪 Simulation mode: generating synthetic token launches")
        while not stop_event.is_set():
            delay = self.poll_interval_sec + self.rng.random() * self.max_jitter_sec
            if await wait_or_stop(stop_event, delay):
                break
            await self.poll_once()
