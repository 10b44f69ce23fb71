from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable

from ..logger import trade_logger
from ..utils.helpers import short_id, wait_or_stop
from ..utils.retry import RetryOptions, RetryPolicy
from .models import Position
from .position_store import PositionStore
from .tiers import ProfitTier, ProfitTierTable


@dataclass(frozen=True)
class TierExit:
    asset_id: str
    tier: ProfitTier
    token_amount: float
    receipt_id: str


class PositionMonitor:
    """
    Periodic sweep over open positions.

    Each tick refreshes prices, then fires at most one profit tier per
    position: the lowest tier whose multiplier the price ratio has
    reached and whose cumulative percent is above what was already sold.
    A failed sell leaves the position untouched for the next tick.
    """

    def __init__(
        self,
        store: PositionStore,
        tiers: ProfitTierTable,
        price_source,
        trader,
        retry: RetryPolicy,
        slippage_bps: int,
        tick_interval_sec: float = 5.0,
        retention_sec: float = 0.0,
        price_options: RetryOptions | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.tiers = tiers
        self.price_source = price_source
        self.trader = trader
        self.retry = retry
        self.slippage_bps = slippage_bps
        self.tick_interval_sec = tick_interval_sec
        self.retention_sec = retention_sec
        self.price_options = price_options or RetryOptions(max_retries=7, initial_delay=0.3)
        self._clock = clock
        self.ticks = 0
        self.logger = logging.getLogger("pump_sniper.positions")

    async def tick(self) -> list[TierExit]:
        if len(self.store) == 0:
            return []

        self.ticks += 1
        exits: list[TierExit] = []
        for position in self.store.open_positions():
            if not await self._refresh_price(position):
                continue
            exit_ = await self._evaluate(position)
            if exit_ is not None:
                exits.append(exit_)

        now = self._clock()
        self.store.prune_terminal(self.retention_sec, now)
        try:
            self.store.write_snapshot(now)
        except OSError as e:
            self.logger.warning("Failed to write positions snapshot: %s", e)
        return exits

    async def _refresh_price(self, position: Position) -> bool:
        try:
            price = await self.retry.guard(
                lambda: self.price_source.get_price(position.asset_id),
                options=self.price_options,
                description=f"price {position.symbol}",
            )
        except Exception as e:
            self.logger.warning(
                "Price refresh failed for %s (%s), keeping %.10f: %s",
                position.symbol, short_id(position.asset_id), position.current_price, e,
            )
            return False

        position.update_price(float(price), self._clock())
        return True

    async def _evaluate(self, position: Position) -> TierExit | None:
        if position.entry_price <= 0 or position.current_price <= 0:
            return None

        ratio = position.price_ratio
        tier = self.tiers.next_trigger(ratio, position.sold_percentage)
        if tier is None:
            return None

        amount = position.sellable_amount(tier.cumulative_sell_percent)
        sell_pct = tier.cumulative_sell_percent - position.sold_percentage
        self.logger.info(
            "🎯 %s hit %.2fx (tier %.2fx), selling %.4g%% (%s tokens)",
            position.symbol, ratio, tier.price_multiplier, sell_pct, f"{amount:,.2f}",
        )

        try:
            receipt = await self.trader.sell(position.asset_id, amount, self.slippage_bps)
        except Exception as e:
            self.logger.error("❌ Sell failed for %s at tier %.2fx: %s", position.symbol, tier.price_multiplier, e)
            return None

        position.record_exit(
            tier.cumulative_sell_percent,
            self.tiers.max_cumulative_percent,
            receipt_id=str(receipt or ""),
            now=self._clock(),
        )
        self.logger.info(
            "💸 %s sold %.4g%% of original holding, now %s",
            position.symbol, position.sold_percentage, position.status.value,
        )
        trade_logger.log_sell(
            mint=position.asset_id,
            symbol=position.symbol,
            signature=str(receipt or ""),
            sell_pct=sell_pct,
            sold_pct_total=position.sold_percentage,
            price_ratio=ratio,
            token_amount=amount,
        )
        return TierExit(position.asset_id, tier, amount, str(receipt or ""))

    async def run(self, stop_event: asyncio.Event) -> None:
        self.logger.info("📊 Position monitor running every %ss", self.tick_interval_sec)
        while not stop_event.is_set():
            try:
                await self.tick()
            except Exception as e:
                self.logger.error("Position monitor tick failed: %s", e)
            if await wait_or_stop(stop_event, self.tick_interval_sec):
                break
