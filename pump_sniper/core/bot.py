"""
Sniper Bot

Wires the pieces together: endpoint pool, retry policy, RPC client,
safety filter, trader, position store, discovery loop (under a restart
supervisor) and position monitor. Both loops run as tasks on one event
loop and stop cooperatively when the stop event is set.
"""

import asyncio
import logging
from typing import List, Optional

from ..utils.retry import RetryPolicy
from .discovery import AcquisitionPipeline, DiscoveryLoop
from .endpoint_pool import EndpointKind, EndpointPool
from .position_monitor import PositionMonitor
from .position_store import PositionStore
from .rpc_client import SolanaRpcClient
from .safety import build_safety_filter
from .simulation import SimulatedDiscovery, SimulatedMarket, SimulatedTrader
from .supervisor import LoopSupervisor
from .trader import JupiterPriceSource, JupiterTrader
from .wallet import WalletManager

logger = logging.getLogger(__name__)


class SniperBot:
    """
    Usage:
        bot = SniperBot(settings)
        await bot.start()        # returns after stop() / stop_event
    """

    def __init__(self, settings, stop_event: Optional[asyncio.Event] = None):
        self.settings = settings
        self.stop_event = stop_event or asyncio.Event()
        self.tiers = settings.tier_table()

        self.pool = EndpointPool(settings.http_endpoints(), settings.stream_endpoints())
        self.retry = RetryPolicy(self.pool, settings.retry.default.to_options("RPC call"))
        self.rpc = SolanaRpcClient(
            self.pool, self.retry, timeout=settings.endpoints.request_timeout_sec
        )
        self.store = PositionStore(settings.monitor.snapshot_path)
        self.wallet: Optional[WalletManager] = None
        self._closeables: List = [self.rpc]
        self._tasks: List[asyncio.Task] = []

        if settings.simulation_mode:
            market = SimulatedMarket()
            self.trader = SimulatedTrader(market)
            self.price_source = market
        else:
            self.wallet = WalletManager.from_settings(settings, self.rpc)
            self.trader = JupiterTrader(settings, self.rpc, self.wallet, self.retry)
            self.price_source = JupiterPriceSource(settings.trading.jupiter_price_api)
            self._closeables.extend([self.trader, self.price_source])

        self.pipeline = AcquisitionPipeline(
            build_safety_filter(settings, self.rpc),
            self.trader,
            self.store,
            settings.trading.buy_amount_sol,
            settings.trading.slippage_bps,
        )

        discovery_config = settings.discovery
        if settings.simulation_mode:
            self.discovery = SimulatedDiscovery(self.pipeline, discovery_config.poll_interval_sec)
        else:
            self.discovery = DiscoveryLoop(self.rpc, self.pipeline, settings)

        self.supervisor = LoopSupervisor(
            "Discovery loop",
            self.discovery.run,
            base_delay=discovery_config.restart_base_delay_sec,
            factor=discovery_config.restart_backoff_factor,
            max_delay=discovery_config.restart_max_delay_sec,
        )
        if isinstance(self.discovery, DiscoveryLoop):
            self.discovery.on_cycle = self.supervisor.mark_healthy

        self.monitor = PositionMonitor(
            self.store,
            self.tiers,
            self.price_source,
            self.trader,
            self.retry,
            settings.trading.slippage_bps,
            tick_interval_sec=settings.monitor.tick_interval_sec,
            retention_sec=settings.monitor.retention_sec,
            price_options=settings.retry.options("price", "Jupiter price"),
        )

    def log_configuration(self):
        settings = self.settings
        mode = "SIMULATION" if settings.simulation_mode else "LIVE"
        network = "devnet" if settings.devnet_mode else "mainnet"
        logger.info("=" * 60)
        logger.info(f"🤖 pump.fun sniper starting ({mode}, {network})")
        logger.info(f"🔗 HTTP endpoints: {len(self.pool.endpoints(EndpointKind.HTTP))}, "
                    f"stream endpoints: {len(self.pool.endpoints(EndpointKind.STREAM))}")
        logger.info(f"💵 Buy amount: {settings.trading.buy_amount_sol} SOL, "
                    f"slippage: {settings.trading.slippage_bps / 100:.2f}%")
        for tier in self.tiers:
            logger.info(f"🎯 Tier {tier.price_multiplier}x -> {tier.cumulative_sell_percent:g}% sold")
        logger.info(f"⏳ Poll every {settings.discovery.poll_interval_sec}s, "
                    f"monitor every {settings.monitor.tick_interval_sec}s")
        logger.info("=" * 60)

    async def preflight(self):
        """Startup checks that need the network."""
        if self.wallet is not None:
            await self.wallet.check_balance(self.settings.trading.buy_amount_sol)

    async def start(self):
        self.log_configuration()
        await self.preflight()

        self._tasks = [
            asyncio.create_task(self.supervisor.run(self.stop_event), name="discovery"),
            asyncio.create_task(self.monitor.run(self.stop_event), name="monitor"),
        ]
        try:
            await self.stop_event.wait()
        finally:
            await self.shutdown()

    def stop(self):
        self.stop_event.set()

    async def shutdown(self, timeout: float = 10.0):
        """Let both loops finish their current iteration, then close clients."""
        self.stop_event.set()
        if self._tasks:
            done, pending = await asyncio.wait(self._tasks, timeout=timeout)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            self._tasks = []

        if isinstance(self.discovery, DiscoveryLoop):
            logger.info(f"📈 Discovery: {self.discovery.get_status()}")
        else:
            logger.info(f"📈 Discovery: {self.pipeline.stats}")
        logger.debug(f"RPC: {self.rpc.get_status()}")

        for resource in self._closeables:
            try:
                await resource.close()
            except Exception as e:
                logger.debug(f"Error closing {type(resource).__name__}: {e}")

        try:
            self.store.write_snapshot()
        except OSError as e:
            logger.warning(f"Failed to write final snapshot: {e}")
        logger.info(f"Shutdown complete ({len(self.store.open_positions())} positions still open)")
