"""
Discovery Loop

Polls the pump.fun program for new token creations over an unreliable,
rate-limited RPC pool and hands each new creation to the acquisition
pipeline (safety filter -> buy -> position store).

Per cycle:
1. read the current slot; the first cycle only records it as a baseline
2. list recent program signatures, or enumerate program accounts and
   sample their signatures when the direct lookup is unavailable
3. fetch unseen transactions newer than the previous slot and keep the
   ones that look like creations
4. filter, buy and record a position for each creation
5. advance the slot marker
"""

import asyncio
import inspect
import logging
import time
from collections import OrderedDict
from typing import Awaitable, Callable, Dict, List, Optional

from ..logger import CorrelationLogger, trade_logger
from ..utils.helpers import short_id, wait_or_stop
from .models import CreationEvent, Position, SignatureInfo
from .position_store import PositionStore
from .transaction_parser import CreationEventParser

logger = logging.getLogger(__name__)


class RecentSignatureCache:
    """Bounded FIFO set of recently processed signatures."""

    def __init__(self, capacity: int = 100):
        self.capacity = capacity
        self._entries: "OrderedDict[str, None]" = OrderedDict()

    def __contains__(self, signature: str) -> bool:
        return signature in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, signature: str):
        if signature in self._entries:
            return
        self._entries[signature] = None
        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)


class AcquisitionPipeline:
    """
    Safety filter -> buy -> position store for one creation event.

    Rejections and failed buys drop the event; the asset is not retried.
    """

    def __init__(self, safety_filter, trader, store: PositionStore, buy_amount_sol: float, slippage_bps: int):
        self.safety_filter = safety_filter
        self.trader = trader
        self.store = store
        self.buy_amount_sol = buy_amount_sol
        self.slippage_bps = slippage_bps
        self.stats = {"seen": 0, "duplicates": 0, "rejected": 0, "buy_failed": 0, "bought": 0}

    async def handle(self, event: CreationEvent) -> Optional[Position]:
        self.stats["seen"] += 1
        label = f"{event.name} ({event.symbol}) {short_id(event.asset_id)}"

        if event.asset_id in self.store:
            self.stats["duplicates"] += 1
            logger.info(f"⏭️ Already holding {label}, skipping")
            return None

        logger.info(f"👀 New token: {label}")
        try:
            verdict = self.safety_filter.is_safe(event)
            if inspect.isawaitable(verdict):
                verdict = await verdict
        except Exception as e:
            logger.error(f"Safety check failed for {label}: {e}")
            verdict = False

        if not verdict:
            self.stats["rejected"] += 1
            logger.warning(f"🛡️ {label} did not pass safety filters, skipping")
            return None

        try:
            fill = await self.trader.buy(event.asset_id, self.buy_amount_sol, self.slippage_bps)
        except Exception as e:
            self.stats["buy_failed"] += 1
            logger.error(f"❌ Buy failed for {label}: {e}")
            return None

        position = Position.from_fill(event, fill)
        if not self.store.add(position):
            return None

        self.stats["bought"] += 1
        logger.info(
            f"🚀 Bought {label}: {fill.token_amount:,.2f} tokens for {fill.sol_amount} SOL "
            f"@ {fill.fill_price:.10f}"
        )
        trade_logger.log_buy(
            mint=event.asset_id,
            symbol=event.symbol,
            amount_sol=fill.sol_amount,
            signature=fill.receipt_id,
            entry_price=fill.fill_price,
            token_amount=fill.token_amount,
        )
        return position


class DiscoveryLoop:
    """
    Polling discovery over the pooled RPC client.

    ``run`` propagates cycle-fatal errors (slot lookup or account
    enumeration exhausted) to its supervisor; per-transaction and
    per-account failures are logged and skipped.
    """

    def __init__(
        self,
        rpc,
        pipeline: AcquisitionPipeline,
        settings,
        parser: Optional[CreationEventParser] = None,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
        wait: Callable[[asyncio.Event, float], Awaitable[bool]] = wait_or_stop
    ):
        self.rpc = rpc
        self.pipeline = pipeline
        self.config = settings.discovery
        self.retry = settings.retry
        self.program_id = self.config.program_id
        self.parser = parser or CreationEventParser(self.program_id)
        self.seen = RecentSignatureCache(self.config.dedup_capacity)
        self._sleep = sleep
        self._clock = clock
        self._wait = wait
        self._last_slot: Optional[int] = None
        self._recent_accounts: Dict[str, float] = {}
        self.cycles = 0
        self.transactions_checked = 0
        self.on_cycle: Optional[Callable[[], None]] = None
        self.log = CorrelationLogger(__name__)

    @property
    def last_slot(self) -> Optional[int]:
        return self._last_slot

    def reset_baseline(self):
        self._last_slot = None

    async def poll_once(self) -> List[CreationEvent]:
        """One discovery cycle. Returns the creation events it found."""
        with self.log.correlation_context():
            self.cycles += 1
            slot = await self.rpc.get_slot(self.retry.options("tip", "getSlot"))

            if self._last_slot is None:
                self._last_slot = slot
                self.log.info(f"📍 Discovery baseline set at slot {slot}")
                return []

            previous_slot = self._last_slot
            signatures = await self._recent_signatures()
            fresh = [
                sig for sig in signatures
                if sig.signature not in self.seen and sig.slot > previous_slot
            ]
            self.log.debug(
                f"Cycle {self.cycles}: {len(signatures)} signatures, {len(fresh)} new",
                slot=slot,
            )

            events = []
            fetched = 0
            for sig in fresh:
                if sig.signature in self.seen:
                    continue
                self.seen.add(sig.signature)
                if sig.err is not None:
                    continue
                if fetched:
                    await self._sleep(self.config.transaction_delay_sec)
                fetched += 1
                event = await self._inspect(sig)
                if event is not None:
                    events.append(event)
                    await self.pipeline.handle(event)

            self._last_slot = slot
            return events

    async def _recent_signatures(self) -> List[SignatureInfo]:
        try:
            return await self.rpc.get_signatures_for_address(
                self.program_id,
                self.config.signature_limit,
                self.retry.options("signatures", "getSignaturesForAddress"),
            )
        except Exception as e:
            self.log.warning(f"Signature lookup failed, falling back to account scan: {e}")
        return await self._signatures_from_accounts()

    async def _signatures_from_accounts(self) -> List[SignatureInfo]:
        accounts = await self.rpc.get_program_accounts(
            self.program_id,
            self.config.account_data_size,
            self.retry.options("enumeration", "getProgramAccounts"),
        )

        now = self._clock()
        cooldown = self.config.account_cooldown_sec
        self._recent_accounts = {
            acct: ts for acct, ts in self._recent_accounts.items() if now - ts < cooldown
        }
        candidates = [a for a in accounts if a not in self._recent_accounts]
        candidates = candidates[:self.config.fallback_account_limit]

        signatures: List[SignatureInfo] = []
        for i, account in enumerate(candidates):
            if i > 0:
                await self._sleep(self.config.account_query_delay_sec)
            self._recent_accounts[account] = now
            try:
                signatures.extend(await self.rpc.get_signatures_for_address(
                    account,
                    self.config.account_signature_limit,
                    self.retry.options("account_signatures", "getSignaturesForAddress(account)"),
                ))
            except Exception as e:
                self.log.debug(f"Skipping account {short_id(account)}: {e}")
        return signatures

    async def _inspect(self, sig: SignatureInfo) -> Optional[CreationEvent]:
        self.transactions_checked += 1
        try:
            tx = await self.rpc.get_transaction(
                sig.signature,
                self.retry.options("transaction", "getTransaction"),
            )
        except Exception as e:
            self.log.debug(f"Skipping transaction {short_id(sig.signature, 16)}: {e}")
            return None

        if tx is None or not self.parser.is_creation(tx):
            return None

        event = self.parser.extract(tx)
        if event is None:
            self.log.warning(f"Could not extract mint address from {short_id(sig.signature, 16)}")
        return event

    async def run(self, stop_event: asyncio.Event):
        """Poll until ``stop_event`` is set. Starts from a fresh baseline."""
        self.reset_baseline()
        logger.info(f"👀 Watching {self.program_id} every {self.config.poll_interval_sec}s")
        while not stop_event.is_set():
            await self.poll_once()
            if self.on_cycle is not None:
                self.on_cycle()
            if await self._wait(stop_event, self.config.poll_interval_sec):
                break

    def get_status(self) -> Dict[str, object]:
        return {
            "cycles": self.cycles,
            "last_slot": self._last_slot,
            "transactions_checked": self.transactions_checked,
            "cache_size": len(self.seen),
            **self.pipeline.stats,
        }
