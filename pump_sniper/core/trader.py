"""
Jupiter Trader

Buys and sells pump.fun tokens through the Jupiter swap aggregator and
prices open positions with the Jupiter price API.

Flow per trade: quote -> swap transaction -> sign with wallet keypair
-> sendTransaction through the RPC pool -> poll for confirmation.
"""

import asyncio
import base64
import logging
import time
from typing import Any, Dict, Optional

import httpx
from solders.transaction import VersionedTransaction  # type: ignore

from ..constants import LAMPORTS_PER_SOL, PUMP_TOKEN_DECIMALS, WSOL_MINT
from ..exceptions import NetworkException, SwapException
from ..utils.retry import RetryOptions, RetryPolicy
from .models import BuyFill

logger = logging.getLogger(__name__)

TOKEN_UNIT = 10 ** PUMP_TOKEN_DECIMALS


class JupiterTrader:
    """
    Trade executor backed by Jupiter.

    Usage:
        trader = JupiterTrader(settings, rpc, wallet, retry)
        fill = await trader.buy(mint, 0.1, 200)
        signature = await trader.sell(mint, fill.token_amount * 0.15, 200)
    """

    def __init__(
        self,
        settings,
        rpc,
        wallet,
        retry: RetryPolicy,
        client: Optional[httpx.AsyncClient] = None,
        sleep=asyncio.sleep
    ) -> None:
        self.settings = settings
        self.rpc = rpc
        self.wallet = wallet
        self.retry = retry
        self._client = client or httpx.AsyncClient(timeout=30.0)
        self._sleep = sleep
        self.swap_options: RetryOptions = settings.retry.options("swap", "Jupiter swap")

    async def close(self) -> None:
        await self._client.aclose()

    async def _get_quote(self, input_mint: str, output_mint: str, amount: int, slippage_bps: int) -> Dict[str, Any]:
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount),
            "slippageBps": slippage_bps,
            "swapMode": "ExactIn",
            "maxAccounts": 15,
        }

        async def fetch():
            response = await self._client.get(self.settings.trading.jupiter_quote_api, params=params)
            response.raise_for_status()
            return response.json()

        quote = await self.retry.guard(fetch, options=self.swap_options, description="Jupiter quote")
        if not quote or "outAmount" not in quote:
            raise SwapException("Jupiter returned no route", input=input_mint, output=output_mint)

        logger.debug(
            "Jupiter quote: in=%s out=%s route=%s",
            quote.get("inAmount"), quote.get("outAmount"), len(quote.get("routePlan", [])),
        )
        return quote

    async def _build_swap_transaction(self, quote: Dict[str, Any]) -> bytes:
        payload = {
            "quoteResponse": quote,
            "userPublicKey": self.wallet.address,
            "wrapAndUnwrapSol": True,
            "dynamicComputeUnitLimit": True,
        }

        async def build():
            response = await self._client.post(self.settings.trading.jupiter_swap_api, json=payload)
            response.raise_for_status()
            return response.json()

        data = await self.retry.guard(build, options=self.swap_options, description="Jupiter swap build")
        swap_tx_b64 = (data or {}).get("swapTransaction")
        if not swap_tx_b64:
            raise SwapException("Jupiter returned no swap transaction")
        return base64.b64decode(swap_tx_b64)

    def _sign_transaction(self, tx_bytes: bytes) -> bytes:
        try:
            tx = VersionedTransaction.from_bytes(tx_bytes)
            signed_tx = VersionedTransaction(tx.message, [self.wallet.keypair])
        except ValueError as e:
            raise SwapException("Transaction signing failed", error=str(e))
        return bytes(signed_tx)

    async def _confirm_signature(self, signature: str) -> None:
        deadline = time.time() + self.settings.trading.confirm_timeout_sec
        while time.time() < deadline:
            try:
                status = await self.rpc.get_signature_status(signature)
            except Exception as e:
                logger.debug(f"Signature confirmation error: {e}")
                status = None
            if status:
                if status.get("err") is not None:
                    raise SwapException("Transaction failed on-chain", signature=signature, err=status.get("err"))
                if status.get("confirmationStatus") in ("confirmed", "finalized"):
                    return
            await self._sleep(0.5)
        raise SwapException("Transaction not confirmed in time", signature=signature)

    async def _execute_swap(self, quote: Dict[str, Any]) -> str:
        tx_bytes = await self._build_swap_transaction(quote)
        signed = self._sign_transaction(tx_bytes)
        signature = await self.rpc.send_transaction(
            base64.b64encode(signed).decode(), self.swap_options
        )
        if not signature:
            raise SwapException("RPC returned no signature")
        logger.info(f"Transaction submitted: {signature}")
        await self._confirm_signature(signature)
        return signature

    async def buy(self, asset_id: str, sol_amount: float, slippage_bps: int) -> BuyFill:
        lamports = int(sol_amount * LAMPORTS_PER_SOL)
        quote = await self._get_quote(str(WSOL_MINT), asset_id, lamports, slippage_bps)

        token_amount = int(quote["outAmount"]) / TOKEN_UNIT
        if token_amount <= 0:
            raise SwapException("Quote returned zero tokens", mint=asset_id)
        price = sol_amount / token_amount
        logger.info(f"🪐 Quote: {sol_amount} SOL -> {token_amount:,.2f} tokens @ {price:.10f} SOL")

        signature = await self._execute_swap(quote)
        return BuyFill(
            fill_price=price,
            token_amount=token_amount,
            receipt_id=signature,
            sol_amount=sol_amount,
        )

    async def sell(self, asset_id: str, token_amount: float, slippage_bps: int) -> str:
        raw_amount = int(token_amount * TOKEN_UNIT)
        if raw_amount <= 0:
            raise SwapException("Nothing to sell", mint=asset_id, amount=token_amount)
        quote = await self._get_quote(asset_id, str(WSOL_MINT), raw_amount, slippage_bps)
        sol_out = int(quote["outAmount"]) / LAMPORTS_PER_SOL
        logger.info(f"🪐 Quote: {token_amount:,.2f} tokens -> {sol_out:.6f} SOL")
        return await self._execute_swap(quote)


class JupiterPriceSource:
    """Token price in SOL from the Jupiter price API."""

    def __init__(self, price_api: str, client: Optional[httpx.AsyncClient] = None):
        self.price_api = price_api
        self._client = client or httpx.AsyncClient(timeout=10.0)

    async def close(self) -> None:
        await self._client.aclose()

    async def get_price(self, asset_id: str) -> float:
        response = await self._client.get(
            self.price_api,
            params={"ids": asset_id, "vsToken": str(WSOL_MINT)},
        )
        response.raise_for_status()
        data = (response.json() or {}).get("data") or {}
        entry = data.get(asset_id)
        if not entry or entry.get("price") is None:
            raise NetworkException("No price available", mint=asset_id)
        return float(entry["price"])
