"""
Pooled JSON-RPC Client

Raw Solana JSON-RPC over httpx. Every call picks an endpoint from the
endpoint pool and runs under the retry policy, so a rate-limited or
unreachable endpoint is flagged and the next attempt goes elsewhere.
"""

import itertools
import logging
from typing import Any, Dict, List, Optional

import httpx

from ..exceptions import RpcException
from ..utils.retry import (
    RETRYABLE_STATUS_CODES,
    RetryOptions,
    RetryPolicy,
    is_retryable_message,
    is_retryable_rpc_error,
)
from .endpoint_pool import EndpointKind, EndpointPool
from .models import InstructionInfo, SignatureInfo, TransactionDetail

logger = logging.getLogger(__name__)


class SolanaRpcClient:
    """
    JSON-RPC client that rotates through an ``EndpointPool``.

    Usage:
        rpc = SolanaRpcClient(pool, RetryPolicy(pool))
        slot = await rpc.get_slot()
        await rpc.close()
    """

    def __init__(
        self,
        pool: EndpointPool,
        retry: RetryPolicy,
        timeout: float = 10.0,
        commitment: str = "confirmed",
        client: Optional[httpx.AsyncClient] = None
    ) -> None:
        self.pool = pool
        self.retry = retry
        self.commitment = commitment
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)
        self.total_requests = 0
        self.failed_requests = 0

    async def close(self) -> None:
        await self._client.aclose()

    async def _call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """One round trip against the next pool endpoint."""
        url = self.pool.next_endpoint(EndpointKind.HTTP)
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        self.total_requests += 1

        try:
            response = await self._client.post(url, json=payload)
        except httpx.TimeoutException as e:
            self.failed_requests += 1
            raise RpcException(f"{method} timeout", endpoint=url, retryable=True) from e
        except httpx.TransportError as e:
            self.failed_requests += 1
            retryable = isinstance(e, httpx.ConnectError) or is_retryable_message(str(e))
            raise RpcException(f"{method} transport error: {e}", endpoint=url, retryable=retryable) from e

        if response.status_code >= 400:
            self.failed_requests += 1
            raise RpcException(
                f"{method} HTTP {response.status_code}",
                endpoint=url,
                status=response.status_code,
                retryable=response.status_code in RETRYABLE_STATUS_CODES,
            )

        try:
            body = response.json()
        except ValueError as e:
            self.failed_requests += 1
            raise RpcException(f"{method} returned invalid JSON", endpoint=url) from e

        error = body.get("error")
        if error:
            self.failed_requests += 1
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            code = error.get("code") if isinstance(error, dict) else None
            raise RpcException(
                f"{method} error: {message}",
                endpoint=url,
                code=code,
                retryable=is_retryable_rpc_error(code, message),
            )

        return body.get("result")

    async def request(
        self,
        method: str,
        params: Optional[List[Any]] = None,
        options: Optional[RetryOptions] = None,
        description: Optional[str] = None
    ) -> Any:
        """Guarded call: retries transient failures on other endpoints."""
        return await self.retry.guard(
            lambda: self._call(method, params),
            options=options,
            description=description or (None if options else method),
        )

    # ------------------------------------------------------------------
    # Typed helpers
    # ------------------------------------------------------------------

    async def get_slot(self, options: Optional[RetryOptions] = None) -> int:
        result = await self.request("getSlot", [{"commitment": self.commitment}], options)
        return int(result)

    async def get_signatures_for_address(
        self,
        address: str,
        limit: int = 10,
        options: Optional[RetryOptions] = None
    ) -> List[SignatureInfo]:
        result = await self.request(
            "getSignaturesForAddress",
            [address, {"limit": limit, "commitment": self.commitment}],
            options,
        )
        return [
            SignatureInfo(
                signature=item["signature"],
                slot=int(item.get("slot") or 0),
                err=item.get("err"),
                block_time=item.get("blockTime"),
            )
            for item in result or []
            if item.get("signature")
        ]

    async def get_program_accounts(
        self,
        program_id: str,
        data_size: int,
        options: Optional[RetryOptions] = None
    ) -> List[str]:
        """Account addresses owned by ``program_id`` (no account data)."""
        result = await self.request(
            "getProgramAccounts",
            [program_id, {
                "commitment": self.commitment,
                "encoding": "base64",
                "filters": [{"dataSize": data_size}],
                "dataSlice": {"offset": 0, "length": 0},
            }],
            options,
        )
        return [item["pubkey"] for item in result or [] if item.get("pubkey")]

    async def get_transaction(
        self,
        signature: str,
        options: Optional[RetryOptions] = None
    ) -> Optional[TransactionDetail]:
        result = await self.request(
            "getTransaction",
            [signature, {
                "encoding": "jsonParsed",
                "commitment": self.commitment,
                "maxSupportedTransactionVersion": 0,
            }],
            options,
        )
        if not result:
            return None
        return parse_transaction(signature, result)

    async def get_balance(self, pubkey: str, options: Optional[RetryOptions] = None) -> int:
        """Balance in lamports."""
        result = await self.request("getBalance", [pubkey, {"commitment": self.commitment}], options)
        if isinstance(result, dict):
            return int(result.get("value") or 0)
        return int(result or 0)

    async def get_parsed_account_info(
        self,
        pubkey: str,
        options: Optional[RetryOptions] = None
    ) -> Optional[Dict[str, Any]]:
        result = await self.request(
            "getAccountInfo",
            [pubkey, {"encoding": "jsonParsed", "commitment": self.commitment}],
            options,
        )
        if not result:
            return None
        return result.get("value")

    async def send_transaction(self, tx_b64: str, options: Optional[RetryOptions] = None) -> str:
        return await self.request(
            "sendTransaction",
            [tx_b64, {"encoding": "base64", "skipPreflight": True, "maxRetries": 3}],
            options,
        )

    async def get_signature_status(self, signature: str) -> Optional[Dict[str, Any]]:
        result = await self.request(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": True}],
            RetryOptions(max_retries=1, description="getSignatureStatuses"),
        )
        value = (result or {}).get("value") or []
        return value[0] if value else None

    def get_status(self) -> Dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "failed_requests": self.failed_requests,
            "endpoints": self.pool.get_status(),
        }


def _account_key(key: Any) -> str:
    if isinstance(key, dict):
        return key.get("pubkey", "")
    return str(key)


def _instruction(
    raw: Dict[str, Any],
    account_keys: List[str],
    inner: bool,
    parent_program_id: Optional[str] = None
) -> InstructionInfo:
    program_id = raw.get("programId")
    if program_id is None and "programIdIndex" in raw:
        index = raw["programIdIndex"]
        program_id = account_keys[index] if index < len(account_keys) else ""
    parsed = raw.get("parsed")
    if isinstance(parsed, dict):
        return InstructionInfo(
            program_id=program_id or "",
            instruction_type=parsed.get("type"),
            info=parsed.get("info") or {},
            inner=inner,
            parent_program_id=parent_program_id,
        )
    return InstructionInfo(program_id=program_id or "", inner=inner, parent_program_id=parent_program_id)


def parse_transaction(signature: str, result: Dict[str, Any]) -> TransactionDetail:
    """Flatten a getTransaction result into a ``TransactionDetail``."""
    meta = result.get("meta") or {}
    message = (result.get("transaction") or {}).get("message") or {}
    account_keys = [_account_key(k) for k in message.get("accountKeys") or []]

    outer = [_instruction(ix, account_keys, False) for ix in message.get("instructions") or []]
    instructions = list(outer)
    for group in meta.get("innerInstructions") or []:
        index = group.get("index", -1)
        parent = outer[index].program_id if 0 <= index < len(outer) else None
        instructions.extend(
            _instruction(ix, account_keys, True, parent) for ix in group.get("instructions") or []
        )

    return TransactionDetail(
        signature=signature,
        slot=int(result.get("slot") or 0),
        instructions=instructions,
        log_messages=list(meta.get("logMessages") or []),
        err=meta.get("err"),
    )
