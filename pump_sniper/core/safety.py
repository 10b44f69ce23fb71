"""
Token Safety Filters

Screens creation events before any money is spent:
- keyword risk scoring on name and symbol
- mint/freeze authority check on the mint account
- backdoor scan of the creation transaction

Rejections from the on-chain checks are appended to a JSON-lines log.
"""

import inspect
import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..constants import (
    DISALLOWED_INSTRUCTIONS, HIGH_RISK_KEYWORDS, MAX_SYMBOL_LENGTH, MEDIUM_RISK_KEYWORDS,
    PUMP_PROGRAM, SUSPICIOUS_LOG_PATTERNS, SUSPICIOUS_TOKEN_NAMES, SYSTEM_PROGRAM, TOKEN_PROGRAM
)
from ..utils.retry import RetryOptions
from .models import CreationEvent, TransactionDetail

logger = logging.getLogger(__name__)

WATCHED_PROGRAMS = {str(TOKEN_PROGRAM), str(SYSTEM_PROGRAM)}

_INVOKE_RE = re.compile(r"^Program (\S+) invoke \[\d+\]")
_EXIT_RE = re.compile(r"^Program (\S+) (success|failed)")


class KeywordSafetyFilter:
    """
    Name/symbol heuristics.

    High-risk words reject outright. Suspicious words add to a score
    (medium-risk words weigh 2, the rest 1) and a score of 3 or more
    rejects. Overlong symbols reject.
    """

    def __init__(self, reject_score: int = 3):
        self.reject_score = reject_score

    def risk_score(self, event: CreationEvent) -> int:
        name = event.name.lower()
        symbol = event.symbol.lower()
        score = 0
        for keyword in SUSPICIOUS_TOKEN_NAMES:
            if keyword in name or keyword in symbol:
                score += 2 if keyword in MEDIUM_RISK_KEYWORDS else 1
        return score

    def is_safe(self, event: CreationEvent) -> bool:
        name = event.name.lower()
        symbol = event.symbol.lower()

        for keyword in HIGH_RISK_KEYWORDS:
            if keyword in name or keyword in symbol:
                logger.warning(f"⛔ {event.symbol}: name/symbol contains high-risk keyword '{keyword}'")
                return False

        score = self.risk_score(event)
        if score >= self.reject_score:
            logger.warning(f"⛔ {event.symbol}: rejected with risk score {score}")
            return False

        if len(symbol) > MAX_SYMBOL_LENGTH:
            logger.warning(f"⛔ Symbol is unusually long: {event.symbol}")
            return False

        return True


class SuspiciousTokenLog:
    """Append-only JSON-lines record of rejected tokens."""

    def __init__(self, path: str):
        self.path = Path(path)

    def record(self, **data):
        entry = {"timestamp": datetime.now().isoformat(), **data}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, default=str) + "\n")
        except OSError as e:
            logger.error(f"Failed to log suspicious token: {e}")
        logger.warning(f"🚨 Suspicious token {data.get('mint', '?')}: {data.get('reason', '')}")


class OnChainSecurityChecker:
    """
    Mint authority and backdoor checks against chain state.

    Any RPC failure during a check counts as a failed check.
    """

    def __init__(
        self,
        rpc,
        suspicious_log: SuspiciousTokenLog,
        check_mint_authority: bool = True,
        check_transaction: bool = True,
        retry_options: Optional[RetryOptions] = None
    ):
        self.rpc = rpc
        self.suspicious_log = suspicious_log
        self.check_mint_authority = check_mint_authority
        self.check_transaction = check_transaction
        self.retry_options = retry_options
        self.allowed_authority = str(PUMP_PROGRAM)

    async def mint_authority_problem(self, mint: str) -> Optional[str]:
        """Reason the mint's authorities are unsafe, or None."""
        account = await self.rpc.get_parsed_account_info(mint, self.retry_options)
        if not account:
            return "mint account not found"
        data = account.get("data")
        info = data.get("parsed", {}).get("info") if isinstance(data, dict) else None
        if not info:
            return "mint account data could not be parsed"

        for field_name in ("mintAuthority", "freezeAuthority"):
            authority = info.get(field_name)
            if authority and authority != self.allowed_authority:
                return f"suspicious {field_name}: {authority}"
        return None

    def scan_transaction(self, tx: TransactionDetail) -> Optional[Dict[str, Any]]:
        """First backdoor finding in ``tx``, or None when clean."""
        for ix in tx.instructions:
            if ix.parent_program_id == self.allowed_authority:
                continue
            if ix.program_id in WATCHED_PROGRAMS and ix.instruction_type in DISALLOWED_INSTRUCTIONS:
                return {
                    "program": ix.program_id,
                    "instruction": ix.instruction_type,
                    "is_inner_instruction": ix.inner,
                    "reason": f"disallowed instruction {ix.instruction_type}",
                }

        stack: List[str] = []
        for log in tx.log_messages:
            invoke = _INVOKE_RE.match(log)
            if invoke:
                stack.append(invoke.group(1))
                continue
            if _EXIT_RE.match(log):
                if stack:
                    stack.pop()
                continue
            if self.allowed_authority in stack:
                continue
            for pattern in SUSPICIOUS_LOG_PATTERNS:
                if pattern in log:
                    return {"reason": f"suspicious operation in logs: {log}"}
        return None

    async def is_safe(self, event: CreationEvent) -> bool:
        try:
            if self.check_mint_authority:
                problem = await self.mint_authority_problem(event.asset_id)
                if problem:
                    self.suspicious_log.record(
                        mint=event.asset_id,
                        signature=event.source_transaction_id,
                        reason=problem,
                        check_type="mint_authority",
                    )
                    return False

            if self.check_transaction:
                tx = await self.rpc.get_transaction(event.source_transaction_id, self.retry_options)
                if tx is None:
                    self.suspicious_log.record(
                        mint=event.asset_id,
                        signature=event.source_transaction_id,
                        reason="creation transaction not found",
                        check_type="malicious_instruction",
                    )
                    return False
                finding = self.scan_transaction(tx)
                if finding:
                    self.suspicious_log.record(
                        mint=event.asset_id,
                        signature=event.source_transaction_id,
                        check_type="malicious_instruction",
                        **finding,
                    )
                    return False
        except Exception as e:
            self.suspicious_log.record(
                mint=event.asset_id,
                signature=event.source_transaction_id,
                reason=f"error during security check: {e}",
                check_type="error",
            )
            return False

        return True


class CompositeSafetyFilter:
    """Runs filters in order; the first rejection wins."""

    def __init__(self, filters: List[Any]):
        self.filters = list(filters)

    async def is_safe(self, event: CreationEvent) -> bool:
        for safety_filter in self.filters:
            verdict = safety_filter.is_safe(event)
            if inspect.isawaitable(verdict):
                verdict = await verdict
            if not verdict:
                return False
        logger.info(f"✅ {event.name} ({event.asset_id[:8]}...) passed safety checks")
        return True


def build_safety_filter(settings, rpc=None) -> CompositeSafetyFilter:
    """Safety chain for the configured checks."""
    filters: List[Any] = []
    if settings.safety.enable_keyword_checks:
        filters.append(KeywordSafetyFilter())

    on_chain = settings.safety.enable_mint_authority_checks or settings.safety.enable_cpi_checks
    if rpc is not None and on_chain and not settings.simulation_mode:
        filters.append(OnChainSecurityChecker(
            rpc,
            SuspiciousTokenLog(settings.safety.suspicious_log_path),
            check_mint_authority=settings.safety.enable_mint_authority_checks,
            check_transaction=settings.safety.enable_cpi_checks,
            retry_options=settings.retry.options("transaction", "security check"),
        ))
    return CompositeSafetyFilter(filters)
