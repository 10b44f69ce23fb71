"""
Creation Event Parser

Decides whether a fetched transaction is a pump.fun token creation and
pulls the mint, name and symbol out of its log lines.
"""

import re
import logging
from typing import Optional

from solders.pubkey import Pubkey

from ..constants import PUMP_PROGRAM, UNKNOWN_TOKEN_NAME, UNKNOWN_TOKEN_SYMBOL
from .models import CreationEvent, TransactionDetail

logger = logging.getLogger(__name__)

# "Instruction: Create" or a bare "create" word, but not "CreateIdempotent"
CREATE_LOG_PATTERN = re.compile(r"\bcreate\b", re.IGNORECASE)

# Parsed SPL Token instructions that carry the new mint
MINT_INIT_TYPES = ("initializeMint", "initializeMint2")


def parse_pubkey(value: str) -> Optional[str]:
    """Return the canonical base58 form of ``value`` or None if invalid."""
    value = (value or "").strip()
    if len(value) < 32:
        return None
    try:
        return str(Pubkey.from_string(value))
    except ValueError:
        return None


def _field_after(log: str, marker: str) -> Optional[str]:
    _, _, rest = log.partition(marker)
    rest = rest.strip()
    return rest or None


class CreationEventParser:
    """
    Parse pump.fun creation transactions.

    A transaction is a creation when one of its top-level instructions
    targets the watched program and one of its log lines mentions a
    create. Extraction is best-effort: name and symbol fall back to
    placeholders, a missing or malformed mint yields None.
    """

    def __init__(self, program_id: str = str(PUMP_PROGRAM)):
        self.program_id = program_id

    def is_creation(self, tx: TransactionDetail) -> bool:
        if self.program_id not in tx.outer_program_ids:
            return False
        return any(CREATE_LOG_PATTERN.search(log) for log in tx.log_messages)

    def extract(self, tx: TransactionDetail) -> Optional[CreationEvent]:
        mint = None
        name = UNKNOWN_TOKEN_NAME
        symbol = UNKNOWN_TOKEN_SYMBOL

        for log in tx.log_messages:
            if "mint:" in log:
                candidate = _field_after(log, "mint:")
                parsed = parse_pubkey(candidate.split()[0]) if candidate else None
                if parsed:
                    mint = parsed
            if "name:" in log:
                name = _field_after(log, "name:") or name
            if "symbol:" in log:
                symbol = _field_after(log, "symbol:") or symbol

        if mint is None:
            mint = self._mint_from_instructions(tx)

        if mint is None:
            logger.debug(f"No mint address found in {tx.signature[:16]}...")
            return None

        return CreationEvent(
            asset_id=mint,
            name=name,
            symbol=symbol,
            source_transaction_id=tx.signature,
        )

    def _mint_from_instructions(self, tx: TransactionDetail) -> Optional[str]:
        for ix in tx.instructions:
            if ix.instruction_type in MINT_INIT_TYPES:
                mint = parse_pubkey(str(ix.info.get("mint", "")))
                if mint:
                    return mint
        return None

    def parse(self, tx: TransactionDetail) -> Optional[CreationEvent]:
        """Creation predicate plus extraction in one call."""
        if not self.is_creation(tx):
            return None
        return self.extract(tx)
