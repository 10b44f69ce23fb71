"""
Unit tests for CreationEventParser and transaction flattening
"""

import pytest
import sys
import os

from solders.keypair import Keypair

# Add repo root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from pump_sniper.constants import PUMP_PROGRAM, TOKEN_PROGRAM, UNKNOWN_TOKEN_NAME, UNKNOWN_TOKEN_SYMBOL
from pump_sniper.core.models import InstructionInfo, TransactionDetail
from pump_sniper.core.rpc_client import parse_transaction
from pump_sniper.core.transaction_parser import CreationEventParser, parse_pubkey

PROGRAM = str(PUMP_PROGRAM)


def tx(logs, instructions=None, signature="sig1"):
    return TransactionDetail(
        signature=signature,
        slot=1,
        instructions=instructions if instructions is not None else [InstructionInfo(program_id=PROGRAM)],
        log_messages=logs,
    )


class TestIsCreation:
    """Creation predicate"""

    def setup_method(self):
        self.parser = CreationEventParser(PROGRAM)

    def test_create_instruction_log(self):
        assert self.parser.is_creation(tx(["Program log: Instruction: Create"]))

    def test_case_insensitive(self):
        assert self.parser.is_creation(tx(["Program log: create token"]))

    def test_create_idempotent_is_not_creation(self):
        assert not self.parser.is_creation(tx(["Program log: Instruction: CreateIdempotent"]))

    def test_requires_program_as_top_level_instruction(self):
        inner_only = [
            InstructionInfo(program_id="OtherProgram111"),
            InstructionInfo(program_id=PROGRAM, inner=True),
        ]
        assert not self.parser.is_creation(tx(["Program log: Instruction: Create"], inner_only))

    def test_no_create_log(self):
        assert not self.parser.is_creation(tx(["Program log: Instruction: Sell"]))


class TestExtract:
    """Field extraction"""

    def setup_method(self):
        self.parser = CreationEventParser(PROGRAM)
        self.mint = str(Keypair().pubkey())

    def test_all_fields_from_logs(self):
        event = self.parser.extract(tx([
            "Program log: Instruction: Create",
            f"Program log: mint: {self.mint}",
            "Program log: name: Moon Cat",
            "Program log: symbol: MCAT",
        ]))
        assert event.asset_id == self.mint
        assert event.name == "Moon Cat"
        assert event.symbol == "MCAT"
        assert event.source_transaction_id == "sig1"

    def test_defaults_for_missing_name_and_symbol(self):
        event = self.parser.extract(tx([f"Program log: mint: {self.mint}"]))
        assert event.name == UNKNOWN_TOKEN_NAME
        assert event.symbol == UNKNOWN_TOKEN_SYMBOL

    def test_mint_from_initialize_mint(self):
        instructions = [
            InstructionInfo(program_id=PROGRAM),
            InstructionInfo(
                program_id=str(TOKEN_PROGRAM),
                instruction_type="initializeMint2",
                info={"mint": self.mint},
                inner=True,
            ),
        ]
        event = self.parser.extract(tx(["Program log: Instruction: Create"], instructions))
        assert event.asset_id == self.mint

    def test_malformed_mint_yields_none(self):
        assert self.parser.extract(tx(["Program log: mint: not-a-key"])) is None

    def test_no_mint_yields_none(self):
        assert self.parser.extract(tx(["Program log: Instruction: Create"])) is None

    def test_parse_combines_both(self):
        assert self.parser.parse(tx(["Program log: Instruction: Sell"])) is None


class TestParsePubkey:
    def test_valid(self):
        key = str(Keypair().pubkey())
        assert parse_pubkey(f"  {key} ") == key

    def test_invalid(self):
        assert parse_pubkey("short") is None
        assert parse_pubkey("0" * 44) is None


class TestParseTransaction:
    """getTransaction jsonParsed flattening"""

    def test_outer_and_inner_instructions(self):
        mint = str(Keypair().pubkey())
        result = {
            "slot": 321,
            "transaction": {
                "message": {
                    "accountKeys": [{"pubkey": "Payer111", "signer": True}, {"pubkey": PROGRAM}],
                    "instructions": [
                        {"programIdIndex": 1, "accounts": [0], "data": "abc"},
                    ],
                }
            },
            "meta": {
                "err": None,
                "logMessages": ["Program log: Instruction: Create"],
                "innerInstructions": [{
                    "index": 0,
                    "instructions": [{
                        "programId": str(TOKEN_PROGRAM),
                        "parsed": {"type": "initializeMint2", "info": {"mint": mint}},
                    }],
                }],
            },
        }
        detail = parse_transaction("sig9", result)
        assert detail.slot == 321
        assert detail.outer_program_ids == {PROGRAM}
        inner = detail.instructions[1]
        assert inner.inner
        assert inner.instruction_type == "initializeMint2"
        assert inner.parent_program_id == PROGRAM
        assert CreationEventParser(PROGRAM).parse(detail).asset_id == mint


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
