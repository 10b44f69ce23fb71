from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..exceptions import StateException


class PositionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PARTIALLY_SOLD = "PARTIALLY_SOLD"
    FULLY_SOLD = "FULLY_SOLD"


@dataclass(frozen=True)
class CreationEvent:
    asset_id: str
    name: str
    symbol: str
    source_transaction_id: str


@dataclass(frozen=True)
class SignatureInfo:
    signature: str
    slot: int
    err: Any = None
    block_time: int | None = None


@dataclass(frozen=True)
class InstructionInfo:
    program_id: str
    instruction_type: str | None = None
    info: dict[str, Any] = field(default_factory=dict)
    inner: bool = False
    parent_program_id: str | None = None


@dataclass
class TransactionDetail:
    signature: str
    slot: int
    instructions: list[InstructionInfo] = field(default_factory=list)
    log_messages: list[str] = field(default_factory=list)
    err: Any = None

    @property
    def outer_program_ids(self) -> set[str]:
        return {ix.program_id for ix in self.instructions if not ix.inner}


@dataclass(frozen=True)
class BuyFill:
    fill_price: float
    token_amount: float
    receipt_id: str
    sol_amount: float


@dataclass
class Position:
    asset_id: str
    name: str
    symbol: str
    entry_price: float
    entry_sol_amount: float
    token_amount: float
    current_price: float
    sold_percentage: float = 0.0
    status: PositionStatus = PositionStatus.ACTIVE
    created_at: float = field(default_factory=time.time)
    last_updated_at: float = field(default_factory=time.time)
    buy_receipt: str = ""
    sell_receipts: list[str] = field(default_factory=list)

    @classmethod
    def from_fill(cls, event: CreationEvent, fill: BuyFill) -> Position:
        return cls(
            asset_id=event.asset_id,
            name=event.name,
            symbol=event.symbol,
            entry_price=fill.fill_price,
            entry_sol_amount=fill.sol_amount,
            token_amount=fill.token_amount,
            current_price=fill.fill_price,
            buy_receipt=fill.receipt_id,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status == PositionStatus.FULLY_SOLD

    @property
    def price_ratio(self) -> float:
        if self.entry_price <= 0:
            return 0.0
        return self.current_price / self.entry_price

    @property
    def change_pct(self) -> float:
        return (self.price_ratio - 1.0) * 100 if self.entry_price > 0 else 0.0

    def sellable_amount(self, cumulative_percent: float) -> float:
        """Tokens to sell to bring the sold share up to ``cumulative_percent``."""
        return self.token_amount * (cumulative_percent - self.sold_percentage) / 100

    def update_price(self, price: float, now: float | None = None):
        self.current_price = price
        self.last_updated_at = now if now is not None else time.time()

    def record_exit(
        self,
        cumulative_percent: float,
        max_percent: float,
        receipt_id: str = "",
        now: float | None = None
    ):
        if cumulative_percent < self.sold_percentage:
            raise StateException(
                "Sold percentage cannot decrease",
                asset=self.asset_id,
                current=self.sold_percentage,
                requested=cumulative_percent,
            )
        if cumulative_percent > max_percent:
            raise StateException(
                "Sold percentage exceeds tier table maximum",
                asset=self.asset_id,
                requested=cumulative_percent,
                maximum=max_percent,
            )
        self.sold_percentage = cumulative_percent
        self.status = (
            PositionStatus.FULLY_SOLD
            if cumulative_percent >= max_percent
            else PositionStatus.PARTIALLY_SOLD
        )
        if receipt_id:
            self.sell_receipts.append(receipt_id)
        self.last_updated_at = now if now is not None else time.time()

    @property
    def status_label(self) -> str:
        if self.status == PositionStatus.ACTIVE:
            return "Holding"
        if self.status == PositionStatus.FULLY_SOLD:
            return f"Sold {self.sold_percentage:g}% (done)"
        return f"Sold {self.sold_percentage:g}%"

    def to_dict(self) -> dict[str, Any]:
        return {
            "asset_id": self.asset_id,
            "name": self.name,
            "symbol": self.symbol,
            "entry_price": self.entry_price,
            "entry_sol_amount": self.entry_sol_amount,
            "token_amount": self.token_amount,
            "current_price": self.current_price,
            "price_ratio": self.price_ratio,
            "sold_percentage": self.sold_percentage,
            "status": self.status.value,
            "status_label": self.status_label,
            "created_at": self.created_at,
            "last_updated_at": self.last_updated_at,
            "buy_receipt": self.buy_receipt,
            "sell_receipts": list(self.sell_receipts),
        }
