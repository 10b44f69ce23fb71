"""
Profit tier table.

Each tier is a (price multiplier, cumulative sell percent) pair. A tier
fires once the price reaches ``multiplier`` times the entry price, and
brings the share of the original holding sold up to its cumulative percent.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from ..constants import DEFAULT_PROFIT_TIERS
from ..exceptions import ConfigurationException


@dataclass(frozen=True)
class ProfitTier:
    price_multiplier: float
    cumulative_sell_percent: float


class ProfitTierTable:
    """Ordered, read-only tier table validated at construction."""

    def __init__(self, tiers: Iterable[ProfitTier | Sequence[float]]):
        parsed = []
        for tier in tiers:
            if not isinstance(tier, ProfitTier):
                multiplier, percent = tier
                tier = ProfitTier(float(multiplier), float(percent))
            parsed.append(tier)

        errors = self.validate(parsed)
        if errors:
            raise ConfigurationException("Invalid profit tier table", errors="; ".join(errors))
        self._tiers = tuple(parsed)

    @staticmethod
    def validate(tiers: Sequence[ProfitTier]) -> list[str]:
        errors = []
        if not tiers:
            errors.append("at least one profit tier is required")
        for i, tier in enumerate(tiers):
            if tier.price_multiplier <= 0:
                errors.append(f"tier {i + 1}: multiplier must be > 0")
            if not 0 < tier.cumulative_sell_percent <= 100:
                errors.append(f"tier {i + 1}: sell percent must be in (0, 100]")
            if i > 0:
                prev = tiers[i - 1]
                if tier.price_multiplier <= prev.price_multiplier:
                    errors.append(f"tier {i + 1}: multipliers must be strictly increasing")
                if tier.cumulative_sell_percent <= prev.cumulative_sell_percent:
                    errors.append(f"tier {i + 1}: sell percents must be strictly increasing")
        return errors

    @classmethod
    def default(cls) -> ProfitTierTable:
        return cls(DEFAULT_PROFIT_TIERS)

    @classmethod
    def parse(cls, text: str) -> ProfitTierTable:
        """Parse ``"1.3:15,2.0:50"`` into a table."""
        tiers = []
        for chunk in text.split(","):
            chunk = chunk.strip()
            if not chunk:
                continue
            try:
                multiplier, percent = chunk.split(":")
                tiers.append((float(multiplier), float(percent)))
            except ValueError:
                raise ConfigurationException("Malformed profit tier", tier=chunk)
        return cls(tiers)

    @property
    def tiers(self) -> tuple[ProfitTier, ...]:
        return self._tiers

    @property
    def max_cumulative_percent(self) -> float:
        return self._tiers[-1].cumulative_sell_percent

    def next_trigger(self, price_ratio: float, sold_percentage: float) -> ProfitTier | None:
        """First tier reached by ``price_ratio`` that is not yet sold."""
        for tier in self._tiers:
            if tier.price_multiplier <= price_ratio and tier.cumulative_sell_percent > sold_percentage:
                return tier
        return None

    def as_pairs(self) -> list[tuple[float, float]]:
        return [(t.price_multiplier, t.cumulative_sell_percent) for t in self._tiers]

    def __len__(self) -> int:
        return len(self._tiers)

    def __iter__(self):
        return iter(self._tiers)

    def __repr__(self) -> str:
        return f"ProfitTierTable({self.as_pairs()})"
