from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Iterator

from .models import Position


class PositionStore:
    """
    Process-lifetime collection of positions keyed by asset id.

    Positions are inserted by discovery and mutated only by the position
    monitor. Terminal positions stay visible until pruned.
    """

    def __init__(self, snapshot_path: str | Path | None = None) -> None:
        self._positions: dict[str, Position] = {}
        self.snapshot_path = Path(snapshot_path) if snapshot_path else None
        self.logger = logging.getLogger("pump_sniper.positions")

    def add(self, position: Position) -> bool:
        """Insert a new position. Returns False if the asset is already tracked."""
        if position.asset_id in self._positions:
            self.logger.warning(
                "Position for %s (%s) already exists, ignoring duplicate",
                position.symbol, position.asset_id[:8],
            )
            return False
        self._positions[position.asset_id] = position
        return True

    def get(self, asset_id: str) -> Position | None:
        return self._positions.get(asset_id)

    def __contains__(self, asset_id: str) -> bool:
        return asset_id in self._positions

    def __len__(self) -> int:
        return len(self._positions)

    def __iter__(self) -> Iterator[Position]:
        return iter(list(self._positions.values()))

    def all(self) -> list[Position]:
        return list(self._positions.values())

    def open_positions(self) -> list[Position]:
        return [p for p in self._positions.values() if not p.is_terminal]

    def prune_terminal(self, retention_sec: float, now: float | None = None) -> int:
        """Drop fully sold positions untouched for longer than ``retention_sec``."""
        if retention_sec <= 0:
            return 0
        now = now if now is not None else time.time()
        expired = [
            asset_id for asset_id, p in self._positions.items()
            if p.is_terminal and now - p.last_updated_at > retention_sec
        ]
        for asset_id in expired:
            del self._positions[asset_id]
        if expired:
            self.logger.debug("Pruned %d closed positions", len(expired))
        return len(expired)

    def snapshot(self, now: float | None = None) -> dict:
        return {
            "ts": now if now is not None else time.time(),
            "positions": [p.to_dict() for p in self._positions.values()],
        }

    def write_snapshot(self, now: float | None = None) -> None:
        if self.snapshot_path is None:
            return
        self.snapshot_path.parent.mkdir(parents=True, exist_ok=True)
        self.snapshot_path.write_text(json.dumps(self.snapshot(now), indent=2), encoding="utf-8")
