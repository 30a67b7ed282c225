"""Data models for map item records."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ItemRecord:
    """One item placement on the map (container contents share the container's position)."""

    id: int
    x: int
    y: int
    z: int

    @property
    def position(self) -> str:
        return f"{self.x}:{self.y}:{self.z}"
