from __future__ import annotations

from dataclasses import dataclass

# Standard dartboard sector order (clockwise), with 20 at 12 o'clock.
SECTOR_ORDER: tuple[int, ...] = (
    20, 1, 18, 4, 13, 6, 10, 15, 2, 17, 3, 19, 7, 16, 8, 11, 14, 9, 12, 5,
)

BULL = 25


@dataclass(frozen=True)
class Dart:
    """
    A single dart hit.

    - value: 1-20 for standard beds, 25 for bull, 0 for a miss
    - multiplier: 0 (miss), 1 (single), 2 (double), 3 (triple)
    """

    value: int
    multiplier: int

    def __post_init__(self) -> None:
        if self.multiplier not in (0, 1, 2, 3):
            raise ValueError("multiplier must be 0, 1, 2, or 3")
        if self.multiplier == 0:
            if self.value != 0:
                raise ValueError("miss must have value=0")
            return
        if self.value not in (*range(1, 21), BULL):
            raise ValueError("value must be 1-20, 25 (bull), or 0 (miss)")
        if self.value == BULL and self.multiplier == 3:
            raise ValueError("bull cannot be a triple")

    @property
    def score(self) -> int:
        return self.value * self.multiplier

    @property
    def is_double(self) -> bool:
        return self.multiplier == 2

    @property
    def label(self) -> str:
        if self.multiplier == 0:
            return "MISS"
        if self.value == BULL:
            return "DBULL" if self.multiplier == 2 else "SBULL"
        return f"{'SDT'[self.multiplier - 1]}{self.value}"


MISS = Dart(0, 0)


def neighbours(segment: int) -> tuple[int, int]:
    """Segments physically left and right of `segment` on the board."""
    if segment not in SECTOR_ORDER:
        raise ValueError("segment must be 1-20")
    idx = SECTOR_ORDER.index(segment)
    return (
        SECTOR_ORDER[(idx - 1) % len(SECTOR_ORDER)],
        SECTOR_ORDER[(idx + 1) % len(SECTOR_ORDER)],
    )
