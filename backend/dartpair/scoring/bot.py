from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from dartpair.scoring.board import BULL, MISS, Dart, neighbours
from dartpair.scoring.settings import OpponentConfig

FINISH_RANGE = 170
MAX_VISIT = 180
DARTS_PER_VISIT = 3

# Setup trebles tried above 50, best first.
SETUP_TREBLES: tuple[int, ...] = (20, 19, 18, 17, 16, 15, 14, 13, 12, 11, 10)
# Doubles a single setup dart should leave, best first (41-50 and odd remainders).
FAVOURITE_LEAVES: tuple[int, ...] = (32, 40, 16, 36, 24, 20, 8, 12, 4, 2)


def _is_clean_leave(left: int) -> bool:
    return left == 50 or (2 <= left <= 40 and left % 2 == 0)


def plan_setup(remaining: int) -> Dart | None:
    """
    Setup dart that leaves a one-dart finish (a double <= 40 or the bull),
    or None when nothing in the tables does.
    """
    if remaining > 50:
        for segment in SETUP_TREBLES:
            if _is_clean_leave(remaining - segment * 3):
                return Dart(segment, 3)
    for leave in FAVOURITE_LEAVES:
        segment = remaining - leave
        if 1 <= segment <= 20:
            return Dart(segment, 1)
    return None


@dataclass(frozen=True)
class BotTurn:
    darts: tuple[Dart, ...]
    total: int
    busted: bool = False
    sampled: bool = False


class OpponentShotModel:
    """
    Stochastic dart-by-dart opponent.

    Skill 1..10 drives every probability (each clamped):
    - accuracy (single bed hit):  0.30 + 0.07/level, max 0.95
    - double accuracy:            0.10 + 0.05/level, max 0.60
    - treble accuracy:            0.05 + 0.03/level, max 0.40
    - miss chance (off the board): 0.15 - 0.012/level, min 0.02

    Unlike the human visit path, a turn here is checked against double-out:
    reaching 0 on anything but a double is a bust.
    """

    def __init__(
        self,
        skill_level: int,
        target_average: float | None = None,
        *,
        rng: np.random.Generator | None = None,
    ) -> None:
        if not 1 <= skill_level <= 10:
            raise ValueError("skill_level must be between 1 and 10")
        self.skill_level = skill_level
        self.target_average = (
            float(target_average) if target_average is not None else float(20 + (skill_level - 1) * 10)
        )
        level = skill_level - 1
        self.accuracy = min(0.3 + level * 0.07, 0.95)
        self.double_accuracy = min(0.1 + level * 0.05, 0.6)
        self.triple_accuracy = min(0.05 + level * 0.03, 0.4)
        self.miss_chance = max(0.02, 0.15 - level * 0.012)
        self._rng = rng if rng is not None else np.random.default_rng()

    @classmethod
    def from_config(cls, config: OpponentConfig, *, rng: np.random.Generator | None = None) -> OpponentShotModel:
        return cls(config.skill_level, config.target_average, rng=rng)

    @property
    def skill_description(self) -> str:
        if self.skill_level <= 3:
            return "Beginner"
        if self.skill_level <= 6:
            return "Intermediate"
        if self.skill_level <= 8:
            return "Advanced"
        return "Expert"

    def expected_stats(self) -> dict[str, float | int]:
        return {
            "average_score": self.target_average,
            "accuracy": round(self.accuracy * 100),
            "double_accuracy": round(self.double_accuracy * 100),
            "triple_accuracy": round(self.triple_accuracy * 100),
        }

    def _roll(self) -> float:
        return float(self._rng.random())

    # --- Single darts ---
    def throw_dart(self, remaining: int) -> Dart:
        if self._roll() < self.miss_chance:
            return MISS
        if 1 < remaining <= FINISH_RANGE:
            return self._finishing_dart(remaining)
        return self._scoring_dart()

    def _finishing_dart(self, remaining: int) -> Dart:
        if remaining <= 40 and remaining % 2 == 0:
            return self._aim_double(remaining // 2)
        if remaining == 50:
            return self._aim_bull()
        setup = plan_setup(remaining)
        if setup is None:
            # Too far out for a two-dart finish: close the distance.
            return self._aim(20, 3)
        return self._aim(setup.value, setup.multiplier)

    def _aim_double(self, segment: int) -> Dart:
        if self._roll() < self.double_accuracy:
            return Dart(segment, 2)
        # Missed doubles mostly fall inside onto the single, otherwise off the board.
        return Dart(segment, 1) if self._roll() < 0.5 else MISS

    def _aim_bull(self) -> Dart:
        roll = self._roll()
        if roll < self.double_accuracy:
            return Dart(BULL, 2)
        if roll < self.accuracy:
            return Dart(BULL, 1)
        return Dart(int(self._rng.integers(1, 21)), 1)

    def _aim(self, segment: int, multiplier: int) -> Dart:
        if segment == BULL:
            return self._aim_bull()
        roll = self._roll()
        if multiplier == 3:
            if roll < self.triple_accuracy:
                return Dart(segment, 3)
            if roll < self.accuracy:
                return Dart(segment, 1)
            return Dart(self._neighbour(segment), 1)
        if roll < self.accuracy:
            return Dart(segment, 1)
        return Dart(self._neighbour(segment), 1)

    def _neighbour(self, segment: int) -> int:
        left, right = neighbours(segment)
        return left if self._roll() < 0.5 else right

    def _scoring_dart(self) -> Dart:
        segment = 20 if self._roll() < 0.8 else 19
        roll = self._roll()
        if roll < self.triple_accuracy:
            return Dart(segment, 3)
        if roll < self.triple_accuracy + self.double_accuracy:
            return Dart(segment, 2)
        if roll < self.accuracy:
            return Dart(segment, 1)
        return Dart(self._neighbour(segment), 1)

    # --- Turns ---
    def _sample_visit(self, current_score: int) -> int:
        # Box-Muller transform on two uniforms; u1 must stay off zero for the log.
        u1 = 1.0 - self._roll()
        u2 = self._roll()
        z = math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)
        spread = max(8.0, 30.0 - (self.skill_level - 1) * 2.5)
        value = int(round(self.target_average + z * spread))
        value = max(0, min(MAX_VISIT, value, current_score - 2))
        if current_score - value == 1:
            value -= 1
        return max(0, value)

    def simulate_turn(self, current_score: int) -> BotTurn:
        if self.target_average >= 90 and current_score > FINISH_RANGE:
            return BotTurn(darts=(), total=self._sample_visit(current_score), sampled=True)

        darts: list[Dart] = []
        remaining = current_score
        for _ in range(DARTS_PER_VISIT):
            dart = self.throw_dart(remaining)
            left = remaining - dart.score
            if left < 0 or left == 1 or (left == 0 and not dart.is_double):
                # Stop on a bust; only the darts before it count.
                return BotTurn(darts=tuple(darts), total=current_score - remaining, busted=True)
            darts.append(dart)
            remaining = left
            if remaining == 0:
                break
        return BotTurn(darts=tuple(darts), total=current_score - remaining)

    def generate_turn(self, current_score: int) -> int:
        turn = self.simulate_turn(current_score)
        return max(0, min(MAX_VISIT, turn.total))
