from __future__ import annotations

from itertools import cycle

import numpy as np
import pytest

from dartpair.scoring.board import MISS, Dart
from dartpair.scoring.bot import OpponentShotModel, plan_setup
from dartpair.scoring.settings import OpponentConfig


class _ScriptedRng:
    """Stands in for np.random.Generator, replaying fixed uniforms."""

    def __init__(self, values: list[float]) -> None:
        self._values = cycle(values)

    def random(self) -> float:
        return next(self._values)

    def integers(self, low: int, high: int) -> int:
        return low


def test_skill_one_parameters() -> None:
    m = OpponentShotModel(1)
    assert m.accuracy == pytest.approx(0.30)
    assert m.double_accuracy == pytest.approx(0.10)
    assert m.triple_accuracy == pytest.approx(0.05)
    assert m.miss_chance == pytest.approx(0.15)
    assert m.target_average == 20.0


def test_skill_ten_parameters_are_clamped() -> None:
    m = OpponentShotModel(10)
    assert m.accuracy == pytest.approx(0.93)
    assert m.double_accuracy == pytest.approx(0.55)
    assert m.triple_accuracy == pytest.approx(0.32)
    assert m.miss_chance == pytest.approx(0.042)
    assert m.target_average == 110.0


def test_target_average_override() -> None:
    m = OpponentShotModel.from_config(OpponentConfig(enabled=True, skill_level=3, target_average=75))
    assert m.target_average == 75.0


def test_skill_level_must_be_in_range() -> None:
    with pytest.raises(ValueError):
        OpponentShotModel(0)
    with pytest.raises(ValueError):
        OpponentShotModel(11)


@pytest.mark.parametrize(
    ("level", "description"),
    [(1, "Beginner"), (3, "Beginner"), (4, "Intermediate"), (6, "Intermediate"), (8, "Advanced"), (9, "Expert")],
)
def test_skill_description(level: int, description: str) -> None:
    assert OpponentShotModel(level).skill_description == description


def test_expected_stats_in_percent() -> None:
    stats = OpponentShotModel(5).expected_stats()
    assert stats == {"average_score": 60.0, "accuracy": 58, "double_accuracy": 30, "triple_accuracy": 17}


def test_plan_setup() -> None:
    assert plan_setup(100) == Dart(20, 3)
    assert plan_setup(45) == Dart(13, 1)
    assert plan_setup(41) == Dart(9, 1)
    assert plan_setup(3) == Dart(1, 1)
    assert plan_setup(169) is None


def test_all_misses_score_nothing() -> None:
    m = OpponentShotModel(5, rng=_ScriptedRng([0.0]))  # type: ignore[arg-type]
    turn = m.simulate_turn(501)
    assert turn.darts == (MISS, MISS, MISS)
    assert turn.total == 0
    assert not turn.busted


def test_hits_the_double_on_40() -> None:
    # 0.5 clears the miss check, 0.0 lands the double.
    m = OpponentShotModel(5, rng=_ScriptedRng([0.5, 0.0]))  # type: ignore[arg-type]
    turn = m.simulate_turn(40)
    assert turn.darts == (Dart(20, 2),)
    assert turn.total == 40
    assert m.generate_turn(40) == 40


def test_bull_finish_on_50() -> None:
    m = OpponentShotModel(10, rng=_ScriptedRng([0.5, 0.0]))  # type: ignore[arg-type]
    turn = m.simulate_turn(50)
    assert turn.darts == (Dart(25, 2),)
    assert turn.total == 50


def test_bust_ends_the_turn_without_scoring() -> None:
    # On 3 the bot aims S1; 0.5 misses the bed and 0.0 drifts left into the 20.
    m = OpponentShotModel(1, rng=_ScriptedRng([0.5, 0.5, 0.0]))  # type: ignore[arg-type]
    turn = m.simulate_turn(3)
    assert turn.busted
    assert turn.darts == ()
    assert turn.total == 0


def test_turns_never_leave_an_impossible_score() -> None:
    for seed in range(20):
        m = OpponentShotModel(1 + seed % 10, rng=np.random.default_rng(seed))
        for score in (501, 170, 101, 60, 41, 32, 3, 2):
            total = m.generate_turn(score)
            assert 0 <= total <= 180
            assert total <= score
            assert score - total != 1


def test_high_average_bot_samples_outside_finish_range() -> None:
    m = OpponentShotModel(10, target_average=100, rng=np.random.default_rng(7))
    turn = m.simulate_turn(501)
    assert turn.sampled
    assert turn.darts == ()
    assert 0 <= turn.total <= 180

    near = m.simulate_turn(150)
    assert not near.sampled


def test_sampled_visit_never_finishes() -> None:
    m = OpponentShotModel(10, target_average=170, rng=np.random.default_rng(3))
    for _ in range(50):
        total = m.generate_turn(171)
        assert total <= 169
