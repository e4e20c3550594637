from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import StrEnum

from dartpair.errors import InvalidSettings

STARTING_SCORES: tuple[int, ...] = (301, 501, 601, 701)


class GameFormat(StrEnum):
    FIRST_TO = "firstTo"
    BEST_OF = "bestOf"


def _games_needed(count: int, game_format: GameFormat) -> int:
    if game_format == GameFormat.BEST_OF:
        return math.ceil(count / 2)
    return count


@dataclass(frozen=True)
class OpponentConfig:
    """
    Bot opponent configuration. When enabled, the bot always plays as player 2.

    - skill_level: 1 (beginner) .. 10 (expert)
    - target_average: optional per-turn average override, otherwise derived from skill
    """

    enabled: bool = False
    skill_level: int = 5
    target_average: float | None = None
    name: str = "DartBot"

    def __post_init__(self) -> None:
        if not 1 <= self.skill_level <= 10:
            raise InvalidSettings("skill_level must be between 1 and 10")
        if self.target_average is not None and not 1 <= self.target_average <= 180:
            raise InvalidSettings("target_average must be between 1 and 180")
        if not self.name.strip():
            raise InvalidSettings("bot name must not be empty")


@dataclass(frozen=True)
class MatchSettings:
    starting_score: int = 501
    game_format: GameFormat = GameFormat.FIRST_TO
    legs_to_win: int = 3
    sets_enabled: bool = False
    sets_to_win: int = 3
    player_names: tuple[str, str] = ("Player 1", "Player 2")
    opponent: OpponentConfig = field(default_factory=OpponentConfig)

    def __post_init__(self) -> None:
        if self.starting_score not in STARTING_SCORES:
            raise InvalidSettings(f"starting_score must be one of {STARTING_SCORES}")
        try:
            object.__setattr__(self, "game_format", GameFormat(self.game_format))
        except ValueError as e:
            raise InvalidSettings("game_format must be 'firstTo' or 'bestOf'") from e
        if self.legs_to_win <= 0:
            raise InvalidSettings("legs_to_win must be > 0")
        if self.sets_to_win <= 0:
            raise InvalidSettings("sets_to_win must be > 0")

        names = tuple(self.player_names)
        if len(names) != 2:
            raise InvalidSettings("exactly two player names are required")
        if any(not n.strip() for n in names):
            raise InvalidSettings("player names must not be empty")
        object.__setattr__(self, "player_names", names)

    @property
    def legs_needed(self) -> int:
        return _games_needed(self.legs_to_win, self.game_format)

    @property
    def sets_needed(self) -> int:
        return _games_needed(self.sets_to_win, self.game_format)


@dataclass(frozen=True)
class SettingsUpdate:
    """
    Partial settings change. Fields left as None keep their current value.
    """

    starting_score: int | None = None
    game_format: GameFormat | None = None
    legs_to_win: int | None = None
    sets_enabled: bool | None = None
    sets_to_win: int | None = None
    player_names: tuple[str, str] | None = None
    opponent: OpponentConfig | None = None


def merge_settings(base: MatchSettings, update: SettingsUpdate) -> MatchSettings:
    changes = {
        name: value
        for name, value in (
            ("starting_score", update.starting_score),
            ("game_format", update.game_format),
            ("legs_to_win", update.legs_to_win),
            ("sets_enabled", update.sets_enabled),
            ("sets_to_win", update.sets_to_win),
            ("player_names", update.player_names),
            ("opponent", update.opponent),
        )
        if value is not None
    }
    return replace(base, **changes)
