from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import TYPE_CHECKING, Callable, Literal

from dartpair.errors import InvalidAction, InvalidThrow
from dartpair.scoring.settings import MatchSettings, SettingsUpdate, merge_settings

if TYPE_CHECKING:
    from dartpair.scoring.bot import OpponentShotModel

BUST: Literal["bust"] = "bust"
PLAYER_THROWS_LIMIT = 10
HISTORY_LIMIT = 50
MAX_VISIT = 180


@dataclass(frozen=True)
class ThrowEvent:
    """
    One submitted visit. A bust keeps `remaining_score == previous_score`.
    """

    player_id: int
    score: int | Literal["bust"]
    previous_score: int
    remaining_score: int
    timestamp: float

    @property
    def is_bust(self) -> bool:
        return self.score == BUST


@dataclass(frozen=True)
class ThrowOutcome:
    bust: bool = False
    leg_won: bool = False
    set_won: bool = False
    match_won: bool = False


class MatchPhase(StrEnum):
    CONFIGURING = "configuring"
    IN_LEG = "in_leg"
    MATCH_COMPLETE = "match_complete"


@dataclass
class PlayerState:
    id: int
    name: str
    score: int
    legs_won: int = 0
    sets_won: int = 0
    throws: deque[ThrowEvent] = field(default_factory=lambda: deque(maxlen=PLAYER_THROWS_LIMIT))
    average_score: float = 0.0
    total_score: int = 0
    total_throws: int = 0
    match_average_score: float = 0.0
    is_bot: bool = False

    def recompute_average(self) -> None:
        numeric = [t.score for t in self.throws if not t.is_bust]
        self.average_score = round(sum(numeric) / len(numeric), 2) if numeric else 0.0

    def recompute_match_average(self) -> None:
        self.match_average_score = round(self.total_score / max(self.total_throws, 1), 2)


def _other_player_id(player_id: int) -> int:
    if player_id == 1:
        return 2
    if player_id == 2:
        return 1
    raise ValueError("player_id must be 1 or 2")


def _second_player_name(settings: MatchSettings) -> str:
    # An enabled bot plays as player 2 under its own name.
    if settings.opponent.enabled:
        return settings.opponent.name
    return settings.player_names[1]


class Match:
    """
    Authoritative state of one two-player x01 match.

    This module intentionally contains no web/framework imports and performs no
    I/O; callers broadcast the state after each operation.

    Rules applied to submitted visit totals:
    - A visit is bust if it would leave the player below 0 or on exactly 1.
      The score is unchanged, a bust event is recorded and the turn passes.
    - Reaching exactly 0 wins the leg. Visit totals cannot say which dart was a
      double, so double-out is not checked here; only the bot's dart-by-dart
      model applies it.
    - Legs needed per set/match is `legs_to_win` (firstTo) or
      ceil(legs_to_win / 2) (bestOf); sets work the same way when enabled.
    - Each new leg resets both scores, clears visit history and hands the
      throw to the other player than the one who opened the previous leg.
    - History is bounded: 10 visits per player, 50 per match. Undo cannot
      reach beyond what is still held, nor back across a leg boundary.
    """

    def __init__(self, settings: MatchSettings | None = None, *, clock: Callable[[], float] = time.time) -> None:
        self.settings = settings or MatchSettings()
        self._clock = clock
        self.epoch = 0
        self.players: tuple[PlayerState, PlayerState] = self._fresh_players()
        self.current_player_id = 1
        self.leg_starting_player_id = 1
        self.current_leg = 1
        self.current_set = 1
        self.throw_history: deque[ThrowEvent] = deque(maxlen=HISTORY_LIMIT)
        self.game_started = False
        self.game_won = False
        self.winner: PlayerState | None = None

    @classmethod
    def new(cls, settings: MatchSettings | None = None) -> Match:
        return cls(settings)

    def _fresh_players(self) -> tuple[PlayerState, PlayerState]:
        s = self.settings
        return (
            PlayerState(1, s.player_names[0], s.starting_score),
            PlayerState(2, _second_player_name(s), s.starting_score, is_bot=s.opponent.enabled),
        )

    # --- Queries ---
    def player(self, player_id: int) -> PlayerState:
        if player_id == 1:
            return self.players[0]
        if player_id == 2:
            return self.players[1]
        raise InvalidAction("player_id must be 1 or 2")

    @property
    def current_player(self) -> PlayerState:
        assert self.current_player_id in (1, 2), f"current player out of range: {self.current_player_id}"
        return self.player(self.current_player_id)

    @property
    def phase(self) -> MatchPhase:
        if self.game_won:
            return MatchPhase.MATCH_COMPLETE
        if self.game_started:
            return MatchPhase.IN_LEG
        return MatchPhase.CONFIGURING

    def bot_to_throw(self) -> int | None:
        """Id of the bot player whose turn it is, if any."""
        if self.phase != MatchPhase.IN_LEG:
            return None
        if self.current_player.is_bot:
            return self.current_player_id
        return None

    # --- Throws ---
    def apply_throw(self, player_id: int, raw_score: int) -> ThrowOutcome:
        if self.phase != MatchPhase.IN_LEG:
            raise InvalidThrow("match is not accepting throws")
        if player_id != self.current_player_id:
            raise InvalidThrow("not this player's turn")
        if isinstance(raw_score, bool) or not isinstance(raw_score, int):
            raise InvalidThrow("score must be an integer")
        if not 0 <= raw_score <= MAX_VISIT:
            raise InvalidThrow(f"score must be between 0 and {MAX_VISIT}")

        player = self.current_player
        previous = player.score
        new_remaining = previous - raw_score

        if new_remaining < 0 or new_remaining == 1:
            self._record(player, ThrowEvent(player.id, BUST, previous, previous, self._clock()))
            player.recompute_average()
            self._advance_turn()
            return ThrowOutcome(bust=True)

        self._record(player, ThrowEvent(player.id, raw_score, previous, new_remaining, self._clock()))
        player.score = new_remaining
        player.recompute_average()
        player.total_score += raw_score
        player.total_throws += 1
        player.recompute_match_average()

        if new_remaining == 0:
            return self._win_leg(player)

        self._advance_turn()
        return ThrowOutcome()

    def take_bot_turn(self, model: OpponentShotModel) -> tuple[int, ThrowOutcome]:
        """Let `model` play the current (bot) player's visit."""
        if self.bot_to_throw() is None:
            raise InvalidAction("it is not a bot's turn")
        player = self.current_player
        total = model.generate_turn(player.score)
        return total, self.apply_throw(player.id, total)

    def undo_last_throw(self) -> ThrowEvent | None:
        """
        Revert the most recent visit still held in the match history and hand
        the turn back to whoever threw it. Returns None when there is nothing to undo.
        """
        if not self.throw_history:
            return None
        last = self.throw_history.pop()
        player = self.player(last.player_id)
        player.score = last.previous_score

        # The per-player window may already have evicted this entry.
        for idx in range(len(player.throws) - 1, -1, -1):
            t = player.throws[idx]
            if t.timestamp == last.timestamp and t.score == last.score:
                del player.throws[idx]
                break
        player.recompute_average()

        if not last.is_bust:
            player.total_throws = max(0, player.total_throws - 1)
            player.total_score = max(0, player.total_score - last.score)
            player.recompute_match_average()

        self.current_player_id = last.player_id
        return last

    def _record(self, player: PlayerState, event: ThrowEvent) -> None:
        player.throws.append(event)
        self.throw_history.append(event)

    def _advance_turn(self) -> None:
        self.current_player_id = _other_player_id(self.current_player_id)

    def _win_leg(self, player: PlayerState) -> ThrowOutcome:
        player.legs_won += 1
        if player.legs_won < self.settings.legs_needed:
            self._reset_leg()
            return ThrowOutcome(leg_won=True)

        if not self.settings.sets_enabled:
            self._finish_match(player)
            return ThrowOutcome(leg_won=True, match_won=True)

        player.sets_won += 1
        for p in self.players:
            p.legs_won = 0
        self.current_set += 1
        if player.sets_won >= self.settings.sets_needed:
            self._finish_match(player)
            return ThrowOutcome(leg_won=True, set_won=True, match_won=True)

        self._reset_leg()
        return ThrowOutcome(leg_won=True, set_won=True)

    def _finish_match(self, player: PlayerState) -> None:
        # Scores go back to the starting value for the final display.
        self._reset_leg()
        self.game_won = True
        self.winner = player

    def _reset_leg(self) -> None:
        for p in self.players:
            p.score = self.settings.starting_score
            p.throws.clear()
            p.average_score = 0.0
        self.leg_starting_player_id = _other_player_id(self.leg_starting_player_id)
        self.current_player_id = self.leg_starting_player_id
        self.current_leg += 1
        self.throw_history.clear()

    # --- Lifecycle ---
    def set_starting_player(self, player_id: int) -> None:
        if player_id not in (1, 2):
            raise InvalidAction("player_id must be 1 or 2")
        if self.game_won:
            raise InvalidAction("match is already over")
        if self.throw_history:
            raise InvalidAction("starting player can only be chosen before the first throw of a leg")
        self.current_player_id = player_id
        self.leg_starting_player_id = player_id
        self.game_started = True

    def reset(self, starting_score: int | None = None) -> None:
        """
        Start the match over. Settings are kept, except that `starting_score`,
        when given, replaces the configured one for the whole new match.
        Raises InvalidSettings before touching any state if it is not allowed.
        """
        if starting_score is not None:
            self.settings = merge_settings(self.settings, SettingsUpdate(starting_score=starting_score))
        for p in self.players:
            p.score = self.settings.starting_score
            p.legs_won = 0
            p.sets_won = 0
            p.throws.clear()
            p.average_score = 0.0
            p.total_score = 0
            p.total_throws = 0
            p.match_average_score = 0.0
        self.current_player_id = 1
        self.leg_starting_player_id = 1
        self.current_leg = 1
        self.current_set = 1
        self.game_started = False
        self.game_won = False
        self.winner = None
        self.throw_history.clear()
        self.epoch += 1

    def update_settings(self, update: SettingsUpdate) -> MatchSettings:
        self.settings = merge_settings(self.settings, update)
        self.players[0].name = self.settings.player_names[0]
        self.players[1].name = _second_player_name(self.settings)
        self.players[1].is_bot = self.settings.opponent.enabled
        self.reset()
        return self.settings

    def rename_player(self, player_id: int, name: str) -> None:
        name = name.strip()
        if not name:
            raise InvalidAction("player name must not be empty")
        player = self.player(player_id)
        if player.is_bot:
            update = SettingsUpdate(opponent=replace(self.settings.opponent, name=name))
        else:
            names = list(self.settings.player_names)
            names[player_id - 1] = name
            update = SettingsUpdate(player_names=(names[0], names[1]))
        self.settings = merge_settings(self.settings, update)
        player.name = name
