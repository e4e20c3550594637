from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from dartpair.scoring.checkout import checkout_hint
from dartpair.scoring.match import Match, PlayerState, ThrowEvent
from dartpair.scoring.settings import GameFormat, MatchSettings, OpponentConfig, SettingsUpdate


# --- Inbound payloads ---
class OpponentConfigDTO(BaseModel):
    enabled: bool = False
    skill_level: int = Field(default=5, ge=1, le=10)
    target_average: float | None = Field(default=None, ge=1, le=180)
    name: str = Field(default="DartBot", min_length=1)


class SettingsDTO(BaseModel):
    """Settings as sent by clients. Omitted fields keep their current value."""

    starting_score: Literal[301, 501, 601, 701] | None = None
    game_format: Literal["firstTo", "bestOf"] | None = None
    legs_to_win: int | None = Field(default=None, gt=0)
    sets_enabled: bool | None = None
    sets_to_win: int | None = Field(default=None, gt=0)
    player_names: list[str] | None = Field(default=None, min_length=2, max_length=2)
    opponent: OpponentConfigDTO | None = None

    def to_update(self) -> SettingsUpdate:
        return SettingsUpdate(
            starting_score=self.starting_score,
            game_format=GameFormat(self.game_format) if self.game_format is not None else None,
            legs_to_win=self.legs_to_win,
            sets_enabled=self.sets_enabled,
            sets_to_win=self.sets_to_win,
            player_names=(self.player_names[0], self.player_names[1]) if self.player_names else None,
            opponent=OpponentConfig(**self.opponent.model_dump()) if self.opponent is not None else None,
        )


class CreateMatchPayload(BaseModel):
    settings: SettingsDTO = Field(default_factory=SettingsDTO)


class CodePayload(BaseModel):
    code: str


class StartingPlayerPayload(CodePayload):
    player_id: int = Field(..., ge=1, le=2)


class ThrowPayload(CodePayload):
    player_id: int
    score: int


class UpdateSettingsPayload(CodePayload):
    settings: SettingsDTO


class PlayerNamePayload(CodePayload):
    player_id: int = Field(..., ge=1, le=2)
    name: str = Field(..., min_length=1, max_length=40)


class ClientMessage(BaseModel):
    event: str
    data: dict[str, Any] = Field(default_factory=dict)


# --- Outbound state ---
class ThrowEventDTO(BaseModel):
    player_id: int
    score: int | Literal["bust"]
    previous_score: int
    remaining_score: int
    timestamp: float


class PlayerDTO(BaseModel):
    id: int
    name: str
    score: int
    legs_won: int
    sets_won: int
    throws: list[ThrowEventDTO]
    average_score: float
    total_score: int
    total_throws: int
    match_average_score: float
    is_bot: bool
    checkout_hint: list[str]


class OpponentConfigOutDTO(BaseModel):
    enabled: bool
    skill_level: int
    target_average: float | None
    name: str


class SettingsOutDTO(BaseModel):
    starting_score: int
    game_format: str
    legs_to_win: int
    sets_enabled: bool
    sets_to_win: int
    player_names: list[str]
    opponent: OpponentConfigOutDTO


class MatchStateDTO(BaseModel):
    players: list[PlayerDTO]
    current_player_id: int
    leg_starting_player_id: int
    current_leg: int
    current_set: int
    throw_history: list[ThrowEventDTO]
    settings: SettingsOutDTO
    phase: str
    game_started: bool
    game_won: bool
    winner: PlayerDTO | None


class MatchCreatedDTO(BaseModel):
    code: str
    master_code: str
    state: MatchStateDTO


class CheckoutResponseDTO(BaseModel):
    remaining: int
    routes: list[list[str]]


class BotProfileDTO(BaseModel):
    skill_level: int
    description: str
    average_score: float
    accuracy: int
    double_accuracy: int
    triple_accuracy: int


def throw_to_dto(t: ThrowEvent) -> ThrowEventDTO:
    return ThrowEventDTO(
        player_id=t.player_id,
        score=t.score,
        previous_score=t.previous_score,
        remaining_score=t.remaining_score,
        timestamp=t.timestamp,
    )


def player_to_dto(p: PlayerState) -> PlayerDTO:
    return PlayerDTO(
        id=p.id,
        name=p.name,
        score=p.score,
        legs_won=p.legs_won,
        sets_won=p.sets_won,
        throws=[throw_to_dto(t) for t in p.throws],
        average_score=p.average_score,
        total_score=p.total_score,
        total_throws=p.total_throws,
        match_average_score=p.match_average_score,
        is_bot=p.is_bot,
        checkout_hint=checkout_hint(p.score),
    )


def settings_to_dto(s: MatchSettings) -> SettingsOutDTO:
    return SettingsOutDTO(
        starting_score=s.starting_score,
        game_format=str(s.game_format),
        legs_to_win=s.legs_to_win,
        sets_enabled=s.sets_enabled,
        sets_to_win=s.sets_to_win,
        player_names=list(s.player_names),
        opponent=OpponentConfigOutDTO(
            enabled=s.opponent.enabled,
            skill_level=s.opponent.skill_level,
            target_average=s.opponent.target_average,
            name=s.opponent.name,
        ),
    )


def match_to_dto(m: Match) -> MatchStateDTO:
    return MatchStateDTO(
        players=[player_to_dto(p) for p in m.players],
        current_player_id=m.current_player_id,
        leg_starting_player_id=m.leg_starting_player_id,
        current_leg=m.current_leg,
        current_set=m.current_set,
        throw_history=[throw_to_dto(t) for t in m.throw_history],
        settings=settings_to_dto(m.settings),
        phase=str(m.phase),
        game_started=m.game_started,
        game_won=m.game_won,
        winner=player_to_dto(m.winner) if m.winner is not None else None,
    )
