"""
Event gateway between connected clients and the session registry.

Clients speak JSON envelopes `{"event": name, "data": {...}}` in both directions.
Every mutation of a session runs under that session's asyncio lock and is
broadcast to the session's clients before the lock is released, so no client
ever sees a half-applied update. Bot turns are delayed tasks that re-check the
match epoch under the same lock before throwing.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Awaitable, Callable, Protocol

import structlog
from pydantic import BaseModel, ValidationError

from dartpair.config import ServerConfig
from dartpair.errors import (
    DartpairError,
    InvalidCodeFormat,
    InvalidThrow,
    RateLimited,
    SessionNotFound,
)
from dartpair.schemas import (
    ClientMessage,
    CodePayload,
    CreateMatchPayload,
    MatchCreatedDTO,
    PlayerNamePayload,
    StartingPlayerPayload,
    ThrowPayload,
    UpdateSettingsPayload,
    match_to_dto,
    player_to_dto,
)
from dartpair.scoring.bot import OpponentShotModel
from dartpair.scoring.match import ThrowOutcome
from dartpair.scoring.settings import MatchSettings, merge_settings
from dartpair.sessions.registry import CODE_PATTERN, Session, SessionRegistry

logger = structlog.get_logger()


class Connection(Protocol):
    client_id: str

    async def send_json(self, data: Any) -> None: ...


def _envelope(event: str, data: BaseModel | dict[str, Any]) -> dict[str, Any]:
    payload = data.model_dump(mode="json") if isinstance(data, BaseModel) else data
    return {"event": event, "data": payload}


class MatchGateway:
    def __init__(self, registry: SessionRegistry, config: ServerConfig | None = None) -> None:
        self._registry = registry
        self._config = config or ServerConfig()
        self._connections: dict[str, Connection] = {}
        self._rooms: dict[str, str] = {}  # client id -> primary code
        self._locks: dict[str, asyncio.Lock] = {}  # primary code -> lock
        self._bots: dict[str, tuple[int, OpponentShotModel]] = {}  # primary code -> (epoch, model)
        self._pending_bots: set[tuple[str, int]] = set()  # (primary code, epoch)
        self._bot_tasks: set[asyncio.Task[None]] = set()
        self._handlers: dict[str, Callable[[Connection, dict[str, Any]], Awaitable[None]]] = {
            "create_match": self._on_create_match,
            "join_match": self._on_join_match,
            "request_state": self._on_request_state,
            "set_starting_player": self._on_set_starting_player,
            "submit_throw": self._on_submit_throw,
            "undo_last_throw": self._on_undo_last_throw,
            "reset_match": self._on_reset_match,
            "update_settings": self._on_update_settings,
            "update_player_name": self._on_update_player_name,
        }

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    def room_of(self, client_id: str) -> str | None:
        return self._rooms.get(client_id)

    # --- Connection lifecycle ---
    def connect(self, connection: Connection) -> None:
        self._connections[connection.client_id] = connection
        logger.info("client connected", client_id=connection.client_id)

    async def disconnect(self, client_id: str) -> None:
        self._connections.pop(client_id, None)
        self._rooms.pop(client_id, None)
        for session in self._registry.remove_client_from_all_sessions(client_id):
            async with self._lock_for(session.code):
                await self._broadcast(
                    session,
                    "connection_status_changed",
                    {"status": "disconnected", "client_count": len(session.clients)},
                )
        logger.info("client disconnected", client_id=client_id)

    async def handle(self, client_id: str, raw: Any) -> None:
        connection = self._connections.get(client_id)
        if connection is None:
            return
        try:
            message = ClientMessage.model_validate(raw)
            handler = self._handlers.get(message.event)
            if handler is None:
                await self._send_error(connection, "bad_request", f"unknown event: {message.event}")
                return
            await handler(connection, message.data)
        except DartpairError as e:
            logger.warning("action rejected", client_id=client_id, reason=e.reason, detail=str(e))
            await self._send_error(connection, e.reason, str(e))
        except ValidationError as e:
            await self._send_error(connection, "bad_request", str(e.errors(include_url=False)))

    async def shutdown(self) -> None:
        for task in list(self._bot_tasks):
            task.cancel()
        for task in list(self._bot_tasks):
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def sweep(self) -> list[str]:
        """Expire idle sessions and forget their locks and bots."""
        expired = self._registry.cleanup_expired_sessions()
        for code in expired:
            self._locks.pop(code, None)
            self._bots.pop(code, None)
        if expired:
            for client_id, code in list(self._rooms.items()):
                if code in expired:
                    del self._rooms[client_id]
        logger.info("session sweep", expired=len(expired), live=len(self._registry.list_sessions()))
        return expired

    # --- Helpers ---
    def _lock_for(self, code: str) -> asyncio.Lock:
        lock = self._locks.get(code)
        if lock is None:
            lock = self._locks[code] = asyncio.Lock()
        return lock

    def _resolve(self, code: str) -> Session:
        session = self._registry.get_session(code)
        if session is None:
            raise SessionNotFound()
        self._registry.record_activity(session.code)
        return session

    async def _send(self, connection: Connection, event: str, data: BaseModel | dict[str, Any]) -> None:
        with contextlib.suppress(RuntimeError, OSError):
            await connection.send_json(_envelope(event, data))

    async def _send_error(self, connection: Connection, reason: str, message: str) -> None:
        await self._send(connection, "session_error", {"reason": reason, "message": message})

    async def _broadcast(self, session: Session, event: str, data: BaseModel | dict[str, Any]) -> None:
        message = _envelope(event, data)
        for client_id in list(session.clients):
            connection = self._connections.get(client_id)
            if connection is None:
                continue
            try:
                await connection.send_json(message)
            except (RuntimeError, OSError):
                logger.warning("broadcast failed", client_id=client_id, event=event)

    async def _broadcast_state(self, session: Session) -> None:
        await self._broadcast(session, "state", match_to_dto(session.match))

    async def _broadcast_outcome(self, session: Session, player_id: int, outcome: ThrowOutcome) -> None:
        if outcome.bust:
            await self._broadcast(session, "bust", {"player_id": player_id})
        await self._broadcast_state(session)
        if outcome.match_won and session.match.winner is not None:
            await self._broadcast(session, "match_won", {"winner": player_to_dto(session.match.winner).model_dump(mode="json")})

    async def _enter_room(self, connection: Connection, session: Session) -> None:
        previous = self._rooms.get(connection.client_id)
        if previous is not None and previous != session.code:
            self._registry.remove_client_from_session(previous, connection.client_id)
        self._registry.add_client_to_session(session.code, connection.client_id)
        self._rooms[connection.client_id] = session.code

    # --- Bot turns ---
    def _bot_model(self, session: Session) -> OpponentShotModel:
        match = session.match
        cached = self._bots.get(session.code)
        if cached is not None and cached[0] == match.epoch:
            return cached[1]
        model = OpponentShotModel.from_config(match.settings.opponent)
        self._bots[session.code] = (match.epoch, model)
        return model

    def _maybe_schedule_bot(self, session: Session) -> None:
        match = session.match
        bot_id = match.bot_to_throw()
        if bot_id is None:
            return
        key = (session.code, match.epoch)
        if key in self._pending_bots:
            return
        self._pending_bots.add(key)
        task = asyncio.create_task(self._run_bot_turn(session.code, match.epoch, bot_id, match.current_leg))
        self._bot_tasks.add(task)
        task.add_done_callback(self._bot_tasks.discard)

    async def _run_bot_turn(self, code: str, epoch: int, player_id: int, leg: int) -> None:
        await asyncio.sleep(self._config.bot_delay_s)
        session = self._registry.get_session(code)
        if session is None:
            self._pending_bots.discard((code, epoch))
            logger.info("bot turn dropped", code=code, why="session gone")
            return
        async with self._lock_for(session.code):
            self._pending_bots.discard((code, epoch))
            match = session.match
            if match.epoch != epoch or match.current_leg != leg or match.bot_to_throw() != player_id:
                logger.info("bot turn dropped", code=code, epoch=epoch, current_epoch=match.epoch)
                # The stale key blocked scheduling; the current position may still owe a turn.
                self._maybe_schedule_bot(session)
                return
            total, outcome = match.take_bot_turn(self._bot_model(session))
            logger.info("bot turn", code=code, player_id=player_id, total=total, bust=outcome.bust)
            await self._broadcast_outcome(session, player_id, outcome)
            self._maybe_schedule_bot(session)

    # --- Event handlers ---
    async def _on_create_match(self, connection: Connection, data: dict[str, Any]) -> None:
        payload = CreateMatchPayload.model_validate(data)
        settings = merge_settings(MatchSettings(), payload.settings.to_update())
        created = self._registry.create_session(settings)
        session = self._resolve(created.code)
        async with self._lock_for(session.code):
            await self._enter_room(connection, session)
            await self._send(
                connection,
                "match_created",
                MatchCreatedDTO(code=created.code, master_code=created.master_code, state=match_to_dto(created.match)),
            )

    async def _on_join_match(self, connection: Connection, data: dict[str, Any]) -> None:
        # Throttle before looking at the code at all.
        attempt = self._registry.record_join_attempt(connection.client_id)
        if attempt.blocked:
            logger.warning("join rate limited", client_id=connection.client_id)
            raise RateLimited("too many join attempts, try again later")

        code = data.get("code")
        if not isinstance(code, str) or not CODE_PATTERN.match(code):
            raise InvalidCodeFormat("pairing code must be 8 letters or digits")
        session = self._resolve(code)

        async with self._lock_for(session.code):
            await self._enter_room(connection, session)
            await self._send(connection, "state", match_to_dto(session.match))
            client_count = len(session.clients)
            await self._broadcast(session, "client_joined", {"client_count": client_count})
            await self._broadcast(
                session, "connection_status_changed", {"status": "connected", "client_count": client_count}
            )
        logger.info("client joined", code=session.code, client_id=connection.client_id)

    async def _on_request_state(self, connection: Connection, data: dict[str, Any]) -> None:
        session = self._resolve(CodePayload.model_validate(data).code)
        async with self._lock_for(session.code):
            await self._send(connection, "state", match_to_dto(session.match))

    async def _on_set_starting_player(self, connection: Connection, data: dict[str, Any]) -> None:
        payload = StartingPlayerPayload.model_validate(data)
        session = self._resolve(payload.code)
        async with self._lock_for(session.code):
            session.match.set_starting_player(payload.player_id)
            await self._broadcast_state(session)
            self._maybe_schedule_bot(session)

    async def _on_submit_throw(self, connection: Connection, data: dict[str, Any]) -> None:
        payload = ThrowPayload.model_validate(data)
        session = self._resolve(payload.code)
        async with self._lock_for(session.code):
            match = session.match
            if payload.player_id in (1, 2) and match.player(payload.player_id).is_bot:
                raise InvalidThrow("the bot throws for itself")
            outcome = match.apply_throw(payload.player_id, payload.score)
            await self._broadcast_outcome(session, payload.player_id, outcome)
            self._maybe_schedule_bot(session)

    async def _on_undo_last_throw(self, connection: Connection, data: dict[str, Any]) -> None:
        session = self._resolve(CodePayload.model_validate(data).code)
        async with self._lock_for(session.code):
            session.match.undo_last_throw()
            await self._broadcast_state(session)
            self._maybe_schedule_bot(session)

    async def _on_reset_match(self, connection: Connection, data: dict[str, Any]) -> None:
        session = self._resolve(CodePayload.model_validate(data).code)
        async with self._lock_for(session.code):
            session.match.reset()
            await self._broadcast_state(session)

    async def _on_update_settings(self, connection: Connection, data: dict[str, Any]) -> None:
        payload = UpdateSettingsPayload.model_validate(data)
        session = self._resolve(payload.code)
        async with self._lock_for(session.code):
            session.match.update_settings(payload.settings.to_update())
            await self._broadcast_state(session)

    async def _on_update_player_name(self, connection: Connection, data: dict[str, Any]) -> None:
        payload = PlayerNamePayload.model_validate(data)
        session = self._resolve(payload.code)
        async with self._lock_for(session.code):
            session.match.rename_player(payload.player_id, payload.name)
            await self._broadcast_state(session)
