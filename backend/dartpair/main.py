from __future__ import annotations

import asyncio
import contextlib
import json
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import structlog
from fastapi import APIRouter, FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import RedirectResponse

from dartpair.config import ServerConfig
from dartpair.log import configure_logging
from dartpair.realtime.gateway import MatchGateway
from dartpair.schemas import BotProfileDTO, CheckoutResponseDTO, MatchStateDTO, match_to_dto
from dartpair.scoring.bot import OpponentShotModel
from dartpair.scoring.checkout import suggest_checkouts
from dartpair.sessions.registry import SessionRegistry

logger = structlog.get_logger()

router = APIRouter()


class WebSocketConnection:
    def __init__(self, websocket: WebSocket) -> None:
        self.client_id = uuid.uuid4().hex
        self._websocket = websocket

    async def send_json(self, data: Any) -> None:
        await self._websocket.send_json(data)


def _gateway(request: Request | WebSocket) -> MatchGateway:
    return request.app.state.gateway


@router.get("/", include_in_schema=False)
def root(request: Request):
    # Browsers go to Swagger UI; API clients get the endpoint list.
    accept = (request.headers.get("accept") or "").lower()
    if "text/html" in accept:
        return RedirectResponse(url="/docs")
    return {
        "name": "Dartpair",
        "docs": "/docs",
        "health": "/health",
        "endpoints": [
            "WS /ws",
            "GET /matches/{code}",
            "GET /checkout?remaining=<int>",
            "GET /bot/profile?skill_level=<1-10>",
        ],
    }


@router.get("/health")
def health(request: Request):
    return {"status": "ok", "sessions": len(_gateway(request).registry.list_sessions())}


@router.get("/matches/{code}", response_model=MatchStateDTO)
def get_match(code: str, request: Request) -> MatchStateDTO:
    session = _gateway(request).registry.get_session(code)
    if session is None:
        raise HTTPException(status_code=404, detail="session not found")
    return match_to_dto(session.match)


@router.get("/checkout", response_model=CheckoutResponseDTO)
def checkout(remaining: int = Query(..., ge=0, le=1000)) -> CheckoutResponseDTO:
    routes = suggest_checkouts(remaining)
    return CheckoutResponseDTO(
        remaining=remaining,
        routes=[[d.label for d in route] for route in routes],
    )


@router.get("/bot/profile", response_model=BotProfileDTO)
def bot_profile(skill_level: int = Query(..., ge=1, le=10)) -> BotProfileDTO:
    model = OpponentShotModel(skill_level)
    stats = model.expected_stats()
    return BotProfileDTO(
        skill_level=skill_level,
        description=model.skill_description,
        average_score=stats["average_score"],
        accuracy=int(stats["accuracy"]),
        double_accuracy=int(stats["double_accuracy"]),
        triple_accuracy=int(stats["triple_accuracy"]),
    )


@router.websocket("/ws")
async def match_socket(websocket: WebSocket) -> None:
    gateway = _gateway(websocket)
    await websocket.accept()
    connection = WebSocketConnection(websocket)
    gateway.connect(connection)
    try:
        while True:
            text = await websocket.receive_text()
            try:
                message = json.loads(text)
            except ValueError:
                message = None
            # Malformed JSON reaches the gateway as None and is answered with bad_request.
            await gateway.handle(connection.client_id, message)
    except WebSocketDisconnect:
        pass
    finally:
        await gateway.disconnect(connection.client_id)


async def _sweep_forever(gateway: MatchGateway, interval_s: float) -> None:
    while True:
        await asyncio.sleep(interval_s)
        gateway.sweep()


def create_app(config: ServerConfig | None = None) -> FastAPI:
    config = config or ServerConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logging(config.log_level)
        sweeper = asyncio.create_task(_sweep_forever(app.state.gateway, config.cleanup_interval_s))
        logger.info("server started", host=config.host, port=config.port)
        try:
            yield
        finally:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
            await app.state.gateway.shutdown()
            logger.info("server stopped")

    app = FastAPI(title="Dartpair", lifespan=lifespan)
    registry = SessionRegistry(config)
    app.state.config = config
    app.state.registry = registry
    app.state.gateway = MatchGateway(registry, config)
    app.include_router(router)
    return app


app = create_app()
