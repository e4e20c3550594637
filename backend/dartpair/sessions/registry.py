from __future__ import annotations

import re
import secrets
import time
from collections import deque
from dataclasses import dataclass, field
from threading import RLock
from typing import Callable

import structlog

from dartpair.config import ServerConfig
from dartpair.errors import PairingCodeGenerationFailure
from dartpair.scoring.match import Match
from dartpair.scoring.settings import MatchSettings

logger = structlog.get_logger()

# Upper+lower case alphanumerics without the easily confused I, O, l, o, 0, 1.
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz23456789"
CODE_LENGTH = 8
CODE_PATTERN = re.compile(r"^[A-Za-z0-9]{8}$")


def generate_code(length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


@dataclass
class Session:
    code: str
    master_code: str
    match: Match
    created_at: float
    last_activity: float
    clients: set[str] = field(default_factory=set)


@dataclass(frozen=True)
class CreatedSession:
    code: str
    master_code: str
    match: Match


@dataclass(frozen=True)
class JoinAttempt:
    blocked: bool
    remaining: int


class SessionRegistry:
    """
    In-memory owner of every live match, keyed by pairing code.

    Each session has a player-facing `code` and a `master_code` alias for host
    re-access; both resolve to the same Session object. Sessions idle for longer
    than the TTL are dropped by `cleanup_expired_sessions`.
    """

    def __init__(
        self,
        config: ServerConfig | None = None,
        *,
        clock: Callable[[], float] = time.time,
        code_factory: Callable[[int], str] = generate_code,
    ) -> None:
        self._config = config or ServerConfig()
        self._clock = clock
        self._code_factory = code_factory
        self._lock = RLock()
        self._sessions: dict[str, Session] = {}
        self._master_codes: dict[str, str] = {}  # master code -> primary code
        self._join_attempts: dict[str, deque[float]] = {}  # client id -> attempt times

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
            self._master_codes.clear()
            self._join_attempts.clear()

    def _is_taken(self, code: str) -> bool:
        return code in self._sessions or code in self._master_codes

    def _new_code(self) -> str:
        for _ in range(self._config.max_code_attempts):
            code = self._code_factory(CODE_LENGTH)
            if not self._is_taken(code):
                return code
        raise PairingCodeGenerationFailure(
            f"no free pairing code after {self._config.max_code_attempts} attempts"
        )

    def create_session(self, settings: MatchSettings | None = None) -> CreatedSession:
        match = Match.new(settings)
        with self._lock:
            code = self._new_code()
            # Reserve the primary code before drawing the alias so they can't collide.
            now = self._clock()
            session = Session(code=code, master_code="", match=match, created_at=now, last_activity=now)
            self._sessions[code] = session
            try:
                master_code = self._new_code()
            except PairingCodeGenerationFailure:
                del self._sessions[code]
                raise
            session.master_code = master_code
            self._master_codes[master_code] = code
        logger.info("session created", code=code, starting_score=match.settings.starting_score)
        return CreatedSession(code=code, master_code=master_code, match=match)

    def get_session(self, code: str) -> Session | None:
        with self._lock:
            session = self._sessions.get(code)
            if session is not None:
                return session
            primary = self._master_codes.get(code)
            if primary is None:
                return None
            return self._sessions.get(primary)

    def add_client_to_session(self, code: str, client_id: str) -> bool:
        with self._lock:
            session = self.get_session(code)
            if session is None:
                return False
            session.clients.add(client_id)
            session.last_activity = self._clock()
            return True

    def record_activity(self, code: str) -> bool:
        with self._lock:
            session = self.get_session(code)
            if session is None:
                return False
            session.last_activity = self._clock()
            return True

    def remove_client_from_session(self, code: str, client_id: str) -> bool:
        with self._lock:
            session = self.get_session(code)
            if session is None or client_id not in session.clients:
                return False
            session.clients.discard(client_id)
            session.last_activity = self._clock()
            return True

    def remove_client_from_all_sessions(self, client_id: str) -> list[Session]:
        """Drop a disconnected client everywhere; returns the sessions it left."""
        left: list[Session] = []
        with self._lock:
            for session in self._sessions.values():
                if client_id in session.clients:
                    session.clients.discard(client_id)
                    session.last_activity = self._clock()
                    left.append(session)
        return left

    def record_join_attempt(self, client_id: str) -> JoinAttempt:
        """
        Sliding-window throttle on join attempts per client. Blocked attempts are
        not counted, so a client regains attempts as old ones leave the window.
        """
        now = self._clock()
        window = self._config.join_window_s
        limit = self._config.join_max_attempts
        with self._lock:
            attempts = self._join_attempts.setdefault(client_id, deque())
            while attempts and now - attempts[0] >= window:
                attempts.popleft()
            if len(attempts) >= limit:
                return JoinAttempt(blocked=True, remaining=0)
            attempts.append(now)
            return JoinAttempt(blocked=False, remaining=limit - len(attempts))

    def cleanup_expired_sessions(self) -> list[str]:
        """Remove sessions idle for longer than the TTL; returns their codes."""
        now = self._clock()
        ttl = self._config.session_ttl_s
        with self._lock:
            expired = [code for code, s in self._sessions.items() if now - s.last_activity > ttl]
            for code in expired:
                session = self._sessions.pop(code)
                self._master_codes.pop(session.master_code, None)
            for client_id, attempts in list(self._join_attempts.items()):
                if not attempts or now - attempts[-1] >= self._config.join_window_s:
                    del self._join_attempts[client_id]
        for code in expired:
            logger.info("session expired", code=code)
        return expired

    def list_sessions(self) -> list[str]:
        with self._lock:
            return list(self._sessions.keys())
