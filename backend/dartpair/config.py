from __future__ import annotations

import os
from dataclasses import dataclass


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, str(default)))


@dataclass(frozen=True)
class ServerConfig:
    """
    Runtime knobs for the pairing server.

    Everything is memory-resident, so these only control timing and limits:
    - session_ttl_s: idle time after which a session is swept
    - cleanup_interval_s: how often the sweeper runs
    - join_window_s / join_max_attempts: per-client join throttle
    - bot_delay_s: pause before a bot opponent throws (0 = immediately)
    """

    session_ttl_s: float = 2 * 60 * 60
    cleanup_interval_s: float = 300.0
    join_window_s: float = 60.0
    join_max_attempts: int = 10
    max_code_attempts: int = 100
    bot_delay_s: float = 1.5
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3001

    def __post_init__(self) -> None:
        if self.session_ttl_s <= 0:
            raise ValueError("session_ttl_s must be > 0")
        if self.cleanup_interval_s <= 0:
            raise ValueError("cleanup_interval_s must be > 0")
        if self.join_window_s <= 0:
            raise ValueError("join_window_s must be > 0")
        if self.join_max_attempts <= 0:
            raise ValueError("join_max_attempts must be > 0")
        if self.max_code_attempts <= 0:
            raise ValueError("max_code_attempts must be > 0")
        if self.bot_delay_s < 0:
            raise ValueError("bot_delay_s must be >= 0")

    @classmethod
    def from_env(cls) -> ServerConfig:
        return cls(
            session_ttl_s=_env_float("DARTPAIR_SESSION_TTL_S", cls.session_ttl_s),
            cleanup_interval_s=_env_float("DARTPAIR_CLEANUP_INTERVAL_S", cls.cleanup_interval_s),
            join_window_s=_env_float("DARTPAIR_JOIN_WINDOW_S", cls.join_window_s),
            join_max_attempts=_env_int("DARTPAIR_JOIN_MAX_ATTEMPTS", cls.join_max_attempts),
            max_code_attempts=_env_int("DARTPAIR_MAX_CODE_ATTEMPTS", cls.max_code_attempts),
            bot_delay_s=_env_float("DARTPAIR_BOT_DELAY_S", cls.bot_delay_s),
            log_level=os.environ.get("DARTPAIR_LOG_LEVEL", cls.log_level).upper(),
            host=os.environ.get("DARTPAIR_HOST", cls.host),
            port=_env_int("DARTPAIR_PORT", cls.port),
        )
