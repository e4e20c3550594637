"""
Error taxonomy shared by the match model, the session registry and the gateway.

All of these are recovered at the gateway boundary and turned into a
`session_error` for the offending client; none of them should end the process.
"""

from __future__ import annotations


class DartpairError(Exception):
    reason = "error"


class InvalidAction(DartpairError, ValueError):
    reason = "invalid_action"


class InvalidThrow(InvalidAction):
    reason = "invalid_throw"


class InvalidSettings(DartpairError, ValueError):
    reason = "invalid_settings"


class SessionNotFound(DartpairError, LookupError):
    reason = "session_not_found"

    def __init__(self, message: str = "session not found, please rejoin") -> None:
        super().__init__(message)


class InvalidCodeFormat(DartpairError, ValueError):
    reason = "invalid_code_format"


class RateLimited(DartpairError):
    reason = "rate_limited"


class PairingCodeGenerationFailure(DartpairError, RuntimeError):
    reason = "pairing_code_failure"
