from __future__ import annotations
from enum import IntEnum


class ErrorCode(IntEnum):
    """Closed set of oracle error codes. Callers branch on the numeric value."""

    NOT_AUTHORIZED = 200
    INVALID_SENSOR = 201
    INVALID_ASSET = 202
    INVALID_DATA = 203
    PAUSED = 204
    ALREADY_REGISTERED = 205
    TIMESTAMP_TOO_OLD = 206
    INVALID_ENERGY_TYPE = 207

    @property
    def label(self) -> str:
        return "".join(part.capitalize() for part in self.name.split("_"))


class OracleError(Exception):
    """A rejected transition. Never escapes OracleState's public operations."""

    def __init__(self, code: ErrorCode, message: str = "") -> None:
        self.code = code
        super().__init__(message or code.label)


class TxAborted(Exception):
    """Unrecoverable arithmetic condition (uint128 overflow) for a single call."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)
