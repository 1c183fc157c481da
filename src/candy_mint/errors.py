from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    CONFIGURATION_ERROR = "ConfigurationError"
    NOT_FOUND = "NotFound"
    NETWORK_FAILURE = "NetworkFailure"
    DECODE_FAILURE = "DecodeFailure"
    USER_REJECTED = "UserRejected"
    SIMULATION_OR_GUARD_REJECTED = "SimulationOrGuardRejected"
    UNKNOWN = "Unknown"

    @property
    def retriable(self) -> bool:
        """Whether a fresh attempt can succeed without an operator fix."""
        return self not in (
            ErrorKind.CONFIGURATION_ERROR,
            ErrorKind.NOT_FOUND,
            ErrorKind.DECODE_FAILURE,
        )


class MintError(Exception):
    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind

    @property
    def message(self) -> str:
        return str(self)


class ConfigurationError(MintError):
    kind = ErrorKind.CONFIGURATION_ERROR


class ReadError(MintError):
    """Raised by account reads: NotFound, NetworkFailure or DecodeFailure."""


class SubmitError(MintError):
    """Raised by the submission pipeline, already classified."""


class WalletRejectedError(Exception):
    """The wallet holder declined to sign."""
