"""Error classes raised by the attestation client."""

from __future__ import annotations

from .enums import KeyState, LifecycleEvent, ProvisionErrorKind, TransportErrorKind

__all__ = [
    "AppAttestError",
    "ProvisionError",
    "TransportError",
    "ServerError",
    "StateError",
    "IllegalTransition",
    "KeyStoreError",
    "SettingsError",
]


class AppAttestError(RuntimeError):
    """Base error for the attestation client."""


class ProvisionError(AppAttestError):
    """Raised when the platform attestation service fails or refuses an operation."""

    def __init__(self, kind: ProvisionErrorKind, message: str | None = None) -> None:
        self.kind = kind
        super().__init__(message or f"provisioning failed: {kind}")


class TransportError(AppAttestError):
    """Raised for network, timeout and decoding failures talking to the relying party."""

    def __init__(self, kind: TransportErrorKind, message: str | None = None, *, url: str | None = None) -> None:
        self.kind = kind
        self.url = url
        super().__init__(message or f"transport failure: {kind}")


class ServerError(AppAttestError):
    """Raised when the relying party answers with a non-success status."""

    def __init__(self, message: str, *, status_code: int, payload: object | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class StateError(AppAttestError):
    """Base error for key lifecycle violations."""


class IllegalTransition(StateError):
    """Raised when an event is not legal from the current lifecycle state."""

    def __init__(self, state: KeyState, event: LifecycleEvent, detail: str | None = None) -> None:
        self.state = state
        self.event = event
        message = f"event '{event}' is not allowed in state '{state}'"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class KeyStoreError(AppAttestError):
    """Raised when the durable key identifier store cannot be read or written."""


class SettingsError(AppAttestError):
    """Raised for missing or malformed configuration."""
