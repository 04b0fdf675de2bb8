"""Enumerations describing key lifecycle phases, events and outcomes."""
from __future__ import annotations

from enum import Enum

__all__ = [
    "KeyState",
    "LifecycleEvent",
    "ChallengeKind",
    "ProvisionErrorKind",
    "TransportErrorKind",
    "VerificationStatus",
]


class _StrEnum(str, Enum):
    """Simple ``str``-backed enum compatible with Python 3.10."""

    def __str__(self) -> str:
        return str(self.value)


class KeyState(_StrEnum):
    NO_KEY = "no_key"
    KEY_GENERATED = "key_generated"
    ATTESTATION_CHALLENGE_RECEIVED = "attestation_challenge_received"
    ATTESTED = "attested"
    # KEY_PERSISTED doubles as the idle state of the assertion cycle
    KEY_PERSISTED = "key_persisted"
    ASSERTION_CHALLENGE_RECEIVED = "assertion_challenge_received"
    ASSERTION_SIGNED = "assertion_signed"
    ASSERTION_VERIFIED = "assertion_verified"

    @property
    def is_persisted(self) -> bool:
        return self in _PERSISTED_STATES


_PERSISTED_STATES = frozenset(
    {
        KeyState.KEY_PERSISTED,
        KeyState.ASSERTION_CHALLENGE_RECEIVED,
        KeyState.ASSERTION_SIGNED,
        KeyState.ASSERTION_VERIFIED,
    }
)


class LifecycleEvent(_StrEnum):
    KEY_GENERATED = "key_generated"
    ATTESTATION_CHALLENGE_RECEIVED = "attestation_challenge_received"
    KEY_ATTESTED = "key_attested"
    ATTESTATION_VERIFIED = "attestation_verified"
    ASSERTION_CHALLENGE_RECEIVED = "assertion_challenge_received"
    ASSERTION_SIGNED = "assertion_signed"
    ASSERTION_VERIFIED = "assertion_verified"
    ASSERTION_COMPLETED = "assertion_completed"
    ASSERTION_ABANDONED = "assertion_abandoned"


class ChallengeKind(_StrEnum):
    ATTESTATION = "attestation"
    ASSERTION = "assertion"


class ProvisionErrorKind(_StrEnum):
    UNSUPPORTED = "unsupported"
    DENIED = "denied"
    HARDWARE_FAILURE = "hardware_failure"


class TransportErrorKind(_StrEnum):
    NETWORK_FAILURE = "network_failure"
    DECODE_FAILURE = "decode_failure"
    TIMEOUT = "timeout"


class VerificationStatus(_StrEnum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    TRANSPORT_FAILURE = "transport_failure"
