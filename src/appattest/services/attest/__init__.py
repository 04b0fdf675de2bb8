"""Attestation and assertion flows for a hardware-backed device key."""
from .assertion import AssertionCoordinator
from .attestation import AttestationCoordinator
from .client import ChallengeClient, RelyingPartyClient, VerificationClient
from .enums import ChallengeKind, KeyState, LifecycleEvent, ProvisionErrorKind, TransportErrorKind, VerificationStatus
from .errors import (
    AppAttestError,
    IllegalTransition,
    KeyStoreError,
    ProvisionError,
    ServerError,
    SettingsError,
    StateError,
    TransportError,
)
from .models import (
    AssertionPayload,
    AssertionProof,
    AttestationProof,
    Challenge,
    ClientDataHash,
    CorrelationId,
    KeyIdentifier,
    VerificationOutcome,
)
from .provisioner import KeyProvisioner, SoftwareKeyProvisioner
from .state_machine import KeyLifecycle, KeyLifecycleStateMachine
from .store import FileKeyIdStore, KeyIdStore, KeyringKeyIdStore, KeyringUnavailableError

__all__ = [
    "AssertionCoordinator",
    "AttestationCoordinator",
    "ChallengeClient",
    "RelyingPartyClient",
    "VerificationClient",
    "ChallengeKind",
    "KeyState",
    "LifecycleEvent",
    "ProvisionErrorKind",
    "TransportErrorKind",
    "VerificationStatus",
    "AppAttestError",
    "IllegalTransition",
    "KeyStoreError",
    "ProvisionError",
    "ServerError",
    "SettingsError",
    "StateError",
    "TransportError",
    "AssertionPayload",
    "AssertionProof",
    "AttestationProof",
    "Challenge",
    "ClientDataHash",
    "CorrelationId",
    "KeyIdentifier",
    "VerificationOutcome",
    "KeyProvisioner",
    "SoftwareKeyProvisioner",
    "KeyLifecycle",
    "KeyLifecycleStateMachine",
    "FileKeyIdStore",
    "KeyIdStore",
    "KeyringKeyIdStore",
    "KeyringUnavailableError",
]
