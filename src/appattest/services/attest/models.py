"""Value types exchanged between the coordinators, provisioner and relying party."""
from __future__ import annotations

import base64
import hashlib
import json
from dataclasses import dataclass
from typing import Any, Mapping, NewType

from appattest.config.const import CLIENT_DATA_HASH_SIZE

from .enums import ChallengeKind, VerificationStatus

__all__ = [
    "KeyIdentifier",
    "CorrelationId",
    "Challenge",
    "ClientDataHash",
    "AttestationProof",
    "AssertionProof",
    "AssertionPayload",
    "VerificationOutcome",
]

KeyIdentifier = NewType("KeyIdentifier", str)
CorrelationId = NewType("CorrelationId", str)


@dataclass(frozen=True, slots=True)
class Challenge:
    """Single-use, server-issued challenge."""

    kind: ChallengeKind
    value: str

    def __post_init__(self) -> None:
        if not self.value:
            raise ValueError(f"empty {self.kind} challenge")

    def encode(self) -> bytes:
        return self.value.encode("utf-8")


@dataclass(frozen=True, slots=True)
class ClientDataHash:
    """SHA-256 digest of the bytes the client vouches for."""

    digest: bytes

    def __post_init__(self) -> None:
        if len(self.digest) != CLIENT_DATA_HASH_SIZE:
            raise ValueError(f"client data hash must be {CLIENT_DATA_HASH_SIZE} bytes, got {len(self.digest)}")

    @classmethod
    def of(cls, data: bytes) -> "ClientDataHash":
        return cls(hashlib.sha256(data).digest())

    @classmethod
    def of_challenge(cls, challenge: Challenge) -> "ClientDataHash":
        return cls.of(challenge.encode())

    def hex(self) -> str:
        return self.digest.hex()


@dataclass(frozen=True, slots=True)
class AttestationProof:
    data: bytes

    def b64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


@dataclass(frozen=True, slots=True)
class AssertionProof:
    data: bytes

    def b64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


@dataclass(frozen=True, slots=True)
class AssertionPayload:
    """Client data signed during an assertion.

    The wire keys (``userId``, ``client_id``) are the ones the relying party
    parses; serialization is compact JSON with sorted keys so that identical
    input always hashes to the same digest.
    """

    subject_id: str
    client_id: str
    challenge: str

    def as_wire(self) -> dict[str, str]:
        return {"userId": self.subject_id, "client_id": self.client_id, "challenge": self.challenge}

    def to_bytes(self) -> bytes:
        return json.dumps(self.as_wire(), sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> "AssertionPayload":
        data = json.loads(raw.decode("utf-8"))
        if not isinstance(data, Mapping):
            raise ValueError("assertion payload must be a JSON object")
        missing = [key for key in ("userId", "client_id", "challenge") if key not in data]
        if missing:
            raise ValueError(f"assertion payload is missing {', '.join(missing)}")
        return cls(
            subject_id=str(data["userId"]),
            client_id=str(data["client_id"]),
            challenge=str(data["challenge"]),
        )

    def client_data_hash(self) -> ClientDataHash:
        return ClientDataHash.of(self.to_bytes())


@dataclass(frozen=True, slots=True)
class VerificationOutcome:
    """Terminal result of one proof submission."""

    status: VerificationStatus
    reason: str | None = None
    status_code: int | None = None

    @classmethod
    def accepted(cls, status_code: int = 200) -> "VerificationOutcome":
        return cls(VerificationStatus.ACCEPTED, status_code=status_code)

    @classmethod
    def rejected(cls, reason: str, *, status_code: int | None = None) -> "VerificationOutcome":
        return cls(VerificationStatus.REJECTED, reason=reason, status_code=status_code)

    @classmethod
    def transport_failure(cls, reason: str) -> "VerificationOutcome":
        return cls(VerificationStatus.TRANSPORT_FAILURE, reason=reason)

    @property
    def is_accepted(self) -> bool:
        return self.status is VerificationStatus.ACCEPTED

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"status": str(self.status)}
        if self.reason is not None:
            data["reason"] = self.reason
        if self.status_code is not None:
            data["status_code"] = self.status_code
        return data
