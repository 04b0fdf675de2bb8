from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

import httpx
import pytest

from appattest.services.attest import (
    AssertionProof,
    AttestationProof,
    ClientDataHash,
    FileKeyIdStore,
    KeyIdentifier,
    ProvisionError,
    ProvisionErrorKind,
    RelyingPartyClient,
)

ATTESTATION_CHALLENGE_URL = "https://rp.test/generate-attestation-challenge"
VERIFY_ATTESTATION_URL = "https://rp.test/verify-attestation"
ASSERTION_CHALLENGE_URL = "https://rp.test/generate-assertion-challenge"
VERIFY_ASSERTION_URL = "https://rp.test/verify-assertion"


@pytest.fixture
def anyio_backend():
    return "asyncio"


class EchoProvisioner:
    """Provisioner double whose proofs embed the client data hash they were given."""

    def __init__(self, key_id: str = "key-1") -> None:
        self.key_id = KeyIdentifier(key_id)
        self.generated = 0
        self.attest_calls: list[tuple[str, ClientDataHash]] = []
        self.assert_calls: list[tuple[str, ClientDataHash]] = []
        self.fail_generate: ProvisionErrorKind | None = None
        self.fail_assert: ProvisionErrorKind | None = None

    async def generate_key(self) -> KeyIdentifier:
        if self.fail_generate:
            raise ProvisionError(self.fail_generate)
        self.generated += 1
        return self.key_id

    async def attest(self, key_id: KeyIdentifier, client_data_hash: ClientDataHash) -> AttestationProof:
        if any(seen == key_id for seen, _ in self.attest_calls):
            raise ProvisionError(ProvisionErrorKind.DENIED, "already attested")
        self.attest_calls.append((key_id, client_data_hash))
        return AttestationProof(client_data_hash.digest)

    async def assert_key(self, key_id: KeyIdentifier, client_data_hash: ClientDataHash) -> AssertionProof:
        if self.fail_assert:
            raise ProvisionError(self.fail_assert)
        self.assert_calls.append((key_id, client_data_hash))
        return AssertionProof(client_data_hash.digest)


@dataclass
class FakeRelyingParty:
    """Serves challenges from queues and answers verification calls with scripted status codes."""

    attestation_challenges: list[tuple[str, str]] = field(default_factory=lambda: [("ch1", "cid1")])
    assertion_challenges: list[str] = field(default_factory=lambda: ["as1", "as2", "as3"])
    attestation_statuses: list[int] = field(default_factory=lambda: [200])
    assertion_statuses: list[int] = field(default_factory=lambda: [200])
    requests: list[httpx.Request] = field(default_factory=list)

    def bodies(self, url: str) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests if str(r.url) == url]

    def calls(self, url: str) -> int:
        return sum(1 for r in self.requests if str(r.url) == url)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url == ATTESTATION_CHALLENGE_URL:
            challenge, correlation_id = self.attestation_challenges.pop(0)
            return httpx.Response(200, json={"attestationChallenge": challenge, "correlationId": correlation_id})
        if url == ASSERTION_CHALLENGE_URL:
            return httpx.Response(200, json={"assertionChallenge": self.assertion_challenges.pop(0)})
        if url == VERIFY_ATTESTATION_URL:
            status = self.attestation_statuses.pop(0) if len(self.attestation_statuses) > 1 else self.attestation_statuses[0]
            return httpx.Response(status, json={"detail": "ok" if status == 200 else "attestation rejected"})
        if url == VERIFY_ASSERTION_URL:
            status = self.assertion_statuses.pop(0) if len(self.assertion_statuses) > 1 else self.assertion_statuses[0]
            return httpx.Response(status, json={"detail": "ok" if status == 200 else "assertion rejected"})
        return httpx.Response(404)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def relying_party() -> FakeRelyingParty:
    return FakeRelyingParty()


@pytest.fixture
def rp_client(relying_party: FakeRelyingParty) -> RelyingPartyClient:
    return RelyingPartyClient(
        attestation_challenge_url=ATTESTATION_CHALLENGE_URL,
        verify_attestation_url=VERIFY_ATTESTATION_URL,
        assertion_challenge_url=ASSERTION_CHALLENGE_URL,
        verify_assertion_url=VERIFY_ASSERTION_URL,
        transport=relying_party.transport(),
    )


@pytest.fixture
def provisioner() -> EchoProvisioner:
    return EchoProvisioner()


@pytest.fixture
def store(tmp_path) -> FileKeyIdStore:
    return FileKeyIdStore(tmp_path / "state" / "key-id.json")
