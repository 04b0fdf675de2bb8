from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from appattest.services.settings import Settings

from .assertion import AssertionCoordinator
from .attestation import AttestationCoordinator
from .client import RelyingPartyClient
from .enums import KeyState, LifecycleEvent
from .models import KeyIdentifier, VerificationOutcome
from .provisioner import KeyProvisioner, SoftwareKeyProvisioner
from .state_machine import KeyLifecycle, KeyLifecycleStateMachine, StateObserver
from .store import FileKeyIdStore, KeyIdStore, KeyringKeyIdStore

__all__ = ["AppAttestService", "EnrollmentResult", "build_store"]

_log = logging.getLogger("appattest.service")


def build_store(settings: Settings) -> KeyIdStore:
    if settings.key_store == "keyring":
        return KeyringKeyIdStore()
    return FileKeyIdStore.in_base_dir(settings.base_path)


@dataclass(slots=True)
class EnrollmentResult:
    key_id: KeyIdentifier
    outcome: VerificationOutcome
    attestation_object: str | None
    attempts: int

    def as_dict(self) -> dict[str, Any]:
        return {
            "key_id": self.key_id,
            "attempts": self.attempts,
            "attestation_object": self.attestation_object,
            **self.outcome.as_dict(),
        }


class AppAttestService:
    """Wires store, provisioner, relying-party client and both coordinators."""

    def __init__(
        self,
        *,
        store: KeyIdStore,
        provisioner: KeyProvisioner,
        client: RelyingPartyClient,
        subject_id: str,
        client_id: str,
        timeout: float | None = None,
    ) -> None:
        self.store = store
        self.machine = KeyLifecycleStateMachine.from_store(store)
        self.timeout = timeout
        self.attestation = AttestationCoordinator(self.machine, provisioner, client, client, store)
        self.assertion = AssertionCoordinator(
            self.machine, provisioner, client, client, subject_id=subject_id, client_id=client_id
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        provisioner: KeyProvisioner | None = None,
        store: KeyIdStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "AppAttestService":
        return cls(
            store=store or build_store(settings),
            provisioner=provisioner or SoftwareKeyProvisioner(settings.keys_dir()),
            client=RelyingPartyClient.from_settings(settings, transport=transport),
            subject_id=settings.subject_id,
            client_id=settings.client_id,
            timeout=settings.timeout,
        )

    @property
    def lifecycle(self) -> KeyLifecycle:
        return self.machine.current

    def subscribe(self, observer: StateObserver):
        return self.machine.subscribe(observer)

    async def enroll(self, *, retries: int = 0) -> EnrollmentResult:
        """Generate a key and attest it, resubmitting the same proof up to ``retries`` times."""
        proofs: list[str] = []

        def _capture(lifecycle: KeyLifecycle) -> None:
            if lifecycle.attestation_proof is not None:
                proofs.append(lifecycle.attestation_proof.b64())

        unsubscribe = self.machine.subscribe(_capture)
        try:
            if self.machine.state is KeyState.NO_KEY:
                await self.attestation.generate_key()
            if self.machine.state is KeyState.ATTESTED:
                _capture(self.machine.current)
                outcome = await self.attestation.resubmit(timeout=self.timeout)
            else:
                outcome = await self.attestation.attest(timeout=self.timeout)
            attempts = 1
            while not outcome.is_accepted and attempts <= retries:
                _log.info("resubmitting attestation (attempt %d of %d)", attempts + 1, retries + 1)
                outcome = await self.attestation.resubmit(timeout=self.timeout)
                attempts += 1
        finally:
            unsubscribe()

        key_id = self.machine.current.require_key_id(LifecycleEvent.ATTESTATION_VERIFIED)
        return EnrollmentResult(
            key_id=key_id,
            outcome=outcome,
            attestation_object=proofs[0] if proofs else None,
            attempts=attempts,
        )

    async def assert_possession(self) -> VerificationOutcome:
        return await self.assertion.assert_possession(timeout=self.timeout)

