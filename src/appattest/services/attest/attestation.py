"""One-time attestation of a freshly generated key."""
from __future__ import annotations

import logging

from .client import ChallengeClient, VerificationClient
from .enums import KeyState, LifecycleEvent
from .errors import IllegalTransition
from .models import ClientDataHash, KeyIdentifier, VerificationOutcome
from .provisioner import KeyProvisioner
from .state_machine import KeyLifecycle, KeyLifecycleStateMachine
from .store import KeyIdStore

__all__ = ["AttestationCoordinator"]

_log = logging.getLogger("appattest.attestation")


class AttestationCoordinator:
    """Drives key generation, attestation and verification.

    Steps run strictly in order, one await per external call.  A rejected
    submission leaves the lifecycle in ``ATTESTED`` so :meth:`resubmit` can send
    the very same proof again; the proof is bound to the original challenge, so
    no new challenge is ever substituted.
    """

    def __init__(
        self,
        machine: KeyLifecycleStateMachine,
        provisioner: KeyProvisioner,
        challenges: ChallengeClient,
        verifier: VerificationClient,
        store: KeyIdStore,
    ) -> None:
        self.machine = machine
        self.provisioner = provisioner
        self.challenges = challenges
        self.verifier = verifier
        self.store = store

    async def generate_key(self) -> KeyIdentifier:
        self.machine.require(KeyState.NO_KEY, event=LifecycleEvent.KEY_GENERATED)
        key_id = await self.provisioner.generate_key()
        self.machine.transition(LifecycleEvent.KEY_GENERATED, key_id=key_id)
        _log.info("key generated")
        _log.debug("key id: %s", key_id)
        return key_id

    async def attest(self, *, timeout: float | None = None) -> VerificationOutcome:
        lifecycle = self.machine.require(
            KeyState.KEY_GENERATED,
            KeyState.ATTESTATION_CHALLENGE_RECEIVED,
            event=LifecycleEvent.ATTESTATION_CHALLENGE_RECEIVED,
        )
        key_id = lifecycle.require_key_id(LifecycleEvent.ATTESTATION_CHALLENGE_RECEIVED)

        challenge, correlation_id = await self.challenges.fetch_attestation_challenge(timeout=timeout)
        self.machine.transition(
            LifecycleEvent.ATTESTATION_CHALLENGE_RECEIVED,
            challenge=challenge,
            correlation_id=correlation_id,
        )
        _log.debug("attestation challenge %r (correlation %s)", challenge.value, correlation_id)

        client_data_hash = ClientDataHash.of_challenge(challenge)
        proof = await self.provisioner.attest(key_id, client_data_hash)
        lifecycle = self.machine.transition(LifecycleEvent.KEY_ATTESTED, attestation_proof=proof)
        _log.info("key attested (%d bytes)", len(proof.data))

        return await self._submit(lifecycle, timeout=timeout)

    async def resubmit(self, *, timeout: float | None = None) -> VerificationOutcome:
        """Send the pending attestation proof again without re-attesting."""
        lifecycle = self.machine.require(KeyState.ATTESTED, event=LifecycleEvent.ATTESTATION_VERIFIED)
        return await self._submit(lifecycle, timeout=timeout)

    async def _submit(self, lifecycle: KeyLifecycle, *, timeout: float | None) -> VerificationOutcome:
        key_id = lifecycle.require_key_id(LifecycleEvent.ATTESTATION_VERIFIED)
        if lifecycle.attestation_proof is None or not lifecycle.correlation_id:
            raise IllegalTransition(lifecycle.state, LifecycleEvent.ATTESTATION_VERIFIED, "no pending attestation proof")

        outcome = await self.verifier.verify_attestation(
            lifecycle.attestation_proof,
            key_id,
            lifecycle.correlation_id,
            timeout=timeout,
        )
        if not outcome.is_accepted:
            _log.warning("attestation not verified: %s (%s)", outcome.status, outcome.reason)
            return outcome

        self.store.save(key_id)
        self.machine.transition(LifecycleEvent.ATTESTATION_VERIFIED)
        _log.info("attestation verified by server; key persisted")
        return outcome
