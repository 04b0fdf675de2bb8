"""Repeated assertions with an attested key."""
from __future__ import annotations

import logging

from .client import ChallengeClient, VerificationClient
from .enums import KeyState, LifecycleEvent
from .errors import ProvisionError
from .models import AssertionPayload, VerificationOutcome
from .provisioner import KeyProvisioner
from .state_machine import KeyLifecycleStateMachine

__all__ = ["AssertionCoordinator"]

_log = logging.getLogger("appattest.assertion")


class AssertionCoordinator:
    """Runs one challenge → sign → verify cycle per call.

    Each cycle consumes exactly one challenge.  Whatever the outcome, the
    lifecycle returns to idle (``KEY_PERSISTED``) and the challenge is dropped.
    """

    def __init__(
        self,
        machine: KeyLifecycleStateMachine,
        provisioner: KeyProvisioner,
        challenges: ChallengeClient,
        verifier: VerificationClient,
        *,
        subject_id: str,
        client_id: str,
    ) -> None:
        self.machine = machine
        self.provisioner = provisioner
        self.challenges = challenges
        self.verifier = verifier
        self.subject_id = subject_id
        self.client_id = client_id

    async def assert_possession(self, *, timeout: float | None = None) -> VerificationOutcome:
        lifecycle = self.machine.require(
            KeyState.KEY_PERSISTED,
            KeyState.ASSERTION_CHALLENGE_RECEIVED,
            KeyState.ASSERTION_SIGNED,
            event=LifecycleEvent.ASSERTION_CHALLENGE_RECEIVED,
        )
        key_id = lifecycle.require_key_id(LifecycleEvent.ASSERTION_CHALLENGE_RECEIVED)

        challenge = await self.challenges.fetch_assertion_challenge(key_id, timeout=timeout)
        self.machine.transition(LifecycleEvent.ASSERTION_CHALLENGE_RECEIVED, challenge=challenge)

        payload = AssertionPayload(subject_id=self.subject_id, client_id=self.client_id, challenge=challenge.value)
        client_data = payload.to_bytes()
        try:
            proof = await self.provisioner.assert_key(key_id, payload.client_data_hash())
        except ProvisionError:
            self.machine.transition(LifecycleEvent.ASSERTION_ABANDONED)
            raise
        self.machine.transition(LifecycleEvent.ASSERTION_SIGNED)

        outcome = await self.verifier.verify_assertion(client_data, proof, key_id, timeout=timeout)
        if outcome.is_accepted:
            self.machine.transition(LifecycleEvent.ASSERTION_VERIFIED)
            self.machine.transition(LifecycleEvent.ASSERTION_COMPLETED)
            _log.info("assertion verified by server")
        else:
            self.machine.transition(LifecycleEvent.ASSERTION_ABANDONED)
            _log.warning("assertion not verified: %s (%s)", outcome.status, outcome.reason)
        return outcome
