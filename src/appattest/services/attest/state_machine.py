"""Key lifecycle state machine shared by the attestation and assertion flows.

Every change goes through :meth:`KeyLifecycleStateMachine.transition`, which
either returns the new immutable :class:`KeyLifecycle` value or raises
:class:`IllegalTransition`.  Observers are notified with the new value after
each successful transition; an observer that raises is logged and skipped.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable, Protocol

from .enums import ChallengeKind, KeyState, LifecycleEvent
from .errors import IllegalTransition
from .models import AttestationProof, Challenge, CorrelationId, KeyIdentifier

__all__ = ["KeyLifecycle", "KeyLifecycleStateMachine", "StateObserver", "TRANSITIONS"]

_log = logging.getLogger("appattest.lifecycle")


@dataclass(frozen=True, slots=True)
class KeyLifecycle:
    """Snapshot of the device identity.

    ``challenge``/``correlation_id`` belong to the flow in progress and are
    cleared once it settles; ``attestation_proof`` survives in ``ATTESTED`` so
    the same proof can be resubmitted.
    """

    state: KeyState
    key_id: KeyIdentifier | None = None
    challenge: Challenge | None = None
    correlation_id: CorrelationId | None = None
    attestation_proof: AttestationProof | None = None

    @property
    def is_persisted(self) -> bool:
        return self.state.is_persisted

    def require_key_id(self, event: LifecycleEvent) -> KeyIdentifier:
        if not self.key_id:
            raise IllegalTransition(self.state, event, "no key identifier")
        return self.key_id


StateObserver = Callable[[KeyLifecycle], None]


class _Store(Protocol):
    def load(self) -> str | None: ...


TRANSITIONS: dict[tuple[KeyState, LifecycleEvent], KeyState] = {
    (KeyState.NO_KEY, LifecycleEvent.KEY_GENERATED): KeyState.KEY_GENERATED,
    (KeyState.KEY_GENERATED, LifecycleEvent.ATTESTATION_CHALLENGE_RECEIVED): KeyState.ATTESTATION_CHALLENGE_RECEIVED,
    # an abandoned attestation is resumed with a fresh challenge
    (KeyState.ATTESTATION_CHALLENGE_RECEIVED, LifecycleEvent.ATTESTATION_CHALLENGE_RECEIVED): KeyState.ATTESTATION_CHALLENGE_RECEIVED,
    (KeyState.ATTESTATION_CHALLENGE_RECEIVED, LifecycleEvent.KEY_ATTESTED): KeyState.ATTESTED,
    (KeyState.ATTESTED, LifecycleEvent.ATTESTATION_VERIFIED): KeyState.KEY_PERSISTED,
    (KeyState.KEY_PERSISTED, LifecycleEvent.ASSERTION_CHALLENGE_RECEIVED): KeyState.ASSERTION_CHALLENGE_RECEIVED,
    (KeyState.ASSERTION_CHALLENGE_RECEIVED, LifecycleEvent.ASSERTION_CHALLENGE_RECEIVED): KeyState.ASSERTION_CHALLENGE_RECEIVED,
    (KeyState.ASSERTION_SIGNED, LifecycleEvent.ASSERTION_CHALLENGE_RECEIVED): KeyState.ASSERTION_CHALLENGE_RECEIVED,
    (KeyState.ASSERTION_CHALLENGE_RECEIVED, LifecycleEvent.ASSERTION_SIGNED): KeyState.ASSERTION_SIGNED,
    (KeyState.ASSERTION_SIGNED, LifecycleEvent.ASSERTION_VERIFIED): KeyState.ASSERTION_VERIFIED,
    (KeyState.ASSERTION_VERIFIED, LifecycleEvent.ASSERTION_COMPLETED): KeyState.KEY_PERSISTED,
    (KeyState.ASSERTION_CHALLENGE_RECEIVED, LifecycleEvent.ASSERTION_ABANDONED): KeyState.KEY_PERSISTED,
    (KeyState.ASSERTION_SIGNED, LifecycleEvent.ASSERTION_ABANDONED): KeyState.KEY_PERSISTED,
}

_CHALLENGE_KIND = {
    LifecycleEvent.ATTESTATION_CHALLENGE_RECEIVED: ChallengeKind.ATTESTATION,
    LifecycleEvent.ASSERTION_CHALLENGE_RECEIVED: ChallengeKind.ASSERTION,
}


class KeyLifecycleStateMachine:
    def __init__(self, initial: KeyLifecycle | None = None) -> None:
        self._current = initial or KeyLifecycle(KeyState.NO_KEY)
        self._observers: list[StateObserver] = []
        # challenges are single-use for the lifetime of the process
        self._consumed: set[Challenge] = set()

    @classmethod
    def from_store(cls, store: _Store) -> "KeyLifecycleStateMachine":
        """Start in ``KEY_PERSISTED`` when a verified key id was stored, else ``NO_KEY``."""
        key_id = store.load()
        if key_id:
            return cls(KeyLifecycle(KeyState.KEY_PERSISTED, key_id=KeyIdentifier(key_id)))
        return cls()

    @property
    def current(self) -> KeyLifecycle:
        return self._current

    @property
    def state(self) -> KeyState:
        return self._current.state

    def subscribe(self, observer: StateObserver) -> Callable[[], None]:
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    def require(self, *allowed: KeyState, event: LifecycleEvent) -> KeyLifecycle:
        """Check a flow precondition without changing state."""
        if self._current.state not in allowed:
            raise IllegalTransition(self._current.state, event)
        return self._current

    def transition(
        self,
        event: LifecycleEvent,
        *,
        key_id: KeyIdentifier | None = None,
        challenge: Challenge | None = None,
        correlation_id: CorrelationId | None = None,
        attestation_proof: AttestationProof | None = None,
    ) -> KeyLifecycle:
        current = self._current
        target = TRANSITIONS.get((current.state, event))
        if target is None:
            raise IllegalTransition(current.state, event)

        if event is LifecycleEvent.KEY_GENERATED:
            if not key_id:
                raise IllegalTransition(current.state, event, "key id is required")
            nxt = KeyLifecycle(target, key_id=key_id)
        elif event in _CHALLENGE_KIND:
            expected = _CHALLENGE_KIND[event]
            if challenge is None or challenge.kind is not expected:
                raise IllegalTransition(current.state, event, f"expected a fresh {expected} challenge")
            if expected is ChallengeKind.ATTESTATION and not correlation_id:
                raise IllegalTransition(current.state, event, "correlation id is required")
            if challenge in self._consumed:
                raise IllegalTransition(current.state, event, "challenge was already used")
            self._consumed.add(challenge)
            nxt = KeyLifecycle(target, key_id=current.key_id, challenge=challenge, correlation_id=correlation_id)
        elif event is LifecycleEvent.KEY_ATTESTED:
            if attestation_proof is None:
                raise IllegalTransition(current.state, event, "attestation proof is required")
            nxt = replace(current, state=target, attestation_proof=attestation_proof)
        elif target is KeyState.KEY_PERSISTED:
            nxt = KeyLifecycle(target, key_id=current.key_id)
        else:
            nxt = replace(current, state=target)

        self._current = nxt
        _log.debug("lifecycle %s --%s--> %s", current.state, event, nxt.state)
        for observer in list(self._observers):
            try:
                observer(nxt)
            except Exception:
                _log.exception("lifecycle observer %r failed on %s", observer, nxt.state)
        return nxt
