from __future__ import annotations

import itertools

import pytest

from appattest.services.attest import (
    AttestationProof,
    Challenge,
    ChallengeKind,
    CorrelationId,
    IllegalTransition,
    KeyIdentifier,
    KeyLifecycleStateMachine,
    KeyState,
    LifecycleEvent,
)

_counter = itertools.count()


def _payload(event: LifecycleEvent) -> dict:
    n = next(_counter)
    if event is LifecycleEvent.KEY_GENERATED:
        return {"key_id": KeyIdentifier("key-1")}
    if event is LifecycleEvent.ATTESTATION_CHALLENGE_RECEIVED:
        return {
            "challenge": Challenge(ChallengeKind.ATTESTATION, f"att-{n}"),
            "correlation_id": CorrelationId(f"cid-{n}"),
        }
    if event is LifecycleEvent.ASSERTION_CHALLENGE_RECEIVED:
        return {"challenge": Challenge(ChallengeKind.ASSERTION, f"as-{n}")}
    if event is LifecycleEvent.KEY_ATTESTED:
        return {"attestation_proof": AttestationProof(b"proof")}
    return {}


def _persisted_machine() -> KeyLifecycleStateMachine:
    class _Store:
        def load(self):
            return "key-1"

    return KeyLifecycleStateMachine.from_store(_Store())


def test_initial_state_without_stored_key_is_no_key():
    class _Empty:
        def load(self):
            return None

    machine = KeyLifecycleStateMachine.from_store(_Empty())
    assert machine.state is KeyState.NO_KEY
    assert machine.current.key_id is None


def test_initial_state_with_stored_key_is_persisted():
    machine = _persisted_machine()
    assert machine.state is KeyState.KEY_PERSISTED
    assert machine.current.key_id == "key-1"


def test_full_provisioning_path():
    machine = KeyLifecycleStateMachine()
    for event in (
        LifecycleEvent.KEY_GENERATED,
        LifecycleEvent.ATTESTATION_CHALLENGE_RECEIVED,
        LifecycleEvent.KEY_ATTESTED,
        LifecycleEvent.ATTESTATION_VERIFIED,
    ):
        machine.transition(event, **_payload(event))
    assert machine.state is KeyState.KEY_PERSISTED
    assert machine.current.key_id == "key-1"
    assert machine.current.challenge is None
    assert machine.current.attestation_proof is None


def test_attestation_before_key_exists_is_illegal():
    machine = KeyLifecycleStateMachine()
    with pytest.raises(IllegalTransition) as excinfo:
        machine.transition(
            LifecycleEvent.ATTESTATION_CHALLENGE_RECEIVED,
            **_payload(LifecycleEvent.ATTESTATION_CHALLENGE_RECEIVED),
        )
    assert excinfo.value.state is KeyState.NO_KEY
    assert machine.state is KeyState.NO_KEY


def test_challenge_of_wrong_kind_is_rejected():
    machine = _persisted_machine()
    with pytest.raises(IllegalTransition):
        machine.transition(
            LifecycleEvent.ASSERTION_CHALLENGE_RECEIVED,
            challenge=Challenge(ChallengeKind.ATTESTATION, "ch1"),
        )
    assert machine.state is KeyState.KEY_PERSISTED


def test_reused_challenge_is_rejected():
    machine = _persisted_machine()
    challenge = Challenge(ChallengeKind.ASSERTION, "as-reused")
    machine.transition(LifecycleEvent.ASSERTION_CHALLENGE_RECEIVED, challenge=challenge)
    machine.transition(LifecycleEvent.ASSERTION_ABANDONED)
    with pytest.raises(IllegalTransition, match="already used"):
        machine.transition(LifecycleEvent.ASSERTION_CHALLENGE_RECEIVED, challenge=challenge)


def test_attestation_challenge_requires_correlation_id():
    machine = KeyLifecycleStateMachine()
    machine.transition(LifecycleEvent.KEY_GENERATED, key_id=KeyIdentifier("key-1"))
    with pytest.raises(IllegalTransition):
        machine.transition(
            LifecycleEvent.ATTESTATION_CHALLENGE_RECEIVED,
            challenge=Challenge(ChallengeKind.ATTESTATION, "ch1"),
        )


def test_second_key_generation_is_illegal():
    machine = _persisted_machine()
    with pytest.raises(IllegalTransition):
        machine.transition(LifecycleEvent.KEY_GENERATED, key_id=KeyIdentifier("key-2"))
    assert machine.current.key_id == "key-1"


def test_observers_receive_new_immutable_values():
    machine = KeyLifecycleStateMachine()
    seen = []
    unsubscribe = machine.subscribe(seen.append)
    first = machine.transition(LifecycleEvent.KEY_GENERATED, key_id=KeyIdentifier("key-1"))
    unsubscribe()
    machine.transition(
        LifecycleEvent.ATTESTATION_CHALLENGE_RECEIVED,
        **_payload(LifecycleEvent.ATTESTATION_CHALLENGE_RECEIVED),
    )
    assert seen == [first]
    assert first.state is KeyState.KEY_GENERATED
    with pytest.raises(AttributeError):
        first.state = KeyState.NO_KEY  # type: ignore[misc]


def test_failing_observer_does_not_block_transition_or_other_observers():
    machine = KeyLifecycleStateMachine()
    seen = []

    def _broken(lifecycle):
        raise RuntimeError("observer bug")

    machine.subscribe(_broken)
    machine.subscribe(seen.append)

    result = machine.transition(LifecycleEvent.KEY_GENERATED, key_id=KeyIdentifier("key-1"))

    assert machine.state is KeyState.KEY_GENERATED
    assert seen == [result]


def _explore(depth: int):
    """Yield every legal event sequence up to ``depth`` together with the visited states."""
    stack = [[]]
    while stack:
        sequence = stack.pop()
        machine = KeyLifecycleStateMachine()
        visited = [machine.state]
        for event in sequence:
            machine.transition(event, **_payload(event))
            visited.append(machine.state)
        yield sequence, visited
        if len(sequence) >= depth:
            continue
        for event in LifecycleEvent:
            probe = KeyLifecycleStateMachine()
            try:
                for step in [*sequence, event]:
                    probe.transition(step, **_payload(step))
            except IllegalTransition:
                continue
            stack.append([*sequence, event])


def test_assertion_challenge_never_reached_before_key_persisted():
    reached_assertion = False
    for _sequence, visited in _explore(depth=8):
        if KeyState.ASSERTION_CHALLENGE_RECEIVED in visited:
            reached_assertion = True
            first = visited.index(KeyState.ASSERTION_CHALLENGE_RECEIVED)
            assert KeyState.KEY_PERSISTED in visited[:first]
    assert reached_assertion
