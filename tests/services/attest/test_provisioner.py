from __future__ import annotations

import base64
import json

import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

from appattest.services.attest import ClientDataHash, KeyIdentifier, ProvisionError, ProvisionErrorKind, SoftwareKeyProvisioner
from appattest.services.attest.provisioner import SOFTWARE_ATTESTATION_FORMAT


@pytest.fixture
def software(tmp_path) -> SoftwareKeyProvisioner:
    return SoftwareKeyProvisioner(tmp_path / "keys")


@pytest.mark.anyio
async def test_generated_keys_are_distinct(software):
    first = await software.generate_key()
    second = await software.generate_key()
    assert first != second
    assert len(base64.b64decode(first)) == 32


@pytest.mark.anyio
async def test_attestation_document_and_assertion_signature_verify(software):
    key_id = await software.generate_key()
    attest_hash = ClientDataHash.of(b"ch1")

    proof = await software.attest(key_id, attest_hash)

    document = json.loads(proof.data)
    assert document["fmt"] == SOFTWARE_ATTESTATION_FORMAT
    assert document["keyId"] == key_id
    assert base64.b64decode(document["clientDataHash"]) == attest_hash.digest
    public_key = ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), base64.b64decode(document["publicKey"]))
    public_key.verify(base64.b64decode(document["signature"]), attest_hash.digest, ec.ECDSA(hashes.SHA256()))

    assert_hash = ClientDataHash.of(b'{"challenge":"as1"}')
    for _ in range(2):
        assertion = await software.assert_key(key_id, assert_hash)
        public_key.verify(assertion.data, assert_hash.digest, ec.ECDSA(hashes.SHA256()))


@pytest.mark.anyio
async def test_second_attestation_of_a_key_is_refused(software):
    key_id = await software.generate_key()
    await software.attest(key_id, ClientDataHash.of(b"ch1"))

    with pytest.raises(ProvisionError) as excinfo:
        await software.attest(key_id, ClientDataHash.of(b"ch2"))

    assert excinfo.value.kind is ProvisionErrorKind.DENIED


@pytest.mark.anyio
async def test_unknown_key_is_denied(software):
    unknown = KeyIdentifier(base64.b64encode(b"\x00" * 32).decode("ascii"))
    with pytest.raises(ProvisionError) as excinfo:
        await software.assert_key(unknown, ClientDataHash.of(b"x"))
    assert excinfo.value.kind is ProvisionErrorKind.DENIED


@pytest.mark.anyio
async def test_malformed_key_id_is_denied(software):
    with pytest.raises(ProvisionError):
        await software.attest(KeyIdentifier("not base64!"), ClientDataHash.of(b"x"))
