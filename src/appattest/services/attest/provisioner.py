"""Key provisioning capability and a software-backed implementation."""
from __future__ import annotations

import asyncio
import base64
import binascii
import hashlib
import json
import logging
import os
from pathlib import Path
from typing import Protocol

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

from .enums import ProvisionErrorKind
from .errors import ProvisionError
from .models import AssertionProof, AttestationProof, ClientDataHash, KeyIdentifier

__all__ = ["KeyProvisioner", "SoftwareKeyProvisioner", "SOFTWARE_ATTESTATION_FORMAT"]

_log = logging.getLogger("appattest.provisioner")

SOFTWARE_ATTESTATION_FORMAT = "appattest-software"


class KeyProvisioner(Protocol):
    """Platform attestation service as consumed by the coordinators.

    ``attest`` may be called at most once per key; ``assert_key`` any number of
    times.  Failures raise :class:`ProvisionError`.
    """

    async def generate_key(self) -> KeyIdentifier: ...

    async def attest(self, key_id: KeyIdentifier, client_data_hash: ClientDataHash) -> AttestationProof: ...

    async def assert_key(self, key_id: KeyIdentifier, client_data_hash: ClientDataHash) -> AssertionProof: ...


def _public_point(private_key: ec.EllipticCurvePrivateKey) -> bytes:
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )


class SoftwareKeyProvisioner:
    """P-256 keys kept as PEM files under ``keys_dir``.

    Used on hosts without a platform attestation service.  The key identifier is
    the base64 SHA-256 of the uncompressed public point.  The attestation object
    is a JSON document carrying the public key and a signature over the client
    data hash; relying parties must opt in to this format explicitly.
    """

    def __init__(self, keys_dir: Path) -> None:
        self.keys_dir = Path(keys_dir)

    # --- paths ---------------------------------------------------------------
    def _stem(self, key_id: KeyIdentifier) -> str:
        try:
            raw = base64.b64decode(key_id.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as exc:
            raise ProvisionError(ProvisionErrorKind.DENIED, f"malformed key identifier: {key_id!r}") from exc
        return raw.hex()

    def _key_path(self, key_id: KeyIdentifier) -> Path:
        return self.keys_dir / f"{self._stem(key_id)}.pem"

    def _attested_marker(self, key_id: KeyIdentifier) -> Path:
        return self.keys_dir / f"{self._stem(key_id)}.attested"

    def _load(self, key_id: KeyIdentifier) -> ec.EllipticCurvePrivateKey:
        path = self._key_path(key_id)
        if not path.exists():
            raise ProvisionError(ProvisionErrorKind.DENIED, f"unknown key identifier: {key_id}")
        try:
            key = serialization.load_pem_private_key(path.read_bytes(), password=None)
        except (OSError, ValueError) as exc:
            raise ProvisionError(ProvisionErrorKind.HARDWARE_FAILURE, f"failed to load key {key_id}: {exc}") from exc
        if not isinstance(key, ec.EllipticCurvePrivateKey):
            raise ProvisionError(ProvisionErrorKind.UNSUPPORTED, "stored key is not an EC key")
        return key

    # --- capability ------------------------------------------------------------
    def _generate(self) -> KeyIdentifier:
        private_key = ec.generate_private_key(ec.SECP256R1())
        key_id = KeyIdentifier(base64.b64encode(hashlib.sha256(_public_point(private_key)).digest()).decode("ascii"))
        pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        path = self._key_path(key_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(pem)
        except OSError as exc:
            raise ProvisionError(ProvisionErrorKind.HARDWARE_FAILURE, f"failed to store key: {exc}") from exc
        try:
            os.chmod(path, 0o600)
        except PermissionError:
            pass
        _log.info("generated software key %s", key_id)
        return key_id

    def _attest(self, key_id: KeyIdentifier, client_data_hash: ClientDataHash) -> AttestationProof:
        private_key = self._load(key_id)
        marker = self._attested_marker(key_id)
        if marker.exists():
            raise ProvisionError(ProvisionErrorKind.DENIED, f"key {key_id} was already attested")
        signature = private_key.sign(client_data_hash.digest, ec.ECDSA(hashes.SHA256()))
        document = {
            "fmt": SOFTWARE_ATTESTATION_FORMAT,
            "keyId": key_id,
            "publicKey": base64.b64encode(_public_point(private_key)).decode("ascii"),
            "clientDataHash": base64.b64encode(client_data_hash.digest).decode("ascii"),
            "signature": base64.b64encode(signature).decode("ascii"),
        }
        try:
            marker.touch(exist_ok=False)
        except OSError as exc:
            raise ProvisionError(ProvisionErrorKind.HARDWARE_FAILURE, f"failed to record attestation: {exc}") from exc
        return AttestationProof(json.dumps(document, sort_keys=True, separators=(",", ":")).encode("utf-8"))

    def _assert(self, key_id: KeyIdentifier, client_data_hash: ClientDataHash) -> AssertionProof:
        private_key = self._load(key_id)
        return AssertionProof(private_key.sign(client_data_hash.digest, ec.ECDSA(hashes.SHA256())))

    async def generate_key(self) -> KeyIdentifier:
        return await asyncio.to_thread(self._generate)

    async def attest(self, key_id: KeyIdentifier, client_data_hash: ClientDataHash) -> AttestationProof:
        return await asyncio.to_thread(self._attest, key_id, client_data_hash)

    async def assert_key(self, key_id: KeyIdentifier, client_data_hash: ClientDataHash) -> AssertionProof:
        return await asyncio.to_thread(self._assert, key_id, client_data_hash)
