# src/appattest/services/attest/client.py
from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

import httpx
from pydantic import BaseModel, ValidationError

from .enums import ChallengeKind, TransportErrorKind
from .errors import ServerError, SettingsError, TransportError
from .models import AssertionProof, AttestationProof, Challenge, CorrelationId, KeyIdentifier, VerificationOutcome
from .schemas import (
    AssertionChallengeRequest,
    AssertionChallengeResponse,
    AssertionVerifyRequest,
    AttestationChallengeResponse,
    AttestationVerifyRequest,
)

__all__ = ["ChallengeClient", "VerificationClient", "RelyingPartyClient"]

_log = logging.getLogger("appattest.client")


class ChallengeClient(Protocol):
    async def fetch_attestation_challenge(self, *, timeout: float | None = None) -> tuple[Challenge, CorrelationId]: ...

    async def fetch_assertion_challenge(self, key_id: KeyIdentifier, *, timeout: float | None = None) -> Challenge: ...


class VerificationClient(Protocol):
    async def verify_attestation(
        self,
        proof: AttestationProof,
        key_id: KeyIdentifier,
        correlation_id: CorrelationId,
        *,
        timeout: float | None = None,
    ) -> VerificationOutcome: ...

    async def verify_assertion(
        self,
        client_data: bytes,
        proof: AssertionProof,
        key_id: KeyIdentifier,
        *,
        timeout: float | None = None,
    ) -> VerificationOutcome: ...


def _error_message(response: httpx.Response) -> str:
    message = response.text or f"HTTP {response.status_code}"
    try:
        content = response.json()
    except ValueError:
        return message
    if isinstance(content, Mapping):
        detail = content.get("detail") or content.get("message") or content.get("error")
        if isinstance(detail, str):
            return detail
    return message


@dataclass(slots=True)
class RelyingPartyClient:
    """HTTP client for the relying-party challenge and verification endpoints.

    Every call is a single round trip; retries are left to the caller.
    """

    attestation_challenge_url: str | None = None
    verify_attestation_url: str | None = None
    assertion_challenge_url: str | None = None
    verify_assertion_url: str | None = None
    timeout: float = 15.0
    verify: str | bool = True
    default_headers: dict[str, str] = field(default_factory=dict)
    # injected by tests (httpx.MockTransport)
    transport: httpx.AsyncBaseTransport | None = None

    @classmethod
    def from_settings(cls, settings: Any, *, transport: httpx.AsyncBaseTransport | None = None) -> "RelyingPartyClient":
        return cls(
            attestation_challenge_url=settings.attestation_challenge_url,
            verify_attestation_url=settings.verify_attestation_url,
            assertion_challenge_url=settings.assertion_challenge_url,
            verify_assertion_url=settings.verify_assertion_url,
            timeout=settings.timeout,
            verify=settings.ca_cert or True,
            transport=transport,
        )

    # ---------- transport ------------------------------------------------------
    async def _request(
        self,
        method: str,
        url: str | None,
        *,
        json: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        if not url:
            raise SettingsError(f"no URL configured for {method} request")
        headers = dict(self.default_headers)
        headers.setdefault("Accept", "application/json")
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout if timeout is None else timeout,
                verify=self.verify,
                transport=self.transport,
            ) as client:
                response = await client.request(method, url, json=json, headers=headers)
        except httpx.TimeoutException as exc:
            raise TransportError(TransportErrorKind.TIMEOUT, f"{method} {url} timed out", url=url) from exc
        except httpx.RequestError as exc:
            raise TransportError(TransportErrorKind.NETWORK_FAILURE, f"{method} {url} failed: {exc}", url=url) from exc
        _log.debug("%s %s -> %s", method, url, response.status_code)
        return response

    async def _fetch(
        self,
        method: str,
        url: str | None,
        schema: type[BaseModel],
        *,
        json: Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        response = await self._request(method, url, json=json, timeout=timeout)
        if response.status_code >= 300:
            raise ServerError(_error_message(response), status_code=response.status_code, payload=response.text)
        try:
            return schema.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise TransportError(TransportErrorKind.DECODE_FAILURE, f"unexpected response from {url}: {exc}", url=url) from exc

    async def _submit(self, url: str | None, body: BaseModel, *, timeout: float | None = None) -> VerificationOutcome:
        try:
            response = await self._request("POST", url, json=body.model_dump(by_alias=True), timeout=timeout)
        except TransportError as exc:
            return VerificationOutcome.transport_failure(str(exc))
        if response.status_code == 200:
            return VerificationOutcome.accepted()
        return VerificationOutcome.rejected(_error_message(response), status_code=response.status_code)

    # ---------- challenges -------------------------------------------------------
    async def fetch_attestation_challenge(self, *, timeout: float | None = None) -> tuple[Challenge, CorrelationId]:
        body: AttestationChallengeResponse = await self._fetch(
            "GET", self.attestation_challenge_url, AttestationChallengeResponse, timeout=timeout
        )
        return Challenge(ChallengeKind.ATTESTATION, body.challenge), CorrelationId(body.correlation_id)

    async def fetch_assertion_challenge(self, key_id: KeyIdentifier, *, timeout: float | None = None) -> Challenge:
        request = AssertionChallengeRequest(key_id=key_id)
        body: AssertionChallengeResponse = await self._fetch(
            "POST",
            self.assertion_challenge_url,
            AssertionChallengeResponse,
            json=request.model_dump(by_alias=True),
            timeout=timeout,
        )
        return Challenge(ChallengeKind.ASSERTION, body.challenge)

    # ---------- verification -----------------------------------------------------
    async def verify_attestation(
        self,
        proof: AttestationProof,
        key_id: KeyIdentifier,
        correlation_id: CorrelationId,
        *,
        timeout: float | None = None,
    ) -> VerificationOutcome:
        body = AttestationVerifyRequest(attestation_object=proof.b64(), key_id=key_id, correlation_id=correlation_id)
        return await self._submit(self.verify_attestation_url, body, timeout=timeout)

    async def verify_assertion(
        self,
        client_data: bytes,
        proof: AssertionProof,
        key_id: KeyIdentifier,
        *,
        timeout: float | None = None,
    ) -> VerificationOutcome:
        body = AssertionVerifyRequest(
            client_data=base64.b64encode(client_data).decode("ascii"),
            assertion=proof.b64(),
            key_id=key_id,
        )
        return await self._submit(self.verify_assertion_url, body, timeout=timeout)
