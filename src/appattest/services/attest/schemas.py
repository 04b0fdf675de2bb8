"""Wire bodies exchanged with the relying-party server."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "AttestationChallengeResponse",
    "AssertionChallengeRequest",
    "AssertionChallengeResponse",
    "AttestationVerifyRequest",
    "AssertionVerifyRequest",
]


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class AttestationChallengeResponse(_WireModel):
    challenge: str = Field(..., alias="attestationChallenge", min_length=1)
    correlation_id: str = Field(..., alias="correlationId", min_length=1)


class AssertionChallengeRequest(_WireModel):
    key_id: str = Field(..., alias="keyId")


class AssertionChallengeResponse(_WireModel):
    challenge: str = Field(..., alias="assertionChallenge", min_length=1)


class AttestationVerifyRequest(_WireModel):
    attestation_object: str = Field(..., alias="attestationObject", description="base64 attestation object")
    key_id: str = Field(..., alias="keyId")
    correlation_id: str = Field(..., alias="correlationId")


class AssertionVerifyRequest(_WireModel):
    # no correlation id here: the relying party links assertions by key id only
    client_data: str = Field(..., alias="clientData", description="base64 signed payload")
    assertion: str = Field(..., description="base64 assertion")
    key_id: str = Field(..., alias="keyId")
