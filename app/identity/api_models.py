"""
Age gate API models.

Request/response bodies for the HTTP surface plus the error code registry
shared by the identity exceptions. Wire names are camelCase to match the
wallet SDK and the browser clients.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Error Models
# =============================================================================

class ErrorDetail(BaseModel):
    """Error detail returned alongside a failed operation."""
    code: str
    message: str
    recoverable: bool


class ErrorCode:
    """Error code registry."""
    # Per-candidate disclosure failures
    MISSING_CERTIFICATE_DATA = "MISSING_CERTIFICATE_DATA"
    FIELD_NOT_PRESENT = "FIELD_NOT_PRESENT"
    SELECTIVE_DISCLOSURE_FAILED = "SELECTIVE_DISCLOSURE_FAILED"
    DECRYPTION_FAILED = "DECRYPTION_FAILED"

    # Certificate shape
    MALFORMED_CERTIFICATE = "MALFORMED_CERTIFICATE"

    # Pass-level failures
    LOOKUP_FAILED = "LOOKUP_FAILED"
    WALLET_UNAVAILABLE = "WALLET_UNAVAILABLE"

    # DID layer
    INVALID_DID_FORMAT = "INVALID_DID_FORMAT"
    INVALID_DID_DOCUMENT = "INVALID_DID_DOCUMENT"
    DID_RESOLUTION_FAILED = "DID_RESOLUTION_FAILED"

    INTERNAL_ERROR = "INTERNAL_ERROR"


# Recoverability: True means the next candidate / a later attempt may succeed
ERROR_RECOVERABILITY: Dict[str, bool] = {
    ErrorCode.MISSING_CERTIFICATE_DATA: True,
    ErrorCode.FIELD_NOT_PRESENT: True,
    ErrorCode.SELECTIVE_DISCLOSURE_FAILED: True,
    ErrorCode.DECRYPTION_FAILED: True,
    ErrorCode.MALFORMED_CERTIFICATE: False,
    ErrorCode.LOOKUP_FAILED: False,
    ErrorCode.WALLET_UNAVAILABLE: True,
    ErrorCode.INVALID_DID_FORMAT: False,
    ErrorCode.INVALID_DID_DOCUMENT: False,
    ErrorCode.DID_RESOLUTION_FAILED: True,
    ErrorCode.INTERNAL_ERROR: True,
}


def to_error_detail(exc: Exception) -> ErrorDetail:
    """Convert a domain exception to ErrorDetail for an API response."""
    code = getattr(exc, "code", ErrorCode.INTERNAL_ERROR)
    message = getattr(exc, "message", str(exc))
    recoverable = ERROR_RECOVERABILITY.get(code, True)
    return ErrorDetail(code=code, message=message, recoverable=recoverable)


# =============================================================================
# Request Models
# =============================================================================

class ResolveDIDRequest(BaseModel):
    """Body for POST /api/resolve-did."""
    did: Optional[str] = None


class VerifyCertificateRequest(BaseModel):
    """Body for POST /api/verify-certificate."""
    certificate: Optional[Dict[str, Any]] = None


class AgeVerificationRequest(BaseModel):
    """Body for POST /api/age-verification. Omitted values use the config."""
    model_config = ConfigDict(populate_by_name=True)

    minimum_age: Optional[int] = Field(default=None, alias="minimumAge")
    disclosure_field: Optional[str] = Field(default=None, alias="disclosureField")


class GetCertificatesRequest(BaseModel):
    """Body for POST /api/get-certificates."""
    model_config = ConfigDict(populate_by_name=True)

    fields_to_reveal: Optional[List[str]] = Field(default=None, alias="fieldsToReveal")


class WellKnownAuthRequest(BaseModel):
    """Body the auth middleware posts to /.well-known/auth."""
    model_config = ConfigDict(populate_by_name=True)

    identity_key: Optional[str] = Field(default=None, alias="identityKey")
    certificates: List[Dict[str, Any]] = Field(default_factory=list)
    nonce: Optional[str] = None


# =============================================================================
# Response Models
# =============================================================================

class VerifyCertificateResponse(BaseModel):
    """Response for POST /api/verify-certificate."""
    valid: bool
    format: str
    claims: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
