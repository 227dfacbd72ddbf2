"""Identity verification exceptions mapped to error codes.

Per-candidate failures (DisclosureError subclasses) are recovered by the
age gate, which moves on to the next certificate. LookupFailed ends the
verification pass with an error verdict. DID failures surface as typed
results where resolution is optional.
"""

from app.identity.api_models import ErrorCode


class IdentityError(Exception):
    """Base exception for identity verification.

    Carries an error code that maps to ErrorCode constants.
    """

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


# =============================================================================
# Disclosure (per-candidate, recoverable)
# =============================================================================


class DisclosureError(IdentityError):
    """A single certificate could not yield the requested claim."""
    pass


class MissingCertificateData(DisclosureError):
    """Certificate lacks keyring, fields or certifier."""

    def __init__(self, message: str = "Certificate is missing keyring, fields or certifier"):
        super().__init__(ErrorCode.MISSING_CERTIFICATE_DATA, message)


class FieldNotPresent(DisclosureError):
    """Requested field absent after decryption, or its value is implausible."""

    def __init__(self, field_name: str, detail: str = "not present"):
        self.field_name = field_name
        super().__init__(ErrorCode.FIELD_NOT_PRESENT, f"Field '{field_name}' {detail}")


class SelectiveDisclosureFailed(DisclosureError):
    """Verifier keyring derivation raised or produced an over-wide keyring."""

    def __init__(self, message: str = "Selective disclosure failed"):
        super().__init__(ErrorCode.SELECTIVE_DISCLOSURE_FAILED, message)


class DecryptionFailed(DisclosureError):
    """Field decryption under the master keyring raised."""

    def __init__(self, message: str = "Field decryption failed"):
        super().__init__(ErrorCode.DECRYPTION_FAILED, message)


# =============================================================================
# Certificate shape
# =============================================================================


class MalformedCertificate(IdentityError):
    """Certificate JSON is not an object, or its fields or keyring are not objects."""

    def __init__(self, message: str = "Malformed certificate"):
        super().__init__(ErrorCode.MALFORMED_CERTIFICATE, message)


# =============================================================================
# Pass-level
# =============================================================================


class LookupFailed(IdentityError):
    """The certificate listing call itself raised.

    Distinct from an empty listing, which is not an error.
    """

    def __init__(self, message: str = "Certificate lookup failed"):
        super().__init__(ErrorCode.LOOKUP_FAILED, message)


class WalletError(IdentityError):
    """Transport or protocol failure talking to the wallet provider."""

    def __init__(self, message: str = "Wallet request failed"):
        super().__init__(ErrorCode.WALLET_UNAVAILABLE, message)


# =============================================================================
# DID resolution
# =============================================================================


class DIDError(IdentityError):
    """Base for DID resolution failures."""
    pass


class InvalidDIDFormat(DIDError):
    """DID does not match did:bsv:<topic>:<id>."""

    def __init__(self, message: str = "Invalid DID format - expected did:bsv:topic:identifier"):
        super().__init__(ErrorCode.INVALID_DID_FORMAT, message)


class InvalidDIDDocument(DIDError):
    """Resolved DID document is missing required structure."""

    def __init__(self, message: str = "Invalid DID document"):
        super().__init__(ErrorCode.INVALID_DID_DOCUMENT, message)


class DIDResolutionError(DIDError):
    """Resolver unreachable or returned a server error."""

    def __init__(self, message: str = "DID resolution failed"):
        super().__init__(ErrorCode.DID_RESOLUTION_FAILED, message)
