"""Identity certificate verification package.

Age gating over selectively disclosed certificate fields, plus the
supporting identity services.

Components:
- models: Certificate, VerificationVerdict and the tagged certificate variant
- validator: structure, issuer and expiry checks
- claims: age / threshold / birthdate interpretation
- disclosure: single-field selective disclosure
- age_gate: the verification state machine
- authentication: wallet-first identity lookup with fallback store
- credential: legacy and W3C credential verification
- vc_data: VC data resolution for VC-enabled legacy certificates
- did: did:bsv parsing and resolution
- session: per-session certificate store and receipt channel
- wallet: wallet capability interface and HTTP adapter

Usage:
    from app.identity import AgeGate, AgeGateConfig, HTTPWalletClient

    gate = AgeGate(AgeGateConfig.from_settings())
    verdict = await gate.run(HTTPWalletClient())
"""

from .age_gate import AgeGate, AgeGateConfig, verify_age
from .authentication import (
    AuthResult,
    CertificateLookup,
    DisabledCertificateLookup,
    UnifiedAuthService,
)
from .claims import ClaimKind, coerce_claim
from .credential import CredentialVerificationResult, extract_claims, verify_credential
from .did import DIDRegistry, HTTPDIDResolver, parse_did, validate_did_document
from .disclosure import create_verifiable_certificate, decrypt_view, extract_field
from .exceptions import (
    DecryptionFailed,
    DIDError,
    DIDResolutionError,
    DisclosureError,
    FieldNotPresent,
    IdentityError,
    InvalidDIDDocument,
    InvalidDIDFormat,
    MalformedCertificate,
    LookupFailed,
    MissingCertificateData,
    SelectiveDisclosureFailed,
    WalletError,
)
from .models import (
    Certificate,
    CertificateFormat,
    CertificateListing,
    CertificateSource,
    CredentialCertificate,
    IdentityClaims,
    LegacyCertificate,
    VerifiableCertificateView,
    VerificationState,
    VerificationVerdict,
    classify_certificate,
)
from .session import (
    CertificateReceiptChannel,
    CertificateReceived,
    CertificateSession,
    SessionRegistry,
)
from .validator import is_usable, validate_issuer, validate_not_expired, validate_structure
from .vc_data import resolve_vc_data
from .wallet import HTTPWalletClient, WalletClient

__all__ = [
    # Models
    "Certificate",
    "CertificateFormat",
    "CertificateListing",
    "CertificateSource",
    "CredentialCertificate",
    "IdentityClaims",
    "LegacyCertificate",
    "VerifiableCertificateView",
    "VerificationState",
    "VerificationVerdict",
    "classify_certificate",
    # Validation
    "is_usable",
    "validate_issuer",
    "validate_not_expired",
    "validate_structure",
    # Claims and disclosure
    "ClaimKind",
    "coerce_claim",
    "create_verifiable_certificate",
    "decrypt_view",
    "extract_field",
    # Age gate
    "AgeGate",
    "AgeGateConfig",
    "verify_age",
    # Authentication and credentials
    "AuthResult",
    "CertificateLookup",
    "DisabledCertificateLookup",
    "UnifiedAuthService",
    "CredentialVerificationResult",
    "extract_claims",
    "verify_credential",
    "resolve_vc_data",
    # DID
    "DIDRegistry",
    "HTTPDIDResolver",
    "parse_did",
    "validate_did_document",
    # Sessions
    "CertificateReceiptChannel",
    "CertificateReceived",
    "CertificateSession",
    "SessionRegistry",
    # Wallet
    "HTTPWalletClient",
    "WalletClient",
    # Exceptions
    "IdentityError",
    "DisclosureError",
    "MissingCertificateData",
    "FieldNotPresent",
    "SelectiveDisclosureFailed",
    "DecryptionFailed",
    "LookupFailed",
    "WalletError",
    "DIDError",
    "InvalidDIDFormat",
    "MalformedCertificate",
    "InvalidDIDDocument",
    "DIDResolutionError",
]
