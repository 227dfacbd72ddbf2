"""
Age gate service configuration constants.

Constants are organized into:
- NORMATIVE: Fixed by the certificate/credential formats, do not change
- CONFIGURABLE: Defaults for the age gate, may be overridden by deployment
- OPERATIONAL: Deployment-specific settings (env vars)
"""

import base64
import os


def _to_base64(text: str) -> str:
    """Encode a UTF-8 tag the way the wallet SDK encodes certificate types."""
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def _parse_list(env_name: str, default: str) -> tuple[str, ...]:
    """Parse a comma-separated environment variable, dropping empty items."""
    value = os.getenv(env_name, default)
    return tuple(item.strip() for item in value.split(",") if item.strip())


# =============================================================================
# NORMATIVE CONSTANTS
# =============================================================================

# Plausible age window. Values outside (MIN, MAX) are treated as absent.
MIN_PLAUSIBLE_AGE: int = 0
MAX_PLAUSIBLE_AGE: int = 150

# W3C contexts and markers
DID_CONTEXT_URI: str = "https://www.w3.org/ns/did/v1"
VC_CONTEXT_URI: str = "https://www.w3.org/2018/credentials/v1"
VERIFIABLE_CREDENTIAL_TYPE: str = "VerifiableCredential"

# DID shape: did:bsv:<topic>:<id>
DID_METHOD: str = "bsv"

# Required fields per certificate shape
LEGACY_REQUIRED_FIELDS: tuple[str, ...] = (
    "type", "serialNumber", "subject", "certifier", "signature",
)
CREDENTIAL_REQUIRED_FIELDS: tuple[str, ...] = (
    "@context", "id", "type", "issuer", "issuanceDate", "credentialSubject",
)
DID_DOCUMENT_REQUIRED_FIELDS: tuple[str, ...] = ("@context", "id", "verificationMethod")

# =============================================================================
# CONFIGURABLE DEFAULTS
# =============================================================================

# Public key of the onboarding server that certifies identities.
# Certificates from any other certifier are never used for disclosure.
TRUSTED_ISSUER_PUBLIC_KEY: str = os.getenv(
    "AGEGATE_TRUSTED_ISSUER",
    "024c144093f5a2a5f71ce61dce874d3f1ada840446cebdd283b6a8ccfe9e83d9e4",
)

# Certificate type tags (base64 of the semantic name)
IDENTITY_CERTIFICATE_TYPE: str = os.getenv(
    "AGEGATE_IDENTITY_CERT_TYPE", _to_base64("CommonSource user identity")
)

# DID-linked identity certificates, consulted before plain identity certificates
DID_LINKED_CERTIFICATE_TYPES: tuple[str, ...] = _parse_list(
    "AGEGATE_DID_LINKED_CERT_TYPES", _to_base64("CommonSource did identity")
)

# Wallet-held DID document and VC data certificates, used to expand a
# VC-enabled legacy certificate (isVC/didRef) into full identity claims.
# Both tags are raw base64 strings, not encodings of a name.
DID_DOCUMENT_CERTIFICATE_TYPE: str = os.getenv("AGEGATE_DID_DOCUMENT_CERT_TYPE", "Bdid")
VC_DATA_CERTIFICATE_TYPE: str = os.getenv("AGEGATE_VC_DATA_CERT_TYPE", "Bvc=")

MINIMUM_AGE: int = int(os.getenv("AGEGATE_MINIMUM_AGE", "18"))

# Field requested from the certificate. "age" discloses a number,
# "over18"-style fields disclose a boolean.
DISCLOSURE_FIELD: str = os.getenv("AGEGATE_DISCLOSURE_FIELD", "age")

# Upper bound on certificates fetched per lookup path
CERTIFICATE_LIST_LIMIT: int = int(os.getenv("AGEGATE_CERT_LIST_LIMIT", "10"))

# Fields revealed by /api/get-certificates when the caller names none
DEFAULT_FIELDS_TO_REVEAL: tuple[str, ...] = _parse_list(
    "AGEGATE_DEFAULT_REVEAL", "username,isVC,email,didRef"
)

# =============================================================================
# OPERATIONAL SETTINGS (deployment-specific, via environment variables)
# =============================================================================

# Wallet capability provider (JSON over HTTP)
WALLET_URL: str = os.getenv("AGEGATE_WALLET_URL", "http://localhost:3321")
WALLET_TIMEOUT_SECONDS: float = float(os.getenv("AGEGATE_WALLET_TIMEOUT", "10.0"))

# DID resolution
DID_RESOLVER_URL: str = os.getenv("AGEGATE_DID_RESOLVER_URL", "http://localhost:3000")
DID_RESOLVER_TIMEOUT_SECONDS: float = float(os.getenv("AGEGATE_DID_RESOLVER_TIMEOUT", "5.0"))
DID_TOPIC: str = os.getenv("AGEGATE_DID_TOPIC", "tm")

# When True, /api/resolve-did answers unregistered DIDs with a placeholder
# document. Demo deployments only.
DID_SYNTHESIZE_DOCUMENTS: bool = os.getenv(
    "AGEGATE_DID_SYNTHESIZE", "true"
).lower() == "true"

# Caller-level timeout around one verification pass (0 disables)
VERIFICATION_TIMEOUT_SECONDS: float = float(os.getenv("AGEGATE_VERIFY_TIMEOUT", "30.0"))

# Per-session certificate store bounds
SESSION_TTL_SECONDS: float = float(os.getenv("AGEGATE_SESSION_TTL", "3600.0"))
SESSION_MAX_ENTRIES: int = int(os.getenv("AGEGATE_SESSION_MAX_ENTRIES", "1000"))

# Where users without a certificate are sent to obtain one
ONBOARDING_URL: str = os.getenv(
    "AGEGATE_ONBOARDING_URL", "https://commonsource-onboarding-e48e2juy2.vercel.app"
)

# Admin endpoint visibility
# Default: True for dev, set to False in production deployments
ADMIN_ENDPOINT_ENABLED: bool = os.getenv("ADMIN_ENDPOINT_ENABLED", "true").lower() == "true"
