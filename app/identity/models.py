"""Certificate, verdict and claim models.

Certificates arrive from the wallet as camelCase JSON. They are read-only
from the verifier's perspective: nothing in this package mutates one.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from app.core.config import VERIFIABLE_CREDENTIAL_TYPE

from .exceptions import MalformedCertificate


# Per-field decryption keys, scoped to one verifier. Never persisted.
VerifierKeyring = Dict[str, str]

# Cleartext values keyed by field name
DecryptedClaim = Dict[str, Any]

ClaimValue = Union[int, bool]


class VerificationState(str, Enum):
    """Age gate states. CHECKING is initial, the rest are terminal per pass."""
    CHECKING = "checking"
    VERIFIED = "verified"
    DENIED = "denied"
    NO_CERTIFICATE = "no-certificate"
    ERROR = "error"


class CertificateSource(str, Enum):
    """Which lookup path produced the certificate behind a verdict."""
    IDENTITY_CERTIFICATE = "identity-certificate"
    DID_LINKED_CERTIFICATE = "did-linked-certificate"
    LEGACY = "legacy"


class CertificateFormat(str, Enum):
    """Certificate payload shape."""
    VC = "vc"
    LEGACY = "legacy"


@dataclass
class Certificate:
    """Identity certificate held in a subject's wallet.

    Attributes:
        type: Base64-encoded certificate type tag.
        serial_number: Unique per certifier.
        subject: Holder's public key.
        certifier: Issuer's public key.
        fields: Claim name -> ciphertext (or a credential structure for
            certificates received already decrypted).
        keyring: Claim name -> per-field key, encrypted to the subject.
        signature: Certifier's signature over the above.
        expiration_date: Optional ISO-8601 expiry.
        revocation_outpoint: Carried through, not interpreted.
    """
    type: str
    serial_number: str
    subject: str
    certifier: str
    fields: Dict[str, Any] = field(default_factory=dict)
    keyring: Dict[str, str] = field(default_factory=dict)
    signature: str = ""
    expiration_date: Optional[str] = None
    revocation_outpoint: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Certificate":
        """Build from the wallet's camelCase JSON. Missing values become empty.

        Raises:
            MalformedCertificate: If data, fields or keyring is not an object.
        """
        if not isinstance(data, dict):
            raise MalformedCertificate("Certificate must be an object")
        fields = data.get("fields") or {}
        keyring = data.get("keyring") or {}
        if not isinstance(fields, dict):
            raise MalformedCertificate("Certificate fields must be an object")
        if not isinstance(keyring, dict):
            raise MalformedCertificate("Certificate keyring must be an object")
        return cls(
            type=data.get("type") or "",
            serial_number=data.get("serialNumber") or "",
            subject=data.get("subject") or "",
            certifier=data.get("certifier") or "",
            fields=dict(fields),
            keyring=dict(keyring),
            signature=data.get("signature") or "",
            expiration_date=data.get("expirationDate"),
            revocation_outpoint=data.get("revocationOutpoint"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type,
            "serialNumber": self.serial_number,
            "subject": self.subject,
            "certifier": self.certifier,
            "fields": dict(self.fields),
            "keyring": dict(self.keyring),
            "signature": self.signature,
        }
        if self.expiration_date is not None:
            data["expirationDate"] = self.expiration_date
        if self.revocation_outpoint is not None:
            data["revocationOutpoint"] = self.revocation_outpoint
        return data


@dataclass
class CertificateListing:
    """Result of a wallet certificate listing."""
    certificates: List[Certificate] = field(default_factory=list)
    total_certificates: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CertificateListing":
        certificates = [Certificate.from_dict(c) for c in data.get("certificates") or []]
        total = data.get("totalCertificates")
        return cls(
            certificates=certificates,
            total_certificates=len(certificates) if total is None else int(total),
        )


@dataclass
class VerifiableCertificateView:
    """A certificate as seen by one verifier.

    Holds only the ciphertext of fields the verifier keyring can open.
    """
    certificate: Certificate
    verifier_keyring: VerifierKeyring
    fields: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = self.certificate.to_dict()
        data["fields"] = dict(self.fields)
        data["keyring"] = dict(self.verifier_keyring)
        return data


@dataclass
class VerificationVerdict:
    """Outcome of one age gate pass.

    Attributes:
        state: Terminal state reached.
        reason: Human-readable explanation.
        claim_value: Disclosed age or threshold flag, if any.
        field_name: Field the value was disclosed from.
        certificate: Certificate behind a verified verdict. Left None for
            denied verdicts so the serial number is not exposed.
        source: Lookup path that produced the value.
    """
    state: VerificationState
    reason: str
    claim_value: Optional[ClaimValue] = None
    field_name: Optional[str] = None
    certificate: Optional[Certificate] = None
    source: Optional[CertificateSource] = None

    @property
    def is_verified(self) -> bool:
        return self.state == VerificationState.VERIFIED

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "state": self.state.value,
            "reason": self.reason,
            "claimValue": self.claim_value,
            "fieldName": self.field_name,
            "source": self.source.value if self.source else None,
            "certificateSerialNumber": None,
        }
        if self.certificate is not None and self.state == VerificationState.VERIFIED:
            data["certificateSerialNumber"] = self.certificate.serial_number
        return data


@dataclass
class IdentityClaims:
    """Full identity claim bundle, used for session state after login.

    Credential-shaped certificates also carry issuer and validity dates.
    Legacy certificates carry their raw fields.
    """
    username: Optional[str] = None
    email: Optional[str] = None
    residence: Optional[str] = None
    age: Optional[Any] = None
    gender: Optional[str] = None
    work: Optional[str] = None
    did: Optional[str] = None
    format: CertificateFormat = CertificateFormat.LEGACY
    issuer: Optional[Any] = None
    issuance_date: Optional[str] = None
    expiration_date: Optional[str] = None
    fields: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "username": self.username,
            "email": self.email,
            "residence": self.residence,
            "age": self.age,
            "gender": self.gender,
            "work": self.work,
            "did": self.did,
            "format": self.format.value,
        }
        if self.issuer is not None:
            data["issuer"] = self.issuer
        if self.issuance_date is not None:
            data["issuanceDate"] = self.issuance_date
        if self.expiration_date is not None:
            data["expirationDate"] = self.expiration_date
        if self.fields is not None:
            data["fields"] = dict(self.fields)
        return data


# =============================================================================
# Tagged certificate variant
# =============================================================================


@dataclass
class LegacyCertificate:
    """Certificate whose fields are flat claim values."""
    certificate: Certificate
    format: CertificateFormat = CertificateFormat.LEGACY


@dataclass
class CredentialCertificate:
    """Certificate whose fields carry a W3C verifiable credential."""
    certificate: Certificate
    credential: Dict[str, Any]
    format: CertificateFormat = CertificateFormat.VC

    @property
    def credential_subject(self) -> Dict[str, Any]:
        subject = self.credential.get("credentialSubject")
        return subject if isinstance(subject, dict) else {}


ClassifiedCertificate = Union[LegacyCertificate, CredentialCertificate]


def _is_credential_shaped(fields: Dict[str, Any]) -> bool:
    if not fields.get("@context"):
        return False
    types = fields.get("type")
    return isinstance(types, list) and VERIFIABLE_CREDENTIAL_TYPE in types


def classify_certificate(certificate: Certificate) -> ClassifiedCertificate:
    """Decide the certificate shape once, at ingestion.

    Credential-shaped iff fields carry '@context' and a 'type' list that
    includes VerifiableCredential. Structural inspection only.
    """
    if _is_credential_shaped(certificate.fields):
        return CredentialCertificate(certificate=certificate, credential=certificate.fields)
    return LegacyCertificate(certificate=certificate)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp. Naive values are taken as UTC.

    Raises:
        ValueError: If the value is not a parseable timestamp.
    """
    if not isinstance(value, str) or not value:
        raise ValueError(f"Invalid timestamp: {value!r}")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
