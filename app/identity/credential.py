"""Verification and claim extraction for legacy and credential-shaped certificates.

Shape is decided once by classify_certificate(); everything here dispatches
on the resulting tag. Checks are structural: cryptographic guarantees come
from the certificate SDK.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

from app.core.config import (
    CREDENTIAL_REQUIRED_FIELDS,
    LEGACY_REQUIRED_FIELDS,
    VC_CONTEXT_URI,
    VERIFIABLE_CREDENTIAL_TYPE,
)

from .exceptions import DIDError, IdentityError, MalformedCertificate
from .did import validate_did_document
from .models import (
    Certificate,
    CertificateFormat,
    ClassifiedCertificate,
    CredentialCertificate,
    IdentityClaims,
    LegacyCertificate,
    classify_certificate,
    parse_timestamp,
)

log = logging.getLogger(__name__)


class DIDResolver(Protocol):
    async def resolve(self, did: str) -> Optional[Dict[str, Any]]: ...


@dataclass
class CredentialVerificationResult:
    """Outcome of verify_credential.

    Attributes:
        valid: Structural verification passed.
        format: "vc" or "legacy".
        error: First failure, when invalid.
        claims: Extracted identity claims, when valid.
        did_resolved: True/False once DID resolution was attempted.
        did_document: Resolved subject DID document.
        did_error: Typed resolution failure, recorded not raised.
        warning: Non-fatal note (e.g. DID could not be resolved).
    """
    valid: bool
    format: CertificateFormat
    error: Optional[str] = None
    claims: Optional[IdentityClaims] = None
    did_resolved: Optional[bool] = None
    did_document: Optional[Dict[str, Any]] = None
    did_error: Optional[str] = None
    warning: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"valid": self.valid, "format": self.format.value}
        if self.error is not None:
            data["error"] = self.error
        if self.claims is not None:
            data["claims"] = self.claims.to_dict()
        if self.did_resolved is not None:
            data["didResolved"] = self.did_resolved
        if self.did_error is not None:
            data["didError"] = self.did_error
        if self.warning is not None:
            data["warning"] = self.warning
        return data


def _missing_field(data: Dict[str, Any], required) -> Optional[str]:
    for name in required:
        if not data.get(name):
            return name
    return None


def _is_expired(value: Any, now: datetime) -> bool:
    try:
        return parse_timestamp(value) < now
    except (TypeError, ValueError):
        return True


def _legacy_claims(certificate: Certificate) -> IdentityClaims:
    fields = certificate.fields
    return IdentityClaims(
        username=fields.get("username"),
        email=fields.get("email"),
        residence=fields.get("residence"),
        age=fields.get("age"),
        gender=fields.get("gender"),
        work=fields.get("work"),
        did=fields.get("didRef"),
        format=CertificateFormat.LEGACY,
        fields=dict(fields),
    )


def _credential_claims(classified: CredentialCertificate) -> IdentityClaims:
    subject = classified.credential_subject
    vc = classified.credential
    return IdentityClaims(
        username=subject.get("username"),
        email=subject.get("email"),
        residence=subject.get("residence"),
        age=subject.get("age"),
        gender=subject.get("gender"),
        work=subject.get("work"),
        did=subject.get("id"),
        format=CertificateFormat.VC,
        issuer=vc.get("issuer"),
        issuance_date=vc.get("issuanceDate"),
        expiration_date=vc.get("expirationDate"),
    )


def extract_claims(certificate: Any) -> Optional[IdentityClaims]:
    """Uniform claim record from either certificate shape.

    Accepts a Certificate, a classified certificate or raw camelCase JSON.
    Returns None on structural mismatch; never raises.
    """
    try:
        classified = _as_classified(certificate)
        if isinstance(classified, CredentialCertificate):
            if not isinstance(classified.credential.get("credentialSubject"), dict):
                return None
            return _credential_claims(classified)
        return _legacy_claims(classified.certificate)
    except Exception as e:
        log.warning(f"Could not extract identity claims: {e}")
        return None


def _as_classified(certificate: Any) -> ClassifiedCertificate:
    if isinstance(certificate, (LegacyCertificate, CredentialCertificate)):
        return certificate
    if isinstance(certificate, dict):
        certificate = Certificate.from_dict(certificate)
    if not isinstance(certificate, Certificate):
        raise TypeError(f"Unsupported certificate value: {type(certificate).__name__}")
    return classify_certificate(certificate)


def _verify_legacy(certificate: Dict[str, Any]) -> CredentialVerificationResult:
    missing = _missing_field(certificate, LEGACY_REQUIRED_FIELDS)
    if missing:
        return CredentialVerificationResult(
            valid=False,
            format=CertificateFormat.LEGACY,
            error=f"Missing required field: {missing}",
        )
    return CredentialVerificationResult(
        valid=True,
        format=CertificateFormat.LEGACY,
        claims=_legacy_claims(Certificate.from_dict(certificate)),
    )


async def _verify_vc(
    classified: CredentialCertificate,
    did_resolver: Optional[DIDResolver],
    now: datetime,
) -> CredentialVerificationResult:
    vc = classified.credential

    missing = _missing_field(vc, CREDENTIAL_REQUIRED_FIELDS)
    if missing:
        return CredentialVerificationResult(
            valid=False, format=CertificateFormat.VC,
            error=f"Missing required field: {missing}",
        )

    context = vc["@context"]
    if not isinstance(context, list) or VC_CONTEXT_URI not in context:
        return CredentialVerificationResult(
            valid=False, format=CertificateFormat.VC,
            error="Invalid @context: missing W3C credentials context",
        )
    if VERIFIABLE_CREDENTIAL_TYPE not in vc["type"]:
        return CredentialVerificationResult(
            valid=False, format=CertificateFormat.VC,
            error=f"Invalid type: must include {VERIFIABLE_CREDENTIAL_TYPE}",
        )
    if vc.get("expirationDate") and _is_expired(vc["expirationDate"], now):
        return CredentialVerificationResult(
            valid=False, format=CertificateFormat.VC,
            error="Credential has expired",
        )

    result = CredentialVerificationResult(valid=True, format=CertificateFormat.VC)

    subject_did = classified.credential_subject.get("id")
    if did_resolver is not None and subject_did:
        log.info(f"Resolving subject DID: {subject_did}")
        try:
            document = await did_resolver.resolve(subject_did)
        except DIDError as e:
            log.warning(f"DID resolution failed for {subject_did}: {e.message}")
            result.did_resolved = False
            result.did_error = e.message
        except Exception as e:
            log.warning(f"DID resolution error for {subject_did}: {e}")
            result.did_resolved = False
            result.did_error = str(e)
        else:
            if document is None:
                result.did_resolved = False
                result.warning = "DID could not be resolved"
            else:
                try:
                    validate_did_document(document)
                except IdentityError as e:
                    return CredentialVerificationResult(
                        valid=False, format=CertificateFormat.VC,
                        error=f"DID validation failed: {e.message}",
                        did_resolved=True,
                    )
                result.did_resolved = True
                result.did_document = document

    result.claims = extract_claims(classified)
    return result


async def verify_credential(
    certificate: Any,
    did_resolver: Optional[DIDResolver] = None,
    now: Optional[datetime] = None,
) -> CredentialVerificationResult:
    """Classify and structurally verify a certificate.

    Args:
        certificate: Raw camelCase JSON or a Certificate.
        did_resolver: Optional resolver for the credential subject's DID.
        now: Reference time for expiry checks.

    Returns:
        CredentialVerificationResult; failures are reported, not raised.
    """
    now = now or datetime.now(timezone.utc)
    raw = certificate.to_dict() if isinstance(certificate, Certificate) else certificate
    if not isinstance(raw, dict):
        return CredentialVerificationResult(
            valid=False, format=CertificateFormat.LEGACY,
            error="Certificate must be an object",
        )

    try:
        classified = classify_certificate(Certificate.from_dict(raw))
    except MalformedCertificate as e:
        return CredentialVerificationResult(
            valid=False, format=CertificateFormat.LEGACY, error=e.message,
        )
    if isinstance(classified, CredentialCertificate):
        log.debug("Verifying credential-shaped certificate")
        return await _verify_vc(classified, did_resolver, now)
    log.debug("Verifying legacy certificate")
    return _verify_legacy(raw)
