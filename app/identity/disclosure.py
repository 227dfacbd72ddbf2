"""Selective disclosure of a single certificate field.

A verifier keyring is derived for exactly the requested field, so keys for
every other field are absent before any decryption happens. Decryption
then runs under the master keyring scoped to the fields the view exposes,
and the result is filtered to the requested name.

Every wallet SDK failure is converted to a DisclosureError subclass.
"""

import logging
from typing import List, Optional, Sequence

from .claims import ClaimKind, coerce_claim
from .exceptions import (
    DecryptionFailed,
    DisclosureError,
    FieldNotPresent,
    MissingCertificateData,
    SelectiveDisclosureFailed,
)
from .models import Certificate, ClaimValue, DecryptedClaim, VerifiableCertificateView
from .wallet import WalletClient

log = logging.getLogger(__name__)


def _require_certificate_data(certificate: Certificate) -> None:
    missing = [
        name for name in ("keyring", "fields", "certifier")
        if not getattr(certificate, name, None)
    ]
    if missing:
        raise MissingCertificateData(
            f"Certificate {certificate.serial_number[:8] or 'unknown'}... "
            f"missing {', '.join(missing)}"
        )


async def create_verifiable_certificate(
    wallet: WalletClient,
    certificate: Certificate,
    verifier_public_key: str,
    fields_to_reveal: Sequence[str],
) -> VerifiableCertificateView:
    """Derive a verifier keyring for `fields_to_reveal` and build the view.

    The derived keyring must not hold keys beyond the reveal list; a
    wider keyring is rejected before anything is decrypted.

    Raises:
        MissingCertificateData: Certificate lacks keyring, fields or certifier.
        SelectiveDisclosureFailed: Derivation raised, or returned extra keys.
    """
    _require_certificate_data(certificate)

    reveal: List[str] = list(dict.fromkeys(fields_to_reveal))
    if not reveal:
        raise SelectiveDisclosureFailed("No fields requested for disclosure")

    try:
        verifier_keyring = await wallet.create_verifier_keyring(
            certificate.certifier,
            verifier_public_key,
            certificate.fields,
            reveal,
            certificate.keyring,
            certificate.serial_number,
        )
    except Exception as e:
        raise SelectiveDisclosureFailed(f"Verifier keyring derivation failed: {e}") from e

    extra = set(verifier_keyring) - set(reveal)
    if extra:
        raise SelectiveDisclosureFailed(
            f"Verifier keyring discloses unrequested fields: {sorted(extra)}"
        )

    view_fields = {
        name: certificate.fields[name]
        for name in reveal
        if name in verifier_keyring and name in certificate.fields
    }
    return VerifiableCertificateView(
        certificate=certificate,
        verifier_keyring=dict(verifier_keyring),
        fields=view_fields,
    )


async def decrypt_view(
    wallet: WalletClient,
    view: VerifiableCertificateView,
) -> DecryptedClaim:
    """Decrypt the fields a view exposes, using the master per-field keys.

    Raises:
        DecryptionFailed: The wallet's decryption call raised.
    """
    certificate = view.certificate
    scoped_keyring = {
        name: certificate.keyring[name]
        for name in view.fields
        if name in certificate.keyring
    }
    if not scoped_keyring:
        return {}

    try:
        decrypted = await wallet.decrypt_fields(
            scoped_keyring, view.fields, certificate.certifier
        )
    except Exception as e:
        raise DecryptionFailed(f"Field decryption failed: {e}") from e

    if not isinstance(decrypted, dict):
        raise DecryptionFailed("Field decryption returned a non-mapping result")
    return {name: decrypted[name] for name in view.fields if name in decrypted}


async def disclose_field(
    wallet: WalletClient,
    certificate: Certificate,
    verifier_public_key: str,
    field_name: str,
) -> DecryptedClaim:
    """Decrypted mapping containing exactly `field_name`, or nothing."""
    view = await create_verifiable_certificate(
        wallet, certificate, verifier_public_key, [field_name]
    )
    decrypted = await decrypt_view(wallet, view)
    return {field_name: decrypted[field_name]} if field_name in decrypted else {}


async def extract_field(
    wallet: WalletClient,
    certificate: Certificate,
    verifier_public_key: str,
    field_name: str,
    kind: Optional[ClaimKind] = None,
) -> ClaimValue:
    """Disclose one field to the verifier and coerce it to a claim value.

    Args:
        wallet: Wallet capability provider holding the certificate.
        certificate: Candidate certificate (already issuer/expiry checked).
        verifier_public_key: Key the disclosure is scoped to.
        field_name: The only field revealed.
        kind: How to interpret the value; inferred from the name if None.

    Returns:
        Integer age or boolean threshold flag.

    Raises:
        DisclosureError: Any per-candidate failure (missing data, derivation,
            decryption, absent or implausible value).
    """
    try:
        decrypted = await disclose_field(wallet, certificate, verifier_public_key, field_name)
    except DisclosureError:
        raise
    except Exception as e:
        raise SelectiveDisclosureFailed(f"Unexpected disclosure failure: {e}") from e

    if field_name not in decrypted:
        raise FieldNotPresent(field_name)

    log.debug(
        f"Disclosed '{field_name}' from certificate "
        f"{certificate.serial_number[:8]}..."
    )
    return coerce_claim(field_name, decrypted[field_name], kind)
