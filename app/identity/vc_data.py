"""Expansion of VC-enabled legacy certificates into full identity claims.

A legacy certificate marks itself VC-enabled with isVC = "true" and names
the holder's DID in didRef. The claims then live in the holder's wallet:
a DID document certificate whose document id is didRef vouches for the
DID, and a VC data certificate carries the identity fields. When the
wallet holds neither, the legacy certificate's own fields stand in.
"""

import json
import logging
from typing import Any, Dict, Optional

from app.core.config import DID_DOCUMENT_CERTIFICATE_TYPE, VC_DATA_CERTIFICATE_TYPE

from .models import Certificate, CertificateFormat, DecryptedClaim, IdentityClaims
from .wallet import WalletClient

log = logging.getLogger(__name__)

CLAIM_FIELDS = ("username", "email", "age", "residence", "gender", "work")


def is_vc_enabled(fields: Dict[str, Any]) -> bool:
    return str(fields.get("isVC", "")).lower() == "true" and bool(fields.get("didRef"))


def _did_document_id(certificate: Certificate) -> Optional[str]:
    document = certificate.fields.get("didDocument")
    if isinstance(document, str):
        try:
            document = json.loads(document)
        except ValueError:
            return None
    if not isinstance(document, dict):
        return None
    return document.get("id")


def _claims_from(data: Dict[str, Any], did: str) -> IdentityClaims:
    values = {name: data.get(name) or "" for name in CLAIM_FIELDS}
    return IdentityClaims(did=did, format=CertificateFormat.VC, **values)


async def _wallet_claims(wallet: WalletClient, did_ref: str) -> Optional[IdentityClaims]:
    documents = await wallet.list_certificates(types=[DID_DOCUMENT_CERTIFICATE_TYPE])
    if not any(_did_document_id(c) == did_ref for c in documents.certificates):
        log.debug(f"No DID document certificate for {did_ref}")
        return None

    listing = await wallet.list_certificates(types=[VC_DATA_CERTIFICATE_TYPE])
    for certificate in listing.certificates:
        try:
            data = await wallet.decrypt_fields(
                certificate.keyring, certificate.fields, certificate.certifier
            )
        except Exception as e:
            log.warning(f"Could not decrypt VC data certificate {certificate.serial_number[:8]}...: {e}")
            continue
        if data.get("username") or data.get("email"):
            return _claims_from(data, did_ref)
    return None


async def resolve_vc_data(
    wallet: WalletClient,
    decrypted_fields: DecryptedClaim,
) -> Optional[IdentityClaims]:
    """Full identity claims for a VC-enabled legacy certificate.

    Args:
        wallet: Holder's wallet, searched for DID document and VC data
            certificates.
        decrypted_fields: Cleartext fields of the legacy certificate.

    Returns:
        Claims from the wallet's VC data certificate when the DID is
        vouched for, otherwise claims from decrypted_fields. None when
        the certificate is not VC-enabled.
    """
    if not is_vc_enabled(decrypted_fields):
        return None
    did_ref = decrypted_fields["didRef"]

    try:
        claims = await _wallet_claims(wallet, did_ref)
    except Exception as e:
        log.warning(f"VC data lookup failed for {did_ref}: {e}")
        claims = None

    if claims is not None:
        log.info(f"Resolved VC data for {did_ref} from wallet")
        return claims
    log.info(f"Using certificate fields as VC data for {did_ref}")
    return _claims_from(decrypted_fields, did_ref)
