"""Certificate validation predicates.

Pure checks over a single certificate record. Callers conjoin all three
before using a certificate for disclosure; a failing certificate is
skipped, never treated as fatal.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from .models import Certificate, parse_timestamp

log = logging.getLogger(__name__)


def validate_structure(cert: Optional[Certificate]) -> bool:
    """True iff type, serial number, subject, certifier and signature are non-empty."""
    if cert is None:
        return False
    for name in ("type", "serial_number", "subject", "certifier", "signature"):
        if not getattr(cert, name, None):
            log.debug(f"Certificate missing required field: {name}")
            return False
    return True


def validate_issuer(cert: Optional[Certificate], trusted_issuer: str) -> bool:
    """Exact, case-sensitive match of the certifier against the trusted key."""
    if cert is None or not cert.certifier or not trusted_issuer:
        return False
    return cert.certifier == trusted_issuer


def validate_not_expired(cert: Optional[Certificate], now: Optional[datetime] = None) -> bool:
    """True if there is no expiration date, or it lies after `now`.

    An unparseable expiration date fails closed.
    """
    if cert is None:
        return False
    if not cert.expiration_date:
        return True
    now = now or datetime.now(timezone.utc)
    try:
        expires_at = parse_timestamp(cert.expiration_date)
    except (TypeError, ValueError):
        log.warning(f"Unparseable expirationDate on certificate: {cert.expiration_date!r}")
        return False
    return expires_at > now


def rejection_reason(
    cert: Optional[Certificate],
    trusted_issuer: str,
    now: Optional[datetime] = None,
) -> Optional[str]:
    """Name of the first failing check, or None when the certificate is usable."""
    if not validate_structure(cert):
        return "malformed"
    if not validate_issuer(cert, trusted_issuer):
        return "untrusted issuer"
    if not validate_not_expired(cert, now):
        return "expired"
    return None


def is_usable(
    cert: Optional[Certificate],
    trusted_issuer: str,
    now: Optional[datetime] = None,
) -> bool:
    """Conjunction of structure, issuer and expiry checks."""
    return rejection_reason(cert, trusted_issuer, now) is None
