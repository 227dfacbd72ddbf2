"""Unified identity authentication.

Looks for a usable identity certificate in the user's wallet first, then
in a fallback store of certificates the user presented during the auth
handshake. The fallback store is pluggable; by default it is disabled.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Protocol

from app.core.config import IDENTITY_CERTIFICATE_TYPE, TRUSTED_ISSUER_PUBLIC_KEY

from .credential import (
    CredentialVerificationResult,
    DIDResolver,
    extract_claims,
    verify_credential,
)
from .models import Certificate, IdentityClaims
from .validator import is_usable
from .wallet import WalletClient

log = logging.getLogger(__name__)

SOURCE_WALLET = "wallet"
SOURCE_FALLBACK = "fallback"


class CertificateLookup(Protocol):
    """Secondary certificate source keyed by identity key."""

    async def find_certificate(
        self,
        identity_key: str,
        certificate_type: str,
    ) -> Optional[Certificate]: ...


class DisabledCertificateLookup:
    """Fallback store that never finds anything."""

    async def find_certificate(
        self,
        identity_key: str,
        certificate_type: str,
    ) -> Optional[Certificate]:
        log.debug("Fallback certificate store disabled")
        return None


@dataclass
class AuthResult:
    success: bool
    source: Optional[str] = None
    certificate: Optional[Certificate] = None
    verified: bool = False
    error: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "source": self.source,
            "certificate": self.certificate.to_dict() if self.certificate else None,
            "verified": self.verified,
            "error": self.error,
            "message": self.message,
        }


class UnifiedAuthService:
    """Wallet-first identity lookup with a fallback store."""

    def __init__(
        self,
        trusted_issuer: str = TRUSTED_ISSUER_PUBLIC_KEY,
        certificate_type: str = IDENTITY_CERTIFICATE_TYPE,
        fallback_store: Optional[CertificateLookup] = None,
    ):
        self.trusted_issuer = trusted_issuer
        self.certificate_type = certificate_type
        self.fallback_store = fallback_store or DisabledCertificateLookup()

    async def authenticate(
        self,
        wallet: Optional[WalletClient],
        user_public_key: Optional[str],
        now: Optional[datetime] = None,
    ) -> AuthResult:
        """Find a usable identity certificate for `user_public_key`.

        Raises:
            ValueError: wallet or user_public_key missing.
        """
        if wallet is None or not user_public_key:
            raise ValueError("Wallet and user public key are required")

        try:
            certificate = await self._check_wallet(wallet, now)
            if certificate is not None:
                log.info(f"Identity certificate found in wallet for {user_public_key[:16]}...")
                return AuthResult(
                    success=True,
                    source=SOURCE_WALLET,
                    certificate=certificate,
                    verified=True,
                )

            certificate = await self.fallback_store.find_certificate(
                user_public_key, self.certificate_type
            )
            if certificate is not None and is_usable(certificate, self.trusted_issuer, now):
                log.info(f"Identity certificate found in fallback store for {user_public_key[:16]}...")
                return AuthResult(
                    success=True,
                    source=SOURCE_FALLBACK,
                    certificate=certificate,
                    verified=True,
                )

            return AuthResult(success=False, message="No valid certificate found")

        except Exception as e:
            log.exception("Unified authentication failed")
            return AuthResult(success=False, error=str(e))

    async def _check_wallet(
        self,
        wallet: WalletClient,
        now: Optional[datetime],
    ) -> Optional[Certificate]:
        try:
            listing = await wallet.list_certificates(
                types=[self.certificate_type],
                certifiers=[self.trusted_issuer],
                limit=1,
            )
        except Exception as e:
            log.warning(f"Wallet certificate check failed: {e}")
            return None

        for certificate in listing.certificates:
            if is_usable(certificate, self.trusted_issuer, now):
                return certificate
        return None

    async def verify_credential(
        self,
        certificate: Any,
        did_resolver: Optional[DIDResolver] = None,
    ) -> CredentialVerificationResult:
        return await verify_credential(certificate, did_resolver)

    def extract_claims(self, certificate: Any) -> Optional[IdentityClaims]:
        return extract_claims(certificate)
