"""Age gate verification state machine.

One verification pass:

1. Make sure the wallet is connected.
2. Walk the lookup paths in order (DID-linked certificates first, then
   directly typed identity certificates), listing candidates filtered by
   type and trusted issuer.
3. Evaluate candidates strictly in list order. Untrusted, malformed or
   expired certificates are skipped before any disclosure is attempted.
   The first candidate that discloses a plausible value decides the
   verdict; later candidates and later paths are never consulted.
4. Classify into verified / denied / no-certificate / error.

Nothing is cached between passes. Each pass re-lists and re-decrypts.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from app.core import config

from .claims import ClaimKind, infer_claim_kind
from .disclosure import extract_field
from .exceptions import DisclosureError, IdentityError, LookupFailed
from .models import (
    Certificate,
    CertificateSource,
    ClaimValue,
    VerificationState,
    VerificationVerdict,
)
from .validator import rejection_reason
from .wallet import WalletClient

log = logging.getLogger(__name__)

REASON_NO_CERTIFICATES = "no certificates found"
REASON_NO_DISCLOSABLE_FIELD = "no disclosable age/threshold field found"


@dataclass
class LookupPath:
    """One way of finding candidate certificates."""
    source: CertificateSource
    types: Tuple[str, ...]


@dataclass
class AgeGateConfig:
    """Age gate parameters.

    Attributes:
        trusted_issuer: Only certificates from this certifier are used.
        certificate_type_filters: Types for directly issued identity certificates.
        minimum_age: Threshold for numeric age claims.
        disclosure_field: The single field disclosed per certificate.
        did_linked_certificate_types: Types consulted before the identity types.
            Empty disables the DID-linked path.
        verifier_public_key: Key disclosures are scoped to. None uses the
            wallet's own identity key.
        claim_kind: Interpretation of the field; inferred from its name if None.
        list_limit: Max certificates fetched per lookup path.
        timeout_seconds: Caller-level timeout for AgeGate.run (0 disables).
    """
    trusted_issuer: str
    certificate_type_filters: Tuple[str, ...]
    minimum_age: int = 18
    disclosure_field: str = "age"
    did_linked_certificate_types: Tuple[str, ...] = ()
    verifier_public_key: Optional[str] = None
    claim_kind: Optional[ClaimKind] = None
    list_limit: Optional[int] = 10
    timeout_seconds: float = 0.0

    @classmethod
    def from_settings(cls, **overrides) -> "AgeGateConfig":
        """Build from app.core.config; keyword overrides win."""
        values = dict(
            trusted_issuer=config.TRUSTED_ISSUER_PUBLIC_KEY,
            certificate_type_filters=(config.IDENTITY_CERTIFICATE_TYPE,),
            minimum_age=config.MINIMUM_AGE,
            disclosure_field=config.DISCLOSURE_FIELD,
            did_linked_certificate_types=config.DID_LINKED_CERTIFICATE_TYPES,
            list_limit=config.CERTIFICATE_LIST_LIMIT,
            timeout_seconds=config.VERIFICATION_TIMEOUT_SECONDS,
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @property
    def lookup_paths(self) -> List[LookupPath]:
        paths = []
        if self.did_linked_certificate_types:
            paths.append(LookupPath(
                CertificateSource.DID_LINKED_CERTIFICATE,
                tuple(self.did_linked_certificate_types),
            ))
        paths.append(LookupPath(
            CertificateSource.IDENTITY_CERTIFICATE,
            tuple(self.certificate_type_filters),
        ))
        return paths

    @property
    def resolved_claim_kind(self) -> ClaimKind:
        return self.claim_kind or infer_claim_kind(self.disclosure_field)


@dataclass
class _Match:
    value: ClaimValue
    certificate: Certificate
    source: CertificateSource


async def _ensure_connected(wallet: WalletClient) -> None:
    if not await wallet.is_authenticated():
        log.info("Wallet not connected, waiting for authentication")
        await wallet.wait_for_authentication()


async def _list_candidates(
    wallet: WalletClient,
    path: LookupPath,
    cfg: AgeGateConfig,
) -> List[Certificate]:
    try:
        listing = await wallet.list_certificates(
            types=list(path.types),
            certifiers=[cfg.trusted_issuer],
            limit=cfg.list_limit,
        )
    except Exception as e:
        raise LookupFailed(f"Certificate retrieval failed: {e}") from e
    return list(listing.certificates)


async def _first_match(
    wallet: WalletClient,
    candidates: Sequence[Certificate],
    source: CertificateSource,
    verifier_public_key: str,
    cfg: AgeGateConfig,
    now: datetime,
) -> Optional[_Match]:
    """Ordered fold over candidates; stops at the first usable value."""
    for index, certificate in enumerate(candidates):
        serial = (certificate.serial_number or "unknown")[:8]
        reason = rejection_reason(certificate, cfg.trusted_issuer, now)
        if reason:
            log.info(f"Skipping candidate {index} ({serial}...): {reason}")
            continue

        try:
            value = await extract_field(
                wallet,
                certificate,
                verifier_public_key,
                cfg.disclosure_field,
                cfg.resolved_claim_kind,
            )
        except DisclosureError as e:
            log.warning(f"Skipping candidate {index} ({serial}...): {e.code}: {e.message}")
            continue

        return _Match(value=value, certificate=certificate, source=source)
    return None


def _classify(match: _Match, cfg: AgeGateConfig) -> VerificationVerdict:
    value = match.value
    if isinstance(value, bool):
        verified = value
        reason = (
            f"{cfg.disclosure_field} confirmed"
            if verified
            else f"{cfg.disclosure_field} not satisfied"
        )
    else:
        verified = value >= cfg.minimum_age
        reason = (
            f"Age verified: {value} years old"
            if verified
            else f"Age verification failed: Must be at least {cfg.minimum_age}, found {value}"
        )

    return VerificationVerdict(
        state=VerificationState.VERIFIED if verified else VerificationState.DENIED,
        reason=reason,
        claim_value=value,
        field_name=cfg.disclosure_field,
        certificate=match.certificate if verified else None,
        source=match.source,
    )


async def verify_age(
    wallet: WalletClient,
    cfg: AgeGateConfig,
    now: Optional[datetime] = None,
) -> VerificationVerdict:
    """Run one verification pass and return its verdict.

    Never raises for wallet or certificate failures: lookup failures
    become an ERROR verdict carrying the underlying message.
    """
    try:
        await _ensure_connected(wallet)
        verifier_public_key = cfg.verifier_public_key or await wallet.get_public_key(
            identity_key=True
        )
        checked_at = now or datetime.now(timezone.utc)

        seen_any = False
        for path in cfg.lookup_paths:
            candidates = await _list_candidates(wallet, path, cfg)
            log.info(f"{path.source.value}: {len(candidates)} candidate certificates")
            if not candidates:
                continue
            seen_any = True

            match = await _first_match(
                wallet, candidates, path.source, verifier_public_key, cfg, checked_at
            )
            if match is not None:
                verdict = _classify(match, cfg)
                log.info(f"Age gate verdict: {verdict.state.value} via {path.source.value}")
                return verdict

        reason = REASON_NO_DISCLOSABLE_FIELD if seen_any else REASON_NO_CERTIFICATES
        log.info(f"Age gate verdict: no-certificate ({reason})")
        return VerificationVerdict(state=VerificationState.NO_CERTIFICATE, reason=reason)

    except IdentityError as e:
        log.error(f"Age gate pass failed: {e.code}: {e.message}")
        return VerificationVerdict(state=VerificationState.ERROR, reason=e.message)
    except Exception as e:
        log.exception("Unexpected error during age verification")
        return VerificationVerdict(state=VerificationState.ERROR, reason=str(e))


@dataclass
class AgeGate:
    """Stateful wrapper tracking the current state across passes.

    `state` starts at CHECKING, moves to a terminal state when a pass
    completes, and returns to CHECKING on retry (manual retry, wallet
    reconnect).
    """
    config: AgeGateConfig
    state: VerificationState = VerificationState.CHECKING
    verdict: Optional[VerificationVerdict] = None
    passes: int = field(default=0)

    async def run(self, wallet: WalletClient) -> VerificationVerdict:
        self.state = VerificationState.CHECKING
        self.verdict = None
        self.passes += 1

        timeout = self.config.timeout_seconds
        try:
            if timeout and timeout > 0:
                verdict = await asyncio.wait_for(verify_age(wallet, self.config), timeout)
            else:
                verdict = await verify_age(wallet, self.config)
        except asyncio.TimeoutError:
            log.warning(f"Age verification timed out after {timeout}s")
            verdict = VerificationVerdict(
                state=VerificationState.ERROR,
                reason=f"Age verification timed out after {timeout}s",
            )

        self.verdict = verdict
        self.state = verdict.state
        return verdict

    async def retry(self, wallet: WalletClient) -> VerificationVerdict:
        return await self.run(wallet)

    @property
    def is_terminal(self) -> bool:
        return self.state != VerificationState.CHECKING
