"""Per-session certificate store and certificate receipt channel.

Certificates presented by a peer during the /.well-known/auth handshake are
published as CertificateReceived events. A single consumer validates them
and files them under the sender's identity key. Sessions have an explicit
lifecycle (start, get, end) and are bounded by TTL and entry count.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from app.core.config import SESSION_MAX_ENTRIES, SESSION_TTL_SECONDS

from .exceptions import MalformedCertificate
from .models import Certificate
from .validator import validate_structure

log = logging.getLogger(__name__)


@dataclass
class CertificateReceived:
    """Certificates presented by a peer, not yet validated."""
    sender_public_key: str
    certificates: List[Dict]
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class CertificateSession:
    """Certificates received from one identity, keyed by certificate type.

    The first certificate of a type wins; later ones are ignored.
    """
    identity_key: str
    expires_at: datetime
    last_access: datetime
    certificates: Dict[str, Certificate] = field(default_factory=dict)

    def add(self, certificate: Certificate) -> bool:
        """Store a certificate. Returns False if its type is already held."""
        if certificate.type in self.certificates:
            log.info(
                f"Ignoring duplicate certificate of type {certificate.type} "
                f"for {self.identity_key[:16]}..."
            )
            return False
        self.certificates[certificate.type] = certificate
        return True

    def find(self, certificate_type: str) -> Optional[Certificate]:
        return self.certificates.get(certificate_type)

    def all(self) -> List[Certificate]:
        return list(self.certificates.values())


class SessionRegistry:
    """Bounded registry of certificate sessions.

    Expired sessions are dropped on access. When the registry is full the
    least recently used session is evicted. Also serves as the fallback
    CertificateLookup for UnifiedAuthService.
    """

    def __init__(
        self,
        ttl_seconds: float = SESSION_TTL_SECONDS,
        max_entries: int = SESSION_MAX_ENTRIES,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._sessions: Dict[str, CertificateSession] = {}
        self._lock = asyncio.Lock()

    async def start(self, identity_key: str) -> CertificateSession:
        """Open (or refresh) the session for an identity key."""
        async with self._lock:
            now = datetime.now(timezone.utc)
            session = self._live(identity_key, now)
            if session is None:
                if len(self._sessions) >= self.max_entries:
                    self._evict_lru()
                session = CertificateSession(
                    identity_key=identity_key,
                    expires_at=now,
                    last_access=now,
                )
                self._sessions[identity_key] = session
            session.expires_at = now + timedelta(seconds=self.ttl_seconds)
            session.last_access = now
            return session

    async def get(self, identity_key: str) -> Optional[CertificateSession]:
        async with self._lock:
            now = datetime.now(timezone.utc)
            session = self._live(identity_key, now)
            if session is not None:
                session.last_access = now
            return session

    async def end(self, identity_key: str) -> bool:
        """Drop a session. Returns True if one existed."""
        async with self._lock:
            return self._sessions.pop(identity_key, None) is not None

    async def find_certificate(
        self,
        identity_key: str,
        certificate_type: str,
    ) -> Optional[Certificate]:
        session = await self.get(identity_key)
        if session is None:
            return None
        return session.find(certificate_type)

    def __len__(self) -> int:
        return len(self._sessions)

    def _live(self, identity_key: str, now: datetime) -> Optional[CertificateSession]:
        session = self._sessions.get(identity_key)
        if session is not None and session.expires_at <= now:
            log.debug(f"Session expired for {identity_key[:16]}...")
            del self._sessions[identity_key]
            return None
        return session

    def _evict_lru(self) -> None:
        if not self._sessions:
            return
        oldest = min(self._sessions.values(), key=lambda s: s.last_access)
        log.info(f"Evicting session for {oldest.identity_key[:16]}...")
        del self._sessions[oldest.identity_key]


class CertificateReceiptChannel:
    """Queue of CertificateReceived events drained by one consumer.

    handle() does structural validation and session bookkeeping only.
    """

    def __init__(self, registry: SessionRegistry):
        self.registry = registry
        self._queue: "asyncio.Queue[CertificateReceived]" = asyncio.Queue()

    def publish(self, event: CertificateReceived) -> None:
        self._queue.put_nowait(event)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def handle(self, event: CertificateReceived) -> int:
        """File the event's valid certificates under the sender's session.

        Returns:
            Number of certificates stored.
        """
        session = await self.registry.start(event.sender_public_key)
        stored = 0
        for raw in event.certificates:
            try:
                certificate = Certificate.from_dict(raw)
            except MalformedCertificate as e:
                log.warning(f"Dropping certificate from receipt: {e.message}")
                continue
            if not validate_structure(certificate):
                log.warning(
                    f"Dropping malformed certificate from {event.sender_public_key[:16]}..."
                )
                continue
            if session.add(certificate):
                stored += 1
        log.info(
            f"Stored {stored} of {len(event.certificates)} certificates "
            f"for {event.sender_public_key[:16]}..."
        )
        return stored

    async def drain(self) -> int:
        """Handle every queued event, then wait out any in-flight one.

        Lets a reader observe every receipt published before the call.
        """
        handled = 0
        while not self._queue.empty():
            event = self._queue.get_nowait()
            try:
                await self.handle(event)
                handled += 1
            finally:
                self._queue.task_done()
        await self._queue.join()
        return handled

    async def run(self) -> None:
        """Consumer loop; runs until cancelled."""
        while True:
            event = await self._queue.get()
            try:
                await self.handle(event)
            except Exception:
                log.exception("Failed to handle certificate receipt")
            finally:
                self._queue.task_done()
