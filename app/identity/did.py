"""DID parsing, document validation and resolution.

DIDs take the shape did:bsv:<topic>:<identifier>. Resolution is a JSON
POST to /api/resolve-did; this service answers that route itself from a
DIDRegistry, and HTTPDIDResolver is the client side.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from app.core.config import (
    DID_CONTEXT_URI,
    DID_DOCUMENT_REQUIRED_FIELDS,
    DID_METHOD,
    DID_RESOLVER_TIMEOUT_SECONDS,
    DID_RESOLVER_URL,
)

from .exceptions import DIDResolutionError, InvalidDIDDocument, InvalidDIDFormat

logger = logging.getLogger("agegate.did")

DID_PATTERN = re.compile(r"^did:([^:]+):([^:]+):([^:]+)$")


@dataclass(frozen=True)
class ParsedDID:
    """Components of a did:bsv:<topic>:<identifier> string."""
    did: str
    method: str
    topic: str
    identifier: str


def parse_did(did: Any, expected_topic: Optional[str] = None) -> ParsedDID:
    """Split a DID into method, topic and identifier.

    Args:
        did: The DID string.
        expected_topic: If set, the topic must match it.

    Raises:
        InvalidDIDFormat: Wrong shape, wrong method or unexpected topic.
    """
    if not isinstance(did, str):
        raise InvalidDIDFormat()
    match = DID_PATTERN.match(did)
    if not match or match.group(1) != DID_METHOD:
        raise InvalidDIDFormat()
    method, topic, identifier = match.groups()
    if expected_topic is not None and topic != expected_topic.replace(" ", ""):
        raise InvalidDIDFormat(f"Unsupported DID topic: {topic}")
    return ParsedDID(did=did, method=method, topic=topic, identifier=identifier)


def validate_did_document(document: Any) -> None:
    """Check W3C DID document structure.

    Raises:
        InvalidDIDDocument: Not an object, missing '@context', 'id' or
            'verificationMethod', '@context' without the DID v1 URI, or
            an empty verificationMethod list.
    """
    if not isinstance(document, dict):
        raise InvalidDIDDocument("DID document must be an object")

    for name in DID_DOCUMENT_REQUIRED_FIELDS:
        if not document.get(name):
            raise InvalidDIDDocument(f"Missing required field: {name}")

    context = document["@context"]
    if not isinstance(context, list) or DID_CONTEXT_URI not in context:
        raise InvalidDIDDocument("Invalid @context")

    methods = document["verificationMethod"]
    if not isinstance(methods, list) or len(methods) == 0:
        raise InvalidDIDDocument("DID document must have at least one verification method")


def build_placeholder_document(did: str) -> Dict[str, Any]:
    """Single-key DID document used when no document has been registered."""
    key_id = f"{did}#key-1"
    return {
        "@context": [DID_CONTEXT_URI],
        "id": did,
        "verificationMethod": [{
            "id": key_id,
            "type": "JsonWebKey2020",
            "controller": did,
            "publicKeyJwk": {
                "kty": "EC",
                "crv": "secp256k1",
                "use": "sig",
            },
        }],
        "authentication": [key_id],
        "assertionMethod": [key_id],
    }


class DIDRegistry:
    """In-process DID document registry behind /api/resolve-did."""

    def __init__(self, synthesize_missing: bool = False):
        self._documents: Dict[str, Dict[str, Any]] = {}
        self.synthesize_missing = synthesize_missing

    def register(self, document: Dict[str, Any]) -> None:
        """Store a validated document under its id.

        Raises:
            InvalidDIDDocument: Document structure invalid.
            InvalidDIDFormat: Document id is not a did:bsv DID.
        """
        validate_did_document(document)
        parse_did(document["id"])
        self._documents[document["id"]] = document

    def resolve(self, did: str) -> Optional[Dict[str, Any]]:
        """Registered document, a placeholder, or None.

        Raises:
            InvalidDIDFormat: Malformed DID.
        """
        parse_did(did)
        document = self._documents.get(did)
        if document is None and self.synthesize_missing:
            document = build_placeholder_document(did)
        return document

    def __len__(self) -> int:
        return len(self._documents)


class HTTPDIDResolver:
    """Resolves DIDs through a remote /api/resolve-did endpoint."""

    def __init__(
        self,
        base_url: str = DID_RESOLVER_URL,
        timeout: float = DID_RESOLVER_TIMEOUT_SECONDS,
        expected_topic: Optional[str] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.expected_topic = expected_topic

    async def resolve(self, did: str) -> Optional[Dict[str, Any]]:
        """Fetch the DID document.

        Returns:
            The document, or None when the resolver reports it unresolved.

        Raises:
            InvalidDIDFormat: Malformed DID (checked locally, or HTTP 400).
            DIDResolutionError: Network failure or resolver error.
        """
        parse_did(did, self.expected_topic)
        url = f"{self.base_url}/api/resolve-did"

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json={"did": did})

                if response.status_code == 400:
                    raise InvalidDIDFormat()
                if response.status_code == 404:
                    logger.debug(f"DID not found: {did}")
                    return None
                response.raise_for_status()
                data = response.json()

        except httpx.TimeoutException:
            raise DIDResolutionError(f"DID resolution timeout after {self.timeout}s")
        except httpx.HTTPStatusError as e:
            raise DIDResolutionError(f"DID resolution HTTP error: {e.response.status_code}")
        except httpx.RequestError as e:
            raise DIDResolutionError(f"DID resolution network error: {e}")
        except ValueError as e:
            raise DIDResolutionError(f"DID resolver returned invalid JSON: {e}")

        if not isinstance(data, dict) or not data.get("resolved"):
            logger.debug(f"DID unresolved: {did}")
            return None
        return data.get("didDocument")
