"""Wallet capability provider interface.

The wallet SDK owns key management and certificate cryptography. This
module states the contract the age gate relies on (WalletClient) and
provides a JSON-over-HTTP adapter for wallets that expose it remotely.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx

from app.core.config import WALLET_TIMEOUT_SECONDS, WALLET_URL

from .exceptions import MalformedCertificate, WalletError
from .models import CertificateListing, VerifierKeyring

logger = logging.getLogger("agegate.wallet")


class WalletClient(Protocol):
    """Certificate capabilities consumed by the age gate.

    list_certificates filters are a conjunction; a filter left as None
    means no restriction. create_verifier_keyring fails if a name in
    fields_to_reveal is absent from fields. decrypt_fields returns
    cleartext only for names present in `fields`.
    """

    async def list_certificates(
        self,
        types: Optional[Sequence[str]] = None,
        certifiers: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
    ) -> CertificateListing: ...

    async def create_verifier_keyring(
        self,
        certifier: str,
        verifier_public_key: str,
        fields: Dict[str, Any],
        fields_to_reveal: List[str],
        master_keyring: Dict[str, str],
        serial_number: str,
    ) -> VerifierKeyring: ...

    async def decrypt_fields(
        self,
        master_keyring: Dict[str, str],
        fields: Dict[str, Any],
        certifier: str,
    ) -> Dict[str, Any]: ...

    async def get_public_key(self, identity_key: bool = True) -> str: ...

    async def is_authenticated(self) -> bool: ...

    async def wait_for_authentication(self) -> None: ...


class HTTPWalletClient:
    """WalletClient over the wallet's JSON HTTP substrate.

    Each capability is a POST of a camelCase body to {base_url}/{call}.
    Transport failures and non-2xx responses raise WalletError.
    """

    def __init__(
        self,
        base_url: str = WALLET_URL,
        timeout: float = WALLET_TIMEOUT_SECONDS,
        originator: Optional[str] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.originator = originator

    async def _call(self, call: str, body: Dict[str, Any]) -> Any:
        url = f"{self.base_url}/{call}"
        headers = {"Content-Type": "application/json"}
        if self.originator:
            headers["Originator"] = self.originator

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=body, headers=headers)

                if response.status_code >= 400:
                    raise WalletError(
                        f"Wallet call {call} failed: HTTP {response.status_code}"
                    )
                return response.json()

        except httpx.TimeoutException:
            raise WalletError(f"Wallet call {call} timed out after {self.timeout}s")
        except httpx.RequestError as e:
            raise WalletError(f"Wallet call {call} network error: {e}")
        except ValueError as e:
            raise WalletError(f"Wallet call {call} returned invalid JSON: {e}")

    async def list_certificates(
        self,
        types: Optional[Sequence[str]] = None,
        certifiers: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
    ) -> CertificateListing:
        body: Dict[str, Any] = {
            "types": list(types or []),
            "certifiers": list(certifiers or []),
        }
        if limit is not None:
            body["limit"] = limit
        data = await self._call("listCertificates", body)
        if not isinstance(data, dict):
            raise WalletError("listCertificates returned a non-object response")
        try:
            listing = CertificateListing.from_dict(data)
        except MalformedCertificate as e:
            raise WalletError(f"listCertificates returned a malformed certificate: {e.message}")
        logger.debug(f"listCertificates returned {len(listing.certificates)} certificates")
        return listing

    async def create_verifier_keyring(
        self,
        certifier: str,
        verifier_public_key: str,
        fields: Dict[str, Any],
        fields_to_reveal: List[str],
        master_keyring: Dict[str, str],
        serial_number: str,
    ) -> VerifierKeyring:
        data = await self._call("createKeyringForVerifier", {
            "certifier": certifier,
            "verifier": verifier_public_key,
            "fields": fields,
            "fieldsToReveal": list(fields_to_reveal),
            "originalKeyring": master_keyring,
            "serialNumber": serial_number,
        })
        keyring = data.get("keyringForVerifier", data) if isinstance(data, dict) else None
        if not isinstance(keyring, dict):
            raise WalletError("createKeyringForVerifier returned a non-object response")
        return {str(k): str(v) for k, v in keyring.items()}

    async def decrypt_fields(
        self,
        master_keyring: Dict[str, str],
        fields: Dict[str, Any],
        certifier: str,
    ) -> Dict[str, Any]:
        data = await self._call("decryptFields", {
            "masterKeyring": master_keyring,
            "fields": fields,
            "counterparty": certifier,
        })
        decrypted = data.get("fields", data) if isinstance(data, dict) else None
        if not isinstance(decrypted, dict):
            raise WalletError("decryptFields returned a non-object response")
        return decrypted

    async def get_public_key(self, identity_key: bool = True) -> str:
        data = await self._call("getPublicKey", {"identityKey": identity_key})
        public_key = data.get("publicKey") if isinstance(data, dict) else None
        if not public_key:
            raise WalletError("getPublicKey returned no publicKey")
        return public_key

    async def is_authenticated(self) -> bool:
        data = await self._call("isAuthenticated", {})
        return bool(isinstance(data, dict) and data.get("authenticated"))

    async def wait_for_authentication(self) -> None:
        await self._call("waitForAuthentication", {})
