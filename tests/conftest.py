"""Shared fixtures for the age gate tests.

FakeWallet is an in-memory stand-in for the wallet capability provider.
Ciphertext is a readable tag ("enc:<serial>:<field>") mapped back to the
cleartext registered when the certificate was issued, so tests can see
exactly which fields were decrypted.
"""

from typing import Any, Dict, List, Optional, Sequence

import pytest

from app.identity.models import Certificate, CertificateListing

TRUSTED_ISSUER = "02" + "a1" * 32
ROGUE_ISSUER = "02" + "b2" * 32
SUBJECT_KEY = "03" + "c3" * 32
VERIFIER_KEY = "03" + "d4" * 32
IDENTITY_TYPE = "Q29tbW9uU291cmNlIHVzZXIgaWRlbnRpdHk="
DID_LINKED_TYPE = "Q29tbW9uU291cmNlIGRpZCBpZGVudGl0eQ=="


class FakeWallet:
    """WalletClient backed by dicts, recording every call."""

    def __init__(self, public_key: str = VERIFIER_KEY, authenticated: bool = True):
        self.public_key = public_key
        self.authenticated = authenticated
        self.certificates: List[Certificate] = []
        self.calls: List[tuple] = []
        self.decrypted_names: List[str] = []
        self.revealed_names: List[str] = []
        # Behaviour switches
        self.ignore_filters = False
        self.list_error: Optional[Exception] = None
        self.keyring_errors: Dict[str, Exception] = {}
        self.decrypt_errors: Dict[str, Exception] = {}
        self.over_disclose: Dict[str, List[str]] = {}
        self._plaintext: Dict[str, Any] = {}

    def issue(
        self,
        serial: str,
        claims: Dict[str, Any],
        certifier: str = TRUSTED_ISSUER,
        cert_type: str = IDENTITY_TYPE,
        expiration_date: Optional[str] = None,
        signature: str = "3045deadbeef",
    ) -> Certificate:
        fields = {}
        keyring = {}
        for name, value in claims.items():
            ciphertext = f"enc:{serial}:{name}"
            fields[name] = ciphertext
            keyring[name] = f"mk:{serial}:{name}"
            self._plaintext[ciphertext] = value
        certificate = Certificate(
            type=cert_type,
            serial_number=serial,
            subject=SUBJECT_KEY,
            certifier=certifier,
            fields=fields,
            keyring=keyring,
            signature=signature,
            expiration_date=expiration_date,
        )
        self.certificates.append(certificate)
        return certificate

    async def list_certificates(
        self,
        types: Optional[Sequence[str]] = None,
        certifiers: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
    ) -> CertificateListing:
        self.calls.append(("list_certificates", list(types or []), list(certifiers or []), limit))
        if self.list_error is not None:
            raise self.list_error
        matches = [
            c for c in self.certificates
            if self.ignore_filters or (
                (types is None or c.type in types)
                and (certifiers is None or c.certifier in certifiers)
            )
        ]
        if limit is not None:
            matches = matches[:limit]
        return CertificateListing(certificates=matches, total_certificates=len(matches))

    async def create_verifier_keyring(
        self,
        certifier: str,
        verifier_public_key: str,
        fields: Dict[str, Any],
        fields_to_reveal: List[str],
        master_keyring: Dict[str, str],
        serial_number: str,
    ) -> Dict[str, str]:
        self.calls.append(("create_verifier_keyring", serial_number, list(fields_to_reveal)))
        if serial_number in self.keyring_errors:
            raise self.keyring_errors[serial_number]
        for name in fields_to_reveal:
            if name not in fields:
                raise ValueError(f"Field {name} not found in certificate")
        self.revealed_names.extend(fields_to_reveal)
        keyring = {
            name: f"vk:{serial_number}:{name}:{verifier_public_key[:8]}"
            for name in fields_to_reveal
        }
        for name in self.over_disclose.get(serial_number, []):
            keyring[name] = f"vk:{serial_number}:{name}:{verifier_public_key[:8]}"
        return keyring

    async def decrypt_fields(
        self,
        master_keyring: Dict[str, str],
        fields: Dict[str, Any],
        certifier: str,
    ) -> Dict[str, Any]:
        self.calls.append(("decrypt_fields", sorted(fields)))
        for ciphertext in fields.values():
            serial = str(ciphertext).split(":")[1]
            if serial in self.decrypt_errors:
                raise self.decrypt_errors[serial]
        result = {}
        for name, ciphertext in fields.items():
            if name in master_keyring and ciphertext in self._plaintext:
                result[name] = self._plaintext[ciphertext]
                self.decrypted_names.append(name)
        return result

    async def get_public_key(self, identity_key: bool = True) -> str:
        self.calls.append(("get_public_key", identity_key))
        return self.public_key

    async def is_authenticated(self) -> bool:
        self.calls.append(("is_authenticated",))
        return self.authenticated

    async def wait_for_authentication(self) -> None:
        self.calls.append(("wait_for_authentication",))
        self.authenticated = True

    def call_names(self) -> List[str]:
        return [c[0] for c in self.calls]


@pytest.fixture
def wallet():
    """Connected wallet with no certificates."""
    return FakeWallet()


@pytest.fixture
def gate_config():
    """Age gate config trusting TRUSTED_ISSUER, identity path only, age >= 18."""
    from app.identity.age_gate import AgeGateConfig

    return AgeGateConfig(
        trusted_issuer=TRUSTED_ISSUER,
        certificate_type_filters=(IDENTITY_TYPE,),
        minimum_age=18,
        disclosure_field="age",
    )


@pytest.fixture
def legacy_certificate_json():
    return {
        "type": IDENTITY_TYPE,
        "serialNumber": "serial-legacy-0001",
        "subject": SUBJECT_KEY,
        "certifier": TRUSTED_ISSUER,
        "fields": {"username": "alice", "email": "alice@example.com", "age": "30"},
        "keyring": {},
        "signature": "3045deadbeef",
    }


@pytest.fixture
def vc_certificate_json():
    did = "did:bsv:tm:" + "ab" * 32
    return {
        "type": IDENTITY_TYPE,
        "serialNumber": "serial-vc-0001",
        "subject": SUBJECT_KEY,
        "certifier": TRUSTED_ISSUER,
        "signature": "3045deadbeef",
        "fields": {
            "@context": ["https://www.w3.org/2018/credentials/v1"],
            "id": "urn:uuid:1234",
            "type": ["VerifiableCredential", "IdentityCredential"],
            "issuer": "did:bsv:tm:" + "cd" * 32,
            "issuanceDate": "2024-01-01T00:00:00Z",
            "credentialSubject": {
                "id": did,
                "username": "bob",
                "email": "bob@example.com",
                "age": "42",
            },
        },
    }
