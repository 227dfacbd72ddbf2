"""Tests for certificate classification, verification and claim extraction."""

import copy
from unittest.mock import AsyncMock

import pytest

from app.identity.credential import extract_claims, verify_credential
from app.identity.did import build_placeholder_document
from app.identity.exceptions import DIDResolutionError, InvalidDIDFormat, MalformedCertificate
from app.identity.models import (
    Certificate,
    CertificateFormat,
    CredentialCertificate,
    LegacyCertificate,
    classify_certificate,
)


class TestClassification:

    def test_legacy(self, legacy_certificate_json):
        classified = classify_certificate(Certificate.from_dict(legacy_certificate_json))
        assert isinstance(classified, LegacyCertificate)
        assert classified.format == CertificateFormat.LEGACY

    def test_credential(self, vc_certificate_json):
        classified = classify_certificate(Certificate.from_dict(vc_certificate_json))
        assert isinstance(classified, CredentialCertificate)
        assert classified.credential_subject["username"] == "bob"

    def test_context_without_credential_type_is_legacy(self, vc_certificate_json):
        vc_certificate_json["fields"]["type"] = ["SomethingElse"]
        classified = classify_certificate(Certificate.from_dict(vc_certificate_json))
        assert isinstance(classified, LegacyCertificate)

    def test_string_type_is_legacy(self, vc_certificate_json):
        vc_certificate_json["fields"]["type"] = "VerifiableCredential"
        classified = classify_certificate(Certificate.from_dict(vc_certificate_json))
        assert isinstance(classified, LegacyCertificate)


class TestVerifyLegacy:

    @pytest.mark.asyncio
    async def test_valid(self, legacy_certificate_json):
        result = await verify_credential(legacy_certificate_json)

        assert result.valid is True
        assert result.format == CertificateFormat.LEGACY
        assert result.claims.username == "alice"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["type", "serialNumber", "subject", "certifier", "signature"])
    async def test_missing_required_field(self, legacy_certificate_json, field):
        del legacy_certificate_json[field]

        result = await verify_credential(legacy_certificate_json)

        assert result.valid is False
        assert result.error == f"Missing required field: {field}"

    @pytest.mark.asyncio
    async def test_accepts_certificate_object(self, legacy_certificate_json):
        result = await verify_credential(Certificate.from_dict(legacy_certificate_json))
        assert result.valid is True

    @pytest.mark.asyncio
    async def test_non_object(self):
        result = await verify_credential(["not", "a", "certificate"])
        assert result.valid is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name,value", [
        ("fields", "abc"),
        ("fields", [1, 2]),
        ("keyring", "abc"),
        ("keyring", ["k"]),
    ])
    async def test_non_object_fields_or_keyring(self, legacy_certificate_json, name, value):
        legacy_certificate_json[name] = value

        result = await verify_credential(legacy_certificate_json)

        assert result.valid is False
        assert result.error == f"Certificate {name} must be an object"


class TestVerifyCredential:

    @pytest.mark.asyncio
    async def test_valid_without_resolver(self, vc_certificate_json):
        result = await verify_credential(vc_certificate_json)

        assert result.valid is True
        assert result.format == CertificateFormat.VC
        assert result.claims.username == "bob"
        assert result.claims.did.startswith("did:bsv:tm:")
        assert result.did_resolved is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "field", ["id", "issuer", "issuanceDate", "credentialSubject"]
    )
    async def test_missing_required_field(self, vc_certificate_json, field):
        del vc_certificate_json["fields"][field]

        result = await verify_credential(vc_certificate_json)

        assert result.valid is False
        assert result.error == f"Missing required field: {field}"

    @pytest.mark.asyncio
    async def test_missing_w3c_context(self, vc_certificate_json):
        vc_certificate_json["fields"]["@context"] = ["https://example.com/ctx"]

        result = await verify_credential(vc_certificate_json)

        assert result.valid is False
        assert "@context" in result.error

    @pytest.mark.asyncio
    async def test_expired(self, vc_certificate_json):
        vc_certificate_json["fields"]["expirationDate"] = "2020-01-01T00:00:00Z"

        result = await verify_credential(vc_certificate_json)

        assert result.valid is False
        assert result.error == "Credential has expired"

    @pytest.mark.asyncio
    async def test_future_expiry_is_valid(self, vc_certificate_json):
        vc_certificate_json["fields"]["expirationDate"] = "2999-01-01T00:00:00Z"
        assert (await verify_credential(vc_certificate_json)).valid is True


class TestDIDResolution:

    @pytest.mark.asyncio
    async def test_resolved_document(self, vc_certificate_json):
        did = vc_certificate_json["fields"]["credentialSubject"]["id"]
        resolver = AsyncMock()
        resolver.resolve.return_value = build_placeholder_document(did)

        result = await verify_credential(vc_certificate_json, did_resolver=resolver)

        resolver.resolve.assert_awaited_once_with(did)
        assert result.valid is True
        assert result.did_resolved is True
        assert result.did_document["id"] == did

    @pytest.mark.asyncio
    async def test_unresolved_is_warning(self, vc_certificate_json):
        resolver = AsyncMock()
        resolver.resolve.return_value = None

        result = await verify_credential(vc_certificate_json, did_resolver=resolver)

        assert result.valid is True
        assert result.did_resolved is False
        assert result.warning == "DID could not be resolved"

    @pytest.mark.asyncio
    async def test_invalid_document_invalidates(self, vc_certificate_json):
        did = vc_certificate_json["fields"]["credentialSubject"]["id"]
        document = build_placeholder_document(did)
        document["verificationMethod"] = []
        resolver = AsyncMock()
        resolver.resolve.return_value = document

        result = await verify_credential(vc_certificate_json, did_resolver=resolver)

        assert result.valid is False
        assert "verificationMethod" in result.error

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [InvalidDIDFormat(), DIDResolutionError("timeout")])
    async def test_resolution_errors_are_recorded(self, vc_certificate_json, error):
        resolver = AsyncMock()
        resolver.resolve.side_effect = error

        result = await verify_credential(vc_certificate_json, did_resolver=resolver)

        assert result.valid is True
        assert result.did_resolved is False
        assert result.did_error == error.message


class TestExtractClaims:

    def test_legacy_fields(self, legacy_certificate_json):
        claims = extract_claims(legacy_certificate_json)

        assert claims.format == CertificateFormat.LEGACY
        assert claims.email == "alice@example.com"
        assert claims.age == "30"

    def test_credential_subject(self, vc_certificate_json):
        claims = extract_claims(Certificate.from_dict(vc_certificate_json))

        assert claims.format == CertificateFormat.VC
        assert claims.email == "bob@example.com"

    def test_credential_metadata(self, vc_certificate_json):
        vc_certificate_json["fields"]["expirationDate"] = "2099-01-01T00:00:00Z"

        data = extract_claims(vc_certificate_json).to_dict()

        assert data["issuer"] == "did:bsv:tm:" + "cd" * 32
        assert data["issuanceDate"] == "2024-01-01T00:00:00Z"
        assert data["expirationDate"] == "2099-01-01T00:00:00Z"
        assert "fields" not in data

    def test_legacy_raw_fields(self, legacy_certificate_json):
        data = extract_claims(legacy_certificate_json).to_dict()

        assert data["fields"] == legacy_certificate_json["fields"]
        assert "issuer" not in data

    def test_non_object_subject(self, vc_certificate_json):
        broken = copy.deepcopy(vc_certificate_json)
        broken["fields"]["credentialSubject"] = "bob"
        assert extract_claims(broken) is None

    @pytest.mark.parametrize("value", [None, 42, "certificate"])
    def test_never_raises(self, value):
        assert extract_claims(value) is None

    def test_non_object_fields(self, legacy_certificate_json):
        legacy_certificate_json["fields"] = "abc"
        assert extract_claims(legacy_certificate_json) is None


class TestMalformedCertificate:

    @pytest.mark.parametrize("data", [
        {"type": "t", "fields": "abc"},
        {"type": "t", "fields": [1, 2]},
        {"type": "t", "keyring": "abc"},
        "certificate",
    ])
    def test_from_dict_rejects(self, data):
        with pytest.raises(MalformedCertificate):
            Certificate.from_dict(data)

    def test_missing_fields_become_empty(self):
        certificate = Certificate.from_dict({"type": "t", "fields": None})
        assert certificate.fields == {}
        assert certificate.keyring == {}
