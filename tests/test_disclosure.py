"""Tests for single-field selective disclosure."""

import pytest

from app.identity.disclosure import (
    create_verifiable_certificate,
    decrypt_view,
    disclose_field,
    extract_field,
)
from app.identity.exceptions import (
    DecryptionFailed,
    DisclosureError,
    FieldNotPresent,
    MissingCertificateData,
    SelectiveDisclosureFailed,
)
from app.identity.models import Certificate

from conftest import VERIFIER_KEY


class TestCreateVerifiableCertificate:

    @pytest.mark.asyncio
    async def test_view_holds_only_requested_field(self, wallet):
        cert = wallet.issue("s1", {"age": "30", "email": "a@b.c", "username": "alice"})

        view = await create_verifiable_certificate(wallet, cert, VERIFIER_KEY, ["age"])

        assert set(view.fields) == {"age"}
        assert set(view.verifier_keyring) == {"age"}
        assert wallet.revealed_names == ["age"]

    @pytest.mark.asyncio
    async def test_duplicate_reveal_names_collapse(self, wallet):
        cert = wallet.issue("s1", {"age": "30"})

        await create_verifiable_certificate(wallet, cert, VERIFIER_KEY, ["age", "age"])

        assert wallet.calls[-1] == ("create_verifier_keyring", "s1", ["age"])

    @pytest.mark.asyncio
    async def test_empty_reveal_list(self, wallet):
        cert = wallet.issue("s1", {"age": "30"})
        with pytest.raises(SelectiveDisclosureFailed):
            await create_verifiable_certificate(wallet, cert, VERIFIER_KEY, [])

    @pytest.mark.asyncio
    async def test_over_wide_keyring_is_rejected(self, wallet):
        cert = wallet.issue("s1", {"age": "30", "email": "a@b.c"})
        wallet.over_disclose["s1"] = ["email"]

        with pytest.raises(SelectiveDisclosureFailed, match="unrequested"):
            await create_verifiable_certificate(wallet, cert, VERIFIER_KEY, ["age"])
        assert wallet.decrypted_names == []

    @pytest.mark.asyncio
    async def test_derivation_error_is_converted(self, wallet):
        cert = wallet.issue("s1", {"age": "30"})
        wallet.keyring_errors["s1"] = RuntimeError("sdk exploded")

        with pytest.raises(SelectiveDisclosureFailed, match="sdk exploded"):
            await create_verifiable_certificate(wallet, cert, VERIFIER_KEY, ["age"])

    @pytest.mark.asyncio
    async def test_missing_keyring(self, wallet):
        cert = Certificate(
            type="t", serial_number="s1", subject="x", certifier="y",
            fields={"age": "enc"}, keyring={}, signature="sig",
        )
        with pytest.raises(MissingCertificateData, match="keyring"):
            await create_verifiable_certificate(wallet, cert, VERIFIER_KEY, ["age"])


class TestDecryptView:

    @pytest.mark.asyncio
    async def test_decrypts_only_view_fields(self, wallet):
        cert = wallet.issue("s1", {"age": "30", "email": "a@b.c"})
        view = await create_verifiable_certificate(wallet, cert, VERIFIER_KEY, ["age"])

        decrypted = await decrypt_view(wallet, view)

        assert decrypted == {"age": "30"}
        assert wallet.decrypted_names == ["age"]

    @pytest.mark.asyncio
    async def test_decryption_error_is_converted(self, wallet):
        cert = wallet.issue("s1", {"age": "30"})
        view = await create_verifiable_certificate(wallet, cert, VERIFIER_KEY, ["age"])
        wallet.decrypt_errors["s1"] = RuntimeError("bad key")

        with pytest.raises(DecryptionFailed, match="bad key"):
            await decrypt_view(wallet, view)


class TestExtractField:

    @pytest.mark.asyncio
    async def test_age(self, wallet):
        cert = wallet.issue("s1", {"age": "25"})
        assert await extract_field(wallet, cert, VERIFIER_KEY, "age") == 25

    @pytest.mark.asyncio
    async def test_threshold(self, wallet):
        cert = wallet.issue("s1", {"over18": "true"})
        assert await extract_field(wallet, cert, VERIFIER_KEY, "over18") is True

    @pytest.mark.asyncio
    async def test_field_absent_from_certificate(self, wallet):
        cert = wallet.issue("s1", {"email": "a@b.c"})
        # The wallet refuses to derive keys for a field the certificate lacks
        with pytest.raises(SelectiveDisclosureFailed):
            await extract_field(wallet, cert, VERIFIER_KEY, "age")

    @pytest.mark.asyncio
    async def test_implausible_value(self, wallet):
        cert = wallet.issue("s1", {"age": "abc"})
        with pytest.raises(FieldNotPresent):
            await extract_field(wallet, cert, VERIFIER_KEY, "age")

    @pytest.mark.asyncio
    async def test_empty_decryption_result(self, wallet):
        cert = wallet.issue("s1", {"age": "30"})
        wallet._plaintext.clear()
        with pytest.raises(FieldNotPresent):
            await extract_field(wallet, cert, VERIFIER_KEY, "age")

    @pytest.mark.asyncio
    async def test_all_failures_are_disclosure_errors(self, wallet):
        cert = wallet.issue("s1", {"age": "30"})
        wallet.decrypt_errors["s1"] = OSError("io")
        with pytest.raises(DisclosureError):
            await extract_field(wallet, cert, VERIFIER_KEY, "age")

    @pytest.mark.asyncio
    async def test_disclose_field_returns_single_entry(self, wallet):
        cert = wallet.issue("s1", {"age": "30", "username": "alice"})
        assert await disclose_field(wallet, cert, VERIFIER_KEY, "age") == {"age": "30"}
