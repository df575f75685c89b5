"""Tests for keyfile-backed signing."""

import json

import pytest

from permaskills_arweave import ArweaveSigner, DataItem, KeyfileSigningProvider, key_from_jwk
from permaskills_arweave.wallet import address_of
from permaskills_core import ConfigurationError


class TestJwk:
    def test_round_trip(self, rsa_key, jwk):
        restored = key_from_jwk(jwk)
        assert restored.private_numbers() == rsa_key.private_numbers()

    def test_address_is_43_chars(self, rsa_key):
        assert len(address_of(rsa_key)) == 43

    def test_missing_members(self, jwk):
        del jwk["d"]
        with pytest.raises(ConfigurationError, match="missing: d"):
            key_from_jwk(jwk)

    def test_wrong_key_type(self, jwk):
        jwk["kty"] = "EC"
        with pytest.raises(ConfigurationError):
            key_from_jwk(jwk)

    def test_inconsistent_members(self, jwk):
        jwk["p"] = jwk["q"]
        with pytest.raises(ConfigurationError, match="invalid"):
            key_from_jwk(jwk)


class TestKeyfileSigningProvider:
    async def test_address_from_keyfile(self, keyfile, rsa_key):
        async with KeyfileSigningProvider(keyfile) as wallet:
            assert await wallet.get_address() == address_of(rsa_key)

    async def test_in_memory_jwk(self, jwk, rsa_key):
        wallet = KeyfileSigningProvider(jwk=jwk)
        assert await wallet.get_address() == address_of(rsa_key)

    async def test_signer_produces_verifiable_items(self, keyfile):
        async with KeyfileSigningProvider(keyfile) as wallet:
            signer = await wallet.create_signer()
            assert isinstance(signer, ArweaveSigner)
            item = await signer.sign(b"data", tags=[("Action", "Info")])

        parsed = DataItem.parse(item.raw)
        assert parsed.id == item.id
        assert parsed.owner_address == item.owner == signer.address
        assert parsed.tags == [("Action", "Info")]
        assert len(parsed.anchor) == 32
        assert parsed.verify()

    async def test_closed_provider_refuses(self, keyfile):
        wallet = KeyfileSigningProvider(keyfile)
        await wallet.close()
        with pytest.raises(ConfigurationError, match="closed"):
            await wallet.get_address()

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found") as exc_info:
            KeyfileSigningProvider(tmp_path / "nope.json")
        assert exc_info.value.config_key == "wallet"

    def test_not_json(self, tmp_path):
        path = tmp_path / "wallet.json"
        path.write_text("not json")
        with pytest.raises(ConfigurationError, match="readable JSON"):
            KeyfileSigningProvider(path)

    def test_not_an_object(self, tmp_path):
        path = tmp_path / "wallet.json"
        path.write_text(json.dumps(["a"]))
        with pytest.raises(ConfigurationError, match="not a JWK object"):
            KeyfileSigningProvider(path)

    def test_exactly_one_source(self, keyfile, jwk):
        with pytest.raises(ConfigurationError):
            KeyfileSigningProvider()
        with pytest.raises(ConfigurationError):
            KeyfileSigningProvider(keyfile, jwk=jwk)
