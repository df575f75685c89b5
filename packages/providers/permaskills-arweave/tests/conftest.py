"""Shared fixtures for permaskills-arweave tests."""

import json

import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from permaskills_arweave import jwk_from_key


@pytest.fixture(scope="session")
def rsa_key():
    """One 4096-bit key for the whole run; generating keys is slow."""
    return rsa.generate_private_key(public_exponent=65537, key_size=4096)


@pytest.fixture()
def jwk(rsa_key):
    return jwk_from_key(rsa_key)


@pytest.fixture()
def keyfile(tmp_path, jwk):
    path = tmp_path / "wallet.json"
    path.write_text(json.dumps(jwk))
    return path
