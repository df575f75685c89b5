"""ANS-104 data items signed with Arweave RSA keys.

A data item is the unit both the bundler (uploads) and AO messenger
units (registry messages) accept.  Layout::

    signature type    2 bytes, little endian (1 = Arweave)
    signature         512 bytes
    owner             512 bytes (RSA modulus)
    target            1 byte flag [+ 32 bytes]
    anchor            1 byte flag [+ 32 bytes]
    tag count         8 bytes, little endian
    tag bytes length  8 bytes, little endian
    tags              Avro array of {name, value} byte records
    data              remaining bytes

The signature is RSA-PSS/SHA-256 over the SHA-384 "deep hash" of the
item's fields; the item id is the base64url SHA-256 of the signature.
"""

from __future__ import annotations

import base64
import hashlib
from collections.abc import Sequence
from dataclasses import dataclass

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

SIGNATURE_TYPE_ARWEAVE = 1
SIGNATURE_LENGTH = 512
OWNER_LENGTH = 512

_PSS = padding.PSS(mgf=padding.MGF1(hashes.SHA256()), salt_length=32)


def b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def b64url_decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


# ------------------------------------------------------------------
# Encoding helpers
# ------------------------------------------------------------------


def _zigzag_varint(n: int) -> bytes:
    z = (n << 1) ^ (n >> 63)
    out = bytearray()
    while z & ~0x7F:
        out.append((z & 0x7F) | 0x80)
        z >>= 7
    out.append(z)
    return bytes(out)


def _read_zigzag_varint(buf: bytes, pos: int) -> tuple[int, int]:
    shift = z = 0
    while True:
        b = buf[pos]
        pos += 1
        z |= (b & 0x7F) << shift
        if not b & 0x80:
            break
        shift += 7
    return (z >> 1) ^ -(z & 1), pos


def encode_tags(tags: Sequence[tuple[str, str]]) -> bytes:
    """Avro-encode *tags*; an empty list encodes to no bytes at all."""
    if not tags:
        return b""
    out = bytearray(_zigzag_varint(len(tags)))
    for name, value in tags:
        for field in (name.encode("utf-8"), value.encode("utf-8")):
            out += _zigzag_varint(len(field)) + field
    out += _zigzag_varint(0)
    return bytes(out)


def decode_tags(raw: bytes) -> list[tuple[str, str]]:
    tags: list[tuple[str, str]] = []
    pos = 0
    while pos < len(raw):
        count, pos = _read_zigzag_varint(raw, pos)
        if count == 0:
            break
        for _ in range(abs(count)):
            fields = []
            for _ in range(2):
                length, pos = _read_zigzag_varint(raw, pos)
                fields.append(raw[pos : pos + length].decode("utf-8"))
                pos += length
            tags.append((fields[0], fields[1]))
    return tags


def deep_hash(chunk: bytes | Sequence[bytes]) -> bytes:
    """SHA-384 deep hash of a blob or a list of blobs."""
    if isinstance(chunk, (bytes, bytearray)):
        tag = hashlib.sha384(b"blob" + str(len(chunk)).encode()).digest()
        return hashlib.sha384(tag + hashlib.sha384(chunk).digest()).digest()
    acc = hashlib.sha384(b"list" + str(len(chunk)).encode()).digest()
    for item in chunk:
        acc = hashlib.sha384(acc + deep_hash(item)).digest()
    return acc


def _signature_data(
    owner: bytes, target: bytes, anchor: bytes, raw_tags: bytes, data: bytes
) -> bytes:
    return deep_hash(
        [
            b"dataitem",
            b"1",
            str(SIGNATURE_TYPE_ARWEAVE).encode(),
            owner,
            target,
            anchor,
            raw_tags,
            data,
        ]
    )


# ------------------------------------------------------------------
# Data items
# ------------------------------------------------------------------


@dataclass(frozen=True)
class DataItem:
    """A decoded data item."""

    signature: bytes
    owner: bytes
    target: bytes
    anchor: bytes
    tags: list[tuple[str, str]]
    data: bytes

    @property
    def id(self) -> str:
        return b64url_encode(hashlib.sha256(self.signature).digest())

    @property
    def owner_address(self) -> str:
        return b64url_encode(hashlib.sha256(self.owner).digest())

    def verify(self) -> bool:
        """Check the signature against the embedded owner key."""
        public_key = rsa.RSAPublicNumbers(65537, int.from_bytes(self.owner, "big")).public_key()
        message = _signature_data(
            self.owner, self.target, self.anchor, encode_tags(self.tags), self.data
        )
        try:
            public_key.verify(self.signature, message, _PSS, hashes.SHA256())
        except InvalidSignature:
            return False
        return True

    @classmethod
    def parse(cls, raw: bytes) -> DataItem:
        """Decode a serialized data item.

        Raises:
            ValueError: If *raw* is not an Arweave-signed data item.
        """
        if int.from_bytes(raw[:2], "little") != SIGNATURE_TYPE_ARWEAVE:
            raise ValueError("unsupported signature type")
        pos = 2
        signature = raw[pos : pos + SIGNATURE_LENGTH]
        pos += SIGNATURE_LENGTH
        owner = raw[pos : pos + OWNER_LENGTH]
        pos += OWNER_LENGTH
        fields = []
        for _ in range(2):
            present = raw[pos]
            pos += 1
            fields.append(raw[pos : pos + 32] if present else b"")
            pos += 32 if present else 0
        tag_count = int.from_bytes(raw[pos : pos + 8], "little")
        tag_len = int.from_bytes(raw[pos + 8 : pos + 16], "little")
        pos += 16
        tags = decode_tags(raw[pos : pos + tag_len])
        if len(tags) != tag_count:
            raise ValueError("tag count mismatch")
        return cls(signature, owner, fields[0], fields[1], tags, raw[pos + tag_len :])


def sign_data_item(
    key: rsa.RSAPrivateKey,
    data: bytes,
    *,
    tags: Sequence[tuple[str, str]] = (),
    target: str | None = None,
    anchor: bytes | None = None,
) -> tuple[str, bytes]:
    """Sign and serialize a data item.

    Args:
        key: 4096-bit Arweave RSA key.
        data: Item payload.
        tags: ``(name, value)`` tags.
        target: Optional base64url address or process id.
        anchor: Optional 32-byte anchor.

    Returns:
        ``(id, raw_bytes)``.
    """
    owner = key.public_key().public_numbers().n.to_bytes(OWNER_LENGTH, "big")
    target_bytes = b64url_decode(target) if target else b""
    if target_bytes and len(target_bytes) != 32:
        raise ValueError("target must decode to 32 bytes")
    anchor_bytes = anchor or b""
    if anchor_bytes and len(anchor_bytes) != 32:
        raise ValueError("anchor must be 32 bytes")
    raw_tags = encode_tags(tags)

    signature = key.sign(
        _signature_data(owner, target_bytes, anchor_bytes, raw_tags, data), _PSS, hashes.SHA256()
    )

    out = bytearray(SIGNATURE_TYPE_ARWEAVE.to_bytes(2, "little"))
    out += signature
    out += owner
    out += (b"\x01" + target_bytes) if target_bytes else b"\x00"
    out += (b"\x01" + anchor_bytes) if anchor_bytes else b"\x00"
    out += len(tags).to_bytes(8, "little")
    out += len(raw_tags).to_bytes(8, "little")
    out += raw_tags
    out += data
    return b64url_encode(hashlib.sha256(signature).digest()), bytes(out)
