"""
Shared pytest fixtures for badgeforge tests.
"""

import struct
import zlib

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey


def write_chunk(chunk_type: bytes, data: bytes) -> bytes:
    """Encode one PNG chunk with a proper CRC."""
    crc = zlib.crc32(chunk_type + data) & 0xFFFFFFFF
    return struct.pack(">I", len(data)) + chunk_type + data + struct.pack(">I", crc)


def build_png(*extra_chunks: bytes) -> bytes:
    """A 1x1 red RGB PNG; extra chunks go between IHDR and IDAT."""
    signature = bytes([137, 80, 78, 71, 13, 10, 26, 10])
    ihdr = struct.pack(">IIBBBBB", 1, 1, 8, 2, 0, 0, 0)
    idat = zlib.compress(bytes([0, 255, 0, 0]))
    return (
        signature
        + write_chunk(b"IHDR", ihdr)
        + b"".join(extra_chunks)
        + write_chunk(b"IDAT", idat)
        + write_chunk(b"IEND", b"")
    )


def _write_private_pem(path, private_key) -> None:
    path.write_bytes(
        private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )


def _write_public_pem(path, public_key) -> None:
    path.write_bytes(
        public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    )


@pytest.fixture
def minimal_png() -> bytes:
    """Signature + IHDR + IDAT + IEND."""
    return build_png()


@pytest.fixture
def png_with_text() -> bytes:
    """PNG with an existing tEXt and gAMA chunk before IDAT."""
    return build_png(
        write_chunk(b"gAMA", struct.pack(">I", 45455)),
        write_chunk(b"tEXt", b"Author\x00Somebody"),
    )


@pytest.fixture
def png_file(tmp_path, minimal_png):
    path = tmp_path / "badge.png"
    path.write_bytes(minimal_png)
    return path


@pytest.fixture
def ed25519_private_key() -> Ed25519PrivateKey:
    return Ed25519PrivateKey.generate()


@pytest.fixture
def ed25519_key_path(tmp_path, ed25519_private_key):
    """PKCS8 PEM file holding an Ed25519 key."""
    path = tmp_path / "issuer.pem"
    _write_private_pem(path, ed25519_private_key)
    return path


@pytest.fixture
def ed25519_public_key_path(tmp_path, ed25519_private_key):
    path = tmp_path / "issuer.pub.pem"
    _write_public_pem(path, ed25519_private_key.public_key())
    return path


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    """RSA generation is slow; share one key per session."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def rsa_key_path(tmp_path, rsa_private_key):
    path = tmp_path / "issuer-rsa.pem"
    _write_private_pem(path, rsa_private_key)
    return path


@pytest.fixture
def rsa_public_key_path(tmp_path, rsa_private_key):
    path = tmp_path / "issuer-rsa.pub.pem"
    _write_public_pem(path, rsa_private_key.public_key())
    return path


@pytest.fixture
def organization() -> dict:
    """Sample issuer descriptor."""
    return {
        "issuer": {
            "id": "https://example.org/issuer",
            "type": ["Profile"],
            "name": "Example Academy",
        }
    }


@pytest.fixture
def recipient() -> dict:
    """Sample recipient/achievement descriptor."""
    return {
        "id": "urn:uuid:5f4e4d22-2c4b-4a8e-9a2d-6b1f0c7e8d91",
        "name": "Ada",
        "validFrom": "2025-01-07T00:00:00Z",
        "credentialSubject": {
            "type": ["AchievementSubject"],
            "achievement": {
                "id": "https://example.org/achievements/analytical-engine",
                "type": ["Achievement"],
                "name": "Analytical Engine Programming",
            },
        },
    }
