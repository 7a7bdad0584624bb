# badgeforge/keys.py
"""
Key material loading for badge signing.

Ed25519 keys are read from PKCS8 PEM by walking the DER structure down to the
raw 32-byte seed. RSA keys go through the standard PEM decoder. Either way the
loader also derives the public key's JWK thumbprint, which becomes the key
identifier in JOSE headers.
"""

import base64
import binascii
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from jwcrypto import jwk

from badgeforge.errors import KeyLoadError

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

ED25519_SEED_LENGTH = 32

# DER encoding of OID 1.3.101.112 (id-Ed25519)
ED25519_OID = bytes([0x2B, 0x65, 0x70])

DER_SEQUENCE = 0x30
DER_INTEGER = 0x02
DER_OCTET_STRING = 0x04
DER_OID = 0x06

PRIVATE_KEY_LABEL = "PRIVATE KEY"


class KeyAlgorithm(str, Enum):
    """Signature algorithm a key file is loaded for."""

    ED25519 = "ed25519"
    RSA = "rsa"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class KeyPair:
    """
    A loaded signing key plus its public identifiers.

    The private material is held only while signing. Use the KeyPair as a
    context manager so the seed is zeroed as soon as the block exits.

    Attributes:
        algorithm: Which algorithm the key was loaded for
        private_key: Raw seed (bytearray) for Ed25519, key object for RSA
        key_id: RFC 7638 JWK thumbprint of the public key
        public_pem: SubjectPublicKeyInfo PEM text of the public key
        path: File the key was loaded from
    """

    algorithm: KeyAlgorithm
    private_key: Union[bytearray, rsa.RSAPrivateKey, None] = field(repr=False)
    key_id: str
    public_pem: str
    path: str = ""
    wiped: bool = field(default=False, repr=False)

    @property
    def seed(self) -> bytes:
        """Raw Ed25519 seed bytes."""
        if self.algorithm is not KeyAlgorithm.ED25519:
            raise KeyLoadError(self.path, "key is not an Ed25519 key")
        if self.wiped or self.private_key is None:
            raise KeyLoadError(self.path, "key material has been wiped")
        return bytes(self.private_key)

    @property
    def rsa_key(self) -> rsa.RSAPrivateKey:
        """The RSA private key object."""
        if self.algorithm is not KeyAlgorithm.RSA:
            raise KeyLoadError(self.path, "key is not an RSA key")
        if self.wiped or self.private_key is None:
            raise KeyLoadError(self.path, "key material has been wiped")
        return self.private_key

    def wipe(self) -> None:
        """Zero the seed in place and drop every reference to private material."""
        if isinstance(self.private_key, bytearray):
            for i in range(len(self.private_key)):
                self.private_key[i] = 0
        self.private_key = None
        self.wiped = True

    def __enter__(self) -> "KeyPair":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()


# =============================================================================
# PEM / DER Helpers
# =============================================================================


def _pem_body(text: str, label: str, path) -> bytes:
    """Base64-decode the body between the BEGIN/END lines of a PEM block."""
    begin = f"-----BEGIN {label}-----"
    end = f"-----END {label}-----"
    lines = [line.strip() for line in text.splitlines()]
    try:
        start = lines.index(begin)
        stop = lines.index(end, start + 1)
    except ValueError:
        raise KeyLoadError(path, f"no '{label}' PEM block found")

    body = "".join(lines[start + 1 : stop])
    if not body:
        raise KeyLoadError(path, "empty PEM body")
    try:
        return base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as e:
        raise KeyLoadError(path, f"PEM body is not valid base64: {e}")


def _read_tlv(data: bytes, offset: int, path) -> Tuple[int, bytes, int]:
    """
    Read one DER tag-length-value starting at offset.

    Returns:
        (tag, value, offset just past the value)
    """
    if offset + 2 > len(data):
        raise KeyLoadError(path, "truncated DER element")

    tag = data[offset]
    length = data[offset + 1]
    offset += 2

    if length & 0x80:
        count = length & 0x7F
        if count == 0 or count > 4 or offset + count > len(data):
            raise KeyLoadError(path, "unsupported DER length encoding")
        length = int.from_bytes(data[offset : offset + count], "big")
        offset += count

    end = offset + length
    if end > len(data):
        raise KeyLoadError(path, "DER element runs past end of data")
    return tag, data[offset:end], end


def _read_sequence(data: bytes, path) -> List[Tuple[int, bytes]]:
    """Split the contents of a DER SEQUENCE into its (tag, value) elements."""
    elements = []
    offset = 0
    while offset < len(data):
        tag, value, offset = _read_tlv(data, offset, path)
        elements.append((tag, value))
    return elements


def extract_ed25519_seed(der: bytes, path="<memory>") -> bytearray:
    """
    Pull the raw 32-byte seed out of a PKCS8-encoded Ed25519 private key.

    PrivateKeyInfo ::= SEQUENCE {
        version             INTEGER,
        privateKeyAlgorithm SEQUENCE { OID 1.3.101.112 },
        privateKey          OCTET STRING { OCTET STRING seed }
    }

    The seed is located by position: the outer SEQUENCE's third element is an
    OCTET STRING wrapping another OCTET STRING, whose final 32 bytes are the seed.

    Raises:
        KeyLoadError: If the structure does not have that shape.
    """
    tag, outer, end = _read_tlv(der, 0, path)
    if tag != DER_SEQUENCE:
        raise KeyLoadError(path, "PKCS8 envelope is not a SEQUENCE")
    if end != len(der):
        raise KeyLoadError(path, "trailing bytes after PKCS8 envelope")

    elements = _read_sequence(outer, path)
    if len(elements) < 3:
        raise KeyLoadError(path, f"PKCS8 SEQUENCE has {len(elements)} elements, expected at least 3")

    version_tag, _ = elements[0]
    algorithm_tag, algorithm = elements[1]
    private_tag, private_octets = elements[2]

    if version_tag != DER_INTEGER:
        raise KeyLoadError(path, "PKCS8 version is not an INTEGER")
    if algorithm_tag != DER_SEQUENCE:
        raise KeyLoadError(path, "PKCS8 algorithm identifier is not a SEQUENCE")

    oid_tag, oid, _ = _read_tlv(algorithm, 0, path)
    if oid_tag != DER_OID or oid != ED25519_OID:
        raise KeyLoadError(path, "key algorithm is not Ed25519")

    if private_tag != DER_OCTET_STRING:
        raise KeyLoadError(path, "third PKCS8 element is not an OCTET STRING")

    inner_tag, inner, inner_end = _read_tlv(private_octets, 0, path)
    if inner_tag != DER_OCTET_STRING or inner_end != len(private_octets):
        raise KeyLoadError(path, "private key is not a wrapped OCTET STRING")
    if len(inner) < ED25519_SEED_LENGTH:
        raise KeyLoadError(path, f"seed has {len(inner)} bytes, expected {ED25519_SEED_LENGTH}")

    return bytearray(inner[-ED25519_SEED_LENGTH:])


def _public_identifiers(public_key) -> Tuple[str, str]:
    """Return (JWK thumbprint, PEM text) for a cryptography public key."""
    key_id = jwk.JWK.from_pyca(public_key).thumbprint()
    public_pem = public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")
    return key_id, public_pem


def _read_key_file(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        raise KeyLoadError(path, "file not found")
    except OSError as e:
        raise KeyLoadError(path, str(e))


# =============================================================================
# Loaders
# =============================================================================


def load_ed25519_key(path: Union[str, Path]) -> KeyPair:
    """
    Load an Ed25519 private key from a PKCS8 PEM file.

    Args:
        path: Path to the PEM file

    Returns:
        KeyPair holding the raw seed and the public key thumbprint

    Raises:
        KeyLoadError: If the file is missing, not PEM, or not a PKCS8 Ed25519 key.
    """
    path = Path(path)
    raw = _read_key_file(path)
    try:
        text = raw.decode("ascii")
    except UnicodeDecodeError:
        raise KeyLoadError(path, "PEM file is not ASCII text")

    der = _pem_body(text, PRIVATE_KEY_LABEL, path)
    seed = extract_ed25519_seed(der, path)

    try:
        public_key = Ed25519PrivateKey.from_private_bytes(bytes(seed)).public_key()
    except ValueError as e:
        raise KeyLoadError(path, f"invalid Ed25519 seed: {e}")

    key_id, public_pem = _public_identifiers(public_key)
    logger.debug(f"Loaded Ed25519 key {key_id}")
    return KeyPair(
        algorithm=KeyAlgorithm.ED25519,
        private_key=seed,
        key_id=key_id,
        public_pem=public_pem,
        path=str(path),
    )


def load_rsa_key(path: Union[str, Path]) -> KeyPair:
    """
    Load an RSA private key from an unencrypted PEM file.

    Raises:
        KeyLoadError: If the file is missing, malformed, encrypted or not RSA.
    """
    path = Path(path)
    raw = _read_key_file(path)
    try:
        private_key = serialization.load_pem_private_key(raw, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise KeyLoadError(path, f"malformed PEM private key: {e}")

    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise KeyLoadError(path, "key is not an RSA key")

    key_id, public_pem = _public_identifiers(private_key.public_key())
    logger.debug(f"Loaded RSA key {key_id} ({private_key.key_size} bits)")
    return KeyPair(
        algorithm=KeyAlgorithm.RSA,
        private_key=private_key,
        key_id=key_id,
        public_pem=public_pem,
        path=str(path),
    )


_LOADERS = {
    KeyAlgorithm.ED25519: load_ed25519_key,
    KeyAlgorithm.RSA: load_rsa_key,
}


def load_signing_key(path: Union[str, Path], algorithm: KeyAlgorithm) -> KeyPair:
    """Load a private key for the given algorithm. The algorithm is never guessed."""
    return _LOADERS[KeyAlgorithm(algorithm)](path)


def load_public_key(path: Union[str, Path]):
    """
    Load a PEM public key (SubjectPublicKeyInfo).

    Returns:
        A cryptography Ed25519PublicKey or RSAPublicKey

    Raises:
        KeyLoadError: If the file is missing or not a PEM public key.
    """
    path = Path(path)
    raw = _read_key_file(path)
    try:
        return serialization.load_pem_public_key(raw)
    except (ValueError, UnsupportedAlgorithm) as e:
        raise KeyLoadError(path, f"malformed PEM public key: {e}")


# =============================================================================
# Key Generation Helpers
# =============================================================================


def generate_keypair(
    directory: Union[str, Path],
    algorithm: KeyAlgorithm = KeyAlgorithm.ED25519,
    rsa_key_size: int = 2048,
    name: Optional[str] = None,
) -> Tuple[Path, Path]:
    """
    Generate a new key pair and write it as PEM files.

    Args:
        directory: Where to write the files
        algorithm: ED25519 or RSA
        rsa_key_size: Modulus size for RSA keys
        name: Base file name (default: "private"/"public")

    Returns:
        Tuple of (private_key_path, public_key_path)
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    if KeyAlgorithm(algorithm) is KeyAlgorithm.RSA:
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=rsa_key_size)
    else:
        private_key = Ed25519PrivateKey.generate()

    private_path = directory / (f"{name}.pem" if name else "private.pem")
    public_path = directory / (f"{name}.pub.pem" if name else "public.pem")

    private_path.write_bytes(
        private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    private_path.chmod(0o600)
    public_path.write_bytes(
        private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    )

    logger.info(f"Generated {KeyAlgorithm(algorithm).value} key pair in {directory}")
    return private_path, public_path
