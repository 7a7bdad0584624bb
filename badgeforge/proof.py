# badgeforge/proof.py
"""
Proof signing for badge credentials.

Two strategies are supported, chosen explicitly by the caller:

- eddsa-rdfc-2022: a DataIntegrityProof whose proofValue is the multibase
  (base58btc) Ed25519 signature.
- rs256-jws: a JsonWebSignature2020 proof whose proofValue is a JWS compact
  serialization signed with RS256, keyed by the RSA public key thumbprint.

Each strategy can sign either the canonical credential document or a
caller-supplied detached message (SigningScope).
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Type

import base58
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from jwcrypto import jwk, jws
from jwcrypto.common import JWException, json_encode

from badgeforge.canonical import canonicalize
from badgeforge.errors import BadgeError, SigningError
from badgeforge.keys import KeyAlgorithm, KeyPair

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================


class ProofStrategy(str, Enum):
    """How a credential is signed."""

    EDDSA_RDFC_2022 = "eddsa-rdfc-2022"
    RS256_JWS = "rs256-jws"


class SigningScope(str, Enum):
    """Which bytes a proof covers."""

    DOCUMENT = "document"  # canonical credential without its proof
    MESSAGE = "message"  # detached, caller-supplied message


DATA_INTEGRITY_PROOF = "DataIntegrityProof"
JWS_PROOF = "JsonWebSignature2020"
PROOF_PURPOSE = "assertionMethod"

EDDSA_CRYPTOSUITES = {
    SigningScope.DOCUMENT: "eddsa-rdfc-2022",
    SigningScope.MESSAGE: "eddsa-rdfc-2022-detached",
}

JWS_ALGORITHM = "RS256"
JWS_TYPE = "vc+jwt"

MULTIBASE_BASE58BTC = "z"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class Proof:
    """A proof object as embedded under the credential's "proof" key."""

    type: str
    created: str
    verification_method: str
    proof_purpose: str
    proof_value: str
    cryptosuite: Optional[str] = None
    alg: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON field layout."""
        data: Dict[str, Any] = {
            "type": self.type,
            "created": self.created,
            "verificationMethod": self.verification_method,
        }
        if self.cryptosuite is not None:
            data["cryptosuite"] = self.cryptosuite
        if self.alg is not None:
            data["alg"] = self.alg
        data["proofPurpose"] = self.proof_purpose
        data["proofValue"] = self.proof_value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Proof":
        """Create from the JSON field layout."""
        return cls(
            type=data["type"],
            created=data["created"],
            verification_method=data["verificationMethod"],
            proof_purpose=data["proofPurpose"],
            proof_value=data["proofValue"],
            cryptosuite=data.get("cryptosuite"),
            alg=data.get("alg"),
        )


# =============================================================================
# Helpers
# =============================================================================


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2025-01-07T12:30:45.123Z."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def issuer_id(document: Mapping[str, Any]) -> str:
    """
    Return issuer.id, the proof's verificationMethod.

    Raises:
        SigningError: If the issuer or its id is missing.
    """
    issuer = document.get("issuer")
    if isinstance(issuer, Mapping):
        value = issuer.get("id")
        if isinstance(value, str) and value:
            return value
    raise SigningError("Credential has no issuer.id to use as verificationMethod")


def unsigned_view(document: Mapping[str, Any]) -> Dict[str, Any]:
    """The document as it was before a proof was attached."""
    return {key: value for key, value in document.items() if key != "proof"}


def signing_input(
    document: Mapping[str, Any], scope: SigningScope, message: Optional[bytes] = None
) -> bytes:
    """
    Return the bytes a proof covers.

    Raises:
        SigningError: If MESSAGE scope is requested without a message.
    """
    if SigningScope(scope) is SigningScope.MESSAGE:
        if message is None:
            raise SigningError("Signing scope 'message' requires a message to sign")
        return bytes(message)
    return canonicalize(unsigned_view(document))


def encode_multibase(data: bytes) -> str:
    return MULTIBASE_BASE58BTC + base58.b58encode(data).decode("ascii")


def decode_multibase(value: str) -> bytes:
    """Decode a base58btc multibase string."""
    if not value.startswith(MULTIBASE_BASE58BTC):
        raise ValueError(f"Unsupported multibase prefix: {value[:1]!r}")
    return base58.b58decode(value[1:])


# =============================================================================
# Signers
# =============================================================================


class ProofSigner(ABC):
    """
    Produces a Proof over a credential document.

    Subclasses fix the strategy and the key algorithm they accept.

    Example:
        >>> signer = get_signer(ProofStrategy.EDDSA_RDFC_2022)
        >>> with load_signing_key("issuer.pem", signer.key_algorithm) as key:
        ...     proof = signer.sign(document, key)
    """

    strategy: ProofStrategy
    key_algorithm: KeyAlgorithm

    def __init__(self, scope: SigningScope = SigningScope.DOCUMENT, message: Optional[bytes] = None):
        """
        Args:
            scope: Sign the canonical document or a detached message
            message: Detached message bytes (required for MESSAGE scope)
        """
        self.scope = SigningScope(scope)
        self.message = message

    def sign(self, document: Mapping[str, Any], key: KeyPair, created: Optional[str] = None) -> Proof:
        """
        Sign the document and return the proof.

        Args:
            document: The credential (any existing "proof" is ignored)
            key: Loaded key matching this signer's key_algorithm
            created: Override for the proof timestamp

        Raises:
            SigningError: Missing issuer.id, wrong key type, or backend failure.
            KeyLoadError: If the key material was already wiped.
        """
        verification_method = issuer_id(document)
        if key.algorithm is not self.key_algorithm:
            raise SigningError(
                f"Strategy {self.strategy.value} needs a {self.key_algorithm.value} key, "
                f"got {key.algorithm.value}"
            )

        payload = signing_input(document, self.scope, self.message)
        try:
            proof_value = self._sign(payload, key)
        except BadgeError:
            raise
        except (ValueError, TypeError, JWException) as e:
            raise SigningError(f"{self.strategy.value} signing failed: {e}")

        proof = self._build_proof(
            created=created or utc_timestamp(),
            verification_method=verification_method,
            proof_value=proof_value,
        )
        logger.debug(f"Signed {len(payload)} bytes with {self.strategy.value} ({self.scope.value} scope)")
        return proof

    @abstractmethod
    def _sign(self, payload: bytes, key: KeyPair) -> str:
        """Return the encoded proofValue for payload."""
        pass

    @abstractmethod
    def _build_proof(self, created: str, verification_method: str, proof_value: str) -> Proof:
        pass


class Ed25519ProofSigner(ProofSigner):
    """DataIntegrityProof with an Ed25519 signature."""

    strategy = ProofStrategy.EDDSA_RDFC_2022
    key_algorithm = KeyAlgorithm.ED25519

    def _sign(self, payload: bytes, key: KeyPair) -> str:
        private_key = Ed25519PrivateKey.from_private_bytes(key.seed)
        return encode_multibase(private_key.sign(payload))

    def _build_proof(self, created: str, verification_method: str, proof_value: str) -> Proof:
        return Proof(
            type=DATA_INTEGRITY_PROOF,
            created=created,
            verification_method=verification_method,
            cryptosuite=EDDSA_CRYPTOSUITES[self.scope],
            proof_purpose=PROOF_PURPOSE,
            proof_value=proof_value,
        )


class RsaJwsProofSigner(ProofSigner):
    """JWS proof signed with RS256; detached payload in MESSAGE scope."""

    strategy = ProofStrategy.RS256_JWS
    key_algorithm = KeyAlgorithm.RSA

    def _sign(self, payload: bytes, key: KeyPair) -> str:
        signing_key = jwk.JWK.from_pyca(key.rsa_key)
        protected_header = {
            "alg": JWS_ALGORITHM,
            "typ": JWS_TYPE,
            "kid": key.key_id,
        }

        token = jws.JWS(payload)
        token.add_signature(signing_key, None, json_encode(protected_header), None)
        compact = token.serialize(compact=True)

        if self.scope is SigningScope.MESSAGE:
            header, _, signature = compact.split(".")
            return f"{header}..{signature}"
        return compact

    def _build_proof(self, created: str, verification_method: str, proof_value: str) -> Proof:
        return Proof(
            type=JWS_PROOF,
            created=created,
            verification_method=verification_method,
            alg=JWS_ALGORITHM,
            proof_purpose=PROOF_PURPOSE,
            proof_value=proof_value,
        )


_SIGNERS: Dict[ProofStrategy, Type[ProofSigner]] = {
    ProofStrategy.EDDSA_RDFC_2022: Ed25519ProofSigner,
    ProofStrategy.RS256_JWS: RsaJwsProofSigner,
}


def get_signer(
    strategy: ProofStrategy,
    scope: SigningScope = SigningScope.DOCUMENT,
    message: Optional[bytes] = None,
) -> ProofSigner:
    """
    Build the signer for an explicitly chosen strategy.

    Raises:
        ValueError: If strategy is not a known ProofStrategy value.
    """
    return _SIGNERS[ProofStrategy(strategy)](scope=scope, message=message)
