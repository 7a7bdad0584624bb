# badgeforge/verifier.py
"""
Proof verification for issued badge credentials.

Checks the signature on a credential produced by either proof strategy. The
public key can be passed in or taken from the PEM text inlined at
issuer.public_key.
"""

import json
import logging
from typing import Any, Mapping, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey
from jwcrypto import jwk, jws
from jwcrypto.common import JWException, base64url_encode

from badgeforge.errors import BadgeError, VerificationError
from badgeforge.proof import (
    DATA_INTEGRITY_PROOF,
    EDDSA_CRYPTOSUITES,
    JWS_ALGORITHM,
    JWS_PROOF,
    SigningScope,
    decode_multibase,
    signing_input,
)

logger = logging.getLogger(__name__)

_SCOPE_BY_CRYPTOSUITE = {suite: scope for scope, suite in EDDSA_CRYPTOSUITES.items()}


def embedded_public_key(document: Mapping[str, Any]):
    """Public key from issuer.public_key PEM text, or None."""
    issuer = document.get("issuer")
    if not isinstance(issuer, Mapping):
        return None
    pem = issuer.get("public_key")
    if not isinstance(pem, str) or "-----BEGIN" not in pem:
        return None
    try:
        return serialization.load_pem_public_key(pem.encode("ascii"))
    except ValueError as e:
        raise VerificationError(f"issuer.public_key is not a valid PEM public key: {e}")


def _payload(document: Mapping[str, Any], scope: SigningScope, message: Optional[bytes]) -> bytes:
    try:
        return signing_input(document, scope, message)
    except BadgeError as e:
        raise VerificationError(str(e))


def _verify_data_integrity(document, proof, public_key, message) -> None:
    scope = _SCOPE_BY_CRYPTOSUITE.get(proof.get("cryptosuite"))
    if scope is None:
        raise VerificationError(f"Unsupported cryptosuite: {proof.get('cryptosuite')}")
    if not isinstance(public_key, Ed25519PublicKey):
        raise VerificationError("DataIntegrityProof requires an Ed25519 public key")

    try:
        signature = decode_multibase(proof["proofValue"])
    except (KeyError, ValueError) as e:
        raise VerificationError(f"Malformed proofValue: {e}")

    try:
        public_key.verify(signature, _payload(document, scope, message))
    except InvalidSignature:
        raise VerificationError("Ed25519 signature does not match")


def _verify_jws(document, proof, public_key, message) -> None:
    if proof.get("alg") != JWS_ALGORITHM:
        raise VerificationError(f"Unsupported JWS algorithm: {proof.get('alg')}")
    if not isinstance(public_key, RSAPublicKey):
        raise VerificationError("RS256 proof requires an RSA public key")

    token_text = proof.get("proofValue", "")
    parts = token_text.split(".")
    if len(parts) != 3:
        raise VerificationError("Invalid JWS compact serialization")

    detached = parts[1] == ""
    if detached:
        payload = _payload(document, SigningScope.MESSAGE, message)
        token_text = ".".join([parts[0], base64url_encode(payload), parts[2]])

    key = jwk.JWK.from_pyca(public_key)
    token = jws.JWS()
    try:
        token.deserialize(token_text)
        header = token.jose_header
        token.verify(key)
    except JWException as e:
        raise VerificationError(f"JWS verification failed: {e}")

    kid = header.get("kid")
    if kid and kid != key.thumbprint():
        raise VerificationError("JWS kid does not match the public key thumbprint")

    if not detached and token.payload != _payload(document, SigningScope.DOCUMENT, None):
        raise VerificationError("JWS payload does not match the credential")


_VERIFIERS = {
    DATA_INTEGRITY_PROOF: _verify_data_integrity,
    JWS_PROOF: _verify_jws,
}


def verify_credential(
    document: Mapping[str, Any],
    public_key=None,
    message: Optional[bytes] = None,
) -> bool:
    """
    Verify the proof attached to a credential.

    Args:
        document: Signed credential (as parsed from the badge)
        public_key: cryptography public key; defaults to issuer.public_key
        message: Detached message, for proofs that signed one

    Returns:
        True when the proof verifies.

    Raises:
        VerificationError: If there is no proof, no key, or the proof is invalid.
    """
    if not isinstance(document, Mapping):
        raise VerificationError("Credential is not a JSON object")

    proof = document.get("proof")
    if not isinstance(proof, Mapping):
        raise VerificationError("Credential has no proof")

    issuer = document.get("issuer")
    issuer_id = issuer.get("id") if isinstance(issuer, Mapping) else None
    if not isinstance(issuer_id, str) or not issuer_id:
        raise VerificationError("Credential has no issuer.id")
    if proof.get("verificationMethod") != issuer_id:
        raise VerificationError("verificationMethod does not name the issuer")

    if public_key is None:
        public_key = embedded_public_key(document)
    if public_key is None:
        raise VerificationError("No public key supplied and none embedded in issuer.public_key")

    check = _VERIFIERS.get(proof.get("type"))
    if check is None:
        raise VerificationError(f"Unsupported proof type: {proof.get('type')}")

    check(document, proof, public_key, message)
    logger.debug(f"Verified {proof.get('type')} proof for {issuer_id}")
    return True


def verify_credential_json(text: str, public_key=None, message: Optional[bytes] = None) -> bool:
    """verify_credential() on a JSON string."""
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise VerificationError(f"Credential is not valid JSON: {e}")
    return verify_credential(document, public_key=public_key, message=message)
