# badgeforge/credential.py
"""
Credential document assembly.

An OpenBadgeCredential is built by shallow-merging a fixed skeleton with the
issuing organization's descriptor and the recipient/achievement descriptor.
Private key references are stripped from the result; a public key reference
is replaced by the key's PEM text.
"""

import copy
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

from badgeforge.errors import KeyLoadError, MissingFieldError

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

CONTEXTS = (
    "https://www.w3.org/ns/credentials/v2",
    "https://purl.imsglobal.org/spec/ob/v3p0/context-3.0.3.json",
    "https://purl.imsglobal.org/spec/ob/v3p0/extensions.json",
)

CREDENTIAL_TYPES = ("VerifiableCredential", "OpenBadgeCredential")

CREDENTIAL_SCHEMA = {
    "id": "https://purl.imsglobal.org/spec/ob/v3p0/schema/json/ob_v3p0_achievementcredential_schema.json",
    "type": "1EdTechJsonSchemaValidator2019",
}

REQUIRED_FIELDS = ("id", "issuer", "validFrom", "name", "proof")

# Issuer keys that point at private key material
PRIVATE_KEY_FIELDS = ("private_key", "privateKey")

PUBLIC_KEY_FIELD = "public_key"

PEM_MARKER = "-----BEGIN "


def base_metadata() -> Dict[str, Any]:
    """Return a fresh copy of the credential skeleton."""
    return {
        "@context": list(CONTEXTS),
        "type": list(CREDENTIAL_TYPES),
        "credentialSchema": [dict(CREDENTIAL_SCHEMA)],
    }


# =============================================================================
# Assembly
# =============================================================================


def private_key_path(organization: Mapping[str, Any]) -> Optional[str]:
    """Return the issuer's private key file reference, if the descriptor has one."""
    issuer = organization.get("issuer")
    if not isinstance(issuer, Mapping):
        return None
    for name in PRIVATE_KEY_FIELDS:
        if issuer.get(name):
            return str(issuer[name])
    return None


def _public_key_pem(text: str, source) -> str:
    """
    Parse PEM text as a public key and return it re-serialized.

    Anything that is not a public key, a private key included, is rejected.
    """
    try:
        public_key = serialization.load_pem_public_key(text.encode("ascii"))
    except (ValueError, UnicodeEncodeError, UnsupportedAlgorithm):
        raise KeyLoadError(source, "issuer.public_key is not a PEM public key")
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


def _inline_public_key(value: Any, base_dir: Optional[Path]) -> str:
    """Replace a public key file reference (or pasted PEM) with public key PEM text."""
    if not isinstance(value, str):
        raise KeyLoadError("issuer.public_key", f"expected a file path or PEM text, got {type(value).__name__}")
    if PEM_MARKER in value:
        return _public_key_pem(value, "issuer.public_key")

    path = Path(value)
    if base_dir is not None and not path.is_absolute():
        path = base_dir / path
    try:
        text = path.read_text(encoding="ascii")
    except FileNotFoundError:
        raise KeyLoadError(path, "public key file not found")
    except (OSError, UnicodeDecodeError) as e:
        raise KeyLoadError(path, str(e))
    return _public_key_pem(text, path)


def _scrub_issuer(issuer: Any, base_dir: Optional[Path]) -> Any:
    if not isinstance(issuer, Mapping):
        return issuer

    scrubbed = dict(issuer)
    for name in PRIVATE_KEY_FIELDS:
        scrubbed.pop(name, None)
    if PUBLIC_KEY_FIELD in scrubbed:
        scrubbed[PUBLIC_KEY_FIELD] = _inline_public_key(scrubbed[PUBLIC_KEY_FIELD], base_dir)
    return scrubbed


def assemble(
    organization: Mapping[str, Any],
    recipient: Mapping[str, Any],
    base: Optional[Mapping[str, Any]] = None,
    base_dir: Optional[Union[str, Path]] = None,
) -> Dict[str, Any]:
    """
    Merge skeleton, organization and recipient into one credential document.

    The merge is shallow: a later fragment replaces an earlier key of the same
    name wholesale. Neither input is modified.

    Args:
        organization: Issuer descriptor (usually carries "issuer")
        recipient: Recipient and achievement descriptor
        base: Skeleton to start from (default: base_metadata())
        base_dir: Directory relative public key paths are resolved against

    Returns:
        The assembled document, without a proof.

    Raises:
        KeyLoadError: If a referenced public key file cannot be read.
    """
    document: Dict[str, Any] = copy.deepcopy(dict(base)) if base is not None else base_metadata()
    document.update(copy.deepcopy(dict(organization)))

    if "issuer" in recipient and "issuer" in organization:
        logger.warning("Recipient descriptor overrides the organization's issuer")
    document.update(copy.deepcopy(dict(recipient)))

    for name in PRIVATE_KEY_FIELDS:
        document.pop(name, None)
    if "issuer" in document:
        document["issuer"] = _scrub_issuer(
            document["issuer"], Path(base_dir) if base_dir is not None else None
        )

    logger.debug(f"Assembled credential with fields: {', '.join(document)}")
    return document


def validate(document: Mapping[str, Any], required: Iterable[str] = REQUIRED_FIELDS) -> None:
    """
    Check that every required top-level field is present.

    Raises:
        MissingFieldError: Listing every absent field, in required order.
    """
    missing = [name for name in required if name not in document]
    if missing:
        raise MissingFieldError(missing)


# =============================================================================
# Signed Credential
# =============================================================================


@dataclass(frozen=True)
class SignedCredential:
    """
    A credential document with its proof attached.

    The document is held behind a read-only view over a private deep copy, so
    the signed content cannot change after the proof was computed.
    """

    document: Mapping[str, Any]

    @property
    def proof(self) -> Dict[str, Any]:
        """Copy of the attached proof."""
        return copy.deepcopy(dict(self.document["proof"]))

    def to_dict(self) -> Dict[str, Any]:
        """Return a mutable deep copy of the document."""
        return copy.deepcopy(dict(self.document))

    def to_json(self, ensure_ascii: bool = False) -> str:
        """Compact JSON, keys in document order."""
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=ensure_ascii)


def attach_proof(document: Mapping[str, Any], proof: Any) -> SignedCredential:
    """
    Attach a proof to a copy of the document and freeze the result.

    Args:
        document: The unsigned document
        proof: A Proof (anything with to_dict()) or a plain mapping
    """
    proof_dict = proof.to_dict() if hasattr(proof, "to_dict") else dict(proof)
    signed = copy.deepcopy(dict(document))
    signed["proof"] = copy.deepcopy(proof_dict)
    return SignedCredential(document=MappingProxyType(signed))
