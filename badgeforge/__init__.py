"""
badgeforge - Verifiable Open Badge credentials embedded in PNG images.

This package assembles an OpenBadgeCredential from issuer and recipient
descriptors, signs it with an Ed25519 Data Integrity proof or an RS256 JWS,
and stores the signed JSON in a text chunk of the badge image.
"""

__version__ = "1.0.0"

# Errors
from .errors import (
    BadgeError,
    InvalidContainerError,
    MissingTerminatorError,
    ChunkCrcError,
    KeyLoadError,
    MissingFieldError,
    CanonicalizationError,
    SigningError,
    VerificationError,
    DescriptorError,
)

# Core pipeline
from .canonical import canonicalize
from .credential import assemble, validate, attach_proof, base_metadata, SignedCredential
from .keys import KeyAlgorithm, KeyPair, load_signing_key, generate_keypair
from .proof import Proof, ProofStrategy, SigningScope, get_signer
from .png import PngChunk, PngImage
from .pipeline import IssueRequest, IssueResult, issue_badge, embed_credential, extract_credential


def __getattr__(name):
    """Lazy loading of descriptor parsing and verification."""
    if name in ("load_descriptor", "parse_descriptor"):
        from . import descriptors

        return getattr(descriptors, name)
    elif name in ("verify_credential", "verify_credential_json"):
        from . import verifier

        return getattr(verifier, name)
    raise AttributeError(f"module 'badgeforge' has no attribute '{name}'")


__all__ = [
    "__version__",
    # Errors
    "BadgeError",
    "InvalidContainerError",
    "MissingTerminatorError",
    "ChunkCrcError",
    "KeyLoadError",
    "MissingFieldError",
    "CanonicalizationError",
    "SigningError",
    "VerificationError",
    "DescriptorError",
    # Core
    "canonicalize",
    "assemble",
    "validate",
    "attach_proof",
    "base_metadata",
    "SignedCredential",
    "KeyAlgorithm",
    "KeyPair",
    "load_signing_key",
    "generate_keypair",
    "Proof",
    "ProofStrategy",
    "SigningScope",
    "get_signer",
    "PngChunk",
    "PngImage",
    # Pipeline
    "IssueRequest",
    "IssueResult",
    "issue_badge",
    "embed_credential",
    "extract_credential",
    # Lazy loaded
    "load_descriptor",
    "parse_descriptor",
    "verify_credential",
    "verify_credential_json",
]
