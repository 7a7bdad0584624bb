# badgeforge/pipeline.py
"""
Badge issuance pipeline.

assemble -> validate -> sign -> attach proof -> serialize -> embed -> write.

Each stage finishes before the next starts. The output file is written to a
temporary name in the destination directory and renamed over the target only
after everything succeeded, so a failed run never leaves a partial badge.
"""

import json
import logging
import os
import stat
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from badgeforge import config
from badgeforge.credential import (
    REQUIRED_FIELDS,
    SignedCredential,
    assemble,
    attach_proof,
    private_key_path,
    validate,
)
from badgeforge.errors import InvalidContainerError, KeyLoadError
from badgeforge.keys import load_signing_key
from badgeforge.png import PngImage, make_text_chunk
from badgeforge.proof import ProofStrategy, SigningScope, get_signer

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class IssueRequest:
    """
    Everything one badge issuance needs.

    Attributes:
        image_path: Source PNG
        organization: Issuer descriptor (already loaded)
        recipient: Recipient/achievement descriptor (already loaded)
        output_path: Destination (default: final-<image> next to the source)
        key_path: Private key PEM (default: the issuer's private_key reference)
        strategy: Proof strategy
        scope: Sign the canonical document or a detached message
        message: Detached message bytes for MESSAGE scope
        keyword: Text chunk keyword
        chunk_type: "iTXt" or "tEXt"
        base_dir: Directory relative key/public key references resolve against
    """

    image_path: PathLike
    organization: Mapping[str, Any]
    recipient: Mapping[str, Any]
    output_path: Optional[PathLike] = None
    key_path: Optional[PathLike] = None
    strategy: Union[ProofStrategy, str] = config.DEFAULT_STRATEGY
    scope: Union[SigningScope, str] = config.DEFAULT_SCOPE
    message: Optional[bytes] = None
    keyword: str = config.CHUNK_KEYWORD
    chunk_type: str = config.CHUNK_TYPE
    base_dir: Optional[PathLike] = None


@dataclass
class IssueResult:
    """Result of a successful issuance."""

    output_path: str
    credential: SignedCredential
    chunk_count: int


# =============================================================================
# Stages
# =============================================================================


def sign_credential(
    document: Mapping[str, Any],
    key_path: PathLike,
    strategy: ProofStrategy = ProofStrategy.EDDSA_RDFC_2022,
    scope: SigningScope = SigningScope.DOCUMENT,
    message: Optional[bytes] = None,
) -> SignedCredential:
    """
    Sign an assembled document and freeze it with its proof.

    The key is loaded for the strategy's algorithm and wiped when signing ends.

    Raises:
        KeyLoadError: If the key cannot be loaded.
        SigningError: If signing fails.
    """
    signer = get_signer(strategy, scope=scope, message=message)
    with load_signing_key(key_path, signer.key_algorithm) as key:
        proof = signer.sign(document, key)

    return attach_proof(document, proof)


def embed_credential(
    png_bytes: bytes,
    credential_json: str,
    keyword: str = config.CHUNK_KEYWORD,
    chunk_type: str = config.CHUNK_TYPE,
) -> bytes:
    """
    Insert the credential JSON as a text chunk right before IEND.

    Raises:
        InvalidContainerError / MissingTerminatorError: If png_bytes is not a valid PNG.
    """
    image = PngImage.parse(png_bytes)
    image.insert_before_end(make_text_chunk(chunk_type, keyword, credential_json))
    return image.to_bytes()


def extract_credential(source: Union[PathLike, bytes], keyword: str = config.CHUNK_KEYWORD) -> Dict[str, Any]:
    """
    Read the embedded credential back out of a badge.

    Args:
        source: Badge path or its bytes

    Raises:
        InvalidContainerError: If the PNG is invalid or carries no credential.
    """
    data = source if isinstance(source, bytes) else Path(source).read_bytes()
    text = PngImage.parse(data).find_text(keyword)
    if text is None:
        raise InvalidContainerError(f"No '{keyword}' text chunk found")
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidContainerError(f"Embedded credential is not valid JSON: {e}")


def _default_file_mode() -> int:
    """Mode a plain open() would create a file with under the current umask."""
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def write_atomically(path: PathLike, data: bytes) -> None:
    """
    Write data to path via a temporary sibling file and a rename.

    The result keeps the mode of the file it replaces, or gets the umask
    default for a new file (mkstemp alone would leave it owner-only).
    """
    path = Path(path)
    try:
        mode = stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        mode = _default_file_mode()

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


# =============================================================================
# Orchestration
# =============================================================================


def _resolve_key_path(request: IssueRequest) -> Path:
    if request.key_path is not None:
        return Path(request.key_path)

    reference = private_key_path(request.organization)
    if reference is None:
        raise KeyLoadError("<none>", "no key path given and issuer has no private_key reference")
    path = Path(reference)
    if request.base_dir is not None and not path.is_absolute():
        path = Path(request.base_dir) / path
    return path


def _choice(enum_type, value, variable: str):
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_type)
        raise ValueError(f"Unknown {enum_type.__name__} {value!r} (allowed: {allowed}; default set by {variable})")


def issue_badge(request: IssueRequest) -> IssueResult:
    """
    Run the whole pipeline for one badge.

    Raises:
        BadgeError subclasses for every input defect; nothing is written then.
        ValueError: If the strategy or scope is not a known value.
    """
    strategy = _choice(ProofStrategy, request.strategy, "BADGEFORGE_STRATEGY")
    scope = _choice(SigningScope, request.scope, "BADGEFORGE_SIGNING_SCOPE")
    image_path = Path(request.image_path)
    output_path = Path(request.output_path or config.default_output_name(str(image_path)))

    # Container errors surface before any key is loaded.
    png_bytes = image_path.read_bytes()
    PngImage.parse(png_bytes)

    key_path = _resolve_key_path(request)
    document = assemble(request.organization, request.recipient, base_dir=request.base_dir)
    validate(document, [name for name in REQUIRED_FIELDS if name != "proof"])
    logger.info("Assembled credential")

    signed = sign_credential(
        document,
        key_path,
        strategy=strategy,
        scope=scope,
        message=request.message,
    )
    validate(signed.document)
    logger.info(f"Signed credential with {strategy.value}")

    credential_json = signed.to_json(ensure_ascii=request.chunk_type != "iTXt")
    badge = embed_credential(
        png_bytes, credential_json, keyword=request.keyword, chunk_type=request.chunk_type
    )

    write_atomically(output_path, badge)
    chunk_count = len(PngImage.parse(badge))
    logger.info(f"Wrote badge to {output_path}")
    return IssueResult(output_path=str(output_path), credential=signed, chunk_count=chunk_count)
