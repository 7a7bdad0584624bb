# badgeforge/errors.py
"""
Error kinds raised while issuing a badge.

Every failure is terminal for the current run: the causes are local input
or configuration defects, so nothing is retried.
"""

from typing import Iterable, List, Optional


class BadgeError(Exception):
    """Base class for all badgeforge errors."""


class InvalidContainerError(BadgeError):
    """The byte stream is not a structurally valid PNG."""


class MissingTerminatorError(InvalidContainerError):
    """The PNG has no IEND chunk."""


class ChunkCrcError(InvalidContainerError):
    """A chunk's stored CRC does not match its type and data."""

    def __init__(self, chunk_type: bytes, expected: int, actual: int):
        self.chunk_type = chunk_type
        self.expected = expected
        self.actual = actual
        name = chunk_type.decode("latin-1", errors="replace")
        super().__init__(
            f"CRC mismatch in {name} chunk: stored {actual:#010x}, computed {expected:#010x}"
        )


class KeyLoadError(BadgeError):
    """A key file is missing, unreadable or has the wrong structure."""

    def __init__(self, path, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Cannot load key from {self.path}: {reason}")


class MissingFieldError(BadgeError):
    """A credential document lacks one or more required fields."""

    def __init__(self, fields: Iterable[str]):
        self.fields: List[str] = list(fields)
        super().__init__(f"Credential missing required fields: {', '.join(self.fields)}")


class CanonicalizationError(BadgeError):
    """A value has no canonical JSON representation."""


class SigningError(BadgeError):
    """Producing a proof failed."""


class VerificationError(BadgeError):
    """A proof does not verify against the supplied key."""


class DescriptorError(BadgeError):
    """An issuer or recipient descriptor could not be loaded."""

    def __init__(self, path, reason: str, cause: Optional[Exception] = None):
        self.path = str(path)
        self.cause = cause
        super().__init__(f"Cannot load descriptor {self.path}: {reason}")
