# badgeforge/png.py
"""
PNG chunk container.

A PNG file is an 8-byte signature followed by length-prefixed, CRC-protected
chunks ending with exactly one IEND. This module parses that container,
inserts text chunks before IEND and writes it back byte-for-byte; pixel data
is never decoded.

Ref: https://www.w3.org/TR/png/#5DataRep
"""

import logging
import struct
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

from badgeforge.errors import ChunkCrcError, InvalidContainerError, MissingTerminatorError

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

PNG_SIGNATURE = bytes([137, 80, 78, 71, 13, 10, 26, 10])

IEND = b"IEND"
ITXT = b"iTXt"
TEXT = b"tEXt"
ZTXT = b"zTXt"

TEXT_CHUNK_TYPES = (ITXT, TEXT, ZTXT)

# Length field, type field, CRC field
CHUNK_OVERHEAD = 12

MAX_CHUNK_LENGTH = 2**31 - 1
MAX_KEYWORD_LENGTH = 79

COMPRESSION_DEFLATE = 0


# =============================================================================
# Chunks
# =============================================================================


def compute_crc(chunk_type: bytes, data: bytes) -> int:
    """CRC-32 over type and data, as stored in the chunk trailer."""
    return zlib.crc32(chunk_type + data) & 0xFFFFFFFF


def _check_chunk_type(chunk_type: bytes) -> None:
    if len(chunk_type) != 4 or not chunk_type.isalpha() or not chunk_type.isascii():
        raise InvalidContainerError(f"Invalid chunk type: {chunk_type!r}")


@dataclass(frozen=True)
class PngChunk:
    """One chunk exactly as stored in the file."""

    type: bytes
    data: bytes
    crc: int

    @classmethod
    def build(cls, chunk_type: bytes, data: bytes) -> "PngChunk":
        """Create a chunk with a freshly computed CRC."""
        _check_chunk_type(chunk_type)
        if len(data) > MAX_CHUNK_LENGTH:
            raise InvalidContainerError(f"Chunk data too long: {len(data)} bytes")
        return cls(type=chunk_type, data=bytes(data), crc=compute_crc(chunk_type, data))

    @property
    def length(self) -> int:
        return len(self.data)

    @property
    def name(self) -> str:
        return self.type.decode("ascii")

    @property
    def is_critical(self) -> bool:
        """Critical chunks have an uppercase first letter."""
        return self.type[:1].isupper()

    @property
    def crc_valid(self) -> bool:
        return self.crc == compute_crc(self.type, self.data)

    def to_bytes(self) -> bytes:
        return struct.pack(">I", self.length) + self.type + self.data + struct.pack(">I", self.crc)


# =============================================================================
# Image Container
# =============================================================================


class PngImage:
    """
    Ordered chunk sequence of a PNG file.

    Usage:
        image = PngImage.from_file("badge.png")
        image.insert_before_end(itxt_chunk("openbadgecredential", credential_json))
        Path("out.png").write_bytes(image.to_bytes())
    """

    def __init__(self, chunks: Optional[List[PngChunk]] = None):
        self.chunks: List[PngChunk] = list(chunks or [])

    @classmethod
    def parse(cls, data: bytes, verify_crc: bool = True) -> "PngImage":
        """
        Parse a PNG byte stream into chunks.

        Args:
            data: Complete file contents
            verify_crc: Reject chunks whose stored CRC is wrong

        Raises:
            InvalidContainerError: Bad signature, truncated or malformed chunk,
                or anything after IEND.
            ChunkCrcError: A CRC mismatch (when verify_crc is set).
            MissingTerminatorError: No IEND chunk.
        """
        if len(data) < len(PNG_SIGNATURE) or data[: len(PNG_SIGNATURE)] != PNG_SIGNATURE:
            raise InvalidContainerError("Invalid PNG file. Unable to verify signature.")

        chunks: List[PngChunk] = []
        offset = len(PNG_SIGNATURE)
        seen_end = False

        while offset < len(data):
            if seen_end:
                raise InvalidContainerError(f"Data after IEND at offset {offset}")
            if offset + CHUNK_OVERHEAD > len(data):
                raise InvalidContainerError(f"Truncated chunk header at offset {offset}")

            length, chunk_type = struct.unpack_from(">I4s", data, offset)
            if length > MAX_CHUNK_LENGTH:
                raise InvalidContainerError(f"Chunk length {length} exceeds PNG limit at offset {offset}")
            _check_chunk_type(chunk_type)

            data_start = offset + 8
            data_end = data_start + length
            if data_end + 4 > len(data):
                raise InvalidContainerError(
                    f"Truncated {chunk_type.decode('ascii')} chunk at offset {offset}"
                )

            (crc,) = struct.unpack_from(">I", data, data_end)
            chunk = PngChunk(type=chunk_type, data=bytes(data[data_start:data_end]), crc=crc)
            if verify_crc and not chunk.crc_valid:
                raise ChunkCrcError(chunk_type, compute_crc(chunk_type, chunk.data), crc)

            chunks.append(chunk)
            seen_end = chunk_type == IEND
            offset += CHUNK_OVERHEAD + length

        if not seen_end:
            raise MissingTerminatorError("PNG has no IEND chunk")

        logger.debug(f"Parsed PNG with {len(chunks)} chunks")
        return cls(chunks)

    @classmethod
    def from_file(cls, path: Union[str, Path], verify_crc: bool = True) -> "PngImage":
        return cls.parse(Path(path).read_bytes(), verify_crc=verify_crc)

    def __len__(self) -> int:
        return len(self.chunks)

    def __iter__(self) -> Iterator[PngChunk]:
        return iter(self.chunks)

    def chunk_types(self) -> List[str]:
        return [chunk.name for chunk in self.chunks]

    def end_index(self) -> int:
        """
        Index of the IEND chunk.

        Raises:
            MissingTerminatorError: If there is none.
            InvalidContainerError: If there are several or it is not last.
        """
        positions = [i for i, chunk in enumerate(self.chunks) if chunk.type == IEND]
        if not positions:
            raise MissingTerminatorError("PNG has no IEND chunk")
        if len(positions) > 1 or positions[0] != len(self.chunks) - 1:
            raise InvalidContainerError("IEND must occur exactly once, as the last chunk")
        return positions[0]

    def insert_before_end(self, chunk: PngChunk) -> int:
        """
        Splice a chunk in directly before IEND.

        Returns:
            Index the chunk was inserted at.
        """
        if chunk.type == IEND:
            raise InvalidContainerError("Cannot insert a second IEND chunk")
        index = self.end_index()
        self.chunks.insert(index, chunk)
        logger.debug(f"Inserted {chunk.name} chunk ({chunk.length} bytes) at index {index}")
        return index

    def to_bytes(self) -> bytes:
        """Serialize signature and chunks; untouched chunks are written verbatim."""
        self.end_index()
        return PNG_SIGNATURE + b"".join(chunk.to_bytes() for chunk in self.chunks)

    def text_chunks(self) -> Iterator[Tuple[str, str]]:
        """Yield (keyword, text) for every tEXt, zTXt and iTXt chunk."""
        for chunk in self.chunks:
            if chunk.type in TEXT_CHUNK_TYPES:
                yield decode_text_chunk(chunk)

    def find_text(self, keyword: str) -> Optional[str]:
        """
        Return the text of the first text chunk with this keyword.

        Only the matching chunk is decoded, so a malformed text chunk under
        another keyword does not get in the way.
        """
        for chunk in self.chunks:
            if chunk.type in TEXT_CHUNK_TYPES and text_keyword(chunk) == keyword:
                return decode_text_chunk(chunk)[1]
        return None


# =============================================================================
# Text Chunks
# =============================================================================


def _keyword_bytes(keyword: str) -> bytes:
    try:
        encoded = keyword.encode("latin-1")
    except UnicodeEncodeError:
        raise ValueError(f"Keyword must be Latin-1: {keyword!r}")
    if not 1 <= len(encoded) <= MAX_KEYWORD_LENGTH:
        raise ValueError(f"Keyword must be 1-{MAX_KEYWORD_LENGTH} bytes: {keyword!r}")
    if b"\x00" in encoded or encoded != encoded.strip(b" "):
        raise ValueError(f"Keyword has NUL or surrounding spaces: {keyword!r}")
    return encoded


def itxt_chunk(keyword: str, text: str, compressed: bool = False) -> PngChunk:
    """
    Build an iTXt chunk carrying UTF-8 text.

    Layout: keyword NUL, compression flag, compression method, language tag NUL,
    translated keyword NUL, text. Language and translated keyword are empty.
    """
    body = text.encode("utf-8")
    if compressed:
        body = zlib.compress(body)
    data = (
        _keyword_bytes(keyword)
        + b"\x00"
        + bytes([1 if compressed else 0, COMPRESSION_DEFLATE])
        + b"\x00"
        + b"\x00"
        + body
    )
    return PngChunk.build(ITXT, data)


def text_chunk(keyword: str, text: str) -> PngChunk:
    """Build a tEXt chunk (Latin-1 text only)."""
    try:
        body = text.encode("latin-1")
    except UnicodeEncodeError:
        raise ValueError("tEXt chunks can only hold Latin-1 text; use iTXt")
    return PngChunk.build(TEXT, _keyword_bytes(keyword) + b"\x00" + body)


def make_text_chunk(chunk_type: str, keyword: str, text: str) -> PngChunk:
    """Build a text chunk of the named type ("iTXt" or "tEXt")."""
    if chunk_type == ITXT.decode("ascii"):
        return itxt_chunk(keyword, text)
    if chunk_type == TEXT.decode("ascii"):
        return text_chunk(keyword, text)
    raise ValueError(f"Unsupported text chunk type: {chunk_type}")


def text_keyword(chunk: PngChunk) -> Optional[str]:
    """Keyword of a text chunk (the bytes before the first NUL), or None if it has none."""
    keyword_raw, separator, _ = chunk.data.partition(b"\x00")
    if not separator:
        return None
    return keyword_raw.decode("latin-1")


def decode_text_chunk(chunk: PngChunk) -> Tuple[str, str]:
    """
    Decode a tEXt, zTXt or iTXt chunk.

    Returns:
        (keyword, text)

    Raises:
        InvalidContainerError: If the chunk is not a well-formed text chunk.
    """
    try:
        keyword_raw, rest = chunk.data.split(b"\x00", 1)
        keyword = keyword_raw.decode("latin-1")

        if chunk.type == TEXT:
            return keyword, rest.decode("latin-1")

        if chunk.type == ZTXT:
            if rest[0] != COMPRESSION_DEFLATE:
                raise ValueError(f"unknown compression method {rest[0]}")
            return keyword, zlib.decompress(rest[1:]).decode("latin-1")

        if chunk.type == ITXT:
            flag, method = rest[0], rest[1]
            _language, rest = rest[2:].split(b"\x00", 1)
            _translated, body = rest.split(b"\x00", 1)
            if flag:
                if method != COMPRESSION_DEFLATE:
                    raise ValueError(f"unknown compression method {method}")
                body = zlib.decompress(body)
            return keyword, body.decode("utf-8")

    except (ValueError, IndexError, zlib.error) as e:
        raise InvalidContainerError(f"Malformed {chunk.name} chunk: {e}")

    raise InvalidContainerError(f"{chunk.name} is not a text chunk")
