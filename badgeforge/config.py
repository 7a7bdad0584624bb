# badgeforge/config.py
"""
Centralized configuration for badgeforge.

All configurable values are read from environment variables with sensible defaults,
so the same tool can be pointed at a different verifier convention without code changes.

Usage:
    from badgeforge.config import CHUNK_KEYWORD, CHUNK_TYPE

Environment Variables:
    BADGEFORGE_CHUNK_KEYWORD: Keyword of the embedded text chunk (default: openbadgecredential)
    BADGEFORGE_CHUNK_TYPE: Text chunk type, iTXt or tEXt (default: iTXt)
    BADGEFORGE_STRATEGY: Default proof strategy (default: eddsa-rdfc-2022)
    BADGEFORGE_SIGNING_SCOPE: What the proof signs, document or message (default: document)
    BADGEFORGE_OUTPUT_PREFIX: Prefix for the default output file name (default: final-)
    BADGEFORGE_LOG_LEVEL: Logging level used by the CLI (default: WARNING)
"""

import os
from typing import Final

# =============================================================================
# Container Configuration
# =============================================================================

# Logical key verifiers look for when reading the credential back out
CHUNK_KEYWORD: Final[str] = os.getenv("BADGEFORGE_CHUNK_KEYWORD", "openbadgecredential")

# iTXt carries UTF-8; tEXt is Latin-1 only and forces ASCII-escaped JSON
CHUNK_TYPE: Final[str] = os.getenv("BADGEFORGE_CHUNK_TYPE", "iTXt")

# =============================================================================
# Signing Configuration
# =============================================================================

DEFAULT_STRATEGY: Final[str] = os.getenv("BADGEFORGE_STRATEGY", "eddsa-rdfc-2022")

DEFAULT_SCOPE: Final[str] = os.getenv("BADGEFORGE_SIGNING_SCOPE", "document")

# =============================================================================
# Output Configuration
# =============================================================================

OUTPUT_PREFIX: Final[str] = os.getenv("BADGEFORGE_OUTPUT_PREFIX", "final-")

LOG_LEVEL: Final[str] = os.getenv("BADGEFORGE_LOG_LEVEL", "WARNING")


# =============================================================================
# Helper Functions
# =============================================================================


def default_output_name(image_path: str) -> str:
    """
    Build the default badge path for an input image.

    The badge lands next to the image, named with OUTPUT_PREFIX.

    Args:
        image_path: Path to the source image

    Returns:
        Path string such as "art/final-badge.png"
    """
    head, tail = os.path.split(image_path)
    return os.path.join(head, f"{OUTPUT_PREFIX}{tail}")


def print_config() -> None:
    """Print current configuration (useful for debugging)."""
    print("badgeforge configuration:")
    print(f"  CHUNK_KEYWORD:    {CHUNK_KEYWORD}")
    print(f"  CHUNK_TYPE:       {CHUNK_TYPE}")
    print(f"  DEFAULT_STRATEGY: {DEFAULT_STRATEGY}")
    print(f"  DEFAULT_SCOPE:    {DEFAULT_SCOPE}")
    print(f"  OUTPUT_PREFIX:    {OUTPUT_PREFIX}")
    print(f"  LOG_LEVEL:        {LOG_LEVEL}")


if __name__ == "__main__":
    print_config()
