# badgeforge/descriptors.py
"""
Loading of organization and recipient descriptors.

Descriptors are YAML or JSON mappings. Date-like YAML scalars are kept as the
strings they were written as, because the credential schema wants ISO-8601
text verbatim (validFrom, validUntil, ...).
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from badgeforge.errors import DescriptorError

logger = logging.getLogger(__name__)

JSON_SUFFIXES = (".json", ".jsonld")

TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"


class NoDatesSafeLoader(yaml.SafeLoader):
    """SafeLoader without automatic date/timestamp coercion."""


# Each loader class owns a copy of the resolver table, so this leaves
# yaml.SafeLoader untouched.
NoDatesSafeLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != TIMESTAMP_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def parse_descriptor(text: str, fmt: str = "yaml", source: str = "<string>") -> Dict[str, Any]:
    """
    Parse descriptor text into a dict.

    Args:
        text: Descriptor contents
        fmt: "yaml" or "json"
        source: Name used in error messages

    Raises:
        DescriptorError: On a parse error or a non-mapping top level.
    """
    try:
        if fmt == "json":
            data = json.loads(text)
        else:
            data = yaml.load(text, Loader=NoDatesSafeLoader)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise DescriptorError(source, f"parse error: {e}", cause=e)

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise DescriptorError(source, f"top level must be a mapping, got {type(data).__name__}")
    return data


def load_descriptor(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Read a YAML or JSON descriptor file (format chosen by suffix).

    Raises:
        DescriptorError: If the file is missing, unreadable or malformed.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise DescriptorError(path, "file not found", cause=e)
    except (OSError, UnicodeDecodeError) as e:
        raise DescriptorError(path, str(e), cause=e)

    fmt = "json" if path.suffix.lower() in JSON_SUFFIXES else "yaml"
    data = parse_descriptor(text, fmt=fmt, source=str(path))
    logger.debug(f"Loaded {fmt} descriptor {path} with keys: {', '.join(data)}")
    return data
