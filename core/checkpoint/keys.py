"""Artifact key construction and parsing.

Keys are stable and human-decodable: a stage kind followed, for per-chunk
artifacts, by a zero-padded index (``chapter-stage-0003``). A run directory
listing therefore sorts in pipeline order and a single stage can be
inspected or re-run by name.
"""

import re
from typing import Optional

from .errors import InvalidArtifactKeyError

INDEX_WIDTH = 4

DOCUMENT_KEY = "book-complete-text"
RUN_MANIFEST_KEY = "run-manifest"
GUIDE_AGGREGATE_KEY = "guide-aggregate"
GUIDE_FINAL_KEY = "guide-final"
CONDENSED_BOOK_KEY = "book-condensed"

GUIDE_PARTIAL_KIND = "guide-partial"
CHAPTER_STAGE_KIND = "chapter-stage"
SEGMENTATION_KIND = "segmentation"

_KEY_PATTERN = re.compile(r"^[a-z][a-z0-9]*(?:-[a-z0-9]+)*$")
_INDEXED_PATTERN = re.compile(r"^(?P<kind>[a-z][a-z0-9-]*?)-(?P<index>\d{%d,})$" % INDEX_WIDTH)


def validate_key(key: str) -> str:
    """Return ``key`` unchanged, or raise if it is not a valid artifact key."""
    if not _KEY_PATTERN.match(key):
        raise InvalidArtifactKeyError(f"Invalid artifact key: {key!r}")
    return key


def indexed_key(kind: str, index: int) -> str:
    """Build ``<kind>-<zero padded index>``."""
    if index < 0:
        raise InvalidArtifactKeyError(f"Artifact index must be non-negative, got {index}")
    return validate_key(f"{kind}-{index:0{INDEX_WIDTH}d}")


def guide_partial_key(index: int) -> str:
    return indexed_key(GUIDE_PARTIAL_KIND, index)


def chapter_stage_key(index: int) -> str:
    return indexed_key(CHAPTER_STAGE_KIND, index)


def segmentation_key(pass_name: str) -> str:
    """Key for a persisted segmentation pass ("guide" or "chapters")."""
    return validate_key(f"{SEGMENTATION_KIND}-{pass_name}")


def parse_key(key: str) -> tuple[str, Optional[int]]:
    """Split a key into (kind, index). Unindexed keys return index None.

    >>> parse_key("chapter-stage-0012")
    ('chapter-stage', 12)
    >>> parse_key("guide-final")
    ('guide-final', None)
    """
    validate_key(key)
    match = _INDEXED_PATTERN.match(key)
    if match:
        return match.group("kind"), int(match.group("index"))
    return key, None
