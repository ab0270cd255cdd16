"""Deterministic content hashing for review deduplication.

Pure helpers: review text is normalised (trimmed, lowercased, whitespace
collapsed) before hashing, so cosmetic differences between two fetches of
the same review do not produce a new row.
"""

import hashlib
import re

_WHITESPACE = re.compile(r"\s+")
_COMPOUND_SEPARATOR = "|"


def sha256_hex(content: str) -> str:
    """Return the hex SHA-256 digest of a UTF-8 string."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def normalize_content(content: str | None) -> str:
    """Normalise review text for comparison.

    Args:
        content: Raw review text, possibly None.

    Returns:
        Trimmed, lowercased text with runs of whitespace collapsed to one space.
        None and blank input normalise to the empty string.
    """
    if not content:
        return ""
    return _WHITESPACE.sub(" ", content.strip().lower())


def content_hash(content: str | None) -> str:
    """Hash normalised review content."""
    return sha256_hex(normalize_content(content))


def verify_content_hash(content: str | None, expected_hash: str | None) -> bool:
    """True if ``content`` hashes to ``expected_hash`` after normalisation."""
    if content is None or expected_hash is None:
        return False
    return content_hash(content) == expected_hash


def contents_equal(first: str | None, second: str | None) -> bool:
    """True if two texts are identical after normalisation."""
    return content_hash(first) == content_hash(second)


def compound_hash(*parts: object) -> str:
    """Hash an ordered tuple of key parts.

    Each part is stringified, has separators escaped and is terminated by a
    separator so that ("ab", "c") and ("a", "bc") hash differently.
    None becomes "".
    """
    combined = "".join(
        f"{_escape_part(part)}{_COMPOUND_SEPARATOR}" for part in parts
    )
    return sha256_hex(combined)


def _escape_part(part: object) -> str:
    text = "" if part is None else str(part)
    return text.replace("\\", "\\\\").replace(_COMPOUND_SEPARATOR, "\\" + _COMPOUND_SEPARATOR)
