"""Deterministic anonymizers for use as column transforms.

Every anonymizer hashes its input (MD5) and uses the hash to seed Faker, so
the same input always yields the same realistic-looking output.  That keeps
anonymized values consistent across tables and runs: an email anonymized in
``users`` matches the same email anonymized in ``invoices``.  The original
value cannot be recovered from the output.

``None`` and empty strings are returned unchanged.

Usage:
    from db_copier import anonymizers

    TableSpec.select(lambda row: [
        row["first_name"].map_string(anonymizers.first_name),
        row["email"].map_string(anonymizers.email),
        row["ssn"].map_string(anonymizers.partial_redact(0, 4)),
    ])
"""

import functools
import hashlib
from typing import Callable

from faker import Faker

LOCALE = "en_US"

EMAIL_DOMAINS = ["example.com", "test.com", "fake.org", "sample.net"]

LOREM_WORDS = [
    "lorem", "ipsum", "dolor", "sit", "amet", "consectetur", "adipiscing",
    "elit", "sed", "do", "eiusmod", "tempor", "incididunt", "ut", "labore",
    "et", "dolore", "magna", "aliqua",
]


def stable_hash(value: str | None) -> int:
    """Non-negative 31-bit hash of a string, stable across processes.

    Example:
        >>> stable_hash("") == 0
        True
    """
    if not value:
        return 0
    digest = hashlib.md5(value.encode("utf-8")).digest()
    return int.from_bytes(digest[:4], "big") & 0x7FFFFFFF


@functools.lru_cache(maxsize=1)
def _faker() -> Faker:
    return Faker(LOCALE)


def _seeded(value: str) -> Faker:
    fake = _faker()
    fake.seed_instance(stable_hash(value))
    return fake


def _preserve_null_or_empty(transform: Callable[[str], str]) -> Callable[[str | None], str | None]:
    @functools.wraps(transform)
    def anonymize(value: str | None) -> str | None:
        if not value:
            return value
        return transform(value)

    return anonymize


# ============================================================================
# Names and contact details
# ============================================================================


@_preserve_null_or_empty
def first_name(value: str) -> str:
    return _seeded(value).first_name()


@_preserve_null_or_empty
def last_name(value: str) -> str:
    return _seeded(value + "_last").last_name()


@_preserve_null_or_empty
def full_name(value: str) -> str:
    first = _seeded(value).first_name()
    last = _seeded(value + "_last").last_name()
    return f"{first} {last}"


def _email_part(name: str) -> str:
    return "".join(ch for ch in name.lower() if ch.isalnum())


@_preserve_null_or_empty
def email(value: str) -> str:
    """Deterministic ``first.last@domain`` address on a reserved test domain."""
    first = _email_part(_seeded(value).first_name())
    last = _email_part(_seeded(value + "_last").last_name())
    domain = EMAIL_DOMAINS[stable_hash(value + "_domain") % len(EMAIL_DOMAINS)]
    return f"{first}.{last}@{domain}"


@_preserve_null_or_empty
def phone_number(value: str) -> str:
    """Deterministic ``(NNN) NNN-NNNN`` number."""
    h = stable_hash(value)
    digits = "".join(str(((h >> (i % 30)) & 0xF) % 10) for i in range(10))
    return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"


# ============================================================================
# Addresses
# ============================================================================


@_preserve_null_or_empty
def street_address(value: str) -> str:
    number = stable_hash(value) % 9999 + 1
    street = _seeded(value + "_street").last_name()
    suffix = _seeded(value + "_suffix").street_suffix()
    return f"{number} {street} {suffix}"


@_preserve_null_or_empty
def city(value: str) -> str:
    return _seeded(value).city()


@_preserve_null_or_empty
def zip_code(value: str) -> str:
    return f"{stable_hash(value) % 90000 + 10000:05d}"


@_preserve_null_or_empty
def state(value: str) -> str:
    return _seeded(value).state()


@_preserve_null_or_empty
def state_abbr(value: str) -> str:
    return _seeded(value).state_abbr()


@_preserve_null_or_empty
def country(value: str) -> str:
    return _seeded(value).country()


# ============================================================================
# Redaction
# ============================================================================


@_preserve_null_or_empty
def redact(value: str) -> str:
    """Replace every character with ``*``, preserving length."""
    return "*" * len(value)


def partial_redact(show_first: int = 2, show_last: int = 2) -> Callable[[str | None], str | None]:
    """Build a redactor keeping the first and last few characters.

    Example:
        >>> partial_redact(2, 2)("secret-value")
        'se********ue'
    """

    @_preserve_null_or_empty
    def anonymize(value: str) -> str:
        if len(value) <= show_first + show_last:
            return "*" * len(value)
        middle = "*" * (len(value) - show_first - show_last)
        return value[:show_first] + middle + value[len(value) - show_last:]

    return anonymize


@_preserve_null_or_empty
def lorem_text(value: str) -> str:
    """Lorem ipsum text of the same length as the input."""
    index = stable_hash(value)
    words: list[str] = []
    length = 0
    while length < len(value):
        word = LOREM_WORDS[index % len(LOREM_WORDS)]
        length += len(word) + (1 if words else 0)
        words.append(word)
        index += 1
    return " ".join(words)[: len(value)]
