"""Tests for deterministic anonymizers (anonymizers.py)."""

import re

import pytest

from db_copier import anonymizers
from db_copier.spec.columns import RawRow, SourceColumn

FAKER_ANONYMIZERS = [
    anonymizers.first_name,
    anonymizers.last_name,
    anonymizers.full_name,
    anonymizers.email,
    anonymizers.phone_number,
    anonymizers.street_address,
    anonymizers.city,
    anonymizers.zip_code,
    anonymizers.state,
    anonymizers.state_abbr,
    anonymizers.country,
    anonymizers.lorem_text,
]


class TestStableHash:
    """Verify the seed hash."""

    def test_empty(self) -> None:
        """Empty and missing input hash to 0."""
        assert anonymizers.stable_hash("") == 0
        assert anonymizers.stable_hash(None) == 0

    def test_non_negative_and_stable(self) -> None:
        """Hashes are 31-bit and repeatable."""
        value = anonymizers.stable_hash("alice@example.org")
        assert 0 <= value <= 0x7FFFFFFF
        assert anonymizers.stable_hash("alice@example.org") == value

    def test_known_value(self) -> None:
        """The hash is the first four MD5 bytes, big-endian, top bit cleared."""
        # md5("a") = 0cc175b9...
        assert anonymizers.stable_hash("a") == 0x0CC175B9


class TestAnonymizers:
    """Verify shared anonymizer behaviour."""

    @pytest.mark.parametrize("anonymize", FAKER_ANONYMIZERS)
    def test_deterministic(self, anonymize) -> None:
        """The same input always yields the same output."""
        assert anonymize("Alice Smith") == anonymize("Alice Smith")

    @pytest.mark.parametrize("anonymize", FAKER_ANONYMIZERS)
    def test_interleaving_does_not_change_output(self, anonymize) -> None:
        """Output depends only on the input, not on earlier calls."""
        first = anonymize("Alice Smith")
        anonymize("Bob Jones")
        anonymizers.city("somewhere")
        assert anonymize("Alice Smith") == first

    @pytest.mark.parametrize("anonymize", FAKER_ANONYMIZERS + [anonymizers.redact])
    def test_null_and_empty_preserved(self, anonymize) -> None:
        """None and empty strings are returned unchanged."""
        assert anonymize(None) is None
        assert anonymize("") == ""

    def test_different_inputs_usually_differ(self) -> None:
        """Distinct inputs spread over distinct outputs."""
        outputs = {anonymizers.email(f"user{i}@corp.com") for i in range(20)}
        assert len(outputs) > 10


class TestFormats:
    """Verify output shapes."""

    def test_email(self) -> None:
        """first.last on a reserved test domain."""
        result = anonymizers.email("alice@corp.com")
        match = re.fullmatch(r"([a-z0-9]+)\.([a-z0-9]+)@([a-z.]+)", result)
        assert match is not None
        assert match.group(3) in anonymizers.EMAIL_DOMAINS

    def test_phone_number(self) -> None:
        """(NNN) NNN-NNNN."""
        assert re.fullmatch(r"\(\d{3}\) \d{3}-\d{4}", anonymizers.phone_number("555-1234"))

    def test_zip_code(self) -> None:
        """Five digits between 10000 and 99999."""
        result = anonymizers.zip_code("90210")
        assert re.fullmatch(r"\d{5}", result)
        assert 10000 <= int(result) <= 99999

    def test_full_name_matches_parts(self) -> None:
        """full_name is first_name and last_name of the same input."""
        value = "Jane Roe"
        assert anonymizers.full_name(value) == (
            f"{anonymizers.first_name(value)} {anonymizers.last_name(value)}"
        )

    def test_street_address_starts_with_number(self) -> None:
        """A house number leads the address."""
        assert re.match(r"\d+ \S+", anonymizers.street_address("1 Main St"))

    def test_redact(self) -> None:
        """Every character becomes *."""
        assert anonymizers.redact("secret") == "******"

    def test_partial_redact(self) -> None:
        """Edges are kept, the middle masked."""
        assert anonymizers.partial_redact(2, 2)("secret-value") == "se********ue"
        assert anonymizers.partial_redact(0, 4)("123-45-6789") == "*******6789"

    def test_partial_redact_short_value(self) -> None:
        """Values no longer than the kept edges are fully masked."""
        assert anonymizers.partial_redact(2, 2)("abcd") == "****"

    def test_lorem_text_same_length(self) -> None:
        """The lorem replacement has the input's length."""
        value = "Some private note about a customer."
        result = anonymizers.lorem_text(value)
        assert len(result) == len(value)
        assert result.split()[0] in anonymizers.LOREM_WORDS


class TestAsColumnTransform:
    """Anonymizers plug into map_string."""

    def test_map_string(self) -> None:
        """The transformed column writes the anonymized value."""
        column = SourceColumn("email").map_string(anonymizers.email)
        write = column.transform(lambda value: value)
        row = RawRow(objects={"email": "a@b.c"}, strings={"email": "a@b.c"})
        assert write(row) == anonymizers.email("a@b.c")
