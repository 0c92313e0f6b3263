"""Tests for lenses (spec/lens.py)."""

import json
import logging

from db_copier.spec.lens import ArrayElements, Direct, Field, dump_json


def upper(s: str) -> str:
    return s.upper()


# ============================================================================
# Test: Direct
# ============================================================================


class TestDirect:
    """Verify the identity lens."""

    def test_modify_applies_function(self) -> None:
        """Direct applies the function to the raw string."""
        assert Direct().modify(upper)("hello") == "HELLO"

    def test_modify_does_not_parse_json(self) -> None:
        """JSON-looking values are treated as plain strings."""
        assert Direct().modify(upper)('{"a":"b"}') == '{"A":"B"}'

    def test_modify_opt_sees_none(self) -> None:
        """modify_opt passes None through to the function."""
        seen = []
        Direct().modify_opt(lambda v: seen.append(v) or v)(None)
        assert seen == [None]


# ============================================================================
# Test: Field
# ============================================================================


class TestField:
    """Verify navigation into JSON objects."""

    def test_transforms_field(self) -> None:
        """Only the focused field changes."""
        result = Field("name").modify(upper)('{"name":"alice","age":30}')
        assert json.loads(result) == {"name": "ALICE", "age": 30}

    def test_output_is_compact_and_keeps_key_order(self) -> None:
        """Serialized output has no whitespace and the original key order."""
        result = Field("b").modify(upper)('{"c": 1, "b": "x", "a": true}')
        assert result == '{"c":1,"b":"X","a":true}'

    def test_non_ascii_preserved(self) -> None:
        """Non-ASCII text is not escaped."""
        assert Field("city").modify(lambda s: s)('{"city":"Zürich"}') == '{"city":"Zürich"}'

    def test_nested_fields(self) -> None:
        """Field lenses compose."""
        lens = Field("address", Field("city"))
        result = lens.modify(upper)('{"address":{"city":"nyc","zip":"10001"}}')
        assert result == '{"address":{"city":"NYC","zip":"10001"}}'

    def test_missing_field_unchanged(self, caplog) -> None:
        """A missing field logs a warning and leaves the object alone."""
        with caplog.at_level(logging.WARNING, logger="db_copier.spec.lens"):
            result = Field("email").modify(upper)('{"name":"alice"}')
        assert result == '{"name":"alice"}'
        assert "Field 'email' not found in JSON object" in caplog.text

    def test_not_an_object_unchanged(self, caplog) -> None:
        """A non-object value logs a warning and is returned unchanged."""
        with caplog.at_level(logging.WARNING, logger="db_copier.spec.lens"):
            result = Field("name").modify(upper)("[1,2]")
        assert result == "[1,2]"
        assert "Expected object but got array" in caplog.text

    def test_non_string_leaf_unchanged(self, caplog) -> None:
        """A numeric leaf is left alone with a warning."""
        with caplog.at_level(logging.WARNING, logger="db_copier.spec.lens"):
            result = Field("age").modify(upper)('{"age":30}')
        assert result == '{"age":30}'
        assert "Expected string but got number" in caplog.text

    def test_malformed_json_returned_verbatim(self, caplog) -> None:
        """Unparseable input is returned as-is with a warning."""
        with caplog.at_level(logging.WARNING, logger="db_copier.spec.lens"):
            result = Field("name").modify(upper)("{not json")
        assert result == "{not json"
        assert "Failed to parse JSON" in caplog.text

    def test_modify_opt_none_stays_none(self) -> None:
        """A null column value is not parsed."""
        assert Field("name").modify_opt(lambda s: "x")(None) is None

    def test_modify_opt_leaf_none_keeps_original(self) -> None:
        """A leaf mapped to None keeps its original value."""
        assert Field("name").modify_opt(lambda s: None)('{"name":"alice"}') == '{"name":"alice"}'


# ============================================================================
# Test: ArrayElements
# ============================================================================


class TestArrayElements:
    """Verify per-element application over JSON arrays."""

    def test_transforms_each_element(self) -> None:
        """Every string element is transformed."""
        assert ArrayElements().modify(upper)('["a","b"]') == '["A","B"]'

    def test_field_inside_elements(self) -> None:
        """ArrayElements(Field(...)) rewrites the field in every element."""
        value = '[{"type":"home","number":"123"},{"type":"work","number":"456"}]'
        result = ArrayElements(Field("number")).modify(lambda s: "XXX")(value)
        assert result == '[{"type":"home","number":"XXX"},{"type":"work","number":"XXX"}]'

    def test_empty_array(self) -> None:
        """An empty array stays empty."""
        assert ArrayElements().modify(upper)("[]") == "[]"

    def test_length_preserved_with_mixed_elements(self, caplog) -> None:
        """Elements the inner lens cannot handle are kept in place."""
        with caplog.at_level(logging.WARNING, logger="db_copier.spec.lens"):
            result = ArrayElements(Field("n")).modify(upper)('[{"n":"a"},5,{"m":"b"}]')
        assert json.loads(result) == [{"n": "A"}, 5, {"m": "b"}]

    def test_not_an_array_unchanged(self, caplog) -> None:
        """An object value logs a warning and is returned unchanged."""
        with caplog.at_level(logging.WARNING, logger="db_copier.spec.lens"):
            result = ArrayElements().modify(upper)('{"a":"b"}')
        assert result == '{"a":"b"}'
        assert "Expected array but got object" in caplog.text


class TestIdentityTransform:
    """Identity through any JSON lens yields semantically equal JSON."""

    def test_identity_through_lenses(self) -> None:
        """Round-tripping with an identity leaf function preserves the value."""
        cases = [
            (Field("a"), '{"a": "x", "b": [1, 2, {"c": null}]}'),
            (ArrayElements(), '["x", 1, true, null]'),
            (ArrayElements(Field("n")), '[{"n": "1"}, {"n": "2", "m": 1.5}]'),
            (Field("o", Field("p")), '{"o": {"p": "q"}, "z": false}'),
        ]
        for lens, value in cases:
            assert json.loads(lens.modify(lambda s: s)(value)) == json.loads(value)

    def test_dump_json_compact(self) -> None:
        """dump_json uses compact separators."""
        assert dump_json({"a": [1, 2], "b": "ü"}) == '{"a":[1,2],"b":"ü"}'
