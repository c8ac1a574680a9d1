"""
KV Cache — Structured Value Codec Tests
"""

import json
from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import UUID

import pytest

from kvcache.cache import serialization
from kvcache.errors import CacheSerializationError


class TestSerialize:
    def test_plain_values_have_no_meta(self) -> None:
        assert serialization.serialize({"a": [1, "x", None, True]}) == {"json": {"a": [1, "x", None, True]}}

    def test_tags_are_recorded_per_path(self) -> None:
        envelope = serialization.serialize(
            {"when": datetime(2024, 1, 1, tzinfo=UTC), "items": [date(2024, 2, 2)]},
        )

        assert envelope["json"] == {"when": "2024-01-01T00:00:00+00:00", "items": ["2024-02-02"]}
        assert envelope["meta"] == {"values": {"when": "datetime", "items.0": "date"}}

    def test_dotted_keys_are_escaped(self) -> None:
        envelope = serialization.serialize({"a.b": {1, 2}})

        assert envelope["meta"] == {"values": {"a\\.b": "set"}}

    def test_empty_key_has_its_own_path(self) -> None:
        envelope = serialization.serialize({"": date(2024, 1, 1), "\\0": {1}})

        assert envelope["meta"] == {"values": {"\\0": "date", "\\\\0": "set"}}

    def test_unsupported_type_raises(self) -> None:
        with pytest.raises(CacheSerializationError):
            serialization.serialize({"fn": object()})


class TestRoundTrip:
    def test_nested_structured_value(self) -> None:
        value = {
            "created": datetime(2024, 5, 1, 12, 30, 15, 123000, tzinfo=UTC),
            "price": Decimal("19.99"),
            "id": UUID("12345678-1234-5678-1234-567812345678"),
            "blob": b"\x00\xffdata",
            "tags": {"x", "y"},
            "point": (1, (2, 3)),
            "history": [{"at": date(2020, 1, 1)}, {"at": date(2021, 6, 30)}],
            "dots.in.key": {"inner": frozenset({datetime(2000, 1, 1)})},
        }

        result = serialization.loads(serialization.dumps(value))

        assert result == value
        assert isinstance(result["point"], tuple)
        assert isinstance(result["point"][1], tuple)

    def test_empty_keys_round_trip(self) -> None:
        value = {"": datetime(2024, 1, 1, tzinfo=UTC), "nested": {"": {"": (1, 2)}}}

        assert serialization.loads(serialization.dumps(value)) == value

    def test_text_is_valid_json(self) -> None:
        text = serialization.dumps({"when": datetime(2024, 1, 1)})

        assert json.loads(text)["json"] == {"when": "2024-01-01T00:00:00"}


class TestDeserialize:
    def test_missing_json_payload(self) -> None:
        with pytest.raises(CacheSerializationError):
            serialization.deserialize({"meta": {}})

    def test_unknown_tag(self) -> None:
        with pytest.raises(CacheSerializationError, match="Unknown type tag"):
            serialization.deserialize({"json": "x", "meta": {"values": {"": "Bogus"}}})

    def test_bad_payload_for_tag(self) -> None:
        with pytest.raises(CacheSerializationError):
            serialization.deserialize({"json": "not-a-date", "meta": {"values": {"": "datetime"}}})

    def test_malformed_meta(self) -> None:
        with pytest.raises(CacheSerializationError):
            serialization.deserialize({"json": 1, "meta": {"values": ["datetime"]}})

    def test_loads_rejects_invalid_json(self) -> None:
        with pytest.raises(CacheSerializationError):
            serialization.loads("{not json")


class TestDecodeStored:
    def test_absent(self) -> None:
        assert serialization.decode_stored(None) is None

    def test_non_json_text_is_returned_raw(self) -> None:
        assert serialization.decode_stored("hello world") == "hello world"

    def test_plain_json_text(self) -> None:
        assert serialization.decode_stored('{"a": 1}') == {"a": 1}
        assert serialization.decode_stored('"quoted"') == "quoted"

    def test_envelope_text(self) -> None:
        value = {"at": datetime(2024, 1, 1, tzinfo=UTC)}

        assert serialization.decode_stored(serialization.dumps(value)) == value

    def test_envelope_dict(self) -> None:
        value = {"ids": {1, 2}}

        assert serialization.decode_stored(serialization.serialize(value)) == value

    def test_double_encoded_envelope(self) -> None:
        value = {"at": date(2024, 1, 1)}

        assert serialization.decode_stored(json.dumps(serialization.dumps(value))) == value

    def test_bytes_input(self) -> None:
        assert serialization.decode_stored(b'{"json": [1, 2]}') == [1, 2]

    def test_other_values_pass_through(self) -> None:
        assert serialization.decode_stored(42) == 42
        assert serialization.decode_stored({"not": "envelope"}) == {"not": "envelope"}
