# tests/test_records.py

from __future__ import annotations

import json

from incremental_exports.export.records import cursor_to_rfc3339, delete_keys, to_ndjson


def test_to_ndjson_one_document_per_line() -> None:
    data = to_ndjson([{"id": 1, "name": "Zoë"}, {"id": 2}])

    lines = data.decode("utf-8").splitlines()
    assert [json.loads(line) for line in lines] == [{"id": 1, "name": "Zoë"}, {"id": 2}]
    assert not data.startswith(b"[")
    assert data.endswith(b"\n") and data.count(b"\n") == 2
    assert to_ndjson([]) == b""


def test_to_ndjson_batches_concatenate_cleanly() -> None:
    data = to_ndjson([{"id": 1}]) + to_ndjson([{"id": 2}])

    assert data == b'{"id": 1}\n{"id": 2}\n'


def test_cursor_to_rfc3339() -> None:
    assert cursor_to_rfc3339("0") == "1970-01-01T00:00:00Z"
    assert cursor_to_rfc3339(1700000000) == "2023-11-14T22:13:20Z"
    assert cursor_to_rfc3339(None) is None
    assert cursor_to_rfc3339("") is None
    assert cursor_to_rfc3339("abc") is None


def test_delete_keys_top_level_and_nested() -> None:
    records = [
        {"id": 1, "via": {"source": {"from": "x", "to": "y"}}, "raw": "a"},
        {"id": 2, "raw": "b"},
    ]

    out = delete_keys(records, ["raw", "via.source.from", "missing.path"])

    assert out is records
    assert records == [{"id": 1, "via": {"source": {"to": "y"}}}, {"id": 2}]


def test_delete_keys_bracket_paths_and_lists() -> None:
    record = {"fields": [{"id": 1, "value": "v"}, {"id": 2, "value": "w"}], "meta": {"a b": 1, "c": 2}}

    delete_keys(record, ["fields[0].value", "meta['a b']"])

    assert record == {"fields": [{"id": 1}, {"id": 2, "value": "w"}], "meta": {"c": 2}}


def test_delete_keys_noop_inputs() -> None:
    record = {"id": 1}
    assert delete_keys(record, None) == {"id": 1}
    assert delete_keys(record, ["", "  "]) == {"id": 1}
    assert delete_keys(["not a dict", 3], ["id"]) == ["not a dict", 3]
