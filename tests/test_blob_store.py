# tests/test_blob_store.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from incremental_exports.export.blob_store import (
    LocalBlobStore,
    S3BlobStore,
    blob_store_from_settings,
    join_blob_path,
)


def test_join_blob_path() -> None:
    assert join_blob_path("zendesk/", "tickets.json") == "zendesk/tickets.json"
    assert join_blob_path("/a/b/", "/c.json") == "a/b/c.json"
    assert join_blob_path(None, "c.json") == "c.json"
    with pytest.raises(ValueError):
        join_blob_path("a", "")


def test_local_store_write_read_and_metadata(tmp_path: Path) -> None:
    store = LocalBlobStore(tmp_path / "blobs")

    store.write(
        "zendesk/tickets.json",
        b'{"id":1}',
        content_type="application/x-ndjson",
        custom_time="2024-01-01T00:00:00Z",
    )
    store.write("zendesk/tickets.json", b'{"id":2}', content_type="application/x-ndjson")

    assert store.read("zendesk/tickets.json") == b'{"id":2}'
    assert store.read_metadata("zendesk/tickets.json") == {
        "content_type": "application/x-ndjson",
        "custom_time": None,
    }
    assert not (tmp_path / "blobs" / "zendesk" / "tickets.json.tmp").exists()
    assert store.read_metadata("missing.json") == {}


def test_local_store_rejects_escaping_paths(tmp_path: Path) -> None:
    store = LocalBlobStore(tmp_path)
    with pytest.raises(ValueError):
        store.write("../outside.json", b"x")


class _RecordingS3Client:
    def __init__(self) -> None:
        self.calls: list[dict] = []

    def put_object(self, **kwargs) -> dict:
        self.calls.append(kwargs)
        return {"ETag": "etag"}


def test_s3_store_puts_object_with_custom_time() -> None:
    client = _RecordingS3Client()
    store = S3BlobStore("exports", client=client)

    store.write("zoho/items.json", b"{}", content_type="application/x-ndjson", custom_time="2024-01-01T00:00:00Z")

    assert client.calls == [
        {
            "Bucket": "exports",
            "Key": "zoho/items.json",
            "Body": b"{}",
            "ContentType": "application/x-ndjson",
            "Metadata": {"custom-time": "2024-01-01T00:00:00Z"},
        }
    ]


def test_blob_store_from_settings(tmp_path: Path) -> None:
    local = blob_store_from_settings(SimpleNamespace(blob_backend="local", blob_root=tmp_path / "b"))
    assert isinstance(local, LocalBlobStore)
    assert local.root == tmp_path / "b"

    s3 = blob_store_from_settings(SimpleNamespace(blob_backend="s3", blob_bucket="bkt", blob_region="eu-west-1"))
    assert isinstance(s3, S3BlobStore)

    with pytest.raises(ValueError):
        blob_store_from_settings(SimpleNamespace(blob_backend="ftp"))
