# src/incremental_exports/export/blob_store.py

from __future__ import annotations

import contextlib
import json
import logging
import os
from pathlib import Path, PurePosixPath

logger = logging.getLogger(__name__)


def join_blob_path(folder_path: str | None, blob_name: str) -> str:
    """'zendesk/' + 'tickets.json' -> 'zendesk/tickets.json'."""
    name = (blob_name or "").strip().lstrip("/")
    if not name:
        raise ValueError("blob_name is required")
    folder = (folder_path or "").strip().strip("/")
    return f"{folder}/{name}" if folder else name


def _safe_relative(path: str) -> PurePosixPath:
    rel = PurePosixPath(path.lstrip("/"))
    if not rel.parts or any(p in ("..", ".") for p in rel.parts):
        raise ValueError(f"invalid blob path: {path!r}")
    return rel


class LocalBlobStore:
    """
    Blob store on a local directory.

    Writes go through a temp file + os.replace so readers never see a partial
    blob. Metadata (content type, custom time) lands in a `<blob>.meta.json`
    sidecar next to the blob.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def resolve(self, path: str) -> Path:
        return self._root.joinpath(*_safe_relative(path).parts)

    def write(
        self,
        path: str,
        data: bytes,
        *,
        content_type: str = "application/octet-stream",
        custom_time: str | None = None,
    ) -> None:
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)

        tmp = target.with_name(target.name + ".tmp")
        tmp.write_bytes(data)
        os.replace(tmp, target)

        meta = {"content_type": content_type, "custom_time": custom_time}
        meta_path = target.with_name(target.name + ".meta.json")
        meta_path.write_text(json.dumps(meta), "utf-8")
        logger.info("Wrote blob %s (%s bytes)", target, len(data))

    def read(self, path: str) -> bytes:
        return self.resolve(path).read_bytes()

    def read_metadata(self, path: str) -> dict:
        meta_path = self.resolve(path)
        meta_path = meta_path.with_name(meta_path.name + ".meta.json")
        with contextlib.suppress(FileNotFoundError):
            return json.loads(meta_path.read_text("utf-8"))
        return {}


class S3BlobStore:
    """
    Blob store on an S3 bucket.

    The boto3 client is created lazily so importing this module (and running
    with the local backend) never needs AWS credentials.
    """

    def __init__(self, bucket: str, *, region_name: str | None = None, client=None) -> None:
        if not bucket:
            raise ValueError("bucket is required")
        self._bucket = bucket
        self._region_name = region_name
        self._client = client

    @property
    def client(self):
        """Lazy initialization of the S3 client."""
        if self._client is None:
            import boto3

            self._client = boto3.client("s3", region_name=self._region_name)
        return self._client

    def write(
        self,
        path: str,
        data: bytes,
        *,
        content_type: str = "application/octet-stream",
        custom_time: str | None = None,
    ) -> None:
        key = str(_safe_relative(path))
        metadata = {"custom-time": custom_time} if custom_time else {}
        self.client.put_object(
            Bucket=self._bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
            Metadata=metadata,
        )
        logger.info("Wrote blob s3://%s/%s (%s bytes)", self._bucket, key, len(data))


def blob_store_from_settings(settings) -> LocalBlobStore | S3BlobStore:
    backend = str(getattr(settings, "blob_backend", "local") or "local").lower()
    if backend == "s3":
        return S3BlobStore(
            getattr(settings, "blob_bucket", ""),
            region_name=getattr(settings, "blob_region", None) or None,
        )
    if backend != "local":
        raise ValueError(f"unknown blob backend: {backend!r}")
    return LocalBlobStore(getattr(settings, "blob_root"))
