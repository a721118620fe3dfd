import json
import logging
import os
from pathlib import Path
from typing import Any, Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings
from .errors import StorageError

logger = logging.getLogger("bugsort.storage")

CLASSIFIED_BUGS_DOCUMENT = "classified-bugs.json"
SUMMARY_DOCUMENT = "bug-summary.json"


def classified_bugs_key(project_key: str) -> str:
    return f"{project_key}/{CLASSIFIED_BUGS_DOCUMENT}"


def summary_key(project_key: str) -> str:
    return f"{project_key}/{SUMMARY_DOCUMENT}"


class BlobStore(Protocol):
    def read(self, key: str) -> Optional[bytes]:
        ...

    def write(self, key: str, data: bytes) -> None:
        ...


class LocalBlobStore:
    def __init__(self, root: str) -> None:
        self._root = Path(root).resolve()

    def _path(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if self._root not in path.parents:
            raise StorageError(f"Key escapes storage root: {key}")
        return path

    def read(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def write(self, key: str, data: bytes) -> None:
        path = self._path(key)
        os.makedirs(path.parent, exist_ok=True)
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_bytes(data)
        os.replace(tmp_path, path)


class S3BlobStore:
    def __init__(self, bucket: str, prefix: str = "", s3_client=None) -> None:
        self._bucket = bucket
        self._prefix = prefix
        self._s3 = s3_client or boto3.client("s3")

    def read(self, key: str) -> Optional[bytes]:
        try:
            response = self._s3.get_object(Bucket=self._bucket, Key=self._prefix + key)
        except ClientError as exc:
            error = exc.response.get("Error", {})
            status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            if error.get("Code") in ("NoSuchKey", "404") or status == 404:
                return None
            raise StorageError(f"S3 read failed for {key}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"S3 read failed for {key}: {exc}") from exc
        return response["Body"].read()

    def write(self, key: str, data: bytes) -> None:
        try:
            self._s3.put_object(
                Bucket=self._bucket,
                Key=self._prefix + key,
                Body=data,
                ContentType="application/json",
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"S3 write failed for {key}: {exc}") from exc


def build_blob_store(settings: Settings) -> BlobStore:
    if settings.s3_bucket:
        logger.info("Using S3 blob store s3://%s/%s", settings.s3_bucket, settings.s3_prefix)
        return S3BlobStore(settings.s3_bucket, settings.s3_prefix)
    logger.info("Using local blob store at %s", settings.data_dir)
    return LocalBlobStore(settings.data_dir)


def read_json(store: BlobStore, key: str) -> Optional[Any]:
    raw = store.read(key)
    if raw is None:
        return None
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise StorageError(f"Stored document {key} is not valid JSON: {exc}") from exc


def write_json(store: BlobStore, key: str, payload: Any) -> None:
    store.write(key, (json.dumps(payload, ensure_ascii=False, indent=2) + "\n").encode("utf-8"))
