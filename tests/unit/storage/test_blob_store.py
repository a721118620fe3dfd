"""Unit tests for local and S3 document storage."""

import io
from dataclasses import replace
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from api.app.config import get_settings
from api.app.errors import StorageError
from api.app.storage import (
    LocalBlobStore,
    S3BlobStore,
    build_blob_store,
    classified_bugs_key,
    read_json,
    summary_key,
    write_json,
)


def _client_error(code, status):
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        "GetObject",
    )


def test_document_keys_are_scoped_by_project():
    assert classified_bugs_key("RHOAIENG") == "RHOAIENG/classified-bugs.json"
    assert summary_key("RHOAIENG") == "RHOAIENG/bug-summary.json"


def test_local_store_missing_key_returns_none(tmp_path):
    store = LocalBlobStore(str(tmp_path))

    assert store.read("RHOAIENG/classified-bugs.json") is None
    assert read_json(store, "RHOAIENG/classified-bugs.json") is None


def test_local_store_writes_json_document(tmp_path):
    store = LocalBlobStore(str(tmp_path))

    write_json(store, "RHOAIENG/bug-summary.json", {"totalBugs": 2, "team": "Équipe"})

    assert read_json(store, "RHOAIENG/bug-summary.json") == {"totalBugs": 2, "team": "Équipe"}
    assert (tmp_path / "RHOAIENG" / "bug-summary.json").read_text(encoding="utf-8").startswith("{\n  ")
    assert not list(tmp_path.rglob("*.tmp"))


def test_local_store_rejects_keys_outside_root(tmp_path):
    store = LocalBlobStore(str(tmp_path / "data"))

    with pytest.raises(StorageError):
        store.write("../outside.json", b"{}")


def test_invalid_json_raises_storage_error(tmp_path):
    store = LocalBlobStore(str(tmp_path))
    store.write("broken.json", b"{not json")

    with pytest.raises(StorageError, match="broken.json"):
        read_json(store, "broken.json")


def test_s3_store_reads_with_prefix():
    s3 = MagicMock()
    s3.get_object.return_value = {"Body": io.BytesIO(b'{"bugs": []}')}
    store = S3BlobStore("bug-bucket", "bugs/", s3_client=s3)

    assert read_json(store, "RHOAIENG/classified-bugs.json") == {"bugs": []}
    s3.get_object.assert_called_once_with(Bucket="bug-bucket", Key="bugs/RHOAIENG/classified-bugs.json")


def test_s3_missing_object_returns_none():
    s3 = MagicMock()
    s3.get_object.side_effect = _client_error("NoSuchKey", 404)
    store = S3BlobStore("bug-bucket", s3_client=s3)

    assert store.read("RHOAIENG/classified-bugs.json") is None


def test_s3_access_denied_raises_storage_error():
    s3 = MagicMock()
    s3.get_object.side_effect = _client_error("AccessDenied", 403)
    store = S3BlobStore("bug-bucket", s3_client=s3)

    with pytest.raises(StorageError, match="S3 read failed"):
        store.read("RHOAIENG/classified-bugs.json")


def test_s3_write_sets_json_content_type():
    s3 = MagicMock()
    store = S3BlobStore("bug-bucket", "bugs/", s3_client=s3)

    write_json(store, "RHOAIENG/bug-summary.json", {"totalBugs": 0})

    kwargs = s3.put_object.call_args.kwargs
    assert kwargs["Bucket"] == "bug-bucket"
    assert kwargs["Key"] == "bugs/RHOAIENG/bug-summary.json"
    assert kwargs["ContentType"] == "application/json"
    assert kwargs["Body"].endswith(b"\n")


def test_s3_write_failure_raises_storage_error():
    s3 = MagicMock()
    s3.put_object.side_effect = _client_error("InternalError", 500)
    store = S3BlobStore("bug-bucket", s3_client=s3)

    with pytest.raises(StorageError, match="S3 write failed"):
        store.write("RHOAIENG/bug-summary.json", b"{}")


def test_build_blob_store_defaults_to_local(tmp_path):
    settings = replace(get_settings(), s3_bucket="", data_dir=str(tmp_path))

    assert isinstance(build_blob_store(settings), LocalBlobStore)
