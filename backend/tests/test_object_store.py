"""
Tests for the object store adapters.

The S3 adapter runs against moto's in-process S3 mock.
"""

from types import SimpleNamespace
from unittest.mock import Mock
from urllib.parse import parse_qs, urlparse

import aiofiles
import boto3
import pytest
from botocore.exceptions import ClientError
from moto import mock_aws

from conftest import stored_keys
from filevault.services.exceptions import StorageError, StorageWriteError
from filevault.services.object_store import (
    LocalObjectStore,
    S3ObjectStore,
    create_object_store,
)

TEST_BUCKET = "filevault-test"


class TestLocalObjectStore:
    async def test_put_reports_stored_metadata(self, storage):
        meta = await storage.put("files/public/avatar/x.png", b"12345", "image/png", "public-read", filename="me.png")

        assert meta.size == 5
        assert meta.type == "image/png"
        assert meta.name == "me.png"
        assert stored_keys(storage) == ["files/public/avatar/x.png"]

    async def test_put_defaults_content_type(self, storage):
        meta = await storage.put("files/private/doc/x", b"", None, "private")

        assert meta.size == 0
        assert meta.type == "application/octet-stream"
        assert meta.name is None

    async def test_delete_is_idempotent(self, storage):
        await storage.put("files/private/doc/x.txt", b"hi", "text/plain", "private")

        await storage.delete("files/private/doc/x.txt")
        await storage.delete("files/private/doc/x.txt")

        assert stored_keys(storage) == []

    async def test_failed_sidecar_write_leaves_no_object(self, storage, monkeypatch):
        real_open = aiofiles.open

        def failing_open(file, mode="r", *args, **kwargs):
            if str(file).endswith(LocalObjectStore.SIDECAR_SUFFIX) and "w" in mode:
                raise OSError("disk full")
            return real_open(file, mode, *args, **kwargs)

        monkeypatch.setattr(aiofiles, "open", failing_open)

        with pytest.raises(StorageWriteError):
            await storage.put("files/private/doc/y.txt", b"hello", "text/plain", "private")

        assert stored_keys(storage) == []

    async def test_rejects_keys_escaping_root(self, storage):
        with pytest.raises(StorageError):
            await storage.put("files/../../etc/passwd", b"x", None, "private")

    async def test_presigned_url_carries_expiry(self, storage):
        url = await storage.presigned_url("files/private/doc/x.txt", 60)

        parsed = urlparse(url)
        assert parsed.scheme == "file"
        assert parsed.path.endswith("/files/private/doc/x.txt")
        assert "expires" in parse_qs(parsed.query)


@pytest.fixture
def aws_credentials(monkeypatch):
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


@pytest.fixture
def s3_client(aws_credentials):
    with mock_aws():
        client = boto3.client("s3", region_name="us-east-1")
        client.create_bucket(Bucket=TEST_BUCKET)
        yield client


@pytest.fixture
def s3_store(s3_client):
    return S3ObjectStore(TEST_BUCKET, region_name="us-east-1", access_key="testing", secret_key="testing")


class TestS3ObjectStore:
    async def test_put_reads_metadata_back(self, s3_store, s3_client):
        meta = await s3_store.put("files/public/avatar/x.png", b"\x89PNG....", "image/png", "public-read", filename="my avatar.png")

        assert meta.size == 8
        assert meta.type == "image/png"
        assert meta.name == "my avatar.png"

        head = s3_client.head_object(Bucket=TEST_BUCKET, Key="files/public/avatar/x.png")
        assert head["Metadata"] == {"filename": "my%20avatar.png"}

    async def test_put_sends_acl_and_content_type(self):
        client = Mock()
        client.head_object.return_value = {"ContentLength": 1, "ContentType": "image/png", "Metadata": {}}
        store = S3ObjectStore(TEST_BUCKET, client=client)

        await store.put("files/public/avatar/a.png", b"a", "image/png", "public-read", filename="a b.png")
        meta = await store.put("files/private/doc/c", b"c", None, "private")

        assert client.put_object.call_args_list[0].kwargs == {
            "Bucket": TEST_BUCKET,
            "Key": "files/public/avatar/a.png",
            "Body": b"a",
            "ContentType": "image/png",
            "ACL": "public-read",
            "ContentDisposition": 'attachment; filename="a%20b.png"',
            "Metadata": {"filename": "a%20b.png"},
        }
        assert client.put_object.call_args_list[1].kwargs["ContentType"] == "application/octet-stream"
        assert client.put_object.call_args_list[1].kwargs["ACL"] == "private"
        assert meta.name is None

    async def test_delete_surfaces_other_client_errors(self):
        client = Mock()
        client.delete_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "DeleteObject"
        )
        store = S3ObjectStore(TEST_BUCKET, client=client)

        with pytest.raises(StorageError):
            await store.delete("files/private/doc/x.pdf")

    async def test_failed_read_back_deletes_written_object(self):
        client = Mock()
        client.head_object.side_effect = ClientError(
            {"Error": {"Code": "500", "Message": "internal error"}}, "HeadObject"
        )
        store = S3ObjectStore(TEST_BUCKET, client=client)

        with pytest.raises(StorageWriteError):
            await store.put("files/private/doc/y.txt", b"hello", "text/plain", "private")

        client.put_object.assert_called_once()
        client.delete_object.assert_called_once_with(Bucket=TEST_BUCKET, Key="files/private/doc/y.txt")

    async def test_failed_cleanup_still_raises_write_error(self):
        client = Mock()
        client.head_object.side_effect = ClientError(
            {"Error": {"Code": "500", "Message": "internal error"}}, "HeadObject"
        )
        client.delete_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "DeleteObject"
        )
        store = S3ObjectStore(TEST_BUCKET, client=client)

        with pytest.raises(StorageWriteError, match="read back"):
            await store.put("files/private/doc/y.txt", b"hello", "text/plain", "private")

    async def test_put_to_missing_bucket_raises_write_error(self, s3_client):
        store = S3ObjectStore("no-such-bucket", region_name="us-east-1", access_key="testing", secret_key="testing")

        with pytest.raises(StorageWriteError):
            await store.put("files/private/doc/x", b"x", None, "private")

    async def test_presigned_url_uses_ttl(self, s3_store):
        await s3_store.put("files/private/doc/x.pdf", b"x", "application/pdf", "private")

        url = await s3_store.presigned_url("files/private/doc/x.pdf", 900)

        query = parse_qs(urlparse(url).query)
        assert query["X-Amz-Expires"] == ["900"]
        assert "X-Amz-Signature" in query

    async def test_delete_removes_object_and_tolerates_missing_key(self, s3_store, s3_client):
        await s3_store.put("files/private/doc/x.pdf", b"x", "application/pdf", "private")

        await s3_store.delete("files/private/doc/x.pdf")
        await s3_store.delete("files/private/doc/x.pdf")

        assert s3_client.list_objects_v2(Bucket=TEST_BUCKET).get("KeyCount") == 0


def test_create_object_store_selects_backend(tmp_path, aws_credentials):
    local = create_object_store(SimpleNamespace(OBJECT_STORE_TYPE="local", FILE_STORAGE_PATH=str(tmp_path)))
    s3 = create_object_store(SimpleNamespace(
        OBJECT_STORE_TYPE="s3",
        S3_BUCKET=TEST_BUCKET,
        S3_ENDPOINT_URL=None,
        S3_REGION="us-east-1",
        S3_ACCESS_KEY="testing",
        S3_SECRET_KEY="testing",
    ))

    assert isinstance(local, LocalObjectStore)
    assert isinstance(s3, S3ObjectStore)
    assert s3.bucket == TEST_BUCKET

    with pytest.raises(ValueError):
        create_object_store(SimpleNamespace(OBJECT_STORE_TYPE="azure_blob"))
