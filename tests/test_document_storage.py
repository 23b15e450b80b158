"""
Test cases for document storage on local disk and S3.
"""
import asyncio
import io
from types import SimpleNamespace

import pytest
from botocore.exceptions import ClientError

from recovery_portal.utils.document_storage import DocumentStorage, StorageError
from recovery_portal.utils.s3_utils import S3DocumentBucket


class FakeS3Client:
    def __init__(self, reachable=True):
        self.reachable = reachable
        self.objects = {}

    def head_bucket(self, Bucket):
        if not self.reachable:
            raise ClientError({"Error": {"Code": "403", "Message": "Forbidden"}}, "HeadBucket")

    def put_object(self, Bucket, Key, Body, ContentType, ServerSideEncryption):
        self.objects[Key] = Body

    def get_object(self, Bucket, Key):
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject")
        return {"Body": io.BytesIO(self.objects[Key])}

    def delete_object(self, Bucket, Key):
        self.objects.pop(Key, None)


def bucket_settings(enabled=True):
    return SimpleNamespace(
        use_s3_storage=enabled,
        s3_bucket_name="documents",
        aws_region="eu-west-2",
        s3_endpoint_url=None,
        aws_access_key_id="key",
        aws_secret_access_key="secret",
    )


def test_local_save_encrypts_and_reads_back(storage, tmp_path):
    stored = asyncio.run(storage.save(b"statement body", "Statement.pdf", "org-1", case_id="case-1"))
    assert stored.storage_type == "local"
    assert stored.file_path.startswith("org-1")
    assert stored.is_encrypted and stored.encryption_key
    assert (tmp_path / stored.file_path).read_bytes() != b"statement body"

    content = asyncio.run(storage.read("local", stored.file_path, None, stored.encryption_key))
    assert content == b"statement body"


def test_local_save_without_encryption(storage, tmp_path):
    stored = asyncio.run(storage.save(b"plain", "notes.txt", "org-1", encrypt=False))
    assert (tmp_path / stored.file_path).read_bytes() == b"plain"
    assert storage.delete("local", stored.file_path, None) is True
    with pytest.raises(StorageError):
        asyncio.run(storage.read("local", stored.file_path, None))


def test_read_refuses_paths_outside_upload_dir(storage):
    with pytest.raises(StorageError):
        asyncio.run(storage.read("local", "../../etc/passwd", None))


def test_s3_round_trip():
    client = FakeS3Client()
    bucket = S3DocumentBucket(settings=bucket_settings(), client=client)
    storage = DocumentStorage(upload_dir="unused", bucket=bucket)

    stored = asyncio.run(storage.save(b"evidence", "photo.PNG", "org-1", case_id="case-9", encrypt=False))
    assert stored.storage_type == "s3"
    assert stored.s3_key.startswith("org-1/case-9/") and stored.s3_key.endswith(".png")
    assert asyncio.run(storage.read("s3", None, stored.s3_key)) == b"evidence"

    assert storage.delete("s3", None, stored.s3_key) is True
    with pytest.raises(StorageError):
        asyncio.run(storage.read("s3", None, stored.s3_key))


def test_unreachable_bucket_falls_back_to_local(tmp_path):
    bucket = S3DocumentBucket(settings=bucket_settings(), client=FakeS3Client(reachable=False))
    storage = DocumentStorage(upload_dir=str(tmp_path), bucket=bucket)
    assert not storage.use_s3
    stored = asyncio.run(storage.save(b"data", "file.txt", "org-1", encrypt=False))
    assert stored.storage_type == "local"


def test_disabled_bucket_is_unavailable():
    bucket = S3DocumentBucket(settings=bucket_settings(enabled=False), client=FakeS3Client())
    assert bucket.available is False
    assert bucket.put("key", b"x", "text/plain") is False
    assert bucket.get("key") is None
