# tests/conftest.py
"""
Pytest configuration and fixtures.
"""

import base64
import hashlib
import io
import os
from datetime import UTC, datetime

import pytest
from botocore.exceptions import ClientError
from botocore.response import StreamingBody

TEST_FERNET_KEY = base64.urlsafe_b64encode(b"storagehub-test-key-0123456789ab").decode("ascii")

# Set test environment
os.environ.setdefault("TESTING", "1")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("STORAGE_CONFIG_KEYS", TEST_FERNET_KEY)


class InMemoryS3Client:
    """
    Stand-in for a boto3 S3 client, one bucket deep.

    Mirrors the real client's response shapes and error codes: NoSuchKey on
    GET, a bare 404 on HEAD, 204 on DELETE of an absent key, and
    ListObjectsV2 pagination with opaque continuation tokens.
    """

    def __init__(self, bucket: str = "test-bucket"):
        self.bucket = bucket
        self.objects: dict[str, dict] = {}
        self.calls: list[str] = []

    @staticmethod
    def _error(operation: str, code: str, status: int, message: str = "") -> ClientError:
        return ClientError(
            {
                "Error": {"Code": code, "Message": message or code},
                "ResponseMetadata": {"HTTPStatusCode": status},
            },
            operation,
        )

    def _check_bucket(self, operation: str, bucket: str) -> None:
        if bucket != self.bucket:
            raise self._error(operation, "NoSuchBucket", 404, "The specified bucket does not exist")

    def put_object(self, Bucket, Key, Body, ContentType=None, Metadata=None):
        self.calls.append("put_object")
        self._check_bucket("PutObject", Bucket)
        data = bytes(Body)
        self.objects[Key] = {
            "data": data,
            "content_type": ContentType or "binary/octet-stream",
            "metadata": dict(Metadata or {}),
            "etag": hashlib.md5(data).hexdigest(),
            "last_modified": datetime.now(UTC),
        }
        return {"ETag": f'"{self.objects[Key]["etag"]}"'}

    def get_object(self, Bucket, Key):
        self.calls.append("get_object")
        self._check_bucket("GetObject", Bucket)
        if Key not in self.objects:
            raise self._error("GetObject", "NoSuchKey", 404, "The specified key does not exist.")
        obj = self.objects[Key]
        return {
            "Body": StreamingBody(io.BytesIO(obj["data"]), len(obj["data"])),
            "ContentLength": len(obj["data"]),
            "ContentType": obj["content_type"],
            "ETag": f'"{obj["etag"]}"',
            "LastModified": obj["last_modified"],
            "Metadata": obj["metadata"],
        }

    def head_object(self, Bucket, Key):
        self.calls.append("head_object")
        self._check_bucket("HeadObject", Bucket)
        if Key not in self.objects:
            raise self._error("HeadObject", "404", 404, "Not Found")
        obj = self.objects[Key]
        return {"ContentLength": len(obj["data"]), "ETag": f'"{obj["etag"]}"'}

    def delete_object(self, Bucket, Key):
        self.calls.append("delete_object")
        self._check_bucket("DeleteObject", Bucket)
        self.objects.pop(Key, None)
        return {"ResponseMetadata": {"HTTPStatusCode": 204}}

    def list_objects_v2(self, Bucket, MaxKeys=1000, Prefix="", ContinuationToken=None):
        self.calls.append("list_objects_v2")
        self._check_bucket("ListObjectsV2", Bucket)
        keys = sorted(k for k in self.objects if k.startswith(Prefix))
        if ContinuationToken:
            after = base64.b64decode(ContinuationToken).decode()
            keys = [k for k in keys if k > after]
        page = keys[:MaxKeys]
        response = {
            "IsTruncated": len(keys) > MaxKeys,
            "KeyCount": len(page),
            "MaxKeys": MaxKeys,
        }
        if page:
            response["Contents"] = [
                {
                    "Key": k,
                    "Size": len(self.objects[k]["data"]),
                    "LastModified": self.objects[k]["last_modified"],
                    "ETag": f'"{self.objects[k]["etag"]}"',
                }
                for k in page
            ]
        if response["IsTruncated"]:
            response["NextContinuationToken"] = base64.b64encode(page[-1].encode()).decode()
        return response

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn=3600):
        return f"https://s3.test/{Params['Bucket']}/{Params['Key']}?X-Amz-Expires={ExpiresIn}"


@pytest.fixture
def s3_client():
    return InMemoryS3Client()


@pytest.fixture
def fernet_key():
    return TEST_FERNET_KEY


@pytest.fixture
def cipher(fernet_key):
    from storagehub.storage.crypto import ConfigCipher

    return ConfigCipher([fernet_key])


@pytest.fixture
def local_binding(tmp_path):
    from storagehub.storage.binding import LocalBinding

    return LocalBinding(base_path=tmp_path / "files", bucket_name="files")


@pytest.fixture
def db_session():
    """SQLite session with the storage tables created."""
    from sqlalchemy import create_engine
    from sqlalchemy.orm import sessionmaker
    from sqlalchemy.pool import StaticPool

    from storagehub.database import init_db

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    init_db(engine)
    session = sessionmaker(bind=engine, autoflush=False, future=True)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()
