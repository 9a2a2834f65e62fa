"""
Unit tests for CompatibleAPIProvider.

Most tests run against InMemoryS3Client (see conftest); client construction
and presigning use a real boto3 client, which needs no network.
"""

import io
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, ReadTimeoutError

from storagehub.storage.base import StorageListOptions, StorageUploadOptions
from storagehub.storage.config import CompatibleAPIConfig
from storagehub.storage.errors import DeleteError, DownloadError, ListError, ProbeError, UploadError
from storagehub.storage.s3_provider import CompatibleAPIProvider, is_not_found


def make_config(**overrides) -> CompatibleAPIConfig:
    values = {
        "bucket_name": "test-bucket",
        "region": "us-east-1",
        "access_key_id": "AKIDEXAMPLE",
        "secret_access_key": "super-secret-value",
    }
    values.update(overrides)
    return CompatibleAPIConfig(**values)


def client_error(code: str, status: int, operation: str = "Op") -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": f"{code} message"}, "ResponseMetadata": {"HTTPStatusCode": status}},
        operation,
    )


@pytest.fixture
def provider(s3_client):
    return CompatibleAPIProvider(make_config(), client=s3_client)


class TestClientConstruction:

    def test_aws_defaults_to_virtual_hosted(self):
        provider = CompatibleAPIProvider(make_config())
        client = provider._client
        assert client.meta.region_name == "us-east-1"
        assert client.meta.config.s3["addressing_style"] == "virtual"

    def test_custom_endpoint_uses_path_style(self):
        provider = CompatibleAPIProvider(make_config(endpoint="http://minio.local:9000", region="eu-west-1"))
        client = provider._client
        assert client.meta.endpoint_url == "http://minio.local:9000"
        assert client.meta.config.s3["addressing_style"] == "path"

    def test_force_path_style_without_endpoint(self):
        provider = CompatibleAPIProvider(make_config(force_path_style=True))
        assert provider._client.meta.config.s3["addressing_style"] == "path"

    def test_providers_do_not_share_clients(self):
        a = CompatibleAPIProvider(make_config())
        b = CompatibleAPIProvider(make_config())
        assert a._client is not b._client

    @pytest.mark.asyncio
    async def test_presigned_url_is_signed_locally(self):
        provider = CompatibleAPIProvider(make_config())
        url = await provider.get_signed_url("dir/file.txt", expires_in=600)
        assert "test-bucket" in url
        assert "dir/file.txt" in url
        assert "X-Amz-Signature" in url
        assert "X-Amz-Expires=600" in url


class TestOperations:

    @pytest.mark.asyncio
    async def test_upload_download_roundtrip(self, provider, s3_client):
        await provider.upload(
            "a.txt",
            b"hello",
            StorageUploadOptions(content_type="text/plain", metadata={"owner": "u1"}),
        )
        assert s3_client.objects["a.txt"]["content_type"] == "text/plain"
        assert s3_client.objects["a.txt"]["metadata"] == {"owner": "u1"}

        response = await provider.download("a.txt")
        assert response.status == 200
        assert response.content_type == "text/plain"
        assert response.content_length == 5
        assert response.metadata == {"owner": "u1"}
        assert await response.read() == b"hello"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("shape", ["buffer", "stream", "blob"])
    async def test_roundtrip_is_byte_identical(self, provider, tmp_path, shape):
        data = bytes(range(256)) * 500
        if shape == "buffer":
            source = data
        elif shape == "stream":
            source = io.BytesIO(data)
        else:
            source = tmp_path / "blob.bin"
            source.write_bytes(data)

        await provider.upload("bin", source)
        assert await (await provider.download("bin")).read() == data

    @pytest.mark.asyncio
    async def test_download_missing_returns_404(self, provider):
        response = await provider.download("missing")
        assert response.not_found
        assert not response.ok

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, provider):
        await provider.upload("k", b"v")
        await provider.delete("k")
        await provider.delete("k")

    @pytest.mark.asyncio
    async def test_delete_treats_nosuchkey_as_success(self, provider):
        provider._client = MagicMock()
        provider._client.delete_object.side_effect = client_error("NoSuchKey", 404)
        await provider.delete("k")

    @pytest.mark.asyncio
    async def test_delete_access_denied_raises(self, provider):
        provider._client = MagicMock()
        provider._client.delete_object.side_effect = client_error("AccessDenied", 403)
        with pytest.raises(DeleteError) as exc_info:
            await provider.delete("k")
        assert exc_info.value.status_code == 403
        assert exc_info.value.code == "AccessDenied"

    @pytest.mark.asyncio
    async def test_exists_lifecycle(self, provider):
        assert await provider.exists("k") is False
        await provider.upload("k", b"v")
        assert await provider.exists("k") is True
        await provider.delete("k")
        assert await provider.exists("k") is False

    @pytest.mark.asyncio
    async def test_exists_propagates_other_failures(self, provider):
        provider._client = MagicMock()
        provider._client.head_object.side_effect = client_error("403", 403)
        with pytest.raises(ProbeError):
            await provider.exists("k")

    @pytest.mark.asyncio
    async def test_exists_on_missing_bucket_raises(self, s3_client):
        provider = CompatibleAPIProvider(make_config(bucket_name="other-bucket"), client=s3_client)
        provider._client = MagicMock()
        provider._client.head_object.side_effect = client_error("NoSuchBucket", 404)
        with pytest.raises(ProbeError):
            await provider.exists("k")

    @pytest.mark.asyncio
    async def test_upload_rejection_preserves_backend_details(self, provider):
        provider._client = MagicMock()
        provider._client.put_object.side_effect = client_error("EntityTooLarge", 400)
        with pytest.raises(UploadError) as exc_info:
            await provider.upload("big", b"x")

        err = exc_info.value
        assert err.code == "EntityTooLarge"
        assert err.status_code == 400
        assert err.backend_message == "EntityTooLarge message"
        assert "super-secret-value" not in str(err)

    @pytest.mark.asyncio
    async def test_connection_errors_hide_endpoint(self, provider):
        provider._client = MagicMock()
        provider._client.put_object.side_effect = EndpointConnectionError(
            endpoint_url="https://internal-minio.corp:9000/test-bucket/k"
        )
        with pytest.raises(UploadError) as exc_info:
            await provider.upload("k", b"x")
        assert "internal-minio" not in str(exc_info.value)
        assert exc_info.value.code == "EndpointConnectionError"


class TestListing:

    @pytest.mark.asyncio
    async def test_max_keys_one_over_three(self, provider):
        for key in ("a", "b", "c"):
            await provider.upload(key, key.encode())

        page = await provider.list(StorageListOptions(max_keys=1))
        assert [o.key for o in page.objects] == ["a"]
        assert page.is_truncated is True
        assert page.continuation_token

        page = await provider.list(StorageListOptions(max_keys=1, continuation_token=page.continuation_token))
        assert [o.key for o in page.objects] == ["b"]

    @pytest.mark.asyncio
    async def test_entries_map_one_to_one(self, provider, s3_client):
        await provider.upload("x/1", b"12345")
        page = await provider.list(StorageListOptions(prefix="x/"))
        [obj] = page.objects
        assert obj.key == "x/1"
        assert obj.size == 5
        assert obj.etag == s3_client.objects["x/1"]["etag"]
        assert obj.last_modified == s3_client.objects["x/1"]["last_modified"]
        assert page.continuation_token is None

    @pytest.mark.asyncio
    async def test_pagination_is_exhaustive(self, provider):
        expected = {f"logs/{i:03d}" for i in range(11)}
        for key in expected:
            await provider.upload(key, b".")
        await provider.upload("other", b".")

        seen = []
        options = StorageListOptions(prefix="logs/", max_keys=4)
        while True:
            page = await provider.list(options)
            seen.extend(o.key for o in page.objects)
            if not page.is_truncated:
                break
            options = StorageListOptions(prefix="logs/", max_keys=4, continuation_token=page.continuation_token)

        assert sorted(seen) == sorted(expected)
        assert len(seen) == len(set(seen))

    @pytest.mark.asyncio
    async def test_params_forwarded_verbatim(self, provider):
        provider._client = MagicMock()
        provider._client.list_objects_v2.return_value = {"IsTruncated": False}

        await provider.list(StorageListOptions(prefix="p/", max_keys=5000, continuation_token="opaque=="))

        provider._client.list_objects_v2.assert_called_once_with(
            Bucket="test-bucket", MaxKeys=1000, Prefix="p/", ContinuationToken="opaque=="
        )

    @pytest.mark.asyncio
    async def test_list_failure_raises(self, provider):
        provider._client = MagicMock()
        provider._client.list_objects_v2.side_effect = client_error("AccessDenied", 403)
        with pytest.raises(ListError):
            await provider.list()


class TestConnection:

    @pytest.mark.asyncio
    async def test_empty_bucket_is_success(self, provider):
        assert await provider.test_connection() is True

    @pytest.mark.asyncio
    async def test_unreachable_us_east_1_returns_false(self, provider):
        provider._client = MagicMock()
        provider._client.list_objects_v2.side_effect = EndpointConnectionError(
            endpoint_url="https://test-bucket.s3.us-east-1.amazonaws.com/"
        )
        assert await provider.test_connection() is False
        provider._client.list_objects_v2.assert_called_once_with(Bucket="test-bucket", MaxKeys=1)

    @pytest.mark.asyncio
    async def test_unreachable_endpoint_returns_false(self):
        provider = CompatibleAPIProvider(
            make_config(endpoint="http://127.0.0.1:9"),
            connect_timeout=1,
            read_timeout=1,
        )
        assert await provider.test_connection() is False


class TestNotFoundDetection:

    @pytest.mark.parametrize(
        "code,status,expected",
        [
            ("NoSuchKey", 404, True),
            ("404", 404, True),
            ("NotFound", 404, True),
            ("", 404, True),
            ("NoSuchBucket", 404, False),
            ("AccessDenied", 403, False),
        ],
    )
    def test_is_not_found(self, code, status, expected):
        assert is_not_found(client_error(code, status)) is expected


class TestDownloadStreaming:

    @pytest.mark.asyncio
    async def test_read_failure_becomes_download_error(self, provider):
        class TimingOutBody:
            closed = False

            def iter_chunks(self, chunk_size):
                yield b"abc"
                raise ReadTimeoutError(endpoint_url="https://internal-minio.corp:9000/test-bucket/k")

            def close(self):
                self.closed = True

        body = TimingOutBody()
        provider._client = MagicMock()
        provider._client.get_object.return_value = {"Body": body, "ContentLength": 10}

        response = await provider.download("k")
        with pytest.raises(DownloadError) as exc_info:
            await response.read()

        assert exc_info.value.code == "ReadTimeoutError"
        assert exc_info.value.key == "k"
        assert "internal-minio" not in str(exc_info.value)
        assert body.closed

    @pytest.mark.asyncio
    async def test_unread_response_releases_connection(self, provider, s3_client):
        await provider.upload("k", b"payload")
        response = await provider.download("k")
        body = response._body
        async with response:
            assert response.ok
        assert body.closed
