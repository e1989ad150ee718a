import io
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from audio_share.errors import TransientStoreError
from audio_share.services.audio_store import ByteRange
from audio_share.services.s3_store import S3AudioStore


def client_error(code, operation="HeadObject"):
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def s3_client():
    return MagicMock()


@pytest.fixture
def s3_store(s3_client, clock):
    return S3AudioStore("audio-bucket", s3_client=s3_client, clock=clock)


def test_requires_bucket_name(s3_client):
    with pytest.raises(ValueError):
        S3AudioStore("", s3_client=s3_client)


async def test_put_sends_object_and_metadata(s3_store, s3_client, clock):
    metadata = await s3_store.put("tok1", b"abc", "audio/ogg", "Café song.ogg")

    assert metadata.size == 3
    s3_client.put_object.assert_called_once()
    kwargs = s3_client.put_object.call_args[1]
    assert kwargs["Bucket"] == "audio-bucket"
    assert kwargs["Key"] == "audio/tok1"
    assert kwargs["Body"] == b"abc"
    assert kwargs["ContentType"] == "audio/ogg"
    assert kwargs["Metadata"]["filename"] == "Caf%C3%A9%20song.ogg"
    assert float(kwargs["Metadata"]["created-at"]) == clock.now


async def test_put_failure_raises_transient_error(s3_store, s3_client):
    s3_client.put_object.side_effect = client_error("InternalError", "PutObject")

    with pytest.raises(TransientStoreError):
        await s3_store.put("tok1", b"abc", "audio/ogg", "a")
    assert s3_store.monitor.stats["total_failures"] == 1


async def test_head_reads_metadata(s3_store, s3_client):
    s3_client.head_object.return_value = {
        "ContentLength": 42,
        "ContentType": "audio/ogg",
        "Metadata": {"filename": "Caf%C3%A9.ogg", "created-at": "1700000000.5"},
    }

    head = await s3_store.head("tok1")
    assert head.size == 42
    assert head.content_type == "audio/ogg"
    assert head.filename == "Café.ogg"
    assert head.created_at == 1700000000.5
    s3_client.head_object.assert_called_once_with(Bucket="audio-bucket", Key="audio/tok1")


async def test_head_falls_back_to_last_modified(s3_store, s3_client):
    last_modified = datetime(2024, 1, 1, tzinfo=timezone.utc)
    s3_client.head_object.return_value = {
        "ContentLength": 1,
        "ContentType": "audio/mpeg",
        "Metadata": {},
        "LastModified": last_modified,
    }

    head = await s3_store.head("tok1")
    assert head.created_at == last_modified.timestamp()
    assert head.filename == ""


async def test_head_not_found(s3_store, s3_client):
    s3_client.head_object.side_effect = client_error("404")

    assert await s3_store.head("tok1") is None
    assert s3_store.monitor.stats["total_failures"] == 0


async def test_head_backend_failure_reads_as_absent(s3_store, s3_client):
    s3_client.head_object.side_effect = EndpointConnectionError(endpoint_url="https://r2.example")

    assert await s3_store.head("tok1") is None
    assert s3_store.monitor.stats["total_failures"] == 1


async def test_get_full_object(s3_store, s3_client):
    s3_client.get_object.return_value = {"Body": io.BytesIO(b"0123456789"), "ContentLength": 10}

    assert await s3_store.get("tok1") == (b"0123456789", 10)
    assert "Range" not in s3_client.get_object.call_args[1]


async def test_get_range_uses_total_from_content_range(s3_store, s3_client):
    s3_client.get_object.return_value = {
        "Body": io.BytesIO(b"234"),
        "ContentLength": 3,
        "ContentRange": "bytes 2-4/10",
    }

    assert await s3_store.get("tok1", ByteRange(start=2, end=4)) == (b"234", 10)
    assert s3_client.get_object.call_args[1]["Range"] == "bytes=2-4"


async def test_get_missing_and_failing(s3_store, s3_client):
    s3_client.get_object.side_effect = client_error("NoSuchKey", "GetObject")
    assert await s3_store.get("tok1") is None

    s3_client.get_object.side_effect = client_error("SlowDown", "GetObject")
    assert await s3_store.get("tok1") is None
    assert s3_store.monitor.stats["total_failures"] == 1


async def test_delete_never_raises(s3_store, s3_client):
    assert await s3_store.delete("tok1") is True
    s3_client.delete_object.assert_called_once_with(Bucket="audio-bucket", Key="audio/tok1")

    s3_client.delete_object.side_effect = client_error("AccessDenied", "DeleteObject")
    assert await s3_store.delete("tok1") is False
    assert s3_store.monitor.stats["total_failures"] == 1


async def test_purge_expired_deletes_old_objects(s3_store, s3_client, clock):
    now = clock.now
    paginator = MagicMock()
    paginator.paginate.return_value = [
        {"Contents": [
            {"Key": "audio/old", "LastModified": datetime.fromtimestamp(now - 7200, tz=timezone.utc)},
            {"Key": "audio/new", "LastModified": datetime.fromtimestamp(now - 60, tz=timezone.utc)},
        ]},
        {},
    ]
    s3_client.get_paginator.return_value = paginator

    assert await s3_store.purge_expired(3600) == 1
    paginator.paginate.assert_called_once_with(Bucket="audio-bucket", Prefix="audio/")
    s3_client.delete_object.assert_called_once_with(Bucket="audio-bucket", Key="audio/old")


async def test_purge_listing_failure(s3_store, s3_client):
    s3_client.get_paginator.side_effect = client_error("InternalError", "ListObjectsV2")

    assert await s3_store.purge_expired(3600) == 0
    s3_client.delete_object.assert_not_called()


async def test_purge_counts_only_objects_actually_deleted(s3_store, s3_client, clock):
    old = datetime.fromtimestamp(clock.now - 7200, tz=timezone.utc)
    paginator = MagicMock()
    paginator.paginate.return_value = [
        {"Contents": [
            {"Key": "audio/first", "LastModified": old},
            {"Key": "audio/second", "LastModified": old},
        ]},
    ]
    s3_client.get_paginator.return_value = paginator
    s3_client.delete_object.side_effect = [None, client_error("AccessDenied", "DeleteObject")]

    assert await s3_store.purge_expired(3600) == 1
    assert s3_client.delete_object.call_count == 2
    assert s3_store.monitor.stats["total_failures"] == 1
