"""Unit tests for the S3 object storage wrapper and context store."""

import io
import json
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from services.context_store import ContextStore
from services.object_storage import S3Storage, StorageError, create_storage, guess_content_type


def _client_error(code: str, operation: str = "GetObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def s3(client):
    return S3Storage("bucket", client=client)


class TestUpload:
    def test_upload_text_sets_content_type(self, s3, client):
        url = s3.upload_file("videos/p/05-video/processing-logs/validation.log", "hello", content_type="text/plain")

        assert url == "s3://bucket/videos/p/05-video/processing-logs/validation.log"
        fileobj, bucket, key = client.upload_fileobj.call_args.args
        assert fileobj.read() == b"hello"
        assert bucket == "bucket"
        assert client.upload_fileobj.call_args.kwargs["ExtraArgs"] == {"ContentType": "text/plain"}

    def test_upload_json(self, s3, client):
        s3.upload_json("a/manifest.json", {"x": 1})

        fileobj = client.upload_fileobj.call_args.args[0]
        assert json.loads(fileobj.read()) == {"x": 1}
        assert client.upload_fileobj.call_args.kwargs["ExtraArgs"]["ContentType"] == "application/json"

    def test_upload_path_passes_metadata(self, s3, client, temp_dir):
        path = temp_dir / "final-video.mp4"
        path.write_bytes(b"\x00" * 10)

        s3.upload_path("k/final-video.mp4", path, metadata={"project-id": "p"})

        extra = client.upload_fileobj.call_args.kwargs["ExtraArgs"]
        assert extra == {"ContentType": "video/mp4", "Metadata": {"project-id": "p"}}

    def test_upload_failure_is_storage_error(self, s3, client):
        client.upload_fileobj.side_effect = _client_error("InternalError", "PutObject")

        with pytest.raises(StorageError) as exc_info:
            s3.upload_file("k", b"x")
        assert exc_info.value.retryable is True


class TestDownload:
    def test_download_bytes(self, s3, client):
        client.get_object.return_value = {"Body": io.BytesIO(b"payload")}
        assert s3.download_file("k") == b"payload"

    @pytest.mark.parametrize("code", ["NoSuchKey", "404"])
    def test_missing_key(self, s3, client, code):
        client.get_object.side_effect = _client_error(code)

        with pytest.raises(FileNotFoundError):
            s3.download_file("k")

    def test_other_errors(self, s3, client):
        client.get_object.side_effect = _client_error("SlowDown")
        with pytest.raises(StorageError):
            s3.download_file("k")

    def test_connection_errors(self, s3, client):
        client.get_object.side_effect = EndpointConnectionError(endpoint_url="http://s3")
        with pytest.raises(StorageError):
            s3.download_file("k")

    def test_download_to_path_creates_parents(self, s3, client, temp_dir):
        target = temp_dir / "input" / "media" / "a.jpg"

        assert s3.download_to_path("k", target) == target
        assert target.parent.is_dir()
        client.download_file.assert_called_once_with("bucket", "k", str(target))


class TestListingAndInfo:
    def test_list_files_paginates(self, s3, client):
        paginator = MagicMock()
        paginator.paginate.return_value = [
            {"Contents": [{"Key": "a", "Size": 1, "LastModified": None, "ETag": '"e1"'}]},
            {"Contents": [{"Key": "b", "Size": 2, "LastModified": None}]},
            {},
        ]
        client.get_paginator.return_value = paginator

        files = s3.list_files(prefix="videos/p/")

        assert [f["key"] for f in files] == ["a", "b"]
        assert files[0]["etag"] == "e1"
        assert paginator.paginate.call_args.kwargs["Prefix"] == "videos/p/"

    def test_get_file_info(self, s3, client):
        client.head_object.return_value = {
            "ContentLength": 5,
            "ContentType": "image/jpeg",
            "ETag": '"abc"',
            "Metadata": {"scene-number": "2"},
        }

        info = s3.get_file_info("k")

        assert info["size"] == 5
        assert info["metadata"] == {"scene-number": "2"}
        assert s3.file_exists("k") is True

    def test_get_file_info_missing(self, s3, client):
        client.head_object.side_effect = _client_error("404", "HeadObject")

        assert s3.get_file_info("k") is None
        assert s3.file_exists("k") is False


def test_guess_content_type():
    assert guess_content_type("a/b.json") == "application/json"
    assert guess_content_type("a/b.mp3") == "audio/mpeg"
    assert guess_content_type("a/b.unknownext") == "application/octet-stream"


def test_create_storage_uses_config(monkeypatch, sample_config):
    created = {}

    def fake_client(service, **kwargs):
        created["service"] = service
        created.update(kwargs)
        return MagicMock()

    monkeypatch.setattr("services.object_storage.boto3.client", fake_client)

    storage = create_storage(sample_config)

    assert storage.bucket_name == "test-bucket"
    assert created["service"] == "s3"
    assert created["region_name"] == "us-east-1"
    assert created["config"].signature_version == "s3v4"


class TestContextStore:
    def test_keys(self, store):
        assert store.context_key("p", "scene") == "videos/p/01-context/scene-context.json"
        assert store.manifest_key("p") == "videos/p/01-context/manifest.json"
        assert store.final_video_key("p") == "videos/p/05-video/final-video.mp4"
        assert store.video_metadata_key("p") == "videos/p/05-video/video-metadata.json"
        assert store.render_instructions_key("p") == "videos/p/05-video/render-instructions.json"
        assert store.processing_log_key("p", "validation.log") == "videos/p/05-video/processing-logs/validation.log"

    def test_prefix_normalized(self, storage):
        assert ContextStore(storage, prefix="/projects/").project_prefix("p") == "projects/p/"

    def test_missing_and_unparsable_documents(self, storage, store):
        storage.upload_file(store.context_key("p", "media"), b"{not json")

        assert store.get_context("p", "scene") is None
        assert store.get_context("p", "media") is None

    def test_round_trip_context(self, store):
        store.put_context("p", "topic", {"title": "T"})
        assert store.get_contexts("p", ("topic", "audio")) == {"topic": {"title": "T"}, "audio": None}

    def test_storage_errors_propagate(self, store, storage, monkeypatch):
        def broken(key):
            raise StorageError("down")

        monkeypatch.setattr(storage, "download_json", broken)

        with pytest.raises(StorageError):
            store.get_manifest("p")
