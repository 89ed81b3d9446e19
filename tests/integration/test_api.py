"""Integration tests for the HTTP API with in-memory storage and a fake runner."""

import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_config, get_context_store, get_runner
from api.server import app

from conftest import PROJECT_ID, FakeRunner, seed_project


@pytest.fixture
def api_config(sample_config, temp_dir):
    config = dict(sample_config)
    config["status_db_path"] = str(temp_dir / "status.db")
    return config


@pytest.fixture
def client(storage, store, api_config):
    runner = FakeRunner()
    app.dependency_overrides[get_config] = lambda: api_config
    app.dependency_overrides[get_context_store] = lambda: store
    app.dependency_overrides[get_runner] = lambda: runner
    try:
        with TestClient(app) as test_client:
            test_client.runner = runner
            yield test_client
    finally:
        app.dependency_overrides.clear()


class TestCoreRoutes:
    def test_root(self, client):
        body = client.get("/").json()
        assert body["version"] == "1.0.0"

    def test_health(self, client):
        assert client.get("/api/health").json() == {"status": "healthy"}

    def test_manifest_health(self, client, api_config):
        body = client.get("/api/manifest/health").json()
        assert body == {"status": "healthy", "service": "manifest", "storageConfigured": True}

    def test_manifest_health_without_bucket(self, client, api_config):
        api_config["s3_bucket_name"] = ""
        body = client.get("/api/manifest/health").json()
        assert body["status"] == "degraded"
        assert body["storageConfigured"] is False


class TestBuildManifest:
    def test_build_success(self, client, storage):
        seed_project(storage)

        response = client.post("/api/manifest/build", json={"projectId": PROJECT_ID})

        assert response.status_code == 200
        body = response.json()
        assert body["readyForRendering"] is True
        assert len(body["scenes"]) == 3

    def test_build_validation_failure(self, client, storage):
        seed_project(storage, counts=(1, 3, 3))

        response = client.post("/api/manifest/build", json={"projectId": PROJECT_ID, "minVisuals": 3})

        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["errorType"] == "validation_failure"
        assert body["insufficientScenes"] == [1]
        assert body["kpis"]["scenes_detected"] == 3

    def test_build_with_lower_minimum(self, client, storage):
        seed_project(storage, counts=(1, 3, 3))

        response = client.post("/api/manifest/build", json={"projectId": PROJECT_ID, "minVisuals": 1})

        assert response.status_code == 200

    def test_request_validation(self, client):
        assert client.post("/api/manifest/build", json={"minVisuals": 2}).status_code == 422
        assert client.post("/api/manifest/build", json={"projectId": PROJECT_ID, "minVisuals": 0}).status_code == 422


class TestAssemble:
    def test_assemble_and_status(self, client, storage, store):
        seed_project(storage)
        client.post("/api/manifest/build", json={"projectId": PROJECT_ID})

        response = client.post("/api/video/assemble", json={"projectId": PROJECT_ID})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["projectId"] == PROJECT_ID
        assert body["videoPath"] == store.final_video_key(PROJECT_ID)
        assert body["fallback"] is False
        assert body["fileSize"] == 2048

        status = client.get(f"/api/video/status/{PROJECT_ID}")
        assert status.status_code == 200
        assert status.json()["status"] == "completed"
        assert status.json()["projectId"] == PROJECT_ID

    def test_assemble_without_manifest(self, client, storage):
        seed_project(storage)

        response = client.post("/api/video/assemble", json={"projectId": PROJECT_ID})

        assert response.status_code == 422
        assert response.json()["errorType"] == "validation_failure"
        assert client.get(f"/api/video/status/{PROJECT_ID}").json()["status"] == "failed"

    def test_use_manifest_false_rejected(self, client):
        response = client.post("/api/video/assemble", json={"projectId": PROJECT_ID, "useManifest": False})

        assert response.status_code == 422
        assert response.json()["issues"]
        assert client.runner.calls == []

    def test_missing_input_is_server_error(self, client, storage, store):
        seed_project(storage)
        client.post("/api/manifest/build", json={"projectId": PROJECT_ID})
        del storage.objects[f"videos/{PROJECT_ID}/04-audio/narration.mp3"]

        response = client.post("/api/video/assemble", json={"projectId": PROJECT_ID})

        assert response.status_code == 500
        assert response.json()["errorType"] == "download_error"
        assert response.json()["retryable"] is False

    def test_unknown_status(self, client):
        assert client.get("/api/video/status/nope").status_code == 404
