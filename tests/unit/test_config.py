"""Unit tests for configuration loading and validation."""

import pytest

from utils.config import load_config, validate_config


class TestLoadConfig:
    def test_defaults(self, monkeypatch):
        for name in ("MIN_VISUALS_PER_SCENE", "OUTPUT_RESOLUTION", "AUDIO_TOLERANCE_SECONDS", "FFMPEG_PATH"):
            monkeypatch.delenv(name, raising=False)

        config = load_config()

        assert config["min_visuals_per_scene"] == 3
        assert config["audio_tolerance_seconds"] == 2.0
        assert config["output_resolution"] == "1920x1080"
        assert config["ffmpeg_path"] == "ffmpeg"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("MIN_VISUALS_PER_SCENE", "1")
        monkeypatch.setenv("PARALLEL_SEGMENTS", "4")
        monkeypatch.setenv("LOG_JSON", "true")

        config = load_config()

        assert config["min_visuals_per_scene"] == 1
        assert config["parallel_segments"] == 4
        assert config["log_json"] is True

    def test_relative_status_db_resolved(self, monkeypatch):
        monkeypatch.setenv("STATUS_DB_PATH", "data/status.db")
        assert load_config()["status_db_path"].endswith("data/status.db")


class TestValidateConfig:
    def test_valid(self, sample_config):
        sample_config["status_db_path"] = str(sample_config["work_dir"]) + "/status.db"
        assert validate_config(sample_config) == []

    @pytest.mark.parametrize("key,value,fragment", [
        ("s3_bucket_name", "", "S3_BUCKET_NAME"),
        ("output_resolution", "wide", "OUTPUT_RESOLUTION"),
        ("output_resolution", "1921x1080", "even"),
        ("min_visuals_per_scene", 0, "MIN_VISUALS_PER_SCENE"),
        ("audio_tolerance_seconds", -1, "AUDIO_TOLERANCE_SECONDS"),
        ("composition_timeout", 0, "COMPOSITION_TIMEOUT"),
        ("parallel_downloads", 0, "PARALLEL_DOWNLOADS"),
    ])
    def test_errors(self, sample_config, key, value, fragment):
        sample_config["status_db_path"] = str(sample_config["work_dir"]) + "/status.db"
        sample_config[key] = value

        errors = validate_config(sample_config)

        assert any(fragment in e for e in errors)

    def test_credentials_must_pair(self, sample_config):
        sample_config["status_db_path"] = str(sample_config["work_dir"]) + "/status.db"
        sample_config["aws_access_key_id"] = "AKIA"

        assert any("AWS_ACCESS_KEY_ID" in e for e in validate_config(sample_config))
