"""Shared pytest fixtures for reelforge tests."""

import json
import sys
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Generator

import pytest

# Add src directory to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from services.context_store import ContextStore  # noqa: E402
from services.media_tools import ProcessResult, ProcessTimeout  # noqa: E402

PROJECT_ID = "2026-01-01T00-00-00_ocean-life"
SCENE_DURATIONS = (15.0, 60.0, 45.0)


class FakeStorage:
    """In-memory stand-in for S3Storage with the same method surface."""

    def __init__(self, bucket_name: str = "test-bucket"):
        self.bucket_name = bucket_name
        self.objects: dict[str, bytes] = {}
        self.metadata: dict[str, dict[str, str]] = {}
        self.uploads: list[str] = []

    def upload_file(self, key, data, content_type=None, metadata=None) -> str:
        if isinstance(data, str):
            data = data.encode("utf-8")
        if not isinstance(data, bytes):
            data = data.read()
        self.objects[key] = data
        self.metadata[key] = dict(metadata or {})
        self.uploads.append(key)
        return f"s3://{self.bucket_name}/{key}"

    def upload_path(self, key, path, content_type=None, metadata=None) -> str:
        return self.upload_file(key, Path(path).read_bytes(), content_type, metadata)

    def upload_json(self, key, data, indent: int = 2) -> str:
        return self.upload_file(key, json.dumps(data, indent=indent, default=str), "application/json")

    def download_file(self, key) -> bytes:
        if key not in self.objects:
            raise FileNotFoundError(f"File not found: {key}")
        return self.objects[key]

    def download_json(self, key):
        return json.loads(self.download_file(key).decode("utf-8"))

    def download_to_path(self, key, path) -> Path:
        data = self.download_file(key)
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    def list_files(self, prefix: str = "", max_keys: int = 10000) -> list[dict]:
        keys = sorted(k for k in self.objects if k.startswith(prefix))[:max_keys]
        return [
            {
                "key": k,
                "size": len(self.objects[k]),
                "last_modified": datetime(2026, 1, 1, tzinfo=timezone.utc),
                "etag": "",
            }
            for k in keys
        ]

    def file_exists(self, key) -> bool:
        return key in self.objects

    def get_file_info(self, key):
        if key not in self.objects:
            return None
        return {
            "key": key,
            "size": len(self.objects[key]),
            "content_type": "",
            "last_modified": None,
            "etag": "",
            "metadata": dict(self.metadata.get(key, {})),
        }

    def json(self, key):
        """Test helper: parsed JSON object."""
        return json.loads(self.objects[key].decode("utf-8"))


class FakeRunner:
    """Records media-tool invocations instead of spawning processes.

    ffprobe calls answer with ``probe_duration``; every other call writes a
    small file at its output path (the last argument) and exits 0 unless an
    argument contains one of the ``failures`` substrings.
    """

    def __init__(self, available: bool = True, probe_duration: float = 120.0):
        self.available = available
        self.probe_duration = probe_duration
        self.failures: dict[str, int] = {}
        self.timeouts: set[str] = set()
        self.calls: list[list[str]] = []
        self.cwds: list[Path | None] = []

    def is_available(self, program: str) -> bool:
        return self.available

    async def run(self, args, timeout, cwd=None) -> ProcessResult:
        self.calls.append(list(args))
        self.cwds.append(cwd)
        joined = " ".join(args)

        if any(marker in joined for marker in self.timeouts):
            raise ProcessTimeout(list(args), timeout)
        for marker, code in self.failures.items():
            if marker in joined:
                return ProcessResult(list(args), code, "", f"error near {marker}")

        if "ffprobe" in args[0]:
            payload = {
                "format": {"duration": str(self.probe_duration), "format_name": "mp3", "bit_rate": "192000"},
                "streams": [{"codec_type": "audio", "codec_name": "mp3", "sample_rate": "44100", "channels": 2}],
            }
            return ProcessResult(list(args), 0, json.dumps(payload), "")

        output = Path(args[-1])
        if cwd is not None and not output.is_absolute():
            output = Path(cwd) / output
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(b"\x00" * 2048)
        return ProcessResult(list(args), 0, "", "")

    def calls_for(self, marker: str) -> list[list[str]]:
        return [c for c in self.calls if any(marker in a for a in c)]


# ---------------------------------------------------------------------------
# Context documents
# ---------------------------------------------------------------------------


def media_key(project_id: str, scene: int, name: str) -> str:
    return f"videos/{project_id}/03-media/scene-{scene}/images/{name}"


def topic_context() -> Dict:
    return {
        "title": "Life in the Ocean",
        "topic": "ocean life",
        "description": "A short documentary about the ocean.",
        "seoContext": {
            "primaryKeywords": ["ocean", "marine life"],
            "longTailKeywords": ["ocean documentary", "Ocean"],
        },
    }


def scene_context() -> Dict:
    return {
        "scenes": [
            {
                "sceneNumber": 1,
                "title": "Hook",
                "purpose": "hook",
                "duration": SCENE_DURATIONS[0],
                "script": "Waves crash on the beach at sunset.",
                "visualRequirements": {"searchKeywords": ["beach", "sunset"]},
            },
            {
                "sceneNumber": 2,
                "title": "Coral Reefs",
                "purpose": "main_content",
                "duration": SCENE_DURATIONS[1],
                "script": "Coral reefs shelter a quarter of all marine species.",
                "visualRequirements": {"searchKeywords": ["coral", "reef"]},
            },
            {
                "sceneNumber": 3,
                "title": "Deep Sea",
                "purpose": "conclusion",
                "duration": SCENE_DURATIONS[2],
                "script": "The deep sea remains largely unexplored.",
                "visualRequirements": {"searchKeywords": ["deep", "sea"]},
            },
        ],
    }


def media_context(project_id: str, counts=(3, 3, 3)) -> Dict:
    names = {
        1: ["city-street.jpg", "beach-sunset.jpg", "beach-waves.jpg", "sunset-sky.jpg"],
        2: ["coral-reef.jpg", "reef-fish.jpg", "coral-closeup.jpg", "diver.jpg"],
        3: ["deep-sea-fish.jpg", "sea-floor.jpg", "submarine.jpg", "jellyfish.jpg"],
    }
    mapping = {}
    for scene, count in zip((1, 2, 3), counts):
        mapping[str(scene)] = [
            {
                "s3Key": media_key(project_id, scene, name),
                "type": "image",
                "relevanceScore": 0.8,
                "source": "pexels",
                "tags": [],
            }
            for name in names[scene][:count]
        ]
    return {"sceneMediaMapping": mapping}


def audio_context(project_id: str, master_duration: float = 120.0, with_master: bool = True) -> Dict:
    data = {
        "audioSegments": [
            {
                "sceneNumber": n,
                "s3Key": f"videos/{project_id}/04-audio/audio-segments/scene-{n}.mp3",
                "duration": d,
            }
            for n, d in zip((1, 2, 3), SCENE_DURATIONS)
        ],
    }
    if with_master:
        data["masterAudio"] = {
            "s3Key": f"videos/{project_id}/04-audio/narration.mp3",
            "duration": master_duration,
        }
    return data


def seed_project(
    storage: FakeStorage,
    project_id: str = PROJECT_ID,
    counts=(3, 3, 3),
    contexts=("topic", "scene", "media", "audio"),
    master_duration: float = 120.0,
    with_master: bool = True,
) -> None:
    """Write context documents plus the media and audio objects they reference."""
    store = ContextStore(storage)
    docs = {
        "topic": topic_context(),
        "scene": scene_context(),
        "media": media_context(project_id, counts),
        "audio": audio_context(project_id, master_duration, with_master),
    }
    for name in contexts:
        store.put_context(project_id, name, docs[name])

    for assets in docs["media"]["sceneMediaMapping"].values():
        for asset in assets:
            storage.upload_file(asset["s3Key"], b"\xff\xd8 image")
    for segment in docs["audio"]["audioSegments"]:
        storage.upload_file(segment["s3Key"], b"ID3 segment")
    if with_master:
        storage.upload_file(docs["audio"]["masterAudio"]["s3Key"], b"ID3 master")
    storage.uploads.clear()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def store(storage) -> ContextStore:
    return ContextStore(storage)


@pytest.fixture
def seeded_store(storage, store) -> ContextStore:
    """Store holding the three-scene 15/60/45 project."""
    seed_project(storage)
    return store


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def sample_config(temp_dir) -> Dict:
    """Complete configuration with fast retry and local work dir."""
    work_dir = temp_dir / "work"
    work_dir.mkdir()
    return {
        "s3_bucket_name": "test-bucket",
        "s3_region": "us-east-1",
        "s3_endpoint_url": None,
        "aws_access_key_id": None,
        "aws_secret_access_key": None,
        "projects_prefix": "videos",
        "status_db_path": ":memory:",
        "min_visuals_per_scene": 3,
        "audio_tolerance_seconds": 2.0,
        "output_resolution": "1280x720",
        "output_fps": 30,
        "video_codec": "libx264",
        "video_preset": "veryfast",
        "video_crf": 23,
        "audio_bitrate": "192k",
        "ffmpeg_path": "ffmpeg",
        "ffprobe_path": "ffprobe",
        "work_dir": str(work_dir),
        "probe_timeout": 5.0,
        "download_timeout": 5.0,
        "composition_timeout": 60.0,
        "parallel_downloads": 2,
        "parallel_segments": 2,
        "max_retries": 1,
        "retry_base_delay": 0.0,
        "log_level": "DEBUG",
        "log_json": False,
    }
