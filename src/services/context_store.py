"""Per-project context documents and artifact keys.

Key scheme (all under ``{prefix}/{project_id}/``)::

    01-context/{name}-context.json    upstream context documents
    01-context/manifest.json          production manifest
    03-media/scene-N/images/...       curated visuals
    04-audio/audio-segments/...       per-scene narration
    04-audio/narration.mp3            master narration
    05-video/final-video.mp4          rendered video
    05-video/video-metadata.json      render metadata (sibling of the video)
    05-video/processing-logs/...      validation and render logs
    06-metadata/...                   project summary, publishing payload
"""

import json
import logging
from pathlib import Path
from typing import Any

from services.object_storage import S3Storage

logger = logging.getLogger(__name__)

CONTEXT_NAMES = ("topic", "scene", "media", "audio")

CONTEXT_FOLDER = "01-context"
MEDIA_FOLDER = "03-media"
AUDIO_FOLDER = "04-audio"
VIDEO_FOLDER = "05-video"
METADATA_FOLDER = "06-metadata"


class ContextStore:
    """Reads and writes a project's named JSON documents under the fixed key scheme."""

    def __init__(self, storage: S3Storage, prefix: str = "videos"):
        self.storage = storage
        self.prefix = prefix.strip("/")

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def project_prefix(self, project_id: str) -> str:
        return f"{self.prefix}/{project_id}/"

    def key(self, project_id: str, *parts: str) -> str:
        return self.project_prefix(project_id) + "/".join(parts)

    def context_key(self, project_id: str, name: str) -> str:
        return self.key(project_id, CONTEXT_FOLDER, f"{name}-context.json")

    def manifest_key(self, project_id: str) -> str:
        return self.key(project_id, CONTEXT_FOLDER, "manifest.json")

    def master_audio_key(self, project_id: str) -> str:
        return self.key(project_id, AUDIO_FOLDER, "narration.mp3")

    def final_video_key(self, project_id: str) -> str:
        return self.key(project_id, VIDEO_FOLDER, "final-video.mp4")

    def video_metadata_key(self, project_id: str) -> str:
        return self.key(project_id, VIDEO_FOLDER, "video-metadata.json")

    def render_instructions_key(self, project_id: str) -> str:
        return self.key(project_id, VIDEO_FOLDER, "render-instructions.json")

    def intermediate_video_key(self, project_id: str) -> str:
        return self.key(project_id, VIDEO_FOLDER, "intermediate", "muxed-no-subtitles.mp4")

    def processing_log_key(self, project_id: str, name: str) -> str:
        return self.key(project_id, VIDEO_FOLDER, "processing-logs", name)

    def metadata_key(self, project_id: str, name: str) -> str:
        return self.key(project_id, METADATA_FOLDER, name)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def get_json(self, key: str) -> Any | None:
        """Load a JSON document, or None if absent or unparsable."""
        try:
            return self.storage.download_json(key)
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Ignoring unparsable JSON document {key}: {e}")
            return None

    def put_json(self, key: str, data: Any) -> str:
        return self.storage.upload_json(key, data)

    def get_context(self, project_id: str, name: str) -> dict | None:
        """Load one of the named context documents (topic, scene, media, audio)."""
        data = self.get_json(self.context_key(project_id, name))
        if data is None:
            logger.info(f"No {name} context for project {project_id}")
        return data

    def get_contexts(self, project_id: str, names=CONTEXT_NAMES) -> dict[str, dict | None]:
        return {name: self.get_context(project_id, name) for name in names}

    def put_context(self, project_id: str, name: str, data: dict) -> str:
        return self.put_json(self.context_key(project_id, name), data)

    def get_manifest(self, project_id: str) -> dict | None:
        return self.get_json(self.manifest_key(project_id))

    def put_manifest(self, project_id: str, manifest: dict) -> str:
        return self.put_json(self.manifest_key(project_id), manifest)

    def put_text(self, key: str, text: str) -> str:
        return self.storage.upload_file(key, text, content_type="text/plain")

    # ------------------------------------------------------------------
    # Listing and transfer
    # ------------------------------------------------------------------

    def list_project_objects(self, project_id: str) -> list[dict]:
        return self.storage.list_files(prefix=self.project_prefix(project_id))

    def object_metadata(self, key: str) -> dict:
        """User metadata of an object (empty when absent)."""
        info = self.storage.get_file_info(key)
        return (info or {}).get("metadata") or {}

    def download(self, key: str, path: Path) -> Path:
        return self.storage.download_to_path(key, path)

    def upload(self, key: str, path: Path, metadata: dict[str, str] | None = None) -> str:
        return self.storage.upload_path(key, path, metadata=metadata)

    def exists(self, key: str) -> bool:
        return self.storage.file_exists(key)
