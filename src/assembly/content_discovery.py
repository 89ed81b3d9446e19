"""Classify a project's stored objects by key convention.

Used when the media or audio context documents are missing or stale. Scene
attribution prefers an explicit ``scene-number`` object metadata field and
falls back to the ``scene-N`` token in the key.
"""

import logging
import re
from pathlib import PurePosixPath

from assembly.models import DiscoveredItem, DiscoveryResult, ItemKind
from services.context_store import AUDIO_FOLDER, CONTEXT_FOLDER, MEDIA_FOLDER, ContextStore
from utils.config import (
    get_supported_audio_formats,
    get_supported_image_formats,
    get_supported_video_formats,
)

logger = logging.getLogger(__name__)

SCENE_TOKEN = re.compile(r"scene-(\d+)", re.IGNORECASE)
SCENE_METADATA_FIELD = "scene-number"
MASTER_AUDIO_STEM = "narration"


def scene_from_key(key: str) -> int | None:
    """Scene number from the last ``scene-N`` token in a key, if any."""
    matches = SCENE_TOKEN.findall(key)
    if not matches:
        return None
    return int(matches[-1])


class ContentDiscovery:
    """Lists and classifies everything under a project's namespace."""

    def __init__(self, store: ContextStore, read_metadata: bool = True):
        self.store = store
        self.read_metadata = read_metadata
        self._image_exts = set(get_supported_image_formats())
        self._clip_exts = set(get_supported_video_formats())
        self._audio_exts = set(get_supported_audio_formats())

    def discover(self, project_id: str) -> DiscoveryResult:
        prefix = self.store.project_prefix(project_id)
        result = DiscoveryResult()

        for obj in self.store.list_project_objects(project_id):
            key = obj["key"]
            relative = key[len(prefix):] if key.startswith(prefix) else key
            kind = self.classify(relative)
            if kind is None:
                continue

            item = DiscoveredItem(key=key, kind=kind, size=int(obj.get("size") or 0))

            if kind == ItemKind.CONTEXT.value:
                result.context_documents.append(item)
                continue
            if kind == ItemKind.MASTER_AUDIO.value:
                if result.master_audio is None:
                    result.master_audio = item
                else:
                    result.warnings.append(f"Multiple master narration files, using {result.master_audio.key}")
                continue

            self._assign_scene(item, relative, result.warnings)
            if kind == ItemKind.AUDIO_SEGMENT.value:
                result.audio_files.append(item)
            else:
                result.images.append(item)

        # Listing order is lexicographic, so scene-10 sorts before scene-2
        result.images.sort(key=lambda i: (i.scene_number, i.key))
        result.audio_files.sort(key=lambda i: (i.scene_number, i.key))

        logger.info(
            f"Discovered {len(result.images)} visuals, {len(result.audio_files)} audio segments, "
            f"{len(result.context_documents)} context documents for {project_id}"
        )
        return result

    def classify(self, relative_key: str) -> str | None:
        """Kind of object for a key relative to the project prefix, or None to ignore it."""
        path = PurePosixPath(relative_key)
        parts = path.parts
        if not parts:
            return None
        folder = parts[0]
        ext = path.suffix.lower()

        if folder == MEDIA_FOLDER:
            if ext in self._image_exts:
                return ItemKind.IMAGE.value
            if ext in self._clip_exts:
                return ItemKind.CLIP.value
        elif folder == AUDIO_FOLDER and ext in self._audio_exts:
            if path.stem.lower() == MASTER_AUDIO_STEM:
                return ItemKind.MASTER_AUDIO.value
            return ItemKind.AUDIO_SEGMENT.value
        elif folder == CONTEXT_FOLDER and ext == ".json":
            return ItemKind.CONTEXT.value
        return None

    def _assign_scene(self, item: DiscoveredItem, relative_key: str, warnings: list[str]) -> None:
        key_scene = scene_from_key(relative_key)
        meta_scene = self._metadata_scene(item.key) if self.read_metadata else None

        if meta_scene is not None:
            item.scene_number = meta_scene
            item.scene_from_metadata = True
            if key_scene is not None and key_scene != meta_scene:
                warnings.append(
                    f"{item.key}: metadata says scene {meta_scene} but key says scene {key_scene}"
                )
        elif key_scene is not None:
            item.scene_number = key_scene
        else:
            item.scene_number = 1
            warnings.append(f"{item.key}: no scene reference, assigned to scene 1")

    def _metadata_scene(self, key: str) -> int | None:
        value = self.store.object_metadata(key).get(SCENE_METADATA_FIELD)
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring non-numeric {SCENE_METADATA_FIELD} metadata on {key}: {value!r}")
            return None
