"""Context document models produced by the upstream pipeline stages.

Upstream stages write JSON with camelCase keys and some variation in shape
between versions, so every ``from_dict`` here is deliberately lenient about
where a value lives. ``to_dict`` always writes the canonical shape.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath


class AssetState(str, Enum):
    """Availability of a media or audio reference."""

    READY = "ready"
    PENDING = "pending"  # expected but not produced yet
    PLACEHOLDER = "placeholder"  # stands in for missing media, never renderable content


class MediaType(str, Enum):
    """Kind of visual asset."""

    IMAGE = "image"
    CLIP = "clip"


class ScenePurpose(str, Enum):
    """Narrative role of a scene."""

    HOOK = "hook"
    MAIN_CONTENT = "main_content"
    CONCLUSION = "conclusion"


CLIP_EXTENSIONS = {".mp4", ".mov", ".mkv", ".webm", ".avi", ".m4v"}


def _as_float(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_int(value, default: int | None = None) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass
class VisualRequirements:
    """What a scene needs to show."""

    keywords: list[str] = field(default_factory=list)
    shot_types: list[str] = field(default_factory=list)
    target_asset_count: int = 3

    @classmethod
    def from_dict(cls, data) -> "VisualRequirements":
        if isinstance(data, list):
            # Older scripts stored a bare keyword list
            return cls(keywords=[str(k) for k in data])
        data = data or {}
        keywords = (
            data.get("searchKeywords")
            or data.get("keywords")
            or data.get("primaryKeywords")
            or []
        )
        return cls(
            keywords=[str(k) for k in keywords],
            shot_types=list(data.get("shotTypes") or data.get("shot_types") or []),
            target_asset_count=_as_int(
                data.get("targetAssetCount", data.get("visualsNeeded")), 3
            ),
        )

    def to_dict(self) -> dict:
        return {
            "searchKeywords": list(self.keywords),
            "shotTypes": list(self.shot_types),
            "targetAssetCount": self.target_asset_count,
        }


@dataclass
class Scene:
    """A time-bounded narrative unit of the script."""

    scene_number: int
    title: str = ""
    purpose: str = ScenePurpose.MAIN_CONTENT.value
    start_time: float | None = None
    end_time: float | None = None
    duration: float = 0.0
    script: str = ""
    visual_requirements: VisualRequirements = field(default_factory=VisualRequirements)

    @property
    def has_timing(self) -> bool:
        """True when the scene carries usable start/end or duration information."""
        if self.start_time is not None and self.end_time is not None:
            return self.end_time > self.start_time
        return self.duration > 0

    @classmethod
    def from_dict(cls, data: dict) -> "Scene":
        content = data.get("content") or {}
        timing = data.get("timing") or {}
        start = data.get("startTime", timing.get("start"))
        end = data.get("endTime", timing.get("end"))
        start_f = _as_float(start) if start is not None else None
        end_f = _as_float(end) if end is not None else None
        duration = _as_float(data.get("duration"))
        if not duration and start_f is not None and end_f is not None:
            duration = max(0.0, end_f - start_f)
        return cls(
            scene_number=int(data.get("sceneNumber", data.get("id", 0))),
            title=data.get("title", ""),
            purpose=data.get("purpose", ScenePurpose.MAIN_CONTENT.value),
            start_time=start_f,
            end_time=end_f,
            duration=duration,
            script=content.get("script") or data.get("script") or data.get("narration") or "",
            visual_requirements=VisualRequirements.from_dict(data.get("visualRequirements")),
        )

    def to_dict(self) -> dict:
        return {
            "sceneNumber": self.scene_number,
            "title": self.title,
            "purpose": self.purpose,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "duration": self.duration,
            "script": self.script,
            "visualRequirements": self.visual_requirements.to_dict(),
        }


@dataclass
class MediaAsset:
    """A curated visual for one scene."""

    key: str
    scene_number: int
    media_type: str = MediaType.IMAGE.value
    size: int = 0
    source: str = "unknown"
    relevance_score: float = 0.0
    tags: list[str] = field(default_factory=list)
    state: str = AssetState.READY.value

    @property
    def filename(self) -> str:
        return PurePosixPath(self.key).name if self.key else ""

    @property
    def is_ready(self) -> bool:
        return self.state == AssetState.READY.value

    @classmethod
    def placeholder(cls, scene_number: int) -> "MediaAsset":
        """Explicit stand-in for a scene with no usable media."""
        return cls(
            key="",
            scene_number=scene_number,
            source="placeholder",
            state=AssetState.PLACEHOLDER.value,
        )

    @classmethod
    def from_dict(cls, data: dict, scene_number: int | None = None) -> "MediaAsset":
        key = data.get("s3Key") or data.get("key") or data.get("storageKey") or ""
        media_type = data.get("type") or data.get("assetType") or ""
        if media_type in ("video", "clip"):
            media_type = MediaType.CLIP.value
        elif media_type != MediaType.IMAGE.value:
            suffix = PurePosixPath(key).suffix.lower()
            media_type = MediaType.CLIP.value if suffix in CLIP_EXTENSIONS else MediaType.IMAGE.value
        explicit_scene = _as_int(data.get("sceneNumber"))
        state = data.get("state")
        if state is None:
            state = AssetState.READY.value if key else AssetState.PENDING.value
        return cls(
            key=key,
            scene_number=explicit_scene if explicit_scene is not None else (scene_number or 1),
            media_type=media_type,
            size=_as_int(data.get("size", data.get("downloadedSize")), 0),
            source=data.get("source", "unknown"),
            relevance_score=_as_float(data.get("relevanceScore")),
            tags=[str(t) for t in (data.get("tags") or data.get("keywords") or [])],
            state=state,
        )

    def to_dict(self) -> dict:
        return {
            "s3Key": self.key,
            "sceneNumber": self.scene_number,
            "type": self.media_type,
            "size": self.size,
            "source": self.source,
            "relevanceScore": self.relevance_score,
            "tags": list(self.tags),
            "state": self.state,
        }


@dataclass
class AudioSegment:
    """Narration audio for a single scene."""

    scene_number: int
    key: str
    duration: float = 0.0
    state: str = AssetState.READY.value

    @classmethod
    def from_dict(cls, data: dict) -> "AudioSegment":
        key = data.get("s3Key") or data.get("key") or ""
        return cls(
            scene_number=int(data.get("sceneNumber", 0)),
            key=key,
            duration=_as_float(data.get("duration")),
            state=data.get("state") or (AssetState.READY.value if key else AssetState.PENDING.value),
        )

    def to_dict(self) -> dict:
        return {
            "sceneNumber": self.scene_number,
            "s3Key": self.key,
            "duration": self.duration,
            "state": self.state,
        }


@dataclass
class MasterAudio:
    """The single concatenated narration track."""

    key: str
    duration: float = 0.0
    state: str = AssetState.READY.value

    @classmethod
    def from_dict(cls, data: dict | None) -> "MasterAudio | None":
        if not data:
            return None
        key = data.get("s3Key") or data.get("key") or ""
        return cls(
            key=key,
            duration=_as_float(data.get("duration", data.get("totalDuration"))),
            state=data.get("state") or (AssetState.READY.value if key else AssetState.PENDING.value),
        )

    def to_dict(self) -> dict:
        return {"s3Key": self.key, "duration": self.duration, "state": self.state}


@dataclass
class TopicContext:
    """Topic expansion output used for publishing metadata."""

    title: str = ""
    topic: str = ""
    description: str = ""
    primary_keywords: list[str] = field(default_factory=list)
    long_tail_keywords: list[str] = field(default_factory=list)
    target_duration: float | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "TopicContext":
        seo = data.get("seoContext") or {}
        expanded = data.get("expandedTopics") or []
        title = data.get("title") or ""
        if not title and expanded and isinstance(expanded[0], dict):
            title = expanded[0].get("title", "")
        target = data.get("targetDuration")
        return cls(
            title=title,
            topic=data.get("topic") or data.get("originalTopic") or data.get("mainTopic") or "",
            description=data.get("description", ""),
            primary_keywords=[str(k) for k in seo.get("primaryKeywords") or []],
            long_tail_keywords=[str(k) for k in seo.get("longTailKeywords") or []],
            target_duration=_as_float(target) if target is not None else None,
        )


@dataclass
class SceneContext:
    """Ordered scene list produced by script generation."""

    scenes: list[Scene]
    total_duration: float = 0.0

    @classmethod
    def from_dict(cls, data: dict) -> "SceneContext":
        scenes = [Scene.from_dict(s) for s in data.get("scenes") or []]
        scenes.sort(key=lambda s: s.scene_number)
        total = _as_float(data.get("totalDuration")) or sum(s.duration for s in scenes)
        return cls(scenes=scenes, total_duration=total)


@dataclass
class MediaContext:
    """Scene number -> curated assets."""

    assets_by_scene: dict[int, list[MediaAsset]]

    @classmethod
    def from_dict(cls, data: dict) -> "MediaContext":
        mapping = data.get("sceneMediaMapping") or data.get("scenes") or {}
        by_scene: dict[int, list[MediaAsset]] = {}
        if isinstance(mapping, dict):
            items = [(int(k), v) for k, v in mapping.items()]
        else:
            items = [
                (int(entry.get("sceneNumber", 0)), entry.get("mediaSequence") or entry.get("assets") or [])
                for entry in mapping
            ]
        for scene_number, assets in items:
            for raw in assets:
                asset = MediaAsset.from_dict(raw, scene_number=scene_number)
                by_scene.setdefault(scene_number, []).append(asset)
        return cls(assets_by_scene=by_scene)

    def assets_for(self, scene_number: int) -> list[MediaAsset]:
        return list(self.assets_by_scene.get(scene_number, []))


@dataclass
class AudioContext:
    """Per-scene narration plus the master track."""

    segments: dict[int, AudioSegment]
    master: MasterAudio | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "AudioContext":
        segments: dict[int, AudioSegment] = {}
        for raw in data.get("audioSegments") or []:
            seg = AudioSegment.from_dict(raw)
            segments[seg.scene_number] = seg
        master = MasterAudio.from_dict(data.get("masterAudio"))
        return cls(segments=segments, master=master)
