"""Production manifest models.

The manifest is the single render-ready description of a project. It is
written once by the manifest builder and only read afterwards.
"""

from dataclasses import dataclass, field

from models.project import AssetState, AudioSegment, MasterAudio, MediaAsset

MANIFEST_VERSION = "1.0.0"


@dataclass
class ManifestKPIs:
    """Computed summary metrics used to gate rendering."""

    scenes_detected: int = 0
    images_total: int = 0
    audio_segments: int = 0
    quality_score: float = 0.0
    has_narration: bool = False
    min_visuals_required: int = 3
    scenes_passing_visual_min: int = 0

    def to_dict(self) -> dict:
        return {
            "scenes_detected": self.scenes_detected,
            "images_total": self.images_total,
            "audio_segments": self.audio_segments,
            "quality_score": self.quality_score,
            "has_narration": self.has_narration,
            "min_visuals_required": self.min_visuals_required,
            "scenes_passing_visual_min": self.scenes_passing_visual_min,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ManifestKPIs":
        return cls(**{k: data[k] for k in cls.__dataclass_fields__ if k in data})


@dataclass
class Chapter:
    """A chapter marker for the published video."""

    start: float
    label: str

    @property
    def timestamp(self) -> str:
        """``MM:SS`` label as used in video descriptions."""
        total = int(self.start)
        return f"{total // 60:02d}:{total % 60:02d}"

    def to_dict(self) -> dict:
        return {"t": self.start, "label": self.label}


@dataclass
class PublishingMetadata:
    """Title, description, tags and chapters for the channel publisher."""

    title: str
    description: str = ""
    tags: list[str] = field(default_factory=list)
    chapters: list[Chapter] = field(default_factory=list)
    visibility: str = "unlisted"
    category_id: str = "27"  # Education

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "tags": list(self.tags),
            "chapters": [c.to_dict() for c in self.chapters],
            "visibility": self.visibility,
            "categoryId": self.category_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PublishingMetadata":
        return cls(
            title=data.get("title", ""),
            description=data.get("description", ""),
            tags=list(data.get("tags") or []),
            chapters=[Chapter(start=float(c["t"]), label=c["label"]) for c in data.get("chapters") or []],
            visibility=data.get("visibility", "unlisted"),
            category_id=data.get("categoryId", "27"),
        )


@dataclass
class ExportSettings:
    """Render target for the compositor."""

    resolution: str = "1920x1080"
    fps: int = 30
    codec: str = "h264"
    preset: str = "medium"

    @property
    def width(self) -> int:
        return int(self.resolution.lower().split("x")[0])

    @property
    def height(self) -> int:
        return int(self.resolution.lower().split("x")[1])

    def to_dict(self) -> dict:
        return {"resolution": self.resolution, "fps": self.fps, "codec": self.codec, "preset": self.preset}


@dataclass
class ManifestScene:
    """A scene with its resolved media and narration reference."""

    scene_number: int
    title: str
    purpose: str
    start_time: float | None
    end_time: float | None
    duration: float
    script: str
    keywords: list[str]
    media: list[MediaAsset]
    audio: AudioSegment | None = None

    @property
    def ready_media(self) -> list[MediaAsset]:
        return [m for m in self.media if m.state == AssetState.READY.value]

    def to_dict(self) -> dict:
        return {
            "sceneNumber": self.scene_number,
            "title": self.title,
            "purpose": self.purpose,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "duration": self.duration,
            "script": self.script,
            "keywords": list(self.keywords),
            "media": [m.to_dict() for m in self.media],
            "audio": self.audio.to_dict() if self.audio else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ManifestScene":
        scene_number = int(data["sceneNumber"])
        return cls(
            scene_number=scene_number,
            title=data.get("title", ""),
            purpose=data.get("purpose", "main_content"),
            start_time=data.get("startTime"),
            end_time=data.get("endTime"),
            duration=float(data.get("duration") or 0.0),
            script=data.get("script", ""),
            keywords=list(data.get("keywords") or []),
            media=[MediaAsset.from_dict(m, scene_number=scene_number) for m in data.get("media") or []],
            audio=AudioSegment.from_dict(data["audio"]) if data.get("audio") else None,
        )


@dataclass
class Manifest:
    """Single source of truth for rendering and publishing one project."""

    project_id: str
    scenes: list[ManifestScene]
    kpis: ManifestKPIs
    ready_for_rendering: bool
    publishing: PublishingMetadata
    export: ExportSettings = field(default_factory=ExportSettings)
    master_audio: MasterAudio | None = None
    final_video_key: str = ""
    total_duration: float = 0.0
    warnings: list[str] = field(default_factory=list)
    generated_at: str = ""
    manifest_version: str = MANIFEST_VERSION

    def to_dict(self) -> dict:
        return {
            "projectId": self.project_id,
            "manifestVersion": self.manifest_version,
            "readyForRendering": self.ready_for_rendering,
            "totalDuration": self.total_duration,
            "kpis": self.kpis.to_dict(),
            "scenes": [s.to_dict() for s in self.scenes],
            "publishing": self.publishing.to_dict(),
            "export": self.export.to_dict(),
            "upload": {
                "finalVideoPath": self.final_video_key,
                "masterAudioPath": self.master_audio.key if self.master_audio else None,
            },
            "masterAudio": self.master_audio.to_dict() if self.master_audio else None,
            "warnings": list(self.warnings),
            "generatedAt": self.generated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Manifest":
        export = data.get("export") or {}
        return cls(
            project_id=data["projectId"],
            scenes=[ManifestScene.from_dict(s) for s in data.get("scenes") or []],
            kpis=ManifestKPIs.from_dict(data.get("kpis") or {}),
            ready_for_rendering=bool(data.get("readyForRendering")),
            publishing=PublishingMetadata.from_dict(data.get("publishing") or {}),
            export=ExportSettings(**{k: export[k] for k in ("resolution", "fps", "codec", "preset") if k in export}),
            master_audio=MasterAudio.from_dict(data.get("masterAudio")),
            final_video_key=(data.get("upload") or {}).get("finalVideoPath", ""),
            total_duration=float(data.get("totalDuration") or 0.0),
            warnings=list(data.get("warnings") or []),
            generated_at=data.get("generatedAt", ""),
            manifest_version=data.get("manifestVersion", MANIFEST_VERSION),
        )
