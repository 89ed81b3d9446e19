"""Data models for the assembly stages.

Everything here is derived per render run and lives in memory only; the
manifest (``models.manifest``) is the only persisted input.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from models.manifest import ExportSettings
from models.project import MediaAsset


class Transition(str, Enum):
    """Transition into a timeline segment."""

    FADE_IN = "fade-in"
    CROSSFADE = "crossfade"


class TimelineMode(str, Enum):
    """How segment boundaries were derived."""

    SCENE_TIMING = "scene_timing"
    EVEN_SPLIT = "even_split"


@dataclass
class Segment:
    """One time-coded piece of the video, showing a single visual."""

    source_media: MediaAsset | None
    start_time: float
    end_time: float
    transition: str = Transition.CROSSFADE.value
    scene_number: int = 1
    local_path: Path | None = None  # relative to the run's working directory

    @property
    def duration(self) -> float:
        return round(self.end_time - self.start_time, 6)

    @property
    def is_placeholder(self) -> bool:
        """True when there is nothing to show (rendered as a black frame)."""
        return self.source_media is None or not self.source_media.is_ready

    @property
    def is_clip(self) -> bool:
        return self.source_media is not None and self.source_media.media_type == "clip"

    def to_dict(self) -> dict:
        return {
            "sceneNumber": self.scene_number,
            "sourceMedia": self.source_media.key if self.source_media else None,
            "mediaType": self.source_media.media_type if self.source_media else None,
            "placeholder": self.is_placeholder,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "duration": self.duration,
            "transition": self.transition,
            "localPath": str(self.local_path) if self.local_path else None,
        }


@dataclass
class Timeline:
    """Ordered, contiguous segments covering ``[0, total_duration]``."""

    segments: list[Segment]
    total_duration: float
    mode: str = TimelineMode.SCENE_TIMING.value

    def scene_ranges(self) -> list[tuple[int, float, float]]:
        """``(scene_number, start, end)`` for each scene, in timeline order."""
        ranges: list[tuple[int, float, float]] = []
        for seg in self.segments:
            if ranges and ranges[-1][0] == seg.scene_number:
                number, start, _ = ranges[-1]
                ranges[-1] = (number, start, seg.end_time)
            else:
                ranges.append((seg.scene_number, seg.start_time, seg.end_time))
        return ranges

    def to_dict(self) -> dict:
        return {
            "mode": self.mode,
            "totalDuration": self.total_duration,
            "segments": [s.to_dict() for s in self.segments],
        }


@dataclass
class SubtitleCue:
    """A single caption, shown for one scene."""

    index: int
    start: float
    end: float
    text: str


@dataclass
class AudioProbe:
    """Measured properties of an audio file."""

    duration_seconds: float
    sample_rate: int | None = None
    channels: int | None = None
    bitrate: int | None = None
    format_name: str = ""
    codec: str = ""


@dataclass
class MasterNarration:
    """The narration track the render is synchronized to."""

    path: Path
    duration: float
    concatenated: bool = False
    segment_count: int = 0


@dataclass
class OutputSpec:
    """Encoding target for the compositor."""

    width: int = 1920
    height: int = 1080
    fps: int = 30
    video_codec: str = "libx264"
    preset: str = "medium"
    crf: int = 23
    audio_bitrate: str = "192k"

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"

    @classmethod
    def from_settings(cls, export: ExportSettings | None, config: dict) -> "OutputSpec":
        """Combine the manifest's export block with local encoder settings."""
        resolution = export.resolution if export else config.get("output_resolution", "1920x1080")
        width, height = (int(v) for v in resolution.lower().split("x"))
        return cls(
            width=width,
            height=height,
            fps=export.fps if export else config.get("output_fps", 30),
            video_codec=config.get("video_codec", "libx264"),
            preset=export.preset if export else config.get("video_preset", "medium"),
            crf=config.get("video_crf", 23),
            audio_bitrate=config.get("audio_bitrate", "192k"),
        )

    def to_dict(self) -> dict:
        return {
            "resolution": self.resolution,
            "fps": self.fps,
            "videoCodec": self.video_codec,
            "preset": self.preset,
            "crf": self.crf,
            "audioBitrate": self.audio_bitrate,
        }


class ItemKind(str, Enum):
    """Classification of a discovered storage object."""

    IMAGE = "image"
    CLIP = "clip"
    AUDIO_SEGMENT = "audio_segment"
    MASTER_AUDIO = "master_audio"
    CONTEXT = "context"


@dataclass
class DiscoveredItem:
    """A project object classified by its key."""

    key: str
    kind: str
    scene_number: int | None = None
    size: int = 0
    scene_from_metadata: bool = False

    @property
    def filename(self) -> str:
        return self.key.rsplit("/", 1)[-1]


@dataclass
class DiscoveryResult:
    """Everything found under a project's namespace."""

    images: list[DiscoveredItem] = field(default_factory=list)
    audio_files: list[DiscoveredItem] = field(default_factory=list)
    context_documents: list[DiscoveredItem] = field(default_factory=list)
    master_audio: DiscoveredItem | None = None
    warnings: list[str] = field(default_factory=list)

    def images_by_scene(self) -> dict[int, list[DiscoveredItem]]:
        grouped: dict[int, list[DiscoveredItem]] = {}
        for item in self.images:
            grouped.setdefault(item.scene_number or 1, []).append(item)
        return grouped

    def to_media_context(self) -> dict:
        """Media context document in the upstream list shape."""
        return {
            "sceneMediaMapping": [
                {
                    "sceneNumber": scene,
                    "mediaSequence": [
                        {"s3Key": i.key, "type": i.kind, "size": i.size, "source": "discovered"}
                        for i in items
                    ],
                }
                for scene, items in sorted(self.images_by_scene().items())
            ],
        }

    def to_audio_context(self) -> dict:
        """Audio context document; durations are unknown until probed."""
        return {
            "audioSegments": [
                {"sceneNumber": i.scene_number or 1, "s3Key": i.key}
                for i in sorted(self.audio_files, key=lambda i: i.scene_number or 1)
            ],
            "masterAudio": {"s3Key": self.master_audio.key} if self.master_audio else None,
        }


@dataclass
class RenderStep:
    """A single media-tool invocation of the render plan."""

    stage: str
    description: str
    args: list[str]
    output: Path

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "description": self.description,
            "args": list(self.args),
            "output": str(self.output),
        }


@dataclass
class RenderPlan:
    """Ordered media-tool invocations that turn a timeline into a video.

    All paths are relative to the run's working directory, so the plan can be
    replayed elsewhere once the inputs are placed under ``input/``.
    """

    steps: list[RenderStep]
    output_path: Path
    files: dict[str, str] = field(default_factory=dict)  # aux files to write first

    def stage(self, name: str) -> list[RenderStep]:
        return [s for s in self.steps if s.stage == name]

    def to_dict(self) -> dict:
        return {
            "outputPath": str(self.output_path),
            "files": dict(self.files),
            "steps": [s.to_dict() for s in self.steps],
        }


@dataclass
class AssemblyResult:
    """Outcome of a successful assembly run (real render or fallback bundle)."""

    project_id: str
    video_path: str
    duration: float
    resolution: str
    file_size: int
    fallback: bool = False
    codec: str = "h264"
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success": True,
            "projectId": self.project_id,
            "videoPath": self.video_path,
            "duration": self.duration,
            "resolution": self.resolution,
            "fileSize": self.file_size,
            "fallback": self.fallback,
            "codec": self.codec,
            "warnings": list(self.warnings),
        }
