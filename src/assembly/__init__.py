"""Video assembly - manifest gatekeeping and ffmpeg rendering."""

from .errors import (
    AssemblyError,
    CleanupError,
    CompositionError,
    DownloadError,
    ProbeError,
    ValidationFailure,
)
from .models import (
    AssemblyResult,
    AudioProbe,
    DiscoveryResult,
    OutputSpec,
    RenderPlan,
    Segment,
    SubtitleCue,
    Timeline,
)
from .content_discovery import ContentDiscovery
from .audio_probe import AudioProber
from .media_matcher import match, rank
from .narration import NarrationAssembler
from .timeline import TimelineGenerator
from .subtitles import SubtitleGenerator
from .compositor import VideoCompositor
from .manifest_builder import ManifestBuilder
from .engine import AssemblyEngine

__all__ = [
    "AssemblyError",
    "ValidationFailure",
    "ProbeError",
    "DownloadError",
    "CompositionError",
    "CleanupError",
    "AssemblyResult",
    "AudioProbe",
    "DiscoveryResult",
    "OutputSpec",
    "RenderPlan",
    "Segment",
    "SubtitleCue",
    "Timeline",
    "ContentDiscovery",
    "AudioProber",
    "match",
    "rank",
    "NarrationAssembler",
    "TimelineGenerator",
    "SubtitleGenerator",
    "VideoCompositor",
    "ManifestBuilder",
    "AssemblyEngine",
]
