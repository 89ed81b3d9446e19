# Data models for reelforge
from .project import (
    AssetState,
    AudioContext,
    AudioSegment,
    MasterAudio,
    MediaAsset,
    MediaContext,
    MediaType,
    Scene,
    SceneContext,
    ScenePurpose,
    TopicContext,
    VisualRequirements,
)
from .manifest import (
    Chapter,
    ExportSettings,
    Manifest,
    ManifestKPIs,
    ManifestScene,
    PublishingMetadata,
)

__all__ = [
    # Context documents
    "AssetState",
    "MediaType",
    "ScenePurpose",
    "VisualRequirements",
    "Scene",
    "MediaAsset",
    "AudioSegment",
    "MasterAudio",
    "TopicContext",
    "SceneContext",
    "MediaContext",
    "AudioContext",
    # Manifest
    "ManifestKPIs",
    "Chapter",
    "PublishingMetadata",
    "ExportSettings",
    "ManifestScene",
    "Manifest",
]
