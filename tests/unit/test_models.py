"""Unit tests for context, manifest and assembly data models."""

from assembly.errors import CompositionError, DownloadError, ValidationFailure
from assembly.manifest_builder import ManifestBuilder
from assembly.models import AssemblyResult, OutputSpec, Segment, Timeline
from models.manifest import Chapter, ExportSettings, Manifest
from models.project import (
    AssetState,
    AudioContext,
    MediaAsset,
    MediaContext,
    Scene,
    SceneContext,
    TopicContext,
)

from conftest import PROJECT_ID


class TestProjectModels:
    def test_scene_nested_timing_and_content(self):
        scene = Scene.from_dict({
            "id": 2,
            "timing": {"start": 15, "end": 75},
            "content": {"script": "Reefs."},
            "visualRequirements": ["coral", "reef"],
        })

        assert scene.scene_number == 2
        assert scene.duration == 60.0
        assert scene.has_timing
        assert scene.script == "Reefs."
        assert scene.visual_requirements.keywords == ["coral", "reef"]

    def test_scene_context_sorted(self):
        ctx = SceneContext.from_dict({"scenes": [{"sceneNumber": 2, "duration": 5}, {"sceneNumber": 1, "duration": 3}]})
        assert [s.scene_number for s in ctx.scenes] == [1, 2]
        assert ctx.total_duration == 8.0

    def test_media_asset_type_and_state(self):
        clip = MediaAsset.from_dict({"key": "a/b.MP4"}, scene_number=3)
        pending = MediaAsset.from_dict({"type": "image"}, scene_number=1)

        assert clip.media_type == "clip"
        assert clip.scene_number == 3
        assert clip.is_ready
        assert pending.state == AssetState.PENDING.value

    def test_explicit_scene_number_wins(self):
        asset = MediaAsset.from_dict({"s3Key": "x.jpg", "sceneNumber": 4}, scene_number=1)
        assert asset.scene_number == 4

    def test_placeholder(self):
        asset = MediaAsset.placeholder(2)
        assert asset.state == AssetState.PLACEHOLDER.value
        assert not asset.is_ready

    def test_media_context_list_shape(self):
        ctx = MediaContext.from_dict({
            "sceneMediaMapping": [
                {"sceneNumber": 1, "mediaSequence": [{"s3Key": "a.jpg"}, {"s3Key": "b.jpg"}]},
                {"sceneNumber": 2, "assets": [{"s3Key": "c.jpg"}]},
            ],
        })
        assert [a.key for a in ctx.assets_for(1)] == ["a.jpg", "b.jpg"]
        assert ctx.assets_for(3) == []

    def test_audio_context(self):
        ctx = AudioContext.from_dict({
            "audioSegments": [{"sceneNumber": 1, "s3Key": "s1.mp3", "duration": 4}],
            "masterAudio": {"s3Key": "n.mp3", "totalDuration": 4.2},
        })
        assert ctx.segments[1].duration == 4.0
        assert ctx.master.duration == 4.2
        assert AudioContext.from_dict({}).master is None

    def test_topic_title_from_expanded_topics(self):
        topic = TopicContext.from_dict({"expandedTopics": [{"title": "Deep Dive"}], "originalTopic": "ocean"})
        assert topic.title == "Deep Dive"
        assert topic.topic == "ocean"


class TestManifestModels:
    def test_chapter_timestamp(self):
        assert Chapter(75.9, "x").timestamp == "01:15"

    def test_export_dimensions(self):
        export = ExportSettings(resolution="1280x720")
        assert (export.width, export.height) == (1280, 720)

    def test_manifest_reload_preserves_render_inputs(self, seeded_store):
        built = ManifestBuilder(seeded_store).build(PROJECT_ID)
        loaded = Manifest.from_dict(seeded_store.get_manifest(PROJECT_ID))

        assert loaded.ready_for_rendering is True
        assert loaded.master_audio.duration == 120.0
        assert [len(s.ready_media) for s in loaded.scenes] == [3, 3, 3]
        assert loaded.kpis == built.kpis
        assert loaded.final_video_key == built.final_video_key


class TestAssemblyModels:
    def test_segment_placeholder(self):
        seg = Segment(source_media=None, start_time=0.0, end_time=1.5)
        assert seg.is_placeholder
        assert seg.duration == 1.5
        assert seg.to_dict()["sourceMedia"] is None

    def test_output_spec_from_settings(self):
        spec = OutputSpec.from_settings(ExportSettings(resolution="1280x720", fps=25), {"video_crf": 18})
        assert spec.resolution == "1280x720"
        assert spec.fps == 25
        assert spec.crf == 18
        assert spec.video_codec == "libx264"

    def test_timeline_scene_ranges_merge_consecutive_segments(self):
        timeline = Timeline(
            segments=[
                Segment(None, 0.0, 1.0, scene_number=1),
                Segment(None, 1.0, 2.0, scene_number=1),
                Segment(None, 2.0, 3.0, scene_number=2),
            ],
            total_duration=3.0,
        )
        assert timeline.scene_ranges() == [(1, 0.0, 2.0), (2, 2.0, 3.0)]

    def test_result_to_dict(self):
        result = AssemblyResult("p", "videos/p/05-video/final-video.mp4", 120.0, "1920x1080", 10)
        body = result.to_dict()
        assert body["videoPath"] == "videos/p/05-video/final-video.mp4"
        assert body["fallback"] is False


class TestErrors:
    def test_validation_failure_body(self):
        body = ValidationFailure("bad", issues=["x"], insufficient_scenes=[2]).to_dict()
        assert body == {
            "success": False,
            "error": "bad",
            "errorType": "validation_failure",
            "retryable": False,
            "issues": ["x"],
            "insufficientScenes": [2],
            "missingContexts": [],
            "warnings": [],
            "kpis": {},
        }

    def test_composition_error_retryability(self):
        assert CompositionError("x", exit_code=1).retryable is True
        assert CompositionError("x", timed_out=True).retryable is False
        assert CompositionError("x", stage="mux", exit_code=2).to_dict()["exitCode"] == 2

    def test_download_error(self):
        assert DownloadError("x").retryable is True
        assert DownloadError("x", key="k", retryable=False).key == "k"
