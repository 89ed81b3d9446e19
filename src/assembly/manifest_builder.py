"""Quality gatekeeper: validate a project's contexts and emit the manifest.

The builder reads the topic, scene, media and audio context documents,
checks that they are jointly sufficient to render, computes KPIs, and either
persists a manifest or fails with an itemized report. Nothing downstream
runs until a manifest exists.

Outputs on success:
    01-context/manifest.json
    06-metadata/project-summary.json
    06-metadata/youtube-metadata.json
    05-video/processing-logs/validation.log

On failure only the validation log is written.
"""

import logging
from datetime import datetime, timezone

from assembly.content_discovery import ContentDiscovery, scene_from_key
from assembly.errors import ValidationFailure
from assembly.timeline import scene_duration
from models.manifest import (
    Chapter,
    ExportSettings,
    Manifest,
    ManifestKPIs,
    ManifestScene,
    PublishingMetadata,
)
from models.project import (
    AssetState,
    AudioContext,
    AudioSegment,
    MediaAsset,
    MediaContext,
    Scene,
    SceneContext,
    TopicContext,
)
from services.context_store import AUDIO_FOLDER, CONTEXT_NAMES, ContextStore
from utils.retry import retry_api_call

logger = logging.getLogger(__name__)

MAX_TAGS = 50
SUFFICIENCY_WEIGHT = 0.6
RELEVANCE_WEIGHT = 0.4


def quality_score(ready_counts: list[int], relevances: list[list[float]], min_visuals: int) -> float:
    """Mean over scenes of weighted visual sufficiency and mean relevance.

    Per scene: ``0.6 * min(1, count / min_visuals) + 0.4 * mean(relevance)``.
    Relevance above 1 is treated as a percentage.
    """
    if not ready_counts:
        return 0.0
    per_scene = []
    for count, scores in zip(ready_counts, relevances):
        sufficiency = min(1.0, count / min_visuals) if min_visuals > 0 else 1.0
        normalized = [min(1.0, max(0.0, s / 100 if s > 1 else s)) for s in scores]
        relevance = sum(normalized) / len(normalized) if normalized else 0.0
        per_scene.append(SUFFICIENCY_WEIGHT * sufficiency + RELEVANCE_WEIGHT * relevance)
    return round(sum(per_scene) / len(per_scene), 4)


def scene_list_issues(scenes: list[Scene]) -> list[str]:
    """Numbering and overlap problems in a scene list sorted by scene number.

    Scene numbers must run 1..N without gaps or repeats, and timed scenes may
    not start before the previous one ends.
    """
    issues = []
    numbers = [s.scene_number for s in scenes]
    duplicates = sorted({n for n in numbers if numbers.count(n) > 1})
    if duplicates:
        issues.append(f"Duplicate scene numbers: {duplicates}")
    expected = set(range(1, len(scenes) + 1))
    missing = sorted(expected - set(numbers))
    unexpected = sorted(set(numbers) - expected)
    if missing:
        issues.append(f"Missing scene numbers: {missing}")
    if unexpected:
        issues.append(f"Scene numbers outside 1..{len(scenes)}: {unexpected}")

    timed = [s for s in scenes if s.has_timing and s.start_time is not None and s.end_time is not None]
    for prev, scene in zip(timed, timed[1:]):
        if scene.start_time < prev.end_time - 1e-3:
            issues.append(
                f"Scene {scene.scene_number} starts at {scene.start_time:.2f}s before "
                f"scene {prev.scene_number} ends at {prev.end_time:.2f}s"
            )
    return issues


def format_validation_log(issues: list[str], warnings: list[str], kpis: ManifestKPIs) -> str:
    lines = []
    if issues:
        lines.append("CRITICAL ISSUES:")
        lines.extend(f" - {issue}" for issue in issues)
    else:
        lines.append("No critical issues found.")

    if warnings:
        lines.append("")
        lines.append("WARNINGS:")
        lines.extend(f" - {warning}" for warning in warnings)

    lines.append("")
    lines.append("KPIs:")
    lines.append(f" - Scenes detected: {kpis.scenes_detected}")
    lines.append(f" - Images total: {kpis.images_total}")
    lines.append(f" - Audio segments: {kpis.audio_segments}")
    lines.append(f" - Has narration: {str(kpis.has_narration).lower()}")
    lines.append(
        f" - Scenes passing visual minimum: {kpis.scenes_passing_visual_min}/{kpis.scenes_detected}"
    )
    lines.append(f" - Quality score: {kpis.quality_score}")
    return "\n".join(lines) + "\n"


def build_description(title: str, summary: str, chapters: list[Chapter]) -> str:
    """Video description with ``MM:SS`` chapter lines."""
    description = f"{title}\n\n"
    if summary:
        description += f"{summary}\n\n"
    if chapters:
        description += "Chapters:\n"
        description += "".join(f"{c.timestamp} {c.label}\n" for c in chapters)
    return description


def collect_tags(topic: TopicContext) -> list[str]:
    """Primary then long-tail keywords, de-duplicated, capped at the platform limit."""
    tags: list[str] = []
    seen = set()
    for tag in topic.primary_keywords + topic.long_tail_keywords:
        normalized = tag.strip()
        if normalized and normalized.lower() not in seen:
            seen.add(normalized.lower())
            tags.append(normalized)
    return tags[:MAX_TAGS]


class ManifestBuilder:
    """Validates project contexts and persists the production manifest."""

    def __init__(
        self,
        store: ContextStore,
        discovery: ContentDiscovery | None = None,
        audio_tolerance: float = 2.0,
        export: ExportSettings | None = None,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
    ):
        self.store = store
        self.discovery = discovery or ContentDiscovery(store)
        self.audio_tolerance = audio_tolerance
        self.export = export or ExportSettings()
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay

    def build(
        self,
        project_id: str,
        min_visuals_per_scene: int = 3,
        allow_placeholders: bool = False,
    ) -> Manifest:
        """Validate contexts and persist the manifest.

        Raises:
            ValidationFailure: When contexts are missing or insufficient and
                placeholders are not allowed. Terminal for unchanged inputs.
        """
        if min_visuals_per_scene < 1:
            raise ValueError("min_visuals_per_scene must be at least 1")

        logger.info(
            f"Building manifest for {project_id} "
            f"(min visuals {min_visuals_per_scene}, placeholders {allow_placeholders})"
        )

        load = retry_api_call(self.max_retries, self.retry_base_delay)(self.store.get_contexts)
        contexts = load(project_id, CONTEXT_NAMES)
        missing = [name for name in CONTEXT_NAMES if contexts.get(name) is None]
        issues: list[str] = []
        warnings: list[str] = []

        if missing and not allow_placeholders:
            issues = [f"Missing context: {name}-context.json" for name in missing]
            self._fail(
                project_id,
                f"Missing context documents: {', '.join(missing)}",
                issues, warnings, ManifestKPIs(min_visuals_required=min_visuals_per_scene),
                missing_contexts=missing,
            )

        if contexts.get("scene") is None:
            # Nothing to build from, even with placeholders
            self._fail(
                project_id,
                "Scene context is required",
                ["Missing context: scene-context.json"], warnings,
                ManifestKPIs(min_visuals_required=min_visuals_per_scene),
                missing_contexts=missing,
            )

        if missing:
            contexts = self._supplement(project_id, contexts, missing, warnings)

        topic = TopicContext.from_dict(contexts.get("topic") or {})
        scene_ctx = SceneContext.from_dict(contexts["scene"])
        media_ctx = MediaContext.from_dict(contexts.get("media") or {})
        audio_ctx = AudioContext.from_dict(contexts.get("audio") or {})

        if not scene_ctx.scenes:
            self._fail(
                project_id, "Scene context has no scenes", ["Scene context has no scenes"], warnings,
                ManifestKPIs(min_visuals_required=min_visuals_per_scene),
            )

        scene_issues = scene_list_issues(scene_ctx.scenes)
        target = topic.target_duration
        if target and abs(scene_ctx.total_duration - target) > self.audio_tolerance:
            scene_issues.append(
                f"Scene durations total {scene_ctx.total_duration:.2f}s but target duration is {target:.2f}s"
            )
        issues.extend(scene_issues)

        # Visuals per scene
        scene_numbers = [s.scene_number for s in scene_ctx.scenes]
        ready_by_scene: dict[int, list[MediaAsset]] = {}
        insufficient: list[int] = []
        for scene in scene_ctx.scenes:
            n = scene.scene_number
            assets = media_ctx.assets_for(n)
            self._check_asset_scenes(n, assets, warnings)
            ready = [a for a in assets if a.is_ready]
            ready_by_scene[n] = ready
            if len(ready) < min_visuals_per_scene:
                insufficient.append(n)
                issues.append(
                    f"Scene {n}: only {len(ready)} visuals found (<{min_visuals_per_scene})"
                )

        media_scenes = sorted(n for n, assets in media_ctx.assets_by_scene.items() if assets)
        if len(media_scenes) != len(scene_numbers):
            warnings.append(
                f"Media scenes detected ({len(media_scenes)}) != scenes in context ({len(scene_numbers)})"
            )
        orphans = sorted(set(media_scenes) - set(scene_numbers))
        if orphans:
            warnings.append(f"Media context references unknown scenes: {orphans}")

        # Narration
        script_total = round(sum(scene_duration(s) for s in scene_ctx.scenes), 3)
        ready_segments = {n: seg for n, seg in audio_ctx.segments.items() if seg.state == AssetState.READY.value}
        master = audio_ctx.master
        has_narration = master is not None and master.state == AssetState.READY.value and bool(master.key)
        audio_in_tolerance = False

        if not has_narration:
            issues.append("Missing master narration")
        elif master.duration <= 0:
            issues.append("Master narration has no measured duration")
        elif abs(master.duration - script_total) > self.audio_tolerance:
            issues.append(
                f"Master narration duration {master.duration:.2f}s differs from script total "
                f"{script_total:.2f}s by more than {self.audio_tolerance:.1f}s"
            )
        else:
            audio_in_tolerance = True

        if len(ready_segments) != len(scene_numbers):
            issues.append(
                f"Audio segments count ({len(ready_segments)}) != scenes in context ({len(scene_numbers)})"
            )

        segment_total = sum(seg.duration for seg in ready_segments.values())
        if has_narration and master.duration > 0 and segment_total > 0:
            if abs(segment_total - master.duration) > self.audio_tolerance:
                warnings.append(
                    f"Audio segments total {segment_total:.2f}s != master narration {master.duration:.2f}s"
                )

        kpis = ManifestKPIs(
            scenes_detected=len(scene_numbers),
            images_total=sum(len(v) for v in ready_by_scene.values()),
            audio_segments=len(ready_segments),
            quality_score=quality_score(
                [len(ready_by_scene[n]) for n in scene_numbers],
                [[a.relevance_score for a in ready_by_scene[n]] for n in scene_numbers],
                min_visuals_per_scene,
            ),
            has_narration=has_narration,
            min_visuals_required=min_visuals_per_scene,
            scenes_passing_visual_min=len(scene_numbers) - len(insufficient),
        )

        if issues and not allow_placeholders:
            self._fail(
                project_id,
                f"Manifest validation failed with {len(issues)} issue(s)",
                issues, warnings, kpis,
                insufficient_scenes=insufficient,
            )

        ready_for_rendering = not insufficient and audio_in_tolerance and not scene_issues
        manifest = self._assemble_manifest(
            project_id, topic, scene_ctx, media_ctx, audio_ctx, ready_by_scene,
            kpis, ready_for_rendering, issues + warnings, script_total,
        )
        self._persist(project_id, manifest, issues, warnings)

        logger.info(
            f"Manifest for {project_id}: {kpis.scenes_detected} scenes, {kpis.images_total} visuals, "
            f"quality {kpis.quality_score}, ready={ready_for_rendering}"
        )
        return manifest

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _supplement(self, project_id: str, contexts: dict, missing: list[str], warnings: list[str]) -> dict:
        """Fill missing media/audio contexts from what is actually stored."""
        contexts = dict(contexts)
        needs_discovery = [name for name in missing if name in ("media", "audio")]
        if needs_discovery:
            found = self.discovery.discover(project_id)
            warnings.extend(found.warnings)
            if "media" in needs_discovery:
                contexts["media"] = found.to_media_context()
            if "audio" in needs_discovery:
                contexts["audio"] = found.to_audio_context()
        for name in missing:
            warnings.append(f"Missing context {name}-context.json, using placeholders")
        return contexts

    def _check_asset_scenes(self, scene_number: int, assets: list[MediaAsset], warnings: list[str]) -> None:
        for asset in assets:
            if asset.scene_number != scene_number:
                warnings.append(
                    f"{asset.key or 'asset'} is listed under scene {scene_number} "
                    f"but declares scene {asset.scene_number}"
                )
            key_scene = scene_from_key(asset.key) if asset.key else None
            if key_scene is not None and key_scene != asset.scene_number:
                warnings.append(
                    f"{asset.key}: key says scene {key_scene} but asset declares scene {asset.scene_number}"
                )

    def _assemble_manifest(
        self,
        project_id: str,
        topic: TopicContext,
        scene_ctx: SceneContext,
        media_ctx: MediaContext,
        audio_ctx: AudioContext,
        ready_by_scene: dict[int, list[MediaAsset]],
        kpis: ManifestKPIs,
        ready_for_rendering: bool,
        warnings: list[str],
        script_total: float,
    ) -> Manifest:
        scenes: list[ManifestScene] = []
        clock = 0.0
        timed = all(scene_duration(s) > 0 for s in scene_ctx.scenes)
        for scene in scene_ctx.scenes:
            n = scene.scene_number
            duration = scene_duration(scene)
            start = scene.start_time if scene.start_time is not None else (clock if timed else None)
            end = scene.end_time if scene.end_time is not None else (start + duration if timed else None)
            clock += duration

            media = list(ready_by_scene[n])
            if not media:
                media.append(MediaAsset.placeholder(n))
            audio = audio_ctx.segments.get(n) or AudioSegment(
                scene_number=n,
                key=self.store.key(project_id, AUDIO_FOLDER, "audio-segments", f"scene-{n}.mp3"),
                state=AssetState.PENDING.value,
            )
            scenes.append(ManifestScene(
                scene_number=n,
                title=scene.title,
                purpose=scene.purpose,
                start_time=start,
                end_time=end,
                duration=duration,
                script=scene.script,
                keywords=list(scene.visual_requirements.keywords),
                media=media,
                audio=audio,
            ))

        title = topic.title or topic.topic or f"Video {project_id}"
        chapters = [
            Chapter(start=s.start_time or 0.0, label=s.title or f"Scene {s.scene_number}")
            for s in scenes
        ]
        publishing = PublishingMetadata(
            title=title,
            description=build_description(title, topic.description, chapters),
            tags=collect_tags(topic),
            chapters=chapters,
        )

        return Manifest(
            project_id=project_id,
            scenes=scenes,
            kpis=kpis,
            ready_for_rendering=ready_for_rendering,
            publishing=publishing,
            export=self.export,
            master_audio=audio_ctx.master,
            final_video_key=self.store.final_video_key(project_id),
            total_duration=script_total,
            warnings=warnings,
            generated_at=datetime.now(timezone.utc).isoformat(),
        )

    def _persist(self, project_id: str, manifest: Manifest, issues: list[str], warnings: list[str]) -> None:
        store = self.store
        store.put_manifest(project_id, manifest.to_dict())
        store.put_json(store.metadata_key(project_id, "project-summary.json"), {
            "project": project_id,
            "timestamp": manifest.generated_at,
            "kpis": manifest.kpis.to_dict(),
            "issues": list(issues),
            "warnings": list(warnings),
            "validationPassed": not issues,
            "readyForRendering": manifest.ready_for_rendering,
            "manifestGenerated": True,
        })
        publishing = manifest.publishing
        store.put_json(store.metadata_key(project_id, "youtube-metadata.json"), {
            "title": publishing.title,
            "description": publishing.description,
            "tags": list(publishing.tags),
            "categoryId": publishing.category_id,
            "privacyStatus": "public" if publishing.visibility == "public" else "unlisted",
            "defaultLanguage": "en",
            "madeForKids": False,
            "chapters": [c.to_dict() for c in publishing.chapters],
        })
        store.put_text(
            store.processing_log_key(project_id, "validation.log"),
            format_validation_log(issues, warnings, manifest.kpis),
        )

    def _fail(
        self,
        project_id: str,
        message: str,
        issues: list[str],
        warnings: list[str],
        kpis: ManifestKPIs,
        insufficient_scenes: list[int] | None = None,
        missing_contexts: list[str] | None = None,
    ) -> None:
        """Write the validation log and raise."""
        logger.warning(f"Manifest validation failed for {project_id}: {'; '.join(issues)}")
        self.store.put_text(
            self.store.processing_log_key(project_id, "validation.log"),
            format_validation_log(issues, warnings, kpis),
        )
        raise ValidationFailure(
            message,
            issues=issues,
            insufficient_scenes=insufficient_scenes,
            missing_contexts=missing_contexts,
            kpis=kpis.to_dict(),
            warnings=warnings,
        )
