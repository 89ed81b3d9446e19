"""Assembly run orchestration: manifest in, rendered video (or fallback bundle) out.

One call to ``AssemblyEngine.assemble`` processes one project:

1. Load the manifest (must be ready for rendering)
2. Download visuals and narration into an exclusive working directory
3. Measure or build the master narration
4. Rank each scene's visuals, build the timeline and subtitle cues
5. Compose with ffmpeg and upload the video plus its metadata

When ffmpeg is missing or a composition step fails, a render-instructions
bundle is uploaded instead of a video. The working directory is removed on
every exit path and the manifest is never modified.
"""

import asyncio
import json
import logging
import re
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

from assembly.audio_probe import AudioProber
from assembly.compositor import VideoCompositor, partial_plan, render_instructions
from assembly.errors import (
    AssemblyError,
    CleanupError,
    CompositionError,
    DownloadError,
    ValidationFailure,
)
from assembly.media_matcher import rank
from assembly.models import AssemblyResult, OutputSpec, RenderPlan, RenderStep, Timeline
from assembly.narration import NarrationAssembler, concat_list
from assembly.subtitles import SubtitleGenerator
from assembly.timeline import TimelineGenerator
from models.manifest import Manifest
from models.project import AssetState
from services.context_store import ContextStore
from services.media_tools import ProcessRunner
from services.object_storage import StorageError
from services.status_store import ProjectStatus, ProjectStatusStore
from utils.config import load_config
from utils.logging import project_context
from utils.retry import retry_api_call

logger = logging.getLogger(__name__)

INPUT_DIR = Path("input")
OUTPUT_DIR = Path("output")
TEMP_DIR = Path("temp")
NARRATION_PATH = TEMP_DIR / "narration.mp3"
SUBTITLE_PATH = TEMP_DIR / "subtitles.srt"


def _safe_name(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]+", "_", value)[:60]


class AssemblyEngine:
    """Renders a project from its manifest.

    All collaborators are passed in; nothing is shared between runs except
    what the caller chooses to share.
    """

    def __init__(
        self,
        store: ContextStore,
        status_store: ProjectStatusStore,
        runner: ProcessRunner | None = None,
        config: dict | None = None,
    ):
        self.store = store
        self.status_store = status_store
        self.runner = runner or ProcessRunner()
        self.config = config or load_config()

        self.prober = AudioProber(
            self.runner,
            ffprobe_path=self.config["ffprobe_path"],
            timeout=self.config["probe_timeout"],
            max_retries=self.config["max_retries"],
        )
        self.narration = NarrationAssembler(
            self.runner,
            self.prober,
            ffmpeg_path=self.config["ffmpeg_path"],
            timeout=self.config["composition_timeout"],
            audio_bitrate=self.config["audio_bitrate"],
        )
        self.compositor = VideoCompositor(
            self.runner,
            ffmpeg_path=self.config["ffmpeg_path"],
            timeout=self.config["composition_timeout"],
            parallel_segments=self.config["parallel_segments"],
        )
        self.timeline_generator = TimelineGenerator()
        self.subtitle_generator = SubtitleGenerator()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def assemble(self, project_id: str) -> AssemblyResult:
        """Render a project's video from its manifest.

        Raises:
            ValidationFailure: No manifest, or manifest not ready for rendering
            DownloadError: Inputs could not be fetched after retries
            ProbeError: Narration could not be measured after retries
        """
        with project_context(project_id):
            return await self._assemble(project_id)

    async def _assemble(self, project_id: str) -> AssemblyResult:
        try:
            manifest = await self._load_manifest(project_id)
        except AssemblyError as e:
            await self.status_store.set_status(project_id, ProjectStatus.FAILED, str(e))
            raise

        await self.status_store.set_status(project_id, ProjectStatus.PROCESSING, "Assembling video")
        work_dir = Path(tempfile.mkdtemp(
            prefix=f"reelforge_{_safe_name(project_id)}_",
            dir=self.config.get("work_dir") or None,
        ))
        for sub in (INPUT_DIR, OUTPUT_DIR, TEMP_DIR):
            (work_dir / sub).mkdir(parents=True, exist_ok=True)

        try:
            result = await self._run(project_id, manifest, work_dir)
        except Exception as e:
            logger.error(f"Assembly failed for {project_id}: {e}")
            await self.status_store.set_status(
                project_id, ProjectStatus.FAILED, str(e),
                details=e.to_dict() if isinstance(e, AssemblyError) else {"errorType": type(e).__name__},
            )
            raise
        finally:
            self._cleanup(work_dir)

        message = "Fallback render instructions written" if result.fallback else "Video assembled"
        await self.status_store.set_status(project_id, ProjectStatus.COMPLETED, message, details=result.to_dict())
        return result

    async def _load_manifest(self, project_id: str) -> Manifest:
        load = retry_api_call(self.config["max_retries"], self.config["retry_base_delay"])(self.store.get_manifest)
        try:
            data = await asyncio.to_thread(load, project_id)
        except StorageError as e:
            raise DownloadError(f"Could not load manifest for {project_id}: {e}") from e
        if data is None:
            raise ValidationFailure(
                f"No manifest for project {project_id}",
                issues=["Manifest not found; build it before assembling"],
            )
        manifest = Manifest.from_dict(data)
        if not manifest.ready_for_rendering:
            raise ValidationFailure(
                "Manifest is not ready for rendering",
                issues=list(manifest.warnings),
                kpis=manifest.kpis.to_dict(),
            )
        return manifest

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def _run(self, project_id: str, manifest: Manifest, work_dir: Path) -> AssemblyResult:
        warnings: list[str] = []
        ffmpeg_available = self.compositor.is_available()
        if not ffmpeg_available:
            logger.warning(f"{self.config['ffmpeg_path']} not available, producing render instructions")

        media_by_scene = {
            scene.scene_number: rank(scene, scene.ready_media) for scene in manifest.scenes
        }
        media_paths = self._media_paths(media_by_scene)
        master_key, master_path, segment_inputs = self._audio_paths(manifest)
        inputs = {**media_paths, **segment_inputs}
        if master_key:
            inputs[master_key] = master_path

        narration_steps: list[RenderStep] = []
        narration_files: dict[str, str] = {}
        narration_error: CompositionError | None = None
        if ffmpeg_available:
            await self._download_all(inputs, work_dir)
            try:
                narration = await self.narration.assemble(
                    master_path if master_key else None,
                    list(segment_inputs.values()),
                    NARRATION_PATH,
                    work_dir,
                )
            except CompositionError as e:
                logger.error(f"Narration failed (exit code {e.exit_code}): {' '.join(e.command)}")
                warnings.append(str(e))
                narration_error = e
                duration = manifest.total_duration
                narration_path = NARRATION_PATH
                narration_steps, narration_files = self._narration_step(segment_inputs)
            else:
                narration_path, duration = narration.path, narration.duration
                if abs(duration - manifest.total_duration) > self.config["audio_tolerance_seconds"]:
                    warnings.append(
                        f"Measured narration {duration:.2f}s differs from manifest {manifest.total_duration:.2f}s"
                    )
        else:
            duration = (manifest.master_audio.duration if manifest.master_audio else 0.0) or manifest.total_duration
            if master_key:
                narration_path = master_path
            else:
                narration_path = NARRATION_PATH
                narration_steps, narration_files = self._narration_step(segment_inputs)

        timeline = self.timeline_generator.generate(
            manifest.scenes, media_by_scene, duration, local_paths=media_paths,
        )
        cues = self.subtitle_generator.generate(
            timeline, {s.scene_number: s.script for s in manifest.scenes},
        )
        subtitle_path = None
        if cues:
            self.subtitle_generator.write_srt(cues, work_dir / SUBTITLE_PATH)
            subtitle_path = SUBTITLE_PATH

        spec = OutputSpec.from_settings(manifest.export, self.config)
        plan = self.compositor.build_plan(timeline, narration_path, spec, subtitle_path)
        plan.steps[:0] = narration_steps
        plan.files.update(narration_files)
        if subtitle_path:
            plan.files[str(subtitle_path)] = self.subtitle_generator.to_srt(cues)

        assets = {str(path): key for key, path in inputs.items()}

        if not ffmpeg_available:
            return await self._write_fallback(
                project_id, manifest, plan, timeline, spec, assets, duration,
                reason=f"{self.config['ffmpeg_path']} not available",
                warnings=warnings,
            )
        if narration_error is not None:
            return await self._write_fallback(
                project_id, manifest, plan, timeline, spec, assets, duration,
                reason=f"Narration concatenation failed: {narration_error}",
                warnings=warnings,
                error=narration_error,
            )

        try:
            await self.compositor.execute(plan, work_dir)
        except CompositionError as e:
            logger.error(
                f"Composition failed at stage {e.stage} (exit code {e.exit_code}): {' '.join(e.command)}"
            )
            warnings.append(str(e))
            if e.intermediate_path is not None:
                intermediate_key = self.store.intermediate_video_key(project_id)
                await self._upload(intermediate_key, e.intermediate_path)
                muxed_rel = e.intermediate_path.relative_to(work_dir)
                plan = partial_plan(plan, ("subtitles",))
                assets = {str(muxed_rel): intermediate_key}
            return await self._write_fallback(
                project_id, manifest, plan, timeline, spec, assets, duration,
                reason=f"Composition failed at stage {e.stage}: {e}",
                warnings=warnings,
                error=e,
            )

        video_path = work_dir / plan.output_path
        video_key = manifest.final_video_key or self.store.final_video_key(project_id)
        await self._upload(video_key, video_path)
        file_size = video_path.stat().st_size

        result = AssemblyResult(
            project_id=project_id,
            video_path=video_key,
            duration=round(timeline.total_duration, 3),
            resolution=spec.resolution,
            file_size=file_size,
            codec=manifest.export.codec,
            warnings=warnings,
        )
        await self._write_metadata(project_id, manifest, result, timeline)
        logger.info(f"Video assembled for {project_id}: {video_key} ({file_size} bytes)")
        return result

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def _media_paths(self, media_by_scene: dict) -> dict[str, Path]:
        paths: dict[str, Path] = {}
        for scene_number, assets in media_by_scene.items():
            for i, asset in enumerate(assets):
                if asset.key and asset.key not in paths:
                    name = f"{i:02d}_{PurePosixPath(asset.key).name}"
                    paths[asset.key] = INPUT_DIR / "media" / f"scene-{scene_number}" / name
        return paths

    def _audio_paths(self, manifest: Manifest) -> tuple[str | None, Path, dict[str, Path]]:
        master = manifest.master_audio
        master_key = master.key if master and master.key and master.state == AssetState.READY.value else None
        master_path = INPUT_DIR / "audio" / f"narration{PurePosixPath(master_key).suffix if master_key else '.mp3'}"

        segments: dict[str, Path] = {}
        if master_key is None:
            for scene in manifest.scenes:
                seg = scene.audio
                if seg and seg.key and seg.state == AssetState.READY.value:
                    suffix = PurePosixPath(seg.key).suffix or ".mp3"
                    segments[seg.key] = INPUT_DIR / "audio" / f"scene-{scene.scene_number}{suffix}"
        return master_key, master_path, segments

    def _narration_step(self, segment_inputs: dict[str, Path]) -> tuple[list[RenderStep], dict[str, str]]:
        """Concat step and list file that rebuild the narration from scene segments."""
        list_path = NARRATION_PATH.with_suffix(".txt")
        step = RenderStep(
            stage="narration",
            description=f"concatenate {len(segment_inputs)} narration segments",
            args=self.narration.command(list_path, NARRATION_PATH),
            output=NARRATION_PATH,
        )
        return [step], {str(list_path): concat_list(list(segment_inputs.values()), list_path)}

    async def _download_all(self, items: dict[str, Path], work_dir: Path) -> None:
        semaphore = asyncio.Semaphore(max(1, self.config["parallel_downloads"]))
        download = retry_api_call(self.config["max_retries"], self.config["retry_base_delay"])(self._download_one)

        async def fetch(key: str, rel_path: Path) -> None:
            async with semaphore:
                await download(key, work_dir / rel_path)

        logger.info(f"Downloading {len(items)} inputs")
        await asyncio.gather(*(fetch(key, path) for key, path in items.items()))

    async def _download_one(self, key: str, path: Path) -> None:
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self.store.download, key, path),
                timeout=self.config["download_timeout"],
            )
        except asyncio.TimeoutError as e:
            raise DownloadError(f"Download timed out: {key}", key=key) from e
        except FileNotFoundError as e:
            raise DownloadError(f"Object not found: {key}", key=key, retryable=False) from e
        except StorageError as e:
            raise DownloadError(f"Download failed for {key}: {e}", key=key) from e

    # ------------------------------------------------------------------
    # Outputs
    # ------------------------------------------------------------------

    async def _upload(self, key: str, path: Path) -> None:
        upload = retry_api_call(self.config["max_retries"], self.config["retry_base_delay"])(self.store.upload)
        await asyncio.to_thread(upload, key, path)

    async def _put_json(self, key: str, data: dict) -> None:
        put = retry_api_call(self.config["max_retries"], self.config["retry_base_delay"])(self.store.put_json)
        await asyncio.to_thread(put, key, data)

    async def _write_fallback(
        self,
        project_id: str,
        manifest: Manifest,
        plan: RenderPlan,
        timeline: Timeline,
        spec: OutputSpec,
        assets: dict[str, str],
        duration: float,
        reason: str,
        warnings: list[str],
        error: CompositionError | None = None,
    ) -> AssemblyResult:
        video_key = manifest.final_video_key or self.store.final_video_key(project_id)
        bundle = render_instructions(project_id, plan, timeline, spec, assets, reason, output_key=video_key)
        if error is not None:
            bundle["error"] = error.to_dict()
            bundle["failedCommand"] = list(error.command)
        key = self.store.render_instructions_key(project_id)
        await self._put_json(key, bundle)

        result = AssemblyResult(
            project_id=project_id,
            video_path=key,
            duration=round(duration, 3),
            resolution=spec.resolution,
            file_size=len(json.dumps(bundle, indent=2, default=str).encode("utf-8")),
            fallback=True,
            codec=manifest.export.codec,
            warnings=warnings,
        )
        await self._write_metadata(project_id, manifest, result, timeline)
        logger.warning(f"Render instructions written for {project_id}: {key} ({reason})")
        return result

    async def _write_metadata(
        self,
        project_id: str,
        manifest: Manifest,
        result: AssemblyResult,
        timeline: Timeline,
    ) -> None:
        await self._put_json(self.store.video_metadata_key(project_id), {
            "projectId": project_id,
            "videoPath": result.video_path,
            "outputKey": manifest.final_video_key or self.store.final_video_key(project_id),
            "fallback": result.fallback,
            "resolution": result.resolution,
            "codec": result.codec,
            "fps": manifest.export.fps,
            "duration": result.duration,
            "fileSize": result.file_size,
            "segments": len(timeline.segments),
            "timelineMode": timeline.mode,
            "kpis": manifest.kpis.to_dict(),
            "warnings": list(result.warnings),
            "createdAt": datetime.now(timezone.utc).isoformat(),
        })

    def _cleanup(self, work_dir: Path) -> None:
        """Remove the working directory. Failures are logged, never raised."""
        try:
            shutil.rmtree(work_dir)
        except OSError as e:
            error = CleanupError(f"Could not remove working directory {work_dir}: {e}")
            logger.warning(str(error))
            return
        logger.debug(f"Cleaned up working directory: {work_dir}")
