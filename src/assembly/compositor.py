"""FFmpeg-based video composition.

Takes a Timeline (segments with visuals), the master narration and a
subtitle file, and renders the final video in two passes:

1. Normalize every segment (scale + pad to the output size, images looped,
   clips trimmed), join them in timeline order and mux the narration.
2. Burn in subtitles.

The full list of ffmpeg invocations is built up front as a RenderPlan. All
paths in the plan are relative to the run's working directory, so the same
plan is what gets written out as a render-instructions bundle when ffmpeg is
not available.
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path

from assembly.errors import CompositionError
from assembly.models import OutputSpec, RenderPlan, RenderStep, Segment, Timeline
from assembly.narration import concat_list
from services.media_tools import ProcessRunner, ProcessTimeout

logger = logging.getLogger(__name__)

FADE_IN_SECONDS = 0.5
CROSSFADE_SECONDS = 0.5
# Below one frame at 25fps a crossfade is invisible; fall back to a plain cut
MIN_CROSSFADE_SECONDS = 0.04

DEFAULT_OUTPUT_PATH = Path("output/final-video.mp4")
DEFAULT_TEMP_DIR = Path("temp")

INSTRUCTIONS_VERSION = "1.0"


def _fmt(seconds: float) -> str:
    return f"{seconds:.3f}"


def escape_filter_path(path: Path) -> str:
    """Escape a path for use inside an ffmpeg filter argument."""
    return str(path).replace("\\", "/").replace(":", "\\:").replace("'", "\\'")


class VideoCompositor:
    """Assembles the final video from a Timeline using FFmpeg."""

    def __init__(
        self,
        runner: ProcessRunner,
        ffmpeg_path: str = "ffmpeg",
        timeout: float = 1800.0,
        parallel_segments: int = 2,
    ):
        self.runner = runner
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout
        self.parallel_segments = max(1, parallel_segments)

    def is_available(self) -> bool:
        return self.runner.is_available(self.ffmpeg_path)

    # ------------------------------------------------------------------
    # Plan construction
    # ------------------------------------------------------------------

    @staticmethod
    def crossfade_duration(timeline: Timeline) -> float:
        """Crossfade length, capped at half the shortest segment."""
        if len(timeline.segments) < 2:
            return 0.0
        shortest = min(seg.duration for seg in timeline.segments)
        duration = min(CROSSFADE_SECONDS, shortest / 2)
        return duration if duration >= MIN_CROSSFADE_SECONDS else 0.0

    def build_plan(
        self,
        timeline: Timeline,
        master_audio_path: Path,
        output_spec: OutputSpec,
        subtitle_path: Path | None = None,
        output_path: Path = DEFAULT_OUTPUT_PATH,
        temp_dir: Path = DEFAULT_TEMP_DIR,
    ) -> RenderPlan:
        """Every ffmpeg invocation needed to render ``timeline``, in order."""
        if not timeline.segments:
            raise CompositionError("Timeline has no segments to compose", stage="plan")

        steps: list[RenderStep] = []
        files: dict[str, str] = {}
        crossfade = self.crossfade_duration(timeline)
        last = len(timeline.segments) - 1

        segment_files: list[Path] = []
        for i, seg in enumerate(timeline.segments):
            out = temp_dir / f"segment_{i:03d}.mp4"
            render_length = seg.duration + (crossfade if i < last else 0.0)
            steps.append(RenderStep(
                stage="segment",
                description=f"segment {i + 1}/{len(timeline.segments)} (scene {seg.scene_number})",
                args=self._segment_args(seg, out, render_length, output_spec, fade_in=(i == 0)),
                output=out,
            ))
            segment_files.append(out)

        if len(segment_files) == 1:
            silent_video = segment_files[0]
        elif crossfade > 0:
            silent_video = temp_dir / "joined.mp4"
            steps.append(RenderStep(
                stage="concatenate",
                description=f"crossfade {len(segment_files)} segments ({crossfade:.2f}s)",
                args=self._xfade_args(timeline, segment_files, crossfade, silent_video, output_spec),
                output=silent_video,
            ))
        else:
            silent_video = temp_dir / "joined.mp4"
            list_path = temp_dir / "concat.txt"
            files[str(list_path)] = concat_list(segment_files, list_path)
            steps.append(RenderStep(
                stage="concatenate",
                description=f"concatenate {len(segment_files)} segments (cut)",
                args=[
                    self.ffmpeg_path, "-y",
                    "-f", "concat",
                    "-safe", "0",
                    "-i", str(list_path),
                    "-c", "copy",
                    str(silent_video),
                ],
                output=silent_video,
            ))

        muxed = temp_dir / "muxed.mp4" if subtitle_path else output_path
        steps.append(RenderStep(
            stage="mux",
            description="add narration track",
            args=[
                self.ffmpeg_path, "-y",
                "-i", str(silent_video),
                "-i", str(master_audio_path),
                "-map", "0:v:0",
                "-map", "1:a:0",
                "-c:v", "copy",
                "-c:a", "aac",
                "-b:a", output_spec.audio_bitrate,
                "-shortest",
                "-movflags", "+faststart",
                str(muxed),
            ],
            output=muxed,
        ))

        if subtitle_path:
            steps.append(RenderStep(
                stage="subtitles",
                description="burn subtitles",
                args=[
                    self.ffmpeg_path, "-y",
                    "-i", str(muxed),
                    "-vf", f"subtitles='{escape_filter_path(subtitle_path)}'",
                    "-c:v", output_spec.video_codec,
                    "-preset", output_spec.preset,
                    "-crf", str(output_spec.crf),
                    "-pix_fmt", "yuv420p",
                    "-c:a", "copy",
                    "-movflags", "+faststart",
                    str(output_path),
                ],
                output=output_path,
            ))

        return RenderPlan(steps=steps, output_path=output_path, files=files)

    def _normalize_filter(self, spec: OutputSpec) -> str:
        w, h = spec.width, spec.height
        return (
            f"scale={w}:{h}:force_original_aspect_ratio=decrease,"
            f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2:black,"
            f"setsar=1,fps={spec.fps},format=yuv420p"
        )

    def _segment_args(
        self,
        seg: Segment,
        out: Path,
        length: float,
        spec: OutputSpec,
        fade_in: bool,
    ) -> list[str]:
        vf = self._normalize_filter(spec)
        if fade_in:
            vf += f",fade=t=in:st=0:d={_fmt(min(FADE_IN_SECONDS, seg.duration / 2))}"

        cmd = [self.ffmpeg_path, "-y"]
        if seg.is_placeholder or seg.local_path is None:
            cmd.extend(["-f", "lavfi", "-i", f"color=c=black:s={spec.resolution}:r={spec.fps}"])
        elif seg.is_clip:
            # Loop short clips so they always fill the segment
            cmd.extend(["-stream_loop", "-1", "-i", str(seg.local_path)])
        else:
            cmd.extend(["-loop", "1", "-framerate", str(spec.fps), "-i", str(seg.local_path)])

        cmd.extend([
            "-t", _fmt(length),
            "-vf", vf,
            "-c:v", spec.video_codec,
            "-preset", spec.preset,
            "-crf", str(spec.crf),
            "-an",
            str(out),
        ])
        return cmd

    def _xfade_args(
        self,
        timeline: Timeline,
        clips: list[Path],
        crossfade: float,
        output: Path,
        spec: OutputSpec,
    ) -> list[str]:
        """Chain N-1 xfade filters.

        Every segment except the last is rendered ``crossfade`` seconds longer
        than its slot, so transition ``i`` starts exactly at the end time of
        segment ``i`` and the joined stream keeps the timeline's total length.
        """
        filter_parts: list[str] = []
        for i in range(len(clips) - 1):
            src = "[0][1]" if i == 0 else f"[v{i - 1}][{i + 1}]"
            out_label = "[vout]" if i == len(clips) - 2 else f"[v{i}]"
            offset = timeline.segments[i].end_time
            filter_parts.append(
                f"{src}xfade=transition=fade:duration={_fmt(crossfade)}:offset={_fmt(offset)}{out_label}"
            )

        cmd = [self.ffmpeg_path, "-y"]
        for clip in clips:
            cmd.extend(["-i", str(clip)])
        cmd.extend([
            "-filter_complex", ";".join(filter_parts),
            "-map", "[vout]",
            "-c:v", spec.video_codec,
            "-preset", spec.preset,
            "-crf", str(spec.crf),
            "-pix_fmt", "yuv420p",
            str(output),
        ])
        return cmd

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def assemble(
        self,
        timeline: Timeline,
        master_audio_path: Path,
        output_spec: OutputSpec,
        subtitle_path: Path | None = None,
        *,
        work_dir: Path,
        output_path: Path = DEFAULT_OUTPUT_PATH,
    ) -> Path:
        """Render the video and return its absolute path.

        Segment preparation runs concurrently; joining, muxing and subtitle
        burning run in order.

        Raises:
            CompositionError: On the first failing ffmpeg invocation. When the
                subtitle pass fails, ``intermediate_path`` points at the muxed
                video without subtitles.
        """
        plan = self.build_plan(timeline, master_audio_path, output_spec, subtitle_path, output_path)
        await self.execute(plan, work_dir)
        return work_dir / plan.output_path

    async def execute(self, plan: RenderPlan, work_dir: Path) -> None:
        for rel_path, content in plan.files.items():
            target = work_dir / rel_path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)
        for step in plan.steps:
            (work_dir / step.output).parent.mkdir(parents=True, exist_ok=True)

        logger.info(f"Composing video: {len(plan.stage('segment'))} segments, {len(plan.steps)} ffmpeg steps")

        await self._run_concurrently(plan.stage("segment"), work_dir)

        for step in plan.steps:
            if step.stage == "segment":
                continue
            try:
                await self._run_step(step, work_dir)
            except CompositionError as e:
                if step.stage == "subtitles":
                    muxed = work_dir / step.args[step.args.index("-i") + 1]
                    if muxed.exists():
                        e.intermediate_path = muxed
                raise

        logger.info(f"Composition complete: {plan.output_path}")

    async def _run_concurrently(self, steps: list[RenderStep], work_dir: Path) -> None:
        semaphore = asyncio.Semaphore(self.parallel_segments)

        async def run_one(step: RenderStep) -> None:
            async with semaphore:
                await self._run_step(step, work_dir)

        tasks = [asyncio.create_task(run_one(step)) for step in steps]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _run_step(self, step: RenderStep, work_dir: Path) -> None:
        logger.info(f"FFmpeg: {step.description}")
        try:
            result = await self.runner.run(step.args, timeout=self.timeout, cwd=work_dir)
        except ProcessTimeout as e:
            # Partial output of a timed-out encode is never reused
            (work_dir / step.output).unlink(missing_ok=True)
            logger.error(f"FFmpeg timed out ({step.description}): {' '.join(step.args)}")
            raise CompositionError(
                f"FFmpeg timed out after {e.timeout:.0f}s ({step.description})",
                command=step.args, stage=step.stage, timed_out=True,
            ) from e
        except FileNotFoundError as e:
            error = CompositionError(
                f"FFmpeg not available: {self.ffmpeg_path}",
                command=step.args, stage=step.stage,
            )
            error.retryable = False
            raise error from e

        if not result.ok:
            logger.error(
                f"FFmpeg failed ({step.description}) with exit code {result.returncode}: "
                f"{' '.join(step.args)}"
            )
            logger.error(f"FFmpeg stderr: {result.stderr[-1000:]}")
            raise CompositionError(
                f"FFmpeg failed ({step.description}) with exit code {result.returncode}",
                command=step.args,
                exit_code=result.returncode,
                stage=step.stage,
                stderr=result.stderr[-2000:],
            )


def render_instructions(
    project_id: str,
    plan: RenderPlan,
    timeline: Timeline,
    output_spec: OutputSpec,
    assets: dict[str, str],
    reason: str,
    output_key: str | None = None,
) -> dict:
    """Structured fallback bundle describing a render that did not happen.

    ``assets`` maps plan-relative input paths to storage keys; placing each
    object at its path and running ``steps`` in order from one directory
    reproduces the render. ``outputKey`` is where the finished video belongs;
    nothing has been written there.
    """
    return {
        "fallback": True,
        "type": "render-instructions",
        "version": INSTRUCTIONS_VERSION,
        "projectId": project_id,
        "reason": reason,
        "outputKey": output_key,
        "videoWritten": False,
        "createdAt": datetime.now(timezone.utc).isoformat(),
        "outputSpec": output_spec.to_dict(),
        "timeline": timeline.to_dict(),
        "assets": dict(sorted(assets.items())),
        **plan.to_dict(),
    }


def partial_plan(plan: RenderPlan, stages: tuple[str, ...]) -> RenderPlan:
    """Plan limited to the given stages (e.g. only subtitles after a mux succeeded)."""
    steps = [s for s in plan.steps if s.stage in stages]
    args = [arg for s in steps for arg in s.args]
    return RenderPlan(
        steps=steps,
        output_path=plan.output_path,
        files={k: v for k, v in plan.files.items() if any(k in arg for arg in args)},
    )
