"""Duration-driven timeline construction.

Segments are produced by walking a single running clock, so every segment
starts exactly where the previous one ended. The final boundary is pinned to
the narration duration.
"""

import logging
from pathlib import Path

from assembly.models import Segment, Timeline, TimelineMode, Transition
from models.project import MediaAsset

logger = logging.getLogger(__name__)

# Boundaries are rounded to microseconds to keep float noise out of ffmpeg args
PRECISION = 6


def scene_duration(scene) -> float:
    """Span of a scene from start/end when present, else its duration field."""
    if scene.start_time is not None and scene.end_time is not None and scene.end_time > scene.start_time:
        return scene.end_time - scene.start_time
    return scene.duration or 0.0


def has_scene_timing(scenes) -> bool:
    return bool(scenes) and all(scene_duration(s) > 0 for s in scenes)


def _split(start: float, end: float, parts: int) -> list[tuple[float, float]]:
    """Divide ``[start, end]`` into equal contiguous pieces, last one ending at ``end``."""
    step = (end - start) / parts
    bounds = []
    current = start
    for i in range(parts):
        nxt = end if i == parts - 1 else round(start + step * (i + 1), PRECISION)
        bounds.append((current, nxt))
        current = nxt
    return bounds


class TimelineGenerator:
    """Builds a Timeline from scenes, their matched media and the narration length."""

    def generate(
        self,
        scenes,
        matched_media_by_scene: dict[int, list[MediaAsset]],
        master_audio_duration: float,
        local_paths: dict[str, Path] | None = None,
    ) -> Timeline:
        """Create contiguous segments covering the whole narration.

        Args:
            scenes: Ordered scenes (anything with scene_number/start_time/end_time/duration)
            matched_media_by_scene: Scene number -> assets in display order
            master_audio_duration: Measured narration length in seconds (0 if unknown)
            local_paths: Storage key -> downloaded file path, attached to segments

        Raises:
            ValueError: If neither scene timing nor a narration duration is available
        """
        local_paths = local_paths or {}

        if has_scene_timing(scenes):
            segments, total = self._from_scene_timing(scenes, matched_media_by_scene, master_audio_duration)
            mode = TimelineMode.SCENE_TIMING.value
        else:
            if master_audio_duration <= 0:
                raise ValueError("Cannot build a timeline without scene timing or narration duration")
            segments, total = self._even_split(scenes, matched_media_by_scene, master_audio_duration)
            mode = TimelineMode.EVEN_SPLIT.value

        for i, seg in enumerate(segments):
            seg.transition = Transition.FADE_IN.value if i == 0 else Transition.CROSSFADE.value
            if seg.source_media is not None and seg.source_media.key in local_paths:
                seg.local_path = local_paths[seg.source_media.key]

        logger.info(f"Timeline: {len(segments)} segments, {total:.2f}s ({mode})")
        return Timeline(segments=segments, total_duration=total, mode=mode)

    def _from_scene_timing(self, scenes, media_by_scene, master_audio_duration):
        durations = [scene_duration(s) for s in scenes]
        script_total = sum(durations)
        total = master_audio_duration if master_audio_duration > 0 else script_total
        factor = total / script_total

        if abs(total - script_total) > 1e-6:
            logger.info(f"Scaling scene timing {script_total:.2f}s -> narration {total:.2f}s")

        segments: list[Segment] = []
        clock = 0.0
        elapsed = 0.0
        for index, (scene, duration) in enumerate(zip(scenes, durations)):
            elapsed += duration
            scene_end = total if index == len(scenes) - 1 else round(elapsed * factor, PRECISION)
            assets = media_by_scene.get(scene.scene_number) or [None]
            for asset, (start, end) in zip(assets, _split(clock, scene_end, len(assets))):
                segments.append(Segment(
                    source_media=asset,
                    start_time=start,
                    end_time=end,
                    scene_number=scene.scene_number,
                ))
            clock = scene_end

        return segments, total

    def _even_split(self, scenes, media_by_scene, master_audio_duration):
        order = [s.scene_number for s in scenes] or sorted(media_by_scene)
        items: list[tuple[int, MediaAsset | None]] = [
            (number, asset)
            for number in order
            for asset in media_by_scene.get(number) or []
        ]
        if not items:
            items = [(order[0] if order else 1, None)]

        bounds = _split(0.0, master_audio_duration, len(items))
        segments = [
            Segment(source_media=asset, start_time=start, end_time=end, scene_number=number)
            for (number, asset), (start, end) in zip(items, bounds)
        ]
        return segments, master_audio_duration
