"""Scene-level caption cues and SRT output.

One cue per scene, spanning the scene's full range on the timeline. Cue
bounds come straight from the timeline's scene ranges, which are contiguous
and ordered, so cues are sorted and never overlap.
"""

import logging
import textwrap
from pathlib import Path

import pysubs2

from assembly.models import SubtitleCue, Timeline

logger = logging.getLogger(__name__)

MAX_LINE_CHARS = 42


class SubtitleGenerator:
    """Builds caption cues from a timeline and writes them with pysubs2."""

    def __init__(self, max_line_chars: int = MAX_LINE_CHARS):
        self.max_line_chars = max_line_chars

    def generate(self, timeline: Timeline, scene_scripts: dict[int, str]) -> list[SubtitleCue]:
        """One cue per scene with narration text.

        Scenes without script text produce no cue; indices stay 1-based and
        sequential over the cues that are emitted.
        """
        cues: list[SubtitleCue] = []
        for scene_number, start, end in timeline.scene_ranges():
            text = " ".join((scene_scripts.get(scene_number) or "").split())
            if not text or end <= start:
                continue
            cues.append(SubtitleCue(index=len(cues) + 1, start=start, end=end, text=text))

        logger.info(f"Generated {len(cues)} subtitle cues")
        return cues

    def to_ssa_file(self, cues: list[SubtitleCue]) -> pysubs2.SSAFile:
        subs = pysubs2.SSAFile()
        for cue in cues:
            wrapped = textwrap.wrap(cue.text, width=self.max_line_chars) or [cue.text]
            subs.events.append(pysubs2.SSAEvent(
                start=int(round(cue.start * 1000)),
                end=int(round(cue.end * 1000)),
                text=r"\N".join(wrapped),
            ))
        return subs

    def to_srt(self, cues: list[SubtitleCue]) -> str:
        return self.to_ssa_file(cues).to_string("srt")

    def write_srt(self, cues: list[SubtitleCue], path: Path) -> Path:
        """Write cues as an SRT file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.to_ssa_file(cues).save(str(path), format_="srt")
        logger.debug(f"Wrote {len(cues)} cues to {path}")
        return path
