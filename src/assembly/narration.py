"""Master narration: use the stored track, or concatenate per-scene segments."""

import logging
import os
from pathlib import Path

from assembly.audio_probe import AudioProber
from assembly.errors import CompositionError, ValidationFailure
from assembly.models import MasterNarration
from services.media_tools import ProcessRunner, ProcessTimeout

logger = logging.getLogger(__name__)


def concat_list(paths: list[Path], list_path: Path) -> str:
    """Concat-demuxer list with entries relative to the list file's folder."""
    lines = []
    for path in paths:
        entry = os.path.relpath(path, list_path.parent).replace("\\", "/")
        entry = entry.replace("'", "'\\''")
        lines.append(f"file '{entry}'")
    return "\n".join(lines) + "\n"


class NarrationAssembler:
    """Produces the single narration track a render is synchronized to."""

    def __init__(
        self,
        runner: ProcessRunner,
        prober: AudioProber,
        ffmpeg_path: str = "ffmpeg",
        timeout: float = 300.0,
        audio_bitrate: str = "192k",
    ):
        self.runner = runner
        self.prober = prober
        self.ffmpeg_path = ffmpeg_path
        self.timeout = timeout
        self.audio_bitrate = audio_bitrate

    def command(self, list_path: Path, output_path: Path) -> list[str]:
        return [
            self.ffmpeg_path, "-y",
            "-f", "concat",
            "-safe", "0",
            "-i", str(list_path),
            "-c:a", "libmp3lame",
            "-b:a", self.audio_bitrate,
            str(output_path),
        ]

    async def assemble(
        self,
        master_path: Path | None,
        segment_paths: list[Path],
        output_path: Path,
        work_dir: Path,
    ) -> MasterNarration:
        """Probe the stored master track, or build one from ordered segments.

        Paths are relative to ``work_dir``.

        Raises:
            ValidationFailure: If there is no narration audio at all
            CompositionError: If concatenation fails
            ProbeError: If the resulting track cannot be measured
        """
        if master_path is not None:
            probe = await self.prober.probe(work_dir / master_path)
            return MasterNarration(path=master_path, duration=probe.duration_seconds)

        if not segment_paths:
            raise ValidationFailure(
                "No narration audio available",
                issues=["Missing master narration and per-scene audio segments"],
            )

        list_path = output_path.with_suffix(".txt")
        (work_dir / list_path).parent.mkdir(parents=True, exist_ok=True)
        (work_dir / list_path).write_text(concat_list(segment_paths, list_path))

        args = self.command(list_path, output_path)
        logger.info(f"Concatenating {len(segment_paths)} narration segments")
        try:
            result = await self.runner.run(args, timeout=self.timeout, cwd=work_dir)
        except ProcessTimeout as e:
            raise CompositionError(
                f"Narration concatenation timed out after {e.timeout:.0f}s",
                command=args, stage="narration", timed_out=True,
            ) from e

        if not result.ok:
            logger.error(f"Narration concat failed ({result.returncode}): {' '.join(args)}")
            raise CompositionError(
                f"Narration concatenation failed with exit code {result.returncode}",
                command=args, exit_code=result.returncode, stage="narration", stderr=result.stderr[-2000:],
            )

        probe = await self.prober.probe(work_dir / output_path)
        return MasterNarration(
            path=output_path,
            duration=probe.duration_seconds,
            concatenated=True,
            segment_count=len(segment_paths),
        )
