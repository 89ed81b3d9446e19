"""Measure audio files with ffprobe.

The probed duration is the only trusted narration length; scene timings are
never estimated from script text when real audio exists.
"""

import json
import logging
from pathlib import Path

from assembly.errors import ProbeError
from assembly.models import AudioProbe
from services.media_tools import ProcessRunner, ProcessTimeout
from utils.retry import retry_media_probe

logger = logging.getLogger(__name__)


def _int_or_none(value) -> int | None:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def parse_probe_output(raw: str, source: str = "") -> AudioProbe:
    """Parse ``ffprobe -print_format json`` output.

    Raises:
        ProbeError: If the output is not JSON or carries no usable duration
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        error = ProbeError(f"Unparsable ffprobe output for {source}: {e}")
        error.retryable = False
        raise error from e

    fmt = data.get("format") or {}
    streams = data.get("streams") or []
    audio = next((s for s in streams if s.get("codec_type") == "audio"), None)

    duration = fmt.get("duration")
    if duration is None and audio is not None:
        duration = audio.get("duration")
    try:
        duration_seconds = float(duration)
    except (TypeError, ValueError):
        error = ProbeError(f"No duration in ffprobe output for {source}")
        error.retryable = False
        raise error from None

    audio = audio or {}
    return AudioProbe(
        duration_seconds=duration_seconds,
        sample_rate=_int_or_none(audio.get("sample_rate")),
        channels=_int_or_none(audio.get("channels")),
        bitrate=_int_or_none(audio.get("bit_rate") or fmt.get("bit_rate")),
        format_name=fmt.get("format_name", ""),
        codec=audio.get("codec_name", ""),
    )


class AudioProber:
    """Runs ffprobe through a ProcessRunner with timeout and bounded retries."""

    def __init__(
        self,
        runner: ProcessRunner,
        ffprobe_path: str = "ffprobe",
        timeout: float = 30.0,
        max_retries: int = 2,
    ):
        self.runner = runner
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout
        self.max_retries = max_retries

    def command(self, path: Path) -> list[str]:
        return [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            str(path),
        ]

    async def probe(self, path: Path) -> AudioProbe:
        """Duration and format metadata for an audio file.

        Raises:
            ProbeError: After retries are exhausted, or immediately for
                non-retryable failures (missing ffprobe, unparsable output)
        """
        probe_once = retry_media_probe(max_retries=self.max_retries)(self._probe_once)
        result = await probe_once(Path(path))
        logger.info(f"Probed {Path(path).name}: {result.duration_seconds:.2f}s")
        return result

    async def _probe_once(self, path: Path) -> AudioProbe:
        args = self.command(path)
        try:
            result = await self.runner.run(args, timeout=self.timeout)
        except ProcessTimeout as e:
            raise ProbeError(f"ffprobe timed out after {e.timeout:.0f}s for {path}") from e
        except FileNotFoundError as e:
            error = ProbeError(f"ffprobe not available: {self.ffprobe_path}")
            error.retryable = False
            raise error from e

        if not result.ok:
            raise ProbeError(f"ffprobe exited with code {result.returncode} for {path}: {result.stderr[:300]}")

        return parse_probe_output(result.stdout, source=str(path))
