"""Error taxonomy for manifest validation and video assembly."""


class AssemblyError(Exception):
    """Base class for engine errors.

    ``retryable`` tells callers whether repeating the same operation with the
    same inputs can succeed.
    """

    retryable = False
    error_type = "assembly_error"

    def to_dict(self) -> dict:
        """Structured error body for API responses."""
        return {
            "success": False,
            "error": str(self),
            "errorType": self.error_type,
            "retryable": self.retryable,
        }


class ValidationFailure(AssemblyError):
    """Manifest prerequisites are not met. Terminal until upstream inputs change."""

    error_type = "validation_failure"

    def __init__(
        self,
        message: str,
        issues: list[str] | None = None,
        insufficient_scenes: list[int] | None = None,
        missing_contexts: list[str] | None = None,
        kpis: dict | None = None,
        warnings: list[str] | None = None,
    ):
        super().__init__(message)
        self.issues = issues or []
        self.insufficient_scenes = insufficient_scenes or []
        self.missing_contexts = missing_contexts or []
        self.kpis = kpis or {}
        self.warnings = warnings or []

    def to_dict(self) -> dict:
        body = super().to_dict()
        body.update({
            "issues": list(self.issues),
            "insufficientScenes": list(self.insufficient_scenes),
            "missingContexts": list(self.missing_contexts),
            "warnings": list(self.warnings),
            "kpis": dict(self.kpis),
        })
        return body


class ProbeError(AssemblyError):
    """ffprobe failed, timed out, or produced output we could not parse."""

    error_type = "probe_error"
    retryable = True


class DownloadError(AssemblyError):
    """Object-store fetch failed."""

    error_type = "download_error"

    def __init__(self, message: str, key: str | None = None, retryable: bool = True):
        super().__init__(message)
        self.key = key
        self.retryable = retryable


class CompositionError(AssemblyError):
    """An ffmpeg composition step exited non-zero or timed out.

    Not retried automatically. ``retryable`` is True for plain non-zero exits
    and False for timeouts, whose partial output is discarded.
    """

    error_type = "composition_error"

    def __init__(
        self,
        message: str,
        command: list[str] | None = None,
        exit_code: int | None = None,
        stage: str = "compose",
        timed_out: bool = False,
        stderr: str = "",
    ):
        super().__init__(message)
        self.command = command or []
        self.exit_code = exit_code
        self.stage = stage
        self.timed_out = timed_out
        self.stderr = stderr
        self.retryable = not timed_out
        # Output of the passes that did succeed, set by the compositor
        self.intermediate_path = None

    def to_dict(self) -> dict:
        body = super().to_dict()
        body.update({"stage": self.stage, "exitCode": self.exit_code})
        return body


class CleanupError(AssemblyError):
    """Temporary working directory could not be removed. Logged, never raised to callers."""

    error_type = "cleanup_error"
