"""Configuration loading and validation for reelforge."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from rich.logging import RichHandler

# Get the project root directory (parent of src)
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Load environment variables from .env file in project root
load_dotenv(PROJECT_ROOT / ".env")


def load_config() -> dict:
    """Load configuration from environment variables."""

    # Helper function to resolve paths relative to project root
    def resolve_path(path: str | None, default_relative: str) -> str:
        if not path:
            return str(PROJECT_ROOT / default_relative)
        if Path(path).is_absolute():
            return path
        return str(PROJECT_ROOT / path)

    config = {
        # Object storage (S3-compatible)
        "s3_bucket_name": os.getenv("S3_BUCKET_NAME", "reelforge-projects"),
        "s3_region": os.getenv("AWS_REGION", "us-east-1"),
        "s3_endpoint_url": os.getenv("S3_ENDPOINT_URL"),
        "aws_access_key_id": os.getenv("AWS_ACCESS_KEY_ID"),
        "aws_secret_access_key": os.getenv("AWS_SECRET_ACCESS_KEY"),
        "projects_prefix": os.getenv("PROJECTS_PREFIX", "videos"),
        # Status record database
        "status_db_path": resolve_path(os.getenv("STATUS_DB_PATH"), ".reelforge/status.db"),
        # Quality gate
        "min_visuals_per_scene": int(os.getenv("MIN_VISUALS_PER_SCENE", "3")),
        "audio_tolerance_seconds": float(os.getenv("AUDIO_TOLERANCE_SECONDS", "2.0")),
        # Render output
        "output_resolution": os.getenv("OUTPUT_RESOLUTION", "1920x1080"),
        "output_fps": int(os.getenv("OUTPUT_FPS", "30")),
        "video_codec": os.getenv("VIDEO_CODEC", "libx264"),
        "video_preset": os.getenv("VIDEO_PRESET", "medium"),
        "video_crf": int(os.getenv("VIDEO_CRF", "23")),
        "audio_bitrate": os.getenv("AUDIO_BITRATE", "192k"),
        # Media tools
        "ffmpeg_path": os.getenv("FFMPEG_PATH", "ffmpeg"),
        "ffprobe_path": os.getenv("FFPROBE_PATH", "ffprobe"),
        "work_dir": os.getenv("WORK_DIR"),  # None -> system temp dir
        # Timeouts (seconds)
        "probe_timeout": float(os.getenv("PROBE_TIMEOUT", "30")),
        "download_timeout": float(os.getenv("DOWNLOAD_TIMEOUT", "120")),
        "composition_timeout": float(os.getenv("COMPOSITION_TIMEOUT", "1800")),
        # Parallelism within a single project run
        "parallel_downloads": int(os.getenv("PARALLEL_DOWNLOADS", "4")),
        "parallel_segments": int(os.getenv("PARALLEL_SEGMENTS", "2")),
        # Retry policy for transient failures
        "max_retries": int(os.getenv("MAX_RETRIES", "3")),
        "retry_base_delay": float(os.getenv("RETRY_BASE_DELAY", "1.0")),
        # Logging
        "log_level": os.getenv("LOG_LEVEL", "INFO"),
        "log_json": os.getenv("LOG_JSON", "false").lower() == "true",
    }

    return config


def validate_config(config: dict) -> list[str]:
    """Validate configuration and return list of errors."""
    errors = []

    if not config.get("s3_bucket_name"):
        errors.append("S3_BUCKET_NAME is required")

    # Explicit credentials must come in pairs; otherwise boto3 uses its own chain
    has_key = bool(config.get("aws_access_key_id"))
    has_secret = bool(config.get("aws_secret_access_key"))
    if has_key != has_secret:
        errors.append("AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY must be set together")

    resolution = config.get("output_resolution", "")
    try:
        width, height = (int(v) for v in resolution.lower().split("x"))
        if width <= 0 or height <= 0 or width % 2 or height % 2:
            errors.append(f"OUTPUT_RESOLUTION must use positive even dimensions: {resolution}")
    except ValueError:
        errors.append(f"OUTPUT_RESOLUTION must look like 1920x1080: {resolution!r}")

    if config.get("min_visuals_per_scene", 0) < 1:
        errors.append("MIN_VISUALS_PER_SCENE must be at least 1")

    if config.get("audio_tolerance_seconds", 0) < 0:
        errors.append("AUDIO_TOLERANCE_SECONDS cannot be negative")

    for key in ("probe_timeout", "download_timeout", "composition_timeout"):
        if config.get(key, 0) <= 0:
            errors.append(f"{key.upper()} must be greater than zero")

    for key in ("parallel_downloads", "parallel_segments"):
        if config.get(key, 0) < 1:
            errors.append(f"{key.upper()} must be at least 1")

    status_db = Path(config.get("status_db_path", ""))
    try:
        status_db.parent.mkdir(parents=True, exist_ok=True)
    except Exception as e:
        errors.append(f"Cannot create status database folder: {e}")

    return errors


def setup_logging(log_level: str = "INFO") -> None:
    """Set up logging configuration with Rich for terminal output."""
    # Clear any existing handlers
    logging.root.handlers.clear()

    rich_handler = RichHandler(
        show_time=True,
        show_level=True,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        handlers=[rich_handler],
        format="%(message)s",
    )

    # Suppress noisy third-party loggers
    noisy_loggers = [
        "botocore",
        "boto3",
        "s3transfer",
        "urllib3.connectionpool",
        "aiosqlite",
    ]

    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_supported_image_formats() -> list[str]:
    """Return list of supported still-image file extensions."""
    return [".jpg", ".jpeg", ".png", ".webp", ".gif"]


def get_supported_video_formats() -> list[str]:
    """Return list of supported video file extensions."""
    return [".mp4", ".mov", ".mkv", ".webm", ".avi", ".m4v"]


def get_supported_audio_formats() -> list[str]:
    """Return list of supported audio file extensions."""
    return [".mp3", ".wav", ".m4a", ".aac", ".ogg", ".flac"]
