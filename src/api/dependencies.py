"""Per-request dependency factories for the Reelforge API.

Nothing here is cached at module level: every request gets its own object
store handle, status store connection, and process runner, so concurrent
projects never share mutable clients.
"""

from collections.abc import AsyncIterator

from assembly.engine import AssemblyEngine
from assembly.manifest_builder import ManifestBuilder
from fastapi import Depends
from models.manifest import ExportSettings
from services.context_store import ContextStore
from services.media_tools import ProcessRunner
from services.object_storage import create_storage
from services.status_store import ProjectStatusStore
from utils.config import load_config


def get_config() -> dict:
    """Current configuration, re-read from the environment."""
    return load_config()


def get_context_store(config: dict = Depends(get_config)) -> ContextStore:
    """Object-store backed project document store."""
    return ContextStore(create_storage(config), prefix=config["projects_prefix"])


async def get_status_store(config: dict = Depends(get_config)) -> AsyncIterator[ProjectStatusStore]:
    """Open a status store connection for the duration of the request."""
    store = ProjectStatusStore(config["status_db_path"])
    await store.connect()
    try:
        yield store
    finally:
        await store.close()


def get_runner() -> ProcessRunner:
    """Subprocess runner for ffmpeg/ffprobe."""
    return ProcessRunner()


def get_manifest_builder(
    store: ContextStore = Depends(get_context_store),
    config: dict = Depends(get_config),
) -> ManifestBuilder:
    """Manifest builder wired to the request's store."""
    return ManifestBuilder(
        store,
        audio_tolerance=config["audio_tolerance_seconds"],
        export=ExportSettings(
            resolution=config["output_resolution"],
            fps=config["output_fps"],
            codec=config["video_codec"],
            preset=config["video_preset"],
        ),
        max_retries=config["max_retries"],
        retry_base_delay=config["retry_base_delay"],
    )


def get_engine(
    store: ContextStore = Depends(get_context_store),
    status_store: ProjectStatusStore = Depends(get_status_store),
    runner: ProcessRunner = Depends(get_runner),
    config: dict = Depends(get_config),
) -> AssemblyEngine:
    """Assembly engine for one request."""
    return AssemblyEngine(store, status_store, runner=runner, config=config)
