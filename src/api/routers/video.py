"""Video assembly routes for the Reelforge API."""

import logging

from api.dependencies import get_engine, get_status_store
from api.schemas import (
    AssembleRequest,
    AssembleResponse,
    ErrorResponse,
    ProjectStatusResponse,
    ValidationFailureResponse,
)
from assembly.engine import AssemblyEngine
from assembly.errors import AssemblyError, ValidationFailure
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from services.status_store import ProjectStatusStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Video Assembly"])


def error_status(error: AssemblyError) -> int:
    """HTTP status for an engine error."""
    if isinstance(error, ValidationFailure):
        return 422
    # Upstream/transient failures are reported as bad gateway so callers can retry
    return 502 if error.retryable else 500


@router.post(
    "/api/video/assemble",
    response_model=AssembleResponse,
    summary="Assemble video",
    description=(
        "Render the project's final video from its manifest. When ffmpeg is "
        "unavailable or composition fails, render instructions are uploaded "
        "instead and the response has fallback=true."
    ),
    responses={
        422: {"model": ValidationFailureResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def assemble_video(
    request: AssembleRequest,
    engine: AssemblyEngine = Depends(get_engine),
):
    """Run one assembly for a project."""
    if not request.use_manifest:
        error = ValidationFailure(
            "Assembly requires a manifest",
            issues=["useManifest must be true; build the manifest first"],
        )
        return JSONResponse(status_code=422, content=error.to_dict())

    try:
        result = await engine.assemble(request.project_id)
    except AssemblyError as e:
        logger.error(f"Assembly failed for {request.project_id}: {e}")
        return JSONResponse(status_code=error_status(e), content=e.to_dict())

    return result.to_dict()


@router.get(
    "/api/video/status/{project_id}",
    response_model=ProjectStatusResponse,
    summary="Assembly status",
    description="Last recorded assembly status for a project.",
)
async def get_video_status(
    project_id: str,
    status_store: ProjectStatusStore = Depends(get_status_store),
) -> ProjectStatusResponse:
    """Get a project's assembly status."""
    record = await status_store.get_status(project_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"No status recorded for project {project_id}")
    return ProjectStatusResponse(**record)
