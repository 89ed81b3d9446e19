"""Manifest build routes for the Reelforge API."""

import asyncio
import logging

from api.dependencies import get_config, get_manifest_builder
from api.schemas import BuildManifestRequest, ManifestHealthResponse, ValidationFailureResponse
from assembly.errors import AssemblyError, ValidationFailure
from assembly.manifest_builder import ManifestBuilder
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Manifest"])


@router.post(
    "/api/manifest/build",
    summary="Build production manifest",
    description=(
        "Validate the project's topic, scene, media and audio contexts and persist "
        "the manifest. Returns 422 with issues and KPIs when validation fails."
    ),
    responses={422: {"model": ValidationFailureResponse}},
)
async def build_manifest(
    request: BuildManifestRequest,
    builder: ManifestBuilder = Depends(get_manifest_builder),
) -> JSONResponse:
    """Build and persist a project's manifest."""
    try:
        manifest = await asyncio.to_thread(
            builder.build,
            request.project_id,
            request.min_visuals,
            request.allow_placeholders,
        )
    except ValidationFailure as e:
        logger.warning(f"Manifest validation failed for {request.project_id}: {e}")
        return JSONResponse(status_code=422, content=e.to_dict())
    except AssemblyError as e:
        logger.error(f"Manifest build failed for {request.project_id}: {e}")
        return JSONResponse(status_code=502 if e.retryable else 500, content=e.to_dict())

    return JSONResponse(content=manifest.to_dict())


@router.get(
    "/api/manifest/health",
    response_model=ManifestHealthResponse,
    summary="Manifest service health",
)
async def manifest_health(config: dict = Depends(get_config)) -> ManifestHealthResponse:
    """Report whether object storage is configured."""
    configured = bool(config.get("s3_bucket_name"))
    return ManifestHealthResponse(
        status="healthy" if configured else "degraded",
        service="manifest",
        storage_configured=configured,
    )
