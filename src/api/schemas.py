"""Pydantic request/response models for the Reelforge API."""

from typing import Any

from pydantic import BaseModel, Field

# =============================================================================
# Response Models
# =============================================================================


class RootResponse(BaseModel):
    """Root endpoint response."""

    message: str
    version: str

    model_config = {"json_schema_extra": {"examples": [{"message": "Reelforge API", "version": "1.0.0"}]}}


class HealthResponse(BaseModel):
    """Health check response."""

    status: str

    model_config = {"json_schema_extra": {"examples": [{"status": "healthy"}]}}


class ManifestHealthResponse(BaseModel):
    """Manifest service health, including whether the object store is configured."""

    status: str
    service: str
    storage_configured: bool = Field(alias="storageConfigured")

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "examples": [{"status": "healthy", "service": "manifest", "storageConfigured": True}]
        }
    }


class ErrorResponse(BaseModel):
    """Structured error body. Never carries a stack trace."""

    success: bool = False
    error: str
    error_type: str = Field(alias="errorType")
    retryable: bool = False

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "examples": [
                {
                    "success": False,
                    "error": "ffmpeg exited with code 1 during concatenate",
                    "errorType": "composition_error",
                    "retryable": True,
                }
            ]
        }
    }


class ValidationFailureResponse(ErrorResponse):
    """Manifest validation failure details."""

    issues: list[str] = Field(default_factory=list)
    insufficient_scenes: list[int] = Field(default_factory=list, alias="insufficientScenes")
    missing_contexts: list[str] = Field(default_factory=list, alias="missingContexts")
    warnings: list[str] = Field(default_factory=list)
    kpis: dict[str, Any] = Field(default_factory=dict)

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "examples": [
                {
                    "success": False,
                    "error": "Manifest validation failed",
                    "errorType": "validation_failure",
                    "retryable": False,
                    "issues": ["Scene 2: only 1 visuals found (<3)"],
                    "insufficientScenes": [2],
                    "missingContexts": [],
                    "warnings": [],
                    "kpis": {"scenes_count": 3, "visuals_count": 7},
                }
            ]
        }
    }


class AssembleResponse(BaseModel):
    """Result of an assembly run."""

    success: bool = True
    project_id: str = Field(alias="projectId")
    video_path: str = Field(alias="videoPath")
    duration: float
    resolution: str
    file_size: int = Field(alias="fileSize")
    fallback: bool
    codec: str | None = None
    warnings: list[str] = Field(default_factory=list)

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "examples": [
                {
                    "success": True,
                    "projectId": "proj-123",
                    "videoPath": "s3://bucket/videos/proj-123/05-video/final-video.mp4",
                    "duration": 120.0,
                    "resolution": "1920x1080",
                    "fileSize": 48213344,
                    "fallback": False,
                    "codec": "libx264",
                    "warnings": [],
                }
            ]
        }
    }


class ProjectStatusResponse(BaseModel):
    """Last recorded assembly status of a project."""

    project_id: str = Field(alias="projectId")
    status: str
    message: str
    updated_at: str = Field(alias="updatedAt")
    details: dict[str, Any] = Field(default_factory=dict)

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "examples": [
                {
                    "projectId": "proj-123",
                    "status": "completed",
                    "message": "Video assembled",
                    "updatedAt": "2026-01-01T12:00:00+00:00",
                    "details": {},
                }
            ]
        }
    }


# =============================================================================
# Request Models
# =============================================================================


class BuildManifestRequest(BaseModel):
    """Request to validate contexts and build a project's manifest."""

    project_id: str = Field(..., min_length=1, alias="projectId")
    min_visuals: int = Field(default=3, ge=1, alias="minVisuals", description="Ready visuals required per scene")
    allow_placeholders: bool = Field(
        default=False,
        alias="allowPlaceholders",
        description="Fill gaps with placeholder assets instead of failing",
    )

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {"examples": [{"projectId": "proj-123", "minVisuals": 3, "allowPlaceholders": False}]},
    }


class AssembleRequest(BaseModel):
    """Request to render a project's video from its manifest."""

    project_id: str = Field(..., min_length=1, alias="projectId")
    use_manifest: bool = Field(default=True, alias="useManifest")

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {"examples": [{"projectId": "proj-123", "useManifest": True}]},
    }
