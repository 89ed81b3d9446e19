#!/usr/bin/env python
"""FastAPI server for the reelforge manifest and assembly endpoints."""

import logging
import sys
from pathlib import Path

# Add src directory to Python path for imports
src_dir = Path(__file__).parent.parent
if str(src_dir) not in sys.path:
    sys.path.insert(0, str(src_dir))

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routers import core, manifest, video
from assembly.errors import AssemblyError
from services.object_storage import StorageError
from utils.config import load_config
from utils.logging import setup_logging

_config = load_config()
setup_logging(_config["log_level"], json_output=_config["log_json"])
logger = logging.getLogger(__name__)

app = FastAPI(title="Reelforge API", version=core.API_VERSION)

# CORS middleware for development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(core.router)
app.include_router(manifest.router)
app.include_router(video.router)


@app.exception_handler(AssemblyError)
async def assembly_error_handler(request: Request, exc: AssemblyError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=502 if exc.retryable else 500, content=exc.to_dict())


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} storage failure: {exc}")
    return JSONResponse(
        status_code=502,
        content={"success": False, "error": str(exc), "errorType": "storage_error", "retryable": True},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error", "errorType": type(exc).__name__, "retryable": False},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
