"""FastAPI backend exposing the sync pipeline."""

import logging
import os
from pathlib import Path
from typing import Literal, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .config import ConfigurationManager, configure_logging
from .scanner import DocumentProcessor

logger = logging.getLogger(__name__)

VAULT_ENV_VAR = "ATTACHMENT_SYNC_VAULT"

app = FastAPI(
    title="Attachment Sync API",
    description="API for syncing markdown attachments with remote storage",
    version="0.1.0",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class DocumentRequest(BaseModel):
    """A markdown file inside the vault."""

    path: str
    urls: Optional[list[str]] = None


class ScanRequest(BaseModel):
    """A folder inside the vault, optionally processed after scanning."""

    folder: str = "."
    mode: Optional[Literal["upload", "download"]] = None


_processor: Optional[DocumentProcessor] = None


def get_processor() -> DocumentProcessor:
    """Get or create the processor for the configured vault."""
    global _processor
    if _processor is None:
        config_manager = ConfigurationManager.from_env()
        configure_logging(config_manager.settings.debug_logging)
        _processor = DocumentProcessor.from_config(config_manager, os.environ.get(VAULT_ENV_VAR, "."))
    return _processor


def resolve_in_vault(processor: DocumentProcessor, path: str) -> Path:
    """Resolve a request path, refusing anything outside the vault."""
    resolved = (processor.vault.root / path).resolve()
    try:
        resolved.relative_to(processor.vault.root)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Path is outside the vault: {path}")
    return resolved


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Attachment Sync API",
        "version": "0.1.0",
        "endpoints": {
            "status": "/api/status",
            "upload": "/api/documents/upload",
            "download": "/api/documents/download",
            "delete": "/api/documents/delete",
            "scan": "/api/scan",
            "test_connection": "/api/connection/test",
        }
    }


@app.get("/api/status")
def get_status(processor: DocumentProcessor = Depends(get_processor)):
    """Get totals per handler kind and the configured storage service."""
    return {
        "storage_service": processor.config_manager.get_current_storage_service(),
        "vault": str(processor.vault.root),
        "stats": processor.get_stats(),
    }


@app.post("/api/documents/{mode}")
def process_document(
    mode: Literal["upload", "download", "delete"],
    request: DocumentRequest,
    processor: DocumentProcessor = Depends(get_processor),
):
    """Run the upload, download or delete pipeline over one document.

    Args:
        mode: upload, download or delete
        request: Document path relative to the vault, and URLs for delete
    """
    path = resolve_in_vault(processor, request.path)
    if not path.is_file():
        raise HTTPException(status_code=404, detail=f"Document not found: {request.path}")
    if mode == "delete" and not request.urls:
        raise HTTPException(status_code=400, detail="Delete requires at least one URL")

    summary = processor.process_document(path, mode, request.urls)
    logger.info(f"{mode} of {request.path}: {summary['completed']} completed, {summary['failed']} failed")
    return summary


@app.post("/api/scan")
def scan_folder(request: ScanRequest, processor: DocumentProcessor = Depends(get_processor)):
    """Scan a folder; with a mode, also upload or download what was found."""
    folder = resolve_in_vault(processor, request.folder)
    if not folder.is_dir():
        raise HTTPException(status_code=404, detail=f"Folder not found: {request.folder}")

    result = processor.scan(folder)
    response = {"scan": result.model_dump()}
    if request.mode:
        response["results"] = processor.process_folder(folder, request.mode)
    return response


@app.post("/api/connection/test")
def run_connection_test(processor: DocumentProcessor = Depends(get_processor)):
    """Write and delete a probe object on the configured storage."""
    result = processor.uploader_manager.test_connection()
    if not result.success:
        raise HTTPException(status_code=502, detail=result.error)
    return {"success": True, "storage_service": processor.config_manager.get_current_storage_service()}


def main():
    """Run the API server."""
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
