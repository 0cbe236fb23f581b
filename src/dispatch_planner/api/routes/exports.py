"""Download endpoints for artifacts written by the local export backend."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Path, status
from fastapi.responses import FileResponse

from ...services.container import DispatchServices
from ...services.export.storage import LocalObjectStorage
from ..deps import get_services

router = APIRouter(prefix="/exports", tags=["exports"])


@router.get(
    "/{folder}/{file_name}",
    response_class=FileResponse,
    status_code=status.HTTP_200_OK,
)
def download_export_file(
    folder: str = Path(..., description="Draft folder, e.g. 2024-05-01_lunch"),
    file_name: str = Path(..., description="File name within the draft folder"),
    services: DispatchServices = Depends(get_services),
) -> FileResponse:
    storage = services.approvals.exporter.storage
    if not isinstance(storage, LocalObjectStorage):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Exports are served by the configured object storage, not this API",
        )
    try:
        file_path = storage.storage.resolve_output(folder, file_name)
    except FileNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    media_type = _get_media_type(file_path)

    return FileResponse(
        path=file_path,
        filename=file_path.name,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{file_path.name}"'},
    )


def _get_media_type(file_path) -> str:
    """Determine MIME type based on file extension."""
    suffix = file_path.suffix.lower()
    mime_types = {
        ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        ".txt": "text/plain",
        ".json": "application/json",
    }
    return mime_types.get(suffix, "application/octet-stream")
