"""
Stored file downloads - profile images and custom field attachments
"""
from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from opsdesk.models.user import User
from opsdesk.api.auth import get_current_user
from opsdesk.services.storage import storage_service

router = APIRouter()


@router.get("/{path:path}")
async def download_file(
    path: str,
    current_user: User = Depends(get_current_user)
):
    full_path = storage_service.open_path(path)
    return FileResponse(full_path)
