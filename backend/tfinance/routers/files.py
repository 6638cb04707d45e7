from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from tfinance.core.config import settings
from tfinance.core.security import ROLE_PREMIUM
from tfinance.services.auth import CurrentUser, require_role

APP_ARCHIVE_NAME = "T-Finance.zip"

router = APIRouter(prefix="/api/files", tags=["files"])


@router.get("/app")
def download_app(_: CurrentUser = Depends(require_role(ROLE_PREMIUM))):
    path = Path(settings.files_dir) / APP_ARCHIVE_NAME
    if not path.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(path, media_type="application/zip", filename=APP_ARCHIVE_NAME)
