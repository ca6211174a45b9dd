"""FastAPI router serving converted files to Twilio.

Files are looked up by exact name in the public directory. There is no
authentication; generated names are timestamp-based and hard to guess,
nothing more.
"""
import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from ..publishing.publisher import FILES_ROUTE

logger = logging.getLogger(__name__)

router = APIRouter(prefix=FILES_ROUTE, tags=["files"])

_public_dir: Optional[Path] = None


def get_public_dir() -> Optional[Path]:
    """Return the directory files are served from, or None if not configured."""
    return _public_dir


def set_public_dir(directory: Path) -> None:
    """Set (or replace) the served directory, creating it if needed."""
    global _public_dir
    _public_dir = Path(directory)
    _public_dir.mkdir(parents=True, exist_ok=True)


@router.get("/{filename}")
async def download_file(filename: str):
    """Serve a public file by exact name.

    Raises:
        HTTPException 404: If the name is not a plain file in the public directory.
    """
    public_dir = get_public_dir()
    if public_dir is None:
        raise HTTPException(status_code=404, detail="File not found")

    # Exact names only: nothing that could leave the directory
    if filename in ("", ".", "..") or "/" in filename or "\\" in filename:
        raise HTTPException(status_code=404, detail="File not found")

    file_path = public_dir / filename
    if not file_path.is_file():
        logger.info(f"Requested file not found: {filename}")
        raise HTTPException(status_code=404, detail="File not found")

    return FileResponse(path=file_path, filename=filename)
