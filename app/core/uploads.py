import logging
import random
import time
from pathlib import Path
from typing import Optional, Tuple

from fastapi import UploadFile, status

from app.core.config import settings
from app.core.exceptions import ServiceError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {
    "jpeg", "jpg", "png", "gif", "pdf", "doc", "docx", "txt", "xlsx", "xls", "ppt", "pptx",
}

CHUNK_SIZE = 1024 * 1024


def _extension(filename: str) -> str:
    return Path(filename).suffix.lower().lstrip(".")


def is_allowed_file(filename: Optional[str]) -> bool:
    return bool(filename) and _extension(filename) in ALLOWED_EXTENSIONS


async def save_upload(upload: Optional[UploadFile]) -> Tuple[Optional[str], Optional[str]]:
    """
    Store an uploaded attachment under UPLOAD_DIR.

    Returns (file_path, original_name), or (None, None) when no file was sent.
    """
    if upload is None or not upload.filename:
        return None, None
    if not is_allowed_file(upload.filename):
        raise ServiceError("Invalid file type", status.HTTP_400_BAD_REQUEST)

    max_bytes = settings.max_upload_size_mb * 1024 * 1024
    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    stored_name = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}.{_extension(upload.filename)}"
    dest = upload_dir / stored_name

    written = 0
    too_large = False
    try:
        with open(dest, "wb") as fh:
            while True:
                chunk = await upload.read(CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > max_bytes:
                    too_large = True
                    break
                fh.write(chunk)
    except Exception:
        logger.exception(f"Writing upload {upload.filename} failed")
        dest.unlink(missing_ok=True)
        raise

    if too_large:
        dest.unlink(missing_ok=True)
        raise ServiceError(
            f"File too large (max {settings.max_upload_size_mb}MB)",
            status.HTTP_400_BAD_REQUEST,
        )

    logger.info(f"Stored upload {upload.filename} as {dest}")
    return str(dest), upload.filename


def discard_upload(file_path: Optional[str]) -> None:
    """Remove a stored attachment whose message was never saved."""
    if not file_path:
        return
    Path(file_path).unlink(missing_ok=True)
    logger.info(f"Discarded upload {file_path}")


def resolve_download(file_path: Optional[str]) -> Path:
    """Existing path for a stored attachment, 404 when missing."""
    if not file_path:
        raise ServiceError("No file attached", status.HTTP_404_NOT_FOUND)
    path = Path(file_path)
    if not path.is_file():
        raise ServiceError("File not found", status.HTTP_404_NOT_FOUND)
    return path
