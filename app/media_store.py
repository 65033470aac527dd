import logging
from typing import BinaryIO, NamedTuple

import cloudinary
import cloudinary.uploader

from app.config import get_settings

logger = logging.getLogger(__name__)


class StoredImage(NamedTuple):
    url: str
    public_id: str


def _configure() -> None:
    settings = get_settings()
    cloudinary.config(
        cloud_name=settings.cloudinary_cloud_name,
        api_key=settings.cloudinary_api_key,
        api_secret=settings.cloudinary_api_secret,
        secure=True,
    )


def upload_image(file: BinaryIO) -> StoredImage:
    _configure()
    result = cloudinary.uploader.upload(file, folder=get_settings().cloudinary_folder)
    return StoredImage(url=result["secure_url"], public_id=result["public_id"])


def purge_image(public_id: str) -> None:
    """Best-effort removal from the CDN. Failures are logged, never raised."""
    if not public_id:
        return
    try:
        _configure()
        cloudinary.uploader.destroy(public_id, invalidate=True)
    except Exception:
        logger.warning("Error deleting image %s from cloud", public_id, exc_info=True)
