import logging
import os
import re
from pathlib import Path
from typing import Optional
import cloudinary
from cloudinary import uploader
from cloudinary.exceptions import Error as CloudinaryError
from fastapi import UploadFile
from app.core.config import settings
from app.core.errors import InfrastructureError, ValidationFailed

logger = logging.getLogger(__name__)

POSTS_FOLDER = "posts"

_CLOUDINARY_PUBLIC_ID = re.compile(r"/upload/(?:v\d+/)?(" + POSTS_FOLDER + r"/[^/.]+)\.\w+$")

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
}


def slugify(title: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
    return slug or "post"


def image_name(post_id: int, title: str) -> str:
    """Deterministic file stem for a post's image."""
    return f"{post_id}_{slugify(title)}"


def _too_large() -> ValidationFailed:
    return ValidationFailed({"image": [f"File too large (max {settings.MAX_IMAGE_SIZE_MB}MB)"]})


def check_image_upload(image: UploadFile):
    """Reject an upload on its declared type and size, before reading it."""
    if image.content_type not in settings.ALLOWED_IMAGE_TYPES:
        raise ValidationFailed({"image": [f"Invalid image format: {image.content_type}"]})
    if image.size is not None and image.size > settings.max_image_bytes:
        raise _too_large()


def check_image_data(data: bytes):
    if len(data) > settings.max_image_bytes:
        raise _too_large()


class LocalImageStorage:
    """Writes images under a media root and returns the relative path."""

    def __init__(self, root: str):
        self.root = Path(root)

    def save(self, post_id: int, title: str, data: bytes, content_type: Optional[str]) -> str:
        ext = _EXTENSIONS.get(content_type or "", ".bin")
        relative = f"{POSTS_FOLDER}/{image_name(post_id, title)}{ext}"
        target = self.root / relative
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            logger.error("Failed to write image %s: %s", target, e)
            raise InfrastructureError()
        return relative

    def delete(self, path: str):
        folder = (self.root / POSTS_FOLDER).resolve()
        target = (self.root / path).resolve()
        # Only files this storage wrote
        if not path.startswith(POSTS_FOLDER + "/") or not target.is_relative_to(folder):
            return
        try:
            target.unlink(missing_ok=True)
        except OSError as e:
            logger.error("Failed to delete image %s: %s", target, e)


class CloudinaryImageStorage:
    """Uploads images to Cloudinary under a deterministic public id."""

    def __init__(self):
        cloudinary.config(
            cloud_name=settings.CLOUDINARY_CLOUD_NAME,
            api_key=settings.CLOUDINARY_API_KEY,
            api_secret=settings.CLOUDINARY_API_SECRET,
            secure=True,
        )

    def save(self, post_id: int, title: str, data: bytes, content_type: Optional[str]) -> str:
        try:
            upload_result = uploader.upload(
                data,
                folder=POSTS_FOLDER,
                public_id=image_name(post_id, title),
                resource_type="image",
                overwrite=True,
                quality="auto:good",
            )
        except CloudinaryError as e:
            logger.error("Cloudinary Error: %s", e)
            raise InfrastructureError()
        return upload_result["secure_url"]

    def delete(self, path: str):
        match = _CLOUDINARY_PUBLIC_ID.search(path)
        if match is None:
            return
        try:
            uploader.destroy(match.group(1))
        except CloudinaryError as e:
            logger.error("Cloudinary cleanup error: %s", e)


def get_image_storage():
    if settings.IMAGE_STORAGE == "cloudinary":
        return CloudinaryImageStorage()
    if settings.IMAGE_STORAGE != "local":
        logger.warning("Unknown IMAGE_STORAGE %r, using local storage", settings.IMAGE_STORAGE)
    os.makedirs(settings.MEDIA_ROOT, exist_ok=True)
    return LocalImageStorage(settings.MEDIA_ROOT)
