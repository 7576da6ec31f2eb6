"""
Local disk storage for product images uploaded from the app.
"""
import logging
import os
import uuid
from pathlib import Path
from typing import Optional

from fastapi import Request, UploadFile

from database import IMAGES, PRODUCTS, create_document, to_object_id
from errors import Forbidden, NotFound, ValidationError

logger = logging.getLogger(__name__)

IMAGE_URL_PREFIX = "/products/image/"

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/heic": ".heic",
}


class ImageStore:
    def __init__(self, upload_dir, max_bytes: int = 5 * 1024 * 1024):
        self.root = Path(upload_dir).resolve()
        self.max_bytes = max_bytes

    def _ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def save(self, upload: UploadFile) -> str:
        content_type = (upload.content_type or "").lower()
        if not content_type.startswith("image/"):
            raise ValidationError("Only image files are allowed")

        data = upload.file.read(self.max_bytes + 1)
        if not data:
            raise ValidationError("No image file provided")
        if len(data) > self.max_bytes:
            raise ValidationError(f"Image exceeds {self.max_bytes} bytes")

        ext = _EXTENSIONS.get(content_type)
        if ext is None:
            ext = os.path.splitext(upload.filename or "")[1].lower() or ".img"
        filename = uuid.uuid4().hex + ext

        self._ensure_root()
        (self.root / filename).write_bytes(data)
        logger.info("Stored image %s (%d bytes)", filename, len(data))
        return filename

    def path_for(self, filename: str) -> Path:
        if not filename or filename != os.path.basename(filename) or filename.startswith("."):
            raise NotFound("Image not found")
        path = self.root / filename
        if not path.is_file():
            raise NotFound("Image not found")
        return path

    def exists(self, filename: str) -> bool:
        try:
            self.path_for(filename)
        except NotFound:
            return False
        return True

    def delete(self, filename: str) -> None:
        path = self.path_for(filename)
        path.unlink()
        logger.info("Deleted image %s", filename)

    @staticmethod
    def url_for(filename: str) -> str:
        return IMAGE_URL_PREFIX + filename

    @staticmethod
    def filename_from_url(url: str) -> Optional[str]:
        """Return the stored filename when `url` points at an image served by this API."""
        if not url:
            return None
        path = url.split("?", 1)[0]
        idx = path.find(IMAGE_URL_PREFIX)
        if idx == -1:
            return None
        name = path[idx + len(IMAGE_URL_PREFIX):]
        return name or None


def store_upload(db, store: ImageStore, upload: UploadFile, uploader_id: str) -> str:
    """Save an upload and remember who sent it."""
    filename = store.save(upload)
    create_document(db, IMAGES, {"filename": filename, "uploader": to_object_id(uploader_id)})
    return filename


def delete_upload(db, store: ImageStore, filename: str, requester_id: str) -> None:
    """Only the uploader may delete an image, and not while another seller's listing shows it."""
    store.path_for(filename)
    requester = to_object_id(requester_id)

    record = db[IMAGES].find_one({"filename": filename})
    if record is None or record.get("uploader") != requester:
        raise Forbidden("You can only delete images you uploaded")
    in_use = db[PRODUCTS].find_one(
        {"imageUrl": ImageStore.url_for(filename), "owner": {"$ne": requester}}, {"_id": 1}
    )
    if in_use:
        raise Forbidden("Image is used by another seller's listing")

    store.delete(filename)
    db[IMAGES].delete_one({"_id": record["_id"]})


def get_image_store(request: Request) -> ImageStore:
    return request.app.state.image_store
