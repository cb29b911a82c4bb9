import logging
import uuid

from fastapi import UploadFile

from storefront.cloudinary_client import CloudinaryStorage
from storefront.errors import ExternalServiceError, ValidationError

logger = logging.getLogger(__name__)

# ======================================================
# UPLOAD RULES
# ======================================================

IMAGE_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
    "image/gif",
}

MAX_FILE_SIZE = 5 * 1024 * 1024  # 5MB
MAX_PRODUCT_PHOTOS = 5

ALLOWED_FOLDERS = {
    "users",
    "products",
}


def validate_image(file: UploadFile) -> None:
    if not file or not file.filename:
        raise ValidationError("No file uploaded")

    content_type = (file.content_type or "").lower().strip()
    if content_type not in IMAGE_TYPES:
        raise ValidationError(
            f"Unsupported file type: '{content_type}'. Allowed: JPEG, PNG, WebP, GIF."
        )

    # Stream-safe size check
    try:
        file.file.seek(0, 2)
        size = file.file.tell()
        file.file.seek(0)
    except (OSError, ValueError):
        raise ValidationError("Failed to read uploaded file")

    if size == 0:
        raise ValidationError("Uploaded file is empty")

    if size > MAX_FILE_SIZE:
        raise ValidationError(
            f"File size {round(size / 1024 / 1024, 1)}MB exceeds 5MB limit"
        )


def handle_upload(
    storage: CloudinaryStorage,
    file: UploadFile,
    folder: str,
    owner_id: str,
) -> dict:
    """
    Validate one image and push it to storage.
    Returns ``{"id": public_id, "url": secure_url}``.
    """
    if folder not in ALLOWED_FOLDERS:
        raise ValidationError(f"Invalid upload destination: '{folder}'")

    validate_image(file)

    # Unique public_id per upload, avoids CDN cache collisions
    public_id = f"{folder}_{owner_id}_{uuid.uuid4().hex}"
    return storage.upload_image(file.file, folder=folder, public_id=public_id)


def handle_photo_set(
    storage: CloudinaryStorage,
    files: list[UploadFile],
    folder: str,
    owner_id: str,
) -> list[dict]:
    """Validate the whole set first so a bad file uploads nothing."""
    if not files:
        raise ValidationError("Files not provided")
    if len(files) > MAX_PRODUCT_PHOTOS:
        raise ValidationError(
            f"Maximum {MAX_PRODUCT_PHOTOS} photos can be uploaded for a product"
        )

    for file in files:
        validate_image(file)

    uploaded = []
    try:
        for file in files:
            uploaded.append(handle_upload(storage, file, folder, owner_id))
    except ExternalServiceError:
        discard_uploads(storage, uploaded)
        raise
    return uploaded


def discard_uploads(storage: CloudinaryStorage, uploaded: list[dict]) -> None:
    """Best-effort removal of assets from a request that is failing anyway."""
    for asset in uploaded:
        try:
            storage.delete_image(asset["id"])
        except ExternalServiceError:
            logger.warning("Orphaned upload left in storage | public_id=%s", asset["id"])
