import logging

import cloudinary
import cloudinary.uploader
from fastapi import Request

from storefront.config import Settings
from storefront.errors import ExternalServiceError

logger = logging.getLogger(__name__)


class CloudinaryStorage:
    """
    Image upload/delete against Cloudinary.
    Assets are addressed by their public id; the secure URL is what gets stored.
    """

    def __init__(self, settings: Settings):
        self.configured = all(
            [
                settings.cloudinary_cloud_name,
                settings.cloudinary_api_key,
                settings.cloudinary_api_secret,
            ]
        )
        if self.configured:
            cloudinary.config(
                cloud_name=settings.cloudinary_cloud_name,
                api_key=settings.cloudinary_api_key,
                api_secret=settings.cloudinary_api_secret,
                secure=True,
            )
        else:
            logger.warning("Cloudinary environment variables are not set; uploads will fail")

    def upload_image(self, file, folder: str, public_id: str | None = None) -> dict:
        """Upload an image and return ``{"id": public_id, "url": secure_url}``."""
        if not self.configured:
            raise ExternalServiceError("storage", "Cloud storage is not configured.")

        try:
            result = cloudinary.uploader.upload(
                file,
                folder=folder,
                public_id=public_id,
                resource_type="image",
                eager=[{"width": 500, "crop": "pad"}],
            )
        except Exception as e:
            logger.exception("Cloudinary upload failed | folder=%s | error=%s", folder, str(e))
            raise ExternalServiceError("storage", "Failed to upload image to cloud storage.")

        return {"id": result["public_id"], "url": result["secure_url"]}

    def delete_image(self, public_id: str) -> None:
        if not self.configured:
            raise ExternalServiceError("storage", "Cloud storage is not configured.")

        try:
            cloudinary.uploader.destroy(public_id, resource_type="image")
        except Exception as e:
            logger.exception(
                "Cloudinary delete failed | public_id=%s | error=%s", public_id, str(e)
            )
            raise ExternalServiceError("storage", "Failed to delete image from cloud storage.")


def get_storage(request: Request) -> CloudinaryStorage:
    return request.app.state.storage
