import logging
import cloudinary
import cloudinary.uploader
from django.conf import settings

from apps.core.errors import RemoteError

logger = logging.getLogger(__name__)


class CloudinaryStorageService:
    """
    Service for handling Cloudinary operations
    Attachments are stored as raw resources so any file type is accepted
    """

    resource_type = "raw"

    def __init__(self):
        cloudinary.config(
            cloud_name=settings.CLOUDINARY_STORAGE["CLOUD_NAME"],
            api_key=settings.CLOUDINARY_STORAGE["API_KEY"],
            api_secret=settings.CLOUDINARY_STORAGE["API_SECRET"],
            secure=True,
        )

    def upload(self, fileobj, path: str, content_type: str = "application/octet-stream") -> str:
        """
        Upload a file object with ``path`` as its public_id

        Args:
            fileobj: readable file object
            path: object path from build_object_path
            content_type: MIME type, kept as resource context

        Returns:
            secure URL of the stored resource

        Raises:
            RemoteError: UPLOAD_ERROR
        """
        try:
            result = cloudinary.uploader.upload(
                fileobj,
                public_id=path,
                resource_type=self.resource_type,
                overwrite=False,
                context={"content_type": content_type},
            )
        except Exception as e:
            logger.error(f"Failed to upload {path} to Cloudinary: {str(e)}")
            raise RemoteError("File upload failed", "UPLOAD_ERROR", details={"reason": str(e)}) from e

        logger.info(f"Uploaded file: {path}")
        return result["secure_url"]

    def delete(self, path: str) -> bool:
        """
        Delete a resource from Cloudinary

        Returns:
            bool indicating success
        """
        try:
            result = cloudinary.uploader.destroy(path, resource_type=self.resource_type)
            logger.info(f"Deleted file: {path}")
            return result.get("result") == "ok"

        except Exception as e:
            logger.error(f"Failed to delete file {path}: {str(e)}")
            return False
