from django.conf import settings

from .cloudinary_service import CloudinaryStorageService
from .s3_service import S3StorageService

BACKENDS = {
    "s3": S3StorageService,
    "cloudinary": CloudinaryStorageService,
}


def get_storage_service(backend: str = None):
    """Attachment storage selected by ATTACHMENT_STORAGE_BACKEND"""
    backend = backend or settings.ATTACHMENT_STORAGE_BACKEND
    service_class = BACKENDS.get(backend)
    if service_class is None:
        raise ValueError(f"Unknown attachment storage backend {backend}")
    return service_class()


__all__ = ["CloudinaryStorageService", "S3StorageService", "get_storage_service"]
