import boto3
from django.conf import settings
from botocore.exceptions import BotoCoreError, ClientError
import logging

from apps.core.errors import RemoteError

logger = logging.getLogger(__name__)


class S3StorageService:
    """
    Service for handling S3 operations
    Uploads attachment bytes and returns their public URL
    """

    def __init__(self, client=None):
        self.s3_client = client or boto3.client(
            "s3",
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            region_name=settings.AWS_S3_REGION_NAME,
        )
        self.bucket_name = settings.AWS_STORAGE_BUCKET_NAME

    def public_url(self, path: str) -> str:
        return f"https://{self.bucket_name}.s3.{settings.AWS_S3_REGION_NAME}.amazonaws.com/{path}"

    def upload(self, fileobj, path: str, content_type: str = "application/octet-stream") -> str:
        """
        Upload a file object under ``path``

        Returns:
            public URL of the stored object

        Raises:
            RemoteError: UPLOAD_ERROR
        """
        try:
            self.s3_client.upload_fileobj(fileobj, self.bucket_name, path, ExtraArgs={"ContentType": content_type})
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to upload {path}: {str(e)}")
            raise RemoteError("File upload failed", "UPLOAD_ERROR", details={"reason": str(e)}) from e

        logger.info(f"Uploaded file: {path}")
        return self.public_url(path)

    def delete(self, path: str) -> bool:
        """Delete a file from S3"""
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=path)
            logger.info(f"Deleted file: {path}")
            return True
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to delete file {path}: {str(e)}")
            return False
