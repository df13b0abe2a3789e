import logging
from typing import List

from django.db import DatabaseError

from apps.audit.services import DiffLogger
from apps.core.errors import InputValidationError, RemoteError
from apps.core.store import RemoteStoreAdapter, remote_call
from apps.storage.paths import build_object_path
from apps.storage.services import get_storage_service
from ..models import Variation, VariationAttachment
from ..serializers import VariationAttachmentSerializer

logger = logging.getLogger(__name__)

MAX_ATTACHMENT_SIZE = 10 * 1024 * 1024  # 10mb


class VariationAttachmentService:
    """
    Files attached to a variation

    Bytes go to object storage under {variation_id}/attachments/..., the row
    keeps the original file name and the public URL.
    """

    def __init__(self, storage=None, audit_logger: DiffLogger = None):
        self._storage = storage
        self.audit_logger = audit_logger

    @property
    def storage(self):
        # created lazily so reads never need storage credentials
        if self._storage is None:
            self._storage = get_storage_service()
        return self._storage

    def list_attachments(self, variation_id) -> List[dict]:
        with remote_call("FETCH_ERROR", "Failed to fetch attachments"):
            attachments = VariationAttachment.objects.filter(variation_id=variation_id)
            return [dict(VariationAttachmentSerializer(attachment).data) for attachment in attachments]

    def upload_attachment(self, variation: Variation, uploaded_file, user) -> dict:
        """
        Store a file and record it against the variation

        Args:
            variation: Variation instance
            uploaded_file: Django UploadedFile (name, size, content_type)
            user: uploading user

        Returns:
            the attachment record

        Raises:
            InputValidationError: empty or oversized file
            RemoteError: UPLOAD_ERROR, CREATE_ERROR
        """
        if not uploaded_file or not uploaded_file.size:
            raise InputValidationError("File is empty", "EMPTY_FILE")

        if uploaded_file.size > MAX_ATTACHMENT_SIZE:
            raise InputValidationError("File exceeds the 10MB limit", "FILE_TOO_LARGE")

        path = build_object_path(variation.pk, "attachments", uploaded_file.name)
        content_type = getattr(uploaded_file, "content_type", None) or "application/octet-stream"
        public_url = self.storage.upload(uploaded_file, path, content_type)

        try:
            attachment = VariationAttachment.objects.create(
                variation=variation,
                file_name=uploaded_file.name,
                file_path=path,
                file_size=uploaded_file.size,
                file_type=content_type,
                public_url=public_url,
                uploaded_by_id=RemoteStoreAdapter.user_id_for(user),
            )
        except DatabaseError as e:
            # do not leave an orphaned object behind
            self.storage.delete(path)
            logger.error(f"Failed to record attachment {path}: {str(e)}")
            raise RemoteError("Failed to save attachment", "CREATE_ERROR", details={"reason": str(e)}) from e

        logger.info(f"Uploaded attachment {attachment.file_name} for variation {variation.variation_number}")

        if self.audit_logger:
            self.audit_logger.log_action(
                variation.pk,
                "file_upload",
                user=user,
                comments=f"File {attachment.file_name} uploaded",
                metadata={"attachment_id": str(attachment.pk), "file_size": attachment.file_size},
            )

        return dict(VariationAttachmentSerializer(attachment).data)

    def delete_attachment(self, attachment: VariationAttachment, user) -> dict:
        """Remove the stored object and the row; a failed storage delete does not block the row delete"""
        if not self.storage.delete(attachment.file_path):
            logger.warning(f"Storage delete failed for {attachment.file_path}; removing record anyway")

        attachment_id, variation_id, file_name = str(attachment.pk), attachment.variation_id, attachment.file_name
        with remote_call("DELETE_ERROR", "Failed to delete attachment"):
            attachment.delete()

        if self.audit_logger:
            self.audit_logger.log_action(variation_id, "file_delete", user=user, comments=f"File {file_name} deleted")

        return {"id": attachment_id}
