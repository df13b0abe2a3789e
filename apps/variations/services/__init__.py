from .attachment_service import VariationAttachmentService
from .email_service import VariationEmailService
from .variation_service import COMPOSITE_FIELDS, ENTITY_TYPE, STATUS_TRANSITIONS, TRACKED_FIELDS, VariationService, variation_diff_logger

__all__ = [
    "COMPOSITE_FIELDS",
    "ENTITY_TYPE",
    "STATUS_TRANSITIONS",
    "TRACKED_FIELDS",
    "VariationAttachmentService",
    "VariationEmailService",
    "VariationService",
    "variation_diff_logger",
]
