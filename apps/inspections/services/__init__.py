from .inspection_service import COMPOSITE_FIELDS, ENTITY_TYPE, STATUS_TRANSITIONS, TRACKED_FIELDS, InspectionService, inspection_diff_logger

__all__ = ["COMPOSITE_FIELDS", "ENTITY_TYPE", "STATUS_TRANSITIONS", "TRACKED_FIELDS", "InspectionService", "inspection_diff_logger"]
