from .audit_service import AuditService, actor_for, normalize_entry
from .diff_logger import DiffLogger, status_action
from .outbox import AuditEvent, AuditOutbox
from .trail_cache import AuditTrailCache
