"""
Typed error taxonomy shared by every module

Every failure leaving a service carries a machine-readable ``code`` so callers
can branch on cause without matching message strings.
"""


class ServiceError(Exception):
    """Base error: human readable message plus a stable code"""

    default_code = "UNKNOWN_ERROR"

    def __init__(self, message: str, code: str = None, details=None):
        self.message = message
        self.code = code or self.default_code
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class InputValidationError(ServiceError):
    """Client-side validation failure; raised before any network call"""

    default_code = "VALIDATION_ERROR"


class RemoteError(ServiceError):
    """Remote store, RPC, storage or email failure"""

    default_code = "REMOTE_ERROR"


class ConflictError(RemoteError):
    """
    Version conflict on an optimistic-locking update
    Contains both client and server versions of the record
    """

    default_code = "VERSION_CONFLICT"

    def __init__(self, record: dict, client_version: int, server_version: int):
        self.record = record
        self.client_version = client_version
        self.server_version = server_version
        super().__init__(
            f"Version conflict: client v{client_version} vs server v{server_version}",
            details={"client_version": client_version, "server_version": server_version},
        )


class PermissionDeniedError(ServiceError):
    """Permission gate denial; never reaches the network layer"""

    default_code = "PERMISSION_DENIED"


class AuditLoggingError(ServiceError):
    """Best-effort audit write failed; downgraded to a warning by callers"""

    default_code = "AUDIT_LOG_ERROR"
