"""
Error taxonomy shared by the project store, service and routers.

Every error carries the HTTP status it maps to and a message that is safe to
show to API callers. Internal detail (driver errors, tracebacks) stays in the
logs and never goes into ``message``.
"""
from typing import Optional


class ProjectError(Exception):
    """Base class for all expected, per-request failures"""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ProjectError):
    """Bad or missing input, rejected before reaching storage"""

    status_code = 400
    default_message = "Invalid project data"


class NotFoundError(ProjectError):
    """No project exists for the requested id"""

    status_code = 404
    default_message = "Project not found"


class StorageFault(ProjectError):
    """The backing store could not complete an operation"""

    status_code = 500
    default_message = "Storage failure"


class RateLimitExceeded(ProjectError):
    status_code = 429
    default_message = "Too many requests from this IP, please try again later."
