"""Generic exceptions and errors for backends."""

from typing import Optional


class BackendError(Exception):
    """Error happened on the backend."""


class ConfigurationError(Exception):
    """Tool configuration is incorrect."""


class PermissionDeniedError(BackendError):
    """The caller is not allowed to see or change the requested rows."""


class OneChangeError(BackendError):
    """A rename matched more than one user."""


class JobsRunningError(BackendError):
    """Associations selected for removal still have running jobs."""

    def __init__(self, message: str, names: Optional[list[str]] = None) -> None:
        """Keeps the names of the blocking associations."""
        super().__init__(message)
        self.names = names or []
