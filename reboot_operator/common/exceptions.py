"""
Custom Exception Classes for the Reboot Operator

Hierarchical exception structure for error handling across services.
"""


class OperatorError(Exception):
    """Base exception for all reboot operator errors"""

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class ConfigError(OperatorError):
    """Configuration-related errors"""

    def __init__(self, message: str, recoverable: bool = False):
        super().__init__(f"Config Error: {message}", recoverable)


class RepositoryError(OperatorError):
    """State repository errors"""

    def __init__(
        self,
        message: str,
        machine: str | None = None,
        status_code: int | None = None,
        recoverable: bool = True,
    ):
        self.machine = machine
        self.status_code = status_code
        super().__init__(f"Repository Error: {message}", recoverable)


class ListError(RepositoryError):
    """Listing machines failed"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(f"list failed: {message}", status_code=status_code)


class AnnotationWriteError(RepositoryError):
    """Annotation patch was rejected or could not be sent"""

    def __init__(
        self,
        message: str,
        machine: str | None = None,
        annotations: dict[str, str] | None = None,
        status_code: int | None = None,
    ):
        self.annotations = annotations or {}
        super().__init__(
            f"annotation write on {machine} failed: {message}",
            machine=machine,
            status_code=status_code,
        )

    @property
    def is_conflict(self) -> bool:
        return self.status_code == 409


class WatchError(RepositoryError):
    """Change subscription could not be opened or reported an error"""

    def __init__(
        self,
        message: str,
        machine: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(
            f"watch on {machine} failed: {message}",
            machine=machine,
            status_code=status_code,
        )

