"""Custom exceptions for frpc site management."""


class FrpcSitesError(Exception):
    """Base exception for all frpc site management errors."""
    pass


class RegistryError(FrpcSitesError):
    """Raised when a site registry operation is rejected."""
    pass


class DuplicateKeyError(RegistryError):
    """Raised when an add or rename collides with an existing unique key."""

    def __init__(self, field: str, value: object, message: str | None = None) -> None:
        self.field = field
        self.value = value
        super().__init__(message or f"{field} '{value}' already exists")


class NotFoundError(RegistryError):
    """Raised when an operation references a key absent from the registry."""

    def __init__(self, key: str, message: str | None = None) -> None:
        self.key = key
        super().__init__(message or f"No site or proxy config found for '{key}'")


class ExhaustedRangeError(FrpcSitesError):
    """Raised when the port allocator finds no free port in its range."""

    def __init__(self, start_port: int, max_port: int, count: int = 1) -> None:
        self.start_port = start_port
        self.max_port = max_port
        self.count = count
        if count == 1:
            message = f"No available port between {start_port} and {max_port}"
        else:
            message = f"Could not allocate {count} ports between {start_port} and {max_port}"
        super().__init__(message)


class SyncError(FrpcSitesError):
    """Base exception for failures talking to the frpc admin API."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class FetchError(SyncError):
    """Raised when the current configuration cannot be fetched."""
    pass


class SaveError(SyncError):
    """Raised when the configuration could not be persisted."""
    pass


class ReloadError(SyncError):
    """Raised when the configuration was saved but frpc failed to reload it."""
    pass


class NoBaselineError(SyncError):
    """Raised when saving before any configuration has been loaded."""

    def __init__(self, message: str = "No configuration loaded; call load() before save()") -> None:
        super().__init__(message)
