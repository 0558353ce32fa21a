"""Exception classes for videorelay."""

from typing import Optional


class VideoRelayError(Exception):
    """Base exception for all application errors."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class AuthError(VideoRelayError):
    """Missing or invalid x-password-hash header."""

    status_code = 401


class ConfigError(VideoRelayError):
    """A required credential or environment value is not set."""

    status_code = 500


class RemoteProviderError(VideoRelayError):
    """The remote video API returned an error or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.remote_status = status_code
        super().__init__(message, status_code or 500)


class PersistenceError(VideoRelayError):
    """The local record store failed."""

    status_code = 500


class StorageError(VideoRelayError):
    """Object storage or local file storage failed."""

    def __init__(self, message: str, *, missing: bool = False) -> None:
        self.missing = missing
        super().__init__(message, 500)


class PartialAssetError(VideoRelayError):
    """An optional asset variant could not be mirrored."""

    def __init__(self, job_id: str, variant: str, cause: Exception) -> None:
        self.job_id = job_id
        self.variant = variant
        self.cause = cause
        super().__init__(f"Optional asset {variant} unavailable for video {job_id}: {cause}")
