from __future__ import annotations

from typing import Sequence


class UploadServiceError(Exception):
    """Base exception for the uploads service."""


class ValidationError(UploadServiceError, ValueError):
    """Raised for client-caused input problems."""

    def __init__(self, message: str, details: Sequence[str] | None = None) -> None:
        super().__init__(message)
        self.details = list(details or [])


class ProviderError(UploadServiceError):
    """Raised when the remote video provider fails or misbehaves."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(UploadServiceError):
    pass


class SessionNotFoundError(NotFoundError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Upload session {session_id} not found")
        self.session_id = session_id


class AssetNotFoundError(NotFoundError):
    def __init__(self, provider_asset_id: str) -> None:
        super().__init__(f"Asset {provider_asset_id} not found")
        self.provider_asset_id = provider_asset_id


class UnknownStatusError(UploadServiceError):
    def __init__(self, raw_state: str) -> None:
        super().__init__(f"Unknown video status: {raw_state}")
        self.raw_state = raw_state


class DatabaseError(UploadServiceError):
    pass


class InvalidTransitionError(UploadServiceError):
    pass
