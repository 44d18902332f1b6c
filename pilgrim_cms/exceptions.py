"""Custom exception hierarchy for the pilgrim portal content service."""

from enum import Enum
from typing import Optional, Dict, Any, List


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # Service set-up
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"

    # Commit protocol
    ALLOCATOR_UNAVAILABLE = "ALLOCATOR_UNAVAILABLE"
    UPLOAD_FAILED = "UPLOAD_FAILED"
    METADATA_COMMIT_FAILED = "METADATA_COMMIT_FAILED"

    # Content lookups
    CONTENT_NOT_FOUND = "CONTENT_NOT_FOUND"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    UNKNOWN_AREA = "UNKNOWN_AREA"

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Backend faults
    STORE_ERROR = "STORE_ERROR"

    # Generic errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class PortalException(Exception):
    """
    Base exception for all content service errors.

    Provides structured error responses with:
    - Human-readable message
    - Machine-readable error code
    - HTTP status code
    - Optional additional details
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        return {
            "error": self.error_code.value,
            "message": self.message,
            "details": self.details
        }


class ConfigurationError(PortalException):
    """Required service credentials are missing or still placeholders."""

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        super().__init__(
            message,
            ErrorCode.CONFIGURATION_ERROR,
            status_code=503,
            details={"missing": missing} if missing else {}
        )


class AuthenticationError(PortalException):
    """Anonymous sign-in against the identity provider failed."""

    def __init__(self, message: str = "Authentication failed. Uploads may not work properly."):
        super().__init__(
            message,
            ErrorCode.AUTHENTICATION_FAILED,
            status_code=502,
        )


class AllocatorUnavailableError(PortalException):
    """Folder listing failed, so no folder id can be handed out."""

    def __init__(self, prefix: str, original_error: Optional[Exception] = None):
        details: Dict[str, Any] = {"prefix": prefix}
        if original_error:
            details["original_error"] = str(original_error)
        super().__init__(
            "Preparing upload location, please try again in a moment",
            ErrorCode.ALLOCATOR_UNAVAILABLE,
            status_code=503,
            details=details
        )


class UploadFailedError(PortalException):
    """One or more files of a commit failed to transfer.

    ``file`` names the first failure; ``failures`` lists every failed file
    of the batch. Objects that did upload are left in place.
    """

    def __init__(
        self,
        file: str,
        path: str,
        index: Optional[int] = None,
        failures: Optional[List[Dict[str, Any]]] = None,
        uploaded: Optional[List[str]] = None,
    ):
        super().__init__(
            f"Upload failed: {file}",
            ErrorCode.UPLOAD_FAILED,
            status_code=502,
            details={
                "file": file,
                "path": path,
                "index": index,
                "failures": failures or [],
                "uploaded": uploaded or [],
            }
        )
        self.file = file
        self.path = path


class MetadataCommitFailedError(PortalException):
    """All uploads succeeded but the record write did not.

    The uploaded objects remain in storage with no record pointing at them.
    """

    def __init__(
        self,
        collection: str,
        folder_id: int,
        orphaned_paths: List[str],
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {
            "collection": collection,
            "folder_id": folder_id,
            "orphaned_paths": orphaned_paths,
        }
        if original_error:
            details["original_error"] = str(original_error)
        super().__init__(
            f"Files uploaded but metadata for {collection}/{folder_id} was not saved",
            ErrorCode.METADATA_COMMIT_FAILED,
            status_code=502,
            details=details
        )
        self.orphaned_paths = orphaned_paths


class ContentNotFoundError(PortalException):
    """No record exists for the requested folder id."""

    def __init__(self, collection: str, folder_id: int):
        super().__init__(
            "Content not found",
            ErrorCode.CONTENT_NOT_FOUND,
            status_code=404,
            details={"collection": collection, "folder_id": folder_id}
        )


class StoredFileNotFoundError(PortalException):
    """The item has no stored file at the given path."""

    def __init__(self, collection: str, folder_id: int, path: str):
        super().__init__(
            "File not found on this content item",
            ErrorCode.FILE_NOT_FOUND,
            status_code=404,
            details={"collection": collection, "folder_id": folder_id, "path": path}
        )


class UnknownAreaError(PortalException):
    """Area or category outside the closed set."""

    def __init__(self, area: str, category: Optional[str] = None):
        target = f"{area}/{category}" if category else area
        details: Dict[str, Any] = {"area": area}
        if category:
            details["category"] = category
        super().__init__(
            f"Unknown content area: {target}",
            ErrorCode.UNKNOWN_AREA,
            status_code=404,
            details=details
        )


class ValidationError(PortalException):
    """Validation failed for user input."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(
            message,
            ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details=details
        )


class StoreError(PortalException):
    """A backend store call failed."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        details = {}
        if original_error:
            details["original_error"] = str(original_error)

        super().__init__(
            message,
            ErrorCode.STORE_ERROR,
            status_code=502,
            details=details
        )
