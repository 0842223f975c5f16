"""
core/exceptions.py
Exception hierarchy for the certificate generation service.

Lookup and finalization errors propagate to the caller; per-record errors are
caught by the orchestrator and stored on the record instead.
"""
from typing import Any, Dict, Optional


class CertificateServiceError(Exception):
    """Base exception for all service errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(CertificateServiceError):
    """A template, batch or certificate id does not resolve."""

    status_code = 404

    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            f"{entity} not found: {entity_id}",
            code="NOT_FOUND",
            details={"entity": entity, "id": entity_id},
        )


class BatchBusyError(CertificateServiceError):
    """The batch is already being processed by another run."""

    status_code = 409

    def __init__(self, batch_id: str, status: Optional[str] = None):
        message = f"Batch {batch_id} cannot be claimed"
        if status:
            message += f" (status: {status})"
        super().__init__(message, code="BATCH_BUSY", details={"batch_id": batch_id, "status": status})


class BatchFinalizationError(CertificateServiceError):
    """Writing the aggregate batch status at the end of a run failed."""

    def __init__(self, batch_id: str, reason: str):
        super().__init__(
            f"Failed to finalize batch {batch_id}: {reason}",
            code="FINALIZATION_FAILED",
            details={"batch_id": batch_id},
        )


class StorageError(CertificateServiceError):
    """The content publisher could not store an object."""

    def __init__(self, key: str, reason: str):
        super().__init__(
            f"Failed to store {key}: {reason}",
            code="STORAGE_ERROR",
            details={"key": key},
        )


class SpreadsheetError(CertificateServiceError):
    """An uploaded spreadsheet could not be read."""

    status_code = 422

    def __init__(self, message: str):
        super().__init__(message, code="INVALID_SPREADSHEET")


class ValidationFailedError(CertificateServiceError):
    """Input was readable but inconsistent (mapping, data values)."""

    status_code = 422

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="VALIDATION_FAILED", details=details)
