# =============================================================================
# assessment_core/errors/exceptions.py
# Custom Exception Hierarchy for the sync core
# =============================================================================

from typing import Optional, Dict, Any, List


class AssessmentSyncError(Exception):
    """
    Base exception for all sync core errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "SYNC_001")
        details: Additional context as a dictionary
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "SYNC_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# REMOTE STORE EXCEPTIONS
# =============================================================================

class RemoteFetchError(AssessmentSyncError):
    """Raised when one or more table reads fail during a refresh"""

    def __init__(
        self,
        message: str,
        tables: Optional[List[str]] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if tables:
            details["tables"] = list(tables)

        super().__init__(
            message=message,
            code="SYNC_001",
            details=details,
            **kwargs,
        )
        self.tables = list(tables or [])


class MutationError(AssessmentSyncError):
    """Raised when a remote write could not be completed"""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        operation: Optional[str] = None,
        entity_id: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if table:
            details["table"] = table
        if operation:
            details["operation"] = operation
        if entity_id:
            details["entity_id"] = entity_id

        super().__init__(
            message=message,
            code="MUT_001",
            details=details,
            **kwargs,
        )


# =============================================================================
# ATTACHMENT EXCEPTIONS
# =============================================================================

class AttachmentError(AssessmentSyncError):
    """Raised when an attachment upload fails"""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if path:
            details["path"] = path

        super().__init__(
            message=message,
            code="FILE_001",
            details=details,
            **kwargs,
        )


# =============================================================================
# SCHEMA / CONFIGURATION EXCEPTIONS
# =============================================================================

class SchemaError(AssessmentSyncError):
    """Raised for unknown entity kinds or field names that do not translate cleanly"""

    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        fields: Optional[List[str]] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if kind:
            details["kind"] = kind
        if fields:
            details["fields"] = list(fields)

        super().__init__(
            message=message,
            code="SCHEMA_001",
            details=details,
            recoverable=False,
            **kwargs,
        )


class ConfigurationError(AssessmentSyncError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )


class CredentialConfirmationError(AssessmentSyncError):
    """Raised when a destructive operation is confirmed with the wrong credentials"""

    def __init__(self, message: str, hospital_id: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if hospital_id:
            details["hospital_id"] = hospital_id

        super().__init__(
            message=message,
            code="AUTH_001",
            details=details,
            **kwargs,
        )
