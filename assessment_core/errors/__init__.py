# =============================================================================
# assessment_core/errors/__init__.py
# Centralized Error Handling for the sync core
# =============================================================================

from .exceptions import (
    AssessmentSyncError,
    RemoteFetchError,
    MutationError,
    AttachmentError,
    SchemaError,
    ConfigurationError,
    CredentialConfirmationError,
)

from .handlers import (
    handle_error,
    safe_execute,
    error_boundary,
    ErrorContext,
)

__all__ = [
    # Exceptions
    "AssessmentSyncError",
    "RemoteFetchError",
    "MutationError",
    "AttachmentError",
    "SchemaError",
    "ConfigurationError",
    "CredentialConfirmationError",
    # Handlers
    "handle_error",
    "safe_execute",
    "error_boundary",
    "ErrorContext",
]
