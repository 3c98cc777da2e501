"""Custom exceptions for the mdvault MCP server.

Provides a structured exception hierarchy with error codes and
machine-readable error information for better error handling.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Document errors (1xxx)
    DOCUMENT_NOT_FOUND = 1001
    DOCUMENT_ALREADY_EXISTS = 1003
    DOCUMENT_NOT_A_FILE = 1004

    # Structure errors (2xxx)
    SECTION_NOT_FOUND = 2001
    FRONTMATTER_NOT_FOUND = 2002

    # Edit errors (3xxx)
    EDIT_CONFLICT = 3001
    PATCH_INVALID = 3002

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001
    CONFIG_MISSING = 6002

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001
    VAULT_NOT_FOUND = 7002
    PATH_TRAVERSAL_DETECTED = 7005


class VaultError(Exception):
    """Base exception for all vault errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
        suggestion: Optional corrective next step for the caller
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        self.suggestion = suggestion
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        result: Dict[str, Any] = {
            "error": self.message,
            "code": self.code.value,
            "code_name": self.code.name,
        }
        if self.details:
            result["details"] = self.details
        if self.suggestion:
            result["suggestion"] = self.suggestion
        return result

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class DocumentNotFoundError(VaultError):
    """Raised when a document cannot be found."""

    def __init__(
        self,
        path: str,
        message: Optional[str] = None,
        suggestion: Optional[str] = None,
    ):
        super().__init__(
            message or f"File does not exist: {path}",
            code=ErrorCode.DOCUMENT_NOT_FOUND,
            details={"path": path},
            suggestion=suggestion,
        )
        self.path = path


class DocumentExistsError(VaultError):
    """Raised when creating a document that is already present."""

    def __init__(self, path: str):
        super().__init__(
            f"File already exists: {path}",
            code=ErrorCode.DOCUMENT_ALREADY_EXISTS,
            details={"path": path},
            suggestion="Use update_file or patch_file to modify existing files.",
        )
        self.path = path


class InvalidPathError(VaultError):
    """Raised when a virtual path is malformed, names an unknown vault, or escapes its root."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        suggestion: Optional[str] = None,
    ):
        details = {}
        if path:
            details["path"] = path
        super().__init__(message, code=code, details=details, suggestion=suggestion)
        self.path = path


class StorageError(VaultError):
    """Raised for storage/persistence errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if path:
            # Don't expose full paths in error messages for security
            details["path_hint"] = path.split("/")[-1] if "/" in path else path
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.path = path
        self.original_error = original_error


class PatchError(VaultError):
    """Raised when a patch operation cannot be compiled or applied."""

    def __init__(
        self,
        message: str,
        index: Optional[int] = None,
        patch_type: Optional[str] = None,
        code: ErrorCode = ErrorCode.PATCH_INVALID
    ):
        details: Dict[str, Any] = {}
        if index is not None:
            details["index"] = index
        if patch_type:
            details["type"] = patch_type

        super().__init__(message, code=code, details=details)
        self.index = index
        self.patch_type = patch_type


class ConfigurationError(VaultError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key


class ValidationError(VaultError):
    """Raised for general validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value
