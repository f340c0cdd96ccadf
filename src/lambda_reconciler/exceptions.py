"""Exceptions for lambda-reconciler."""

from typing import Any

# ---------------------------------------------------------------------------
# Base Exception
# ---------------------------------------------------------------------------


class LambdaReconcilerError(Exception):
    """
    Base exception for all lambda-reconciler errors.

    All exceptions raised by this library inherit from this class,
    allowing callers to catch all library-specific errors with a single
    except clause.
    """

    pass


# ---------------------------------------------------------------------------
# Category Exceptions
# ---------------------------------------------------------------------------


class PackagingError(LambdaReconcilerError):
    """
    Base exception for packaging errors.

    Raised while building the code or dependency-layer archive.
    """

    pass


class ProviderError(LambdaReconcilerError):
    """
    Base exception for errors returned by AWS.

    This includes Lambda, IAM, and S3 calls made during a reconciliation run.
    """

    pass


class ConfigurationError(LambdaReconcilerError):
    """
    Base exception for invalid user input.

    This includes manifest validation and persisted state decoding errors.
    """

    pass


# ---------------------------------------------------------------------------
# Packaging Exceptions
# ---------------------------------------------------------------------------


class InvalidFormatError(PackagingError):
    """Raised when an archive format is not in the allow-list."""

    def __init__(self, fmt: str, allowed: tuple[str, ...]) -> None:
        self.fmt = fmt
        self.allowed = allowed
        super().__init__(
            f"Unsupported archive format '{fmt}'. Use one of: {', '.join(allowed)}"
        )


class PackagingFailedError(PackagingError):
    """Raised when reading the source tree or writing the archive fails."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Packaging {path} failed: {reason}")


# ---------------------------------------------------------------------------
# Provider Exceptions
# ---------------------------------------------------------------------------


def _error_code(cause: Exception | None) -> str | None:
    response: Any = getattr(cause, "response", None)
    if isinstance(response, dict):
        return response.get("Error", {}).get("Code")
    return None


class RemoteReadFailedError(ProviderError):
    """
    Raised when the deployed function configuration cannot be read.

    Only ``ResourceNotFoundException`` means the function is absent; any
    other failure (permissions, throttling, network) ends up here.
    """

    def __init__(self, function_name: str, cause: Exception | None = None) -> None:
        self.function_name = function_name
        self.cause = cause
        self.error_code = _error_code(cause)
        super().__init__(f"Failed to read function '{function_name}': {cause}")


class ProviderCallFailedError(ProviderError):
    """
    Raised when a Lambda or S3 call fails.

    Attributes:
        operation: API operation name (e.g. ``update_function_code``)
        target: Function name, bucket, or layer the call addressed
        cause: The underlying exception
        error_code: AWS error code when the cause is a ``ClientError``
    """

    def __init__(self, operation: str, target: str, cause: Exception | None = None) -> None:
        self.operation = operation
        self.target = target
        self.cause = cause
        self.error_code = _error_code(cause)
        super().__init__(f"{operation} failed for '{target}': {cause}")


class RoleProvisioningFailedError(ProviderError):
    """Raised when the execution role cannot be looked up, created, or removed."""

    def __init__(self, role_name: str, cause: Exception | None = None) -> None:
        self.role_name = role_name
        self.cause = cause
        self.error_code = _error_code(cause)
        super().__init__(f"Role provisioning failed for '{role_name}': {cause}")


# ---------------------------------------------------------------------------
# Configuration Exceptions
# ---------------------------------------------------------------------------


class ValidationError(ConfigurationError):
    """Raised when a configuration value is invalid."""

    def __init__(self, field: str, value: Any, reason: str) -> None:
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} '{value}': {reason}")


class StateError(ConfigurationError):
    """Raised when the persisted state document cannot be read or written."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"State file {path}: {reason}")
