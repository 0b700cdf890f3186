"""
hpvs_deploy.core.exceptions - Custom Exception Hierarchy
==========================================================

Every component of the deployment pipeline raises one of the typed errors
below instead of returning exit codes. The orchestrator catches them only to
attach stage context and run the registry logout, then re-raises.

Exception Hierarchy:
    DeployError (base)
        ├── ConfigurationError    - Missing/invalid settings, unsupported platform,
        │                           architecture mismatch. Raised before any network call.
        ├── AuthError             - Registry login or cloud token exchange failed
        ├── BuildError            - Local image missing, cannot be pulled or tagged
        ├── CryptoError           - Key import, encryption or signing failed
        ├── TransientError        - Network failure, timeout, 5xx (retry candidate)
        └── RequestRejectedError  - The cloud API rejected the request (4xx)

All errors are fatal to the run. TransientError is the only one a
RetryPolicy will retry, and only when retries are enabled.

Usage:
    >>> raise CryptoError(
    ...     message="Failed to import the vendor private key",
    ...     error_code="KEY_IMPORT_FAILED",
    ...     details={"key_name": "vendor"},
    ... )
"""

from __future__ import annotations

from typing import Any, Optional


# =============================================================================
# Base Exception
# =============================================================================
class DeployError(Exception):
    """Base exception for all deployment pipeline errors.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable UPPER_SNAKE_CASE code.
        details: Debugging context. The orchestrator adds the failing
            ``stage`` here before re-raising.
    """

    retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str = "DEPLOY_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)

        self.message = message
        self.error_code = error_code
        self.details = details or {}

    @property
    def stage(self) -> Optional[str]:
        """Pipeline stage the error was raised in, once the orchestrator set it."""
        return self.details.get("stage")

    def to_dict(self) -> dict[str, Any]:
        """Serialize this exception for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


# =============================================================================
# Configuration Error
# =============================================================================
# Always fatal, always raised before the first network call. The CLI prints
# usage guidance after the message for this error type only.
# =============================================================================
class ConfigurationError(DeployError):
    """Raised when deployment settings are missing, invalid or inconsistent.

    Common Causes:
        - Unsupported platform name
        - Local-build mode on a host that cannot build s390x images
        - Missing vendor key files or required credentials
        - No resource group exists for the cloud account
        - Malformed configuration file
    """

    def __init__(
        self,
        message: str,
        error_code: str = "CONFIG_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


class AuthError(DeployError):
    """Raised when registry login or cloud token exchange fails."""

    def __init__(
        self,
        message: str,
        error_code: str = "AUTH_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


class BuildError(DeployError):
    """Raised when the local image cannot be pulled or tagged.

    Non-retryable: a missing local image does not appear by trying again.
    """

    def __init__(
        self,
        message: str,
        error_code: str = "BUILD_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


class CryptoError(DeployError):
    """Raised when a key import, encryption or signing step fails.

    A CryptoError always means the artifact being built is unusable; callers
    must discard it rather than submit it.
    """

    def __init__(
        self,
        message: str,
        error_code: str = "CRYPTO_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


# =============================================================================
# Cloud API Errors
# =============================================================================
# The cloud client classifies failures by response class:
#
#   connect error / timeout / 5xx / 429  → TransientError
#   other 4xx                            → RequestRejectedError
#
# Both are fatal to the run; only TransientError is eligible for a retry.
# =============================================================================
class TransientError(DeployError):
    """Raised on network failures, timeouts and server-side (5xx) errors."""

    retryable = True

    def __init__(
        self,
        message: str,
        error_code: str = "TRANSIENT_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


class RequestRejectedError(DeployError):
    """Raised when the cloud API rejects a request as invalid (4xx).

    Attributes:
        status_code: HTTP status code returned by the API.
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        error_code: str = "REQUEST_REJECTED",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        enriched_details = details or {}
        enriched_details["status_code"] = status_code

        super().__init__(message=message, error_code=error_code, details=enriched_details)

        self.status_code = status_code
