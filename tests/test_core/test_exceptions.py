"""
Tests for hpvs_deploy.core.exceptions
=======================================
"""

import pytest

from hpvs_deploy.core.exceptions import (
    AuthError,
    BuildError,
    ConfigurationError,
    CryptoError,
    DeployError,
    RequestRejectedError,
    TransientError,
)


class TestDeployError:
    """Tests for the base exception."""

    def test_defaults(self) -> None:
        error = DeployError("something failed")
        assert error.message == "something failed"
        assert error.error_code == "DEPLOY_ERROR"
        assert error.details == {}
        assert error.stage is None
        assert str(error) == "something failed"

    def test_to_dict(self) -> None:
        error = CryptoError("bad key", error_code="KEY_IMPORT_FAILED", details={"key": "vendor"})
        assert error.to_dict() == {
            "error_type": "CryptoError",
            "message": "bad key",
            "error_code": "KEY_IMPORT_FAILED",
            "details": {"key": "vendor"},
        }

    def test_stage_reads_details(self) -> None:
        error = AuthError("denied", details={"stage": "trust"})
        assert error.stage == "trust"

    def test_repr_names_the_class(self) -> None:
        assert repr(BuildError("no image")).startswith("BuildError(message='no image'")


class TestHierarchy:
    """Every pipeline error is a DeployError with its own default code."""

    @pytest.mark.parametrize(
        "cls,code",
        [
            (ConfigurationError, "CONFIG_ERROR"),
            (AuthError, "AUTH_ERROR"),
            (BuildError, "BUILD_ERROR"),
            (CryptoError, "CRYPTO_ERROR"),
            (TransientError, "TRANSIENT_ERROR"),
        ],
    )
    def test_default_error_codes(self, cls, code: str) -> None:
        error = cls("failed")
        assert isinstance(error, DeployError)
        assert error.error_code == code

    def test_only_transient_errors_are_retryable(self) -> None:
        assert TransientError("503").retryable is True
        assert AuthError("401").retryable is False
        assert RequestRejectedError("400", status_code=400).retryable is False

    def test_request_rejected_carries_status_code(self) -> None:
        error = RequestRejectedError("bad plan", status_code=422, details={"operation": "provision"})
        assert error.status_code == 422
        assert error.details == {"operation": "provision", "status_code": 422}
        assert error.error_code == "REQUEST_REJECTED"
