"""Unit tests for remote error classification."""

import pytest

from bestbefore.core.errors import ErrorCode, RemoteErrorKind, classify_remote_error


@pytest.mark.unit
class TestClassifyByStatus:
    """HTTP responses are classified by status code alone."""

    @pytest.mark.parametrize(
        ("status", "code"),
        [
            (408, ErrorCode.ERR_TIMEOUT),
            (429, ErrorCode.ERR_RATE_LIMIT_EXCEEDED),
            (500, ErrorCode.ERR_SERVER_ERROR),
            (503, ErrorCode.ERR_SERVER_ERROR),
            (401, ErrorCode.ERR_AUTHENTICATION_FAILED),
        ],
    )
    def test_retryable_statuses(self, status: int, code: str):
        error = classify_remote_error(message="boom", status=status)

        assert error.kind is RemoteErrorKind.RETRYABLE
        assert error.code == code
        assert error.status == status
        assert error.retryable

    def test_forbidden_is_permanent(self):
        error = classify_remote_error(message="permission denied for table products", status=403)

        assert error.kind is RemoteErrorKind.PERMANENT
        assert error.code == ErrorCode.ERR_PERMISSION_DENIED

    @pytest.mark.parametrize("status", [400, 404, 409, 422])
    def test_other_client_errors_are_permanent(self, status: int):
        error = classify_remote_error(message="connection reset", status=status)

        assert error.kind is RemoteErrorKind.PERMANENT
        assert error.code == ErrorCode.ERR_VALIDATION


@pytest.mark.unit
class TestClassifyWithoutStatus:
    """Transport failures are classified from exception type and message."""

    def test_connect_error(self):
        error = classify_remote_error(message="All connection attempts failed", exception_type="ConnectError")

        assert error.code == ErrorCode.ERR_NETWORK_ERROR
        assert error.retryable

    def test_read_timeout(self):
        error = classify_remote_error(message="", exception_type="ReadTimeout")

        assert error.code == ErrorCode.ERR_TIMEOUT
        assert error.retryable

    def test_timeout_phrase(self):
        error = classify_remote_error(message="Remote request timed out after 15.0s")

        assert error.code == ErrorCode.ERR_TIMEOUT

    def test_jwt_expired_is_retryable(self):
        error = classify_remote_error(message="JWT expired")

        assert error.code == ErrorCode.ERR_AUTHENTICATION_FAILED
        assert error.retryable

    def test_row_level_security_is_permanent(self):
        error = classify_remote_error(message='new row violates row-level security policy for table "products"')

        assert error.code == ErrorCode.ERR_PERMISSION_DENIED
        assert not error.retryable

    def test_constraint_violation_is_permanent(self):
        error = classify_remote_error(message='null value in column "name" violates not-null constraint')

        assert error.code == ErrorCode.ERR_VALIDATION
        assert not error.retryable

    def test_unknown_error_is_kept_for_retry(self):
        error = classify_remote_error(message="something odd happened")

        assert error.code == ErrorCode.ERR_UNKNOWN
        assert error.retryable

    def test_status_below_400_is_ignored(self):
        error = classify_remote_error(message="Server disconnected", status=200)

        assert error.code == ErrorCode.ERR_UNKNOWN
