"""
Tests for the error taxonomy

Tests for user messages, audit projection, severity and normalization.
"""

import pytest

from evolua_resilience.core.recovery import (
    ErrorContext,
    ErrorFactory,
    ErrorKind,
    FieldError,
    PatientManagementError,
    Severity,
    normalize_error,
)
from evolua_resilience.core.recovery.errors import DatabaseDetails, NotFoundDetails


# =============================================================================
# Construction
# =============================================================================

class TestConstruction:
    """Tests for factory construction."""

    def test_every_error_has_kind_and_code(self):
        errors = [
            ErrorFactory.create_validation_error([]),
            ErrorFactory.create_not_found_error("Patient", "p-1"),
            ErrorFactory.create_authorization_error("u-1", "report", "read"),
            ErrorFactory.create_security_violation("tampering", "token_reuse", "high"),
            ErrorFactory.create_compliance_error("no consent", "consent", "violation"),
            ErrorFactory.create_database_error("boom", "insert"),
            ErrorFactory.create_storage_error("boom", "file"),
            ErrorFactory.create_network_error("boom"),
            ErrorFactory.create_integration_error("boom", "AppointmentSystem", "sync"),
            ErrorFactory.create_data_sync_error("boom", "db", "calendar"),
        ]

        assert {e.kind for e in errors} == set(ErrorKind)
        for error in errors:
            assert error.code
            assert error.timestamp is not None

    def test_payload_must_match_kind(self):
        with pytest.raises(TypeError):
            PatientManagementError(ErrorKind.DATABASE, "boom", NotFoundDetails("Patient", "1"))

    def test_field_errors_accept_mappings(self):
        error = ErrorFactory.create_validation_error(
            [{"field": "cpf", "message": "CPF is invalid", "code": "INVALID_CPF"}]
        )

        assert error.details.field_errors == (
            FieldError(field="cpf", message="CPF is invalid", code="INVALID_CPF"),
        )
        assert error.details.field == "cpf"

    def test_original_cause_is_chained(self):
        cause = ConnectionError("socket closed")
        error = ErrorFactory.create_database_error("Connection failed", "select", cause)

        assert error.original_cause is cause
        assert error.__cause__ is cause


# =============================================================================
# User Messages
# =============================================================================

class TestUserMessages:
    """Tests for get_user_message."""

    def test_single_validation_error_message_verbatim(self):
        error = ErrorFactory.create_validation_error(
            [FieldError("email", "Email is required", "REQUIRED")]
        )

        assert error.get_user_message() == "Email is required"

    def test_multiple_validation_errors_summarized(self):
        error = ErrorFactory.create_validation_error(
            [
                FieldError("email", "Email is required", "REQUIRED"),
                FieldError("name", "Name is required", "REQUIRED"),
            ]
        )

        assert "2 errors found" in error.get_user_message()

    def test_not_found_hides_identifier(self):
        error = ErrorFactory.create_not_found_error("Patient", "patient-secret-42")
        message = error.get_user_message()

        assert message == "The requested patient could not be found."
        assert "patient-secret-42" not in message

    def test_authorization_discloses_nothing(self):
        error = ErrorFactory.create_authorization_error("user-9", "medical-record", "delete")
        message = error.get_user_message()

        assert message == "You do not have permission to perform this action."
        assert "user-9" not in message
        assert "medical-record" not in message

    def test_security_and_compliance_are_generic(self):
        security = ErrorFactory.create_security_violation(
            "SQL injection in field notes", "injection", "critical"
        )
        compliance = ErrorFactory.create_compliance_error(
            "Export without consent for patient 7", "consent", "violation"
        )

        assert "injection" not in security.get_user_message().lower()
        assert "patient 7" not in compliance.get_user_message()
        assert "LGPD" in compliance.get_user_message()

    def test_integration_names_system(self):
        error = ErrorFactory.create_integration_error("503", "AppointmentSystem", "book")

        assert "AppointmentSystem" in error.get_user_message()


# =============================================================================
# Audit Projection
# =============================================================================

class TestToDict:
    """Tests for the audit-safe projection."""

    def test_to_dict_shape(self):
        error = ErrorFactory.create_storage_error(
            "bucket unavailable",
            "cache",
            original_error=OSError("disk"),
            context={"reportId": "r-1"},
        )

        data = error.to_dict()

        assert data["name"] == "StorageError"
        assert data["code"] == "STORAGE_ERROR"
        assert data["kind"] == "storage"
        assert data["details"] == {"storage_type": "cache"}
        assert data["context"] == {"reportId": "r-1"}
        assert data["cause"] == "OSError"
        assert "stack" not in data

    def test_to_dict_without_cause(self):
        data = ErrorFactory.create_network_error("timeout", "/api", 504).to_dict()

        assert data["cause"] is None
        assert data["details"] == {"endpoint": "/api", "status_code": 504}


# =============================================================================
# Severity
# =============================================================================

class TestSeverity:
    """Tests for computed severity."""

    @pytest.mark.parametrize(
        "error, expected",
        [
            (ErrorFactory.create_security_violation("x", "y", "low"), Severity.LOW),
            (ErrorFactory.create_compliance_error("x", "y", "violation"), Severity.CRITICAL),
            (ErrorFactory.create_compliance_error("x", "y", "warning"), Severity.HIGH),
            (ErrorFactory.create_authorization_error("u", "r", "a"), Severity.HIGH),
            (ErrorFactory.create_database_error("x", "op"), Severity.HIGH),
            (ErrorFactory.create_storage_error("x", "file"), Severity.HIGH),
            (ErrorFactory.create_integration_error("x", "s", "op"), Severity.MEDIUM),
            (ErrorFactory.create_data_sync_error("x", "a", "b"), Severity.MEDIUM),
            (ErrorFactory.create_validation_error([]), Severity.LOW),
            (ErrorFactory.create_network_error("x"), Severity.MEDIUM),
            (ErrorFactory.create_not_found_error("Patient", "1"), Severity.MEDIUM),
        ],
    )
    def test_severity_mapping(self, error, expected):
        assert error.severity is expected


# =============================================================================
# Normalization
# =============================================================================

class TestNormalization:
    """Tests for normalize_error."""

    def test_taxonomy_error_passes_through(self):
        error = ErrorFactory.create_database_error("x", "op")
        assert normalize_error(error) is error

    @pytest.mark.parametrize(
        "message, kind",
        [
            ("Patient not found", ErrorKind.NOT_FOUND),
            ("unauthorized request", ErrorKind.AUTHORIZATION),
            ("missing permission report:write", ErrorKind.AUTHORIZATION),
            ("database is locked", ErrorKind.DATABASE),
            ("query timed out", ErrorKind.DATABASE),
            ("network unreachable", ErrorKind.NETWORK),
            ("failed to fetch", ErrorKind.NETWORK),
            ("something odd", ErrorKind.DATABASE),
        ],
    )
    def test_message_classification(self, message, kind):
        normalized = normalize_error(RuntimeError(message))

        assert normalized.kind is kind
        assert isinstance(normalized.original_cause, RuntimeError)

    def test_priority_order(self):
        # "not found" wins over "database"
        normalized = normalize_error(RuntimeError("database row not found"))
        assert normalized.kind is ErrorKind.NOT_FOUND

    @pytest.mark.parametrize(
        "message",
        ["Record Not Found in cache", "Unauthorized", "Network unreachable"],
    )
    def test_matching_is_case_sensitive(self, message):
        normalized = normalize_error(RuntimeError(message))

        assert normalized.kind is ErrorKind.DATABASE
        assert normalized.message == message

    def test_unknown_error_is_generic_database_error(self):
        normalized = normalize_error(ValueError(""))

        assert normalized.code == "DATABASE_ERROR"
        assert normalized.message == "An unexpected error occurred"
        assert normalized.details == DatabaseDetails(operation="unknown")


# =============================================================================
# Error context
# =============================================================================

class TestErrorContext:
    """Tests for the diagnostic context."""

    def test_metadata_none_is_empty(self):
        context = ErrorContext(operation="op", metadata=None)

        assert dict(context.metadata) == {}
        assert context.to_dict()["metadata"] == {}

    def test_metadata_is_read_only_copy(self):
        source = {"clinic": "c-1"}
        context = ErrorContext(operation="op", metadata=source)
        source["clinic"] = "c-2"

        assert context.metadata["clinic"] == "c-1"
        with pytest.raises(TypeError):
            context.metadata["clinic"] = "c-3"
