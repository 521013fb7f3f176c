# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Registration error kinds.

Every rejection carries a list of human-readable problems so the client can
show all of them at once. 5xx kinds never expose their internal detail.
"""

from typing import List, Optional


class RegistrationError(Exception):
    kind: str = "unexpected"
    status_code: int = 500
    public_message: str = "Internal server error"

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.errors: List[str] = list(errors) if errors else [message]

    @property
    def is_client_error(self) -> bool:
        return self.status_code < 500

    def response_message(self) -> str:
        return self.message if self.is_client_error else self.public_message

    def response_errors(self) -> List[str]:
        if self.is_client_error:
            return self.errors
        return ["An internal server error occurred"]


class MalformedInput(RegistrationError):
    kind = "malformed_input"
    status_code = 400


class FieldValidation(RegistrationError):
    kind = "field_validation"
    status_code = 400


class DuplicatePhone(RegistrationError):
    kind = "duplicate_phone"
    status_code = 400


class UnsupportedFileType(RegistrationError):
    kind = "unsupported_file_type"
    status_code = 400


class FileTooLarge(RegistrationError):
    kind = "file_too_large"
    status_code = 400


class ArchiveInvalid(RegistrationError):
    kind = "archive_invalid"
    status_code = 400


class PersistenceFailure(RegistrationError):
    kind = "persistence_failure"
    status_code = 500


class UnexpectedFailure(RegistrationError):
    kind = "unexpected"
    status_code = 500


def combine(errors: List[RegistrationError], message: str) -> RegistrationError:
    """Fold several recorded errors into one, keeping the first error's kind."""
    first = errors[0]
    merged: List[str] = []
    for err in errors:
        merged.extend(err.errors)
    return type(first)(message, merged)
