"""
Statement Import Exceptions
"""


class StatementImportError(Exception):
    """Base class for statement import errors."""


class UnrecognizedFormatError(StatementImportError):
    """No parser matches the uploaded file."""


class InvalidFileError(StatementImportError):
    """The file was recognised but fails structural validation."""


class AuthenticationError(StatementImportError):
    """The caller has no valid user identity."""


class TransactionStoreError(StatementImportError):
    """A persistence operation was rejected by the store."""


class ImportStateError(StatementImportError):
    """An import session operation is not allowed in the current step."""


def require_user(user_id: str | None) -> str:
    """Return the user id, or raise if the caller has none.

    Raises:
        AuthenticationError: If user_id is empty or None
    """
    if not user_id:
        raise AuthenticationError("Not authenticated")
    return user_id
