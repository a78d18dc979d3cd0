"""PostgreSQL exception hierarchy."""


class PgError(Exception):
    """Base exception for all PostgreSQL operations."""

    def __init__(self, message: str, code: str | None = None, detail: str | None = None):
        self.message = message
        self.code = code
        self.detail = detail
        super().__init__(message)


class PgConnectionError(PgError):
    """Connection-related errors (unreachable server, rejected auth, closed handle)."""
    pass


class PgQueryError(PgError):
    """Server reported an error for a submitted statement.

    The connection stays usable for later queries.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        detail: str | None = None,
        severity: str | None = None,
        hint: str | None = None,
    ):
        self.severity = severity
        self.hint = hint
        super().__init__(message, code, detail)

    def __str__(self) -> str:
        prefix = f"{self.severity}: " if self.severity else ""
        suffix = f" (SQLSTATE {self.code})" if self.code else ""
        return f"{prefix}{self.message}{suffix}"


class PgDecodeError(PgError):
    """Row value could not be converted to the expected type."""

    def __init__(self, message: str, column: int | None = None, detail: str | None = None):
        self.column = column
        super().__init__(message, None, detail)
