from typing import Optional


class ShortenerError(Exception):
    """Base class for failures surfaced by the shortener core."""

    status_code = 500
    error = "Internal Server Error"


class InvalidInputError(ShortenerError):
    status_code = 400
    error = "Bad Request"


class AliasConflictError(ShortenerError):
    status_code = 409
    error = "Conflict"

    def __init__(self, alias: str):
        super().__init__(f"Alias '{alias}' is already in use.")
        self.alias = alias


class NotFoundError(ShortenerError):
    """No live mapping for a code. Expired and missing codes look the same."""

    status_code = 404
    error = "Not Found"

    def __init__(self, short_code: str, message: Optional[str] = None):
        super().__init__(message or f"URL not found for short code: {short_code}")
        self.short_code = short_code


class StatsNotFoundError(NotFoundError):
    """No record at all for a code. Expired records still have statistics."""

    def __init__(self, short_code: str):
        super().__init__(short_code, f"No statistics found for short code: {short_code}")


class StoreError(ShortenerError):
    """The record store failed or aborted the transaction. Safe to retry."""

    status_code = 503
    error = "Service Unavailable"


class DuplicateCodeError(StoreError):
    """The store rejected a write because the short code is already taken."""

    def __init__(self, short_code: Optional[str]):
        super().__init__(f"Short code {short_code!r} violates the uniqueness constraint")
        self.short_code = short_code
