"""Exceptions raised by the BusinessObjects REST client."""


class SapBoError(Exception):
    """Base class for errors raised by this package."""


class ProtocolError(SapBoError):
    """Raised when a response is not in the expected format.

    Covers a content type other than ``application/json`` and a log-on
    response without a token header.
    """


class RequestError(SapBoError):
    """Raised when the server answers with a non-2xx status code."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"Error Code {status_code} - {message}")


class ColumnCollisionError(SapBoError):
    """Raised when two nested fields flatten to the same column name."""

    def __init__(self, column: str, paths: list[str]):
        self.column = column
        self.paths = paths
        super().__init__(
            f"Fields {', '.join(paths)} all flatten to column {column!r}",
        )
