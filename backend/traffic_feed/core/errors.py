"""
Application error taxonomy
Every error carries the payload returned by the API: message, status, identifier, code
"""
from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for all service errors"""
    status: int = 500
    identifier: str = "UNIMPLEMENTED"
    code: str = "ERROR"

    def __init__(
        self,
        message: str = "",
        *,
        code: Optional[str] = None,
        identifier: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if identifier is not None:
            self.identifier = identifier

    def to_payload(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "status": self.status,
            "identifier": self.identifier,
            "code": self.code,
        }

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class Unauthorized(AppError):
    status = 401


class Forbidden(AppError):
    status = 403


class NotFound(AppError):
    status = 404


class BadRequest(AppError):
    status = 400


class UnprocessableEntity(AppError):
    status = 422


class InternalServerError(AppError):
    status = 500


# Ingestion-side failures, all surfaced as 500 with an origin code

class FetchError(InternalServerError):
    """Raised when a feed cannot be retrieved (network, timeout, non-2xx)"""
    code = "FETCH_ERROR"

    def __init__(self, message: str, url: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class DecodeError(InternalServerError):
    """Raised when a feed document does not have the expected structure"""
    code = "XML_DECODE_ERROR"


class ParseError(DecodeError):
    """Raised when a field value cannot be converted (e.g. a coordinate)"""
    code = "PARSE_ERROR"


class StoreError(InternalServerError):
    """Raised when the database rejects a read or write"""
    code = "STORE_ERROR"


class RowArityError(StoreError):
    """Raised when a row does not match the declared column list"""
    code = "ROW_ARITY_ERROR"

    def __init__(self, table: str, row_index: int, expected: int, actual: int):
        super().__init__(
            f"Row {row_index} for table '{table}' has {actual} values, expected {expected}"
        )
        self.table = table
        self.row_index = row_index
        self.expected = expected
        self.actual = actual


class BatchWriteError(StoreError):
    """
    Raised when one chunk of a batched upsert fails

    chunk_index is zero-based; committed_chunks chunks before it stay committed
    """
    code = "BATCH_WRITE_ERROR"

    def __init__(self, table: str, chunk_index: int, committed_chunks: int, original: Exception):
        super().__init__(
            f"Writing chunk {chunk_index} of table '{table}' failed "
            f"after {committed_chunks} committed chunk(s): {original}"
        )
        self.table = table
        self.chunk_index = chunk_index
        self.committed_chunks = committed_chunks
        self.original = original


class SchedulerError(InternalServerError):
    code = "SCHEDULER_ERROR"
