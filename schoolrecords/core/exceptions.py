from typing import List, Optional

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ParseError(ServiceError):
    """File-level ingestion failure. Raised before any row is imported."""

    def __init__(self, message: str, errors: Optional[List[str]] = None) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)
        self.errors = errors or [message]


class StoreError(ServiceError):
    """A read or write against the record store failed."""
