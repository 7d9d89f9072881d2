"""Failure types raised by the refresh pipeline and the repository"""

from typing import Dict, Optional


class ExternalSourceFailure(Exception):
    """An upstream source could not be reached, timed out, or answered with
    something other than the expected shape."""

    def __init__(
        self,
        source_name: str,
        detail: str,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(f"{source_name}: {detail}")
        self.source_name = source_name
        self.detail = detail
        self.status_code = status_code
        self.cause = cause


class RecordValidationError(Exception):
    def __init__(self, details: Dict[str, str]):
        self.details = details
        joined = ", ".join(f"{field} {message}" for field, message in details.items())
        super().__init__(f"Validation failed: {joined}")


class NotFoundFailure(Exception):
    def __init__(self, name: str):
        super().__init__(f"{name} not found")
        self.name = name
