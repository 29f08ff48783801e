"""
Error taxonomy for the parsing pipeline.

Extraction gaps (a missing field or sub-object) are not errors; they surface
as None or empty strings. Everything here is fatal for the call that raised it,
except classification failures, which the noise filter handles according to
its error policy.
"""

from typing import Any


class InvoiceParsingError(Exception):
    """Base class for all pipeline errors"""


class ConfigurationError(InvoiceParsingError):
    """A required service endpoint or credential is not configured"""


class ServiceError(InvoiceParsingError):
    """An external service answered with a non-success response"""

    def __init__(self, message: str, status_code: int | None = None, error_body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.error_body = error_body


class MalformedResponseError(InvoiceParsingError):
    """A service response is missing the structure the pipeline depends on"""


class NoDocumentDataError(MalformedResponseError):
    """The analysis result contains no document entries"""

    def __init__(self, message: str = "No document data found in analysis result"):
        super().__init__(message)
