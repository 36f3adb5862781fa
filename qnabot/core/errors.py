"""
Client errors: the ServiceError value delivered by ask() and the exception
raised by the opt-in AskResult.unwrap().

Every failure inside a call is captured as a ServiceError so nothing escapes
the asynchronous boundary; status_code is 0 when no HTTP response exists.
"""

from enum import Enum

from pydantic import BaseModel, Field


class ErrorKind(str, Enum):
    INVALID_URL = "invalid_url"
    MISSING_CREDENTIAL = "missing_credential"
    SERIALIZATION_FAILURE = "serialization_failure"
    TRANSPORT_FAILURE = "transport_failure"
    MALFORMED_RESPONSE = "malformed_response"
    SERVICE_REPORTED = "service_reported"


# Descriptions for failures detected on the client side
INVALID_URL_MESSAGE = "Invalid URL: Unable to create API URL"
MISSING_CREDENTIAL_MESSAGE = "Missing authorization key"
INVALID_CREDENTIAL_MESSAGE = "Authorization key contains invalid characters"
INVALID_HEADER_MESSAGE = "Unable to serialize request headers"
SERIALIZATION_MESSAGE = "Unable to serialize parameters"
NO_STATUS_MESSAGE = "No HTTP status code returned"
INVALID_RESULTS_MESSAGE = "Invalid API Results provided"


class ServiceError(BaseModel):
    """A failed call: client-side, transport-level, or reported by the service."""

    title: str = Field(..., description="Service error code, or 'error' for client-side failures.")
    description: str = Field(..., description="Human-readable message.")
    status_code: int = Field(0, description="HTTP status, 0 when no response was received.")
    kind: ErrorKind

    model_config = {"frozen": True}

    @classmethod
    def client_side(cls, kind: ErrorKind, description: str, status_code: int = 0) -> "ServiceError":
        return cls(title="error", description=description, status_code=status_code, kind=kind)


class QnAServiceError(Exception):
    """Raised by AskResult.unwrap() when the call failed."""

    def __init__(self, error: ServiceError) -> None:
        self.error = error
        super().__init__(f"{error.title}: {error.description} (status {error.status_code})")
