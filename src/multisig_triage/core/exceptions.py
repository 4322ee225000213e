"""
Core Exceptions
================

Exception hierarchy shared by every layer.

Application services raise these; the HTTP layer maps them to status
codes (validation 400, not found 404, anything else 500). Failures of
the optional scoring backend never leave the scoring service.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain rule violations."""


class InvalidUrgencyScoreException(DomainException):
    """Raised when a score falls outside [0, 1]."""

    def __init__(self, score: float):
        self.score = score
        super().__init__(
            f"Urgency score must be between 0 and 1, got {score}",
            {"score": score}
        )


class RepositoryException(ApplicationException):
    """Base exception for storage and index errors."""


class ValidationException(ApplicationException):
    """Caller supplied missing or malformed data."""


class InvalidTicketIdException(ValidationException):
    """Ticket ID cannot be embedded in a storage key."""

    def __init__(self, ticket_id: str, reason: str):
        self.ticket_id = ticket_id
        super().__init__(f"Ticket ID {reason}", {"ticket_id": ticket_id})


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Settings describe something that cannot be built."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class LLMException(ExternalServiceException):
    """Model server call failed or returned nothing usable."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("LLM Service", message, details)


class CircuitOpenException(LLMException):
    """Model server calls are suspended after repeated failures."""

    def __init__(self, retry_after: float):
        self.retry_after = retry_after
        super().__init__(
            "Circuit breaker open, skipping urgency adjustment",
            {"retry_after_seconds": round(retry_after, 1)}
        )
