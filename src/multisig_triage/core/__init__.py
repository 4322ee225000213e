"""
Core Module
============

Framework-agnostic building blocks shared across the application.
"""

from multisig_triage.core.exceptions import (
    ApplicationException,
    DomainException,
    InvalidUrgencyScoreException,
    RepositoryException,
    ValidationException,
    InvalidTicketIdException,
    ResourceNotFoundException,
    ConfigurationException,
    ExternalServiceException,
    LLMException,
    CircuitOpenException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "InvalidUrgencyScoreException",
    "RepositoryException",
    "ValidationException",
    "InvalidTicketIdException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "ExternalServiceException",
    "LLMException",
    "CircuitOpenException",
]
