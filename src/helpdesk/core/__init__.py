"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from helpdesk.core.exceptions import (
    ApplicationException,
    DomainException,
    ValidationException,
    AuthenticationException,
    PermissionDeniedException,
    ResourceNotFoundException,
    ConflictException,
    ConfigurationException,
    DependencyException,
    RepositoryException,
    ExternalServiceException,
    ChatProviderException,
    StorageException,
)
from helpdesk.core.result import Outcome, SideEffectWarning

__all__ = [
    "ApplicationException",
    "DomainException",
    "ValidationException",
    "AuthenticationException",
    "PermissionDeniedException",
    "ResourceNotFoundException",
    "ConflictException",
    "ConfigurationException",
    "DependencyException",
    "RepositoryException",
    "ExternalServiceException",
    "ChatProviderException",
    "StorageException",
    "Outcome",
    "SideEffectWarning",
]
