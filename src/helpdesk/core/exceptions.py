"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries:

- ValidationException: bad input shape or value, user-correctable
- AuthenticationException: missing or wrong credentials
- PermissionDeniedException: known caller whose role may not do this
- ResourceNotFoundException: referenced ticket, user or attachment is absent
- ConflictException: a concurrent update changed the row first
- DependencyException: persistence or chat provider call failed
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class AuthenticationException(ApplicationException):
    """Exception when a caller presents missing or wrong credentials."""


class PermissionDeniedException(ApplicationException):
    """Exception when a known user's role does not allow the action."""


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


class ConflictException(DomainException):
    """Exception when an update was based on a stale version of a row."""

    def __init__(
        self,
        resource_type: str,
        resource_id: str,
        expected_version: int,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.expected_version = expected_version
        super().__init__(
            f"{resource_type} '{resource_id}' was modified concurrently "
            f"(expected version {expected_version})",
            details or {"resource_id": resource_id, "expected_version": expected_version}
        )


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class DependencyException(ApplicationException):
    """Base exception for failures of a collaborator the service depends on."""


class RepositoryException(DependencyException):
    """Exception for repository/data access errors."""


class ExternalServiceException(DependencyException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class ChatProviderException(ExternalServiceException):
    """Exception for Google Chat API failures."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict] = None
    ):
        self.status_code = status_code
        super().__init__("Google Chat", message, details)

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429


class StorageException(ExternalServiceException):
    """Exception for blob storage failures."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Blob Storage", message, details)
