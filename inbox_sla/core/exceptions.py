"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries.
"""

from typing import Optional, Any


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


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
    """Exception for configuration errors."""


class PolicyNotFoundException(ResourceNotFoundException):
    """An explicitly requested SLA policy does not exist."""

    def __init__(self, policy_id: str, details: Optional[dict] = None):
        super().__init__("SLA policy", policy_id, details)


class AssignmentConflictException(DomainException):
    """A tenant has more than one active default SLA policy."""

    def __init__(self, tenant_id: str, policy_ids: list, details: Optional[dict] = None):
        self.tenant_id = tenant_id
        self.policy_ids = list(policy_ids)
        super().__init__(
            f"Tenant {tenant_id} has {len(self.policy_ids)} active default SLA policies",
            details or {"tenant_id": tenant_id, "policy_ids": self.policy_ids}
        )


class UnschedulableBusinessHoursException(DomainException):
    """A non-24/7 business hours schedule never opens."""

    def __init__(self, policy_id: Optional[str] = None, details: Optional[dict] = None):
        self.policy_id = policy_id
        message = "Business hours schedule has no open time"
        if policy_id:
            message += f" (SLA policy '{policy_id}')"
        super().__init__(message, details or {"policy_id": policy_id})


class StoreUnavailableException(RepositoryException):
    """A policy or thread store call failed."""

    def __init__(self, store_name: str, message: str, details: Optional[dict] = None):
        self.store_name = store_name
        super().__init__(f"{store_name}: {message}", details)


class InvalidFilterException(ValidationException):
    """Malformed scan filter or query parameters."""


class ScanTimeoutException(ApplicationException):
    """A scan exceeded its time budget and partial results were not requested."""

    def __init__(self, tenant_id: str, timeout: Any, details: Optional[dict] = None):
        self.tenant_id = tenant_id
        self.timeout = timeout
        super().__init__(
            f"SLA scan for tenant {tenant_id} exceeded {timeout}s",
            details or {"tenant_id": tenant_id, "timeout_seconds": timeout}
        )
