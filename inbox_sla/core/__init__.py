"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from inbox_sla.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    ResourceNotFoundException,
    ConfigurationException,
    PolicyNotFoundException,
    AssignmentConflictException,
    UnschedulableBusinessHoursException,
    StoreUnavailableException,
    InvalidFilterException,
    ScanTimeoutException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "PolicyNotFoundException",
    "AssignmentConflictException",
    "UnschedulableBusinessHoursException",
    "StoreUnavailableException",
    "InvalidFilterException",
    "ScanTimeoutException",
]
