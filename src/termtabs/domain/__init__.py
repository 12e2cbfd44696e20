"""Domain models for termtabs.

This package contains the core data structures and enumerations used
throughout the system. All models use Pydantic v2 for validation.
"""

from termtabs.domain.models import (
    RETRYABLE_ERROR_KINDS,
    ClientCredentials,
    Identity,
    NavigationErrorKind,
    Session,
    SessionState,
    is_retryable,
)

__all__ = [
    "RETRYABLE_ERROR_KINDS",
    "ClientCredentials",
    "Identity",
    "NavigationErrorKind",
    "Session",
    "SessionState",
    "is_retryable",
]
