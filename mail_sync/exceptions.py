"""
Custom exceptions for the mail sync application.

This module defines a hierarchy of custom exception classes. Every class carries
an ``error_kind`` which is copied onto ``MailAccount.last_sync_error_kind`` when
an account run fails, so the scheduler can tell transient failures from ones
that need the user to re-authenticate.
"""

from .enums import SyncErrorKind


class MailSyncError(Exception):
    """Base exception for all errors in the mail sync app."""

    error_kind = SyncErrorKind.UNKNOWN


class ServiceError(MailSyncError):
    """Base exception for service layer errors."""

    pass


class ValidationError(ServiceError):
    """Raised when data validation fails."""

    pass


class AccountNotFoundError(ServiceError):
    """Raised when a mail account is not found."""

    pass


class PersistenceError(ServiceError):
    """Raised when a message cannot be written to the store."""

    pass


class ChannelError(MailSyncError):
    """Base exception for provider channel errors."""

    error_kind = SyncErrorKind.NETWORK


class AuthenticationError(ChannelError):
    """Raised when credentials are invalid, expired or cannot be refreshed."""

    error_kind = SyncErrorKind.AUTH


class ConnectionError(ChannelError):
    """Raised for network connection issues with a mail provider."""

    error_kind = SyncErrorKind.NETWORK


class SyncTimeoutError(ChannelError):
    """Raised when an account run exceeds its deadline."""

    error_kind = SyncErrorKind.TIMEOUT


class ParseError(ChannelError):
    """Raised when a single message cannot be parsed."""

    pass


class ConfigurationError(MailSyncError):
    """Raised for invalid or missing configuration."""

    error_kind = SyncErrorKind.CONFIGURATION


def error_kind_for(exc: BaseException) -> str:
    """Map any exception to the stored error kind."""
    if isinstance(exc, MailSyncError):
        return exc.error_kind
    if isinstance(exc, TimeoutError):
        return SyncErrorKind.TIMEOUT
    if isinstance(exc, OSError):
        return SyncErrorKind.NETWORK
    return SyncErrorKind.UNKNOWN
