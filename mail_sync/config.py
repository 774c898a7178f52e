"""
Configuration settings for the mail_sync app.

This module centralizes the settings that drive account syncing, classification
and screening, pulling values from environment variables with sensible defaults.
Values are resolved at call time so operators and tests can change them without
re-importing the module.
"""

import os

from django.conf import settings

DEFAULT_CONFIG = {
    # Batch sync settings
    "SYNC_INTERVAL": 300,  # Default: 5 minutes between syncs of one account
    "SYNC_BATCH_SIZE": 50,  # Accounts per batch
    "SYNC_MAX_CONCURRENT_ACCOUNTS": 5,
    "SYNC_ACCOUNT_TIMEOUT": 120,
    "SYNC_BATCH_DEADLINE": 55,  # Stays under a 60s platform ceiling
    "STUCK_SYNC_THRESHOLD": 30 * 60,
    "MAX_MESSAGES_PER_SYNC": 50,
    "FETCH_BATCH_SIZE": 10,
    "MARK_SEEN_ON_SYNC": False,
    "SYNC_LOG_RETENTION_DAYS": 30,
    # Status store
    "SYNC_STATUS_BACKEND": "mail_sync.services.sync_status.InMemorySyncStatusStore",
    "SYNC_STATUS_STALE_AFTER": 300,
    "SYNC_STATUS_TTL": 24 * 60 * 60,
    # Security settings
    "SYNC_TRIGGER_SECRET": None,  # Must be set in environment
    "ENCRYPTION_KEY": None,  # Must be set in environment
    "ENCRYPTION_KDF_ITERATIONS": 100000,
    # Classification
    "CLASSIFIER_BODY_SCAN_CHARS": 500,
    # Connection timeouts (in seconds)
    "DEFAULT_TIMEOUT": 30,
    # OAuth providers
    "GMAIL_CLIENT_ID": None,
    "GMAIL_CLIENT_SECRET": None,
    "MICROSOFT_CLIENT_ID": None,
    "MICROSOFT_CLIENT_SECRET": None,
    "MICROSOFT_TENANT_ID": "common",
    "TOKEN_REFRESH_MARGIN": 300,
}


def _coerce(value, like):
    if isinstance(like, bool):
        return value.lower() in ("true", "yes", "1")
    if isinstance(like, int):
        try:
            return int(value)
        except (ValueError, TypeError):
            return like
    if isinstance(like, float):
        try:
            return float(value)
        except (ValueError, TypeError):
            return like
    return value


def get_config(key, default=None):
    """
    Get a configuration value from environment variables or settings with fallback.

    Lookup order: ``MAIL_SYNC_<KEY>`` environment variable, ``MAIL_SYNC_<KEY>``
    Django setting, ``DEFAULT_CONFIG``, then ``default``.

    Args:
        key: The configuration key to look up
        default: Default value if not found

    Returns:
        The configuration value
    """
    fallback = DEFAULT_CONFIG.get(key, default)

    env_key = f"MAIL_SYNC_{key}"
    if env_key in os.environ:
        return _coerce(os.environ[env_key], fallback)

    if hasattr(settings, env_key):
        return getattr(settings, env_key)

    # Bridge the app's config with the project-wide encryption key.
    if key == "ENCRYPTION_KEY" and getattr(settings, "FIELD_ENCRYPTION_KEY", None):
        return settings.FIELD_ENCRYPTION_KEY

    return fallback
