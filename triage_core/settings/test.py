"""Test-specific settings configuration."""

from .base import *

SECRET_KEY = "test-secret-key"  # nosec B105

# Use in-memory SQLite for testing speed
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

# Use in-memory cache
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
    }
}

# Faster password hasher for tests
PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",
]

# Celery runs tasks inline during tests
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

# Mail sync
FIELD_ENCRYPTION_KEY = "test-field-encryption-key"  # nosec B105
MAIL_SYNC_ENCRYPTION_KDF_ITERATIONS = 1000
MAIL_SYNC_SYNC_TRIGGER_SECRET = "test-trigger-secret"  # nosec B105
MAIL_SYNC_SYNC_STATUS_BACKEND = "mail_sync.services.sync_status.InMemorySyncStatusStore"
MAIL_SYNC_SYNC_MAX_CONCURRENT_ACCOUNTS = 1

# Log to console only during tests
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {
        "console": {
            "level": "ERROR",
            "class": "logging.StreamHandler",
        },
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": "ERROR",
            "propagate": True,
        },
    },
}
