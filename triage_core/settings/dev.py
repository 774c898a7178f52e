from .base import *

# Development-specific settings
DEBUG = True

ALLOWED_HOSTS = ["localhost", "127.0.0.1"]

# CORS settings for development
CORS_ALLOW_CREDENTIALS = True
CORS_ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
]
CORS_ALLOW_ALL_ORIGINS = False

# Use local sqlite database for development
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "db.sqlite3",
    },
}

# Keep sync status in process when running a single dev server
MAIL_SYNC_SYNC_STATUS_BACKEND = "mail_sync.services.sync_status.InMemorySyncStatusStore"
