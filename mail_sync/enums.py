from django.db import models


class ProviderKind(models.TextChoices):
    IMAP = "imap", "IMAP"
    GMAIL = "oauth-gmail", "Gmail (OAuth)"
    MICROSOFT = "oauth-microsoft", "Microsoft (OAuth)"


class AccountStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    SYNCING = "syncing", "Syncing"
    ERROR = "error", "Error"


class SyncErrorKind(models.TextChoices):
    AUTH = "auth", "Authentication"
    NETWORK = "network", "Network"
    TIMEOUT = "timeout", "Timeout"
    CONFIGURATION = "configuration", "Configuration"
    UNKNOWN = "unknown", "Unknown"


class View(models.TextChoices):
    IMBOX = "imbox", "Imbox"
    FEED = "feed", "The Feed"
    PAPER_TRAIL = "paper_trail", "Paper Trail"
    SCREENER = "screener", "Screener"


class Category(models.TextChoices):
    IMPORTANT = "important", "Important"
    NEWSLETTER = "newsletter", "Newsletter"
    RECEIPT = "receipt", "Receipt"
    CONFIRMATION = "confirmation", "Confirmation"
    BLOCKED = "blocked", "Blocked"


class ScreeningStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    AUTO_CLASSIFIED = "auto_classified", "Auto Classified"
    SCREENED = "screened", "Screened"


class Decision(models.TextChoices):
    ALLOW = "allow", "Allow"
    DENY = "deny", "Deny"


class SyncTrigger(models.TextChoices):
    SCHEDULED = "scheduled", "Scheduled"
    MANUAL = "manual", "Manual"
    API = "api", "API"


class SyncRunStatus(models.TextChoices):
    IN_PROGRESS = "in_progress", "In Progress"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class UpsertOutcome(models.TextChoices):
    CREATED = "created", "Created"
    UPDATED = "updated", "Updated"
    UNCHANGED = "unchanged", "Unchanged"
    SKIPPED = "skipped", "Skipped"
