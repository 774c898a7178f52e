"""
Factory module for creating the inbound adapter of an account.

The adapter class is chosen from the account's provider kind; new providers are
registered in ``ADAPTER_PATHS``.
"""

from django.utils.module_loading import import_string

from triage_core.utils.logging import ContextLogger

from ...enums import ProviderKind
from ...exceptions import ConfigurationError

logger = ContextLogger(__name__)

BASE_PATH = "mail_sync.channels.adapters"

ADAPTER_PATHS = {
    ProviderKind.IMAP: f"{BASE_PATH}.imap.IMAPAdapter",
    ProviderKind.GMAIL: f"{BASE_PATH}.gmail.GmailAdapter",
    ProviderKind.MICROSOFT: f"{BASE_PATH}.outlook.OutlookAdapter",
}


def get_adapter(account, on_token_refresh=None):
    """
    Create and return the adapter for an account.

    Args:
        account: MailAccount instance
        on_token_refresh: Optional callback receiving refreshed OAuth tokens

    Returns:
        Configured adapter instance

    Raises:
        ConfigurationError: If the provider kind is unknown or the adapter cannot
            be imported
    """
    if not account:
        raise ConfigurationError("Account is missing or invalid")

    adapter_path = ADAPTER_PATHS.get(account.provider)
    if adapter_path is None:
        raise ConfigurationError(
            f"Unknown provider '{account.provider}' for account {account.id}",
        )

    try:
        adapter_class = import_string(adapter_path)
    except ImportError as e:
        logger.error(
            "Failed to create adapter",
            extra_context={"adapter_path": adapter_path, "error": str(e)},
        )
        raise ConfigurationError(f"Failed to create adapter: {e!s}") from e

    logger.debug("Created mail adapter", extra_context={"adapter_path": adapter_path})
    return adapter_class(account, on_token_refresh=on_token_refresh)
