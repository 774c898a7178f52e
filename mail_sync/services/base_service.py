"""Base service module with common functionality for mail sync services."""

from triage_core.utils.logging import ContextLogger

from ..exceptions import AccountNotFoundError
from ..models import MailAccount


class BaseService:
    """Base service class with common functionality for mail services."""

    def __init__(self, request=None):
        """Initialize service with optional request context.

        Args:
        ----
            request: Optional Django request object for context logging

        """
        self.logger = ContextLogger(type(self).__module__)
        self.request = request

        if request:
            self.logger.set_context(
                request_id=getattr(request, "request_id", None),
                user_id=(
                    getattr(request.user, "id", None)
                    if hasattr(request, "user")
                    else None
                ),
                ip_address=self._get_client_ip(request),
            )

    def _get_client_ip(self, request):
        """Get the client IP address from the request."""
        x_forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR")
        if x_forwarded_for:
            return x_forwarded_for.split(",")[0].strip()
        return request.META.get("REMOTE_ADDR")

    def get_account(self, account_id, user=None):
        """Get a mail account by ID with proper error handling.

        Args:
        ----
            account_id: The ID of the account to retrieve
            user: Optional owner; accounts of other users are treated as missing

        Returns:
        -------
            MailAccount instance

        Raises:
        ------
            AccountNotFoundError: If account doesn't exist

        """
        queryset = MailAccount.objects.select_related("user")
        if user is not None:
            queryset = queryset.filter(user=user)
        try:
            return queryset.get(id=account_id)
        except MailAccount.DoesNotExist:
            self.logger.warning(
                "Mail account not found", extra_context={"account_id": account_id},
            )
            raise AccountNotFoundError(f"Mail account with ID {account_id} not found")
