"""
Shared-secret authentication for the batch trigger endpoint.

The trigger is called by an external scheduler, not by a user, so it carries
``Authorization: Bearer <secret>`` instead of a JWT. The secret is compared in
constant time against ``SYNC_TRIGGER_SECRET``.
"""

import hmac

from rest_framework import exceptions, permissions, status
from rest_framework.authentication import BaseAuthentication, get_authorization_header

from triage_core.utils.logging import ContextLogger

from .config import get_config

logger = ContextLogger(__name__)


class TriggerSecretNotConfigured(exceptions.APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Sync trigger secret is not configured."
    default_code = "configuration_error"


class SyncTriggerClient:
    """Principal attached to requests that presented the trigger secret."""

    is_authenticated = True
    is_anonymous = False
    is_active = True
    id = None
    pk = None

    def __str__(self):
        return "sync-trigger"


class SharedSecretAuthentication(BaseAuthentication):
    keyword = "Bearer"

    def authenticate(self, request):
        secret = get_config("SYNC_TRIGGER_SECRET")
        if not secret:
            logger.error("Sync trigger called but no trigger secret is configured")
            raise TriggerSecretNotConfigured()

        auth = get_authorization_header(request).split()
        if not auth or auth[0].lower() != self.keyword.lower().encode():
            return None
        if len(auth) != 2:
            raise exceptions.AuthenticationFailed("Invalid bearer header.")

        if not hmac.compare_digest(auth[1], secret.encode()):
            logger.warning(
                "Rejected sync trigger with a wrong secret",
                extra_context={"ip": request.META.get("REMOTE_ADDR")},
            )
            raise exceptions.AuthenticationFailed("Invalid trigger secret.")

        return SyncTriggerClient(), None

    def authenticate_header(self, request):
        return self.keyword


class IsSyncTrigger(permissions.BasePermission):
    """Allow only callers authenticated with the trigger secret."""

    def has_permission(self, request, view):
        return isinstance(request.user, SyncTriggerClient)
