"""API views for mail sync and screening."""

from django.utils import timezone
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from triage_core.utils.logging import ContextLogger

from . import services
from .authentication import IsSyncTrigger, SharedSecretAuthentication
from .enums import SyncTrigger
from .exceptions import (
    AccountNotFoundError,
    ConfigurationError,
    PersistenceError,
    ValidationError,
)
from .models import MailAccount
from .serializers import (
    PendingSenderSerializer,
    RecordDecisionSerializer,
    ResetSyncSerializer,
    ScreeningDecisionSerializer,
    TriggerSyncSerializer,
    UndoScreeningSerializer,
)
from .services.screening_service import ScreeningService
from .services.sync_service import NOT_CLAIMED

logger = ContextLogger(__name__)


class SyncTriggerView(APIView):
    """Run one sync batch for the external scheduler and return its report."""

    authentication_classes = [SharedSecretAuthentication]
    permission_classes = [IsSyncTrigger]

    def post(self, request):
        serializer = TriggerSyncSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            report = services.run_batch(
                trigger=SyncTrigger.API,
                account_ids=serializer.validated_data.get("accountIds"),
            )
        except ConfigurationError as e:
            logger.error("Sync batch rejected", extra_context={"error": str(e)})
            return Response(
                {"error": str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        return Response(report.as_dict())


class SyncStatusView(APIView):
    """Live sync status of the current user's accounts."""

    permission_classes = [IsAuthenticated]

    def get(self, request):
        accounts = MailAccount.objects.filter(user=request.user).order_by("id")

        account_id = request.query_params.get("account")
        if account_id is not None:
            if not account_id.isdigit():
                return Response(
                    {"error": "account must be an integer"},
                    status=status.HTTP_400_BAD_REQUEST,
                )
            accounts = accounts.filter(id=int(account_id))
            if not accounts.exists():
                return Response(
                    {"error": "Account not found"}, status=status.HTTP_404_NOT_FOUND,
                )

        store = services.get_status_store()
        now = timezone.now()
        return Response(
            {
                "accounts": [
                    {
                        "accountId": account.id,
                        "emailAddress": account.email_address,
                        "accountStatus": account.status,
                        "lastSyncAt": (
                            account.last_sync_at.isoformat() if account.last_sync_at else None
                        ),
                        "lastSyncError": account.last_sync_error,
                        "status": store.payload(account.id, now=now),
                    }
                    for account in accounts
                ],
            },
        )


class SyncResetView(APIView):
    """Release the current user's accounts stuck in ``syncing``."""

    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = ResetSyncSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        count = services.reset_user_syncs(
            request.user, account_id=serializer.validated_data.get("accountId"),
        )
        return Response({"success": True, "resetCount": count})


class ScreeningDecisionView(APIView):
    """Record an allow/deny decision for a sender."""

    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = RecordDecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            decision, affected = ScreeningService(request).record_decision(
                request.user,
                data["sender"],
                data["decision"],
                apply_to_existing=data["applyToExisting"],
                notes=data["notes"],
            )
        except ValidationError as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(
            {
                "success": True,
                "decision": ScreeningDecisionSerializer(decision).data,
                "affectedCount": affected,
            },
            status=status.HTTP_201_CREATED,
        )


class PendingSendersView(APIView):
    """The Screener queue: pending mail grouped by sender."""

    permission_classes = [IsAuthenticated]

    def get(self, request):
        try:
            limit = min(int(request.query_params.get("limit", 50)), 500)
        except ValueError:
            return Response(
                {"error": "limit must be an integer"}, status=status.HTTP_400_BAD_REQUEST,
            )

        senders = ScreeningService(request).pending_senders(request.user, limit=limit)
        return Response({"senders": PendingSenderSerializer(senders, many=True).data})


class UndoScreeningView(APIView):
    """Send a sender's mail back to the Screener."""

    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = UndoScreeningSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            affected = ScreeningService(request).undo_decision(
                request.user, serializer.validated_data["sender"],
            )
        except ValidationError as e:
            return Response(
                {"success": False, "error": str(e)}, status=status.HTTP_400_BAD_REQUEST,
            )
        except PersistenceError as e:
            return Response(
                {"success": False, "error": str(e)},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        return Response({"success": True, "affectedCount": affected})


class AccountSyncView(APIView):
    """Sync one of the current user's accounts right away."""

    permission_classes = [IsAuthenticated]

    def post(self, request, account_id):
        service = services.AccountSyncService(request)
        try:
            service.get_account(account_id, user=request.user)
        except AccountNotFoundError as e:
            return Response({"error": str(e)}, status=status.HTTP_404_NOT_FOUND)

        result = service.sync(account_id, trigger=SyncTrigger.MANUAL)
        if result.status == NOT_CLAIMED:
            return Response(
                {"error": "Account is disabled or already syncing"},
                status=status.HTTP_409_CONFLICT,
            )
        return Response(result.as_dict())
