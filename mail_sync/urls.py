from django.urls import path

from . import views

app_name = "mail_sync"

urlpatterns = [
    path("sync/trigger/", views.SyncTriggerView.as_view(), name="sync-trigger"),
    path("sync/status/", views.SyncStatusView.as_view(), name="sync-status"),
    path("sync/reset/", views.SyncResetView.as_view(), name="sync-reset"),
    path(
        "accounts/<int:account_id>/sync/",
        views.AccountSyncView.as_view(),
        name="account-sync",
    ),
    path(
        "screening/decisions/",
        views.ScreeningDecisionView.as_view(),
        name="screening-decisions",
    ),
    path("screening/pending/", views.PendingSendersView.as_view(), name="screening-pending"),
    path("screening/undo/", views.UndoScreeningView.as_view(), name="screening-undo"),
]
