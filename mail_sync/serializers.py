"""Serializers for the mail_sync API."""

from rest_framework import serializers

from .enums import Decision
from .models import ScreeningDecision


class TriggerSyncSerializer(serializers.Serializer):
    accountIds = serializers.ListField(
        child=serializers.IntegerField(min_value=1), required=False, allow_empty=False,
    )


class ScreeningDecisionSerializer(serializers.ModelSerializer):
    class Meta:
        model = ScreeningDecision
        fields = ("id", "sender_email", "decision", "notes", "decided_at")
        read_only_fields = fields


class RecordDecisionSerializer(serializers.Serializer):
    sender = serializers.CharField(max_length=500)
    decision = serializers.ChoiceField(choices=Decision.choices)
    applyToExisting = serializers.BooleanField(required=False, default=False)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class UndoScreeningSerializer(serializers.Serializer):
    sender = serializers.CharField(max_length=500)


class ResetSyncSerializer(serializers.Serializer):
    accountId = serializers.IntegerField(required=False, allow_null=True, min_value=1)


class PendingSenderSerializer(serializers.Serializer):
    email_address = serializers.CharField()
    name = serializers.CharField()
    count = serializers.IntegerField()
    first_email_id = serializers.IntegerField()
    latest_subject = serializers.CharField()
    email_ids = serializers.ListField(child=serializers.IntegerField())
    suggestion = serializers.SerializerMethodField()

    def get_suggestion(self, obj):
        return {
            "view": obj.suggestion.view,
            "category": obj.suggestion.category,
            "confidence": obj.suggestion.confidence,
            "reasoning": obj.suggestion.reasoning,
        }
