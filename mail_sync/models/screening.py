from django.conf import settings
from django.db import models

from ..enums import Decision

__all__ = ["ScreeningDecision"]


class ScreeningDecision(models.Model):
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="screening_decisions",
    )
    sender_email = models.CharField(max_length=320)
    decision = models.CharField(max_length=10, choices=Decision.choices)
    notes = models.TextField(blank=True)
    decided_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "mail_screening_decisions"
        ordering = ["-decided_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["user", "sender_email"], name="uniq_decision_per_sender",
            ),
        ]

    def __str__(self):
        return f"{self.sender_email}: {self.get_decision_display()}"
