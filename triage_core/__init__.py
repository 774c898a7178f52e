"""Django project package for the mail triage service."""

from .celery import app as celery_app

__all__ = ("celery_app",)
