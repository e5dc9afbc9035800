"""Celery application instance for Pledgehub."""
import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "pledgehub.settings")

app = Celery("pledgehub")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
