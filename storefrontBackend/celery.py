"""
Celery application.

Queues:
    marketplace_tasks  order confirmation emails
    loyalty_tasks      order point awards and "points earned" emails

All options live in settings.py under the CELERY_ prefix.
"""

import os

from celery import Celery


os.environ.setdefault("DJANGO_SETTINGS_MODULE", "storefrontBackend.settings")

app = Celery("storefrontBackend")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
