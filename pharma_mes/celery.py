# pharma_mes/celery.py
import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "pharma_mes.settings")

app = Celery("pharma_mes")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
