import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "fleetbill.settings.dev")

app = Celery("fleetbill")

# Config Celery lue depuis settings (préfixe CELERY_)
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
