# Make sure the Celery app is loaded when Django starts so that the
# broker pools used by the dispatcher are configured from settings.
from .celery import app as celery_app

__all__ = ('celery_app',)
