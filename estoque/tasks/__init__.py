# Background import execution on Celery workers
from estoque.tasks.celery_app import celery_app

__all__ = ["celery_app"]
