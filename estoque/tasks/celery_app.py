import logging
from ssl import CERT_NONE

import redis
from celery import Celery

from estoque.config import settings

logger = logging.getLogger(__name__)


def tls_url(url: str) -> str:
    """Upstash Redis requires TLS: strip the database suffix and switch to rediss://."""
    if url and "upstash.io" in url:
        url = url.rstrip('/')
        if url[-2:] in ('/0', '/1', '/2'):
            url = url[:-2]
        if url.startswith("redis://"):
            url = url.replace("redis://", "rediss://", 1)
        logger.info("Redis URL converted to: %s...", url[:50])
    return url


def make_redis_client(url: str = None):
    """Redis client used for the shared import progress document."""
    url = tls_url(url or settings.redis_url)
    if url.startswith("rediss://"):
        return redis.from_url(url, decode_responses=True, ssl_cert_reqs=None)
    return redis.from_url(url, decode_responses=True)


celery_broker_url = tls_url(settings.celery_broker_url)
celery_result_backend = tls_url(settings.celery_result_backend)

celery_app = Celery(
    "estoque",
    broker=celery_broker_url,
    backend=celery_result_backend,
)

config_updates = {
    'task_serializer': "json",
    'accept_content': ["json"],
    'result_serializer': "json",
    'timezone': "UTC",
    'enable_utc': True,
    'task_track_started': True,
    'task_time_limit': 3600,  # 1 hour max for long-running imports
    'worker_prefetch_multiplier': 1,
    'worker_max_tasks_per_child': 1000,
    'broker_connection_retry_on_startup': True,
}

# Kombu's Redis transport takes SSL options through broker_use_ssl
if "upstash.io" in celery_broker_url:
    config_updates['broker_use_ssl'] = {'ssl_cert_reqs': CERT_NONE}
    config_updates['broker_transport_options'] = {'health_check_interval': 30}

celery_app.conf.update(**config_updates)

# Import tasks to register them
from estoque.tasks import import_task  # noqa
