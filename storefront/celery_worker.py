# storefront/celery_worker.py
from celery import Celery

from storefront.utils.settings import (
    CELERY_BROKER_TIMEOUT,
    CELERY_BROKER_URL,
    CELERY_PUBLISH_MAX_RETRIES,
    CELERY_RESULT_BACKEND,
)

celery_app = Celery(
    "storefront",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# register task modules explicitly so the worker sees them
celery_app.conf.imports = (
    "storefront.services.notification_service",
    "storefront.tasks.cart_backup",
    "storefront.tasks.cache_purge",
)

celery_app.conf.task_serializer = "json"
celery_app.conf.accept_content = ["json"]
celery_app.conf.timezone = "UTC"
celery_app.conf.broker_connection_retry_on_startup = True
# a publish against a dead broker gives up after a few short retries
# instead of the default 3 attempts with up to 1s back-off each
celery_app.conf.task_publish_retry_policy = {
    "max_retries": CELERY_PUBLISH_MAX_RETRIES,
    "interval_start": 0,
    "interval_step": 0.2,
    "interval_max": 0.5,
}
celery_app.conf.broker_connection_timeout = CELERY_BROKER_TIMEOUT
celery_app.conf.broker_transport_options = {
    "max_retries": 1,
    "interval_start": 0,
    "interval_step": 0.2,
    "socket_timeout": CELERY_BROKER_TIMEOUT,
    "socket_connect_timeout": CELERY_BROKER_TIMEOUT,
}
