"""Celery application for background page rescans."""
from __future__ import annotations

from celery import Celery, signals
from kombu import Exchange, Queue

from pagestore.config import settings
from pagestore.logging_config import setup_logging

celery = Celery(
    "pagestore",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND or settings.REDIS_URL,
)

# ── Serialisation ──
celery.conf.accept_content = ["json"]
celery.conf.task_serializer = "json"
celery.conf.result_serializer = "json"
celery.conf.timezone = "UTC"
celery.conf.enable_utc = True

# ── Reliability ──
celery.conf.task_acks_late = True
celery.conf.worker_prefetch_multiplier = 1
celery.conf.task_reject_on_worker_lost = True

# ── Queues ──
default_exchange = Exchange("pagestore", type="direct")

celery.conf.task_queues = (
    Queue("rescan", default_exchange, routing_key="rescan"),
    Queue("dead_letter", default_exchange, routing_key="dead_letter"),
)

celery.conf.task_default_queue = "rescan"
celery.conf.task_default_exchange = "pagestore"
celery.conf.task_default_routing_key = "rescan"

celery.conf.task_routes = {
    "pagestore.workers.rescan.run_rescan": {"queue": "rescan"},
}

celery.conf.include = ["pagestore.workers.rescan"]


@signals.setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    # Connecting this signal stops Celery from installing its own handlers.
    setup_logging()
