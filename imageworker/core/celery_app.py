"""
Celery application for queued image jobs.

The CLI runs one job and exits; under celery each worker process takes one
job at a time from the `images` queue and acknowledges it only once the run
report has been produced.
"""

from celery import Celery
from kombu import Queue

from imageworker.core.config import settings

IMAGE_QUEUE = "images"

celery_app = Celery(
    "imageworker",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["imageworker.pipeline.tasks"]
)

celery_app.conf.update(
    # Job configs and run reports are plain JSON
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    enable_utc=True,

    task_track_started=True,
    task_soft_time_limit=15 * 60,
    task_time_limit=20 * 60,
    result_expires=7 * 24 * 3600,

    # Tiling already fans out over TILE_WORKERS threads
    worker_prefetch_multiplier=1,
    worker_concurrency=1,

    task_queues=(Queue(IMAGE_QUEUE, routing_key=f"{IMAGE_QUEUE}.#"),),
    task_default_queue=IMAGE_QUEUE,
    task_default_routing_key=f"{IMAGE_QUEUE}.job",

    task_acks_late=True,
    task_reject_on_worker_lost=True,
)
