"""
Celery Tasks for the Image Pipeline
"""

import traceback
from typing import Any, Dict

from imageworker.core.celery_app import celery_app
from imageworker.core.config import settings
from imageworker.core.exceptions import ImageWorkerError
from imageworker.core.logging import clear_job_context, get_logger
from imageworker.pipeline.descriptors import JobConfig
from imageworker.worker import run_job

logger = get_logger(__name__)


@celery_app.task(
    bind=True,
    name="imageworker.pipeline.tasks.process_image_job",
    max_retries=0,
    acks_late=True
)
def process_image_job(self, job: Dict[str, Any]) -> Dict[str, Any]:
    """
    Run one image job.

    Args:
        job: Job config as a JSON-compatible dict (see JobConfig)

    Returns:
        The run report as a dict
    """
    config = JobConfig.model_validate(job)
    logger.info("task_image_job_started", task_id=self.request.id, source=config.source_image_url)

    try:
        report = run_job(config, settings)
        logger.info("task_image_job_completed", task_id=self.request.id, ok=report.ok)
        return report.to_dict()
    except ImageWorkerError as e:
        logger.error("task_image_job_failed", task_id=self.request.id, **e.to_dict())
        raise
    except Exception as e:
        logger.error(
            "task_image_job_unexpected_error",
            task_id=self.request.id,
            error=str(e),
            traceback=traceback.format_exc()
        )
        raise
    finally:
        clear_job_context()
