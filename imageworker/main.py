"""
Image Derivative Worker - command line entry point

    imageworker -config job.json

Exit codes: 0 every operation succeeded, 1 some operation or publish failed,
2 the job could not run at all (bad config or unavailable source).
"""

import argparse
import sys
from typing import List, Optional

from pydantic import ValidationError

from imageworker.core.config import settings
from imageworker.core.exceptions import ImageWorkerError
from imageworker.core.logging import get_logger, setup_logging
from imageworker.core.metrics import push_metrics
from imageworker.pipeline.descriptors import JobConfig
from imageworker.worker import run_job

logger = get_logger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="imageworker",
        description="Derive images from one source image and publish them."
    )
    parser.add_argument("-config", "--config", dest="config", required=True, help="Path to the job JSON file")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL, help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--console-logs", action="store_true", help="Human readable logs instead of JSON")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(
        log_level=args.log_level,
        json_format=settings.LOG_FORMAT_JSON and not args.console_logs
    )

    logger.info("config_loading", path=args.config)
    try:
        job = JobConfig.from_file(args.config)
    except (OSError, ValidationError) as e:
        logger.error("config_invalid", path=args.config, error=str(e))
        return 2

    try:
        report = run_job(job, settings)
    except ImageWorkerError as e:
        logger.error("worker_aborted", **e.to_dict())
        return 2
    finally:
        if settings.PUSHGATEWAY_URL:
            push_metrics(settings.PUSHGATEWAY_URL)

    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
