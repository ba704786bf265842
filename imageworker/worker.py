"""
Composition root: wires settings and a job config into a PipelineDriver.

This is the only place that reads `Settings`; everything below it receives
plain values.
"""

from typing import Optional

from sqlalchemy.exc import ArgumentError, SQLAlchemyError

from imageworker.core.config import Settings
from imageworker.core.database import create_db_and_tables, get_engine, redact_url
from imageworker.core.exceptions import StorageError
from imageworker.core.logging import get_logger
from imageworker.core.storage import IStorage, StorageFactory
from imageworker.modules.assets.recorder import AssetRecorder
from imageworker.pipeline.descriptors import JobConfig
from imageworker.pipeline.driver import PipelineDriver, RunReport
from imageworker.pipeline.output import OutputSink
from imageworker.pipeline.publisher import Publisher
from imageworker.pipeline.registry import default_registry
from imageworker.pipeline.source import SourceProvider

logger = get_logger(__name__)


def build_recorder(job: JobConfig, settings: Settings) -> Optional[AssetRecorder]:
    database_url = job.database_url or settings.DATABASE_URL
    if not database_url:
        return None

    try:
        safe_url = redact_url(database_url)
        engine = get_engine(database_url)
    except ArgumentError as e:
        raise StorageError(f"Invalid database URL: {e}")
    logger.info("database_connecting", url=safe_url)

    try:
        create_db_and_tables(engine)
    except SQLAlchemyError as e:
        # Publishing still runs; each version record then fails on its own file
        logger.error("database_setup_failed", url=safe_url, error=str(e))
    return AssetRecorder(engine, offer_id=job.offer_id, change_request_id=job.change_request_id)


def build_driver(job: JobConfig, settings: Settings, storage: Optional[IStorage] = None) -> PipelineDriver:
    publisher = Publisher(
        storage=storage or StorageFactory.get_storage(settings),
        recorder=build_recorder(job, settings),
        enabled=not job.disable_network
    )
    return PipelineDriver(
        registry=default_registry(),
        source=SourceProvider(settings.WORK_DIR, timeout=settings.DOWNLOAD_TIMEOUT_SECONDS),
        sink=OutputSink(settings.WORK_DIR),
        publisher=publisher,
        tile_workers=settings.TILE_WORKERS
    )


def run_job(job: JobConfig, settings: Settings, storage: Optional[IStorage] = None) -> RunReport:
    return build_driver(job, settings, storage=storage).run(job)
