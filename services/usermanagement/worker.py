from __future__ import annotations

import logging
from dataclasses import asdict

from redis import Redis
from rq import Queue, Worker as RQWorker
from rq.job import Job

from services.usermanagement.application.migration import MigrationCoordinator
from services.usermanagement.application.record_store import RecordStore
from services.usermanagement.config import (
    UserManagementConfig,
    configure_logging,
    load_config,
)
from services.usermanagement.infrastructure.redis_documents import create_document_store
from services.usermanagement.infrastructure.warehouse import create_warehouse_sink

logger = logging.getLogger(__name__)

MIGRATION_JOB_TIMEOUT = 1800


def build_coordinator(config: UserManagementConfig) -> MigrationCoordinator:
    sink = create_warehouse_sink(config)
    sink.ensure_schema()
    return MigrationCoordinator(
        record_store=RecordStore(create_document_store(config)),
        sink=sink,
    )


def run_bulk_migration() -> dict[str, object]:
    """Job body: copy every stored user into the warehouse once."""
    cfg = load_config()
    result = build_coordinator(cfg).migrate_all()
    if result.is_empty:
        logger.info("[Migration] No users found in the record store")
    else:
        logger.info(
            f"[Migration] total={result.total} success={result.success} failed={result.failed}"
        )
        for error in result.errors:
            logger.warning(f"[Migration] {error}")
    return asdict(result)


def create_queue(config: UserManagementConfig, connection: Redis | None = None) -> Queue:
    # rq stores pickled payloads, so it needs a connection without decoding.
    redis_conn = connection or Redis(
        host=config.redis_host, port=config.redis_port, db=config.redis_db
    )
    return Queue(
        config.migration_queue_name,
        connection=redis_conn,
        default_timeout=MIGRATION_JOB_TIMEOUT,
    )


def enqueue_bulk_migration(config: UserManagementConfig | None = None) -> Job:
    cfg = config or load_config()
    queue = create_queue(cfg)
    job = queue.enqueue(run_bulk_migration)
    logger.info(f"[Migration] Enqueued bulk migration job {job.id}")
    return job


def run_worker(config: UserManagementConfig | None = None) -> None:
    cfg = config or load_config()
    configure_logging(cfg.log_level)
    queue = create_queue(cfg)
    worker = RQWorker([queue], connection=queue.connection)
    logger.info(f"[Migration] Worker listening on queue {cfg.migration_queue_name!r}")
    worker.work()

