from __future__ import annotations

from fastapi import FastAPI

from services.usermanagement.api.routes import create_router, install_error_handlers
from services.usermanagement.application.migration import MigrationCoordinator
from services.usermanagement.application.record_store import RecordStore
from services.usermanagement.config import (
    UserManagementConfig,
    configure_logging,
    load_config,
)
from services.usermanagement.infrastructure.redis_documents import (
    create_document_store,
)
from services.usermanagement.infrastructure.warehouse import create_warehouse_sink


def build_app(config: UserManagementConfig | None = None) -> FastAPI:
    cfg = config or load_config()
    configure_logging(cfg.log_level)
    app = FastAPI()

    @app.get("/ping")
    async def ping():
        return {"message": "pong"}

    # One store client and one warehouse engine per process, shared by reference.
    record_store = RecordStore(create_document_store(cfg))
    sink = create_warehouse_sink(cfg)
    sink.ensure_schema()

    coordinator = MigrationCoordinator(record_store=record_store, sink=sink)

    install_error_handlers(app)
    app.include_router(create_router(record_store, coordinator))

    return app


def create_app() -> FastAPI:
    """Application factory, e.g. ``uvicorn --factory ...main:create_app``."""
    return build_app()
