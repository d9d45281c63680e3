"""Warehouse sink implementation using SQLAlchemy."""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import (
    Column,
    Date,
    Float,
    MetaData,
    String,
    Table,
    func,
    inspect,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.schema import CreateSchema

from services.usermanagement.application.interfaces import WarehouseSink
from services.usermanagement.config import UserManagementConfig
from services.usermanagement.domain.errors import RemoteFailure
from services.usermanagement.domain.mapping import to_warehouse_row
from services.usermanagement.domain.user import (
    BulkMigrationResult,
    MigratedUserSummary,
    User,
)
from services.usermanagement.infrastructure.db import create_warehouse_engine

logger = logging.getLogger(__name__)


def build_users_table(
    metadata: MetaData, table_name: str = "users", schema: str | None = None
) -> Table:
    return Table(
        table_name,
        metadata,
        Column("id", String(64), nullable=False),
        Column("name", String),
        Column("dob", Date),
        Column("email", String(320), nullable=False),
        Column("phone", String),
        Column("gender", String),
        Column("address", String),
        Column("created_at", Float, nullable=False),
        Column("migrated_at", Float, nullable=False),
        schema=schema,
    )


class SqlWarehouseSink(WarehouseSink):
    """
    Append-only users table in a SQL warehouse.

    The dataset maps to a database schema; ``None`` uses the connection's
    default schema. Rows are never updated or deleted here, so migrating
    the same user twice leaves two rows.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        dataset: str | None = "user_management",
        table_name: str = "users",
    ) -> None:
        self._engine = engine
        self._dataset = dataset
        self._table = build_users_table(MetaData(), table_name, dataset)

    @property
    def table(self) -> Table:
        return self._table

    def ensure_schema(self) -> None:
        """
        Create the dataset and table if they are missing.

        Existence and creation are separate round trips, so two processes
        bootstrapping at the same time can race. Run once at startup.
        """
        inspector = inspect(self._engine)
        if self._dataset and not inspector.has_schema(self._dataset):
            with self._engine.begin() as conn:
                conn.execute(CreateSchema(self._dataset, if_not_exists=True))
            logger.info(f"Created warehouse dataset {self._dataset}")

        if not inspector.has_table(self._table.name, schema=self._dataset):
            self._table.create(self._engine, checkfirst=True)
            logger.info(f"Created warehouse table {self._table.fullname}")

    def insert_row(self, user: User) -> bool:
        """
        Copy one user into the warehouse.

        Returns:
            True if the row was written. Every failure, including rejected
            fields, is logged and reported as False.
        """
        try:
            row = to_warehouse_row(user)
            values = row.as_dict()
            rejected = self._rejected_fields(values)
            if rejected:
                for field, message in rejected.items():
                    logger.error(f"Rejected field {field} for user {row.id}: {message}")
                return False

            with self._engine.begin() as conn:
                conn.execute(self._table.insert().values(**values))
            return True
        except SQLAlchemyError as exc:
            logger.error(f"Error migrating user {user.user_id}: {exc}")
            return False
        except Exception:
            logger.exception(f"Unexpected error migrating user {user.user_id}")
            return False

    def bulk_insert(self, users: Iterable[User]) -> BulkMigrationResult:
        """One insert per user, in order. Failures do not stop the batch."""
        total = 0
        success = 0
        errors: list[str] = []
        for user in users:
            total += 1
            if self.insert_row(user):
                success += 1
            else:
                errors.append(f"Failed to migrate user: {user.email}")

        return BulkMigrationResult(
            total=total, success=success, failed=total - success, errors=errors
        )

    def count_rows(self) -> int:
        try:
            with self._engine.connect() as conn:
                return int(
                    conn.execute(
                        select(func.count()).select_from(self._table)
                    ).scalar_one()
                )
        except SQLAlchemyError as exc:
            logger.error(f"Error counting migrated users: {exc}")
            raise RemoteFailure("Warehouse count failed") from exc

    def sample_rows(self, limit: int) -> list[MigratedUserSummary]:
        columns = self._table.c
        stmt = select(columns.id, columns.name, columns.email, columns.phone).limit(
            limit
        )
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(stmt).all()
        except SQLAlchemyError as exc:
            logger.error(f"Error reading migrated users: {exc}")
            raise RemoteFailure("Warehouse sample failed") from exc

        return [
            MigratedUserSummary(id=row.id, name=row.name, email=row.email, phone=row.phone)
            for row in rows
        ]

    def _rejected_fields(self, values: dict[str, object]) -> dict[str, str]:
        rejected: dict[str, str] = {}
        for column in self._table.columns:
            value = values.get(column.name)
            if value is None:
                if not column.nullable:
                    rejected[column.name] = "required field is missing"
                continue
            length = getattr(column.type, "length", None)
            if isinstance(value, str) and length is not None and len(value) > length:
                rejected[column.name] = f"value exceeds {length} characters"
        return rejected


def create_warehouse_sink(
    config: UserManagementConfig, engine: Engine | None = None
) -> SqlWarehouseSink:
    return SqlWarehouseSink(
        engine or create_warehouse_engine(config.warehouse_dsn),
        dataset=config.warehouse_dataset,
        table_name=config.warehouse_table,
    )
