from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, List

from fastapi import APIRouter, FastAPI, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from services.usermanagement.application.migration import MigrationCoordinator
from services.usermanagement.application.record_store import RecordStore
from services.usermanagement.domain.errors import (
    DuplicateEmailError,
    NotFoundError,
    RemoteFailure,
)
from services.usermanagement.domain.user import (
    BulkMigrationResult,
    MigratedUserSummary,
    MigrationOutcome,
    User,
)

logger = logging.getLogger(__name__)


def _timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code, content={"success": False, "message": message}
    )


class UserRequest(BaseModel):
    name: str
    dob: date
    email: str
    password: str
    phone: str = ""
    gender: str = ""
    address: str = ""

    def to_domain(self) -> User:
        return User(
            name=self.name,
            dob=self.dob,
            email=self.email,
            password=self.password,
            phone=self.phone,
            gender=self.gender,
            address=self.address,
        )


class UserResponse(BaseModel):
    id: int
    name: str
    dob: date
    email: str
    phone: str
    gender: str
    address: str
    created_at: str | None
    updated_at: str | None

    @classmethod
    def from_domain(cls, user: User) -> "UserResponse":
        return cls(
            id=user.user_id,
            name=user.name,
            dob=user.dob,
            email=user.email,
            phone=user.phone,
            gender=user.gender,
            address=user.address,
            created_at=_timestamp(user.created_at),
            updated_at=_timestamp(user.updated_at),
        )


class UserListResponse(BaseModel):
    success: bool = True
    users: List[UserResponse]
    count: int


class MigrationStatusResponse(BaseModel):
    success: bool = True
    total: int
    migrated: int
    pending: int


class MigratedRecordResponse(BaseModel):
    id: str
    name: str
    email: str
    phone: str

    @classmethod
    def from_domain(cls, summary: MigratedUserSummary) -> "MigratedRecordResponse":
        return cls(
            id=summary.id, name=summary.name, email=summary.email, phone=summary.phone
        )


class MigratedRecordsResponse(BaseModel):
    success: bool = True
    records: List[MigratedRecordResponse]
    count: int


class BulkMigrationPayload(BaseModel):
    total: int
    success: int
    failed: int
    errors: List[str]

    @classmethod
    def from_domain(cls, result: BulkMigrationResult) -> "BulkMigrationPayload":
        return cls(
            total=result.total,
            success=result.success,
            failed=result.failed,
            errors=list(result.errors),
        )


class BulkMigrationResponse(BaseModel):
    success: bool = True
    message: str
    result: BulkMigrationPayload


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DuplicateEmailError)
    async def duplicate_email_handler(request: Request, exc: DuplicateEmailError):
        return _failure(status.HTTP_409_CONFLICT, "Email already exists")

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _failure(status.HTTP_404_NOT_FOUND, str(exc))

    @app.exception_handler(RemoteFailure)
    async def remote_failure_handler(request: Request, exc: RemoteFailure):
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Error: {exc}")

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def create_router(
    record_store: RecordStore,
    coordinator: MigrationCoordinator,
) -> APIRouter:
    router = APIRouter()
    users_router = APIRouter(prefix="/api/users", tags=["users"])
    migration_router = APIRouter(prefix="/api/migration", tags=["migration"])

    @users_router.get("", response_model=UserListResponse)
    def list_users(
        search: str | None = None,
        limit: int | None = Query(default=None, ge=1),
        offset: int = Query(default=0, ge=0),
    ):
        if search:
            users = record_store.search(search)
        elif limit is not None:
            users = record_store.list_page(limit, offset)
        else:
            users = record_store.list_all()
        return UserListResponse(
            users=[UserResponse.from_domain(user) for user in users], count=len(users)
        )

    @users_router.get("/count")
    def count_users() -> Dict[str, Any]:
        return {"success": True, "count": record_store.count()}

    @users_router.get("/by-email", response_model=UserResponse)
    def get_user_by_email(email: str):
        user = record_store.get_by_email(email)
        if user is None:
            raise NotFoundError("User not found")
        return UserResponse.from_domain(user)

    @users_router.get("/{user_id}", response_model=UserResponse)
    def get_user(user_id: str):
        user = record_store.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return UserResponse.from_domain(user)

    @users_router.post("", status_code=201)
    def create_user(payload: UserRequest) -> Dict[str, Any]:
        user_id = record_store.create(payload.to_domain())
        return {
            "success": True,
            "message": "User created successfully",
            "userId": user_id,
        }

    @users_router.post("/bulk")
    def bulk_create_users(payload: List[UserRequest]) -> Dict[str, Any]:
        imported = record_store.bulk_create(item.to_domain() for item in payload)
        return {
            "success": True,
            "total": len(payload),
            "imported": imported,
            "skipped": len(payload) - imported,
        }

    @users_router.put("/{user_id}")
    def update_user(user_id: str, payload: UserRequest):
        if record_store.get_by_id(user_id) is None:
            raise NotFoundError("User not found")
        if not record_store.update(user_id, payload.to_domain()):
            return _failure(status.HTTP_409_CONFLICT, "Email already exists")
        return {"success": True, "message": "User updated successfully"}

    @users_router.delete("/{user_id}")
    def delete_user(user_id: str):
        if not record_store.delete(user_id):
            raise NotFoundError("User not found")
        return {"success": True, "message": "User deleted successfully"}

    @users_router.delete("")
    def delete_all_users() -> Dict[str, Any]:
        return {"success": True, "deleted": record_store.delete_all()}

    @migration_router.get("/status", response_model=MigrationStatusResponse)
    def migration_status():
        current = coordinator.status()
        return MigrationStatusResponse(
            total=current.total, migrated=current.migrated, pending=current.pending
        )

    @migration_router.get("/records", response_model=MigratedRecordsResponse)
    def migrated_records(limit: int = Query(default=100, ge=1)):
        records = coordinator.sample(limit)
        return MigratedRecordsResponse(
            records=[MigratedRecordResponse.from_domain(item) for item in records],
            count=len(records),
        )

    @migration_router.post("/bulk", response_model=BulkMigrationResponse)
    def bulk_migration():
        result = coordinator.migrate_all()
        if result.is_empty:
            return _failure(status.HTTP_200_OK, "No users found in the record store")
        return BulkMigrationResponse(
            message="Bulk migration completed",
            result=BulkMigrationPayload.from_domain(result),
        )

    @migration_router.post("/user/{user_id}")
    def migrate_user(user_id: str):
        outcome = coordinator.migrate_one(user_id)
        if outcome is MigrationOutcome.NOT_FOUND:
            raise NotFoundError("User not found")
        if outcome is MigrationOutcome.FAILED:
            return _failure(status.HTTP_200_OK, "Failed to migrate user")
        return {"success": True, "message": "User migrated successfully"}

    router.include_router(users_router)
    router.include_router(migration_router)

    return router
