"""Record store: CRUD and batched bulk operations over user records."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Iterable

from services.usermanagement.application.interfaces import DocumentStore
from services.usermanagement.domain.errors import DuplicateEmailError, RemoteFailure
from services.usermanagement.domain.mapping import to_epoch_seconds
from services.usermanagement.domain.user import User

logger = logging.getLogger(__name__)

BATCH_SIZE = 500

EMAIL_FIELD = "email"
CREATED_AT_FIELD = "createdAt"
UPDATED_AT_FIELD = "updatedAt"


def _parse_id(user_id: int | str) -> int | None:
    if isinstance(user_id, bool):
        return None
    if isinstance(user_id, int):
        return user_id
    try:
        return int(str(user_id).strip())
    except ValueError:
        return None


def _to_document(user: User, *, created_at: float, updated_at: float) -> dict[str, Any]:
    return {
        "name": user.name,
        "dob": user.dob.isoformat(),
        EMAIL_FIELD: user.email,
        "password": user.password,
        "phone": user.phone,
        "gender": user.gender,
        "address": user.address,
        CREATED_AT_FIELD: created_at,
        UPDATED_AT_FIELD: updated_at,
    }


def _from_document(key: int, document: dict[str, Any]) -> User:
    return User(
        user_id=key,
        name=document["name"],
        dob=date.fromisoformat(document["dob"]),
        email=document[EMAIL_FIELD],
        password=document["password"],
        phone=document["phone"],
        gender=document["gender"],
        address=document["address"],
        created_at=datetime.fromtimestamp(document[CREATED_AT_FIELD], tz=timezone.utc),
        updated_at=datetime.fromtimestamp(document[UPDATED_AT_FIELD], tz=timezone.utc),
    )


def _now() -> float:
    return to_epoch_seconds(datetime.now(timezone.utc))


class RecordStore:
    """
    User records kept in a document store.

    Email uniqueness is enforced by looking the email up before writing.
    The lookup and the write are separate calls, so two concurrent creates
    (or updates) with the same email can both pass the check. This is a
    known limitation; callers needing strict uniqueness must serialize
    writes per email.
    """

    def __init__(self, documents: DocumentStore) -> None:
        self._documents = documents

    def create(self, user: User) -> int:
        """
        Persist a new user.

        Returns:
            The allocated id

        Raises:
            DuplicateEmailError: If another record already uses the email
        """
        if self.email_exists(user.email):
            raise DuplicateEmailError(user.email)

        key = self._documents.allocate_id()
        now = _now()
        self._documents.put(key, _to_document(user, created_at=now, updated_at=now))
        logger.info(f"Created user {key}")
        return key

    def get_by_id(self, user_id: int | str) -> User | None:
        """Malformed ids resolve to None, the same as missing ones."""
        key = _parse_id(user_id)
        if key is None:
            return None
        document = self._documents.get(key)
        if document is None:
            return None
        return _from_document(key, document)

    def get_by_email(self, email: str) -> User | None:
        matches = self._documents.query(
            filter_field=EMAIL_FIELD, filter_value=email, limit=1
        )
        if not matches:
            return None
        key, document = matches[0]
        return _from_document(key, document)

    def email_exists(self, email: str) -> bool:
        return self.get_by_email(email) is not None

    def list_all(self) -> list[User]:
        """All users, newest first. Loads the full set."""
        return [
            _from_document(key, document)
            for key, document in self._documents.query(
                order_by=CREATED_AT_FIELD, descending=True
            )
        ]

    def list_page(self, limit: int, offset: int = 0) -> list[User]:
        return [
            _from_document(key, document)
            for key, document in self._documents.query(
                order_by=CREATED_AT_FIELD,
                descending=True,
                limit=limit,
                offset=offset,
            )
        ]

    def search(self, term: str) -> list[User]:
        """
        Filter every user in memory.

        Name and email match case-insensitively; phone matches only on the
        raw, unnormalized string.
        """
        lowered = term.lower()
        return [
            user
            for user in self.list_all()
            if lowered in user.name.lower()
            or lowered in user.email.lower()
            or term in user.phone
        ]

    def update(self, user_id: int | str, user: User) -> bool:
        """
        Replace every field of a stored user except its id and creation time.

        Returns:
            False if the id does not resolve or the new email belongs to
            another record; True once the replacement is written
        """
        key = _parse_id(user_id)
        if key is None:
            return False
        existing = self._documents.get(key)
        if existing is None:
            return False

        if existing[EMAIL_FIELD] != user.email and self.email_exists(user.email):
            logger.warning(f"Rejected update of user {key}: email already in use")
            return False

        document = _to_document(
            user, created_at=existing[CREATED_AT_FIELD], updated_at=_now()
        )
        self._documents.put(key, document)
        return True

    def delete(self, user_id: int | str) -> bool:
        key = _parse_id(user_id)
        if key is None:
            return False
        if self._documents.get(key) is None:
            return False
        self._documents.delete(key)
        return True

    def count(self) -> int:
        return sum(1 for _ in self._documents.keys())

    def bulk_create(self, users: Iterable[User]) -> int:
        """
        Create many users, flushing every ``BATCH_SIZE`` records.

        Records whose email is already stored, or already queued earlier in
        this call, are skipped. A record that fails during preparation is
        logged and skipped. A failed flush is logged and its records are
        not counted.

        Returns:
            Number of records written
        """
        success_count = 0
        batch: list[tuple[int, dict[str, Any]]] = []
        queued_emails: set[str] = set()

        for user in users:
            try:
                if user.email in queued_emails or self.email_exists(user.email):
                    logger.info(f"Skipping user with existing email {user.email}")
                    continue
                key = self._documents.allocate_id()
                now = _now()
                batch.append(
                    (key, _to_document(user, created_at=now, updated_at=now))
                )
                queued_emails.add(user.email)
            except Exception as exc:
                logger.error(f"Error preparing user {getattr(user, 'email', user)!r}: {exc}")
                continue

            if len(batch) >= BATCH_SIZE:
                success_count += self._flush(batch)
                batch = []

        if batch:
            success_count += self._flush(batch)

        return success_count

    def delete_all(self) -> int:
        """
        Delete every user in batches of ``BATCH_SIZE``.

        Returns:
            Number of records deleted
        """
        deleted = 0
        keys: list[int] = []
        for key in self._documents.keys():
            keys.append(key)
            if len(keys) >= BATCH_SIZE:
                deleted += self._delete_batch(keys)
                keys = []

        if keys:
            deleted += self._delete_batch(keys)

        logger.info(f"Deleted {deleted} users")
        return deleted

    def _flush(self, batch: list[tuple[int, dict[str, Any]]]) -> int:
        try:
            self._documents.put_many(batch)
        except RemoteFailure as exc:
            logger.error(f"Failed to write batch of {len(batch)} users: {exc}")
            return 0
        return len(batch)

    def _delete_batch(self, keys: list[int]) -> int:
        try:
            self._documents.delete_many(keys)
        except RemoteFailure as exc:
            logger.error(f"Failed to delete batch of {len(keys)} users: {exc}")
            return 0
        return len(keys)
