# Base_Model.py
# Description: Shared record behaviour for syncable journal records (trips, entries).
#
# Every record carries an id, created/updated timestamps, a sync status and a soft-delete flag.
# Mutations go through `save()`, `update()` and `delete()`, which mark the record pending,
# persist it, and then append an entry to the local sync log. The sync engine uses the
# `*_locally` helpers and `apply_remote_row()` so that remote bookkeeping never bumps
# `updated_at` or re-queues a record.
#
# Imports
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Type, TypeVar
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from travel_journal.Constants import (
    SYNC_STATUS_SYNCED, SYNC_STATUS_PENDING, SYNC_STATUS_FAILED, ALL_SYNC_STATUSES,
    SYNC_ACTION_CREATE, SYNC_ACTION_UPDATE, SYNC_ACTION_DELETE,
)
from travel_journal.DB.Journal_DB import (
    JournalDB, JournalDBError, InputError, generate_uuid, get_current_utc_timestamp_iso,
)
#
#######################################################################################################################
#
# Functions:

R = TypeVar("R", bound="BaseRecord")


class ApplyOutcome(str, Enum):
    """What `apply_remote_row` did with a downloaded row."""
    INSERTED = "inserted"
    UPDATED = "updated"
    SKIPPED_PENDING = "skipped_pending"


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def next_timestamp(previous: Optional[str]) -> str:
    """
    Current UTC time, or one millisecond past `previous` when the clock has not moved beyond it.
    Successive mutations of a record therefore always produce strictly increasing timestamps.
    """
    now = get_current_utc_timestamp_iso()
    prev_dt = _parse_timestamp(previous)
    if prev_dt is None:
        return now
    now_dt = _parse_timestamp(now)
    if now_dt > prev_dt:
        return now
    return _format_timestamp(prev_dt + timedelta(milliseconds=1))


class BaseRecord:
    """
    Base class for syncable records. Subclasses declare their table and columns.

    Attributes:
        table_name: Local (and remote) table name.
        FIELDS: Record-specific columns, in table order.
        UPDATABLE_FIELDS: Columns that `update()` accepts.
        REMOTE_FIELDS: Record-specific columns included in uploads and applied from downloads.
    """
    table_name: ClassVar[str] = ""
    FIELDS: ClassVar[Tuple[str, ...]] = ()
    UPDATABLE_FIELDS: ClassVar[Tuple[str, ...]] = ()
    REMOTE_FIELDS: ClassVar[Tuple[str, ...]] = ()
    BASE_FIELDS: ClassVar[Tuple[str, ...]] = ("id", "created_at", "updated_at", "sync_status", "deleted")

    def __init__(self, db: JournalDB, data: Optional[Dict[str, Any]] = None):
        data = dict(data or {})
        now = get_current_utc_timestamp_iso()
        self.db = db
        self.id: str = data.get("id") or generate_uuid()
        self.created_at: str = data.get("created_at") or now
        self.updated_at: str = data.get("updated_at") or now
        self.sync_status: str = data.get("sync_status") or SYNC_STATUS_PENDING
        self.deleted: bool = bool(data.get("deleted") or False)
        for name in self.FIELDS:
            setattr(self, name, self._coerce_field(name, data.get(name)))

    def __repr__(self):
        return (f"{type(self).__name__}(id={self.id!r}, sync_status={self.sync_status!r}, "
                f"deleted={self.deleted!r}, updated_at={self.updated_at!r})")

    @classmethod
    def entity_type(cls) -> str:
        return cls.__name__

    # --- Field handling ---

    def _coerce_field(self, name: str, value: Any) -> Any:
        """Hook for subclasses to convert stored representations into Python values."""
        return value

    def _serialize_field(self, name: str, value: Any) -> Any:
        """Hook for subclasses to convert Python values into stored representations."""
        return value

    def validate(self):
        """Raise InputError if the record is not storable. Subclasses extend this."""
        if not self.id or not isinstance(self.id, str):
            raise InputError(f"{self.entity_type()} id must be a non-empty string.")
        if self.sync_status not in ALL_SYNC_STATUSES:
            raise InputError(f"Invalid sync_status '{self.sync_status}'.")

    # --- Local state transitions ---

    def update_timestamp(self):
        self.updated_at = next_timestamp(self.updated_at)

    def update_sync_status(self, status: str):
        if status not in ALL_SYNC_STATUSES:
            raise InputError(f"Invalid sync_status '{status}'.")
        self.sync_status = status
        self.update_timestamp()

    def mark_as_deleted(self):
        self.deleted = True
        self.sync_status = SYNC_STATUS_PENDING
        self.update_timestamp()

    def prepare_for_db(self) -> Dict[str, Any]:
        """Column -> value mapping ready for SQLite (booleans as 0/1)."""
        row = {
            "id": self.id,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "sync_status": self.sync_status,
            "deleted": 1 if self.deleted else 0,
        }
        for name in self.FIELDS:
            row[name] = self._serialize_field(name, getattr(self, name))
        return row

    def to_dict(self) -> Dict[str, Any]:
        data = {name: getattr(self, name) for name in self.BASE_FIELDS}
        for name in self.FIELDS:
            data[name] = getattr(self, name)
        return data

    # --- Persistence ---

    def _write_row(self, row: Dict[str, Any]) -> int:
        assignments = ", ".join(f"{col} = ?" for col in row if col != "id")
        params = [value for col, value in row.items() if col != "id"] + [self.id]
        result = self.db.execute(f"UPDATE {self.table_name} SET {assignments} WHERE id = ?", params)
        if result.rows_affected == 0:
            raise JournalDBError(f"{self.entity_type()} '{self.id}' does not exist locally.")
        return result.rows_affected

    def save(self: R) -> R:
        """Inserts a new record, then logs a 'create' sync event."""
        self.validate()
        row = self.prepare_for_db()
        columns = ", ".join(row.keys())
        placeholders = ", ".join("?" for _ in row)
        self.db.execute(f"INSERT INTO {self.table_name} ({columns}) VALUES ({placeholders})", list(row.values()))
        logger.debug(f"Saved new {self.entity_type()} {self.id}")
        self.db.log_sync_event(self.entity_type(), self.id, SYNC_ACTION_CREATE)
        return self

    def update(self: R, changes: Dict[str, Any]) -> R:
        """
        Applies a partial update. Only keys present in `changes` are touched; an explicit
        None clears that field. The record becomes pending and gets a newer `updated_at`.

        Raises:
            InputError: If `changes` names an unknown or immutable field, or the result is invalid.
        """
        unknown = set(changes) - set(self.UPDATABLE_FIELDS)
        if unknown:
            raise InputError(f"Cannot update {self.entity_type()} field(s): {sorted(unknown)}")

        coerced = {name: self._coerce_field(name, value) for name, value in changes.items()}
        previous = {name: getattr(self, name) for name in coerced}
        for name, value in coerced.items():
            setattr(self, name, value)
        try:
            self.validate()
        except InputError:
            for name, value in previous.items():
                setattr(self, name, value)
            raise

        self.sync_status = SYNC_STATUS_PENDING
        self.update_timestamp()
        self._write_row(self.prepare_for_db())
        logger.debug(f"Updated {self.entity_type()} {self.id}: {sorted(changes)}")
        self.db.log_sync_event(self.entity_type(), self.id, SYNC_ACTION_UPDATE)
        return self

    def delete(self: R) -> R:
        """Soft-deletes the record. The row stays in the table as a pending tombstone."""
        self.mark_as_deleted()
        self._write_row({
            "deleted": 1,
            "sync_status": self.sync_status,
            "updated_at": self.updated_at,
        })
        logger.debug(f"Soft-deleted {self.entity_type()} {self.id}")
        self.db.log_sync_event(self.entity_type(), self.id, SYNC_ACTION_DELETE)
        return self

    # --- Sync engine support ---

    def _set_status_locally(self, status: str) -> bool:
        # Only the version that was uploaded is marked; a newer local edit stays pending.
        result = self.db.execute(
            f"UPDATE {self.table_name} SET sync_status = ? WHERE id = ? AND updated_at = ?",
            (status, self.id, self.updated_at),
        )
        if result.rows_affected == 0:
            return False
        self.sync_status = status
        return True

    def mark_synced_locally(self) -> bool:
        """
        Records a successful upload without touching `updated_at`. Returns False if the row
        was edited after this instance was loaded.
        """
        return self._set_status_locally(SYNC_STATUS_SYNCED)

    def mark_failed_locally(self) -> bool:
        """Records a failed upload without touching `updated_at`."""
        return self._set_status_locally(SYNC_STATUS_FAILED)

    def to_remote_row(self) -> Dict[str, Any]:
        row: Dict[str, Any] = {"id": self.id}
        for name in self.REMOTE_FIELDS:
            row[name] = getattr(self, name)
        row.update({
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "deleted": bool(self.deleted),
        })
        return row

    @classmethod
    def apply_remote_row(cls, db: JournalDB, row: Dict[str, Any]) -> ApplyOutcome:
        """
        Applies one downloaded row. A local record with a pending change always wins and is
        left alone; otherwise the remote values overwrite (or create) the local row as synced.
        """
        record_id = row["id"]
        existing = cls.find_by_id(db, record_id, include_deleted=True)
        if existing is not None and existing.sync_status == SYNC_STATUS_PENDING:
            logger.debug(f"Skipping remote {cls.entity_type()} {record_id}: local change pending.")
            return ApplyOutcome.SKIPPED_PENDING

        if existing is not None:
            for name in cls.REMOTE_FIELDS:
                if name in row:
                    setattr(existing, name, existing._coerce_field(name, row[name]))
            existing.updated_at = row.get("updated_at") or existing.updated_at
            existing.deleted = bool(row.get("deleted") or False)
            existing.sync_status = SYNC_STATUS_SYNCED
            db_row = existing.prepare_for_db()
            db_row.pop("created_at")
            existing._write_row(db_row)
            return ApplyOutcome.UPDATED

        record = cls(db, {
            **{name: row.get(name) for name in cls.REMOTE_FIELDS},
            "id": record_id,
            "created_at": row.get("created_at"),
            "updated_at": row.get("updated_at"),
            "deleted": bool(row.get("deleted") or False),
            "sync_status": SYNC_STATUS_SYNCED,
        })
        db_row = record.prepare_for_db()
        columns = ", ".join(db_row.keys())
        placeholders = ", ".join("?" for _ in db_row)
        db.execute(f"INSERT INTO {cls.table_name} ({columns}) VALUES ({placeholders})", list(db_row.values()))
        return ApplyOutcome.INSERTED

    # --- Finders ---

    @classmethod
    def _from_rows(cls: Type[R], db: JournalDB, rows: List[Dict[str, Any]]) -> List[R]:
        return [cls(db, row) for row in rows]

    @classmethod
    def find_by_id(cls: Type[R], db: JournalDB, record_id: str, include_deleted: bool = False) -> Optional[R]:
        query = f"SELECT * FROM {cls.table_name} WHERE id = ?"
        if not include_deleted:
            query += " AND deleted = 0"
        rows = db.execute(query, (record_id,)).rows
        return cls(db, rows[0]) if rows else None

    @classmethod
    def find_unsynced(cls: Type[R], db: JournalDB) -> List[R]:
        """Pending records, tombstones included, oldest change first."""
        return cls.find_by_sync_status(db, SYNC_STATUS_PENDING)

    @classmethod
    def find_by_sync_status(cls: Type[R], db: JournalDB, status: str) -> List[R]:
        if status not in ALL_SYNC_STATUSES:
            raise InputError(f"Invalid sync_status '{status}'.")
        rows = db.execute(
            f"SELECT * FROM {cls.table_name} WHERE sync_status = ? ORDER BY updated_at ASC",
            (status,),
        ).rows
        return cls._from_rows(db, rows)

    @classmethod
    def requeue_failed(cls, db: JournalDB) -> int:
        """
        Puts every failed record of this type back into the pending queue so the next sync
        retries it. The sync engine never calls this on its own.
        """
        result = db.execute(
            f"UPDATE {cls.table_name} SET sync_status = ? WHERE sync_status = ?",
            (SYNC_STATUS_PENDING, SYNC_STATUS_FAILED),
        )
        if result.rows_affected:
            logger.info(f"Re-queued {result.rows_affected} failed {cls.entity_type()} record(s) for upload.")
        return result.rows_affected

#
# End of Base_Model.py
#######################################################################################################################
