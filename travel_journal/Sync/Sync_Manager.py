# Sync_Manager.py
# Description: One full reconciliation pass between the local journal database and the remote backend.
#
# A pass authenticates, checks that the backend answers, uploads every pending local record
# (trips before entries), downloads every remote row changed since the last watermark,
# and finally advances the watermark. Phase failures are reported through `SyncResult`;
# `sync_all()` never raises.
#
# Imports
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence
#
# 3rd-Party Imports
from loguru import logger
from pydantic import ValidationError
#
# Local Imports
from travel_journal.Constants import (
    EPOCH_TIMESTAMP, ERROR_NO_CONNECTION, ERROR_BACKEND_UNREACHABLE, ERROR_AUTHENTICATION, ERROR_UNKNOWN_SYNC,
)
from travel_journal.DB.Journal_DB import JournalDB, JournalDBError, InputError, get_current_utc_timestamp_iso
from travel_journal.DB.Sync_State import SyncStateStore
from travel_journal.Metrics.metrics_logger import MetricsLogger
from travel_journal.Models.Base_Model import ApplyOutcome
from travel_journal.remote_api.client import RemoteStoreClient
from travel_journal.remote_api.exceptions import APIConnectionError, AuthenticationError, RemoteAPIError
from travel_journal.Sync.entities import DEFAULT_ENTITIES, SyncableEntity
#
#######################################################################################################################
#
# Functions:

metrics = MetricsLogger(base_labels={"component": "sync_manager"})


@dataclass
class SyncResult:
    """Outcome of one sync pass. Counts are keyed by entity name ("trips", "entries")."""
    success: bool
    uploaded: Dict[str, int] = field(default_factory=dict)
    downloaded: Dict[str, int] = field(default_factory=dict)
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str) -> "SyncResult":
        return cls(success=False, error=error)

    @property
    def uploaded_trips(self) -> int:
        return self.uploaded.get("trips", 0)

    @property
    def uploaded_entries(self) -> int:
        return self.uploaded.get("entries", 0)

    @property
    def downloaded_trips(self) -> int:
        return self.downloaded.get("trips", 0)

    @property
    def downloaded_entries(self) -> int:
        return self.downloaded.get("entries", 0)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success}
        if self.success:
            data.update({
                "uploaded_trips": self.uploaded_trips,
                "uploaded_entries": self.uploaded_entries,
                "downloaded_trips": self.downloaded_trips,
                "downloaded_entries": self.downloaded_entries,
            })
        if self.error is not None:
            data["error"] = self.error
        return data


class SyncManager:
    """
    Runs sync passes for one local database against one remote backend.

    The manager itself holds no pass state; the caller (normally `SyncSession`) is
    responsible for never running two passes at once.
    """

    def __init__(
        self,
        db: JournalDB,
        remote: RemoteStoreClient,
        state_store: SyncStateStore,
        entities: Sequence[SyncableEntity] = DEFAULT_ENTITIES,
    ):
        self.db = db
        self.remote = remote
        self.state_store = state_store
        self.entities = tuple(entities)

    async def sync_all(self) -> SyncResult:
        """Runs one full pass. Safe to call with nothing pending; never raises."""
        start_time = time.perf_counter()
        logger.info("Starting sync pass...")
        try:
            result = await self._run_pass()
        except Exception as e:
            logger.exception(f"Sync pass aborted by an unexpected error: {e}")
            result = SyncResult.failure(str(e) or ERROR_UNKNOWN_SYNC)

        elapsed = time.perf_counter() - start_time
        metrics.log_histogram("sync_pass_duration_seconds", elapsed,
                              labels={"status": "success" if result.success else "failure"})
        if result.success:
            logger.info(f"Sync pass finished in {elapsed:.2f}s: uploaded {result.uploaded}, downloaded {result.downloaded}")
        else:
            logger.warning(f"Sync pass failed after {elapsed:.2f}s: {result.error}")
        return result

    async def _run_pass(self) -> SyncResult:
        failure = await self._check_remote()
        if failure is not None:
            return failure

        uploaded = {}
        for entity in self.entities:
            uploaded[entity.name] = await self._upload_entity(entity)

        watermark = self.state_store.get_last_sync_timestamp() or EPOCH_TIMESTAMP
        downloaded = {}
        for entity in self.entities:
            downloaded[entity.name] = await self._download_entity(entity, watermark)

        self.state_store.set_last_sync_timestamp(get_current_utc_timestamp_iso())
        return SyncResult(success=True, uploaded=uploaded, downloaded=downloaded)

    async def _check_remote(self) -> Optional[SyncResult]:
        """Authenticates and probes the backend. Returns a failure result, or None to proceed."""
        try:
            await self.remote.ensure_session()
        except APIConnectionError as e:
            logger.warning(f"Backend not reachable during authentication: {e}")
            return SyncResult.failure(ERROR_NO_CONNECTION)
        except RemoteAPIError as e:
            logger.error(f"Authentication with the backend failed: {e}")
            return SyncResult.failure(f"{ERROR_AUTHENTICATION}: {e}")

        try:
            await self.remote.probe()
        except APIConnectionError as e:
            logger.warning(f"Connectivity probe failed: {e}")
            return SyncResult.failure(ERROR_NO_CONNECTION)
        except AuthenticationError as e:
            logger.error(f"Connectivity probe was rejected: {e}")
            return SyncResult.failure(f"{ERROR_AUTHENTICATION}: {e}")
        except RemoteAPIError as e:
            logger.error(f"Backend answered the connectivity probe with an error: {e}")
            return SyncResult.failure(f"{ERROR_BACKEND_UNREACHABLE}: {e}")
        return None

    async def _upload_entity(self, entity: SyncableEntity) -> int:
        """Pushes pending records of one type, oldest change first. Returns the number uploaded."""
        pending = entity.find_unsynced(self.db)
        if not pending:
            return 0
        logger.debug(f"Uploading {len(pending)} pending {entity.name}")

        uploaded = 0
        for record in pending:
            try:
                if record.deleted:
                    await self.remote.update(
                        entity.table_name,
                        {"deleted": True, "updated_at": record.updated_at},
                        {"id": ("eq", record.id)},
                    )
                else:
                    await self.remote.upsert(entity.table_name, record.to_remote_row(), on_conflict="id")
            except RemoteAPIError as e:
                logger.warning(f"Upload of {entity.model.entity_type()} {record.id} failed: {e}")
                record.mark_failed_locally()
                metrics.log_counter("sync_record_upload_failures_total", labels={"entity": entity.name})
                continue

            if not record.mark_synced_locally():
                logger.debug(f"{entity.model.entity_type()} {record.id} changed during upload; it stays pending.")
            uploaded += 1

        metrics.log_counter("sync_records_uploaded_total", value=uploaded, labels={"entity": entity.name})
        return uploaded

    async def _download_entity(self, entity: SyncableEntity, watermark: str) -> int:
        """Applies remote rows of one type changed after `watermark`. Returns the number applied."""
        try:
            rows = await self.remote.select(
                entity.table_name,
                filters={"updated_at": ("gt", watermark)},
                order="updated_at.asc",
            )
        except RemoteAPIError as e:
            logger.error(f"Error fetching remote {entity.name}: {e}")
            return 0

        applied = 0
        for row in rows:
            try:
                outcome = entity.apply_remote_row(self.db, row)
            except (ValidationError, InputError, JournalDBError, KeyError) as e:
                logger.warning(f"Skipping remote {entity.model.entity_type()} {row.get('id', '<no id>')}: {e}")
                continue
            if outcome is not ApplyOutcome.SKIPPED_PENDING:
                applied += 1

        metrics.log_counter("sync_records_downloaded_total", value=applied, labels={"entity": entity.name})
        return applied


#
# End of Sync_Manager.py
#######################################################################################################################
