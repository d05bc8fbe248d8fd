# test_sync_manager.py
#
# Tests for one sync pass: upload, download, conflict handling and phase failures.
#
# Imports
import copy
#
# Third-Party Imports
import pytest
#
# Local Imports
from travel_journal.Constants import (
    EPOCH_TIMESTAMP, ERROR_AUTHENTICATION, ERROR_BACKEND_UNREACHABLE, ERROR_NO_CONNECTION,
)
from travel_journal.Models.Entry import Entry
from travel_journal.Models.Trip import Trip
from travel_journal.remote_api.exceptions import APIResponseError, AuthenticationError
from travel_journal.Sync.entities import ENTRY_ENTITY, TRIP_ENTITY
from travel_journal.Sync.Sync_Manager import SyncManager, SyncResult
#
########################################################################################################################
#
# Helpers:

def _trip(db, title="Iceland", **fields):
    return Trip(db, {"title": title, **fields}).save()


def _entry(db, trip, title="Day one", **fields):
    return Entry(db, {"trip_id": trip.id, "title": title, **fields}).save()


def _remote_trip(record_id="remote-trip", title="From elsewhere", updated_at="2030-01-01T00:00:00.000Z", **fields):
    return {
        "id": record_id, "title": title, "description": None, "start_date": None, "end_date": None,
        "created_at": "2030-01-01T00:00:00.000Z", "updated_at": updated_at, "deleted": False, **fields,
    }


def _remote_entry(record_id="remote-entry", trip_id="remote-trip", updated_at="2030-01-01T00:00:00.000Z", **fields):
    return {
        "id": record_id, "trip_id": trip_id, "title": "Remote day", "content": None, "location": None,
        "latitude": None, "longitude": None,
        "created_at": "2030-01-01T00:00:00.000Z", "updated_at": updated_at, "deleted": False, **fields,
    }


#
# Tests:

class TestSyncResult:
    def test_failure_has_no_counts(self):
        result = SyncResult.failure("boom")
        assert not result.success
        assert result.uploaded_trips == 0
        assert result.to_dict() == {"success": False, "error": "boom"}

    def test_success_dict_reports_counts(self):
        result = SyncResult(success=True, uploaded={"trips": 2}, downloaded={"entries": 3})
        assert result.to_dict() == {
            "success": True, "uploaded_trips": 2, "uploaded_entries": 0,
            "downloaded_trips": 0, "downloaded_entries": 3,
        }


@pytest.mark.asyncio
class TestUpload:
    async def test_pending_records_are_uploaded_and_marked_synced(self, device, backend):
        trip = _trip(device.db)
        entry = _entry(device.db, trip, content="Geysers", latitude=64.3, longitude=-20.3)

        result = await device.manager.sync_all()

        assert result.success
        assert result.uploaded_trips == 1
        assert result.uploaded_entries == 1
        assert backend.tables["trips"][trip.id]["title"] == "Iceland"
        assert backend.tables["entries"][entry.id]["content"] == "Geysers"
        assert Trip.find_by_id(device.db, trip.id).sync_status == "synced"
        assert Entry.find_by_id(device.db, entry.id).sync_status == "synced"

    async def test_trips_are_uploaded_before_entries(self, device, backend):
        trip = _trip(device.db)
        _entry(device.db, trip)
        # Make the entry the older change; type order must still win.
        device.db.execute("UPDATE entries SET updated_at = '2000-01-01T00:00:00.000Z'")

        await device.manager.sync_all()

        writes = [call[1] for call in backend.calls if call[0] in ("upsert", "update")]
        assert writes == ["trips", "entries"]

    async def test_upload_does_not_bump_updated_at(self, device, backend):
        trip = _trip(device.db)
        before = trip.updated_at

        await device.manager.sync_all()

        assert Trip.find_by_id(device.db, trip.id).updated_at == before
        assert backend.tables["trips"][trip.id]["updated_at"] == before

    async def test_images_stay_local(self, device, backend):
        trip = _trip(device.db)
        entry = _entry(device.db, trip, images=["file:///photos/1.jpg"])

        await device.manager.sync_all()

        assert "images" not in backend.tables["entries"][entry.id]
        assert Entry.find_by_id(device.db, entry.id).images == ["file:///photos/1.jpg"]

    async def test_failed_upload_marks_record_failed_and_continues(self, device, backend):
        bad = _trip(device.db, "Broken")
        good = _trip(device.db, "Fine")
        backend.failing_ids.add(bad.id)

        result = await device.manager.sync_all()

        assert result.success
        assert result.uploaded_trips == 1
        assert Trip.find_by_id(device.db, bad.id).sync_status == "failed"
        assert Trip.find_by_id(device.db, good.id).sync_status == "synced"
        assert bad.id not in backend.tables["trips"]

    async def test_failed_records_are_not_retried_until_requeued(self, device, backend):
        bad = _trip(device.db, "Broken")
        backend.failing_ids.add(bad.id)
        await device.manager.sync_all()
        backend.failing_ids.clear()
        backend.calls.clear()

        await device.manager.sync_all()
        assert ("upsert", "trips", bad.id) not in backend.calls

        assert Trip.requeue_failed(device.db) == 1
        result = await device.manager.sync_all()
        assert result.uploaded_trips == 1
        assert Trip.find_by_id(device.db, bad.id).sync_status == "synced"

    async def test_tombstone_is_uploaded_as_remote_soft_delete(self, device, backend):
        trip = _trip(device.db)
        await device.manager.sync_all()

        trip.delete()
        result = await device.manager.sync_all()

        assert result.uploaded_trips == 1
        assert ("update", "trips", trip.id) in backend.calls
        assert backend.tables["trips"][trip.id]["deleted"] is True
        assert backend.tables["trips"][trip.id]["updated_at"] == trip.updated_at
        stored = Trip.find_by_id(device.db, trip.id, include_deleted=True)
        assert stored.deleted
        assert stored.sync_status == "synced"
        assert Trip.find_by_id(device.db, trip.id) is None

    async def test_edit_during_upload_stays_pending(self, device, backend):
        trip = _trip(device.db, "Original")

        def edit_while_uploading(table, record_id):
            Trip.find_by_id(device.db, record_id).update({"title": "Edited meanwhile"})

        device.remote.after_write = edit_while_uploading
        await device.manager.sync_all()
        device.remote.after_write = None

        stored = Trip.find_by_id(device.db, trip.id)
        assert stored.title == "Edited meanwhile"
        assert stored.sync_status == "pending"

        await device.manager.sync_all()
        assert backend.tables["trips"][trip.id]["title"] == "Edited meanwhile"
        assert Trip.find_by_id(device.db, trip.id).sync_status == "synced"


@pytest.mark.asyncio
class TestDownload:
    async def test_new_remote_rows_are_inserted_as_synced(self, device, backend):
        backend.insert_row("trips", _remote_trip())
        backend.insert_row("entries", _remote_entry(latitude=48.1, longitude=11.6))

        result = await device.manager.sync_all()

        assert result.downloaded_trips == 1
        assert result.downloaded_entries == 1
        trip = Trip.find_by_id(device.db, "remote-trip")
        entry = Entry.find_by_id(device.db, "remote-entry")
        assert trip.title == "From elsewhere"
        assert trip.sync_status == "synced"
        assert entry.latitude == 48.1
        assert entry.images == []
        assert Trip.find_unsynced(device.db) == []

    async def test_remote_changes_overwrite_synced_local_rows(self, device, backend):
        trip = _trip(device.db, "Old title")
        entry = _entry(device.db, trip, images=["file:///a.jpg"])
        await device.manager.sync_all()

        backend.tables["trips"][trip.id].update({"title": "New title", "updated_at": "2031-01-01T00:00:00.000Z"})
        backend.tables["entries"][entry.id].update({"content": "Remote text", "updated_at": "2031-01-01T00:00:00.000Z"})
        result = await device.manager.sync_all()

        assert result.downloaded_trips == 1
        assert result.downloaded_entries == 1
        stored_trip = Trip.find_by_id(device.db, trip.id)
        assert stored_trip.title == "New title"
        assert stored_trip.updated_at == "2031-01-01T00:00:00.000Z"
        assert stored_trip.created_at == trip.created_at
        stored_entry = Entry.find_by_id(device.db, entry.id)
        assert stored_entry.content == "Remote text"
        assert stored_entry.images == ["file:///a.jpg"]

    async def test_remote_soft_delete_is_applied(self, device, backend):
        trip = _trip(device.db)
        await device.manager.sync_all()

        backend.tables["trips"][trip.id].update({"deleted": True, "updated_at": "2031-01-01T00:00:00.000Z"})
        await device.manager.sync_all()

        assert Trip.find_by_id(device.db, trip.id) is None
        assert Trip.find_by_id(device.db, trip.id, include_deleted=True).deleted

    async def test_local_pending_change_wins(self, device, backend):
        trip = _trip(device.db, "Mine")
        await device.manager.sync_all()
        backend.tables["trips"][trip.id].update({"title": "Theirs", "updated_at": "2031-01-01T00:00:00.000Z"})
        Trip.find_by_id(device.db, trip.id).update({"title": "Mine, edited"})

        applied = await device.manager._download_entity(TRIP_ENTITY, EPOCH_TIMESTAMP)

        assert applied == 0
        stored = Trip.find_by_id(device.db, trip.id)
        assert stored.title == "Mine, edited"
        assert stored.sync_status == "pending"

    async def test_local_pending_tombstone_is_not_resurrected(self, device, backend):
        trip = _trip(device.db)
        await device.manager.sync_all()
        backend.tables["trips"][trip.id]["updated_at"] = "2031-01-01T00:00:00.000Z"
        trip.delete()

        applied = await device.manager._download_entity(TRIP_ENTITY, EPOCH_TIMESTAMP)

        assert applied == 0
        assert Trip.find_by_id(device.db, trip.id) is None

    async def test_only_rows_after_watermark_are_fetched(self, device, backend):
        backend.insert_row("trips", _remote_trip("old", updated_at="2020-01-01T00:00:00.000Z"))
        backend.insert_row("trips", _remote_trip("new", updated_at="2030-01-01T00:00:00.000Z"))
        device.state_store.set_last_sync_timestamp("2025-01-01T00:00:00.000Z")

        result = await device.manager.sync_all()

        assert result.downloaded_trips == 1
        assert Trip.find_by_id(device.db, "old") is None
        assert Trip.find_by_id(device.db, "new") is not None

    async def test_invalid_rows_are_skipped(self, device, backend):
        backend.insert_row("trips", _remote_trip())
        backend.insert_row("entries", _remote_entry("bad-coords", latitude=500))
        backend.insert_row("entries", _remote_entry("orphan", trip_id="no-such-trip"))
        backend.insert_row("entries", _remote_entry("good"))

        result = await device.manager.sync_all()

        assert result.success
        assert result.downloaded_entries == 1
        assert Entry.find_by_id(device.db, "good") is not None
        assert Entry.find_by_id(device.db, "bad-coords") is None
        assert Entry.find_by_id(device.db, "orphan") is None

    async def test_fetch_failure_counts_zero_and_continues(self, device, backend):
        backend.insert_row("trips", _remote_trip())
        backend.insert_row("entries", _remote_entry())
        backend.failing_selects.add("entries")

        result = await device.manager.sync_all()

        assert result.success
        assert result.downloaded_trips == 1
        assert result.downloaded_entries == 0
        assert device.state_store.get_last_sync_timestamp() is not None

    async def test_entity_list_can_be_restricted(self, device, backend):
        backend.insert_row("trips", _remote_trip())
        backend.insert_row("entries", _remote_entry())
        manager = SyncManager(device.db, device.remote, device.state_store, entities=[TRIP_ENTITY])

        result = await manager.sync_all()

        assert result.downloaded == {"trips": 1}
        assert Entry.find_by_id(device.db, "remote-entry") is None
        assert ENTRY_ENTITY.find_unsynced(device.db) == []


@pytest.mark.asyncio
class TestPassOutcome:
    async def test_watermark_is_set_after_successful_pass(self, device):
        assert device.state_store.get_last_sync_timestamp() is None
        result = await device.manager.sync_all()
        assert result.success
        watermark = device.state_store.get_last_sync_timestamp()
        assert watermark is not None
        assert watermark > EPOCH_TIMESTAMP

    async def test_second_pass_without_changes_is_a_no_op(self, device, backend):
        trip = _trip(device.db)
        _entry(device.db, trip)
        await device.manager.sync_all()
        snapshot = copy.deepcopy(backend.tables)
        local = device.db.execute("SELECT * FROM trips").rows + device.db.execute("SELECT * FROM entries").rows

        result = await device.manager.sync_all()

        assert result.success
        assert result.uploaded == {"trips": 0, "entries": 0}
        assert result.downloaded == {"trips": 0, "entries": 0}
        assert backend.tables == snapshot
        assert device.db.execute("SELECT * FROM trips").rows + device.db.execute("SELECT * FROM entries").rows == local

    async def test_empty_pass_succeeds(self, device):
        result = await device.manager.sync_all()
        assert result.success
        assert result.uploaded == {"trips": 0, "entries": 0}

    @pytest.mark.parametrize("setup, expected_prefix", [
        (lambda backend: setattr(backend, "online", False), ERROR_NO_CONNECTION),
        (lambda backend: setattr(backend, "auth_error", AuthenticationError("signup disabled")), ERROR_AUTHENTICATION),
        (lambda backend: setattr(backend, "probe_error", AuthenticationError("jwt expired")), ERROR_AUTHENTICATION),
        (lambda backend: setattr(backend, "probe_error", APIResponseError(503, "unavailable")), ERROR_BACKEND_UNREACHABLE),
    ])
    async def test_pre_flight_failures_change_nothing(self, device, backend, setup, expected_prefix):
        trip = _trip(device.db)
        backend.insert_row("trips", _remote_trip())
        setup(backend)

        result = await device.manager.sync_all()

        assert not result.success
        assert result.error.startswith(expected_prefix)
        assert Trip.find_by_id(device.db, trip.id).sync_status == "pending"
        assert Trip.find_by_id(device.db, "remote-trip") is None
        assert trip.id not in backend.tables["trips"]
        assert device.state_store.get_last_sync_timestamp() is None

    async def test_unexpected_error_is_reported_not_raised(self, device, mocker):
        mocker.patch.object(device.remote, "probe", side_effect=RuntimeError("kaboom"))
        result = await device.manager.sync_all()
        assert not result.success
        assert result.error == "kaboom"

    async def test_pass_duration_is_recorded_with_status(self, device, backend, mocker):
        histogram = mocker.patch("travel_journal.Sync.Sync_Manager.metrics.log_histogram")

        await device.manager.sync_all()
        backend.online = False
        await device.manager.sync_all()

        durations = [c for c in histogram.call_args_list if c.args[0] == "sync_pass_duration_seconds"]
        assert [c.kwargs["labels"]["status"] for c in durations] == ["success", "failure"]


@pytest.mark.asyncio
class TestTwoDevices:
    async def test_records_round_trip_between_devices(self, device, second_device):
        trip = _trip(device.db, "Shared trip", description="Road trip", start_date="2024-06-01")
        entry = _entry(device.db, trip, content="Left home", location="Berlin", latitude=52.5, longitude=13.4)
        await device.manager.sync_all()

        result = await second_device.manager.sync_all()

        assert result.downloaded_trips == 1
        assert result.downloaded_entries == 1
        copied_trip = Trip.find_by_id(second_device.db, trip.id)
        copied_entry = Entry.find_by_id(second_device.db, entry.id)
        for name in Trip.FIELDS + ("created_at", "updated_at"):
            assert getattr(copied_trip, name) == getattr(trip, name)
        for name in Entry.REMOTE_FIELDS + ("created_at", "updated_at"):
            assert getattr(copied_entry, name) == getattr(entry, name)
        assert copied_entry.sync_status == "synced"

    async def test_edit_on_one_device_reaches_the_other(self, device, second_device, backend):
        trip = _trip(device.db, "Draft")
        await device.manager.sync_all()
        await second_device.manager.sync_all()

        Trip.find_by_id(second_device.db, trip.id).update({"title": "Final"})
        await second_device.manager.sync_all()
        assert backend.tables["trips"][trip.id]["title"] == "Final"

        device.state_store.set_last_sync_timestamp(trip.created_at)
        await device.manager.sync_all()
        stored = Trip.find_by_id(device.db, trip.id)
        assert stored.title == "Final"
        assert stored.sync_status == "synced"

    async def test_delete_on_one_device_reaches_the_other(self, device, second_device):
        trip = _trip(device.db)
        await device.manager.sync_all()
        await second_device.manager.sync_all()

        Trip.find_by_id(second_device.db, trip.id).delete()
        await second_device.manager.sync_all()

        device.state_store.set_last_sync_timestamp(trip.created_at)
        await device.manager.sync_all()
        assert Trip.find_by_id(device.db, trip.id) is None
        assert Trip.find_all(device.db) == []

#
# End of test_sync_manager.py
########################################################################################################################
