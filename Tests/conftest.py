# Tests/conftest.py
#
#
# Imports
import pytest
#
# Third-party imports
from loguru import logger
#
# Local imports
from travel_journal.DB.Journal_DB import JournalDB
from travel_journal.Models.Entry import Entry
from travel_journal.Models.Trip import Trip
#
############################################################################################################################
#
# Fixtures:

@pytest.fixture
def caplog_loguru(caplog):
    """Propagates loguru records into pytest's caplog."""
    handler_id = logger.add(caplog.handler, format="{message}", level=0)
    yield caplog
    logger.remove(handler_id)


@pytest.fixture
def client_id():
    return "test_client"


@pytest.fixture
def db(client_id):
    """Fresh in-memory journal database per test."""
    instance = JournalDB(":memory:", client_id=client_id)
    yield instance
    instance.close_connection()


@pytest.fixture
def file_db(tmp_path, client_id):
    """File-backed journal database, for tests that reopen the file."""
    instance = JournalDB(tmp_path / "journal.db", client_id=client_id)
    yield instance
    instance.close_connection()


@pytest.fixture
def make_trip(db):
    def _make(title="Iceland", **fields):
        return Trip(db, {"title": title, **fields}).save()
    return _make


@pytest.fixture
def make_entry(db, make_trip):
    def _make(trip=None, title="Day one", **fields):
        trip = trip or make_trip()
        return Entry(db, {"trip_id": trip.id, "title": title, **fields}).save()
    return _make
