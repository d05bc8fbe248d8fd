# Tests/Sync/conftest.py
#
# In-memory stand-in for the remote backend, shareable between several simulated devices.
#
# Imports
import asyncio
import copy
from typing import Any, Dict, List, Optional, Set, Tuple
#
# Third-party imports
import pytest
import pytest_asyncio
#
# Local imports
from travel_journal.DB.Journal_DB import JournalDB
from travel_journal.DB.Sync_State import SyncStateStore
from travel_journal.remote_api.exceptions import APIConnectionError, APIResponseError
from travel_journal.Sync.connectivity import AppLifecycleMonitor, ConnectivityMonitor
from travel_journal.Sync.Sync_Manager import SyncManager
from travel_journal.Sync.Sync_Session import SyncSession
#
############################################################################################################################
#
# Fakes:

class FakeBackend:
    """Tables keyed by id, plus switches to simulate outages and failures."""

    def __init__(self):
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {"trips": {}, "entries": {}}
        self.online = True
        self.auth_error: Optional[Exception] = None
        self.probe_error: Optional[Exception] = None
        self.failing_ids: Set[str] = set()
        self.failing_selects: Set[str] = set()
        self.calls: List[Tuple[str, ...]] = []

    def insert_row(self, table: str, row: Dict[str, Any]):
        self.tables[table][row["id"]] = dict(row)


class FakeRemoteClient:
    """Implements the subset of RemoteStoreClient the sync engine uses."""

    def __init__(self, backend: FakeBackend):
        self.backend = backend
        self.session = None
        self.probe_gate: Optional[asyncio.Event] = None
        self.after_write = None

    def _check_online(self):
        if not self.backend.online:
            raise APIConnectionError("Connection error to http://fake.test: network down")

    async def ensure_session(self):
        self.backend.calls.append(("ensure_session",))
        self._check_online()
        if self.backend.auth_error is not None:
            raise self.backend.auth_error
        self.session = self.session or {"access_token": "fake-token"}
        return self.session

    async def probe(self):
        self.backend.calls.append(("probe",))
        if self.probe_gate is not None:
            await self.probe_gate.wait()
        self._check_online()
        if self.backend.probe_error is not None:
            raise self.backend.probe_error

    async def select(self, table, filters=None, columns="*", limit=None, order=None):
        self.backend.calls.append(("select", table))
        self._check_online()
        if table in self.backend.failing_selects:
            raise APIResponseError(500, f"select on {table} failed")
        rows = list(self.backend.tables[table].values())
        for column, (operator, value) in (filters or {}).items():
            assert operator == "gt", f"unsupported operator {operator}"
            rows = [row for row in rows if row[column] > value]
        rows.sort(key=lambda row: row["updated_at"])
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    async def upsert(self, table, row, on_conflict="id"):
        self.backend.calls.append(("upsert", table, row["id"]))
        self._check_online()
        if row["id"] in self.backend.failing_ids:
            raise APIResponseError(500, f"upsert of {row['id']} failed")
        current = self.backend.tables[table].get(row[on_conflict], {})
        self.backend.tables[table][row[on_conflict]] = {**current, **copy.deepcopy(row)}
        if self.after_write is not None:
            self.after_write(table, row["id"])

    async def update(self, table, fields, filters):
        record_id = filters["id"][1]
        self.backend.calls.append(("update", table, record_id))
        self._check_online()
        if record_id in self.backend.failing_ids:
            raise APIResponseError(500, f"update of {record_id} failed")
        if record_id in self.backend.tables[table]:
            self.backend.tables[table][record_id].update(fields)

    async def close(self):
        pass


class Device:
    """One simulated installation: its own database, state store and client on a shared backend."""

    def __init__(self, backend: FakeBackend, name: str):
        self.db = JournalDB(":memory:", client_id=name)
        self.state_store = SyncStateStore(None)
        self.remote = FakeRemoteClient(backend)
        self.manager = SyncManager(self.db, self.remote, self.state_store)

    def close(self):
        self.db.close_connection()


#
# Fixtures:

@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def device(backend):
    dev = Device(backend, "device_one")
    yield dev
    dev.close()


@pytest.fixture
def second_device(backend):
    dev = Device(backend, "device_two")
    yield dev
    dev.close()


@pytest.fixture
def network():
    return ConnectivityMonitor(connected=True)


@pytest.fixture
def app_state():
    return AppLifecycleMonitor()


@pytest_asyncio.fixture
async def session(device, network, app_state):
    sync_session = SyncSession(device.manager, network, app_state=app_state, sync_interval=3600)
    yield sync_session
    await sync_session.close()
