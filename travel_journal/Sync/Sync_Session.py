# Sync_Session.py
# Description: Long-lived controller deciding when sync passes run, and making sure only one runs at a time.
#
# Triggers:
#   - initialize(): initial pass once the remote identity is bootstrapped and the device is online
#   - offline -> online transitions reported by the connectivity monitor
#   - the app returning to the foreground (skipped while a pass is running)
#   - a periodic timer, every `sync_interval` seconds (skipped while a pass is running)
#   - explicit calls from the UI: `sync_data()` or `schedule_sync()`
#
# Imports
import asyncio
from typing import Callable, List, Optional, Set
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from travel_journal.Constants import (
    APP_STATE_ACTIVE, DEFAULT_SYNC_INTERVAL_SECONDS,
    ERROR_AUTHENTICATION, ERROR_NO_CONNECTION, ERROR_SYNC_IN_PROGRESS, ERROR_UNKNOWN_SYNC,
)
from travel_journal.remote_api.exceptions import APIConnectionError, RemoteAPIError
from travel_journal.Sync.connectivity import AppLifecycleMonitor, ConnectivityMonitor
from travel_journal.Sync.Sync_Manager import SyncManager, SyncResult
#
#######################################################################################################################
#
# Functions:

class SyncSession:
    """
    One per process. Owns the in-flight flag, the periodic timer, the listener
    subscriptions and every background sync task, and releases them in `close()`.

    `is_syncing` is the UI-facing "a pass is talking to the backend" flag. The separate
    in-flight flag is raised for the whole guarded call, including the connectivity check,
    and is what rejects overlapping passes.
    """

    def __init__(
        self,
        manager: SyncManager,
        network: ConnectivityMonitor,
        app_state: Optional[AppLifecycleMonitor] = None,
        sync_interval: float = DEFAULT_SYNC_INTERVAL_SECONDS,
    ):
        if sync_interval <= 0:
            raise ValueError("sync_interval must be positive.")
        self.manager = manager
        self.network = network
        self.app_state = app_state
        self.sync_interval = sync_interval

        self.is_syncing = False
        self.is_initialized = False
        self.last_result: Optional[SyncResult] = None
        self.last_error: Optional[str] = None

        self._in_flight = False
        self._closed = False
        self._unsubscribers: List[Callable[[], None]] = []
        self._timer_task: Optional[asyncio.Task] = None
        self._background_tasks: Set[asyncio.Task] = set()

    async def __aenter__(self) -> "SyncSession":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    # --- Manual trigger ---

    async def sync_data(self) -> SyncResult:
        """
        Runs one guarded pass. Returns a failure result without touching the network or
        any state if a pass is already in flight, and without calling the manager if the
        device is offline.
        """
        if self._in_flight:
            logger.debug("Sync requested while a pass is in flight; ignoring.")
            return SyncResult.failure(ERROR_SYNC_IN_PROGRESS)

        self._in_flight = True
        try:
            if not await self.network.is_connected():
                logger.info("Sync skipped: no network connection.")
                result = SyncResult.failure(ERROR_NO_CONNECTION)
                self.last_error = result.error
                self.last_result = result
                return result

            self.is_syncing = True
            self.last_error = None
            result = await self.manager.sync_all()
            self.last_result = result
            if not result.success:
                self.last_error = result.error or ERROR_UNKNOWN_SYNC
            return result
        except Exception as e:
            logger.exception(f"Sync attempt failed outside the sync pass: {e}")
            result = SyncResult.failure(str(e) or ERROR_UNKNOWN_SYNC)
            self.last_error = result.error
            self.last_result = result
            return result
        finally:
            self.is_syncing = False
            self._in_flight = False

    async def sync_if_idle(self) -> Optional[SyncResult]:
        """Runs a pass unless one is already in flight. Returns None when skipped."""
        if self._in_flight:
            logger.debug("Conditional sync skipped: a pass is already running.")
            return None
        return await self.sync_data()

    def schedule_sync(self, conditional: bool = False) -> asyncio.Task:
        """
        Starts a pass in the background and returns its task. Callers may await it or
        drop it; `close()` cancels whatever is still running.
        """
        if self._closed:
            raise RuntimeError("SyncSession is closed.")
        coro = self.sync_if_idle() if conditional else self.sync_data()
        task = asyncio.get_running_loop().create_task(coro, name="SyncSession.sync")
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def wait_idle(self):
        """Waits for every background pass started so far."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    # --- Lifecycle ---

    async def initialize(self):
        """
        Bootstraps the remote identity, subscribes to connectivity and app-state changes,
        starts the periodic timer and, when online, fires the initial pass.

        A failed bootstrap is recorded in `last_error`; the session still starts so later
        triggers can retry.
        """
        if self.is_initialized:
            return
        if self._closed:
            raise RuntimeError("SyncSession is closed.")

        authenticated = False
        try:
            await self.manager.remote.ensure_session()
            authenticated = True
        except APIConnectionError as e:
            logger.warning(f"Remote identity bootstrap deferred, backend unreachable: {e}")
            self.last_error = ERROR_NO_CONNECTION
        except RemoteAPIError as e:
            logger.error(f"Remote identity bootstrap failed: {e}")
            self.last_error = f"{ERROR_AUTHENTICATION}: {e}"

        online = await self.network.is_connected()

        self._unsubscribers.append(self.network.add_listener(self._on_connectivity_change))
        if self.app_state is not None:
            self._unsubscribers.append(self.app_state.add_listener(self._on_app_state_change))
        self._timer_task = asyncio.get_running_loop().create_task(self._periodic_sync_loop(), name="SyncSession.timer")
        self.is_initialized = True
        logger.info(f"Sync session initialized (interval {self.sync_interval}s, online={online}).")

        if authenticated and online:
            self.schedule_sync()

    async def close(self):
        """Unsubscribes listeners, stops the timer and cancels outstanding passes. Idempotent."""
        if self._closed:
            return
        self._closed = True
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

        tasks = [task for task in (self._timer_task, *self._background_tasks) if task is not None and not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._timer_task = None
        self._background_tasks.clear()
        self.is_initialized = False
        logger.info("Sync session closed.")

    # --- Triggers ---

    def _on_connectivity_change(self, connected: bool):
        if not connected:
            return
        if self._in_flight:
            logger.debug("Connection restored during a running pass; no extra sync scheduled.")
            return
        logger.info("Connection restored; starting sync.")
        self.schedule_sync()

    def _on_app_state_change(self, state: str):
        if state == APP_STATE_ACTIVE:
            logger.debug("App returned to the foreground; syncing if idle.")
            self.schedule_sync(conditional=True)

    async def _periodic_sync_loop(self):
        while True:
            await asyncio.sleep(self.sync_interval)
            logger.debug("Periodic sync timer fired.")
            await self.sync_if_idle()

#
# End of Sync_Session.py
#######################################################################################################################
