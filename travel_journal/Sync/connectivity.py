# connectivity.py
# Description: Network reachability and app-lifecycle sources that drive automatic syncs.
#
# Both sources keep a current value and notify subscribed listeners when it changes.
# Listeners are plain callables; `add_listener` returns the function that unsubscribes them.
#
# Imports
import asyncio
from typing import Any, Callable, List, Optional
#
# 3rd-Party Imports
import httpx
from loguru import logger
#
# Local Imports
from travel_journal.Constants import APP_STATE_ACTIVE, APP_STATE_BACKGROUND, APP_STATE_INACTIVE
#
#######################################################################################################################
#
# Functions:

Unsubscribe = Callable[[], None]


class _ListenerRegistry:
    def __init__(self):
        self._listeners: List[Callable[[Any], Any]] = []

    def add_listener(self, listener: Callable[[Any], Any]) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _notify(self, value: Any):
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception as e:
                logger.exception(f"{type(self).__name__} listener {listener!r} failed: {e}")


class ConnectivityMonitor(_ListenerRegistry):
    """
    Holds the device's reachability state. Platform integrations (or tests) call
    `set_connected()`; listeners receive the new boolean on every change.
    """

    def __init__(self, connected: bool = True):
        super().__init__()
        self._connected = connected

    @property
    def connected(self) -> bool:
        return self._connected

    async def is_connected(self) -> bool:
        return self._connected

    def set_connected(self, connected: bool):
        connected = bool(connected)
        if connected == self._connected:
            return
        self._connected = connected
        logger.info(f"Network {'reachable' if connected else 'unreachable'}.")
        self._notify(connected)


class HttpReachabilityMonitor(ConnectivityMonitor):
    """
    Determines reachability by requesting `probe_url`: any HTTP response means online,
    a transport error means offline. `start()` polls in the background.
    """

    def __init__(
        self,
        probe_url: str,
        timeout: float = 5.0,
        poll_interval: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        connected: bool = False,
    ):
        super().__init__(connected=connected)
        self.probe_url = probe_url
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._transport = transport
        self._poll_task: Optional[asyncio.Task] = None

    async def refresh(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                await client.get(self.probe_url)
            reachable = True
        except httpx.RequestError as e:
            logger.debug(f"Reachability probe to {self.probe_url} failed: {e}")
            reachable = False
        self.set_connected(reachable)
        return reachable

    async def is_connected(self) -> bool:
        return await self.refresh()

    async def _poll_loop(self):
        while True:
            await self.refresh()
            await asyncio.sleep(self.poll_interval)

    def start(self):
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop(), name="ReachabilityPoller")
            logger.debug(f"Reachability polling started (every {self.poll_interval}s).")

    async def stop(self):
        if self._poll_task and not self._poll_task.done():
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                logger.debug("Reachability polling stopped.")
        self._poll_task = None


class AppLifecycleMonitor(_ListenerRegistry):
    """Tracks whether the app is in the foreground. Listeners receive the new state string."""

    VALID_STATES = (APP_STATE_ACTIVE, APP_STATE_BACKGROUND, APP_STATE_INACTIVE)

    def __init__(self, state: str = APP_STATE_ACTIVE):
        super().__init__()
        if state not in self.VALID_STATES:
            raise ValueError(f"Unknown app state '{state}'.")
        self._state = state

    @property
    def state(self) -> str:
        return self._state

    def set_state(self, state: str):
        if state not in self.VALID_STATES:
            raise ValueError(f"Unknown app state '{state}'.")
        if state == self._state:
            return
        self._state = state
        logger.debug(f"App state changed to '{state}'.")
        self._notify(state)

#
# End of connectivity.py
#######################################################################################################################
