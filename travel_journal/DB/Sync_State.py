# Sync_State.py
# Description: Durable key-value store for sync bookkeeping (download watermark, remote auth session).
#
# Imports
import json
import os
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Union
#
# Third-Party Imports
from loguru import logger
#
# Local Imports
from travel_journal.Constants import LAST_SYNC_KEY
#
#######################################################################################################################
#
# Functions:

class SyncStateStore:
    """
    Small JSON-file backed key-value store, kept outside the SQLite database.

    Every `set` is written through to disk. With `state_file=None` the state only lives
    in memory, which is what tests and throwaway sessions use.
    """

    def __init__(self, state_file: Optional[Union[str, Path]] = None):
        self.state_file: Optional[Path] = Path(state_file).expanduser() if state_file else None
        self._lock = threading.Lock()
        self._state: Dict[str, Any] = {}
        self._load_sync_state()

    # --- Persistence ---

    def _load_sync_state(self):
        """Loads the state file. A missing or unreadable file starts a fresh, empty state."""
        if self.state_file is None:
            return
        try:
            if self.state_file.exists():
                with open(self.state_file, 'r', encoding='utf-8') as f:
                    loaded = json.load(f)
                if not isinstance(loaded, dict):
                    raise ValueError(f"expected a JSON object, got {type(loaded).__name__}")
                self._state = loaded
                logger.debug(f"Loaded sync state from {self.state_file}")
            else:
                logger.info(f"State file {self.state_file} not found, starting from scratch.")
                self._save_sync_state()
        except (json.JSONDecodeError, OSError, ValueError) as e:
            logger.error(f"Error loading sync state from {self.state_file}: {e}. Starting from scratch.")
            self._state = {}
            self._save_sync_state()

    def _save_sync_state(self):
        if self.state_file is None:
            return
        try:
            os.makedirs(self.state_file.parent, exist_ok=True)
            tmp_path = self.state_file.with_suffix(self.state_file.suffix + ".tmp")
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(self._state, f, indent=4)
            os.replace(tmp_path, self.state_file)
            logger.debug(f"Saved sync state to {self.state_file}")
        except OSError as e:
            logger.error(f"Error saving sync state to {self.state_file}: {e}")
            raise

    # --- Key-value API ---

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._state.get(key, default)

    def set(self, key: str, value: Any):
        with self._lock:
            self._state[key] = value
            self._save_sync_state()

    def delete(self, key: str):
        with self._lock:
            if self._state.pop(key, None) is not None:
                self._save_sync_state()

    # --- Watermark ---

    def get_last_sync_timestamp(self) -> Optional[str]:
        return self.get(LAST_SYNC_KEY)

    def set_last_sync_timestamp(self, timestamp: str):
        self.set(LAST_SYNC_KEY, timestamp)
        logger.debug(f"Sync watermark advanced to {timestamp}")

#
# End of Sync_State.py
#######################################################################################################################
