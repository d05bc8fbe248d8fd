# Constants.py
# Description: Constants shared by the local store, the sync engine and the session controller
#
# Imports
#
# 3rd-Party Imports
#
# Local Imports
#
########################################################################################################################
#
# Functions:

# --- Table names ---
TABLE_TRIPS = "trips"
TABLE_ENTRIES = "entries"
TABLE_SYNC_LOG = "sync_log"

# --- Sync status values ---
SYNC_STATUS_SYNCED = "synced"
SYNC_STATUS_PENDING = "pending"
SYNC_STATUS_FAILED = "failed"
ALL_SYNC_STATUSES = [SYNC_STATUS_SYNCED, SYNC_STATUS_PENDING, SYNC_STATUS_FAILED]

# --- Sync log actions ---
SYNC_ACTION_CREATE = "create"
SYNC_ACTION_UPDATE = "update"
SYNC_ACTION_DELETE = "delete"

# --- Durable key-value store keys ---
LAST_SYNC_KEY = "last_sync_timestamp"
AUTH_SESSION_KEY = "auth_session"

# Watermark used when no sync has ever completed.
EPOCH_TIMESTAMP = "1970-01-01T00:00:00.000Z"

# --- Session controller ---
DEFAULT_SYNC_INTERVAL_SECONDS = 300
APP_STATE_ACTIVE = "active"
APP_STATE_BACKGROUND = "background"
APP_STATE_INACTIVE = "inactive"

# --- Sync result messages ---
# Shown verbatim in the app, which is German-language.
ERROR_NO_CONNECTION = "Keine Internetverbindung verfügbar"
ERROR_UNKNOWN_SYNC = "Unbekannter Synchronisierungsfehler"
ERROR_SYNC_IN_PROGRESS = "sync already in progress"
ERROR_BACKEND_UNREACHABLE = "Remote backend is not reachable"
ERROR_AUTHENTICATION = "Authentication with the remote backend failed"

#
# End of Constants.py
########################################################################################################################
