# travel_journal/remote_api/__init__.py
from .client import RemoteStoreClient
from .exceptions import (
    RemoteAPIError, APIConnectionError, APIRequestError,
    APIResponseError, AuthenticationError
)
from .schemas import AuthSession, RemoteRow, TripRow, EntryRow

__all__ = [
    "RemoteStoreClient",
    "RemoteAPIError", "APIConnectionError", "APIRequestError",
    "APIResponseError", "AuthenticationError",
    "AuthSession", "RemoteRow", "TripRow", "EntryRow",
]
