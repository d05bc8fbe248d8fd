# travel_journal/remote_api/exceptions.py
#
#
#######################################################################################################################
#
# Functions:

class RemoteAPIError(Exception):
    """Base exception for remote backend errors."""
    pass


class APIConnectionError(RemoteAPIError):
    """Raised for network or connection issues (no route, DNS, timeouts)."""
    pass


class APIRequestError(RemoteAPIError):
    """Raised when the backend rejects the request itself (400/422, bad filters or payload)."""

    def __init__(self, message: str, response_data: dict = None):
        super().__init__(message)
        self.response_data = response_data or {}


class APIResponseError(RemoteAPIError):
    """Raised for other non-2xx responses or issues parsing the response."""

    def __init__(self, status_code: int, message: str, response_data: dict = None):
        super().__init__(f"API Error {status_code}: {message}")
        self.status_code = status_code
        self.response_data = response_data or {}


class AuthenticationError(RemoteAPIError):
    """Raised for authentication failures, including a failed anonymous sign-up."""
    pass

#
# End of travel_journal/remote_api/exceptions.py
########################################################################################################################
