"""
Exceptions raised across Med Price Scout.

Every failure the fetchers, relay and consumer can surface derives from
PriceScoutError, so callers that only need a user-facing message can catch
the base class and use str(exc).
"""


class PriceScoutError(Exception):
    """Base class for all Med Price Scout errors."""


class UpstreamStatusError(PriceScoutError):
    """The upstream service answered with a non-2xx status."""

    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"API responded with status: {status_code}")


class GatewayUnavailable(PriceScoutError):
    """All attempts to open the upstream stream failed.

    The message is the last attempt's error message.
    """

    def __init__(self, message: str, attempts: int = 0):
        self.attempts = attempts
        super().__init__(message)


class StreamTimeout(PriceScoutError):
    """The relay received no upstream chunk within its idle window."""

    def __init__(self, idle_timeout: float):
        self.idle_timeout = idle_timeout
        super().__init__(f"Stream timeout - no upstream data for {idle_timeout:g}s")


class ResponseTimeout(PriceScoutError):
    """The client received no chunk from the price API within its idle window."""

    def __init__(self, idle_timeout: float):
        self.idle_timeout = idle_timeout
        super().__init__("Response timeout - no data received for too long")


class PriceAPIError(PriceScoutError):
    """The price API rejected a request before streaming started."""

    def __init__(self, message: str, status_code: int = None):
        self.status_code = status_code
        super().__init__(message)


class MedicineNotFound(PriceScoutError):
    """The autocomplete service returned no match."""

    def __init__(self, name: str):
        self.name = name
        super().__init__("No medicine found")


class UpstreamPayloadError(PriceScoutError):
    """The upstream service answered 2xx with a body that is not the expected shape."""
