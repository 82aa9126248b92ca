from yarl import URL


class HassflowError(Exception):
    """Base exception for all hassflow errors."""


class FatalError(HassflowError):
    """Custom exception to indicate a fatal error in the application.

    Exceptions that indicate that startup should be aborted should inherit from this class.
    """


class BaseUrlRequiredError(FatalError):
    """Custom exception to indicate that the base_url configuration is required."""


class IPV6NotSupportedError(FatalError):
    """Custom exception to indicate that IPv6 addresses are not supported in base_url."""


class SchemeRequiredInBaseUrlError(FatalError):
    """Custom exception to indicate that the base_url must include a scheme (http:// or https://)."""


class CouldNotFindHomeAssistantError(FatalError):
    """Custom exception to indicate that the Home Assistant instance could not be found."""

    def __init__(self, url: str):
        yurl = URL(url)
        msg = f"Could not find Home Assistant instance at {url}, ensure it is running and accessible"
        if not yurl.explicit_port:
            msg += " and that the port is specified if necessary"
        super().__init__(msg)


class InvalidAuthError(FatalError):
    """Custom exception to indicate that the authentication token is invalid."""


class ProtocolError(HassflowError):
    """Custom exception to indicate a malformed or unexpected message from Home Assistant."""


class ConnectionClosedError(HassflowError):
    """Custom exception to indicate that the WebSocket connection was closed unexpectedly."""


class ResponseTimeoutError(HassflowError, TimeoutError):
    """Custom exception to indicate that no response arrived for a message within the configured timeout."""

    def __init__(self, message_id: int, timeout: float):
        self.message_id = message_id
        self.timeout = timeout
        super().__init__(f"No response for message {message_id} within {timeout}s")


class FailedMessageError(HassflowError):
    """Custom exception to indicate that Home Assistant reported a failure for a message."""

    @classmethod
    def from_error_response(
        cls,
        error: str | dict | None = None,
        original_data: dict | None = None,
    ):
        msg = f"WebSocket message failed with response '{error}' (data={original_data})"
        return cls(msg)


class EntityNotRegisteredError(HassflowError):
    """Raised when a command is issued for an entity that was never bound to a dispatcher."""

    def __init__(self, entity_id: str) -> None:
        super().__init__(f"Entity '{entity_id}' is not registered")
        self.entity_id = entity_id


class ResourceNotReadyError(HassflowError):
    """Custom exception to indicate that a resource is not ready for use."""
