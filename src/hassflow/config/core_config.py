import logging
from typing import Annotated

from pydantic import AliasChoices, BeforeValidator, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from hassflow.config.helpers import coerce_log_level, get_dev_mode, get_log_level
from hassflow.logging_ import LOG_LEVELS, enable_logging

# set up logging as early as possible
enable_logging(get_log_level())

LOGGER = logging.getLogger(__name__)


class HassflowConfig(BaseSettings):
    """Configuration for hassflow."""

    model_config = SettingsConfigDict(
        env_prefix="hassflow__",
        env_file=[".env", "./config/.env"],
        env_ignore_empty=True,
        extra="allow",
        env_nested_delimiter="__",
        validate_by_name=True,
        use_attribute_docstrings=True,
    )

    dev_mode: bool = Field(default_factory=get_dev_mode)
    """Enable developer mode, which turns on asyncio debug mode."""

    log_level: Annotated[LOG_LEVELS, BeforeValidator(lambda v: coerce_log_level(v) or "INFO")] = Field(
        default="INFO"
    )
    """Logging level for hassflow."""

    # Home Assistant configuration starts here
    base_url: str = Field(default="http://127.0.0.1:8123")
    """Base URL of the Home Assistant instance"""

    api_port: int = Field(default=8123)
    """Port to use when base_url does not specify one."""

    token: SecretStr = Field(
        default=...,
        validation_alias=AliasChoices("token", "hassflow__token", "ha_token", "home_assistant_token"),
    )
    """Access token for Home Assistant instance"""

    # consumed only by the daylight collaborator
    latitude: float | None = Field(default=None)
    """Latitude of the home, used by daylight providers."""

    longitude: float | None = Field(default=None)
    """Longitude of the home, used by daylight providers."""

    # Service configurations

    startup_timeout_seconds: int | float = Field(default=10)
    """Length of time to wait for the connection and initial sync before giving up."""

    websocket_authentication_timeout_seconds: int | float = Field(default=10)
    """Length of time to wait for WebSocket authentication to complete."""

    websocket_response_timeout_seconds: int | float = Field(default=3)
    """Length of time to wait for a response to a request sent over the WebSocket."""

    websocket_connection_timeout_seconds: int | float = Field(default=5)
    """Length of time to wait for WebSocket connection to complete. Passed to aiohttp."""

    websocket_heartbeat_interval_seconds: int | float | None = Field(default=30)
    """Interval to send ping messages to keep the WebSocket connection alive. Passed to aiohttp."""

    task_cancellation_timeout_seconds: int | float = Field(default=5)
    """Length of time to wait for tasks to cancel before logging them as stragglers."""

    task_bucket_log_level: Annotated[LOG_LEVELS, BeforeValidator(lambda v: coerce_log_level(v) or "INFO")] = Field(
        default="INFO"
    )
    """Logging level for task buckets."""

    def model_post_init(self, context) -> None:
        logging.getLogger("hassflow").setLevel(self.log_level)
