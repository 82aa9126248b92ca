import asyncio
import logging

import pytest
from pydantic import SecretStr

from hassflow import HassflowConfig

# this wants package.nested_directories.final_file_name
# do not include the name of the fixture
pytest_plugins = ["hassflow.test_utils.fixtures"]

# enable_logging stops propagation, caplog listens on the root logger
logging.getLogger("hassflow").propagate = True


class TestConfig(HassflowConfig):
    """
    A test configuration class that inherits from HassflowConfig.
    This is used to provide a specific configuration for testing purposes.
    """

    model_config = HassflowConfig.model_config.copy() | {
        "env_file": None,
    }

    token: SecretStr = SecretStr("test-token")

    websocket_connection_timeout_seconds: int | float = 1
    websocket_authentication_timeout_seconds: int | float = 1
    websocket_response_timeout_seconds: int | float = 0.5
    websocket_heartbeat_interval_seconds: int | float | None = 5
    startup_timeout_seconds: int | float = 3
    task_cancellation_timeout_seconds: int | float = 0.5
    task_bucket_log_level: str = "DEBUG"
    dev_mode: bool = False

    def model_post_init(self, *args):
        # override this to avoid changing the hassflow logger level
        pass


@pytest.fixture(scope="session")
def test_config_class():
    """Provide the TestConfig class for tests that build their own configuration."""
    return TestConfig


@pytest.fixture(scope="session")
def test_config():
    """
    Provide a HassflowConfig instance for testing.
    The base_url is never reached, tests that talk to a server use `server_config`.
    """
    return TestConfig(base_url="http://127.0.0.1:1")


@pytest.fixture
def caplog_info(caplog):
    caplog.set_level(logging.INFO)
    return caplog


@pytest.fixture
async def bucket_fixture(hassflow_offline):
    try:
        yield hassflow_offline.task_bucket
    finally:
        # hard cleanup if a test forgot
        await hassflow_offline.task_bucket.cancel_all()
        await asyncio.sleep(0)  # let cancellations propagate
