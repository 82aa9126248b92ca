"""Helpers for testing hassflow and automations built on it.

They are used by hassflow's own test suite and are not a stable interface.
"""

from .clock import FakeClock
from .hass_server import SimpleHassServer
from .helpers import apply_service_call, make_state, make_state_changed_event, settle, wait_for
from .recording_client import RecordingClient, ServiceCall

__all__ = [
    "FakeClock",
    "RecordingClient",
    "ServiceCall",
    "SimpleHassServer",
    "apply_service_call",
    "make_state",
    "make_state_changed_event",
    "settle",
    "wait_for",
]
