"""Fakes for exercising the harness without live chains."""

from .beacon_api import FakeBeaconApi
from .event_source import ScriptedEventSource

__all__ = [
    "FakeBeaconApi",
    "ScriptedEventSource",
]
