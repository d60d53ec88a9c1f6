"""Blood pressure monitor BLE communication module.

Pairs with A&D and Omron blood pressure monitors, syncs their clocks and
receives measurement notifications over Bluetooth LE.
"""

from src.bpm_ble.client import BPMClient, pair_device
from src.bpm_ble.dispatcher import EventDispatcher
from src.bpm_ble.session import BPMSession, SessionAction, SessionState

__all__ = [
    "BPMClient",
    "BPMSession",
    "EventDispatcher",
    "SessionAction",
    "SessionState",
    "pair_device",
]
