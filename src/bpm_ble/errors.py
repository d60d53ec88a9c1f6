"""Exceptions raised by the blood pressure monitor BLE core."""


class BPMError(Exception):
    """Base class for all blood pressure monitor errors."""


class DeviceNotFoundError(BPMError):
    """No peripheral was discovered before the scan timeout."""


class MalformedPayloadError(BPMError, ValueError):
    """A notified byte payload is too short or does not decode."""


class SessionBusyError(BPMError, RuntimeError):
    """An action was started while another one is still in progress."""


class BLEOperationError(BPMError):
    """A BLE capability call failed during the connect-and-operate protocol."""


class ConnectionFailedError(BLEOperationError, ConnectionError):
    """Connecting to the peripheral failed."""


class ServiceResolutionError(BLEOperationError):
    """The peripheral's GATT services could not be resolved."""


class WriteFailedError(BLEOperationError):
    """Writing a characteristic value failed."""


class ReadFailedError(BLEOperationError):
    """Reading a characteristic value failed."""


class SubscribeFailedError(BLEOperationError):
    """Enabling notifications on a characteristic failed."""
