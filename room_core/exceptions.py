"""
Custom exceptions for room control.
"""


class RoomControlError(Exception):
    """Base exception for room control errors."""
    pass


class DeviceActionError(RoomControlError):
    """Raised by device adapters when an action against a device fails."""

    def __init__(self, message: str, device: str = None, prop: str = None):
        super().__init__(message)
        self.device = device
        self.prop = prop


class ConfigurationError(RoomControlError):
    """Raised when a room configuration cannot be built."""
    pass
