"""Exception hierarchy for NetSentinel."""


class NetSentinelError(Exception):
    """Base class for all NetSentinel errors."""


class InvalidAddressError(NetSentinelError, ValueError):
    """Raised for a malformed dotted-quad address or subnet mask."""

    def __init__(self, value: str, reason: str = "malformed IPv4 address"):
        self.value = value
        self.reason = reason
        super().__init__(f"{reason}: {value!r}")


class ScanError(NetSentinelError):
    """A scan session failed as a whole."""


class StorageError(NetSentinelError):
    """The persistence sink could not complete an operation."""


class ConfigError(NetSentinelError):
    """Configuration could not be loaded or validated."""
