"""
Error taxonomy for bootload sessions.

Two families of failures exist:

- HostError: detected on the host side (malformed image text, framing
  problems in a device reply, transport I/O failures, end of image).
- BootloaderError: reported by the device through a non-zero status byte
  in a response packet.

Both derive from BootloadError so callers can catch everything from a
session with a single except clause.
"""

from enum import Enum
from typing import Dict, Optional


class HostErrorKind(Enum):
    """Failure kinds detected on the host."""
    EOF = "end of image"
    LENGTH = "length error"
    DATA = "data error"
    COMMAND = "command error"
    DEVICE = "device I/O error"
    VERSION = "version error"
    CHECKSUM = "checksum error"
    ARRAY = "array error"
    ROW = "row error"
    BOOTLOADER = "bootloader error"
    ACTIVE = "active application error"
    UNKNOWN = "unknown error"


class BootloaderErrorKind(Enum):
    """Failure kinds reported by the device status byte."""
    LENGTH = "packet length error"
    DATA = "packet data error"
    COMMAND = "unknown command"
    CHECKSUM = "packet checksum error"
    ARRAY = "invalid flash array"
    ROW = "invalid flash row"
    APP = "application invalid"
    ACTIVE = "application is active"
    CALLBACK = "callback error"
    UNKNOWN = "unknown error"


# Device status byte -> error kind. Anything missing maps to UNKNOWN.
STATUS_ERRORS: Dict[int, BootloaderErrorKind] = {
    0x03: BootloaderErrorKind.LENGTH,
    0x04: BootloaderErrorKind.DATA,
    0x05: BootloaderErrorKind.COMMAND,
    0x08: BootloaderErrorKind.CHECKSUM,
    0x09: BootloaderErrorKind.ARRAY,
    0x0A: BootloaderErrorKind.ROW,
    0x0C: BootloaderErrorKind.APP,
    0x0D: BootloaderErrorKind.ACTIVE,
    0x0E: BootloaderErrorKind.CALLBACK,
}


class BootloadError(Exception):
    """Base exception for all bootload failures."""


class HostError(BootloadError):
    """
    Failure detected on the host side.

    Attributes:
        kind: What went wrong
        cause: Underlying exception for DEVICE errors (also chained)
    """

    def __init__(
        self,
        kind: HostErrorKind,
        message: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        self.kind = kind
        self.cause = cause
        text = message or kind.value
        if cause is not None:
            text = f"{text}: {cause}"
        super().__init__(text)


class BootloaderError(BootloadError):
    """
    Non-success status reported by the device.

    Attributes:
        kind: Mapped error kind
        status: Raw status byte from the response header
    """

    def __init__(self, kind: BootloaderErrorKind, status: int):
        self.kind = kind
        self.status = status
        super().__init__(f"Bootloader reported {kind.value} (status 0x{status:02X})")


def bootloader_error_kind(status: int) -> BootloaderErrorKind:
    """Map a device status byte to its error kind."""
    return STATUS_ERRORS.get(status, BootloaderErrorKind.UNKNOWN)


def error_from_status(status: int) -> BootloaderError:
    """Build the exception for a non-success device status byte."""
    return BootloaderError(bootloader_error_kind(status), status)
