"""
CYACD Flasher - firmware updates over a serial bootloader link

Parses CYACD images and streams them row by row to a device bootloader.
"""

__version__ = "0.1.0"

from cyacd_flasher.errors import (
    BootloadError,
    HostError,
    HostErrorKind,
    BootloaderError,
    BootloaderErrorKind,
)
from cyacd_flasher.cyacd import ImageHeader, FlashRow, ChecksumType, CyacdReader
from cyacd_flasher.protocol import SerialConnection, PacketCodec, Command
from cyacd_flasher.session import BootloadSession, FlashSummary, bootload

__all__ = [
    "BootloadError",
    "HostError",
    "HostErrorKind",
    "BootloaderError",
    "BootloaderErrorKind",
    "ImageHeader",
    "FlashRow",
    "ChecksumType",
    "CyacdReader",
    "SerialConnection",
    "PacketCodec",
    "Command",
    "BootloadSession",
    "FlashSummary",
    "bootload",
    "__version__",
]
