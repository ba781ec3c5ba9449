"""
Serial transport for the bootloader link.

Defines the capabilities a bootload session needs from its byte stream
and provides a pyserial-backed implementation of them.

This module provides:
- Transport: blocking read/write interface used by the packet codec
- Connection: Transport plus open/close lifecycle used by the session
- SerialConnection: pyserial implementation of Connection
"""

import logging
from typing import Optional, Protocol, runtime_checkable

import serial

from cyacd_flasher.config import SerialSettings

logger = logging.getLogger(__name__)


@runtime_checkable
class Transport(Protocol):
    """Blocking byte stream."""

    def read(self, size: int) -> bytes:
        ...

    def write(self, data: bytes) -> Optional[int]:
        ...


@runtime_checkable
class Connection(Transport, Protocol):
    """Byte stream with an explicit open/close lifecycle."""

    def open(self) -> bool:
        ...

    def close(self) -> bool:
        ...


class SerialConnection:
    """
    Serial port connection to a device running the bootloader.

    Handles:
    - Serial port management
    - Blocking reads/writes with timeout

    Example:
        conn = SerialConnection(port="/dev/ttyACM0")
        if conn.open():
            conn.write(packet)
            reply = conn.read(4)
            conn.close()
    """

    def __init__(
        self,
        port: str,
        baudrate: int = 115200,
        timeout: float = 1.0,
        bytesize: int = 8,
        parity: str = "N",
        stopbits: int = 1,
        rtscts: bool = False,
    ):
        """
        Initialize connection.

        Args:
            port: Serial port (e.g., "/dev/ttyACM0", "COM6")
            baudrate: Serial baud rate (default 115200)
            timeout: Read/write timeout in seconds (default 1.0)
            bytesize: Data bits (default 8)
            parity: Parity, one of N/E/O/M/S (default N)
            stopbits: Stop bits (default 1)
            rtscts: Enable RTS/CTS hardware flow control (default False)
        """
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.bytesize = bytesize
        self.parity = parity
        self.stopbits = stopbits
        self.rtscts = rtscts
        self.ser: Optional[serial.Serial] = None

    @classmethod
    def from_settings(cls, settings: SerialSettings) -> "SerialConnection":
        """Build a connection from validated settings."""
        return cls(
            port=settings.port,
            baudrate=settings.baudrate,
            timeout=settings.timeout,
            bytesize=settings.bytesize,
            parity=settings.parity,
            stopbits=settings.stopbits,
            rtscts=settings.rtscts,
        )

    @property
    def is_open(self) -> bool:
        return self.ser is not None and self.ser.is_open

    def open(self) -> bool:
        """
        Open and configure the serial port.

        Returns:
            True if the port is open, False if it could not be opened
        """
        try:
            self.ser = serial.Serial(
                port=self.port,
                baudrate=self.baudrate,
                bytesize=self.bytesize,
                parity=self.parity,
                stopbits=self.stopbits,
                timeout=self.timeout,
                write_timeout=self.timeout,
                rtscts=self.rtscts,
            )
            self.ser.reset_input_buffer()
            self.ser.reset_output_buffer()
        except (serial.SerialException, ValueError) as e:
            logger.error(f"Cannot open port {self.port}: {e}")
            self.ser = None
            return False

        logger.debug(
            f"Opened {self.port} at {self.baudrate} bps "
            f"(timeout={self.timeout}s, rtscts={self.rtscts})"
        )
        return True

    def close(self) -> bool:
        """Close the serial port. Returns False if it was not open."""
        if not self.is_open:
            return False
        self.ser.close()
        self.ser = None
        logger.debug(f"Closed {self.port}")
        return True

    def read(self, size: int) -> bytes:
        """
        Read up to size bytes, blocking until the timeout expires.

        Raises:
            serial.PortNotOpenError: If the port is not open
        """
        if not self.is_open:
            raise serial.PortNotOpenError()
        return self.ser.read(size)

    def write(self, data: bytes) -> Optional[int]:
        """
        Write bytes to the port.

        Raises:
            serial.PortNotOpenError: If the port is not open
        """
        if not self.is_open:
            raise serial.PortNotOpenError()
        return self.ser.write(data)

    def __enter__(self) -> "SerialConnection":
        if not self.open():
            raise serial.SerialException(f"Cannot open port {self.port}")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
