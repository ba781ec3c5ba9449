"""
Connection settings and protocol defaults.

CLI options feed SerialSettings; library callers may build one directly
or pass keyword arguments to SerialConnection.
"""

from dataclasses import dataclass

DEFAULT_BAUDRATE = 115200
DEFAULT_TIMEOUT = 1.0

# Largest data slice carried by a single SendData/ProgramRow packet
MAX_CHUNK_SIZE = 50

VALID_PARITIES = ("N", "E", "O", "M", "S")


@dataclass
class SerialSettings:
    """
    Serial link configuration for a bootload session.

    Attributes:
        port: Serial port name
        baudrate: Baud rate
        timeout: Read/write timeout in seconds
        bytesize: Data bits (5-8)
        parity: One of N/E/O/M/S
        stopbits: 1 or 2
        rtscts: Hardware flow control
    """
    port: str
    baudrate: int = DEFAULT_BAUDRATE
    timeout: float = DEFAULT_TIMEOUT
    bytesize: int = 8
    parity: str = "N"
    stopbits: int = 1
    rtscts: bool = False

    def __post_init__(self) -> None:
        if not self.port:
            raise ValueError("port must not be empty")
        if self.baudrate <= 0:
            raise ValueError(f"Invalid baud rate: {self.baudrate}")
        if self.timeout <= 0:
            raise ValueError(f"Invalid timeout: {self.timeout}")
        if self.bytesize not in (5, 6, 7, 8):
            raise ValueError(f"Invalid byte size: {self.bytesize}")
        self.parity = self.parity.upper()
        if self.parity not in VALID_PARITIES:
            raise ValueError(f"Invalid parity '{self.parity}'. Use one of {', '.join(VALID_PARITIES)}.")
        if self.stopbits not in (1, 2):
            raise ValueError(f"Invalid stop bits: {self.stopbits}")
