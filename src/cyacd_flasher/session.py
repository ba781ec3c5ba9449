"""
Bootload session: drives a device through a full firmware update.

Sequence:
1. Open the connection
2. Parse the image header, send EnterBootloader -> expect success
3. For every row in the image:
   a. Send SendData for each leading 50-byte chunk -> expect success
   b. Send ProgramRow with the row address and remaining data -> expect success
   c. Send VerifyRow with the row address -> expect success
4. At end of image send ExitBootloader (no reply) and close the connection

Any failure aborts immediately and is raised to the caller. Only the clean
end-of-image path sends ExitBootloader and closes the connection.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, TextIO, Tuple

from cyacd_flasher.config import MAX_CHUNK_SIZE
from cyacd_flasher.cyacd import CyacdReader, FlashRow, ImageHeader
from cyacd_flasher.errors import HostError, HostErrorKind
from cyacd_flasher.protocol.packet import Command, PacketCodec, build_packet
from cyacd_flasher.protocol.transport import Connection

logger = logging.getLogger(__name__)


class SessionPhase(Enum):
    """Session state, advanced in order (PROGRAMMING/VERIFYING repeat per row)."""
    IDLE = "idle"
    OPENED = "opened"
    BOOTLOADER_ENTERED = "bootloader entered"
    PROGRAMMING = "programming"
    VERIFYING = "verifying"
    BOOTLOADER_EXITED = "bootloader exited"
    CLOSED = "closed"


@dataclass(frozen=True)
class BootloaderInfo:
    """Device identification returned by EnterBootloader."""

    silicon_id: int
    silicon_rev: int
    version: int

    @classmethod
    def from_payload(cls, payload: bytes) -> Optional["BootloaderInfo"]:
        """Decode an 8-byte EnterBootloader reply; None for any other size."""
        if len(payload) != 8:
            return None
        return cls(
            silicon_id=int.from_bytes(payload[0:4], "little"),
            silicon_rev=payload[4],
            version=int.from_bytes(payload[5:8], "little"),
        )


@dataclass
class FlashSummary:
    """Outcome of a completed session."""

    header: ImageHeader
    device: Optional[BootloaderInfo] = None
    rows: int = 0
    data_bytes: int = 0
    packets: int = 0


def _row_address(row: FlashRow) -> bytes:
    return bytes([row.array_id, row.row_number & 0xFF, (row.row_number >> 8) & 0xFF])


class BootloadSession:
    """
    One firmware update over one connection.

    Example:
        session = BootloadSession(SerialConnection("/dev/ttyACM0"))
        with open("Design01.cyacd") as image:
            summary = session.run(image)
    """

    def __init__(
        self,
        connection: Connection,
        *,
        chunk_size: int = MAX_CHUNK_SIZE,
        progress_cb: Optional[Callable[[FlashRow, int], None]] = None,
        verify_row_checksums: bool = False,
    ) -> None:
        """
        Args:
            connection: Device connection (opened by run())
            chunk_size: Largest data slice per packet
            progress_cb: Called with (row, rows_done) after each verified row
            verify_row_checksums: Check each row's stored checksum before sending it
        """
        if not 1 <= chunk_size <= MAX_CHUNK_SIZE:
            raise ValueError(f"chunk_size must be between 1 and {MAX_CHUNK_SIZE}")
        self.connection = connection
        self.codec = PacketCodec(connection)
        self.chunk_size = chunk_size
        self.progress_cb = progress_cb
        self.verify_row_checksums = verify_row_checksums
        self.phase = SessionPhase.IDLE
        self.packets_sent = 0

    def _set_phase(self, phase: SessionPhase) -> None:
        logger.debug(f"Session phase: {self.phase.value} -> {phase.value}")
        self.phase = phase

    def _send(self, command: Command, payload: Optional[bytes] = None, expect_response: bool = True) -> bytes:
        reply = self.codec.transmit(build_packet(command, payload), expect_response)
        self.packets_sent += 1
        return reply

    def open(self) -> None:
        """
        Open the connection.

        Raises:
            HostError: DEVICE if the connection cannot be opened
        """
        try:
            opened = self.connection.open()
        except OSError as e:
            raise HostError(HostErrorKind.DEVICE, "Cannot open connection", cause=e) from e
        if not opened:
            raise HostError(HostErrorKind.DEVICE, "Cannot open connection")
        self._set_phase(SessionPhase.OPENED)

    def enter_bootloader(self, header: ImageHeader) -> Optional[BootloaderInfo]:
        """Send EnterBootloader; the reply is decoded when it has the usual layout."""
        reply = self._send(Command.ENTER_BOOTLOADER)
        self._set_phase(SessionPhase.BOOTLOADER_ENTERED)

        info = BootloaderInfo.from_payload(reply)
        if info is not None:
            logger.info(
                f"Bootloader v0x{info.version:06X}: silicon_id=0x{info.silicon_id:08X} "
                f"rev=0x{info.silicon_rev:02X} (image targets 0x{header.silicon_id:08X} "
                f"rev=0x{header.silicon_rev:02X})"
            )
        return info

    def exit_bootloader(self) -> None:
        """Send ExitBootloader. The device resets, so no reply is read."""
        self._send(Command.EXIT_BOOTLOADER, expect_response=False)
        self._set_phase(SessionPhase.BOOTLOADER_EXITED)

    def program_row(self, row: FlashRow) -> None:
        """Stream a row's data and program it."""
        self._set_phase(SessionPhase.PROGRAMMING)
        offset = 0
        while len(row.data) - offset > self.chunk_size:
            self._send(Command.SEND_DATA, row.data[offset:offset + self.chunk_size])
            offset += self.chunk_size

        self._send(Command.PROGRAM_ROW, _row_address(row) + row.data[offset:])
        logger.debug(f"Programmed array {row.array_id} row {row.row_number} ({len(row.data)} bytes)")

    def verify_row(self, row: FlashRow) -> None:
        """Ask the device to verify a programmed row."""
        self._set_phase(SessionPhase.VERIFYING)
        self._send(Command.VERIFY_ROW, _row_address(row))

    def get_flash_size(self, array_id: int) -> Tuple[int, int]:
        """
        Query the programmable row range of a flash array.

        Returns:
            (first_row, last_row)
        """
        reply = self._send(Command.GET_FLASH_SIZE, bytes([array_id]))
        if len(reply) < 4:
            raise HostError(HostErrorKind.LENGTH, f"GetFlashSize reply too short: {len(reply)} bytes")
        return int.from_bytes(reply[0:2], "little"), int.from_bytes(reply[2:4], "little")

    def verify_application_checksum(self) -> bool:
        """Ask the device whether the application image checksum is valid."""
        reply = self._send(Command.VERIFY_CHECKSUM)
        if not reply:
            raise HostError(HostErrorKind.LENGTH, "VerifyChecksum reply is empty")
        return reply[0] != 0

    def close(self) -> None:
        if not self.connection.close():
            logger.warning("Connection did not close cleanly")
        self._set_phase(SessionPhase.CLOSED)

    def run(self, image: TextIO) -> FlashSummary:
        """
        Flash a CYACD image.

        Args:
            image: Text stream positioned at the header line

        Returns:
            Summary of the completed update

        Raises:
            BootloadError: Any host-side or device-reported failure. The
                connection is left open on failure.
        """
        self.open()

        reader = CyacdReader(image, verify_row_checksums=self.verify_row_checksums)
        header = reader.read_header()
        summary = FlashSummary(header=header)
        summary.device = self.enter_bootloader(header)

        while True:
            try:
                row = reader.read_row()
            except HostError as e:
                if e.kind is not HostErrorKind.EOF:
                    raise
                break

            self.program_row(row)
            self.verify_row(row)
            summary.rows += 1
            summary.data_bytes += len(row.data)
            if self.progress_cb:
                self.progress_cb(row, summary.rows)

        self.exit_bootloader()
        self.close()
        summary.packets = self.packets_sent
        logger.info(f"Flashed {summary.rows} rows ({summary.data_bytes} bytes)")
        return summary


def bootload(image: TextIO, connection: Connection, **kwargs) -> FlashSummary:
    """Run a complete bootload session. Keyword arguments go to BootloadSession."""
    return BootloadSession(connection, **kwargs).run(image)
