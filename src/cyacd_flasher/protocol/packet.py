"""
Bootloader packet codec.

Frame format (both directions):
  0x01 | code | len_lo | len_hi | payload (len bytes) | sum_lo | sum_hi | 0x17

For host -> device frames `code` is a command byte; for device -> host
frames it is a status byte (0x00 = success).

The checksum is the two's-complement negation of the 16-bit sum of every
byte before it, so that all bytes of a frame including the checksum sum to
zero modulo 65536.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from cyacd_flasher.errors import HostError, HostErrorKind, error_from_status
from cyacd_flasher.protocol.transport import Transport

logger = logging.getLogger(__name__)

START_OF_PACKET = 0x01
END_OF_PACKET = 0x17
STATUS_SUCCESS = 0x00

HEADER_SIZE = 4  # start, code, len_lo, len_hi
FOOTER_SIZE = 3  # sum_lo, sum_hi, end
MAX_PAYLOAD = 0xFFFF


class Command(Enum):
    """Bootloader commands."""
    VERIFY_CHECKSUM = "VerifyChecksum"
    GET_FLASH_SIZE = "GetFlashSize"
    GET_APP_STATUS = "GetAppStatus"
    ERASE_ROW = "EraseRow"
    SYNC = "Sync"
    SET_ACTIVE_APP = "SetActiveApp"
    SEND_DATA = "SendData"
    ENTER_BOOTLOADER = "EnterBootloader"
    PROGRAM_ROW = "ProgramRow"
    VERIFY_ROW = "VerifyRow"
    EXIT_BOOTLOADER = "ExitBootloader"
    GET_METADATA = "GetMetaData"


# Wire codes for each command
COMMAND_CODES: Dict[Command, int] = {
    Command.VERIFY_CHECKSUM: 0x31,
    Command.GET_FLASH_SIZE: 0x32,
    Command.GET_APP_STATUS: 0x33,
    Command.ERASE_ROW: 0x34,
    Command.SYNC: 0x35,
    Command.SET_ACTIVE_APP: 0x36,
    Command.SEND_DATA: 0x37,
    Command.ENTER_BOOTLOADER: 0x38,
    Command.PROGRAM_ROW: 0x39,
    Command.VERIFY_ROW: 0x3A,
    Command.EXIT_BOOTLOADER: 0x3B,
    Command.GET_METADATA: 0x3C,
}

CODE_COMMANDS: Dict[int, Command] = {code: cmd for cmd, code in COMMAND_CODES.items()}


@dataclass(frozen=True)
class Packet:
    """Single decoded frame."""

    code: int
    payload: bytes

    @property
    def command(self) -> Optional[Command]:
        """Command for host -> device frames, None if the code is not one."""
        return CODE_COMMANDS.get(self.code)


def packet_checksum(data: bytes) -> int:
    """
    Frame checksum: (1 + ~sum(data)) mod 65536.

    Args:
        data: Every frame byte preceding the checksum field

    Returns:
        16-bit checksum value
    """
    total = sum(data) & 0xFFFF
    return (1 + (~total & 0xFFFF)) & 0xFFFF


def encode_frame(code: int, payload: Optional[bytes] = None) -> bytes:
    """
    Encode a frame with a raw code byte.

    Used for commands via build_packet() and for simulated device replies.
    """
    if not (0 <= code <= 0xFF):
        raise ValueError("code must fit in uint8")
    if payload is None:
        payload = b""
    if len(payload) > MAX_PAYLOAD:
        raise ValueError(f"Payload too large: {len(payload)} bytes (max {MAX_PAYLOAD})")

    frame = bytearray([START_OF_PACKET, code])
    frame.extend(len(payload).to_bytes(2, "little"))
    frame.extend(payload)
    frame.extend(packet_checksum(frame).to_bytes(2, "little"))
    frame.append(END_OF_PACKET)
    return bytes(frame)


def build_packet(command: Command, payload: Optional[bytes] = None) -> bytes:
    """
    Build a host -> device command packet.

    Args:
        command: Bootloader command
        payload: Optional payload bytes (length 0 when absent)

    Returns:
        Complete frame as bytes
    """
    return encode_frame(COMMAND_CODES[command], payload)


def parse_packet(frame: bytes) -> Packet:
    """
    Decode one complete frame and validate framing + checksum.

    The code byte is returned as-is; status interpretation is up to the caller.
    PacketCodec.transmit() validates replies incrementally as they are read;
    this function decodes frames that are already complete, such as captured
    traffic or the host side of a simulated device.

    Raises:
        HostError: DATA for bad markers, LENGTH for a size mismatch,
            CHECKSUM for a checksum mismatch
    """
    if len(frame) < HEADER_SIZE + FOOTER_SIZE:
        raise HostError(HostErrorKind.LENGTH, f"Frame too short: {len(frame)} bytes")
    if frame[0] != START_OF_PACKET:
        raise HostError(HostErrorKind.DATA, f"Bad start byte 0x{frame[0]:02X}")

    length = int.from_bytes(frame[2:4], "little")
    expected = HEADER_SIZE + length + FOOTER_SIZE
    if len(frame) != expected:
        raise HostError(
            HostErrorKind.LENGTH,
            f"Frame length mismatch: got {len(frame)}, expected {expected}",
        )

    body = frame[:HEADER_SIZE + length]
    want = int.from_bytes(frame[-3:-1], "little")
    got = packet_checksum(body)
    if got != want:
        raise HostError(HostErrorKind.CHECKSUM, f"Checksum mismatch: got 0x{got:04X}, want 0x{want:04X}")
    if frame[-1] != END_OF_PACKET:
        raise HostError(HostErrorKind.DATA, f"Bad end byte 0x{frame[-1]:02X}")

    return Packet(code=frame[1], payload=bytes(frame[HEADER_SIZE:HEADER_SIZE + length]))


class PacketCodec:
    """
    Sends command packets over a transport and validates the replies.

    One codec per transport; calls block until the transport completes
    or fails.
    """

    def __init__(self, transport: Transport):
        self.transport = transport

    def _write(self, data: bytes) -> None:
        try:
            written = self.transport.write(data)
        except OSError as e:
            raise HostError(HostErrorKind.DEVICE, "Write failed", cause=e) from e
        if written is not None and written != len(data):
            raise HostError(HostErrorKind.DEVICE, f"Incomplete write: sent {written}/{len(data)} bytes")
        logger.debug(f">>> {data.hex(' ').upper()}")

    def _read_exact(self, n: int) -> bytes:
        out = bytearray()
        while len(out) < n:
            try:
                chunk = self.transport.read(n - len(out))
            except OSError as e:
                raise HostError(HostErrorKind.DEVICE, "Read failed", cause=e) from e
            if not chunk:
                raise HostError(
                    HostErrorKind.DEVICE,
                    f"Read timeout: got {len(out)}/{n} bytes",
                )
            out.extend(chunk)
        return bytes(out)

    def transmit(self, packet: bytes, expect_response: bool = True) -> bytes:
        """
        Write a packet and optionally read and validate the reply.

        Args:
            packet: Complete frame from build_packet()
            expect_response: Read a reply frame; False returns b"" right
                after the write

        Returns:
            Reply payload

        Raises:
            HostError: DEVICE on I/O failure, DATA on bad markers,
                CHECKSUM on checksum mismatch
            BootloaderError: Non-success status byte
        """
        self._write(packet)
        if not expect_response:
            return b""

        header = self._read_exact(HEADER_SIZE)
        if header[0] != START_OF_PACKET:
            raise HostError(HostErrorKind.DATA, f"Bad start byte 0x{header[0]:02X}")
        if header[1] != STATUS_SUCCESS:
            logger.debug(f"<<< {header.hex(' ').upper()}")
            raise error_from_status(header[1])

        length = int.from_bytes(header[2:4], "little")
        payload = self._read_exact(length)
        footer = self._read_exact(FOOTER_SIZE)
        logger.debug(f"<<< {(header + payload + footer).hex(' ').upper()}")

        want = int.from_bytes(footer[0:2], "little")
        got = packet_checksum(header + payload)
        if got != want:
            raise HostError(HostErrorKind.CHECKSUM, f"Checksum mismatch: got 0x{got:04X}, want 0x{want:04X}")
        if footer[2] != END_OF_PACKET:
            raise HostError(HostErrorKind.DATA, f"Bad end byte 0x{footer[2]:02X}")

        return payload
