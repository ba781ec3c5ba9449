"""Bootloader wire protocol - packet codec and serial transport."""

from .transport import Transport, Connection, SerialConnection
from .packet import (
    Command,
    COMMAND_CODES,
    Packet,
    PacketCodec,
    packet_checksum,
    encode_frame,
    build_packet,
    parse_packet,
    START_OF_PACKET,
    END_OF_PACKET,
    STATUS_SUCCESS,
)

__all__ = [
    # Transport
    "Transport",
    "Connection",
    "SerialConnection",
    # Packet codec
    "Command",
    "COMMAND_CODES",
    "Packet",
    "PacketCodec",
    "packet_checksum",
    "encode_frame",
    "build_packet",
    "parse_packet",
    "START_OF_PACKET",
    "END_OF_PACKET",
    "STATUS_SUCCESS",
]
