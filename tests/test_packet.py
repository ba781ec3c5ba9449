"""Tests for bootloader packet framing and the transmit path."""

import pytest

import serial

from cyacd_flasher.errors import (
    BootloaderError,
    BootloaderErrorKind,
    HostError,
    HostErrorKind,
)
from cyacd_flasher.protocol.packet import (
    COMMAND_CODES,
    Command,
    Packet,
    PacketCodec,
    STATUS_SUCCESS,
    build_packet,
    encode_frame,
    packet_checksum,
    parse_packet,
)

from fakes import LoopbackTransport


class TestChecksum:
    """Frame checksum arithmetic."""

    @pytest.mark.parametrize(
        "data",
        [b"", b"\x00", b"\x01\x38\x00\x00", bytes(range(256)), b"\xFF" * 600],
    )
    def test_sum_with_checksum_is_zero(self, data):
        """All bytes plus the checksum sum to 0 mod 65536."""
        assert (sum(data) + packet_checksum(data)) % 65536 == 0

    def test_empty_sum(self):
        assert packet_checksum(b"") == 0

    def test_known_value(self):
        assert packet_checksum(b"\x01\x38\x00\x00") == 0xFFC7


def test_command_codes_match_wire_table():
    """Command codes are fixed by the bootloader firmware."""
    assert {cmd.value: code for cmd, code in COMMAND_CODES.items()} == {
        "VerifyChecksum": 0x31,
        "GetFlashSize": 0x32,
        "GetAppStatus": 0x33,
        "EraseRow": 0x34,
        "Sync": 0x35,
        "SetActiveApp": 0x36,
        "SendData": 0x37,
        "EnterBootloader": 0x38,
        "ProgramRow": 0x39,
        "VerifyRow": 0x3A,
        "ExitBootloader": 0x3B,
        "GetMetaData": 0x3C,
    }


class TestBuildPacket:
    """Outgoing command packets."""

    def test_enter_bootloader_without_payload(self):
        assert build_packet(Command.ENTER_BOOTLOADER) == bytes([0x01, 0x38, 0x00, 0x00, 0xC7, 0xFF, 0x17])

    def test_exit_bootloader_without_payload(self):
        assert build_packet(Command.EXIT_BOOTLOADER) == bytes([0x01, 0x3B, 0x00, 0x00, 0xC4, 0xFF, 0x17])

    def test_payload_length_is_little_endian(self):
        pkt = build_packet(Command.SEND_DATA, bytes(300))
        assert pkt[0] == 0x01
        assert pkt[1] == 0x37
        assert pkt[2:4] == bytes([0x2C, 0x01])
        assert len(pkt) == 4 + 300 + 3
        assert pkt[-1] == 0x17

    def test_checksum_covers_header_and_payload(self):
        pkt = build_packet(Command.VERIFY_ROW, bytes([0x00, 0x05, 0x00]))
        assert int.from_bytes(pkt[-3:-1], "little") == packet_checksum(pkt[:-3])
        assert (sum(pkt[:-3]) + int.from_bytes(pkt[-3:-1], "little")) & 0xFFFF == 0

    def test_oversized_payload_rejected(self):
        with pytest.raises(ValueError):
            build_packet(Command.SEND_DATA, bytes(0x10000))


class TestParsePacket:
    """Whole-frame decoding."""

    def test_decodes_command_packet(self):
        packet = parse_packet(build_packet(Command.PROGRAM_ROW, b"\x01\x02\x03"))
        assert packet == Packet(code=0x39, payload=b"\x01\x02\x03")
        assert packet.command is Command.PROGRAM_ROW

    def test_status_frame_has_no_command(self):
        assert parse_packet(encode_frame(0x00, b"")).command is None

    def test_bad_start_byte(self):
        frame = bytearray(build_packet(Command.SYNC))
        frame[0] = 0x02
        with pytest.raises(HostError) as exc_info:
            parse_packet(bytes(frame))
        assert exc_info.value.kind is HostErrorKind.DATA

    def test_truncated_frame(self):
        with pytest.raises(HostError) as exc_info:
            parse_packet(build_packet(Command.SEND_DATA, b"\xAA\xBB")[:-1])
        assert exc_info.value.kind is HostErrorKind.LENGTH

    def test_checksum_mismatch(self):
        frame = bytearray(build_packet(Command.SEND_DATA, b"\xAA\xBB"))
        frame[4] ^= 0xFF
        with pytest.raises(HostError) as exc_info:
            parse_packet(bytes(frame))
        assert exc_info.value.kind is HostErrorKind.CHECKSUM


class TestTransmit:
    """Reply validation in PacketCodec.transmit()."""

    @pytest.mark.parametrize("command", list(Command))
    @pytest.mark.parametrize("size", [0, 1, 50])
    def test_echo_payload_roundtrip(self, command, size):
        """A success reply echoing the payload yields the payload unchanged."""
        payload = bytes((i * 7) & 0xFF for i in range(size))
        packet = build_packet(command, payload)
        transport = LoopbackTransport(encode_frame(STATUS_SUCCESS, payload))

        assert PacketCodec(transport).transmit(packet, True) == payload
        assert bytes(transport.written) == packet
        assert not transport.rx

    def test_no_response_returns_empty(self):
        transport = LoopbackTransport(b"\x01\x00")
        packet = build_packet(Command.EXIT_BOOTLOADER)

        assert PacketCodec(transport).transmit(packet, False) == b""
        assert bytes(transport.written) == packet
        assert bytes(transport.rx) == b"\x01\x00"

    def test_bad_start_byte_is_data_error(self):
        frame = bytearray(encode_frame(STATUS_SUCCESS, b""))
        frame[0] = 0x7E
        codec = PacketCodec(LoopbackTransport(bytes(frame)))
        with pytest.raises(HostError) as exc_info:
            codec.transmit(build_packet(Command.SYNC))
        assert exc_info.value.kind is HostErrorKind.DATA

    @pytest.mark.parametrize(
        "status, kind",
        [
            (0x03, BootloaderErrorKind.LENGTH),
            (0x08, BootloaderErrorKind.CHECKSUM),
            (0x0A, BootloaderErrorKind.ROW),
            (0x0F, BootloaderErrorKind.UNKNOWN),
        ],
    )
    def test_status_maps_to_bootloader_error(self, status, kind):
        codec = PacketCodec(LoopbackTransport(encode_frame(status, b"")))
        with pytest.raises(BootloaderError) as exc_info:
            codec.transmit(build_packet(Command.VERIFY_ROW, b"\x00\x00\x00"))
        assert exc_info.value.kind is kind
        assert exc_info.value.status == status

    def test_checksum_mismatch(self):
        frame = bytearray(encode_frame(STATUS_SUCCESS, b"\x10\x20"))
        frame[-3] ^= 0x01
        codec = PacketCodec(LoopbackTransport(bytes(frame)))
        with pytest.raises(HostError) as exc_info:
            codec.transmit(build_packet(Command.GET_FLASH_SIZE, b"\x00"))
        assert exc_info.value.kind is HostErrorKind.CHECKSUM

    def test_bad_end_marker(self):
        frame = bytearray(encode_frame(STATUS_SUCCESS, b"\x10\x20"))
        frame[-1] = 0x18
        codec = PacketCodec(LoopbackTransport(bytes(frame)))
        with pytest.raises(HostError) as exc_info:
            codec.transmit(build_packet(Command.GET_FLASH_SIZE, b"\x00"))
        assert exc_info.value.kind is HostErrorKind.DATA

    def test_short_reply_is_device_error(self):
        frame = encode_frame(STATUS_SUCCESS, b"\x10\x20\x30")
        codec = PacketCodec(LoopbackTransport(frame[:5]))
        with pytest.raises(HostError) as exc_info:
            codec.transmit(build_packet(Command.SYNC))
        assert exc_info.value.kind is HostErrorKind.DEVICE

    def test_write_failure_is_wrapped(self):
        class BrokenTransport(LoopbackTransport):
            def write(self, data):
                raise serial.SerialException("device disconnected")

        with pytest.raises(HostError) as exc_info:
            PacketCodec(BrokenTransport()).transmit(build_packet(Command.SYNC))
        assert exc_info.value.kind is HostErrorKind.DEVICE
        assert isinstance(exc_info.value.cause, serial.SerialException)
        assert exc_info.value.__cause__ is exc_info.value.cause

    def test_incomplete_write(self):
        class ShortWriter(LoopbackTransport):
            def write(self, data):
                return len(data) - 1

        with pytest.raises(HostError) as exc_info:
            PacketCodec(ShortWriter()).transmit(build_packet(Command.SYNC))
        assert exc_info.value.kind is HostErrorKind.DEVICE

    def test_reads_split_across_calls(self):
        """Partial reads are accumulated until the frame is complete."""

        class TrickleTransport(LoopbackTransport):
            def read(self, size):
                return super().read(1)

        payload = b"\xDE\xAD\xBE\xEF"
        codec = PacketCodec(TrickleTransport(encode_frame(STATUS_SUCCESS, payload)))
        assert codec.transmit(build_packet(Command.GET_METADATA, b"\x00")) == payload

    def test_bad_start_byte_checked_before_status(self):
        frame = bytearray(encode_frame(0x08, b""))
        frame[0] = 0x7E
        with pytest.raises(HostError) as exc_info:
            PacketCodec(LoopbackTransport(bytes(frame))).transmit(build_packet(Command.SYNC))
        assert exc_info.value.kind is HostErrorKind.DATA

    def test_error_status_stops_after_header(self):
        transport = LoopbackTransport(encode_frame(0x08, b"\x01\x02"))
        with pytest.raises(BootloaderError) as exc_info:
            PacketCodec(transport).transmit(build_packet(Command.VERIFY_ROW, b"\x00\x00\x00"))
        assert exc_info.value.kind is BootloaderErrorKind.CHECKSUM
        # payload and footer are left unread
        assert len(transport.rx) == 2 + 3
