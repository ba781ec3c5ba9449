"""
CYACD firmware image parser.

A CYACD file is hex-ASCII text:

  Header line (12 hex chars -> 6 bytes):
    silicon_id (4, big-endian) | silicon_rev (1) | checksum_type (1: 0=sum, 1=crc)

  Row lines:
    ':' | array_id (1) | row_number (2, BE) | size (2, BE) | data (size) | checksum (1)

Rows are parsed one line at a time; an image is never held in memory.
"""

import logging
import string
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Set, TextIO

from cyacd_flasher.errors import HostError, HostErrorKind

logger = logging.getLogger(__name__)

ROW_MARKER = ":"
HEADER_BYTES = 6
ROW_OVERHEAD = 6  # array_id + row_number + size + checksum

_HEX_DIGITS = frozenset(string.hexdigits)


class ChecksumType(Enum):
    """Whole-image checksum algorithm declared in the header."""
    SUM = 0
    CRC = 1


@dataclass(frozen=True)
class ImageHeader:
    """Parsed header line."""

    silicon_id: int
    silicon_rev: int
    checksum_type: ChecksumType


@dataclass(frozen=True)
class FlashRow:
    """One flash row record."""

    array_id: int
    row_number: int
    size: int
    data: bytes
    checksum: int

    def record_bytes(self) -> bytes:
        """Record bytes preceding the checksum, as encoded in the file."""
        return (
            bytes([self.array_id])
            + self.row_number.to_bytes(2, "big")
            + self.size.to_bytes(2, "big")
            + self.data
        )

    def computed_checksum(self) -> int:
        return row_checksum(self.record_bytes())


@dataclass
class ImageStats:
    """Summary of a full pass over an image."""

    header: ImageHeader
    row_count: int = 0
    data_bytes: int = 0
    array_ids: Set[int] = field(default_factory=set)


def decode_hex(text: str) -> bytes:
    """
    Decode consecutive 2-character hex pairs.

    Pairs that are not two hex digits (line endings, a trailing odd
    character, stray garbage) are dropped.
    """
    out = bytearray()
    for i in range(0, len(text), 2):
        pair = text[i:i + 2]
        if len(pair) == 2 and pair[0] in _HEX_DIGITS and pair[1] in _HEX_DIGITS:
            out.append(int(pair, 16))
    return bytes(out)


def row_checksum(record: bytes) -> int:
    """Two's complement of the 8-bit sum of a row record."""
    return (-sum(record)) & 0xFF


def parse_header(line: str) -> ImageHeader:
    """
    Parse the image header line.

    Raises:
        HostError: LENGTH if the line does not hold exactly 6 bytes,
            CHECKSUM for an unknown checksum type
    """
    raw = decode_hex(line)
    if len(raw) != HEADER_BYTES:
        raise HostError(
            HostErrorKind.LENGTH,
            f"Header must be {HEADER_BYTES} bytes, got {len(raw)}",
        )

    try:
        checksum_type = ChecksumType(raw[5])
    except ValueError:
        raise HostError(HostErrorKind.CHECKSUM, f"Unknown checksum type 0x{raw[5]:02X}")

    return ImageHeader(
        silicon_id=int.from_bytes(raw[0:4], "big"),
        silicon_rev=raw[4],
        checksum_type=checksum_type,
    )


def parse_row(line: str) -> FlashRow:
    """
    Parse one row line.

    Args:
        line: Next line from the image stream; "" means the stream is exhausted

    Raises:
        HostError: EOF at end of stream, COMMAND without the ':' marker,
            LENGTH for too few bytes or a size mismatch
    """
    if not line:
        raise HostError(HostErrorKind.EOF)
    if not line.startswith(ROW_MARKER):
        raise HostError(HostErrorKind.COMMAND, f"Row does not start with '{ROW_MARKER}'")

    raw = decode_hex(line[1:])
    if len(raw) <= ROW_OVERHEAD:
        raise HostError(HostErrorKind.LENGTH, f"Row too short: {len(raw)} bytes")

    size = int.from_bytes(raw[3:5], "big")
    if size + ROW_OVERHEAD != len(raw):
        raise HostError(
            HostErrorKind.LENGTH,
            f"Row declares {size} data bytes but holds {len(raw) - ROW_OVERHEAD}",
        )

    return FlashRow(
        array_id=raw[0],
        row_number=int.from_bytes(raw[1:3], "big"),
        size=size,
        data=raw[5:5 + size],
        checksum=raw[-1],
    )


class CyacdReader:
    """
    Lazy reader over a CYACD text stream.

    Example:
        with open("Design01.cyacd") as f:
            reader = CyacdReader(f)
            header = reader.read_header()
            for row in reader:
                ...
    """

    def __init__(self, stream: TextIO, verify_row_checksums: bool = False):
        """
        Args:
            stream: Text stream positioned at the header line
            verify_row_checksums: Reject rows whose stored checksum does not
                match the record contents
        """
        self.stream = stream
        self.verify_row_checksums = verify_row_checksums
        self.line_number = 0

    def _next_line(self) -> str:
        line = self.stream.readline()
        if line:
            self.line_number += 1
        return line

    def read_header(self) -> ImageHeader:
        header = parse_header(self._next_line())
        logger.debug(
            f"Image header: silicon_id=0x{header.silicon_id:08X} "
            f"rev=0x{header.silicon_rev:02X} checksum={header.checksum_type.name}"
        )
        return header

    def read_row(self) -> FlashRow:
        """
        Parse the next row.

        Raises:
            HostError: EOF once the stream is exhausted, or any parse error
        """
        row = parse_row(self._next_line())
        if self.verify_row_checksums:
            computed = row.computed_checksum()
            if computed != row.checksum:
                raise HostError(
                    HostErrorKind.CHECKSUM,
                    f"Line {self.line_number}: row checksum 0x{row.checksum:02X}, "
                    f"computed 0x{computed:02X}",
                )
        return row

    def __iter__(self) -> Iterator[FlashRow]:
        while True:
            try:
                row = self.read_row()
            except HostError as e:
                if e.kind is HostErrorKind.EOF:
                    return
                raise
            yield row


def scan_image(stream: TextIO, verify_row_checksums: bool = False) -> ImageStats:
    """
    Read a whole image once and summarize it without keeping rows.

    Raises:
        HostError: First parse error encountered
    """
    reader = CyacdReader(stream, verify_row_checksums=verify_row_checksums)
    stats = ImageStats(header=reader.read_header())
    for row in reader:
        stats.row_count += 1
        stats.data_bytes += len(row.data)
        stats.array_ids.add(row.array_id)
    return stats
