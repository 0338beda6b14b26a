"""
MPEG audio frame header parsing and sync search.

Layout of the 32-bit header (MSB first)::

    sync(11) id(1) layer(2) protection(1)
    bitrate_index(4) sampling_frequency(2) padding(1) private(1)
    mode(2) mode_extension(2) copyright(1) original(1) emphasis(2)
"""

import enum
import logging
from dataclasses import dataclass
from typing import BinaryIO, Optional

from .errors import FrameSizeError, InvalidHeaderError, UnsupportedLayerError
from .tables import BITRATES, SAMPLING_FREQUENCIES

logger = logging.getLogger(__name__)

HEADER_SIZE = 4
MAX_FRAME_SIZE = 2000


class Layer(enum.IntEnum):
    RESERVED = 0
    LAYER3 = 1
    LAYER2 = 2
    LAYER1 = 3


class Mode(enum.IntEnum):
    STEREO = 0
    JOINT_STEREO = 1
    DUAL_CHANNEL = 2
    SINGLE_CHANNEL = 3


# mode_extension bits in joint stereo
MODE_EXT_INTENSITY = 0x1
MODE_EXT_MS = 0x2


@dataclass(frozen=True)
class FrameHeader:
    id: int
    layer: Layer
    protection_bit: int
    bitrate_index: int
    sampling_frequency: int
    padding_bit: int
    private_bit: int
    mode: Mode
    mode_extension: int
    copyright: int
    original_or_copy: int
    emphasis: int

    @property
    def bitrate(self) -> int:
        return BITRATES[self.bitrate_index]

    @property
    def sample_rate(self) -> int:
        return SAMPLING_FREQUENCIES[self.sampling_frequency]

    @property
    def channels(self) -> int:
        return 1 if self.mode == Mode.SINGLE_CHANNEL else 2

    @property
    def frame_size(self) -> int:
        """Bytes in the frame, header included."""
        return 144 * self.bitrate // self.sample_rate + self.padding_bit

    @property
    def crc_size(self) -> int:
        return 0 if self.protection_bit else 2

    @property
    def side_info_size(self) -> int:
        return 17 if self.channels == 1 else 32

    @property
    def main_data_size(self) -> int:
        """Bytes of main data carried by this frame, ancillary data included."""
        return self.frame_size - self.side_info_size - HEADER_SIZE - self.crc_size


def is_sync(data: bytes) -> bool:
    return data[0] == 0xFF and (data[1] & 0xE0) == 0xE0


def parse_header(data: bytes) -> FrameHeader:
    """
    Decode and validate four header bytes that start with the sync word.

    Raises:
        InvalidHeaderError: Reserved bitrate, sampling frequency or layer
        UnsupportedLayerError: Anything but MPEG-1 Layer III
        FrameSizeError: Frame larger than 2000 bytes
    """
    b1, b2, b3 = data[1], data[2], data[3]
    header = FrameHeader(
        id=(b1 >> 3) & 1,
        layer=Layer((b1 >> 1) & 3),
        protection_bit=b1 & 1,
        bitrate_index=b2 >> 4,
        sampling_frequency=(b2 >> 2) & 3,
        padding_bit=(b2 >> 1) & 1,
        private_bit=b2 & 1,
        mode=Mode(b3 >> 6),
        mode_extension=(b3 >> 4) & 3,
        copyright=(b3 >> 3) & 1,
        original_or_copy=(b3 >> 2) & 1,
        emphasis=b3 & 3,
    )
    if header.layer == Layer.RESERVED:
        raise InvalidHeaderError("reserved layer")
    if header.bitrate_index in (0, 15):
        raise InvalidHeaderError(f"invalid bitrate index: {header.bitrate_index}")
    if header.sampling_frequency == 3:
        raise InvalidHeaderError("reserved sampling frequency")
    if header.id != 1:
        raise UnsupportedLayerError("only MPEG-1 audio is supported")
    if header.layer != Layer.LAYER3:
        raise UnsupportedLayerError(f"only Layer III is supported, got Layer {4 - header.layer}")
    if header.frame_size > MAX_FRAME_SIZE:
        raise FrameSizeError(f"framesize = {header.frame_size}")
    return header


def read_exact(stream: BinaryIO, size: int) -> bytes:
    """Read ``size`` bytes or fewer only at end of stream."""
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b''.join(chunks)


def read_header(stream: BinaryIO) -> Optional[FrameHeader]:
    """
    Find the next sync word and parse the header behind it.

    Returns None at end of stream.
    """
    data = read_exact(stream, HEADER_SIZE)
    skipped = 0
    while len(data) == HEADER_SIZE and not is_sync(data):
        data = data[1:] + read_exact(stream, 1)
        skipped += 1
    if skipped:
        logger.debug("lost sync, skipped %d bytes", skipped)
    if len(data) < HEADER_SIZE:
        return None
    return parse_header(data)
