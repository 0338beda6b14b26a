"""
MP3 stream decoder.

Usage:
    with open('music.mp3', 'rb') as f:
        decoder = new_decoder(f)
        pcm = decoder.read()

The output is interleaved signed 16-bit little-endian stereo at
``decoder.sample_rate``; mono streams are duplicated to both channels.
"""

import io
import logging
from typing import BinaryIO, Optional, Tuple

from .errors import InvalidHeaderError, UnexpectedEOFError
from .frame import FRAME_PCM_BYTES, SynthesisState, decode_frame
from .header import HEADER_SIZE, FrameHeader, read_exact, read_header
from .maindata import MainData, Reservoir, read_main_data
from .sideinfo import SideInfo, parse_side_info

logger = logging.getLogger(__name__)

# Bytes per sample frame: two channels of 16 bits
_SAMPLE_FRAME_SIZE = 4


class Decoder(io.RawIOBase):
    """
    Binary file-like object producing PCM from an MP3 stream.

    Seeking works in PCM bytes and needs a seekable source; the decoder
    rewinds the source and decodes again up to the target frame.
    """

    def __init__(self, source: BinaryIO):
        super().__init__()
        self._source = source
        self._start = source.tell() if self._source_seekable() else 0
        self._state = SynthesisState()
        self._reservoir = Reservoir()
        self._buffer = b''
        self._buffer_pos = 0
        self._pos = 0
        self._eof = False
        self._length: Optional[int] = None
        self._frames = 0

        header = self._decode_next()
        if header is None:
            raise InvalidHeaderError("no MP3 frame found")
        self._sample_rate = header.sample_rate

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    def _source_seekable(self) -> bool:
        seekable = getattr(self._source, 'seekable', None)
        return bool(seekable and seekable())

    # ========================================================================
    # Frames
    # ========================================================================

    def _read_frame(self) -> Optional[Tuple[FrameHeader, SideInfo, MainData]]:
        header = read_header(self._source)
        if header is None:
            return None
        if header.crc_size:
            self._read_body(header.crc_size)
        side_info = parse_side_info(header, self._read_body(header.side_info_size))
        data = self._reservoir.assemble(side_info.main_data_begin,
                                        self._read_body(header.main_data_size))
        if data is None:
            main_data = MainData.silent(header.channels)
        else:
            main_data = read_main_data(header, side_info, data)
        return header, side_info, main_data

    def _read_body(self, size: int) -> bytes:
        data = read_exact(self._source, size)
        if len(data) < size:
            raise UnexpectedEOFError(
                f"frame {self._frames} truncated: expected {size} bytes, got {len(data)}")
        return data

    def _decode_next(self) -> Optional[FrameHeader]:
        frame = self._read_frame()
        if frame is None:
            self._eof = True
            return None
        header, side_info, main_data = frame
        self._buffer = decode_frame(header, side_info, main_data, self._state)
        self._buffer_pos = 0
        self._frames += 1
        return header

    # ========================================================================
    # io.RawIOBase
    # ========================================================================

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return self._source_seekable()

    def readinto(self, b) -> int:
        if self.closed:
            raise ValueError("I/O operation on closed decoder")
        view = memoryview(b).cast('B')
        n = 0
        while n < len(view):
            if self._buffer_pos >= len(self._buffer):
                if self._eof or self._decode_next() is None:
                    break
            chunk = self._buffer[self._buffer_pos:self._buffer_pos + len(view) - n]
            view[n:n + len(chunk)] = chunk
            self._buffer_pos += len(chunk)
            n += len(chunk)
        self._pos += n
        return n

    def tell(self) -> int:
        return self._pos

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        """
        Move to a PCM byte position, aligned down to a whole sample frame.

        Raises:
            io.UnsupportedOperation: The source is not seekable
        """
        if not self.seekable():
            raise io.UnsupportedOperation("source is not seekable")
        if whence == io.SEEK_SET:
            target = offset
        elif whence == io.SEEK_CUR:
            target = self._pos + offset
        elif whence == io.SEEK_END:
            target = self.length() + offset
        else:
            raise ValueError(f"invalid whence: {whence}")
        if target < 0:
            raise ValueError(f"negative seek position: {target}")
        target -= target % _SAMPLE_FRAME_SIZE

        self._rewind()
        frame_index, within = divmod(target, FRAME_PCM_BYTES)
        for _ in range(frame_index + 1):
            if self._decode_next() is None:
                break
        if self._eof:
            self._buffer = b''
            self._buffer_pos = 0
        else:
            self._buffer_pos = within
        self._pos = target
        logger.debug("seek to %d (frame %d)", target, frame_index)
        return self._pos

    def _rewind(self):
        self._source.seek(self._start)
        self._state.reset()
        self._reservoir.clear()
        self._buffer = b''
        self._buffer_pos = 0
        self._eof = False
        self._frames = 0

    def length(self) -> int:
        """Total PCM bytes of the stream, or -1 for unseekable sources."""
        if not self.seekable():
            return -1
        if self._length is None:
            saved = self._source.tell()
            self._source.seek(self._start)
            frames = 0
            while True:
                header = read_header(self._source)
                if header is None:
                    break
                body = header.frame_size - HEADER_SIZE
                if len(read_exact(self._source, body)) < body:
                    break
                frames += 1
            self._source.seek(saved)
            self._length = frames * FRAME_PCM_BYTES
        return self._length

    def close(self):
        if not self.closed:
            close = getattr(self._source, 'close', None)
            if close is not None:
                close()
        super().close()


def new_decoder(source: BinaryIO) -> Decoder:
    """
    Create a decoder and decode the first frame.

    Raises:
        InvalidHeaderError: No valid frame at the start of the stream
        UnsupportedLayerError: The stream is not MPEG-1 Layer III
    """
    return Decoder(source)


def decode_file(path) -> Tuple[bytes, int]:
    """Decode a whole file, returning ``(pcm, sample_rate)``."""
    with open(path, 'rb') as f:
        with new_decoder(f) as decoder:
            return decoder.read(), decoder.sample_rate
