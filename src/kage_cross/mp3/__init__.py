"""MPEG-1 Layer III decoder producing 16-bit stereo PCM."""

from .decoder import Decoder, decode_file, new_decoder
from .errors import (
    FrameSizeError,
    InvalidHeaderError,
    MP3Error,
    UnexpectedEOFError,
    UnsupportedLayerError,
)

__all__ = [
    'Decoder', 'new_decoder', 'decode_file',
    'MP3Error', 'InvalidHeaderError', 'FrameSizeError',
    'UnsupportedLayerError', 'UnexpectedEOFError',
]
