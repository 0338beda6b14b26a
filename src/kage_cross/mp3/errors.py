"""Errors raised by the MP3 decoder."""


class MP3Error(Exception):
    """Base class of every decoder error."""


class InvalidHeaderError(MP3Error):
    """A frame header carries a reserved or forbidden field value."""


class FrameSizeError(MP3Error):
    """The frame size computed from the header is out of range."""


class UnsupportedLayerError(MP3Error):
    """The stream is MPEG audio, but not MPEG-1 Layer III."""


class UnexpectedEOFError(MP3Error, EOFError):
    """The stream ended in the middle of a frame."""
