"""
Unit tests for the MP3 decoder.

Tests:
- Frame header parsing and validation
- Bit reader and Huffman decoding
- Bit reservoir
- Requantization, reordering, joint stereo and the synthesis window
- Decoder stream behaviour: read, seek, length, resync
- Hand-encoded frames against direct-form synthesis
"""

import io
import math

import numpy as np
import pytest

from kage_cross.mp3 import (
    InvalidHeaderError,
    UnexpectedEOFError,
    UnsupportedLayerError,
    decode_file,
    new_decoder,
)
from kage_cross.mp3.bits import BitReader
from kage_cross.mp3.frame import FRAME_PCM_BYTES, reorder, requantize, stereo
from kage_cross.mp3.header import Mode, parse_header
from kage_cross.mp3.huffman import decode_pair, decode_quad
from kage_cross.mp3.maindata import Reservoir
from kage_cross.mp3.sideinfo import GranuleInfo, parse_side_info
from kage_cross.mp3.tables import SYNTH_WINDOW

# 128 kbit/s, 44100 Hz, no CRC, no padding: 417 byte frames
STEREO_HEADER = bytes([0xFF, 0xFB, 0x90, 0x00])
MONO_HEADER = bytes([0xFF, 0xFB, 0x90, 0xC0])
FRAME_SIZE = 417


class BitWriter:
    """Test helper: MSB-first bit packer."""

    def __init__(self):
        self.bits = []

    def write(self, value, n):
        for i in reversed(range(n)):
            self.bits.append((value >> i) & 1)

    def to_bytes(self, size):
        padded = self.bits + [0] * (size * 8 - len(self.bits))
        return bytes(
            int(''.join(str(b) for b in padded[i:i + 8]), 2)
            for i in range(0, len(padded), 8)
        )


def silent_frame(header=STEREO_HEADER):
    """Helper: a frame with zeroed side information and main data."""
    return header + bytes(FRAME_SIZE - len(header))


def silent_stream(frames, header=STEREO_HEADER):
    return io.BytesIO(silent_frame(header) * frames)


class NonSeekable:
    """Test helper: a readable stream that cannot seek."""

    def __init__(self, data):
        self._f = io.BytesIO(data)

    def read(self, n=-1):
        return self._f.read(n)

    def seekable(self):
        return False


def write_granule(writer, part2_3_length=0, big_values=0, global_gain=0,
                  table_select=(0, 0, 0), region0_count=0, region1_count=0,
                  count1table_select=0):
    """Helper: pack one long-block granule of side information."""
    writer.write(part2_3_length, 12)
    writer.write(big_values, 9)
    writer.write(global_gain, 8)
    writer.write(0, 4)              # scalefac_compress
    writer.write(0, 1)              # window switching
    for table in table_select:
        writer.write(table, 5)
    writer.write(region0_count, 4)
    writer.write(region1_count, 3)
    writer.write(0, 1)              # preflag
    writer.write(0, 1)              # scalefac_scale
    writer.write(count1table_select, 1)


# ----------------------------------------------------------------------------
# Encoded tone stream
# ----------------------------------------------------------------------------

# Huffman table 1 codewords by (|x|, |y|)
TABLE1_CODES = {(0, 0): '1', (0, 1): '001', (1, 0): '01', (1, 1): '000'}

# Lines outside the antialias butterflies of subbands 0, 1 and 2
TONE_LINES = (8, 9, 26, 27, 44, 45)
TONE_PAIRS = 23
TONE_RESERVOIR = 24


def tone_lines(frame, gr, ch):
    """Helper: Huffman values of one granule and channel of the tone stream."""
    values = np.zeros(576, dtype=np.int64)
    for i, line in enumerate(TONE_LINES):
        values[line] = (frame + gr + 2 * ch + i) % 3 - 1
    return values


def tone_gain(ch):
    return 200 + 4 * ch


def encode_big_values(writer, values):
    """Helper: Huffman code the first TONE_PAIRS pairs with table 1."""
    for p in range(TONE_PAIRS):
        x, y = int(values[2 * p]), int(values[2 * p + 1])
        for bit in TABLE1_CODES[abs(x), abs(y)]:
            writer.write(int(bit), 1)
        for v in (x, y):
            if v:
                writer.write(1 if v < 0 else 0, 1)


def tone_stream(frames):
    """
    Helper: stereo frames carrying a few long-block spectral lines.

    The second frame starts its main data TONE_RESERVOIR bytes back, inside
    the first frame.
    """
    sides, datas = [], []
    for f in range(frames):
        main = BitWriter()
        lengths = {}
        for gr in range(2):
            for ch in range(2):
                start = len(main.bits)
                encode_big_values(main, tone_lines(f, gr, ch))
                lengths[gr, ch] = len(main.bits) - start
        side = BitWriter()
        side.write(TONE_RESERVOIR if f == 1 else 0, 9)
        side.write(0, 3 + 8)        # private bits, scfsi
        for gr in range(2):
            for ch in range(2):
                write_granule(side, part2_3_length=lengths[gr, ch], big_values=TONE_PAIRS,
                              global_gain=tone_gain(ch), table_select=(1, 0, 0),
                              region0_count=15, region1_count=7)
        sides.append(side.to_bytes(32))
        datas.append(main.to_bytes(max((len(main.bits) + 7) // 8, TONE_RESERVOIR)))

    main_size = FRAME_SIZE - 4 - 32
    out = b''
    for f in range(frames):
        own = datas[f][TONE_RESERVOIR:] if f == 1 else datas[f]
        slot = bytearray(own + bytes(main_size - len(own)))
        if f == 0 and frames > 1:
            slot[-TONE_RESERVOIR:] = datas[1][:TONE_RESERVOIR]
        out += STEREO_HEADER + sides[f] + bytes(slot)
    return out


def reference_window():
    """Helper: D rebuilt from its first half through the symmetric prototype."""
    sign = np.where((np.arange(512) // 64) % 2, -1.0, 1.0)
    h = np.zeros(512)
    h[:257] = SYNTH_WINDOW[:257] * sign[:257]
    h[257:] = h[255:0:-1]
    return h * sign


def reference_decode(frames):
    """Helper: direct-form requantize, IMDCT and polyphase synthesis of the tone stream."""
    imdct = np.array([[math.cos(math.pi / 72 * (2 * i + 19) * (2 * k + 1)) for k in range(18)]
                      for i in range(36)])
    window = np.array([math.sin(math.pi / 36 * (i + 0.5)) for i in range(36)])
    matrix = np.array([[math.cos((16 + i) * (2 * k + 1) * math.pi / 64) for k in range(32)]
                       for i in range(64)])
    d = reference_window()
    pcm = np.zeros((frames * 1152, 2))
    for ch in range(2):
        overlap = np.zeros((32, 18))
        v = np.zeros(1024)
        n = 0
        for f in range(frames):
            for gr in range(2):
                values = tone_lines(f, gr, ch)
                xr = np.sign(values) * np.abs(values) ** (4.0 / 3.0) * 2.0 ** ((tone_gain(ch) - 210) / 4.0)
                subbands = np.zeros((32, 18))
                for sb in range(32):
                    z = (imdct @ xr[18 * sb:18 * sb + 18]) * window
                    subbands[sb] = z[:18] + overlap[sb]
                    overlap[sb] = z[18:]
                    if sb % 2:
                        subbands[sb, 1::2] *= -1.0
                for ss in range(18):
                    v = np.concatenate([matrix @ subbands[:, ss], v[:-64]])
                    u = np.zeros(512)
                    for i in range(8):
                        u[64 * i:64 * i + 32] = v[128 * i:128 * i + 32]
                        u[64 * i + 32:64 * i + 64] = v[128 * i + 96:128 * i + 128]
                    w = u * d
                    for j in range(32):
                        pcm[n, ch] = sum(w[j + 32 * i] for i in range(16))
                        n += 1
    return np.clip(pcm * 32767.0, -32767.0, 32767.0)


# ============================================================================
# 1. Header
# ============================================================================

def test_parse_stereo_header():
    """Test the fields and derived sizes of a common header."""
    header = parse_header(STEREO_HEADER)
    assert header.bitrate == 128000
    assert header.sample_rate == 44100
    assert header.mode == Mode.STEREO
    assert header.channels == 2
    assert header.frame_size == FRAME_SIZE
    assert header.crc_size == 0
    assert header.side_info_size == 32
    assert header.main_data_size == FRAME_SIZE - 4 - 32


def test_parse_mono_header():
    """Test mono frames carry 17 bytes of side information."""
    header = parse_header(MONO_HEADER)
    assert header.channels == 1
    assert header.side_info_size == 17
    assert header.main_data_size == 396


def test_padding_adds_a_byte():
    """Test the padding bit lengthens the frame."""
    header = parse_header(bytes([0xFF, 0xFB, 0x92, 0x00]))
    assert header.frame_size == FRAME_SIZE + 1


def test_protected_frame_has_crc():
    """Test a cleared protection bit means a CRC follows the header."""
    header = parse_header(bytes([0xFF, 0xFA, 0x90, 0x00]))
    assert header.crc_size == 2


@pytest.mark.parametrize("data,error", [
    (bytes([0xFF, 0xFB, 0xF0, 0x00]), InvalidHeaderError),
    (bytes([0xFF, 0xFB, 0x00, 0x00]), InvalidHeaderError),
    (bytes([0xFF, 0xFB, 0x9C, 0x00]), InvalidHeaderError),
    (bytes([0xFF, 0xF9, 0x90, 0x00]), InvalidHeaderError),
    (bytes([0xFF, 0xFF, 0x90, 0x00]), UnsupportedLayerError),
    (bytes([0xFF, 0xFD, 0x90, 0x00]), UnsupportedLayerError),
    (bytes([0xFF, 0xF3, 0x90, 0x00]), UnsupportedLayerError),
])
def test_invalid_headers(data, error):
    """Test reserved fields and other layers are rejected."""
    with pytest.raises(error):
        parse_header(data)


# ============================================================================
# 2. Bits and Huffman
# ============================================================================

def test_bit_reader():
    """Test MSB-first reads and zero fill past the end."""
    reader = BitReader(b'\xA5')
    assert len(reader) == 8
    assert reader.bit() == 1
    assert reader.bits(3) == 0b010
    assert reader.bits(4) == 0b0101
    assert reader.bits(4) == 0
    assert reader.pos == 12


def test_decode_pair():
    """Test a big_values pair with a sign bit."""
    reader = BitReader(b'\x60')
    assert decode_pair(reader, 1) == (-1, 0)
    assert reader.pos == 3


def test_decode_pair_table_zero():
    """Test table 0 reads nothing."""
    reader = BitReader(b'\xFF')
    assert decode_pair(reader, 0) == (0, 0)
    assert reader.pos == 0


def test_decode_quad():
    """Test a count1 quadruple from the fixed length table."""
    reader = BitReader(b'\x0A')
    assert decode_quad(reader, 33) == (-1, 1, -1, 1)
    assert reader.pos == 8


# ============================================================================
# 3. Side Information and Reservoir
# ============================================================================

def test_parse_side_info():
    """Test granule fields are read in order."""
    writer = BitWriter()
    writer.write(0, 9 + 5 + 4)
    write_granule(writer, part2_3_length=8, global_gain=210, count1table_select=1)
    write_granule(writer)
    side_info = parse_side_info(parse_header(MONO_HEADER), writer.to_bytes(17))
    g = side_info.granules[0][0]
    assert side_info.main_data_begin == 0
    assert g.part2_3_length == 8
    assert g.global_gain == 210
    assert g.count1table_select == 1
    assert not g.short_blocks
    assert side_info.granules[1][0].part2_3_length == 0


def test_reservoir_underflow_then_assemble():
    """Test a frame reaching past the reservoir yields nothing but is kept."""
    reservoir = Reservoir()
    assert reservoir.assemble(1, b'ab') is None
    assert len(reservoir) == 2
    assert reservoir.assemble(2, b'cd') == b'abcd'
    assert reservoir.assemble(1, b'ef') == b'def'


# ============================================================================
# 4. Signal Processing
# ============================================================================

def test_requantize_unit_gain():
    """Test a global gain of 210 leaves values at x^(4/3)."""
    samples = np.zeros(576, dtype=np.int64)
    samples[0] = 8
    samples[1] = -1
    xr = requantize(samples, GranuleInfo(global_gain=210), np.zeros(22, dtype=np.int64),
                    np.zeros((13, 3), dtype=np.int64), 0)
    assert xr[0] == pytest.approx(16.0)
    assert xr[1] == pytest.approx(-1.0)
    assert not xr[2:].any()


def test_synthesis_window_shape():
    """Test the window mirrors around its center with block starts keeping their sign."""
    assert SYNTH_WINDOW.shape == (512,)
    assert SYNTH_WINDOW[256] == pytest.approx(1.144989, abs=1e-6)
    assert SYNTH_WINDOW[0] == 0
    boundaries = [64, 128, 192]
    for i in boundaries:
        assert SYNTH_WINDOW[512 - i] == SYNTH_WINDOW[i]
    others = [i for i in range(1, 256) if i not in boundaries]
    np.testing.assert_array_equal(SYNTH_WINDOW[[512 - i for i in others]], -SYNTH_WINDOW[others])


@pytest.mark.parametrize("index,value", [
    (1, -1), (64, 213), (128, 2037), (192, 6574), (256, 75038),
    (257, 74992), (320, 6574), (384, 2037), (448, 213), (511, 1),
])
def test_synthesis_window_values(index, value):
    """Test window coefficients against the tabulated values in units of 2^-16."""
    assert SYNTH_WINDOW[index] * 65536.0 == pytest.approx(value)


# ----------------------------------------------------------------------------
# Short and mixed blocks
# ----------------------------------------------------------------------------

def short_granule(**fields):
    """Helper: a granule with short windows."""
    return GranuleInfo(win_switch_flag=1, block_type=2, **fields)


def test_requantize_short_block_gains():
    """Test subblock gains and short scalefactors apply per window."""
    samples = np.zeros(576, dtype=np.int64)
    # Band 0 is 4 lines wide: windows start at lines 0, 4 and 8
    samples[[0, 4, 8]] = 1
    scalefac_s = np.zeros((13, 3), dtype=np.int64)
    scalefac_s[0, 2] = 2
    g = short_granule(global_gain=210, subblock_gain=[0, 1, 0])
    xr = requantize(samples, g, np.zeros(22, dtype=np.int64), scalefac_s, 0)
    assert xr[0] == pytest.approx(1.0)
    assert xr[4] == pytest.approx(0.25)
    assert xr[8] == pytest.approx(0.5)


def test_requantize_mixed_block():
    """Test the first 36 lines of a mixed block use long scalefactors."""
    samples = np.zeros(576, dtype=np.int64)
    samples[[0, 4, 44]] = 1
    scalefac_l = np.zeros(22, dtype=np.int64)
    scalefac_l[1] = 2
    g = short_granule(global_gain=210, mixed_block_flag=1, subblock_gain=[0, 0, 1])
    xr = requantize(samples, g, scalefac_l, np.zeros((13, 3), dtype=np.int64), 0)
    assert xr[0] == pytest.approx(1.0)
    # Long band 1 covers lines 4..7
    assert xr[4] == pytest.approx(0.5)
    # Short band 3 starts at line 36, its third window at 44
    assert xr[44] == pytest.approx(0.25)


def test_reorder_long_block_is_unchanged():
    """Test long blocks pass through."""
    xr = np.arange(576, dtype=np.float64)
    assert reorder(xr, GranuleInfo(), 0) is xr


def test_reorder_short_block():
    """Test short bands are interleaved window by window."""
    xr = np.arange(576, dtype=np.float64)
    out = reorder(xr, short_granule(), 0)
    assert list(out[:12]) == [0, 4, 8, 1, 5, 9, 2, 6, 10, 3, 7, 11]
    assert list(out[12:15]) == [12, 16, 20]
    # Band 12 holds 56 lines per window starting at 3 * 136
    assert list(out[408:411]) == [408, 464, 520]


def test_reorder_mixed_block():
    """Test the long part of a mixed block is left alone."""
    xr = np.arange(576, dtype=np.float64)
    out = reorder(xr, short_granule(mixed_block_flag=1), 0)
    assert list(out[:36]) == list(range(36))
    assert list(out[36:42]) == [36, 40, 44, 37, 41, 45]


# ----------------------------------------------------------------------------
# Stereo
# ----------------------------------------------------------------------------

# 128 kbit/s, 44100 Hz, joint stereo with the given mode extension
def joint_stereo_header(mode_extension):
    return parse_header(bytes([0xFF, 0xFB, 0x90, 0x40 | mode_extension << 4]))


def test_stereo_ignores_plain_stereo():
    """Test only joint stereo frames are processed."""
    left, right = np.ones(576), np.zeros(576)
    stereo(parse_header(STEREO_HEADER), [left, right], GranuleInfo(),
           np.zeros(22, dtype=np.int64), np.zeros((13, 3), dtype=np.int64), [576, 576], 0)
    assert left.all()
    assert not right.any()


def test_mid_side_stereo():
    """Test M/S reconstruction up to the larger zero region start."""
    left = np.zeros(576)
    right = np.zeros(576)
    left[:5] = [3, 1, 0, 0, 5]
    right[:5] = [1, 1, 0, 2, 7]
    stereo(joint_stereo_header(2), [left, right], GranuleInfo(),
           np.zeros(22, dtype=np.int64), np.zeros((13, 3), dtype=np.int64), [4, 2], 0)
    root2 = math.sqrt(2.0)
    np.testing.assert_allclose(left[:5], [4 / root2, 2 / root2, 0, 2 / root2, 5])
    np.testing.assert_allclose(right[:5], [2 / root2, 0, 0, -2 / root2, 7])


def test_intensity_stereo_long_bands():
    """Test intensity positions 0, 3, 6 and 7 above the right channel boundary."""
    left = np.full(576, 2.0)
    right = np.zeros(576)
    right[:8] = 5.0
    scalefac_l = np.full(22, 7, dtype=np.int64)
    # Long bands 2..5 cover lines 8..23
    scalefac_l[2:6] = [0, 3, 6, 7]
    stereo(joint_stereo_header(1), [left, right], GranuleInfo(), scalefac_l,
           np.zeros((13, 3), dtype=np.int64), [576, 8], 0)
    np.testing.assert_allclose(left[:8], 2.0)
    np.testing.assert_allclose(right[:8], 5.0)
    np.testing.assert_allclose(left[8:12], 0.0, atol=1e-12)
    np.testing.assert_allclose(right[8:12], 2.0)
    np.testing.assert_allclose(left[12:16], 1.0)
    np.testing.assert_allclose(right[12:16], 1.0)
    np.testing.assert_allclose(left[16:24], 2.0)
    np.testing.assert_allclose(right[16:24], 0.0)


def test_intensity_stereo_short_windows():
    """Test short block intensity acts on the interleaved lines of one window."""
    left = np.ones(576)
    right = np.zeros(576)
    scalefac_s = np.full((13, 3), 7, dtype=np.int64)
    scalefac_s[0, 1] = 0
    stereo(joint_stereo_header(1), [left, right], short_granule(),
           np.zeros(22, dtype=np.int64), scalefac_s, [576, 0], 0)
    window1 = [1, 4, 7, 10]
    np.testing.assert_allclose(left[window1], 0.0, atol=1e-12)
    np.testing.assert_allclose(right[window1], 1.0)
    others = [i for i in range(576) if i not in window1]
    np.testing.assert_allclose(left[others], 1.0)
    np.testing.assert_allclose(right[others], 0.0)


# ============================================================================
# 5. Decoder
# ============================================================================

@pytest.mark.parametrize("header", [STEREO_HEADER, MONO_HEADER])
def test_silent_frames_decode_to_zeros(header):
    """Test each frame produces 4608 bytes of stereo PCM."""
    decoder = new_decoder(silent_stream(3, header))
    assert decoder.sample_rate == 44100
    pcm = decoder.read()
    assert len(pcm) == 3 * FRAME_PCM_BYTES
    assert not any(pcm)
    assert decoder.tell() == len(pcm)


def test_nonzero_frame():
    """Test count1 values reach the output and mono is duplicated."""
    writer = BitWriter()
    writer.write(0, 9 + 5 + 4)
    write_granule(writer, part2_3_length=8, global_gain=210, count1table_select=1)
    write_granule(writer)
    frame = MONO_HEADER + writer.to_bytes(17) + bytes(396)
    pcm = new_decoder(io.BytesIO(frame)).read()
    samples = np.frombuffer(pcm, dtype='<i2').reshape(-1, 2)
    assert len(samples) == FRAME_PCM_BYTES // 4 == 1152
    assert samples.any()
    np.testing.assert_array_equal(samples[:, 0], samples[:, 1])


def test_encoded_stream_matches_direct_synthesis():
    """Test Huffman coded frames, one of them through the reservoir, against direct-form synthesis."""
    decoder = new_decoder(io.BytesIO(tone_stream(3)))
    assert decoder.sample_rate == 44100
    pcm = decoder.read()
    assert len(pcm) == 3 * FRAME_PCM_BYTES
    samples = np.frombuffer(pcm, dtype='<i2').reshape(-1, 2).astype(np.float64)
    expected = reference_decode(3)
    # Every 32nd sample reads the window at its block starts
    assert np.abs(expected[::32]).max() > 50
    np.testing.assert_allclose(samples, expected, atol=1.0)


def test_encoded_stream_seek_replays_identically():
    """Test rewinding an encoded stream reproduces the same PCM."""
    decoder = new_decoder(io.BytesIO(tone_stream(3)))
    everything = decoder.read()
    assert any(everything)
    assert decoder.length() == 3 * FRAME_PCM_BYTES
    assert decoder.seek(0) == 0
    assert decoder.read() == everything
    decoder.seek(2 * FRAME_PCM_BYTES)
    assert decoder.read() == everything[2 * FRAME_PCM_BYTES:]


def test_garbage_before_first_frame_is_skipped():
    """Test the decoder resynchronizes on the frame sync word."""
    data = b'\x00\x12\x34' + silent_frame() * 2
    pcm = new_decoder(io.BytesIO(data)).read()
    assert len(pcm) == 2 * FRAME_PCM_BYTES


def test_length():
    """Test length counts frames without disturbing the position."""
    decoder = new_decoder(silent_stream(4))
    first = decoder.read(100)
    assert decoder.length() == 4 * FRAME_PCM_BYTES
    assert len(first) == 100
    assert len(decoder.read()) == 4 * FRAME_PCM_BYTES - 100


def test_seek_rewinds_and_aligns():
    """Test seeking decodes again from the start and aligns to samples."""
    decoder = new_decoder(silent_stream(3))
    everything = decoder.read()
    assert decoder.seek(0) == 0
    assert decoder.read() == everything
    assert decoder.seek(FRAME_PCM_BYTES + 1) == FRAME_PCM_BYTES
    assert len(decoder.read()) == 2 * FRAME_PCM_BYTES


def test_seek_relative_to_end():
    """Test SEEK_END uses the stream length."""
    decoder = new_decoder(silent_stream(2))
    assert decoder.seek(-4, io.SEEK_END) == 2 * FRAME_PCM_BYTES - 4
    assert len(decoder.read()) == 4


def test_non_seekable_source():
    """Test unseekable sources decode but cannot seek or report length."""
    decoder = new_decoder(NonSeekable(silent_frame() * 2))
    assert decoder.length() == -1
    with pytest.raises(io.UnsupportedOperation):
        decoder.seek(0)
    assert len(decoder.read()) == 2 * FRAME_PCM_BYTES


@pytest.mark.parametrize("data,error", [
    (b'', InvalidHeaderError),
    (b'\x00' * 64, InvalidHeaderError),
    (bytes([0xFF, 0xFB, 0xF0, 0x00]) + bytes(100), InvalidHeaderError),
    (bytes([0xFF, 0xFF, 0x90, 0x00]) + bytes(100), UnsupportedLayerError),
    (STEREO_HEADER + bytes(100), UnexpectedEOFError),
])
def test_decoder_errors(data, error):
    """Test failures while reading the first frame."""
    with pytest.raises(error):
        new_decoder(io.BytesIO(data))


def test_close_closes_source():
    """Test closing the decoder closes its source."""
    source = silent_stream(1)
    decoder = new_decoder(source)
    decoder.close()
    assert source.closed
    with pytest.raises(ValueError):
        decoder.read()


def test_decode_file(tmp_path):
    """Test decoding a whole file from disk."""
    path = tmp_path / "silence.mp3"
    path.write_bytes(silent_frame() * 2)
    pcm, rate = decode_file(path)
    assert rate == 44100
    assert len(pcm) == 2 * FRAME_PCM_BYTES
