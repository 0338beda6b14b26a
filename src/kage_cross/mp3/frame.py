"""
Layer III granule processing, from Huffman values to 16-bit PCM.

Per granule the stages run in this order: requantize and reorder every
channel, stereo processing on the channel pair, then per channel the
antialias butterflies, hybrid (IMDCT) synthesis, frequency inversion and
polyphase subband synthesis. The overlap halves and the synthesis V
vectors are the only state carried between granules.
"""

import numpy as np

from .header import FrameHeader, Mode, MODE_EXT_INTENSITY, MODE_EXT_MS
from .maindata import GRANULE_SAMPLES, MainData
from .sideinfo import GranuleInfo, SideInfo
from .tables import (
    ANTIALIAS_CA,
    ANTIALIAS_CS,
    IMDCT_LONG,
    IMDCT_SHORT,
    IMDCT_WINDOWS,
    IS_RATIOS,
    POW43,
    PRETAB,
    SF_BAND_INDICES_LONG,
    SF_BAND_INDICES_SHORT,
    SYNTH_MATRIX,
    SYNTH_U_INDICES,
    SYNTH_WINDOW,
)

# Bytes of interleaved stereo 16-bit PCM per frame
FRAME_PCM_BYTES = 2 * GRANULE_SAMPLES * 2 * 2


class SynthesisState:
    """Per-channel state carried across granules and frames."""

    def __init__(self):
        self.reset()

    def reset(self):
        self.store = np.zeros((2, 32, 18))
        self.v = np.zeros((2, 1024))


# ============================================================================
# Requantization and reordering
# ============================================================================

def requantize(samples: np.ndarray, g: GranuleInfo, scalefac_l: np.ndarray,
               scalefac_s: np.ndarray, sampling_frequency: int) -> np.ndarray:
    """Scale Huffman values to frequency lines."""
    magnitude = POW43[np.minimum(np.abs(samples), len(POW43) - 1)]
    xr = np.sign(samples) * magnitude

    sf_mult = 1.0 if g.scalefac_scale else 0.5
    gain = 0.25 * (g.global_gain - 210)
    exponent = np.empty(GRANULE_SAMPLES)

    if g.short_blocks:
        long_end = 36 if g.mixed_block_flag else 0
        first_short = 3 if g.mixed_block_flag else 0
    else:
        long_end = GRANULE_SAMPLES
        first_short = 13

    if long_end:
        sfband_l = SF_BAND_INDICES_LONG[sampling_frequency]
        band_exp = gain - sf_mult * (scalefac_l + g.preflag * PRETAB)
        exponent[:] = np.repeat(band_exp, np.diff(sfband_l))

    sfband_s = SF_BAND_INDICES_SHORT[sampling_frequency]
    for sfb in range(first_short, 13):
        width = sfband_s[sfb + 1] - sfband_s[sfb]
        base = 3 * sfband_s[sfb]
        for win in range(3):
            start = base + win * width
            exponent[start:start + width] = (
                gain - 2.0 * g.subblock_gain[win] - sf_mult * scalefac_s[sfb, win])

    return xr * np.exp2(exponent)


def reorder(xr: np.ndarray, g: GranuleInfo, sampling_frequency: int) -> np.ndarray:
    """Interleave the three windows of short block bands."""
    if not g.short_blocks:
        return xr
    out = xr.copy()
    sfband_s = SF_BAND_INDICES_SHORT[sampling_frequency]
    for sfb in range(3 if g.mixed_block_flag else 0, 13):
        width = sfband_s[sfb + 1] - sfband_s[sfb]
        base = 3 * sfband_s[sfb]
        band = xr[base:base + 3 * width]
        out[base:base + 3 * width] = band.reshape(3, width).T.reshape(-1)
    return out


# ============================================================================
# Stereo
# ============================================================================

def _intensity_ratios(is_pos: int):
    if is_pos == 6:
        return 1.0, 0.0
    ratio = IS_RATIOS[is_pos]
    return ratio / (1.0 + ratio), 1.0 / (1.0 + ratio)


def _intensity(left: np.ndarray, right: np.ndarray, index, is_pos: int):
    # is_pos 7 marks an illegal position, larger values only come from 4-bit slen
    if is_pos >= 7:
        return
    ratio_l, ratio_r = _intensity_ratios(is_pos)
    right[index] = left[index] * ratio_r
    left[index] *= ratio_l


def stereo(header: FrameHeader, xr, g: GranuleInfo, scalefac_l: np.ndarray,
           scalefac_s: np.ndarray, count1, sampling_frequency: int):
    """
    Joint stereo processing of one granule, in place.

    ``g`` and the scalefactors belong to the left channel; ``count1`` is the
    zero region start of both channels.
    """
    if header.mode != Mode.JOINT_STEREO:
        return
    left, right = xr

    if header.mode_extension & MODE_EXT_MS:
        end = max(count1[0], count1[1])
        l, r = left[:end].copy(), right[:end]
        left[:end] = (l + r) / np.sqrt(2.0)
        right[:end] = (l - r) / np.sqrt(2.0)

    if not header.mode_extension & MODE_EXT_INTENSITY:
        return
    boundary = count1[1]
    sfband_l = SF_BAND_INDICES_LONG[sampling_frequency]
    sfband_s = SF_BAND_INDICES_SHORT[sampling_frequency]

    if not g.short_blocks:
        long_bands, first_short = 21, 12
    elif g.mixed_block_flag:
        long_bands, first_short = 8, 3
    else:
        long_bands, first_short = 0, 0

    for sfb in range(long_bands):
        if sfband_l[sfb] >= boundary:
            _intensity(left, right, slice(sfband_l[sfb], sfband_l[sfb + 1]),
                       int(scalefac_l[sfb]))
    for sfb in range(first_short, 12):
        if sfband_s[sfb] * 3 < boundary:
            continue
        width = sfband_s[sfb + 1] - sfband_s[sfb]
        base = 3 * sfband_s[sfb]
        for win in range(3):
            # Windows are interleaved after reordering
            _intensity(left, right, slice(base + win, base + 3 * width, 3),
                       int(scalefac_s[sfb, win]))


# ============================================================================
# Antialias and hybrid synthesis
# ============================================================================

_AA_LOWER = (18 * np.arange(1, 32)[:, None] - 1 - np.arange(8)[None, :])
_AA_UPPER = (18 * np.arange(1, 32)[:, None] + np.arange(8)[None, :])


def antialias(xr: np.ndarray, g: GranuleInfo) -> np.ndarray:
    """Butterflies across the boundaries of adjacent subbands."""
    if g.short_blocks and not g.mixed_block_flag:
        return xr
    limit = 2 if g.short_blocks else 32
    lower = _AA_LOWER[:limit - 1]
    upper = _AA_UPPER[:limit - 1]
    out = xr.copy()
    out[lower] = xr[lower] * ANTIALIAS_CS - xr[upper] * ANTIALIAS_CA
    out[upper] = xr[upper] * ANTIALIAS_CS + xr[lower] * ANTIALIAS_CA
    return out


def _imdct_short(x: np.ndarray) -> np.ndarray:
    """Three 12-point IMDCTs of one subband, overlapped into 36 samples."""
    raw = np.zeros(36)
    for win in range(3):
        y = (IMDCT_SHORT @ x[win::3]) * IMDCT_WINDOWS[2, :12]
        raw[6 * win + 6:6 * win + 18] += y
    return raw


def hybrid_synthesis(xr: np.ndarray, g: GranuleInfo, store: np.ndarray) -> np.ndarray:
    """
    IMDCT and overlap-add of every subband.

    Returns:
        (32, 18) array of subband samples; ``store`` receives the new
        overlap halves
    """
    x = xr.reshape(32, 18)
    out = np.empty((32, 18))
    for sb in range(32):
        if g.win_switch_flag and g.mixed_block_flag and sb < 2:
            block_type = 0
        else:
            block_type = g.block_type
        if block_type == 2:
            raw = _imdct_short(x[sb])
        else:
            raw = (IMDCT_LONG @ x[sb]) * IMDCT_WINDOWS[block_type]
        out[sb] = raw[:18] + store[sb]
        store[sb] = raw[18:]
    return out


def frequency_inversion(subbands: np.ndarray) -> np.ndarray:
    out = subbands.copy()
    out[1::2, 1::2] *= -1.0
    return out


# ============================================================================
# Polyphase synthesis
# ============================================================================

def subband_synthesis(subbands: np.ndarray, v: np.ndarray) -> np.ndarray:
    """
    Polyphase filterbank of one channel and granule.

    ``v`` is updated in place.

    Returns:
        576 int16 samples
    """
    pcm = np.empty(GRANULE_SAMPLES)
    for ss in range(18):
        v[64:] = v[:-64].copy()
        v[:64] = SYNTH_MATRIX @ subbands[:, ss]
        u = v[SYNTH_U_INDICES] * SYNTH_WINDOW
        pcm[ss * 32:(ss + 1) * 32] = u.reshape(16, 32).sum(axis=0)
    return np.clip(pcm * 32767.0, -32767.0, 32767.0).astype(np.int16)


# ============================================================================
# Frame
# ============================================================================

def decode_frame(header: FrameHeader, side_info: SideInfo, main_data: MainData,
                 state: SynthesisState) -> bytes:
    """Decode one frame to 4608 bytes of interleaved stereo PCM."""
    nch = header.channels
    sf = header.sampling_frequency
    pcm = np.empty((2, GRANULE_SAMPLES, 2), dtype=np.int16)
    for gr in range(2):
        granules = side_info.granules[gr]
        xr = []
        for ch in range(nch):
            g = granules[ch]
            values = requantize(main_data.samples[gr][ch], g, main_data.scalefac_l[gr][ch],
                                main_data.scalefac_s[gr][ch], sf)
            xr.append(reorder(values, g, sf))
        if nch == 2:
            stereo(header, xr, granules[0], main_data.scalefac_l[gr][0],
                   main_data.scalefac_s[gr][0], main_data.count1[gr], sf)
        for ch in range(nch):
            g = granules[ch]
            subbands = hybrid_synthesis(antialias(xr[ch], g), g, state.store[ch])
            samples = subband_synthesis(frequency_inversion(subbands), state.v[ch])
            pcm[gr, :, ch] = samples
        if nch == 1:
            pcm[gr, :, 1] = pcm[gr, :, 0]
    return pcm.astype('<i2').tobytes()
