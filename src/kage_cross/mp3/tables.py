"""
Fixed tables of the MPEG-1 Layer III decoder.

Everything here is computed once at import and never modified.
"""

import numpy as np

# Bits per second by bitrate_index, Layer III
BITRATES = (
    0, 32000, 40000, 48000, 56000, 64000, 80000, 96000,
    112000, 128000, 160000, 192000, 224000, 256000, 320000,
)

SAMPLING_FREQUENCIES = (44100, 48000, 32000)

# Scalefactor band boundaries per sampling frequency. Short boundaries are
# per window and have to be multiplied by 3 to index a granule.
SF_BAND_INDICES_LONG = (
    (0, 4, 8, 12, 16, 20, 24, 30, 36, 44, 52, 62, 74, 90, 110, 134, 162, 196, 238, 288, 342, 418, 576),
    (0, 4, 8, 12, 16, 20, 24, 30, 36, 42, 50, 60, 72, 88, 106, 128, 156, 190, 230, 276, 330, 384, 576),
    (0, 4, 8, 12, 16, 20, 24, 30, 36, 44, 54, 66, 82, 102, 126, 156, 194, 240, 296, 364, 448, 550, 576),
)
SF_BAND_INDICES_SHORT = (
    (0, 4, 8, 12, 16, 22, 30, 40, 52, 66, 84, 106, 136, 192),
    (0, 4, 8, 12, 16, 22, 28, 38, 50, 64, 80, 100, 126, 192),
    (0, 4, 8, 12, 16, 22, 30, 42, 58, 78, 104, 138, 180, 192),
)

# (slen1, slen2) by scalefac_compress
SCALEFAC_SIZES = (
    (0, 0), (0, 1), (0, 2), (0, 3), (3, 0), (1, 1), (1, 2), (1, 3),
    (2, 1), (2, 2), (2, 3), (3, 1), (3, 2), (3, 3), (4, 2), (4, 3),
)

PRETAB = np.array([0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 1, 1, 1, 1, 2, 2, 3, 3, 3, 2, 0])

# tan(is_pos * pi / 12) for is_pos 0..5
IS_RATIOS = np.tan(np.arange(6) * np.pi / 12)

# |n|^(4/3) for every value the Huffman decoder can produce
POW43 = np.arange(8207 + 1, dtype=np.float64) ** (4.0 / 3.0)

# ============================================================================
# Antialias butterflies
# ============================================================================

_CI = np.array([-0.6, -0.535, -0.33, -0.185, -0.095, -0.041, -0.0142, -0.0037])
ANTIALIAS_CS = 1.0 / np.sqrt(1.0 + _CI * _CI)
ANTIALIAS_CA = _CI / np.sqrt(1.0 + _CI * _CI)

# ============================================================================
# IMDCT
# ============================================================================


def _imdct_matrix(n: int) -> np.ndarray:
    """cos(pi/(2n) * (2p + 1 + n/2) * (2m + 1)) for p < n, m < n/2."""
    p = np.arange(n)[:, None]
    m = np.arange(n // 2)[None, :]
    return np.cos(np.pi / (2 * n) * (2 * p + 1 + n / 2) * (2 * m + 1))


IMDCT_LONG = _imdct_matrix(36)
IMDCT_SHORT = _imdct_matrix(12)


def _windows() -> np.ndarray:
    w = np.zeros((4, 36))
    i = np.arange(36)
    # Normal
    w[0] = np.sin(np.pi / 36 * (i + 0.5))
    # Start
    w[1, :18] = np.sin(np.pi / 36 * (i[:18] + 0.5))
    w[1, 18:24] = 1.0
    w[1, 24:30] = np.sin(np.pi / 12 * (i[24:30] - 18 + 0.5))
    # Short, 12 taps per window
    w[2, :12] = np.sin(np.pi / 12 * (i[:12] + 0.5))
    # Stop
    w[3, 6:12] = np.sin(np.pi / 12 * (i[6:12] - 6 + 0.5))
    w[3, 12:18] = 1.0
    w[3, 18:] = np.sin(np.pi / 36 * (i[18:] + 0.5))
    return w


IMDCT_WINDOWS = _windows()

# ============================================================================
# Polyphase synthesis
# ============================================================================

SYNTH_MATRIX = np.cos(
    (16 + np.arange(64)[:, None]) * (2 * np.arange(32)[None, :] + 1) * np.pi / 64)

# First half and center of the synthesis window in units of 2^-16. The
# window is the symmetric prototype filter with the sign flipped in every
# odd block of 64 taps, so D[512 - i] == -D[i] except at block starts,
# where D[512 - i] == D[i].
_SYNTH_WINDOW_HALF = (
    0, -1, -1, -1, -1, -1, -1, -2, -2, -2, -2, -3,
    -3, -4, -4, -5, -5, -6, -7, -7, -8, -9, -10, -11,
    -13, -14, -16, -17, -19, -21, -24, -26, -29, -31, -35, -38,
    -41, -45, -49, -53, -58, -63, -68, -73, -79, -85, -91, -97,
    -104, -111, -117, -125, -132, -139, -147, -154, -161, -169, -176, -183,
    -190, -196, -202, -208, 213, 218, 222, 225, 227, 228, 228, 227,
    224, 221, 215, 208, 200, 189, 177, 163, 146, 127, 106, 83,
    57, 29, -2, -36, -72, -111, -153, -197, -244, -294, -347, -401,
    -459, -519, -581, -645, -711, -779, -848, -919, -991, -1064, -1137, -1210,
    -1283, -1356, -1428, -1498, -1567, -1634, -1698, -1759, -1817, -1870, -1919, -1962,
    -2001, -2032, -2057, -2075, -2085, -2087, -2080, -2063, 2037, 2000, 1952, 1893,
    1822, 1739, 1644, 1535, 1414, 1280, 1131, 970, 794, 605, 402, 185,
    -45, -288, -545, -814, -1095, -1388, -1692, -2006, -2330, -2663, -3004, -3351,
    -3705, -4063, -4425, -4788, -5153, -5517, -5879, -6237, -6589, -6935, -7271, -7597,
    -7910, -8209, -8491, -8755, -8998, -9219, -9416, -9585, -9727, -9838, -9916, -9959,
    -9966, -9935, -9863, -9750, -9592, -9389, -9139, -8840, -8492, -8092, -7640, -7134,
    6574, 5959, 5288, 4561, 3776, 2935, 2037, 1082, 70, -998, -2122, -3300,
    -4533, -5818, -7154, -8540, -9975, -11455, -12980, -14548, -16155, -17799, -19478, -21189,
    -22929, -24694, -26482, -28289, -30112, -31947, -33791, -35640, -37489, -39336, -41176, -43006,
    -44821, -46617, -48390, -50137, -51853, -53534, -55178, -56778, -58333, -59838, -61289, -62684,
    -64019, -65290, -66494, -67629, -68692, -69679, -70590, -71420, -72169, -72835, -73415, -73908,
    -74313, -74630, -74856, -74992, 75038,
)


def _synth_window() -> np.ndarray:
    half = np.array(_SYNTH_WINDOW_HALF, dtype=np.float64) / 65536.0
    d = np.zeros(512)
    d[:257] = half
    d[257:] = -half[255:0:-1]
    for i in (64, 128, 192):
        d[512 - i] = half[i]
    return d


SYNTH_WINDOW = _synth_window()

# Positions of V copied into U: 32 from every 128 block, then 32 more 96
# entries further on
_blocks = np.arange(8)[:, None] * 128
_j = np.arange(32)[None, :]
SYNTH_U_INDICES = np.concatenate([_blocks + _j, _blocks + _j + 96], axis=1).reshape(512)
del _blocks, _j
