"""
HLSL constant buffer packing.

Offsets are in 32-bit DWORDs within a single ``cbuffer``. A register is
four DWORDs (16 bytes). Packing rules:

- Scalars take one DWORD wherever the head is.
- Two-component vectors move to the next register when fewer than two
  DWORDs remain in the current one.
- Three- and four-component vectors, matrices and arrays always start on
  a register boundary.
- Matrix columns occupy one register each; the last column may end
  mid-register (mat2: 6, mat3: 11, mat4: 16 DWORDs).
- Array elements are padded to a register stride except the last.

``adjust_uniforms`` turns the tightly packed, column-major upload into
that layout, transposing matrices because the HLSL back end swaps the
operands of matrix products.
"""

from typing import List, Sequence

from .types import Type, BasicType

BOUNDARY_IN_DWORDS = 4


def _align(x: int) -> int:
    if x == 0:
        return 0
    return ((x - 1) // BOUNDARY_IN_DWORDS + 1) * BOUNDARY_IN_DWORDS


def _matrix_dwords(n: int) -> int:
    return BOUNDARY_IN_DWORDS * (n - 1) + n


def _element_stride(t: Type) -> int:
    """DWORDs between two consecutive array elements."""
    if t.is_matrix():
        return BOUNDARY_IN_DWORDS * t.matrix_size()
    return BOUNDARY_IN_DWORDS


def _packed_size(t: Type) -> int:
    """DWORDs occupied from the start offset, trailing padding excluded."""
    if t.main in (BasicType.BOOL, BasicType.INT, BasicType.FLOAT):
        return 1
    if t.is_vector():
        return t.vector_element_count()
    if t.is_matrix():
        return _matrix_dwords(t.matrix_size())
    if t.main == BasicType.ARRAY:
        if t.length == 0:
            return 0
        return _element_stride(t.elem) * (t.length - 1) + _packed_size(t.elem)
    raise ValueError(f"unexpected uniform type: {t}")


def uniform_offsets_in_dwords(uniforms: Sequence[Type]) -> List[int]:
    """Compute the DWORD offset of every uniform."""
    offsets = []
    head = 0
    for t in uniforms:
        if t.main in (BasicType.VEC2, BasicType.IVEC2):
            if head % BOUNDARY_IN_DWORDS >= 3:
                head = _align(head)
        elif not t.is_scalar():
            head = _align(head)
        offsets.append(head)
        head += _packed_size(t)
    return offsets


def _copy_matrix(dst: List[int], at: int, src: Sequence[int], n: int):
    # Column-major in, one transposed row per register out.
    for i in range(n):
        for j in range(n):
            dst[at + i * BOUNDARY_IN_DWORDS + j] = src[j * n + i]


def adjust_uniforms(types: Sequence[Type], offsets: Sequence[int], values: Sequence[int]) -> List[int]:
    """
    Repack a flat uniform upload into the constant buffer layout.

    Args:
        types: Uniform types
        offsets: Offsets from ``uniform_offsets_in_dwords``
        values: DWORDs of every uniform, tightly packed in order, matrices
            column-major

    Returns:
        DWORD list laid out per ``offsets``, padding filled with zero
    """
    size = 0
    for t, offset in zip(types, offsets):
        size = max(size, offset + _packed_size(t))
    out = [0] * size

    idx = 0
    for t, offset in zip(types, offsets):
        if t.main == BasicType.ARRAY:
            elem = t.elem
            stride = _element_stride(elem)
            count = elem.dword_count()
            for k in range(t.length):
                chunk = values[idx:idx + count]
                at = offset + k * stride
                if elem.is_matrix():
                    _copy_matrix(out, at, chunk, elem.matrix_size())
                else:
                    out[at:at + count] = chunk
                idx += count
            continue

        count = t.dword_count()
        chunk = values[idx:idx + count]
        if t.is_matrix():
            _copy_matrix(out, offset, chunk, t.matrix_size())
        else:
            out[offset:offset + count] = chunk
        idx += count
    return out
