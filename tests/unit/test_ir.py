"""
Unit tests for the shader IR: types, folded constants, uniform packing and
program queries.

Tests:
- Type shapes and DWORD counts
- Constant folding helpers and literal rendering
- HLSL constant buffer offsets and the uniform repacking
- Source hash
- Reachable functions and uniform filtering
"""

from fractions import Fraction

import pytest

from kage_cross.ir import constant as C
from kage_cross.ir import types as T
from kage_cross.ir.constant import ConstKind
from kage_cross.ir.packing import adjust_uniforms, uniform_offsets_in_dwords
from kage_cross.ir.program import (
    Assign, Block, BlockStmt, Call, ExprStmt, Func, FunctionExpr, LocalVariable, Program,
    Return, UniformVariable, calc_source_hash, is_valid_swizzling,
)
from kage_cross.ir.types import BasicType, Type


def block_of(*stmts, local_vars=None, offset=0):
    """Helper: build a block from statements."""
    return Block(local_vars=list(local_vars or []), local_var_index_offset=offset, stmts=list(stmts))


def call_func(index):
    """Helper: expression statement calling user function ``index``."""
    return ExprStmt(Call(FunctionExpr(index), ()))


# ============================================================================
# 1. Types
# ============================================================================

@pytest.mark.parametrize("t,count", [
    (T.FLOAT, 1),
    (T.BOOL, 1),
    (T.VEC3, 3),
    (T.IVEC4, 4),
    (T.MAT2, 4),
    (T.MAT4, 16),
    (Type.array(T.VEC2, 3), 6),
])
def test_dword_count(t, count):
    """Test tightly packed sizes of uniform types."""
    assert t.dword_count() == count


def test_array_type_string():
    """Test arrays print in Go order."""
    assert str(Type.array(T.VEC4, 8)) == '[8]vec4'


def test_array_type_requires_one_element_type():
    """Test malformed array types are rejected."""
    with pytest.raises(ValueError):
        Type(BasicType.ARRAY, (T.FLOAT, T.INT), 2)


def test_scalar_type_has_no_sub_types():
    """Test only arrays and structs carry sub types."""
    with pytest.raises(ValueError):
        Type(BasicType.VEC2, (T.FLOAT,))


def test_vector_and_matrix_queries():
    """Test element counts and matrix sizes."""
    assert T.VEC3.vector_element_count() == 3
    assert T.MAT3.matrix_size() == 3
    assert T.FLOAT.vector_element_count() == 0
    assert T.vector_of_matrix(T.MAT4) == T.VEC4


@pytest.mark.parametrize("swizzle,valid", [
    ('xyzw', True),
    ('rgb', True),
    ('st', True),
    ('xg', False),
    ('xyzwx', False),
    ('', False),
])
def test_swizzling_sets(swizzle, valid):
    """Test components come from one set and at most four are taken."""
    assert is_valid_swizzling(swizzle) == valid


# ============================================================================
# 2. Constants
# ============================================================================

def test_float_literals_are_exact():
    """Test 0.1 + 0.2 folds to exactly 0.3."""
    x = C.binary_op(C.parse_float_literal('0.1'), '+', C.parse_float_literal('0.2'))
    assert x.value == Fraction(3, 10)


@pytest.mark.parametrize("text,value", [
    ('42', 42),
    ('0x2a', 42),
    ('052', 42),
    ('0b101010', 42),
    ('1_000', 1000),
])
def test_int_literals(text, value):
    """Test integer literal bases."""
    assert C.parse_int_literal(text).value == value


def test_integer_division_truncates_toward_zero():
    """Test typed int division and remainder follow truncation."""
    assert C.binary_op(C.make_int(-7), '/', C.make_int(2), integer_division=True).value == -3
    assert C.binary_op(C.make_int(-7), '%', C.make_int(2)).value == -1


def test_untyped_division_is_exact():
    """Test division without the integer flag yields a rational."""
    x = C.binary_op(C.make_int(1), '/', C.make_int(2))
    assert x.kind == ConstKind.FLOAT
    assert x.value == Fraction(1, 2)


def test_division_by_zero():
    """Test constant division by zero raises."""
    with pytest.raises(ZeroDivisionError):
        C.binary_op(C.make_int(1), '/', C.make_int(0))


def test_to_int_requires_integral_value():
    """Test floats convert to int only when integral."""
    assert C.to_int(C.make_float(3)).value == 3
    assert C.to_int(C.make_float(Fraction(1, 2))) is None


def test_shift_and_bitwise():
    """Test shift and and-not folding."""
    assert C.shift(C.make_int(1), '<<', 4).value == 16
    assert C.binary_op(C.make_int(0b1111), '&^', C.make_int(0b0101)).value == 0b1010


def test_compare():
    """Test constant comparisons."""
    assert C.compare(C.make_int(1), '<', C.make_float(Fraction(3, 2)))
    assert C.compare(C.make_bool(True), '!=', C.make_bool(False))


@pytest.mark.parametrize("c,text", [
    (C.make_int(7), '7'),
    (C.make_float(1), '1.0'),
    (C.make_float(-2), '-2.0'),
    (C.make_float(Fraction(1, 2)), '5.0000000000e-01'),
    (C.make_bool(True), 'true'),
])
def test_number_literal(c, text):
    """Test literal rendering shared by the back ends."""
    assert C.to_number_literal(c) == text


# ============================================================================
# 3. Uniform Packing
# ============================================================================

@pytest.mark.parametrize("types,offsets", [
    ([T.FLOAT, T.VEC3, T.FLOAT, T.VEC4], [0, 4, 7, 8]),
    ([T.FLOAT, T.FLOAT, T.VEC2], [0, 1, 2]),
    ([T.FLOAT, T.FLOAT, T.FLOAT, T.VEC2], [0, 1, 2, 4]),
    ([T.MAT2, T.FLOAT], [0, 6]),
    ([T.FLOAT, T.MAT3, T.FLOAT], [0, 4, 15]),
    ([Type.array(T.FLOAT, 3), T.FLOAT], [0, 9]),
    ([T.FLOAT, Type.array(T.VEC2, 2)], [0, 4]),
])
def test_uniform_offsets(types, offsets):
    """Test constant buffer offsets in DWORDs."""
    assert uniform_offsets_in_dwords(types) == offsets


def test_adjust_uniforms_pads_vectors():
    """Test values move to their register aligned offsets."""
    types = [T.FLOAT, T.VEC3]
    offsets = uniform_offsets_in_dwords(types)
    assert adjust_uniforms(types, offsets, [1, 2, 3, 4]) == [1, 0, 0, 0, 2, 3, 4]


def test_adjust_uniforms_transposes_matrices():
    """Test column-major matrices come out as transposed rows."""
    types = [T.MAT2]
    offsets = uniform_offsets_in_dwords(types)
    # Columns (1, 2) and (3, 4)
    assert adjust_uniforms(types, offsets, [1, 2, 3, 4]) == [1, 3, 0, 0, 2, 4]


def test_adjust_uniforms_array_stride():
    """Test array elements are a register apart."""
    types = [Type.array(T.FLOAT, 2)]
    offsets = uniform_offsets_in_dwords(types)
    assert adjust_uniforms(types, offsets, [5, 6]) == [5, 0, 0, 0, 6]


# ============================================================================
# 4. Program
# ============================================================================

def test_source_hash_is_16_bytes():
    """Test the digest size and whitespace trimming."""
    h = calc_source_hash(b"package main\n")
    assert len(h) == 16
    assert h == calc_source_hash(b"\n  package main  \n\n")
    assert h != calc_source_hash(b"package other")


def test_source_hash_of_empty_source():
    """Test the empty digest is the FNV-1a offset basis."""
    assert calc_source_hash(b"").hex() == '6c62272e07bb014262b821756295c58d'


def test_reachable_funcs():
    """Test transitive calls are found and unrelated functions skipped."""
    f0 = Func(index=0, block=block_of(call_func(1)))
    f1 = Func(index=1, block=block_of(Return()))
    f2 = Func(index=2, block=block_of(Return()))
    program = Program(funcs=[f0, f1, f2], fragment_func=block_of(call_func(0)))
    assert program.reachable_funcs(program.fragment_func) == [f0, f1]


def test_reachable_funcs_handles_recursion():
    """Test call cycles terminate."""
    f0 = Func(index=0)
    f0.block = block_of(call_func(0))
    program = Program(funcs=[f0], fragment_func=block_of(call_func(0)))
    assert program.reachable_funcs(program.fragment_func) == [f0]


def test_filter_uniform_variables():
    """Test uniforms no entry point reads are zeroed."""
    fragment = block_of(
        Assign(LocalVariable(1), UniformVariable(1)),
        local_vars=[T.VEC2], offset=1)
    program = Program(uniforms=[T.FLOAT, T.VEC2, T.FLOAT], fragment_func=fragment)
    values = [1, 2, 3, 4]
    program.filter_uniform_variables(values)
    assert values == [0, 2, 3, 0]


def test_local_variable_type():
    """Test parameter and nested block local lookup."""
    inner = block_of(local_vars=[T.INT], offset=2)
    top = block_of(BlockStmt(inner), local_vars=[T.VEC3], offset=1)
    program = Program(fragment_func=top)
    assert program.local_variable_type(top, top, 0) == T.VEC4
    assert program.local_variable_type(top, top, 1) == T.VEC3
    assert program.local_variable_type(top, inner, 2) == T.INT
