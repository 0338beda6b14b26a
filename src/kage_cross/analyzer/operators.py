"""
Typing rules for operators and assignments.

Untyped constants (number literals and expressions folded from them) carry
the NONE type until a context gives them one. ``resolve_untyped_consts``
converts the untyped side of a binary expression to the kind the other
side demands, then ``type_from_binary_op`` decides the result type.
"""

from typing import Optional, Tuple

from ..ir import constant as C
from ..ir import types as T
from ..ir.constant import Constant, ConstKind
from ..ir.program import COMPARISON_OPS, ConstType, Op
from ..ir.types import BasicType, Type

_SHIFT_OPS = (Op.LEFT_SHIFT, Op.RIGHT_SHIFT)
_BIT_OPS = (Op.AND, Op.OR, Op.XOR)
_ORDER_OPS = (Op.LESS_THAN, Op.LESS_THAN_EQUAL, Op.GREATER_THAN, Op.GREATER_THAN_EQUAL)


def is_int_type(t: Type) -> bool:
    return t.main == BasicType.INT or t.is_int_vector()


def is_float_type(t: Type) -> bool:
    return t.main == BasicType.FLOAT or t.is_float_vector() or t.is_matrix()


def default_type_of(c: Constant) -> Type:
    """Type an untyped constant gets when nothing else decides."""
    return {
        ConstKind.BOOL: T.BOOL,
        ConstKind.INT: T.INT,
        ConstKind.FLOAT: T.FLOAT,
    }[c.kind]


def const_type_of(t: Type) -> ConstType:
    return {
        BasicType.BOOL: ConstType.BOOL,
        BasicType.INT: ConstType.INT,
        BasicType.FLOAT: ConstType.FLOAT,
    }.get(t.main, ConstType.NONE)


def convert_constant(c: Constant, t: Type) -> Optional[Constant]:
    """
    Convert a constant for use as a value of scalar type ``t``.

    Returns None when the value is not representable. Non-scalar targets
    leave the constant untouched.
    """
    if t.main == BasicType.BOOL:
        return c if c.kind == ConstKind.BOOL else None
    if t.main == BasicType.INT:
        return C.to_int(c)
    if t.main == BasicType.FLOAT:
        return C.to_float(c)
    return c


def can_assign(lt: Type, rt: Type, rc: Optional[Constant]) -> bool:
    """Whether a value of type ``rt`` (constant ``rc`` if any) fits ``lt``."""
    if lt == rt:
        return True
    if rc is None:
        return False
    if lt.main == BasicType.BOOL:
        return rc.kind == ConstKind.BOOL
    if lt.main == BasicType.INT:
        return C.to_int(rc) is not None
    if lt.main == BasicType.FLOAT:
        return C.to_float(rc) is not None
    return False


def resolve_untyped_consts(op: Op, lhs: Optional[Constant], rhs: Optional[Constant],
                           lhst: Type, rhst: Type) -> Tuple[Optional[Constant], Optional[Constant], bool]:
    """
    Convert untyped constant operands toward the other operand's kind.

    Returns:
        (lhs, rhs, ok) with the possibly converted constants
    """
    lnone = lhst.main == BasicType.NONE
    rnone = rhst.main == BasicType.NONE

    if lnone and rnone:
        if lhs is None or rhs is None:
            return lhs, rhs, True
        if op in _SHIFT_OPS:
            # The shift count never changes the kind of the shifted value
            return lhs, rhs, True
        if lhs.kind == rhs.kind:
            return lhs, rhs, True
        if lhs.kind == ConstKind.BOOL or rhs.kind == ConstKind.BOOL:
            return None, None, False
        if lhs.kind == ConstKind.FLOAT and C.to_float(rhs) is not None:
            return lhs, C.to_float(rhs), True
        if rhs.kind == ConstKind.FLOAT and C.to_float(lhs) is not None:
            return C.to_float(lhs), rhs, True
        return None, None, False

    if lnone and lhs is not None:
        converted = _convert_toward(op, lhs, rhst, shifted=False)
        if converted is None:
            return None, None, False
        return converted, rhs, True

    if rnone and rhs is not None:
        converted = _convert_toward(op, rhs, lhst, shifted=op in _SHIFT_OPS)
        if converted is None:
            return None, None, False
        return lhs, converted, True

    return lhs, rhs, True


def _convert_toward(op: Op, c: Constant, other: Type, shifted: bool) -> Optional[Constant]:
    if shifted:
        # A shift count is an integer whatever the shifted type is
        v = C.to_int(c)
        return v if v is not None and v.value >= 0 else None
    if op in _SHIFT_OPS:
        return C.to_int(c)
    if is_float_type(other):
        return C.to_float(c)
    if is_int_type(other):
        return C.to_int(c)
    if other.main == BasicType.BOOL:
        return c if c.kind == ConstKind.BOOL else None
    return None


def type_from_binary_op(op: Op, lhst: Type, rhst: Type,
                        lhs: Optional[Constant], rhs: Optional[Constant]) -> Optional[Type]:
    """
    Result type of ``lhs op rhs``, or None when the operands don't match.

    Constants have already been resolved, so NONE on both sides means an
    untyped constant expression whose result stays untyped.
    """
    lnone = lhst.main == BasicType.NONE
    rnone = rhst.main == BasicType.NONE

    if op in (Op.AND_AND, Op.OR_OR):
        if lnone and rnone:
            ok = lhs is not None and rhs is not None and lhs.kind == rhs.kind == ConstKind.BOOL
            return T.BOOL if ok else None
        if lhst.main == BasicType.BOOL and rhst.main == BasicType.BOOL:
            return T.BOOL
        return None

    if op in COMPARISON_OPS or op in (Op.VECTOR_EQUAL, Op.VECTOR_NOT_EQUAL):
        return _comparison_type(op, lhst, rhst, lhs, rhs)

    if lnone and rnone:
        if lhs is None or rhs is None:
            return None
        if not lhs.is_number() or not rhs.is_number():
            return None
        if op in (Op.MOD,) + _BIT_OPS:
            return T.NONE if lhs.kind == rhs.kind == ConstKind.INT else None
        if op in _SHIFT_OPS:
            return T.NONE if lhs.is_integral() and rhs.is_integral() else None
        return T.NONE

    if op in _SHIFT_OPS:
        if not is_int_type(lhst):
            return None
        if rhst.main == BasicType.INT:
            return lhst
        if rhst.is_int_vector() and rhst == lhst:
            return lhst
        return None

    if op in _BIT_OPS or op == Op.MOD:
        if not is_int_type(lhst) or not is_int_type(rhst):
            return None
        if lhst == rhst:
            return lhst
        if lhst.main == BasicType.INT:
            return rhst
        if rhst.main == BasicType.INT:
            return lhst
        return None

    if lhst.main in (BasicType.BOOL, BasicType.ARRAY, BasicType.TEXTURE, BasicType.STRUCT):
        return None
    if rhst.main in (BasicType.BOOL, BasicType.ARRAY, BasicType.TEXTURE, BasicType.STRUCT):
        return None

    if lhst == rhst:
        if op == Op.DIV and lhst.is_matrix():
            return None
        return lhst

    if op == Op.MATRIX_MUL:
        if lhst.is_matrix() and rhst.main == BasicType.FLOAT:
            return lhst
        if lhst.main == BasicType.FLOAT and rhst.is_matrix():
            return rhst
        n = lhst.matrix_size() or rhst.matrix_size()
        v = T.float_vector_of(n)
        if lhst.is_matrix() and rhst == v:
            return v
        if rhst.is_matrix() and lhst == v:
            return v
        return None

    if lhst.is_matrix() or rhst.is_matrix():
        # Only a matrix divided by a float is left besides multiplication
        if op == Op.DIV and lhst.is_matrix() and rhst.main == BasicType.FLOAT:
            return lhst
        return None

    if lhst.main == BasicType.FLOAT and rhst.is_float_vector():
        return rhst
    if rhst.main == BasicType.FLOAT and lhst.is_float_vector():
        return lhst
    if lhst.main == BasicType.INT and rhst.is_int_vector():
        return rhst
    if rhst.main == BasicType.INT and lhst.is_int_vector():
        return lhst
    return None


def _comparison_type(op: Op, lhst: Type, rhst: Type,
                     lhs: Optional[Constant], rhs: Optional[Constant]) -> Optional[Type]:
    if lhst.is_matrix() or rhst.is_matrix():
        return None
    lnone = lhst.main == BasicType.NONE
    rnone = rhst.main == BasicType.NONE

    if op in (Op.VECTOR_EQUAL, Op.VECTOR_NOT_EQUAL):
        if lhst.is_vector() and lhst == rhst:
            return T.BOOL
        return None

    if lnone and rnone:
        if lhs is None or rhs is None:
            return None
        if op in _ORDER_OPS and not (lhs.is_number() and rhs.is_number()):
            return None
        if (lhs.kind == ConstKind.BOOL) != (rhs.kind == ConstKind.BOOL):
            return None
        return T.BOOL

    if lhst != rhst:
        return None
    if op in _ORDER_OPS and not lhst.is_numeric_scalar():
        return None
    if not lhst.is_scalar():
        return None
    return T.BOOL
