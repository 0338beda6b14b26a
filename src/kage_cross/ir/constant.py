"""
Arbitrary-precision constants for constant folding.

Number literals in Kage source are untyped until a context gives them a
type. Their values are kept exact: integers as Python ints and reals as
``fractions.Fraction``, so ``0.1 + 0.2 == 0.3`` folds exactly and large
integer expressions never overflow during folding.

Three kinds exist: BOOL, INT and FLOAT. Mixed INT/FLOAT arithmetic
promotes to FLOAT. Integer division is requested explicitly since the
``/`` operator on two untyped integer literals yields an exact rational.
"""

import enum
import math
import re
from dataclasses import dataclass
from fractions import Fraction
from typing import Optional, Union


class ConstKind(enum.Enum):
    BOOL = 'bool'
    INT = 'int'
    FLOAT = 'float'


@dataclass(frozen=True)
class Constant:
    """
    A folded constant value.

    Attributes:
        kind: BOOL, INT or FLOAT
        value: bool, int, or Fraction matching the kind
    """
    kind: ConstKind
    value: Union[bool, int, Fraction]

    def __str__(self) -> str:
        if self.kind == ConstKind.BOOL:
            return 'true' if self.value else 'false'
        if self.kind == ConstKind.INT:
            return str(self.value)
        f = float(self.value)
        if f == math.floor(f) and abs(f) < 1e21:
            return str(int(f))
        return f"{f:.6g}"

    def is_number(self) -> bool:
        return self.kind in (ConstKind.INT, ConstKind.FLOAT)

    def is_integral(self) -> bool:
        """True when the value is a number with no fractional part."""
        if self.kind == ConstKind.INT:
            return True
        if self.kind == ConstKind.FLOAT:
            return Fraction(self.value).denominator == 1
        return False

    def as_float(self) -> float:
        return float(self.value)


def make_bool(v: bool) -> Constant:
    return Constant(ConstKind.BOOL, bool(v))


def make_int(v: int) -> Constant:
    return Constant(ConstKind.INT, int(v))


def make_float(v) -> Constant:
    return Constant(ConstKind.FLOAT, Fraction(v))


# ============================================================================
# Literals
# ============================================================================

_LEGACY_OCTAL = re.compile(r'^0[0-7]+$')


def parse_int_literal(text: str) -> Constant:
    """Parse an integer literal (decimal, 0x, 0o, 0b, legacy octal)."""
    s = text.replace('_', '')
    if _LEGACY_OCTAL.match(s):
        return make_int(int(s, 8))
    return make_int(int(s, 0))


def parse_float_literal(text: str) -> Constant:
    """Parse a float literal exactly (decimal or hexadecimal mantissa)."""
    s = text.replace('_', '')
    if s[:2].lower() == '0x':
        return make_float(Fraction(float.fromhex(s)))
    return make_float(Fraction(s))


# ============================================================================
# Conversions
# ============================================================================

def to_int(c: Constant) -> Optional[Constant]:
    """Convert to an INT constant, or None when not exactly representable."""
    if c.kind == ConstKind.INT:
        return c
    if c.kind == ConstKind.FLOAT and c.is_integral():
        return make_int(int(c.value))
    return None


def to_float(c: Constant) -> Optional[Constant]:
    """Convert to a FLOAT constant, or None for booleans."""
    if c.kind == ConstKind.FLOAT:
        return c
    if c.kind == ConstKind.INT:
        return make_float(c.value)
    return None


def truncate_to_int(c: Constant) -> Constant:
    """int(x) semantics for a typed float value: truncation toward zero."""
    return make_int(math.trunc(c.value))


# ============================================================================
# Operations
# ============================================================================

def _promote(x: Constant, y: Constant):
    if x.kind == ConstKind.FLOAT or y.kind == ConstKind.FLOAT:
        return ConstKind.FLOAT, Fraction(x.value), Fraction(y.value)
    return ConstKind.INT, x.value, y.value


def _trunc_div(a: int, b: int) -> int:
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


def binary_op(x: Constant, op: str, y: Constant, integer_division: bool = False) -> Constant:
    """
    Fold ``x op y``.

    Raises:
        ZeroDivisionError: On division or remainder by zero
        ValueError: When the operator does not apply to the operand kinds
    """
    if op in ('&&', '||'):
        if x.kind != ConstKind.BOOL or y.kind != ConstKind.BOOL:
            raise ValueError(f"operator {op} not defined on {x} and {y}")
        if op == '&&':
            return make_bool(x.value and y.value)
        return make_bool(x.value or y.value)

    if not x.is_number() or not y.is_number():
        raise ValueError(f"operator {op} not defined on {x} and {y}")

    kind, a, b = _promote(x, y)
    if op == '+':
        r = a + b
    elif op == '-':
        r = a - b
    elif op == '*':
        r = a * b
    elif op == '/':
        if b == 0:
            raise ZeroDivisionError("division by zero")
        if kind == ConstKind.INT and integer_division:
            return make_int(_trunc_div(a, b))
        return make_float(Fraction(a) / Fraction(b))
    elif op in ('%', '&', '|', '^', '&^'):
        if kind != ConstKind.INT:
            raise ValueError(f"operator {op} not defined on {x} and {y}")
        if op == '%':
            if b == 0:
                raise ZeroDivisionError("division by zero")
            r = a - b * _trunc_div(a, b)
        elif op == '&':
            r = a & b
        elif op == '|':
            r = a | b
        elif op == '^':
            r = a ^ b
        else:
            r = a & ~b
    else:
        raise ValueError(f"unexpected operator: {op}")
    if kind == ConstKind.INT:
        return make_int(r)
    return make_float(r)


def shift(x: Constant, op: str, s: int) -> Constant:
    """Fold ``x << s`` or ``x >> s`` for an integral x."""
    xi = to_int(x)
    if xi is None or s < 0:
        raise ValueError(f"invalid shift: {x} {op} {s}")
    if op == '<<':
        r = xi.value << s
    else:
        r = xi.value >> s
    if x.kind == ConstKind.FLOAT:
        return make_float(r)
    return make_int(r)


def compare(x: Constant, op: str, y: Constant) -> bool:
    """Fold a comparison into a Python bool."""
    if x.kind == ConstKind.BOOL or y.kind == ConstKind.BOOL:
        if x.kind != y.kind or op not in ('==', '!='):
            raise ValueError(f"cannot compare {x} {op} {y}")
        return (x.value == y.value) == (op == '==')
    _, a, b = _promote(x, y)
    return {
        '==': a == b,
        '!=': a != b,
        '<': a < b,
        '<=': a <= b,
        '>': a > b,
        '>=': a >= b,
    }[op]


def unary_op(op: str, x: Constant) -> Constant:
    """Fold ``+x``, ``-x``, ``!x`` or ``^x``."""
    if op == '!':
        if x.kind != ConstKind.BOOL:
            raise ValueError(f"operator ! not defined on {x}")
        return make_bool(not x.value)
    if not x.is_number():
        raise ValueError(f"operator {op} not defined on {x}")
    if op == '+':
        return x
    if op == '-':
        return Constant(x.kind, -x.value)
    if op == '^' and x.kind == ConstKind.INT:
        return make_int(~x.value)
    raise ValueError(f"operator {op} not defined on {x}")


def sign(x: Constant) -> int:
    if x.value > 0:
        return 1
    if x.value < 0:
        return -1
    return 0


def to_number_literal(c: Constant) -> str:
    """Render a constant as a C-family literal shared by all back ends."""
    if c.kind == ConstKind.BOOL:
        return 'true' if c.value else 'false'
    if c.kind == ConstKind.INT:
        return str(c.value)
    x = float(c.value)
    if math.floor(x) == x:
        return f"{int(x)}.0"
    return f"{x:.10e}"
