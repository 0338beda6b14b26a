"""
Type checking of builtin function calls.

Constructors (``vec2``, ``mat3``, ``int``...) and the math library share
one entry point, ``_parse_builtin_call``. Untyped constant arguments are
converted in place to the kind the builtin expects before the argument
types are checked, so ``sin(1)`` is ``sin(1.0)`` in the IR.
"""

from typing import List, Optional, Tuple

from ..ir import constant as C
from ..ir import types as T
from ..ir.constant import Constant, ConstKind
from ..ir.program import (
    BuiltinFunc, BuiltinFuncExpr, Call, ConstType, Discard, Expr, NumberExpr,
)
from ..ir.types import BasicType, Type

_FLOAT_VECTOR_CTORS = {
    BuiltinFunc.VEC2: 2, BuiltinFunc.VEC3: 3, BuiltinFunc.VEC4: 4,
}
_INT_VECTOR_CTORS = {
    BuiltinFunc.IVEC2: 2, BuiltinFunc.IVEC3: 3, BuiltinFunc.IVEC4: 4,
}
_MATRIX_CTORS = {
    BuiltinFunc.MAT2: 2, BuiltinFunc.MAT3: 3, BuiltinFunc.MAT4: 4,
}

_THREE_ARGS = (
    BuiltinFunc.CLAMP, BuiltinFunc.MIX, BuiltinFunc.SMOOTHSTEP,
    BuiltinFunc.FACEFORWARD, BuiltinFunc.REFRACT,
)
_TWO_ARGS = (
    BuiltinFunc.ATAN2, BuiltinFunc.POW, BuiltinFunc.MOD, BuiltinFunc.MIN,
    BuiltinFunc.MAX, BuiltinFunc.STEP, BuiltinFunc.DISTANCE, BuiltinFunc.DOT,
    BuiltinFunc.CROSS, BuiltinFunc.REFLECT,
)


def const_of(e: Expr) -> Optional[Constant]:
    """The folded value of a constant expression, None otherwise."""
    if isinstance(e, NumberExpr):
        return e.value
    return None


def resolve_const_kind(args: List[Expr], argts: List[Type]) -> Tuple[Optional[ConstKind], bool]:
    """
    Pick the common numeric kind for a builtin taking mixed arguments.

    Returns:
        (kind or None when undecidable, whether every argument is constant)
    """
    all_consts = all(const_of(a) is not None for a in args)

    if not all_consts:
        for t in argts:
            if t.main == BasicType.NONE:
                continue
            if t.main == BasicType.FLOAT:
                return ConstKind.FLOAT, False
            if t.main == BasicType.INT:
                return ConstKind.INT, False
            return None, False

    kind = None
    for t in argts:
        if t.main == BasicType.INT:
            if kind == ConstKind.FLOAT:
                return None, True
            kind = ConstKind.INT
        elif t.main == BasicType.FLOAT:
            if kind == ConstKind.INT:
                return None, True
            kind = ConstKind.FLOAT
    if kind is not None:
        return kind, True

    # Untyped: max(1.0, 1) is a float
    for a in args:
        if const_of(a).kind == ConstKind.FLOAT:
            return ConstKind.FLOAT, True
    return ConstKind.INT, True


def _types_str(argts: List[Type]) -> str:
    return ', '.join(str(t) for t in argts)


class BuiltinCallMixin:
    """Builtin call checks, mixed into the Compiler."""

    # ------------------------------------------------------------------------
    # Argument conversions
    # ------------------------------------------------------------------------

    def _convert_arg(self, node, args, argts, i, target: Type):
        c = const_of(args[i])
        if target.main == BasicType.INT:
            v = C.to_int(c)
            if v is None:
                self._fail(node, f"cannot convert {c} to type int")
            args[i] = NumberExpr(v, ConstType.INT)
            argts[i] = T.INT
        else:
            v = C.to_float(c)
            if v is None:
                self._fail(node, f"cannot convert {c} to type float")
            args[i] = NumberExpr(v, ConstType.FLOAT)
            argts[i] = T.FLOAT

    def _untyped_consts_to_float(self, args, argts):
        # An untyped constant argument is taken as a float value
        for i, a in enumerate(args):
            c = const_of(a)
            if c is not None and argts[i].main == BasicType.NONE and C.to_float(c) is not None:
                args[i] = NumberExpr(C.to_float(c), ConstType.FLOAT)
                argts[i] = T.FLOAT

    def _unify_numeric_args(self, node, func, args, argts):
        """clamp/min/max: make constant arguments share the numeric kind."""
        kind, _ = resolve_const_kind(args, argts)
        if kind is None:
            return
        target = T.INT if kind == ConstKind.INT else T.FLOAT
        for i, a in enumerate(args):
            if const_of(a) is None:
                if argts[i] != target:
                    self._fail(node, f"{func.value}'s arguments don't match: {_types_str(argts)}")
                continue
            self._convert_arg(node, args, argts, i, target)

    # ------------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------------

    def _check_vector_ctor_args(self, node, func, n: int, args, argts):
        if not args:
            self._fail(node, f"invalid arguments for {func.value}: ()")
        if len(args) == 1:
            t = argts[0]
            c = const_of(args[0])
            if c is not None and c.is_number() and t.main in (BasicType.NONE, BasicType.INT, BasicType.FLOAT):
                return
            if t.is_numeric_scalar():
                return
            if t.is_vector() and t.vector_element_count() == n:
                return
            self._fail(node, f"invalid arguments for {func.value}: ({_types_str(argts)})")

        count = 0
        for a, t in zip(args, argts):
            c = const_of(a)
            if t.main == BasicType.NONE and c is not None and c.is_number():
                count += 1
            elif t.is_numeric_scalar():
                count += 1
            elif t.is_vector():
                count += t.vector_element_count()
            else:
                self._fail(node, f"invalid arguments for {func.value}: ({_types_str(argts)})")
        if count != n:
            self._fail(node, f"invalid arguments for {func.value}: ({_types_str(argts)})")

    def _check_matrix_ctor_args(self, node, func, n: int, args, argts):
        def is_scalar_arg(a, t):
            c = const_of(a)
            if t.main == BasicType.NONE:
                return c is not None and c.is_number()
            return t.is_numeric_scalar()

        if len(args) == 1:
            if is_scalar_arg(args[0], argts[0]):
                return
            if argts[0].is_matrix() and argts[0].matrix_size() == n:
                return
        elif len(args) == n:
            column = T.float_vector_of(n)
            if all(t == column for t in argts):
                return
        elif len(args) == n * n:
            if all(is_scalar_arg(a, t) for a, t in zip(args, argts)):
                return
        self._fail(node, f"invalid arguments for {func.value}: ({_types_str(argts)})")

    def _parse_conversion(self, node, func, args, argts) -> Optional[Tuple[Expr, Type]]:
        """bool(x), int(x) and float(x). Constants fold."""
        target = {BuiltinFunc.BOOL: T.BOOL, BuiltinFunc.INT: T.INT, BuiltinFunc.FLOAT: T.FLOAT}[func]
        if len(args) != 1:
            self._fail(node, f"number of {func.value}'s arguments must be 1 but {len(args)}")
        c = const_of(args[0])
        if c is not None:
            if func == BuiltinFunc.BOOL:
                v = c if c.kind == ConstKind.BOOL else None
            elif func == BuiltinFunc.INT:
                # int(1.1) is an error for constants, not a truncation
                v = C.to_int(c)
            else:
                v = C.to_float(c)
            if v is None:
                self._fail(node, f"cannot convert {c} to type {func.value}")
            return NumberExpr(v, ConstType(target.main.value)), target

        t = argts[0]
        if func == BuiltinFunc.BOOL:
            if t.main != BasicType.BOOL:
                self._fail(node, f"cannot convert {t} to type bool")
        elif not t.is_numeric_scalar():
            self._fail(node, f"cannot convert {t} to type {func.value}")
        return None

    # ------------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------------

    def _parse_builtin_call(self, node, fname: str, callee: BuiltinFuncExpr,
                            args: List[Expr], argts: List[Type], stmts: list):
        """
        Type check a call of a builtin.

        Returns:
            (exprs, types, stmts) like every expression parser
        """
        func = callee.func

        if func in (BuiltinFunc.LEN, BuiltinFunc.CAP):
            if len(args) != 1:
                self._fail(node, f"number of {func.value}'s arguments must be 1 but {len(args)}")
            if argts[0].main != BasicType.ARRAY:
                self._fail(node, f"{func.value} takes an array but {argts[0]}")
            return [NumberExpr(C.make_int(argts[0].length), ConstType.INT)], [T.INT], stmts

        if func in (BuiltinFunc.BOOL, BuiltinFunc.INT, BuiltinFunc.FLOAT):
            folded = self._parse_conversion(node, func, args, argts)
            if folded is not None:
                expr, t = folded
                return [expr], [t], stmts
            final_type = {BuiltinFunc.BOOL: T.BOOL, BuiltinFunc.INT: T.INT}.get(func, T.FLOAT)

        elif func in _FLOAT_VECTOR_CTORS:
            n = _FLOAT_VECTOR_CTORS[func]
            self._check_vector_ctor_args(node, func, n, args, argts)
            for i, a in enumerate(args):
                if const_of(a) is not None:
                    self._convert_arg(node, args, argts, i, T.FLOAT)
            final_type = T.float_vector_of(n)

        elif func in _INT_VECTOR_CTORS:
            n = _INT_VECTOR_CTORS[func]
            self._check_vector_ctor_args(node, func, n, args, argts)
            for i, a in enumerate(args):
                if const_of(a) is not None:
                    self._convert_arg(node, args, argts, i, T.INT)
            final_type = T.int_vector_of(n)

        elif func in _MATRIX_CTORS:
            n = _MATRIX_CTORS[func]
            self._check_matrix_ctor_args(node, func, n, args, argts)
            for i, a in enumerate(args):
                if const_of(a) is not None:
                    self._convert_arg(node, args, argts, i, T.FLOAT)
            final_type = Type(BasicType('mat%d' % n))

        elif func == BuiltinFunc.TEXEL_AT:
            if len(args) != 2:
                self._fail(node, f"number of {func.value}'s arguments must be 2 but {len(args)}")
            if argts[0].main != BasicType.TEXTURE:
                self._fail(node, f"cannot use {argts[0]} as texture value in argument to {func.value}")
            if argts[1] != T.VEC2:
                self._fail(node, f"cannot use {argts[1]} as vec2 value in argument to {func.value}")
            final_type = T.VEC4

        elif func == BuiltinFunc.DISCARD:
            if args:
                self._fail(node, f"number of {func.value}'s arguments must be 0 but {len(args)}")
            if fname != self.options.fragment_entry:
                self._fail(node, f"discard is available only in {self.options.fragment_entry}")
            stmts.append(Discard())
            return [], [], stmts

        elif func == BuiltinFunc.FRONT_FACING:
            if args:
                self._fail(node, f"number of {func.value}'s arguments must be 0 but {len(args)}")
            if fname == self.options.vertex_entry:
                self._fail(node, f"{func.value} is not available in {self.options.vertex_entry}")
            final_type = T.BOOL

        elif func in _THREE_ARGS:
            final_type = self._check_three_args(node, func, args, argts)

        elif func in _TWO_ARGS:
            final_type = self._check_two_args(node, func, args, argts)

        else:
            final_type = self._check_one_arg(node, func, args, argts)

        return [Call(callee, tuple(args))], [final_type], stmts

    # ------------------------------------------------------------------------
    # Math library
    # ------------------------------------------------------------------------

    def _check_three_args(self, node, func, args, argts) -> Type:
        if len(args) != 3:
            self._fail(node, f"number of {func.value}'s arguments must be 3 but {len(args)}")

        if func == BuiltinFunc.CLAMP:
            self._unify_numeric_args(node, func, args, argts)
            for i in (1, 2):
                if const_of(args[i]) is None:
                    continue
                if argts[0].is_int_vector():
                    self._convert_arg(node, args, argts, i, T.INT)
                elif argts[0].is_float_vector():
                    self._convert_arg(node, args, argts, i, T.FLOAT)
        else:
            self._untyped_consts_to_float(args, argts)

        for t in argts:
            if func == BuiltinFunc.CLAMP:
                if not (t.main in (BasicType.FLOAT, BasicType.INT) or t.is_vector()):
                    self._fail(node, f"cannot use {t} as float, vecN, int, or ivecN value in argument to {func.value}")
            elif not (t.main == BasicType.FLOAT or t.is_float_vector()):
                self._fail(node, f"cannot use {t} as float, vec2, vec3, or vec4 value in argument to {func.value}")

        a0, a1, a2 = argts
        if func == BuiltinFunc.CLAMP:
            if not ((a0 == a1 and a0 == a2)
                    or (a0.is_float_vector() and a1 == T.FLOAT and a2 == T.FLOAT)
                    or (a0.is_int_vector() and a1 == T.INT and a2 == T.INT)):
                self._fail(node, f"the second and the third arguments for {func.value} must equal to "
                                 f"the first argument {a0} or float or int but {a1} and {a2}")
        elif func == BuiltinFunc.MIX:
            if a0 != a1:
                self._fail(node, f"{a0} and {a1} don't match in argument to {func.value}")
            if a0 != a2 and a2 != T.FLOAT:
                self._fail(node, f"the third arguments for {func.value} must equal to "
                                 f"the first/second argument {a0} or float but {a2}")
        elif func == BuiltinFunc.SMOOTHSTEP:
            if (a0 != a1 or a0 != a2) and (a0 != T.FLOAT or a1 != T.FLOAT):
                self._fail(node, f"the first and the second arguments for {func.value} must equal to "
                                 f"the third argument {a2} or float but {a0} and {a1}")
        elif func == BuiltinFunc.REFRACT:
            if a0 != a1:
                self._fail(node, f"{a0} and {a1} don't match in argument to {func.value}")
            if a2 != T.FLOAT:
                self._fail(node, f"cannot use {a2} as float value in argument to {func.value}")
        elif a0 != a1 or a0 != a2:
            self._fail(node, f"all the argument types for {func.value} must be the same "
                             f"but {a0}, {a1}, and {a2}")

        return a2 if func == BuiltinFunc.SMOOTHSTEP else a0

    def _check_two_args(self, node, func, args, argts) -> Type:
        if len(args) != 2:
            self._fail(node, f"number of {func.value}'s arguments must be 2 but {len(args)}")

        if func in (BuiltinFunc.MIN, BuiltinFunc.MAX):
            self._unify_numeric_args(node, func, args, argts)
            if const_of(args[1]) is not None:
                if argts[0].is_int_vector():
                    self._convert_arg(node, args, argts, 1, T.INT)
                elif argts[0].is_float_vector():
                    self._convert_arg(node, args, argts, 1, T.FLOAT)
        else:
            self._untyped_consts_to_float(args, argts)

        for t in argts:
            if func in (BuiltinFunc.MIN, BuiltinFunc.MAX):
                if not (t.main in (BasicType.FLOAT, BasicType.INT) or t.is_vector()):
                    self._fail(node, f"cannot use {t} as float, vecN, int, or ivecN value in argument to {func.value}")
            elif not (t.main == BasicType.FLOAT or t.is_float_vector()):
                self._fail(node, f"cannot use {t} as float, vec2, vec3, or vec4 value in argument to {func.value}")

        a0, a1 = argts
        if func == BuiltinFunc.MOD:
            if a0 != a1 and a1 != T.FLOAT:
                self._fail(node, f"the second argument for {func.value} must equal to "
                                 f"the first argument {a0} or float but {a1}")
        elif func in (BuiltinFunc.MIN, BuiltinFunc.MAX):
            if not (a0 == a1
                    or (a0.is_float_vector() and a1 == T.FLOAT)
                    or (a0.is_int_vector() and a1 == T.INT)):
                self._fail(node, f"the second argument for {func.value} must equal to "
                                 f"the first argument {a0} or float or int but {a1}")
        elif func == BuiltinFunc.STEP:
            if a0 != a1 and a0 != T.FLOAT:
                self._fail(node, f"the first argument for {func.value} must equal to "
                                 f"the second argument {a1} or float but {a0}")
        elif func == BuiltinFunc.CROSS:
            for t in argts:
                if t != T.VEC3:
                    self._fail(node, f"cannot use {t} as vec3 value in argument to {func.value}")
        elif a0 != a1:
            self._fail(node, f"{a0} and {a1} don't match in argument to {func.value}")

        if func in (BuiltinFunc.DISTANCE, BuiltinFunc.DOT):
            return T.FLOAT
        if func == BuiltinFunc.STEP:
            return a1
        return a0

    def _check_one_arg(self, node, func, args, argts) -> Type:
        if len(args) != 1:
            self._fail(node, f"number of {func.value}'s arguments must be 1 but {len(args)}")

        c = const_of(args[0])
        if c is not None and argts[0].main == BasicType.NONE:
            if func in (BuiltinFunc.ABS, BuiltinFunc.SIGN):
                if c.kind == ConstKind.INT:
                    argts[0] = T.INT
                    args[0] = NumberExpr(c, ConstType.INT)
                elif c.kind == ConstKind.FLOAT:
                    argts[0] = T.FLOAT
                    args[0] = NumberExpr(c, ConstType.FLOAT)
            else:
                self._untyped_consts_to_float(args, argts)

        t = argts[0]
        if func == BuiltinFunc.TRANSPOSE:
            if not t.is_matrix():
                self._fail(node, f"cannot use {t} as mat2, mat3, or mat4 value in argument to {func.value}")
        elif func in (BuiltinFunc.ABS, BuiltinFunc.SIGN):
            if not (t.main in (BasicType.FLOAT, BasicType.INT) or t.is_vector()):
                self._fail(node, f"cannot use {t} as float, vecN, int, or ivecN value in argument to {func.value}")
        elif not (t.main == BasicType.FLOAT or t.is_float_vector()):
            self._fail(node, f"cannot use {t} as float, vec2, vec3, or vec4 value in argument to {func.value}")

        if func == BuiltinFunc.LENGTH:
            return T.FLOAT
        return t
