"""
Deferred checks for shifts of untyped constants.

In ``x := 1 << n`` the shifted constant takes the type the context gives
the whole expression, which is only known once the enclosing statement is
complete. The shift is recorded when parsed and validated against the type
each statement expects. Shifts still undecided at the end of a function
are accepted only when the constant was an integer literal.
"""

from dataclasses import dataclass

from ..errors import CompileError, TransformationError
from ..ir import types as T
from ..ir.constant import Constant, ConstKind
from ..ir.program import (
    Assign, Binary, BuiltinFunc, BuiltinFuncExpr, Call, ExprStmt, Expr,
    FieldSelector, FunctionExpr, If, Index, LocalVariable, NumberExpr, Return,
    Selection, Unary, COMPARISON_OPS, Op,
)
from ..ir.types import BasicType, Type
from .operators import is_int_type

_INT_CTORS = (BuiltinFunc.INT, BuiltinFunc.IVEC2, BuiltinFunc.IVEC3, BuiltinFunc.IVEC4)
_BOOL_RESULT_OPS = COMPARISON_OPS + (
    Op.VECTOR_EQUAL, Op.VECTOR_NOT_EQUAL, Op.AND_AND, Op.OR_OR)


@dataclass
class DelayedShift:
    """A shift whose left operand was an untyped constant."""
    expr: Binary
    original: Constant
    is_left: bool
    location: tuple
    validated: bool = False
    closest_unknown: bool = False
    failed: bool = False

    def validate(self, t: Type):
        if self.validated or self.failed:
            return
        if is_int_type(t):
            self.validated = True
        elif t.main == BasicType.NONE:
            self.closest_unknown = True
        else:
            self.failed = True

    def is_validated(self) -> bool:
        if self.validated:
            return True
        return self.closest_unknown and self.original.kind == ConstKind.INT

    def error(self) -> TransformationError:
        side = 'left' if self.is_left else 'right'
        return TransformationError(f"left operand for {side} shift should be int", self.location)


class DelayedShiftMixin:
    """Validation of recorded shifts, mixed into the Compiler."""

    def _validate_delayed_stmt(self, scope, stmt):
        if not self._delayed:
            return
        if isinstance(stmt, Assign):
            t = T.NONE
            if isinstance(stmt.lhs, LocalVariable):
                var = scope.find_local_variable_by_index(stmt.lhs.index)
                if var is not None and not var.inferred:
                    t = var.typ
            self._validate_expr(scope, stmt.rhs, t)
        elif isinstance(stmt, Return) and stmt.expr is not None:
            self._validate_expr(scope, stmt.expr, self._func_ctx.return_type)
        elif isinstance(stmt, (ExprStmt, If)):
            for e in stmt.exprs():
                self._validate_expr(scope, e, T.NONE)

        for d in self._delayed.values():
            if d.failed:
                raise d.error()

    def _validate_expr(self, scope, expr: Expr, t: Type) -> Type:
        d = self._delayed.get(id(expr))
        if d is not None:
            d.validate(t)
            return T.INT

        if isinstance(expr, LocalVariable):
            var = scope.find_local_variable_by_index(expr.index)
            return var.typ if var is not None else T.NONE
        if isinstance(expr, NumberExpr):
            return T.NONE

        if isinstance(expr, Binary):
            if expr.op in (Op.LEFT_SHIFT, Op.RIGHT_SHIFT):
                self._validate_expr(scope, expr.rhs, T.INT)
                return self._validate_expr(scope, expr.lhs, t)
            inner = T.NONE if expr.op in _BOOL_RESULT_OPS else t
            if inner.main != BasicType.NONE:
                self._validate_expr(scope, expr.lhs, inner)
                return self._validate_expr(scope, expr.rhs, inner)
            # Each side is validated against the other side's type
            lt = self._validate_expr(scope, expr.lhs, T.NONE)
            rt = self._validate_expr(scope, expr.rhs, lt)
            if lt.main == BasicType.NONE and rt.main != BasicType.NONE:
                self._validate_expr(scope, expr.lhs, rt)
            return rt if lt.main == BasicType.NONE else lt

        if isinstance(expr, Unary):
            return self._validate_expr(scope, expr.operand, t)

        if isinstance(expr, Call):
            callee = expr.callee
            if isinstance(callee, BuiltinFuncExpr):
                arg_type = T.INT if callee.func in _INT_CTORS else T.FLOAT
                for a in expr.args:
                    self._validate_expr(scope, a, arg_type)
            elif isinstance(callee, FunctionExpr):
                params = self._func_infos[callee.index].in_params
                for a, p in zip(expr.args, params):
                    self._validate_expr(scope, a, p.typ)
            return T.NONE

        if isinstance(expr, (FieldSelector, Index)):
            self._validate_expr(scope, expr.base, T.NONE)
            if isinstance(expr, Index):
                self._validate_expr(scope, expr.index, T.INT)
            return T.NONE

        if isinstance(expr, Selection):
            for e in expr.children():
                self._validate_expr(scope, e, T.NONE)
        return T.NONE

    def _check_delayed(self) -> None:
        """Raise for every shift left undecided in the current function."""
        errors = [d.error() for d in self._delayed.values() if not d.is_validated()]
        self._delayed.clear()
        if errors:
            errors.sort(key=lambda e: e.location)
            raise CompileError(errors)
