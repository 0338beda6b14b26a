"""
Expression analysis.

Every expression parser returns a triple ``(exprs, types, stmts)``:

- ``exprs``: the IR values. Usually one; a call of a function with
  out-params yields one temporary per out-param, a call without results
  yields none.
- ``types``: the type of each value, NONE for untyped constants.
- ``stmts``: statements that must run before the values are used (calls
  with out-params, composite literal element stores).

Constant operands are folded here, so the IR of ``1 + 2`` is a single
NumberExpr.
"""

import re
from typing import List, Tuple

from ..ir import constant as C
from ..ir import types as T
from ..ir.constant import ConstKind
from ..ir.program import (
    Assign, Binary, Blank, BuiltinFuncExpr, Call, ConstType, Expr, ExprStmt,
    FieldSelector, FunctionExpr, Index, LocalVariable, NumberExpr, Op,
    SwizzlingExpr, TextureVariable, Unary, UniformVariable,
    COMPARISON_OPS, is_valid_swizzling, op_from_token, parse_builtin_func,
)
from ..ir.types import BasicType, Type
from .builtins import const_of
from .delayed import DelayedShift
from .operators import (
    can_assign, const_type_of, convert_constant,
    resolve_untyped_consts, type_from_binary_op,
)

TEXTURE_VARIABLE = re.compile(r'^__t(\d+)$')

# Components a swizzle of an N-element vector may not use
_FORBIDDEN_SWIZZLE_LETTERS = {2: 'zwbapq', 3: 'waq', 4: ''}

_UNSUPPORTED_EXPRESSIONS = {
    'imaginary_literal': "imaginary literal is not supported",
    'rune_literal': "rune literal is not supported",
    'interpreted_string_literal': "string literal is not supported",
    'raw_string_literal': "string literal is not supported",
    'slice_expression': "slice expression is not supported",
    'func_literal': "function literal is not supported",
    'type_assertion_expression': "type assertion is not supported",
    'type_conversion_expression': "type conversion expression is not supported",
    'channel_type': "chan is not supported",
    'map_type': "map is not supported",
    'slice_type': "slice is not supported",
    'pointer_type': "pointer is not supported",
    'struct_type': "struct is not implemented",
    'function_type': "function type is not supported",
    'interface_type': "interface is not supported",
}

Parsed = Tuple[List[Expr], List[Type], list]


def describe(t: Type, e: Expr) -> str:
    """Type as shown in diagnostics, ``untyped int`` for untyped constants."""
    c = const_of(e)
    if t.main == BasicType.NONE and c is not None:
        return f"untyped {c.kind.value}"
    return str(t)


def typed_constant(c, t: Type) -> NumberExpr:
    return NumberExpr(c, const_type_of(t))


class ExpressionMixin:
    """Expression parsers, mixed into the Compiler."""

    def _parse_expr(self, scope, fname: str, node, mark_used: bool) -> Parsed:
        """
        Analyze an expression node.

        Args:
            scope: Innermost scope
            fname: Name of the enclosing function
            node: Expression ASTNode
            mark_used: Whether a bare identifier counts as a read

        Raises:
            TransformationError: On the first problem found
        """
        handlers = {
            'int_literal': self._parse_int_literal,
            'float_literal': self._parse_float_literal,
            'true': self._parse_bool_literal,
            'false': self._parse_bool_literal,
            'identifier': self._parse_identifier,
            'parenthesized_expression': self._parse_parenthesized,
            'unary_expression': self._parse_unary,
            'binary_expression': self._parse_binary,
            'selector_expression': self._parse_selector,
            'index_expression': self._parse_index,
            'call_expression': self._parse_call,
            'composite_literal': self._parse_composite_literal,
        }
        handler = handlers.get(node.type)
        if handler is not None:
            return handler(scope, fname, node, mark_used)

        msg = _UNSUPPORTED_EXPRESSIONS.get(node.type)
        if msg is not None:
            self._fail(node, msg)
        if node.type in ('nil', 'iota'):
            self._fail(node, f"unexpected identifier: {node.text}")
        self._fail(node, f"unexpected expression: {node.text}")

    def _parse_single_expr(self, scope, fname, node, mark_used, context: str):
        exprs, types, stmts = self._parse_expr(scope, fname, node, mark_used)
        if len(exprs) != 1:
            self._fail(node, f"multiple-value context is not available at {context}: {node.text}")
        return exprs[0], types[0], stmts

    # ========================================================================
    # Literals and names
    # ========================================================================

    def _parse_int_literal(self, scope, fname, node, mark_used) -> Parsed:
        return [NumberExpr(C.parse_int_literal(node.text))], [T.NONE], []

    def _parse_float_literal(self, scope, fname, node, mark_used) -> Parsed:
        return [NumberExpr(C.parse_float_literal(node.text))], [T.NONE], []

    def _parse_bool_literal(self, scope, fname, node, mark_used) -> Parsed:
        return [NumberExpr(C.make_bool(node.type == 'true'))], [T.NONE], []

    def _parse_identifier(self, scope, fname, node, mark_used) -> Parsed:
        name = node.text
        if name == '_':
            if mark_used:
                self._fail(node, "cannot use _ as value")
            return [Blank()], [T.NONE], []

        found = scope.find_local_variable(name, mark_used)
        if found is not None:
            idx, var = found
            return [LocalVariable(idx)], [var.typ], []

        const = scope.find_constant(name)
        if const is not None:
            return [typed_constant(const.value, const.typ)], [const.typ], []

        if name in self._func_indices:
            return [FunctionExpr(self._func_indices[name])], [T.NONE], []

        if name in self._uniform_indices:
            idx = self._uniform_indices[name]
            return [UniformVariable(idx)], [self._uniform_types[idx]], []

        func = parse_builtin_func(name)
        if func is not None:
            return [BuiltinFuncExpr(func)], [T.NONE], []

        m = TEXTURE_VARIABLE.match(name)
        if m is not None:
            i = int(m.group(1))
            if i >= self.options.texture_count:
                self._fail(node, f"texture index out of range: {i}")
            return [TextureVariable(i)], [T.TEXTURE], []

        self._fail(node, f"unexpected identifier: {name}")

    def _parse_parenthesized(self, scope, fname, node, mark_used) -> Parsed:
        return self._parse_expr(scope, fname, node.named_children[0], mark_used)

    # ========================================================================
    # Operators
    # ========================================================================

    def _parse_unary(self, scope, fname, node, mark_used) -> Parsed:
        token = node.field('operator').text
        operand, t, stmts = self._parse_single_expr(
            scope, fname, node.field('operand'), mark_used, "a unary operator")

        c = const_of(operand)
        if c is not None:
            try:
                v = C.unary_op(token, c)
            except ValueError:
                self._fail(node, f"invalid operation: operator {token} not defined on {c}")
            return [NumberExpr(v, operand.const_type)], [t], stmts

        op = {'+': Op.ADD, '-': Op.SUB, '!': Op.NOT}.get(token)
        if op is None:
            self._fail(node, f"unexpected operator: {token}")
        if op == Op.NOT:
            if t.main != BasicType.BOOL:
                self._fail(node, f"invalid operation: operator ! not defined on {t}")
        elif not (t.is_numeric_scalar() or t.is_vector() or t.is_matrix()):
            self._fail(node, f"invalid operation: operator {token} not defined on {t}")
        return [Unary(op, operand)], [t], stmts

    def _parse_binary(self, scope, fname, node, mark_used) -> Parsed:
        token = node.field('operator').text
        lhs, lhst, stmts = self._parse_single_expr(
            scope, fname, node.field('left'), mark_used, "a binary operator")
        rhs, rhst, ss = self._parse_single_expr(
            scope, fname, node.field('right'), mark_used, "a binary operator")
        stmts.extend(ss)

        op = op_from_token(token, lhst, rhst)
        if op is None:
            self._fail(node, f"unexpected operator: {token}")

        lc, rc = const_of(lhs), const_of(rhs)
        mismatch = f"types don't match: {describe(lhst, lhs)} {token} {describe(rhst, rhs)}"
        untyped_shift = (op in (Op.LEFT_SHIFT, Op.RIGHT_SHIFT)
                         and lc is not None and lhst.main == BasicType.NONE and rc is None)

        lc, rc, ok = resolve_untyped_consts(op, lc, rc, lhst, rhst)
        if not ok:
            self._fail(node, mismatch)

        original = const_of(lhs)
        if untyped_shift:
            # The shifted constant's kind is decided by the context
            lc = C.to_int(lc)
            if lc is None:
                self._fail(node, mismatch)
            lhst = T.INT
        elif lhst.main != BasicType.NONE or rhst.main != BasicType.NONE:
            if lc is not None and lhst.main == BasicType.NONE:
                lhst = self._typed_side(op, lc, rhst, is_rhs=False)
            if rc is not None and rhst.main == BasicType.NONE:
                rhst = self._typed_side(op, rc, lhst, is_rhs=True)
        if lc is not None:
            lhs = NumberExpr(lc, const_type_of(lhst))
        if rc is not None:
            rhs = NumberExpr(rc, const_type_of(rhst))

        t = type_from_binary_op(op, lhst, rhst, lc, rc)
        if t is None:
            self._fail(node, mismatch)

        if lc is not None and rc is not None:
            return [self._fold_binary(node, token, op, lc, rc, lhst, rhst, t)], [t], stmts

        expr = Binary(op, lhs, rhs)
        if untyped_shift:
            self._delayed[id(expr)] = DelayedShift(expr, original, op == Op.LEFT_SHIFT, node.start_point)
        return [expr], [t], stmts

    @staticmethod
    def _typed_side(op: Op, c, other: Type, is_rhs: bool) -> Type:
        if is_rhs and op in (Op.LEFT_SHIFT, Op.RIGHT_SHIFT):
            return T.INT
        if c.kind == ConstKind.BOOL:
            return T.BOOL
        if other.main == BasicType.INT or other.is_int_vector():
            return T.INT
        return T.FLOAT

    def _fold_binary(self, node, token, op, lc, rc, lhst, rhst, t) -> NumberExpr:
        try:
            if op in (Op.AND_AND, Op.OR_OR):
                v = C.binary_op(lc, token, rc)
            elif op in COMPARISON_OPS:
                v = C.make_bool(C.compare(lc, token, rc))
            elif op in (Op.LEFT_SHIFT, Op.RIGHT_SHIFT):
                s = C.to_int(rc)
                if s is None:
                    self._fail(node, f"constant {rc} truncated to integer")
                v = C.shift(lc, token, s.value)
            else:
                integer_division = (op == Op.DIV and lc.kind == ConstKind.INT
                                    and rc.kind == ConstKind.INT)
                v = C.binary_op(lc, token, rc, integer_division=integer_division)
        except ZeroDivisionError:
            self._fail(node, "invalid operation: division by zero")
        except ValueError:
            self._fail(node, f"types don't match: {lhst} {token} {rhst}")

        if t.main == BasicType.INT:
            v = C.to_int(v)
            if v is None:
                self._fail(node, f"constant {node.text} truncated to integer")
        elif t.main == BasicType.FLOAT:
            v = C.to_float(v)
        return NumberExpr(v, const_type_of(t))

    # ========================================================================
    # Selectors and indices
    # ========================================================================

    def _parse_selector(self, scope, fname, node, mark_used) -> Parsed:
        swizzling = node.field('field').text
        base, t, stmts = self._parse_single_expr(
            scope, fname, node.field('operand'), True, "a selector")

        if not t.is_vector() or not is_valid_swizzling(swizzling):
            self._fail(node, f"unexpected swizzling: {swizzling}")
        forbidden = _FORBIDDEN_SWIZZLE_LETTERS[t.vector_element_count()]
        if any(c in forbidden for c in swizzling):
            self._fail(node, f"unexpected swizzling: {swizzling}")

        n = len(swizzling)
        result = T.int_vector_of(n) if t.is_int_vector() else T.float_vector_of(n)
        return [FieldSelector(base, SwizzlingExpr(swizzling))], [result], stmts

    def _parse_index(self, scope, fname, node, mark_used) -> Parsed:
        idx, idxt, stmts = self._parse_single_expr(
            scope, fname, node.field('index'), True, "an index expression")
        c = const_of(idx)
        if c is not None:
            v = C.to_int(c)
            if v is None:
                self._fail(node, f"constant {c} truncated to integer")
            idx = NumberExpr(v, ConstType.INT)
        elif idxt.main != BasicType.INT:
            self._fail(node, f"index must be int but {idxt}")

        base, t, ss = self._parse_single_expr(
            scope, fname, node.field('operand'), True, "an index expression")
        stmts.extend(ss)

        if t.main == BasicType.ARRAY:
            length, result = t.length, t.elem
        elif t.is_float_vector():
            length, result = t.vector_element_count(), T.FLOAT
        elif t.is_int_vector():
            length, result = t.vector_element_count(), T.INT
        elif t.is_matrix():
            length, result = t.matrix_size(), T.vector_of_matrix(t)
        else:
            self._fail(node, f"index operator cannot be applied to the type {t}")

        if c is not None and not 0 <= v.value < length:
            self._fail(node, f"index out of range: {v.value}")
        return [Index(base, idx)], [result], stmts

    # ========================================================================
    # Calls
    # ========================================================================

    def _parse_call(self, scope, fname, node, mark_used) -> Parsed:
        arg_nodes = node.field('arguments').named_children
        args, argts, stmts = [], [], []
        for a in arg_nodes:
            es, ts, ss = self._parse_expr(scope, fname, a, True)
            if len(es) != 1 and len(arg_nodes) != 1:
                self._fail(a, f"multiple-value {a.text} in single-value context")
            for e in es:
                if isinstance(e, (FunctionExpr, BuiltinFuncExpr)):
                    self._fail(a, f"function name cannot be an argument: {a.text}")
            args.extend(es)
            argts.extend(ts)
            stmts.extend(ss)

        func_node = node.field('function')
        callees, _, ss = self._parse_expr(scope, fname, func_node, True)
        stmts.extend(ss)
        callee = callees[0] if len(callees) == 1 else None

        if isinstance(callee, BuiltinFuncExpr):
            return self._parse_builtin_call(node, fname, callee, args, argts, stmts)
        if isinstance(callee, FunctionExpr):
            return self._parse_user_call(scope, node, callee, args, argts, stmts)
        self._fail(node, f"function callee must be a function name but {func_node.text}")

    def _parse_user_call(self, scope, node, callee: FunctionExpr, args, argts, stmts) -> Parsed:
        info = self._func_infos[callee.index]
        params = info.in_params
        if len(args) > len(params):
            self._fail(node, f"too many arguments in call to {info.name}")
        if len(args) < len(params):
            self._fail(node, f"not enough arguments in call to {info.name}")

        for i, p in enumerate(params):
            c = const_of(args[i])
            if argts[i].main == BasicType.NONE and c is not None:
                if not can_assign(p.typ, argts[i], c):
                    self._fail(node, f"cannot use type {describe(argts[i], args[i])} as type {p.typ} in argument")
                args[i] = typed_constant(convert_constant(c, p.typ), p.typ)
                continue
            if argts[i] != p.typ:
                self._fail(node, f"cannot use type {argts[i]} as type {p.typ} in argument")

        if info.return_type.main != BasicType.NONE:
            return [Call(callee, tuple(args))], [info.return_type], stmts

        outs = []
        for p in info.out_params:
            idx = scope.add_temporary(p.typ)
            outs.append(LocalVariable(idx))
        stmts.append(ExprStmt(Call(callee, tuple(args) + tuple(outs))))
        return outs, [p.typ for p in info.out_params], stmts

    # ========================================================================
    # Composite literals
    # ========================================================================

    def _parse_composite_literal(self, scope, fname, node, mark_used) -> Parsed:
        type_node = node.field('type')
        if type_node.type == 'implicit_length_array_type':
            elem = self._parse_type(scope, type_node.field('element'))
            if elem.main == BasicType.ARRAY:
                self._fail(type_node, "array of array is forbidden")
            t = None
        else:
            t = self._parse_type(scope, type_node)
            if t.main != BasicType.ARRAY:
                self._fail(node, f"invalid composite literal type {t}")
            elem = t.elem

        elements = self._literal_elements(node.field('body'))
        if t is None:
            t = Type.array(elem, len(elements))
        if len(elements) > t.length:
            self._fail(node, f"too many values in {t} literal")

        idx = scope.add_temporary(t)
        stmts = []
        for i, e in enumerate(elements):
            value, vt, ss = self._parse_single_expr(scope, fname, e, True, "a composite literal")
            stmts.extend(ss)
            c = const_of(value)
            if not can_assign(elem, vt, c):
                if c is not None and elem.main == BasicType.INT and c.is_number():
                    self._fail(e, f"constant {c} truncated to integer")
                self._fail(e, f"cannot use type {describe(vt, value)} as type {elem} in array literal")
            if c is not None:
                value = typed_constant(convert_constant(c, elem), elem)
            target = Index(LocalVariable(idx), NumberExpr(C.make_int(i), ConstType.INT))
            stmts.append(Assign(target, value))
        return [LocalVariable(idx)], [t], stmts

    def _literal_elements(self, body) -> list:
        elements = []
        for child in body.named_children:
            if child.type == 'literal_element':
                inner = child.named_children[0]
                if inner.type == 'literal_value':
                    self._fail(inner, "array of array is forbidden")
                elements.append(inner)
            elif child.type == 'keyed_element':
                self._fail(child, "keyed elements are not supported in a composite literal")
            else:
                elements.append(child)
        return elements
