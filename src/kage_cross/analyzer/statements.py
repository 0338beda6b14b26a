"""
Statement and block analysis.

Blocks open a Scope whose variables are numbered after those of the
enclosing scopes. When a block is closed its IR ``local_vars`` are filled
and named locals that were never read are reported.
"""

from typing import List

from ..errors import CompileError, TransformationError
from ..ir import constant as C
from ..ir import types as T
from ..ir.program import (
    Assign, Binary, Block, BlockStmt, Break, BuiltinFuncExpr, Call,
    Continue, ExprStmt, FieldSelector, For, FunctionExpr, If, Index,
    LocalVariable, NumberExpr, Op, Return, Stmt, SwizzlingExpr,
    TextureVariable, UniformVariable, COMPARISON_OPS, op_from_token,
)
from ..ir.types import BasicType
from .builtins import const_of
from .expressions import describe, typed_constant
from .operators import (
    can_assign, convert_constant, default_type_of, resolve_untyped_consts,
    type_from_binary_op,
)
from .scope import ConstSymbol, Scope, TypeAlias, Variable

FOR_FORMAT_ERROR = (
    "for-statement must follow this format: "
    "for (varname) := (constant); (varname) (op) (constant); (varname) (op) (constant) { ... }"
)

_UNSUPPORTED_STATEMENTS = {
    'go_statement': "go is not supported",
    'defer_statement': "defer is not supported",
    'goto_statement': "goto is not supported",
    'fallthrough_statement': "fallthrough is not supported",
    'labeled_statement': "label is not supported",
    'send_statement': "chan is not supported",
    'select_statement': "select is not supported",
    'expression_switch_statement': "switch is not supported",
    'type_switch_statement': "switch is not supported",
}

_COMPOUND_OPERATORS = ('+=', '-=', '*=', '/=', '%=', '&=', '|=', '^=', '<<=', '>>=')


def block_statements(node) -> list:
    """Statement nodes of a ``block`` node."""
    stmts = []
    for child in node.named_children:
        if child.type == 'statement_list':
            stmts.extend(child.named_children)
        else:
            stmts.append(child)
    return stmts


def specs_of(decl, spec_type: str) -> list:
    """``var_spec``/``const_spec``/``type_spec`` children, grouped or not."""
    specs = []
    for child in decl.named_children:
        if child.type == spec_type or (spec_type == 'type_spec' and child.type == 'type_alias'):
            specs.append(child)
        elif child.type.endswith('_list'):
            specs.extend(specs_of(child, spec_type))
    return specs


def has_return(block: Block) -> bool:
    for stmt in block.stmts:
        if isinstance(stmt, Return):
            return True
        if any(has_return(b) for b in stmt.blocks()):
            return True
    return False


def _loop_terminates(init, end, op: Op, delta) -> bool:
    d = delta.value
    if d == 0:
        return False
    if op in (Op.LESS_THAN, Op.LESS_THAN_EQUAL):
        return d > 0
    if op in (Op.GREATER_THAN, Op.GREATER_THAN_EQUAL):
        return d < 0
    if op == Op.NOT_EQUAL:
        steps = C.binary_op(C.binary_op(end, '-', init), '/', delta)
        return steps.is_integral() and steps.value >= 0
    return True


class StatementMixin:
    """Statement parsers, mixed into the Compiler."""

    # ========================================================================
    # Blocks
    # ========================================================================

    @staticmethod
    def _new_scope(outer: Scope) -> Scope:
        scope = Scope(outer=outer)
        scope.ir.local_var_index_offset = outer.total_local_variable_count()
        return scope

    @staticmethod
    def _close_scope(scope: Scope, param_count: int = 0):
        """Fill the IR block's locals and report unused variables."""
        scope.ir.local_vars = [
            T.NONE if v.for_loop_counter else v.typ for v in scope.vars[param_count:]
        ]
        if scope.unused:
            errors = [
                TransformationError(f"local variable {scope.vars[i].name} is not used", pos)
                for i, pos in sorted(scope.unused.items(), key=lambda kv: kv[1])
            ]
            raise CompileError(errors)

    def _parse_stmts(self, scope: Scope, fname: str, nodes) -> List[Stmt]:
        stmts = []
        for node in nodes:
            ss = self._parse_stmt(scope, fname, node)
            for s in ss:
                self._validate_delayed_stmt(scope, s)
            stmts.extend(ss)
        return stmts

    def _parse_block(self, outer: Scope, fname: str, nodes) -> Block:
        scope = self._new_scope(outer)
        scope.ir.stmts = self._parse_stmts(scope, fname, nodes)
        self._close_scope(scope)
        return scope.ir

    def _parse_stmt(self, scope: Scope, fname: str, node) -> List[Stmt]:
        handlers = {
            'short_var_declaration': self._parse_define,
            'assignment_statement': self._parse_assignment,
            'inc_statement': self._parse_inc_dec,
            'dec_statement': self._parse_inc_dec,
            'var_declaration': self._parse_local_var_decl,
            'const_declaration': self._parse_const_decl,
            'type_declaration': self._parse_type_decl,
            'block': self._parse_block_stmt,
            'if_statement': self._parse_if,
            'for_statement': self._parse_for,
            'return_statement': self._parse_return,
            'break_statement': self._parse_branch,
            'continue_statement': self._parse_branch,
            'expression_statement': self._parse_expr_stmt,
            'empty_statement': lambda scope, fname, node: [],
        }
        handler = handlers.get(node.type)
        if handler is not None:
            return handler(scope, fname, node)

        msg = _UNSUPPORTED_STATEMENTS.get(node.type)
        if msg is not None:
            self._fail(node, msg)
        self._fail(node, f"unexpected statement: {node.text}")

    def _parse_block_stmt(self, scope, fname, node) -> List[Stmt]:
        return [BlockStmt(self._parse_block(scope, fname, block_statements(node)))]

    def _parse_branch(self, scope, fname, node) -> List[Stmt]:
        if node.named_children:
            self._fail(node, "labeled branch is not supported")
        return [Break()] if node.type == 'break_statement' else [Continue()]

    # ========================================================================
    # Assignments
    # ========================================================================

    def _parse_values(self, scope, fname, nodes):
        """Right hand side list. A single call may produce several values."""
        exprs, types, stmts = [], [], []
        for n in nodes:
            es, ts, ss = self._parse_expr(scope, fname, n, True)
            if len(nodes) > 1 and len(es) != 1:
                self._fail(n, f"multiple-value {n.text} in single-value context")
            for e in es:
                if isinstance(e, (FunctionExpr, BuiltinFuncExpr)):
                    self._fail(n, f"function name cannot be a value: {n.text}")
                if isinstance(e, TextureVariable):
                    self._fail(n, f"texture cannot be a value: {n.text}")
            exprs.extend(es)
            types.extend(ts)
            stmts.extend(ss)
        return exprs, types, stmts

    def _check_assignable(self, node, scope, lhs):
        base = lhs
        while isinstance(base, (FieldSelector, Index)):
            if isinstance(base, FieldSelector):
                s = base.selector.swizzling if isinstance(base.selector, SwizzlingExpr) else ''
                if len(set(s)) != len(s):
                    self._fail(node, f"cannot assign to a swizzling with duplicated components: {s}")
            base = base.base
        if isinstance(base, UniformVariable):
            self._fail(node, "a uniform variable cannot be assigned")
        if not isinstance(base, LocalVariable):
            self._fail(node, f"cannot assign to {node.text}")
        var = scope.find_local_variable_by_index(base.index)
        if var.read_only:
            self._fail(node, f"an input of an entry point cannot be assigned: {var.name}")
        if var.for_loop_counter:
            self._fail(node, FOR_FORMAT_ERROR)

    def _assign_value(self, node, lhs_type, value, value_type, context: str):
        c = const_of(value)
        if not can_assign(lhs_type, value_type, c):
            self._fail(node, f"cannot use type {describe(value_type, value)} as type {lhs_type} in {context}")
        if c is not None:
            return typed_constant(convert_constant(c, lhs_type), lhs_type)
        return value

    def _parse_define(self, scope, fname, node) -> List[Stmt]:
        lhs_nodes = node.field('left').named_children
        rhs_nodes = node.field('right').named_children
        values, types, stmts = self._parse_values(scope, fname, rhs_nodes)
        if len(lhs_nodes) != len(values):
            self._fail(node, f"assignment mismatch: {len(lhs_nodes)} variables but {len(values)} values")

        seen = set()
        fresh = False
        for n in lhs_nodes:
            if n.type != 'identifier':
                self._fail(n, f"non-name {n.text} on left side of :=")
            if n.text == '_':
                continue
            if n.text in seen:
                self._fail(n, f"{n.text} repeated on left side of :=")
            seen.add(n.text)
            if not self._declared_in(scope, n.text):
                fresh = True
        if not fresh:
            self._fail(node, "no new variables on left side of :=")

        for n, value, t in zip(lhs_nodes, values, types):
            name = n.text
            if name == '_':
                if isinstance(value, Call) and isinstance(value.callee, FunctionExpr):
                    stmts.append(ExprStmt(value))
                continue

            existing = [i for i, v in enumerate(scope.vars) if v.name == name]
            if existing:
                idx, var = scope.find_local_variable(name, False)
                value = self._assign_value(n, var.typ, value, t, "assignment")
                stmts.append(Assign(LocalVariable(idx), value))
                continue

            c = const_of(value)
            typ = t
            if typ.main == BasicType.NONE:
                if c is None:
                    self._fail(n, f"{rhs_nodes[0].text} (no value) used as value")
                typ = default_type_of(c)
            if c is not None:
                value = typed_constant(convert_constant(c, typ), typ)
            idx = scope.add_named_local_variable(name, typ, n.start_point)
            scope.vars[-1].inferred = True
            stmts.append(Assign(LocalVariable(idx), value))
        return stmts

    def _parse_assignment(self, scope, fname, node) -> List[Stmt]:
        token = node.field('operator').text
        if token != '=':
            return self._parse_compound_assignment(scope, fname, node, token)

        lhs_nodes = node.field('left').named_children
        rhs_nodes = node.field('right').named_children
        values, types, stmts = self._parse_values(scope, fname, rhs_nodes)
        if len(lhs_nodes) != len(values):
            self._fail(node, f"assignment mismatch: {len(lhs_nodes)} variables but {len(values)} values")

        # a, b = b, a needs the old values
        if len(lhs_nodes) > 1 and len(rhs_nodes) > 1:
            swapped = []
            for value, t in zip(values, types):
                if const_of(value) is None:
                    idx = scope.add_temporary(t)
                    stmts.append(Assign(LocalVariable(idx), value))
                    value = LocalVariable(idx)
                swapped.append(value)
            values = swapped

        for n, value, t in zip(lhs_nodes, values, types):
            if n.type == 'identifier' and n.text == '_':
                if isinstance(value, Call) and isinstance(value.callee, FunctionExpr):
                    stmts.append(ExprStmt(value))
                continue
            lhs, lt, ss = self._parse_single_expr(scope, fname, n, False, "an assignment")
            stmts.extend(ss)
            self._check_assignable(n, scope, lhs)
            value = self._assign_value(n, lt, value, t, "assignment")
            stmts.append(Assign(lhs, value))
        return stmts

    def _parse_compound_assignment(self, scope, fname, node, token) -> List[Stmt]:
        if token not in _COMPOUND_OPERATORS:
            self._fail(node, f"unexpected operator: {token}")
        lhs_nodes = node.field('left').named_children
        rhs_nodes = node.field('right').named_children
        if len(lhs_nodes) != 1 or len(rhs_nodes) != 1:
            self._fail(node, f"assignment operation {token} requires single-valued expressions")

        lhs, lt, stmts = self._parse_single_expr(scope, fname, lhs_nodes[0], True, "an assignment")
        rhs, rt, ss = self._parse_single_expr(scope, fname, rhs_nodes[0], True, "an assignment")
        stmts.extend(ss)
        self._check_assignable(lhs_nodes[0], scope, lhs)

        symbol = token[:-1]
        op = op_from_token(symbol, lt, rt)
        mismatch = f"types don't match: {lt} {symbol} {describe(rt, rhs)}"
        rc = const_of(rhs)
        if rc is not None and rt.main == BasicType.NONE:
            _, rc, ok = resolve_untyped_consts(op, None, rc, lt, rt)
            if not ok:
                self._fail(node, mismatch)
            if op in (Op.LEFT_SHIFT, Op.RIGHT_SHIFT) or lt.main == BasicType.INT or lt.is_int_vector():
                rt = T.INT
            else:
                rt = T.FLOAT
            rhs = typed_constant(rc, rt)

        result = type_from_binary_op(op, lt, rt, None, rc)
        if result is None:
            self._fail(node, mismatch)
        if result != lt:
            self._fail(node, f"cannot use type {result} as type {lt} in assignment")
        stmts.append(Assign(lhs, Binary(op, lhs, rhs)))
        return stmts

    def _parse_inc_dec(self, scope, fname, node) -> List[Stmt]:
        operand = node.named_children[0]
        token = '++' if node.type == 'inc_statement' else '--'
        lhs, t, stmts = self._parse_single_expr(scope, fname, operand, True, "an assignment")
        self._check_assignable(operand, scope, lhs)
        if t.main not in (BasicType.INT, BasicType.FLOAT):
            self._fail(node, f"invalid operation: {operand.text}{token} (non-numeric type {t})")
        one = C.make_int(1) if t.main == BasicType.INT else C.make_float(1)
        op = Op.ADD if token == '++' else Op.SUB
        stmts.append(Assign(lhs, Binary(op, lhs, typed_constant(one, t))))
        return stmts

    # ========================================================================
    # Declarations
    # ========================================================================

    def _declared_in(self, scope: Scope, name: str) -> bool:
        if scope.declares(name):
            return True
        return scope.outer is None and name in self._uniform_indices

    def _parse_local_var_decl(self, scope, fname, node) -> List[Stmt]:
        stmts = []
        for spec in specs_of(node, 'var_spec'):
            names = spec.fields('name')
            type_node = spec.field('type')
            value_node = spec.field('value')
            declared = self._parse_type(scope, type_node) if type_node is not None else None

            values, types = [], []
            if value_node is not None:
                values, types, ss = self._parse_values(scope, fname, value_node.named_children)
                stmts.extend(ss)
                if len(names) != len(values):
                    self._fail(spec, "the numbers of lhs and rhs don't match")

            for i, n in enumerate(names):
                name = n.text
                if name != '_' and scope.declares(name):
                    self._fail(n, f"{name} redeclared in this block")
                value = None
                typ = declared
                if values:
                    value, t = values[i], types[i]
                    if declared is not None:
                        value = self._assign_value(n, declared, value, t, "variable declaration")
                    else:
                        c = const_of(value)
                        typ = t if t.main != BasicType.NONE else default_type_of(c)
                        if c is not None:
                            value = typed_constant(convert_constant(c, typ), typ)
                if name == '_':
                    if isinstance(value, Call) and isinstance(value.callee, FunctionExpr):
                        stmts.append(ExprStmt(value))
                    continue
                idx = scope.add_named_local_variable(name, typ, n.start_point)
                if value is not None:
                    stmts.append(Assign(LocalVariable(idx), value))
        return stmts

    def _parse_const_decl(self, scope, fname, node) -> List[Stmt]:
        for spec in specs_of(node, 'const_spec'):
            names = spec.fields('name')
            type_node = spec.field('type')
            value_node = spec.field('value')
            if value_node is None:
                self._fail(spec, "missing init expr for const declaration")
            value_nodes = value_node.named_children
            if len(names) != len(value_nodes):
                self._fail(spec, "the numbers of lhs and rhs don't match")
            declared = self._parse_type(scope, type_node) if type_node is not None else None

            for n, v in zip(names, value_nodes):
                value, t, _ = self._parse_single_expr(scope, fname, v, True, "a constant declaration")
                c = const_of(value)
                if c is None:
                    self._fail(v, f"constant expression must be a number but not: {v.text}")
                if declared is not None:
                    if not can_assign(declared, t, c):
                        self._fail(v, f"cannot use type {describe(t, value)} as type {declared} in constant declaration")
                    c = convert_constant(c, declared)
                    t = declared
                if n.text == '_':
                    continue
                if self._declared_in(scope, n.text):
                    self._fail(n, f"{n.text} redeclared in this block")
                scope.consts.append(ConstSymbol(n.text, t, c))
        return []

    def _parse_type_decl(self, scope, fname, node) -> List[Stmt]:
        for spec in specs_of(node, 'type_spec'):
            name = spec.field('name').text
            t = self._parse_type(scope, spec.field('type'))
            if self._declared_in(scope, name):
                self._fail(spec, f"{name} redeclared in this block")
            scope.types.append(TypeAlias(name, t))
        return []

    # ========================================================================
    # Control flow
    # ========================================================================

    def _parse_if(self, scope, fname, node) -> List[Stmt]:
        init = node.field('initializer')
        if init is None:
            return self._parse_if_body(scope, fname, node)

        # if init; cond { } is { init; if cond { } }
        inner = self._new_scope(scope)
        stmts = self._parse_stmts(inner, fname, [init])
        stmts.extend(self._parse_if_body(inner, fname, node))
        inner.ir.stmts = stmts
        self._close_scope(inner)
        return [BlockStmt(inner.ir)]

    def _parse_if_body(self, scope, fname, node) -> List[Stmt]:
        cond, t, stmts = self._parse_single_expr(
            scope, fname, node.field('condition'), True, "an if-condition")
        c = const_of(cond)
        if t.main == BasicType.NONE and c is not None and c.kind == C.ConstKind.BOOL:
            cond = typed_constant(c, T.BOOL)
        elif t.main != BasicType.BOOL:
            self._fail(node, f"if-condition must be bool but: {describe(t, cond)}")

        then_block = self._parse_block(scope, fname, block_statements(node.field('consequence')))
        else_block = None
        alt = node.field('alternative')
        if alt is not None:
            if alt.type == 'block':
                else_block = self._parse_block(scope, fname, block_statements(alt))
            else:
                else_block = self._parse_block(scope, fname, [alt])
        stmts.append(If(cond, then_block, else_block))
        return stmts

    def _parse_for(self, scope, fname, node) -> List[Stmt]:
        clause = None
        for child in node.named_children:
            if child.type == 'for_clause':
                clause = child
        if clause is None:
            self._fail(node, FOR_FORMAT_ERROR)
        init_node = clause.field('initializer')
        cond_node = clause.field('condition')
        post_node = clause.field('update')
        if init_node is None or cond_node is None or post_node is None:
            self._fail(node, FOR_FORMAT_ERROR)
        if init_node.type != 'short_var_declaration' or len(init_node.field('left').named_children) != 1:
            self._fail(node, FOR_FORMAT_ERROR)

        pseudo = self._new_scope(scope)
        init_stmts = self._parse_stmts(pseudo, fname, [init_node])
        if (len(init_stmts) != 1 or len(pseudo.vars) != 1
                or not isinstance(init_stmts[0].rhs, NumberExpr)):
            self._fail(node, FOR_FORMAT_ERROR)
        counter = init_stmts[0].lhs
        var = pseudo.vars[0]
        if var.typ not in (T.INT, T.FLOAT):
            self._fail(node, FOR_FORMAT_ERROR)
        init = init_stmts[0].rhs.value

        cond, ct, ss = self._parse_single_expr(pseudo, fname, cond_node, True, "a for-statement")
        if ss:
            self._fail(node, FOR_FORMAT_ERROR)
        if ct != T.BOOL:
            self._fail(node, f"for-statement's condition must be bool but {describe(ct, cond)}")
        if not isinstance(cond, Binary):
            self._fail(node, FOR_FORMAT_ERROR)
        if cond.op not in COMPARISON_OPS:
            self._fail(node, "for-statement's condition must have one of these operators: "
                             "<, <=, >, >=, ==, and !=")
        if cond.lhs != counter or not isinstance(cond.rhs, NumberExpr):
            self._fail(node, FOR_FORMAT_ERROR)
        end = cond.rhs.value

        post_stmts = self._parse_stmts(pseudo, fname, [post_node])
        if len(post_stmts) != 1 or not isinstance(post_stmts[0], Assign) or post_stmts[0].lhs != counter:
            self._fail(node, FOR_FORMAT_ERROR)
        step = post_stmts[0].rhs
        if not isinstance(step, Binary) or step.lhs != counter or not isinstance(step.rhs, NumberExpr):
            self._fail(node, FOR_FORMAT_ERROR)
        if step.op == Op.ADD:
            delta = step.rhs.value
        elif step.op == Op.SUB:
            delta = C.unary_op('-', step.rhs.value)
        else:
            self._fail(node, "for-statement's post statement must have one of these operators: "
                             "+=, -=, ++, and --")

        if not _loop_terminates(init, end, cond.op, delta):
            self._fail(node, "for-statement must terminate in finite iterations")

        var.for_loop_counter = True
        body = self._parse_block(pseudo, fname, block_statements(node.field('body')))

        # The counter takes its slot in the enclosing block, nameless so
        # it is not visible after the loop
        scope.vars.append(Variable('', var.typ, for_loop_counter=True))
        return [For(var.typ, counter.index, init, end, cond.op, delta, body)]

    def _parse_return(self, scope, fname, node) -> List[Stmt]:
        ctx = self._func_ctx
        value_nodes = node.named_children[0].named_children if node.named_children else []

        if not value_nodes:
            if ctx.return_type.main != BasicType.NONE:
                self._fail(node, "not enough return values")
            if ctx.out_params and not all(p.name for p in ctx.out_params):
                self._fail(node, "not enough return values")
            return [Return()]

        values, types, stmts = self._parse_values(scope, fname, value_nodes)
        expected = len(ctx.out_params)
        if ctx.return_type.main != BasicType.NONE:
            expected = 1
        if len(values) > expected:
            self._fail(node, "too many return values")
        if len(values) < expected:
            self._fail(node, "not enough return values")

        if ctx.return_type.main != BasicType.NONE:
            value = self._assign_value(node, ctx.return_type, values[0], types[0], "return argument")
            stmts.append(Return(value))
            return stmts

        # Named outs may appear on the right: assign through temporaries
        named = any(p.name for p in ctx.out_params)
        outs = []
        for p, value, t in zip(ctx.out_params, values, types):
            value = self._assign_value(node, p.typ, value, t, "return argument")
            if named and len(values) > 1 and const_of(value) is None:
                idx = scope.add_temporary(p.typ)
                stmts.append(Assign(LocalVariable(idx), value))
                value = LocalVariable(idx)
            outs.append(value)
        base = len(ctx.in_params)
        for i, value in enumerate(outs):
            stmts.append(Assign(LocalVariable(base + i), value))
        stmts.append(Return())
        return stmts

    def _parse_expr_stmt(self, scope, fname, node) -> List[Stmt]:
        expr_node = node.named_children[0]
        inner = expr_node
        while inner.type == 'parenthesized_expression':
            inner = inner.named_children[0]
        if inner.type != 'call_expression':
            self._fail(node, "the statement is evaluated but not used")

        exprs, _, stmts = self._parse_expr(scope, fname, expr_node, True)
        for e in exprs:
            if isinstance(e, NumberExpr):
                self._fail(node, "the statement is evaluated but not used")
            if isinstance(e, Call):
                if isinstance(e.callee, BuiltinFuncExpr):
                    self._fail(node, "the statement is evaluated but not used")
                stmts.append(ExprStmt(e))
        return stmts
