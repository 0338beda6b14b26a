"""
Shared shader code generation.

Every back end walks the same IR: expressions are emitted with the
fewest parentheses C operator precedence allows, statements come out one
per line with the current indentation, and block locals are declared
zero-initialized at the top of their block. Subclasses supply the type
names, literals, variable names and builtin calls of their language.

Design:
- ``emit`` dispatches on the node class to ``emit_<ClassName>``
- Expression emitters take the precedence of the enclosing operator
- ``type_of`` recovers expression types for targets whose operators
  depend on them (matrix products, vector comparisons)
"""

from typing import Dict, List, Optional

from ..ir import constant as C
from ..ir import types as T
from ..ir.constant import Constant, ConstKind
from ..ir.program import (
    Assign, Binary, Block, BlockStmt, Break, BuiltinFunc, BuiltinFuncExpr, Call,
    COMPARISON_OPS, ConstType, Continue, Discard, Expr, ExprStmt, FieldSelector,
    For, Func, FunctionExpr, If, Index, Init, LocalVariable, NumberExpr, Op,
    Program, Return, Selection, StructMember, TextureVariable, Unary, UniformVariable,
)
from ..ir.types import BasicType, Type


# Operator precedence levels (higher = tighter binding)
PRECEDENCE = {
    # Multiplicative
    '*': 13, '/': 13, '%': 13,
    # Additive
    '+': 12, '-': 12,
    # Shift
    '<<': 11, '>>': 11,
    # Relational
    '<': 10, '<=': 10, '>': 10, '>=': 10,
    # Equality
    '==': 9, '!=': 9,
    # Bitwise
    '&': 8,
    '^': 7,
    '|': 6,
    # Logical
    '&&': 5,
    '||': 4,
    # Ternary
    '?:': 3,
}
UNARY_PRECEDENCE = 14
POSTFIX_PRECEDENCE = 15

_BOOL_RESULT_OPS = COMPARISON_OPS + (
    Op.VECTOR_EQUAL, Op.VECTOR_NOT_EQUAL, Op.AND_AND, Op.OR_OR, Op.NOT)

_CONSTRUCTOR_TYPES = {
    BuiltinFunc.BOOL: T.BOOL,
    BuiltinFunc.INT: T.INT,
    BuiltinFunc.FLOAT: T.FLOAT,
    BuiltinFunc.VEC2: T.VEC2,
    BuiltinFunc.VEC3: T.VEC3,
    BuiltinFunc.VEC4: T.VEC4,
    BuiltinFunc.IVEC2: T.IVEC2,
    BuiltinFunc.IVEC3: T.IVEC3,
    BuiltinFunc.IVEC4: T.IVEC4,
    BuiltinFunc.MAT2: T.MAT2,
    BuiltinFunc.MAT3: T.MAT3,
    BuiltinFunc.MAT4: T.MAT4,
}

_CONST_TYPES = {
    ConstType.BOOL: T.BOOL,
    ConstType.INT: T.INT,
    ConstType.FLOAT: T.FLOAT,
}

_KIND_TYPES = {
    ConstKind.BOOL: T.BOOL,
    ConstKind.INT: T.INT,
    ConstKind.FLOAT: T.FLOAT,
}


def normalize_swizzling(s: str) -> str:
    """Rewrite ``stpq`` swizzles as ``xyzw`` for targets without them."""
    return s.translate(str.maketrans('stpq', 'xyzw'))


def const_type_of(t: Type) -> ConstType:
    if t.main == BasicType.INT:
        return ConstType.INT
    if t.main == BasicType.FLOAT:
        return ConstType.FLOAT
    if t.main == BasicType.BOOL:
        return ConstType.BOOL
    return ConstType.NONE


class ShaderEmitter:
    """
    Base class of the GLSL, HLSL and MSL generators.

    Configuration:
        indent_size: Number of spaces per indentation level (default: 4)
    """

    # Filled in by the subclasses
    type_names: Dict[BasicType, str] = {}
    builtin_names: Dict[BuiltinFunc, str] = {}

    def __init__(self, program: Program, indent_size: int = 4):
        self.program = program
        self.indent_size = indent_size
        self.indent_level = 0
        self._local_types: Dict[int, Type] = {}

    def indent(self) -> str:
        """Get current indentation string."""
        return ' ' * (self.indent_level * self.indent_size)

    def emit(self, node, parent_precedence: int = 0) -> str:
        """
        Emit code for an IR expression or statement.

        Args:
            node: IR node
            parent_precedence: Precedence of the enclosing operator, used
                to decide on parentheses

        Returns:
            Generated code
        """
        method = getattr(self, f'emit_{node.__class__.__name__}', self.emit_generic)
        if isinstance(node, Expr):
            return method(node, parent_precedence)
        return method(node)

    def emit_generic(self, node, parent_precedence: int = 0) -> str:
        raise NotImplementedError(
            f"{type(self).__name__} does not support {node.__class__.__name__}")

    # ========================================================================
    # Types and Literals
    # ========================================================================

    def type_name(self, t: Type) -> str:
        name = self.type_names.get(t.main)
        if name is None:
            raise ValueError(f"unexpected type: {t}")
        return name

    def var_decl(self, t: Type, name: str) -> str:
        """Declarator of a variable, C style arrays by default."""
        if t.main == BasicType.ARRAY:
            return f"{self.type_name(t.elem)} {name}[{t.length}]"
        return f"{self.type_name(t)} {name}"

    def zero_value(self, t: Type) -> Optional[str]:
        """
        Zero value expression of a type.

        Returns:
            The expression, or None for arrays which are then cleared
            element by element
        """
        raise NotImplementedError

    def number_literal(self, value: Constant, const_type: ConstType) -> str:
        if const_type == ConstType.INT:
            value = C.to_int(value) or value
        elif const_type == ConstType.FLOAT:
            value = C.to_float(value) or value
        return C.to_number_literal(value)

    # ========================================================================
    # Variables
    # ========================================================================

    def local_name(self, index: int) -> str:
        return f"l{index}"

    def uniform_name(self, index: int) -> str:
        return f"U{index}"

    def texture_name(self, index: int) -> str:
        return f"T{index}"

    def function_name(self, index: int) -> str:
        return f"F{index}"

    def enter_function(self, top_block: Block, params: List[Type]) -> None:
        """Record the types of every local of the function being emitted."""
        types = dict(enumerate(params))
        self._collect_locals(top_block, types)
        self._local_types = types

    def _collect_locals(self, block: Block, out: Dict[int, Type]) -> None:
        for i, t in enumerate(block.local_vars):
            if t.main != BasicType.NONE:
                out[block.local_var_index_offset + i] = t
        for stmt in block.stmts:
            if isinstance(stmt, For):
                out[stmt.var_index] = stmt.var_type
            for b in stmt.blocks():
                self._collect_locals(b, out)

    # ========================================================================
    # Expression Types
    # ========================================================================

    def type_of(self, expr: Expr) -> Type:
        """Type of an already checked expression."""
        if isinstance(expr, NumberExpr):
            t = _CONST_TYPES.get(expr.const_type)
            if t is None:
                t = _KIND_TYPES[expr.value.kind]
            return t
        if isinstance(expr, UniformVariable):
            return self.program.uniforms[expr.index]
        if isinstance(expr, TextureVariable):
            return T.TEXTURE
        if isinstance(expr, LocalVariable):
            return self._local_types.get(expr.index, T.NONE)
        if isinstance(expr, Unary):
            if expr.op == Op.NOT:
                return T.BOOL
            return self.type_of(expr.operand)
        if isinstance(expr, Binary):
            return self._binary_type(expr)
        if isinstance(expr, Selection):
            return self.type_of(expr.then)
        if isinstance(expr, Call):
            return self._call_type(expr)
        if isinstance(expr, FieldSelector):
            base = self.type_of(expr.base)
            n = len(expr.selector.swizzling)
            if base.is_int_vector():
                return T.INT if n == 1 else T.int_vector_of(n)
            return T.FLOAT if n == 1 else T.float_vector_of(n)
        if isinstance(expr, Index):
            base = self.type_of(expr.base)
            if base.main == BasicType.ARRAY:
                return base.elem
            if base.is_float_vector():
                return T.FLOAT
            if base.is_int_vector():
                return T.INT
            if base.is_matrix():
                return T.vector_of_matrix(base)
        return T.NONE

    def _binary_type(self, expr: Binary) -> Type:
        if expr.op in _BOOL_RESULT_OPS:
            return T.BOOL
        lt = self.type_of(expr.lhs)
        rt = self.type_of(expr.rhs)
        if expr.op in (Op.LEFT_SHIFT, Op.RIGHT_SHIFT):
            return lt
        if expr.op == Op.MATRIX_MUL:
            if lt.is_vector():
                return lt
            if rt.is_vector():
                return rt
            return lt if lt.is_matrix() else rt
        if lt.is_scalar():
            return rt
        return lt

    def _call_type(self, expr: Call) -> Type:
        callee = expr.callee
        if isinstance(callee, FunctionExpr):
            f = self.program.func_by_index(callee.index)
            return f.return_type if f is not None else T.NONE
        if not isinstance(callee, BuiltinFuncExpr):
            return T.NONE
        func = callee.func
        if func in _CONSTRUCTOR_TYPES:
            return _CONSTRUCTOR_TYPES[func]
        if func in (BuiltinFunc.LENGTH, BuiltinFunc.DISTANCE, BuiltinFunc.DOT):
            return T.FLOAT
        if func == BuiltinFunc.CROSS:
            return T.VEC3
        if func == BuiltinFunc.TEXEL_AT:
            return T.VEC4
        if func == BuiltinFunc.FRONT_FACING:
            return T.BOOL
        if func in (BuiltinFunc.LEN, BuiltinFunc.CAP):
            return T.INT
        if func == BuiltinFunc.STEP:
            return self.type_of(expr.args[1])
        if func == BuiltinFunc.SMOOTHSTEP:
            return self.type_of(expr.args[2])
        if expr.args:
            return self.type_of(expr.args[0])
        return T.NONE

    # ========================================================================
    # Expressions
    # ========================================================================

    @staticmethod
    def _wrap(text: str, precedence: int, parent_precedence: int) -> str:
        if precedence < parent_precedence:
            return f"({text})"
        return text

    def emit_args(self, args) -> str:
        return ', '.join(self.emit(a) for a in args)

    def emit_NumberExpr(self, node: NumberExpr, parent_precedence: int = 0) -> str:
        text = self.number_literal(node.value, node.const_type)
        if text.startswith('-') and parent_precedence >= UNARY_PRECEDENCE:
            return f"({text})"
        return text

    def emit_UniformVariable(self, node: UniformVariable, parent_precedence: int = 0) -> str:
        return self.uniform_name(node.index)

    def emit_TextureVariable(self, node: TextureVariable, parent_precedence: int = 0) -> str:
        return self.texture_name(node.index)

    def emit_LocalVariable(self, node: LocalVariable, parent_precedence: int = 0) -> str:
        return self.local_name(node.index)

    def emit_StructMember(self, node: StructMember, parent_precedence: int = 0) -> str:
        return f"M{node.index}"

    def emit_FunctionExpr(self, node: FunctionExpr, parent_precedence: int = 0) -> str:
        return self.function_name(node.index)

    def emit_Unary(self, node: Unary, parent_precedence: int = 0) -> str:
        operand = self.emit(node.operand, UNARY_PRECEDENCE)
        if operand[0] in '+-!':
            operand = f"({operand})"
        return self._wrap(f"{node.op.symbol}{operand}", UNARY_PRECEDENCE, parent_precedence)

    def emit_Binary(self, node: Binary, parent_precedence: int = 0) -> str:
        op = node.op.symbol
        prec = PRECEDENCE[op]
        # Right operand binds one level tighter to keep left associativity
        left = self.emit(node.lhs, prec)
        right = self.emit(node.rhs, prec + 1)
        return self._wrap(f"{left} {op} {right}", prec, parent_precedence)

    def emit_Selection(self, node: Selection, parent_precedence: int = 0) -> str:
        prec = PRECEDENCE['?:']
        cond = self.emit(node.cond, prec + 1)
        then = self.emit(node.then, prec)
        otherwise = self.emit(node.otherwise, prec)
        return self._wrap(f"{cond} ? {then} : {otherwise}", prec, parent_precedence)

    def emit_Call(self, node: Call, parent_precedence: int = 0) -> str:
        callee = node.callee
        if isinstance(callee, BuiltinFuncExpr):
            return self.builtin_call(callee.func, node.args)
        if isinstance(callee, FunctionExpr):
            return self.user_call(callee.index, node.args)
        raise ValueError(f"unexpected callee: {callee}")

    def builtin_call(self, func: BuiltinFunc, args) -> str:
        if func in _CONSTRUCTOR_TYPES:
            return f"{self.type_name(_CONSTRUCTOR_TYPES[func])}({self.emit_args(args)})"
        name = self.builtin_names.get(func, func.value)
        return f"{name}({self.emit_args(args)})"

    def user_call(self, index: int, args) -> str:
        text = ", ".join(self.context_args() + [self.emit(a) for a in args])
        return f"{self.function_name(index)}({text})"

    def swizzle(self, s: str) -> str:
        return s

    def emit_FieldSelector(self, node: FieldSelector, parent_precedence: int = 0) -> str:
        base = self.emit(node.base, POSTFIX_PRECEDENCE)
        return f"{base}.{self.swizzle(node.selector.swizzling)}"

    def emit_Index(self, node: Index, parent_precedence: int = 0) -> str:
        return f"{self.emit(node.base, POSTFIX_PRECEDENCE)}[{self.emit(node.index)}]"

    # ========================================================================
    # Statements
    # ========================================================================

    def emit_block(self, block: Block) -> str:
        """Braced block starting on the current line."""
        self.indent_level += 1
        body = self.emit_block_body(block)
        self.indent_level -= 1
        return "{\n" + body + self.indent() + "}\n"

    def emit_block_body(self, block: Block) -> str:
        result = ""
        for i, t in enumerate(block.local_vars):
            # For-loop counters are declared by the loop
            if t.main == BasicType.NONE:
                continue
            result += self.local_declaration(t, block.local_var_index_offset + i)
        for stmt in block.stmts:
            result += self.emit(stmt)
        return result

    def local_declaration(self, t: Type, index: int) -> str:
        name = self.local_name(index)
        zero = self.zero_value(t)
        if zero is not None:
            return f"{self.indent()}{self.var_decl(t, name)} = {zero};\n"
        result = f"{self.indent()}{self.var_decl(t, name)};\n"
        return result + self._clear_elements(t, name)

    def _clear_elements(self, t: Type, name: str) -> str:
        elem = self.zero_value(t.elem)
        return ''.join(f"{self.indent()}{name}[{k}] = {elem};\n" for k in range(t.length))

    def emit_ExprStmt(self, node: ExprStmt) -> str:
        return f"{self.indent()}{self.emit(node.expr)};\n"

    def emit_BlockStmt(self, node: BlockStmt) -> str:
        return self.indent() + self.emit_block(node.block)

    def emit_Assign(self, node: Assign) -> str:
        return f"{self.indent()}{self.emit(node.lhs)} = {self.emit(node.rhs)};\n"

    def emit_Init(self, node: Init) -> str:
        t = self._local_types[node.index]
        name = self.local_name(node.index)
        zero = self.zero_value(t)
        if zero is not None:
            return f"{self.indent()}{name} = {zero};\n"
        return self._clear_elements(t, name)

    def emit_If(self, node: If) -> str:
        result = f"{self.indent()}if ({self.emit(node.cond)}) "
        result += self.emit_block(node.then_block)
        if node.else_block is not None:
            else_block = node.else_block
            # else-if chains come as a block holding a single if
            if (not else_block.local_vars and len(else_block.stmts) == 1
                    and isinstance(else_block.stmts[0], If)):
                result += f"{self.indent()}else " + self.emit(else_block.stmts[0]).lstrip()
            else:
                result += f"{self.indent()}else " + self.emit_block(else_block)
        return result

    def emit_For(self, node: For) -> str:
        ct = const_type_of(node.var_type)
        name = self.local_name(node.var_index)
        init = self.number_literal(node.init, ct)
        end = self.number_literal(node.end, ct)
        delta = C.to_int(node.delta) if ct == ConstType.INT else C.to_float(node.delta)
        if C.sign(delta) < 0:
            update = f"{name} -= {self.number_literal(C.unary_op('-', delta), ct)}"
        else:
            update = f"{name} += {self.number_literal(delta, ct)}"
        decl = self.var_decl(node.var_type, name)
        result = f"{self.indent()}for ({decl} = {init}; {name} {node.op.symbol} {end}; {update}) "
        return result + self.emit_block(node.block)

    def emit_Continue(self, node: Continue) -> str:
        return f"{self.indent()}continue;\n"

    def emit_Break(self, node: Break) -> str:
        return f"{self.indent()}break;\n"

    def emit_Return(self, node: Return) -> str:
        if node.expr is None:
            return f"{self.indent()}return;\n"
        return f"{self.indent()}return {self.emit(node.expr)};\n"

    def emit_Discard(self, node: Discard) -> str:
        return f"{self.indent()}discard;\n"

    # ========================================================================
    # Functions
    # ========================================================================

    def param_decl(self, t: Type, index: int, out: bool) -> str:
        raise NotImplementedError

    def context_params(self) -> List[str]:
        """Extra leading parameters of every user function."""
        return []

    def context_args(self) -> List[str]:
        return []

    def func_signature(self, f: Func) -> str:
        params = self.context_params()
        index = 0
        for t in f.in_params:
            params.append(self.param_decl(t, index, False))
            index += 1
        for t in f.out_params:
            params.append(self.param_decl(t, index, True))
            index += 1
        ret = 'void' if f.return_type.main == BasicType.NONE else self.type_name(f.return_type)
        return f"{ret} {self.function_name(f.index)}({', '.join(params) or self.empty_params})"

    empty_params = 'void'

    def emit_function(self, f: Func) -> str:
        """Full definition of a user function."""
        self.enter_function(f.block, list(f.in_params) + list(f.out_params))
        return self.func_signature(f) + " " + self.emit_block(f.block)

    def entry_funcs(self, block: Optional[Block]) -> List[Func]:
        """Functions to emit for an entry point, all of them without one."""
        if block is None:
            return list(self.program.funcs)
        return self.program.reachable_funcs(block)

    def emit_functions(self, funcs: List[Func]) -> List[str]:
        """Prototypes then definitions, as separate chunks."""
        if not funcs:
            return []
        chunks = ['\n'.join(self.func_signature(f) + ';' for f in funcs)]
        for f in funcs:
            chunks.append(self.emit_function(f).rstrip('\n'))
        return chunks
