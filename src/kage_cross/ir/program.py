"""
Intermediate representation for Kage shader programs.

The analyzer produces these nodes and every back end consumes them. The
IR never refers back to source text: variables are numbered, functions
are referenced by index and constants are already folded.

Design principles:
- Expression and statement nodes are immutable (frozen dataclasses)
- Blocks, functions and the program record are mutable while the
  analyzer fills them, and compare by identity afterwards
- Back ends dispatch on the node class name (``emit_<ClassName>``)

Local variable numbering:
    Within a function, parameters come first (in-params, then out-params),
    then the locals of the root block, then those of nested blocks. A block
    records the index of its first local in ``local_var_index_offset``.
    For the vertex entry point the parameters are the attributes, the
    position and the varyings. For the fragment entry point they are the
    position and the varyings.
"""

import enum
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from .constant import Constant
from .types import Type, BasicType, VEC4
from . import packing


class Unit(enum.Enum):
    """How texture coordinates are addressed."""
    TEXELS = 'texels'
    PIXELS = 'pixels'


class ConstType(enum.Enum):
    """Type hint carried by a number expression."""
    NONE = 'none'
    BOOL = 'bool'
    INT = 'int'
    FLOAT = 'float'


# ============================================================================
# Operators
# ============================================================================

class Op(enum.Enum):
    ADD = 'add'
    SUB = 'sub'
    NOT = 'not'
    COMPONENT_WISE_MUL = 'component_wise_mul'
    MATRIX_MUL = 'matrix_mul'
    DIV = 'div'
    MOD = 'mod'
    LEFT_SHIFT = 'left_shift'
    RIGHT_SHIFT = 'right_shift'
    LESS_THAN = 'less_than'
    LESS_THAN_EQUAL = 'less_than_equal'
    GREATER_THAN = 'greater_than'
    GREATER_THAN_EQUAL = 'greater_than_equal'
    EQUAL = 'equal'
    NOT_EQUAL = 'not_equal'
    VECTOR_EQUAL = 'vector_equal'
    VECTOR_NOT_EQUAL = 'vector_not_equal'
    AND = 'and'
    XOR = 'xor'
    OR = 'or'
    AND_AND = 'and_and'
    OR_OR = 'or_or'

    @property
    def symbol(self) -> str:
        """C-family spelling of the operator."""
        return OP_SYMBOLS[self]


OP_SYMBOLS = {
    Op.ADD: '+',
    Op.SUB: '-',
    Op.NOT: '!',
    Op.COMPONENT_WISE_MUL: '*',
    Op.MATRIX_MUL: '*',
    Op.DIV: '/',
    Op.MOD: '%',
    Op.LEFT_SHIFT: '<<',
    Op.RIGHT_SHIFT: '>>',
    Op.LESS_THAN: '<',
    Op.LESS_THAN_EQUAL: '<=',
    Op.GREATER_THAN: '>',
    Op.GREATER_THAN_EQUAL: '>=',
    Op.EQUAL: '==',
    Op.NOT_EQUAL: '!=',
    Op.VECTOR_EQUAL: '==',
    Op.VECTOR_NOT_EQUAL: '!=',
    Op.AND: '&',
    Op.XOR: '^',
    Op.OR: '|',
    Op.AND_AND: '&&',
    Op.OR_OR: '||',
}

COMPARISON_OPS = (
    Op.LESS_THAN, Op.LESS_THAN_EQUAL, Op.GREATER_THAN, Op.GREATER_THAN_EQUAL,
    Op.EQUAL, Op.NOT_EQUAL,
)

_SIMPLE_TOKEN_OPS = {
    '+': Op.ADD,
    '-': Op.SUB,
    '!': Op.NOT,
    '/': Op.DIV,
    '%': Op.MOD,
    '<<': Op.LEFT_SHIFT,
    '>>': Op.RIGHT_SHIFT,
    '<': Op.LESS_THAN,
    '<=': Op.LESS_THAN_EQUAL,
    '>': Op.GREATER_THAN,
    '>=': Op.GREATER_THAN_EQUAL,
    '&': Op.AND,
    '^': Op.XOR,
    '|': Op.OR,
    '&&': Op.AND_AND,
    '||': Op.OR_OR,
}


def op_from_token(token: str, lhs: Type, rhs: Type) -> Optional[Op]:
    """
    Map a source operator to an IR operator.

    ``*`` becomes MATRIX_MUL when either side is a matrix, ``==``/``!=``
    become the vector variants when either side is a vector.
    """
    if token == '*':
        if lhs.is_matrix() or rhs.is_matrix():
            return Op.MATRIX_MUL
        return Op.COMPONENT_WISE_MUL
    if token in ('==', '!='):
        if lhs.is_vector() or rhs.is_vector():
            return Op.VECTOR_EQUAL if token == '==' else Op.VECTOR_NOT_EQUAL
        return Op.EQUAL if token == '==' else Op.NOT_EQUAL
    return _SIMPLE_TOKEN_OPS.get(token)


# ============================================================================
# Builtin functions
# ============================================================================

class BuiltinFunc(enum.Enum):
    LEN = 'len'
    CAP = 'cap'
    BOOL = 'bool'
    INT = 'int'
    FLOAT = 'float'
    VEC2 = 'vec2'
    VEC3 = 'vec3'
    VEC4 = 'vec4'
    IVEC2 = 'ivec2'
    IVEC3 = 'ivec3'
    IVEC4 = 'ivec4'
    MAT2 = 'mat2'
    MAT3 = 'mat3'
    MAT4 = 'mat4'
    RADIANS = 'radians'
    DEGREES = 'degrees'
    SIN = 'sin'
    COS = 'cos'
    TAN = 'tan'
    ASIN = 'asin'
    ACOS = 'acos'
    ATAN = 'atan'
    ATAN2 = 'atan2'
    POW = 'pow'
    EXP = 'exp'
    LOG = 'log'
    EXP2 = 'exp2'
    LOG2 = 'log2'
    SQRT = 'sqrt'
    INVERSESQRT = 'inversesqrt'
    ABS = 'abs'
    SIGN = 'sign'
    FLOOR = 'floor'
    CEIL = 'ceil'
    FRACT = 'fract'
    MOD = 'mod'
    MIN = 'min'
    MAX = 'max'
    CLAMP = 'clamp'
    MIX = 'mix'
    STEP = 'step'
    SMOOTHSTEP = 'smoothstep'
    LENGTH = 'length'
    DISTANCE = 'distance'
    DOT = 'dot'
    CROSS = 'cross'
    NORMALIZE = 'normalize'
    FACEFORWARD = 'faceforward'
    REFLECT = 'reflect'
    REFRACT = 'refract'
    TRANSPOSE = 'transpose'
    DFDX = 'dfdx'
    DFDY = 'dfdy'
    FWIDTH = 'fwidth'
    DISCARD = 'discard'
    TEXEL_AT = '__texelAt'
    FRONT_FACING = 'frontfacing'


# Recognised by the IR but not reachable from source.
_HIDDEN_BUILTINS = (BuiltinFunc.RADIANS, BuiltinFunc.DEGREES)


def parse_builtin_func(name: str) -> Optional[BuiltinFunc]:
    """Look up a builtin function by its source name."""
    try:
        f = BuiltinFunc(name)
    except ValueError:
        return None
    if f in _HIDDEN_BUILTINS:
        return None
    return f


_SWIZZLE_SETS = ('xyzw', 'rgba', 'stpq')


def is_valid_swizzling(s: str) -> bool:
    """1 to 4 letters, all from the same component set."""
    if not 1 <= len(s) <= 4:
        return False
    for letters in _SWIZZLE_SETS:
        if s[0] in letters:
            return all(c in letters for c in s)
    return False


# ============================================================================
# Expressions
# ============================================================================

@dataclass(frozen=True)
class IRNode:
    """Base class for IR expressions and statements."""


@dataclass(frozen=True)
class Expr(IRNode):
    """Base class for expressions."""

    def children(self) -> Tuple['Expr', ...]:
        return ()


@dataclass(frozen=True)
class Blank(Expr):
    """The blank identifier ``_`` on the left of an assignment."""


@dataclass(frozen=True)
class NumberExpr(Expr):
    value: Constant = None
    const_type: ConstType = ConstType.NONE


@dataclass(frozen=True)
class UniformVariable(Expr):
    index: int = 0


@dataclass(frozen=True)
class TextureVariable(Expr):
    index: int = 0


@dataclass(frozen=True)
class LocalVariable(Expr):
    index: int = 0


@dataclass(frozen=True)
class StructMember(Expr):
    index: int = 0


@dataclass(frozen=True)
class BuiltinFuncExpr(Expr):
    func: BuiltinFunc = None


@dataclass(frozen=True)
class SwizzlingExpr(Expr):
    swizzling: str = ''


@dataclass(frozen=True)
class FunctionExpr(Expr):
    index: int = 0


@dataclass(frozen=True)
class Unary(Expr):
    op: Op = None
    operand: Expr = None

    def children(self):
        return (self.operand,)


@dataclass(frozen=True)
class Binary(Expr):
    op: Op = None
    lhs: Expr = None
    rhs: Expr = None

    def children(self):
        return (self.lhs, self.rhs)


@dataclass(frozen=True)
class Selection(Expr):
    """Ternary ``cond ? then : otherwise``."""
    cond: Expr = None
    then: Expr = None
    otherwise: Expr = None

    def children(self):
        return (self.cond, self.then, self.otherwise)


@dataclass(frozen=True)
class Call(Expr):
    callee: Expr = None
    args: Tuple[Expr, ...] = ()

    def children(self):
        return (self.callee,) + tuple(self.args)


@dataclass(frozen=True)
class FieldSelector(Expr):
    base: Expr = None
    selector: Expr = None

    def children(self):
        return (self.base, self.selector)


@dataclass(frozen=True)
class Index(Expr):
    base: Expr = None
    index: Expr = None

    def children(self):
        return (self.base, self.index)


# ============================================================================
# Statements and blocks
# ============================================================================

@dataclass(eq=False)
class Block:
    """
    A lexical block.

    Attributes:
        local_vars: Types of the locals declared directly in this block.
            A for-loop counter is recorded with the NONE type.
        local_var_index_offset: Index of the first local of this block
        stmts: Statements in order
    """
    local_vars: List[Type] = field(default_factory=list)
    local_var_index_offset: int = 0
    stmts: List['Stmt'] = field(default_factory=list)


@dataclass(frozen=True)
class Stmt(IRNode):
    """Base class for statements."""

    def exprs(self) -> Tuple[Expr, ...]:
        return ()

    def blocks(self) -> Tuple[Block, ...]:
        return ()


@dataclass(frozen=True)
class ExprStmt(Stmt):
    expr: Expr = None

    def exprs(self):
        return (self.expr,)


@dataclass(frozen=True)
class BlockStmt(Stmt):
    block: Block = None

    def blocks(self):
        return (self.block,)


@dataclass(frozen=True)
class Assign(Stmt):
    lhs: Expr = None
    rhs: Expr = None

    def exprs(self):
        return (self.lhs, self.rhs)


@dataclass(frozen=True)
class Init(Stmt):
    """Reset a variable (a named out-parameter) to its zero value."""
    index: int = 0


@dataclass(frozen=True)
class If(Stmt):
    cond: Expr = None
    then_block: Block = None
    else_block: Optional[Block] = None

    def exprs(self):
        return (self.cond,)

    def blocks(self):
        if self.else_block is None:
            return (self.then_block,)
        return (self.then_block, self.else_block)


@dataclass(frozen=True)
class For(Stmt):
    """
    Counting loop ``for v := init; v op end; v += delta``.

    The counter is not part of any block's typed locals, its type is
    carried here.
    """
    var_type: Type = None
    var_index: int = 0
    init: Constant = None
    end: Constant = None
    op: Op = None
    delta: Constant = None
    block: Block = None

    def blocks(self):
        return (self.block,)


@dataclass(frozen=True)
class Continue(Stmt):
    pass


@dataclass(frozen=True)
class Break(Stmt):
    pass


@dataclass(frozen=True)
class Return(Stmt):
    expr: Optional[Expr] = None

    def exprs(self):
        return () if self.expr is None else (self.expr,)


@dataclass(frozen=True)
class Discard(Stmt):
    pass


def iter_exprs(block: Optional[Block]) -> Iterator[Expr]:
    """Yield every expression under a block, depth first."""
    if block is None:
        return
    for stmt in block.stmts:
        for e in stmt.exprs():
            yield from _iter_expr(e)
        for b in stmt.blocks():
            yield from iter_exprs(b)


def _iter_expr(expr: Expr) -> Iterator[Expr]:
    yield expr
    for e in expr.children():
        yield from _iter_expr(e)


# ============================================================================
# Functions and the program record
# ============================================================================

@dataclass(eq=False)
class Func:
    index: int = 0
    in_params: List[Type] = field(default_factory=list)
    out_params: List[Type] = field(default_factory=list)
    return_type: Type = field(default_factory=Type)
    block: Optional[Block] = None


_FNV128_OFFSET = 0x6c62272e07bb014262b821756295c58d
_FNV128_PRIME = 0x0000000001000000000000000000013b
_MASK128 = (1 << 128) - 1


def calc_source_hash(source: bytes) -> bytes:
    """FNV-1a 128-bit digest of the whitespace-trimmed source."""
    h = _FNV128_OFFSET
    for b in source.strip():
        h ^= b
        h = (h * _FNV128_PRIME) & _MASK128
    return h.to_bytes(16, 'big')


@dataclass(eq=False)
class Program:
    """
    A compiled shader program.

    Attributes:
        uniform_names: Source names of the uniforms, parallel to ``uniforms``
        uniforms: Uniform types in declaration order (``__`` names first)
        texture_count: Number of source textures
        attributes: Vertex attribute types
        varyings: Types passed from the vertex to the fragment entry point,
            excluding the position
        funcs: User functions
        vertex_func: Body of the vertex entry point, if any
        fragment_func: Body of the fragment entry point, if any
        unit: Texture addressing unit
        source_hash: FNV-1a 128 digest of the source
    """
    uniform_names: List[str] = field(default_factory=list)
    uniforms: List[Type] = field(default_factory=list)
    texture_count: int = 0
    attributes: List[Type] = field(default_factory=list)
    varyings: List[Type] = field(default_factory=list)
    funcs: List[Func] = field(default_factory=list)
    vertex_func: Optional[Block] = None
    fragment_func: Optional[Block] = None
    unit: Unit = Unit.TEXELS
    source_hash: bytes = bytes(16)

    _uniform_offsets: Optional[List[int]] = field(default=None, init=False, repr=False)
    _uniform_factors: Optional[List[int]] = field(default=None, init=False, repr=False)

    @property
    def source_hash_hex(self) -> str:
        return self.source_hash.hex()

    def func_by_index(self, index: int) -> Optional[Func]:
        for f in self.funcs:
            if f.index == index:
                return f
        return None

    def reachable_funcs(self, block: Optional[Block]) -> List[Func]:
        """Functions transitively called from ``block``, sorted by index."""
        by_index: Dict[int, Func] = {f.index: f for f in self.funcs}
        visited = set()
        pending = [block]
        while pending:
            b = pending.pop()
            for e in iter_exprs(b):
                if isinstance(e, FunctionExpr) and e.index not in visited:
                    visited.add(e.index)
                    pending.append(by_index[e.index].block)
        return [by_index[i] for i in sorted(visited)]

    def uniform_offsets_in_dwords(self) -> List[int]:
        """HLSL constant buffer offsets of the uniforms, computed once."""
        if self._uniform_offsets is None:
            self._uniform_offsets = packing.uniform_offsets_in_dwords(self.uniforms)
        return self._uniform_offsets

    # ------------------------------------------------------------------------
    # Uniform filtering
    # ------------------------------------------------------------------------

    def _reachable_uniforms(self, block: Optional[Block], found: set):
        by_index = {f.index: f for f in self.funcs}
        visited = set()
        pending = [block]
        while pending:
            b = pending.pop()
            for e in iter_exprs(b):
                if isinstance(e, UniformVariable):
                    found.add(e.index)
                elif isinstance(e, FunctionExpr) and e.index not in visited:
                    visited.add(e.index)
                    pending.append(by_index[e.index].block)

    def filter_uniform_variables(self, values: List[int]) -> None:
        """
        Zero the DWORDs of uniforms no entry point can reach.

        ``values`` is the tightly packed uniform upload and is modified in
        place.
        """
        if self._uniform_factors is None:
            reachable = set()
            self._reachable_uniforms(self.vertex_func, reachable)
            self._reachable_uniforms(self.fragment_func, reachable)
            factors = [0] * len(values)
            head = 0
            for i, t in enumerate(self.uniforms):
                n = t.dword_count()
                if i in reachable:
                    for j in range(head, min(head + n, len(factors))):
                        factors[j] = 1
                head += n
            self._uniform_factors = factors

        for i, factor in enumerate(self._uniform_factors):
            values[i] *= factor

    # ------------------------------------------------------------------------
    # Local variables
    # ------------------------------------------------------------------------

    def param_types(self, top_block: Block) -> List[Type]:
        """Pseudo parameters of the function whose root block is given."""
        if self.vertex_func is not None and top_block is self.vertex_func:
            return list(self.attributes) + [VEC4] + list(self.varyings)
        if self.fragment_func is not None and top_block is self.fragment_func:
            return [VEC4] + list(self.varyings)
        for f in self.funcs:
            if f.block is top_block:
                return list(f.in_params) + list(f.out_params)
        return []

    def local_variable_type(self, top_block: Block, block: Block, index: int) -> Type:
        """
        Type of local variable ``index`` as seen from ``block``, which is
        ``top_block`` or nested in it.
        """
        params = self.param_types(top_block)
        if index < len(params):
            return params[index]
        chain = _block_chain(top_block, block)
        if chain is None:
            raise ValueError("block is not nested in the given top block")
        for b in reversed(chain):
            offset = b.local_var_index_offset
            if offset <= index < offset + len(b.local_vars):
                return b.local_vars[index - offset]
        raise IndexError(f"local variable index out of range: {index}")


def _block_chain(top: Block, target: Block) -> Optional[List[Block]]:
    if top is target:
        return [top]
    for stmt in top.stmts:
        for b in stmt.blocks():
            chain = _block_chain(b, target)
            if chain is not None:
                return [top] + chain
    return None


__all__ = [
    'Unit', 'ConstType', 'Op', 'OP_SYMBOLS', 'COMPARISON_OPS', 'op_from_token',
    'BuiltinFunc', 'parse_builtin_func', 'is_valid_swizzling',
    'IRNode', 'Expr', 'Blank', 'NumberExpr', 'UniformVariable', 'TextureVariable',
    'LocalVariable', 'StructMember', 'BuiltinFuncExpr', 'SwizzlingExpr',
    'FunctionExpr', 'Unary', 'Binary', 'Selection', 'Call', 'FieldSelector', 'Index',
    'Block', 'Stmt', 'ExprStmt', 'BlockStmt', 'Assign', 'Init', 'If', 'For',
    'Continue', 'Break', 'Return', 'Discard', 'iter_exprs',
    'Func', 'Program', 'calc_source_hash', 'BasicType',
]
