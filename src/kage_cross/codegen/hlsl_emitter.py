"""
HLSL code generator (shader model 4 and later).

Matrices keep the column vectors of the source language as HLSL rows, so
every HLSL matrix is the transpose of its source counterpart. Matrix
products are emitted as ``mul(rhs, lhs)`` and the uniform upload is
transposed by ``adjust_uniforms`` to match.

Uniforms live in one ``cbuffer`` at the offsets computed by
``uniform_offsets_in_dwords``. The vertex stage writes a ``Varyings``
struct which the pixel stage reads back.
"""

from typing import List, Tuple

from ..ir.program import Binary, BuiltinFunc, Discard, Op, Program, Return, Unit
from ..ir.types import BasicType, Type
from .common import ShaderEmitter, normalize_swizzling, PRECEDENCE, UNARY_PRECEDENCE

_FLOAT_TYPES = ('float', 'float2', 'float3', 'float4')


def _mod_helpers() -> str:
    defs = []
    for t in _FLOAT_TYPES:
        defs.append(f"{t} mod({t} x, {t} y) {{\n    return x - y * floor(x / y);\n}}")
        if t != 'float':
            defs.append(f"{t} mod({t} x, float y) {{\n    return x - y * floor(x / y);\n}}")
    return '\n\n'.join(defs)


def _matrix_helpers() -> str:
    defs = []
    for n in (2, 3, 4):
        components = ', '.join('x' if i == j else '0' for i in range(n) for j in range(n))
        defs.append(f"float{n}x{n} float{n}x{n}FromScalar(float x) {{\n"
                    f"    return float{n}x{n}({components});\n}}")
    return '\n\n'.join(defs)


PRELUDE = _mod_helpers() + "\n\n" + _matrix_helpers()

_VECTOR_CONSTRUCTORS = (
    BuiltinFunc.VEC2, BuiltinFunc.VEC3, BuiltinFunc.VEC4,
    BuiltinFunc.IVEC2, BuiltinFunc.IVEC3, BuiltinFunc.IVEC4,
)
_MATRIX_CONSTRUCTORS = (BuiltinFunc.MAT2, BuiltinFunc.MAT3, BuiltinFunc.MAT4)


def _attribute_semantic(i: int) -> str:
    if i == 0:
        return 'POSITION'
    if i == 1:
        return 'TEXCOORD'
    return f"COLOR{i - 2}"


def _varying_semantic(i: int) -> str:
    if i == 0:
        return 'TEXCOORD'
    return f"COLOR{i - 1}"


def _packoffset(offset: int) -> str:
    register, component = divmod(offset, 4)
    if component == 0:
        return f"packoffset(c{register})"
    return f"packoffset(c{register}.{'xyzw'[component]})"


class HLSLEmitter(ShaderEmitter):
    """
    HLSL generator.

    Usage:
        vertex, pixel, offsets = HLSLEmitter(program).emit_program()
    """

    type_names = {
        BasicType.BOOL: 'bool',
        BasicType.INT: 'int',
        BasicType.FLOAT: 'float',
        BasicType.VEC2: 'float2',
        BasicType.VEC3: 'float3',
        BasicType.VEC4: 'float4',
        BasicType.IVEC2: 'int2',
        BasicType.IVEC3: 'int3',
        BasicType.IVEC4: 'int4',
        BasicType.MAT2: 'float2x2',
        BasicType.MAT3: 'float3x3',
        BasicType.MAT4: 'float4x4',
    }
    builtin_names = {
        BuiltinFunc.FRACT: 'frac',
        BuiltinFunc.MIX: 'lerp',
        BuiltinFunc.INVERSESQRT: 'rsqrt',
        BuiltinFunc.DFDX: 'ddx',
        BuiltinFunc.DFDY: 'ddy',
    }
    empty_params = ''

    def __init__(self, program: Program, indent_size: int = 4):
        super().__init__(program, indent_size)
        self._entry = None

    def zero_value(self, t: Type):
        if t.main == BasicType.ARRAY:
            return None
        if t.main == BasicType.BOOL:
            return 'false'
        if t.main == BasicType.INT:
            return '0'
        if t.main == BasicType.FLOAT:
            return '0.0'
        return f"({self.type_name(t)})(0)"

    def param_decl(self, t: Type, index: int, out: bool) -> str:
        qualifier = 'out' if out else 'in'
        return f"{qualifier} {self.var_decl(t, self.local_name(index))}"

    def swizzle(self, s: str) -> str:
        return normalize_swizzling(s)

    # ========================================================================
    # Variables
    # ========================================================================

    def local_name(self, index: int) -> str:
        if self._entry == 'vertex':
            attrs = len(self.program.attributes)
            if index < attrs:
                return f"A{index}"
            if index == attrs:
                return 'varyings.Position'
            if index < attrs + 1 + len(self.program.varyings):
                return f"varyings.M{index - attrs - 1}"
        elif self._entry == 'pixel':
            if index == 0:
                return 'varyings.Position'
            if index < 1 + len(self.program.varyings):
                return f"varyings.M{index - 1}"
        return super().local_name(index)

    # ========================================================================
    # Expressions
    # ========================================================================

    def emit_Binary(self, node: Binary, parent_precedence: int = 0) -> str:
        if node.op == Op.MATRIX_MUL:
            lt = self.type_of(node.lhs)
            rt = self.type_of(node.rhs)
            if not lt.is_scalar() and not rt.is_scalar():
                return f"mul({self.emit(node.rhs)}, {self.emit(node.lhs)})"
        if node.op in (Op.VECTOR_EQUAL, Op.VECTOR_NOT_EQUAL):
            text = f"all({self.emit(node.lhs, PRECEDENCE['=='])} == {self.emit(node.rhs, PRECEDENCE['=='] + 1)})"
            if node.op == Op.VECTOR_NOT_EQUAL:
                return self._wrap(f"!{text}", UNARY_PRECEDENCE, parent_precedence)
            return text
        return super().emit_Binary(node, parent_precedence)

    def builtin_call(self, func: BuiltinFunc, args) -> str:
        if func == BuiltinFunc.TEXEL_AT:
            texture, uv = args
            if self.program.unit == Unit.PIXELS:
                return f"{self.emit(texture)}.Load(int3({self.emit(uv)}, 0))"
            return f"{self.emit(texture)}.Sample(samp, {self.emit(uv)})"
        if func == BuiltinFunc.FRONT_FACING:
            return 'frontFacing'
        if func in _VECTOR_CONSTRUCTORS and len(args) == 1:
            t = self.type_names[BasicType(func.value)]
            return f"({t})({self.emit(args[0])})"
        if func in _MATRIX_CONSTRUCTORS and len(args) == 1:
            t = self.type_names[BasicType(func.value)]
            if self.type_of(args[0]).is_scalar():
                return f"{t}FromScalar({self.emit(args[0])})"
            return f"({t})({self.emit(args[0])})"
        return super().builtin_call(func, args)

    # ========================================================================
    # Statements
    # ========================================================================

    def emit_Return(self, node: Return) -> str:
        if self._entry == 'vertex':
            return f"{self.indent()}return varyings;\n"
        return super().emit_Return(node)

    def emit_Discard(self, node: Discard) -> str:
        # Followed by a zero color return
        return (f"{self.indent()}discard;\n"
                f"{self.indent()}return float4(0.0, 0.0, 0.0, 0.0);\n")

    # ========================================================================
    # Top-Level
    # ========================================================================

    def _declarations(self) -> List[str]:
        p = self.program
        chunks = []

        lines = ["struct Varyings {", "    float4 Position : SV_POSITION;"]
        for i, t in enumerate(p.varyings):
            lines.append(f"    {self.var_decl(t, f'M{i}')} : {_varying_semantic(i)};")
        lines.append("};")
        chunks.append('\n'.join(lines))

        if p.uniforms:
            offsets = p.uniform_offsets_in_dwords()
            lines = ["cbuffer Uniforms : register(b0) {"]
            for i, (t, offset) in enumerate(zip(p.uniforms, offsets)):
                lines.append(f"    {self.var_decl(t, self.uniform_name(i))} : {_packoffset(offset)};")
            lines.append("}")
            chunks.append('\n'.join(lines))

        if p.texture_count:
            lines = [f"Texture2D {self.texture_name(i)} : register(t{i});"
                     for i in range(p.texture_count)]
            if p.unit == Unit.TEXELS:
                lines.append("SamplerState samp : register(s0);")
            chunks.append('\n'.join(lines))

        chunks.append("static bool frontFacing = false;")
        chunks.append(PRELUDE)
        return chunks

    def _emit_vertex_main(self) -> str:
        p = self.program
        block = p.vertex_func
        self.enter_function(block, p.param_types(block))
        self._entry = 'vertex'
        params = [f"in {self.var_decl(t, f'A{i}')} : {_attribute_semantic(i)}"
                  for i, t in enumerate(p.attributes)]
        self.indent_level = 1
        body = f"{self.indent()}Varyings varyings;\n" + self.emit_block_body(block)
        if not block.stmts or not isinstance(block.stmts[-1], Return):
            body += f"{self.indent()}return varyings;\n"
        self.indent_level = 0
        self._entry = None
        return f"Varyings VSMain({', '.join(params)}) {{\n" + body + "}"

    def _emit_pixel_main(self) -> str:
        p = self.program
        block = p.fragment_func
        self.enter_function(block, p.param_types(block))
        self._entry = 'pixel'
        self.indent_level = 1
        body = f"{self.indent()}frontFacing = isFrontFace;\n" + self.emit_block_body(block)
        self.indent_level = 0
        self._entry = None
        return ("float4 PSMain(Varyings varyings, bool isFrontFace : SV_IsFrontFace) : SV_TARGET {\n"
                + body + "}")

    def emit_vertex(self) -> str:
        p = self.program
        chunks = self._declarations()
        chunks += self.emit_functions(self.entry_funcs(p.vertex_func))
        if p.vertex_func is not None:
            chunks.append(self._emit_vertex_main())
        return '\n\n'.join(chunks) + '\n'

    def emit_pixel(self) -> str:
        p = self.program
        chunks = self._declarations()
        chunks += self.emit_functions(self.entry_funcs(p.fragment_func))
        if p.fragment_func is not None:
            chunks.append(self._emit_pixel_main())
        return '\n\n'.join(chunks) + '\n'

    def emit_program(self) -> Tuple[str, str, List[int]]:
        """
        Generate both stages.

        Returns:
            (vertex source, pixel source, uniform offsets in DWORDs)
        """
        return self.emit_vertex(), self.emit_pixel(), list(self.program.uniform_offsets_in_dwords())


def compile_hlsl(program: Program) -> Tuple[str, str, List[int]]:
    """Vertex and pixel HLSL sources plus the constant buffer offsets."""
    return HLSLEmitter(program).emit_program()
