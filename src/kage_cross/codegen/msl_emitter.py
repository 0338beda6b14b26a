"""
Metal Shading Language code generator.

One source holds both entry points, ``Vertex`` and ``Fragment``. Uniforms
are members of a ``Uniforms`` struct bound at buffer 1, attributes come
from an ``Attributes`` buffer at index 0. Since MSL has no global
resources, every user function takes the uniforms, the textures and the
front facing flag ahead of its own parameters.
"""

from typing import List

from ..ir.program import Binary, BuiltinFunc, Discard, Op, Program, Return, Unit
from ..ir.types import BasicType, Type
from .common import ShaderEmitter, normalize_swizzling, PRECEDENCE, UNARY_PRECEDENCE

PRELUDE = """#include <metal_stdlib>

using namespace metal;

constexpr sampler texture_sampler{filter::nearest};

template<typename T, typename U>
T mod(T x, U y) {
    return x - y * floor(x / y);
}"""


# Mixed vector and scalar overloads missing from the Metal standard library
_BROADCAST_FUNCS = (
    BuiltinFunc.MIN, BuiltinFunc.MAX, BuiltinFunc.CLAMP, BuiltinFunc.MIX,
    BuiltinFunc.STEP, BuiltinFunc.SMOOTHSTEP,
)


class MSLEmitter(ShaderEmitter):
    """
    MSL generator.

    Usage:
        source = MSLEmitter(program).emit_program()
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
        BuiltinFunc.INVERSESQRT: 'rsqrt',
    }

    def __init__(self, program: Program, indent_size: int = 4):
        super().__init__(program, indent_size)
        self._entry = None

    def type_name(self, t: Type) -> str:
        if t.main == BasicType.ARRAY:
            return f"array<{self.type_name(t.elem)}, {t.length}>"
        return super().type_name(t)

    def var_decl(self, t: Type, name: str) -> str:
        return f"{self.type_name(t)} {name}"

    def zero_value(self, t: Type):
        if t.main == BasicType.ARRAY:
            return '{}'
        if t.main == BasicType.BOOL:
            return 'false'
        if t.main == BasicType.INT:
            return '0'
        if t.main == BasicType.FLOAT:
            return '0.0'
        return f"{self.type_name(t)}(0)"

    def param_decl(self, t: Type, index: int, out: bool) -> str:
        if out:
            return f"thread {self.type_name(t)}& {self.local_name(index)}"
        return self.var_decl(t, self.local_name(index))

    def swizzle(self, s: str) -> str:
        return normalize_swizzling(s)

    # ========================================================================
    # Variables
    # ========================================================================

    def uniform_name(self, index: int) -> str:
        return f"uniforms.U{index}"

    def local_name(self, index: int) -> str:
        if self._entry == 'vertex':
            attrs = len(self.program.attributes)
            if index < attrs:
                return f"attributes[vid].M{index}"
            if index == attrs:
                return 'varyings.Position'
            if index < attrs + 1 + len(self.program.varyings):
                return f"varyings.M{index - attrs - 1}"
        elif self._entry == 'fragment':
            if index == 0:
                return 'varyings.Position'
            if index < 1 + len(self.program.varyings):
                return f"varyings.M{index - 1}"
        return super().local_name(index)

    def context_params(self) -> List[str]:
        params = []
        if self.program.uniforms:
            params.append("constant Uniforms& uniforms")
        for i in range(self.program.texture_count):
            params.append(f"texture2d<float> {self.texture_name(i)}")
        params.append("bool front_facing")
        return params

    def context_args(self) -> List[str]:
        args = []
        if self.program.uniforms:
            args.append('uniforms')
        args += [self.texture_name(i) for i in range(self.program.texture_count)]
        args.append('front_facing')
        return args

    # ========================================================================
    # Expressions
    # ========================================================================

    def emit_Binary(self, node: Binary, parent_precedence: int = 0) -> str:
        if node.op in (Op.VECTOR_EQUAL, Op.VECTOR_NOT_EQUAL):
            prec = PRECEDENCE['==']
            text = f"all({self.emit(node.lhs, prec)} == {self.emit(node.rhs, prec + 1)})"
            if node.op == Op.VECTOR_NOT_EQUAL:
                return self._wrap(f"!{text}", UNARY_PRECEDENCE, parent_precedence)
            return text
        return super().emit_Binary(node, parent_precedence)

    def builtin_call(self, func: BuiltinFunc, args) -> str:
        if func == BuiltinFunc.TEXEL_AT:
            texture, uv = args
            if self.program.unit == Unit.PIXELS:
                return f"{self.emit(texture)}.read(uint2({self.emit(uv)}))"
            return f"{self.emit(texture)}.sample(texture_sampler, {self.emit(uv)})"
        if func == BuiltinFunc.FRONT_FACING:
            return 'front_facing'
        if func in _BROADCAST_FUNCS:
            return self._broadcast_call(func, args)
        return super().builtin_call(func, args)

    def _broadcast_call(self, func: BuiltinFunc, args) -> str:
        """Call whose scalar arguments are widened to the vector argument."""
        types = [self.type_of(a) for a in args]
        vector = next((t for t in types if t.is_vector()), None)
        texts = []
        for a, t in zip(args, types):
            text = self.emit(a)
            if vector is not None and t.is_scalar():
                text = f"{self.type_name(vector)}({text})"
            texts.append(text)
        return f"{self.builtin_names.get(func, func.value)}({', '.join(texts)})"

    # ========================================================================
    # Statements
    # ========================================================================

    def emit_Return(self, node: Return) -> str:
        if self._entry == 'vertex':
            return f"{self.indent()}return varyings;\n"
        return super().emit_Return(node)

    def emit_Discard(self, node: Discard) -> str:
        return f"{self.indent()}discard_fragment();\n"

    # ========================================================================
    # Top-Level
    # ========================================================================

    def _structs(self) -> List[str]:
        p = self.program
        chunks = []

        lines = ["struct Attributes {"]
        lines += [f"    {self.var_decl(t, f'M{i}')};" for i, t in enumerate(p.attributes)]
        lines.append("};")
        chunks.append('\n'.join(lines))

        lines = ["struct Varyings {", "    float4 Position [[position]];"]
        lines += [f"    {self.var_decl(t, f'M{i}')};" for i, t in enumerate(p.varyings)]
        lines.append("};")
        chunks.append('\n'.join(lines))

        if p.uniforms:
            lines = ["struct Uniforms {"]
            lines += [f"    {self.var_decl(t, f'U{i}')};" for i, t in enumerate(p.uniforms)]
            lines.append("};")
            chunks.append('\n'.join(lines))
        return chunks

    def _resource_params(self) -> List[str]:
        params = []
        if self.program.uniforms:
            params.append("constant Uniforms& uniforms [[buffer(1)]]")
        for i in range(self.program.texture_count):
            params.append(f"texture2d<float> {self.texture_name(i)} [[texture({i})]]")
        return params

    def _emit_vertex_main(self) -> str:
        p = self.program
        block = p.vertex_func
        self.enter_function(block, p.param_types(block))
        self._entry = 'vertex'
        params = ["uint vid [[vertex_id]]",
                  "const device Attributes* attributes [[buffer(0)]]"] + self._resource_params()
        self.indent_level = 1
        body = (f"{self.indent()}Varyings varyings = {{}};\n"
                f"{self.indent()}bool front_facing = false;\n")
        body += self.emit_block_body(block)
        if not block.stmts or not isinstance(block.stmts[-1], Return):
            body += f"{self.indent()}return varyings;\n"
        self.indent_level = 0
        self._entry = None
        return ("vertex Varyings Vertex(\n    " + ",\n    ".join(params) + ") {\n"
                + body + "}")

    def _emit_fragment_main(self) -> str:
        p = self.program
        block = p.fragment_func
        self.enter_function(block, p.param_types(block))
        self._entry = 'fragment'
        params = (["Varyings varyings [[stage_in]]"] + self._resource_params()
                  + ["bool front_facing [[front_facing]]"])
        self.indent_level = 1
        body = self.emit_block_body(block)
        self.indent_level = 0
        self._entry = None
        return ("fragment float4 Fragment(\n    " + ",\n    ".join(params) + ") {\n"
                + body + "}")

    def emit_program(self) -> str:
        """Generate the single MSL source holding both entry points."""
        p = self.program
        chunks = [PRELUDE] + self._structs()
        chunks += self.emit_functions(list(p.funcs))
        if p.vertex_func is not None:
            chunks.append(self._emit_vertex_main())
        if p.fragment_func is not None:
            chunks.append(self._emit_fragment_main())
        return '\n\n'.join(chunks) + '\n'


def compile_msl(program: Program) -> str:
    """MSL source for a program."""
    return MSLEmitter(program).emit_program()
