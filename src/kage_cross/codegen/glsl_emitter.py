"""
GLSL code generator.

Produces a vertex and a fragment shader from one program, either for
desktop GLSL 1.50 or for GLSL ES 3.00.

Naming:
    U%d uniforms, A%d attributes, V%d varyings, T%d samplers, F%d
    functions, l%d locals. The vertex position is ``gl_Position`` and the
    fragment position ``gl_FragCoord``.

The fragment entry body becomes a function returning the color, which
``main`` writes to ``fragColor``.
"""

from typing import List, Tuple

from ..config import GLSLVersion
from ..ir import types as T
from ..ir.program import Binary, BuiltinFunc, Op, Program, Unit
from ..ir.types import BasicType, Type
from .common import ShaderEmitter

_UTIL_FUNCTIONS = """int modInt(int x, int y) {
    return x - y*(x/y);
}

ivec2 modInt(ivec2 x, ivec2 y) {
    return x - y*(x/y);
}

ivec3 modInt(ivec3 x, ivec3 y) {
    return x - y*(x/y);
}

ivec4 modInt(ivec4 x, ivec4 y) {
    return x - y*(x/y);
}"""

_FRAGMENT_PRECISION = """#if defined(GL_ES)
precision highp float;
precision highp int;
#else
#define lowp
#define mediump
#define highp
#endif"""

FRAGMENT_FUNCTION_NAME = 'fragmentMain'


def vertex_prelude(version: GLSLVersion) -> str:
    if version == GLSLVersion.ES300:
        return "#version 300 es"
    return "#version 150\n\n" + _UTIL_FUNCTIONS


def fragment_prelude(version: GLSLVersion) -> str:
    prelude = f"#version {version.value}\n\n" + _FRAGMENT_PRECISION
    if version == GLSLVersion.DEFAULT:
        prelude += "\n\n" + _UTIL_FUNCTIONS
    return prelude


class GLSLEmitter(ShaderEmitter):
    """
    GLSL generator.

    Usage:
        vertex, fragment = GLSLEmitter(program).emit_program()
    """

    type_names = {
        BasicType.BOOL: 'bool',
        BasicType.INT: 'int',
        BasicType.FLOAT: 'float',
        BasicType.VEC2: 'vec2',
        BasicType.VEC3: 'vec3',
        BasicType.VEC4: 'vec4',
        BasicType.IVEC2: 'ivec2',
        BasicType.IVEC3: 'ivec3',
        BasicType.IVEC4: 'ivec4',
        BasicType.MAT2: 'mat2',
        BasicType.MAT3: 'mat3',
        BasicType.MAT4: 'mat4',
    }
    builtin_names = {
        BuiltinFunc.ATAN2: 'atan',
        BuiltinFunc.DFDX: 'dFdx',
        BuiltinFunc.DFDY: 'dFdy',
    }

    def __init__(self, program: Program, version: GLSLVersion = GLSLVersion.DEFAULT,
                 indent_size: int = 4):
        super().__init__(program, indent_size)
        self.version = version
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
        return f"{self.type_name(t)}(0)"

    def param_decl(self, t: Type, index: int, out: bool) -> str:
        qualifier = 'out' if out else 'in'
        return f"{qualifier} {self.var_decl(t, self.local_name(index))}"

    # ========================================================================
    # Variables
    # ========================================================================

    def local_name(self, index: int) -> str:
        if self._entry == 'vertex':
            attrs = len(self.program.attributes)
            if index < attrs:
                return f"A{index}"
            if index == attrs:
                return 'gl_Position'
            if index < attrs + 1 + len(self.program.varyings):
                return f"V{index - attrs - 1}"
        elif self._entry == 'fragment':
            if index == 0:
                return 'gl_FragCoord'
            if index < 1 + len(self.program.varyings):
                return f"V{index - 1}"
        return super().local_name(index)

    # ========================================================================
    # Expressions
    # ========================================================================

    def emit_Binary(self, node: Binary, parent_precedence: int = 0) -> str:
        if node.op == Op.MOD and self.version == GLSLVersion.DEFAULT:
            lt = self.type_of(node.lhs)
            rt = self.type_of(node.rhs)
            lhs = self.emit(node.lhs)
            rhs = self.emit(node.rhs)
            # modInt has no overloads mixing vectors and scalars
            if lt.is_vector() and rt.is_scalar():
                rhs = f"{self.type_name(lt)}({rhs})"
            elif lt.is_scalar() and rt.is_vector():
                lhs = f"{self.type_name(rt)}({lhs})"
            return f"modInt({lhs}, {rhs})"
        return super().emit_Binary(node, parent_precedence)

    def builtin_call(self, func: BuiltinFunc, args) -> str:
        if func == BuiltinFunc.TEXEL_AT:
            texture, uv = args
            if self.program.unit == Unit.PIXELS:
                return f"texelFetch({self.emit(texture)}, ivec2({self.emit(uv)}), 0)"
            return f"texture({self.emit(texture)}, {self.emit(uv)})"
        if func == BuiltinFunc.FRONT_FACING:
            return 'gl_FrontFacing'
        return super().builtin_call(func, args)

    # ========================================================================
    # Top-Level
    # ========================================================================

    def _uniform_decls(self) -> List[str]:
        lines = []
        for i, t in enumerate(self.program.uniforms):
            lines.append(f"uniform {self.var_decl(t, self.uniform_name(i))};")
        for i in range(self.program.texture_count):
            lines.append(f"uniform sampler2D {self.texture_name(i)};")
        return lines

    def _touch_uniforms(self) -> str:
        """
        Function reading the last element of every uniform array.

        Some drivers leave the first elements of an array unset unless the
        shader refers to the whole range.
        """
        terms = []
        for i, t in enumerate(self.program.uniforms):
            if t.main != BasicType.ARRAY or t.length <= 1:
                continue
            term = f"{self.uniform_name(i)}[{t.length - 1}]"
            if t.elem.is_vector():
                term += '.x'
            elif t.elem.is_matrix():
                term += '[0][0]'
            terms.append(f"float({term})")
        if not terms:
            return ''
        return f"float touchUniforms() {{\n    return {' + '.join(terms)};\n}}"

    def _emit_vertex_main(self) -> str:
        block = self.program.vertex_func
        params = list(self.program.attributes) + [T.VEC4] + list(self.program.varyings)
        self.enter_function(block, params)
        self._entry = 'vertex'
        self.indent_level = 1
        body = ""
        if self._touch_uniforms():
            body += f"{self.indent()}touchUniforms();\n"
        body += self.emit_block_body(block)
        self.indent_level = 0
        self._entry = None
        return "void main(void) {\n" + body + "}"

    def _emit_fragment_function(self) -> str:
        block = self.program.fragment_func
        self.enter_function(block, [T.VEC4] + list(self.program.varyings))
        self._entry = 'fragment'
        self.indent_level = 1
        body = self.emit_block_body(block)
        self.indent_level = 0
        self._entry = None
        return f"vec4 {FRAGMENT_FUNCTION_NAME}(void) {{\n" + body + "}"

    def emit_vertex(self) -> str:
        p = self.program
        chunks = [vertex_prelude(self.version)]
        decls = self._uniform_decls()
        decls += [f"in {self.var_decl(t, f'A{i}')};" for i, t in enumerate(p.attributes)]
        decls += [f"out {self.var_decl(t, f'V{i}')};" for i, t in enumerate(p.varyings)]
        if decls:
            chunks.append('\n'.join(decls))
        touch = self._touch_uniforms()
        if touch:
            chunks.append(touch)
        chunks += self.emit_functions(self.entry_funcs(p.vertex_func))
        if p.vertex_func is not None:
            chunks.append(self._emit_vertex_main())
        return '\n\n'.join(chunks) + '\n'

    def emit_fragment(self) -> str:
        p = self.program
        chunks = [fragment_prelude(self.version)]
        decls = self._uniform_decls()
        decls += [f"in {self.var_decl(t, f'V{i}')};" for i, t in enumerate(p.varyings)]
        decls.append("out vec4 fragColor;")
        chunks.append('\n'.join(decls))
        chunks += self.emit_functions(self.entry_funcs(p.fragment_func))
        if p.fragment_func is not None:
            chunks.append(self._emit_fragment_function())
            chunks.append(
                "void main(void) {\n"
                f"    fragColor = {FRAGMENT_FUNCTION_NAME}();\n"
                "}")
        return '\n\n'.join(chunks) + '\n'

    def emit_program(self) -> Tuple[str, str]:
        """
        Generate both shaders.

        Returns:
            (vertex source, fragment source)
        """
        return self.emit_vertex(), self.emit_fragment()


def compile_glsl(program: Program, version: GLSLVersion = GLSLVersion.DEFAULT) -> Tuple[str, str]:
    """Vertex and fragment GLSL sources for a program."""
    return GLSLEmitter(program, version).emit_program()
