"""
Unit tests for the GLSL back end.

Tests:
- Entry points and their main functions
- Attribute, varying, uniform and sampler declarations
- GLSL 1.50 versus GLSL ES 3.00 differences
- Statements: locals, loops, branches, discard
- User functions
"""

import pytest

from kage_cross import CompilerOptions, GLSLVersion, compile_glsl, compile_source


def glsl(source, version=GLSLVersion.DEFAULT, **options):
    """Helper: compile Kage source and return (vertex, fragment) GLSL."""
    program = compile_source(source, CompilerOptions(**options))
    return compile_glsl(program, version)


def fragment(body, decls=""):
    """Helper: wrap statements in a fragment entry point."""
    return f"package main\n\n{decls}\nfunc Fragment(dst vec4, uv vec2) vec4 {{\n{body}\n}}\n"


VERTEX_AND_FRAGMENT = """package main

func Vertex(pos vec4, uv vec2, color vec4) (vec4, vec2, vec4) {
	return pos, uv, color
}

func Fragment(dst vec4, uv vec2, color vec4) vec4 {
	return color * uv.x
}
"""


# ============================================================================
# 1. Entry Points
# ============================================================================

def test_vertex_passthrough():
    """Test the vertex entry becomes main writing gl_Position."""
    vertex, _ = glsl("package main\nfunc Vertex(pos vec4) vec4 { return pos }")
    assert "#version 150" in vertex
    assert "in vec4 A0;" in vertex
    assert "void main(void) {" in vertex
    assert "gl_Position = A0;" in vertex


def test_varyings_link_stages():
    """Test varyings are outs of the vertex and ins of the fragment shader."""
    vertex, frag = glsl(VERTEX_AND_FRAGMENT)
    assert "out vec2 V0;" in vertex
    assert "out vec4 V1;" in vertex
    assert "V0 = A1;" in vertex
    assert "V1 = A2;" in vertex
    assert "in vec2 V0;" in frag
    assert "in vec4 V1;" in frag
    assert "return V1 * V0.x;" in frag


def test_fragment_main_writes_color():
    """Test the fragment body is lifted into a function feeding fragColor."""
    _, frag = glsl("package main\nfunc Fragment(dst vec4) vec4 { return dst }")
    assert "out vec4 fragColor;" in frag
    assert "vec4 fragmentMain(void) {" in frag
    assert "return gl_FragCoord;" in frag
    assert "fragColor = fragmentMain();" in frag


def test_constant_constructor_arguments_are_floats():
    """Test literal arguments of float constructors print as floats."""
    _, frag = glsl("package main\nfunc Fragment() vec4 { return vec4(1, 0, 0, 1) }")
    assert "return vec4(1.0, 0.0, 0.0, 1.0);" in frag


# ============================================================================
# 2. Versions
# ============================================================================

def test_es_version_header():
    """Test GLSL ES output and its precision block."""
    vertex, frag = glsl(VERTEX_AND_FRAGMENT, GLSLVersion.ES300)
    assert vertex.startswith("#version 300 es")
    assert frag.startswith("#version 300 es")
    assert "precision highp float;" in frag


def test_desktop_has_int_modulo_helper():
    """Test integer % uses modInt on desktop GLSL."""
    source = fragment("\ta := 7\n\tb := a % 3\n\treturn vec4(float(b))")
    _, frag = glsl(source)
    assert "int modInt(int x, int y)" in frag
    assert "l3 = modInt(l2, 3);" in frag


def test_es_uses_native_modulo():
    """Test GLSL ES keeps the % operator."""
    source = fragment("\ta := 7\n\tb := a % 3\n\treturn vec4(float(b))")
    _, frag = glsl(source, GLSLVersion.ES300)
    assert "l3 = l2 % 3;" in frag
    assert "modInt" not in frag


# ============================================================================
# 3. Declarations
# ============================================================================

def test_uniform_declarations():
    """Test uniforms are named by their index."""
    source = fragment("\treturn vec4(Time) + Colors[1]", "var Time float\nvar Colors [4]vec4\n")
    vertex, frag = glsl(source)
    assert "uniform float U0;" in frag
    assert "uniform vec4 U1[4];" in frag
    assert "uniform float U0;" in vertex


def test_uniform_arrays_are_touched():
    """Test the vertex shader refers to the last element of uniform arrays."""
    source = """package main

var Colors [4]vec4

func Vertex(pos vec4) vec4 {
	return pos
}

func Fragment(dst vec4) vec4 {
	return Colors[0]
}
"""
    vertex, _ = glsl(source)
    assert "float touchUniforms() {" in vertex
    assert "float(U0[3].x)" in vertex
    assert "touchUniforms();" in vertex


@pytest.mark.parametrize("unit,call", [
    ("texels", "texture(T0, V0)"),
    ("pixels", "texelFetch(T0, ivec2(V0), 0)"),
])
def test_texture_lookup(unit, call):
    """Test sampling by texel coordinates and by pixel position."""
    source = f"//kage:unit {unit}\n\n" + fragment("\treturn __texelAt(__t0, uv)")
    _, frag = glsl(source, texture_count=1)
    assert "uniform sampler2D T0;" in frag
    assert f"return {call};" in frag


# ============================================================================
# 4. Statements
# ============================================================================

def test_locals_declared_zero_initialized():
    """Test block locals are declared at the top of their block."""
    _, frag = glsl(fragment("\tv := uv * 2\n\treturn vec4(v, 0, 1)"))
    assert "vec2 l2 = vec2(0);" in frag
    assert "l2 = V0 * 2.0;" in frag
    assert "return vec4(l2, 0.0, 1.0);" in frag


def test_for_loop():
    """Test counting loops keep their bounds."""
    body = "\tc := 0.0\n\tfor i := 0; i < 4; i++ {\n\t\tc += float(i)\n\t}\n\treturn vec4(c)"
    _, frag = glsl(fragment(body))
    assert "for (int l3 = 0; l3 < 4; l3 += 1) {" in frag
    assert "l2 = l2 + float(l3);" in frag


def test_decrementing_loop():
    """Test negative steps come out as subtraction."""
    body = "\tc := 0.0\n\tfor i := 3.0; i >= 0.0; i -= 0.5 {\n\t\tc += i\n\t}\n\treturn vec4(c)"
    _, frag = glsl(fragment(body))
    assert "for (float l3 = 3.0; l3 >= 0.0; l3 -= 5.0000000000e-01) {" in frag


def test_if_else_chain():
    """Test else-if chains stay flat."""
    body = ("\tc := 0.0\n\tif uv.x < 0.5 {\n\t\tc = 1\n\t} else if uv.y < 0.5 {\n\t\tc = 2\n"
            "\t} else {\n\t\tc = 3\n\t}\n\treturn vec4(c)")
    _, frag = glsl(fragment(body))
    assert "if (V0.x < 5.0000000000e-01) {" in frag
    assert "else if (V0.y < 5.0000000000e-01) {" in frag
    assert "else {" in frag


def test_discard():
    """Test discard passes through."""
    body = "\tif uv.x < 0 {\n\t\tdiscard()\n\t}\n\treturn dst"
    _, frag = glsl(fragment(body))
    assert "discard;" in frag


# ============================================================================
# 5. Functions
# ============================================================================

def test_user_function_prototype_and_definition():
    """Test user functions get a prototype and a body."""
    source = fragment("\treturn vec4(scale(uv.x, 2))",
                      "func scale(x float, y float) float {\n\treturn x * y\n}\n")
    _, frag = glsl(source)
    assert "float F0(in float l0, in float l1);" in frag
    assert "float F0(in float l0, in float l1) {" in frag
    assert "return l0 * l1;" in frag
    assert "return vec4(F0(V0.x, 2.0));" in frag


def test_out_parameters():
    """Test multiple results become out parameters."""
    source = fragment("\ta, b := pair()\n\treturn vec4(a, b, 0, 1)",
                      "func pair() (float, float) {\n\treturn 1, 2\n}\n")
    _, frag = glsl(source)
    assert "void F0(out float l0, out float l1)" in frag


def test_unreachable_functions_are_skipped():
    """Test each stage only carries the functions it calls."""
    source = """package main

func used() vec4 {
	return vec4(1)
}

func Vertex(pos vec4) vec4 {
	return pos
}

func Fragment(dst vec4) vec4 {
	return used()
}
"""
    vertex, frag = glsl(source)
    assert "F0" not in vertex
    assert "vec4 F0(void)" in frag
