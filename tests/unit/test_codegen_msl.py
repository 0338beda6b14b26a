"""
Unit tests for the Metal Shading Language back end.

Tests:
- Single source with both entry points
- Attribute, varying and uniform structs
- Resource passing to user functions
- Scalar broadcasting in mixed builtins
"""

import pytest

from kage_cross import CompilerOptions, compile_msl, compile_source


def msl(source, **options):
    """Helper: compile Kage source to MSL."""
    program = compile_source(source, CompilerOptions(**options))
    return compile_msl(program)


def fragment(body, decls=""):
    """Helper: wrap statements in a fragment entry point."""
    return f"package main\n\n{decls}\nfunc Fragment(dst vec4, uv vec2) vec4 {{\n{body}\n}}\n"


# ============================================================================
# 1. Program Layout
# ============================================================================

def test_prelude():
    """Test the standard library include and helpers."""
    source = msl(fragment("\treturn dst"))
    assert source.startswith("#include <metal_stdlib>")
    assert "constexpr sampler texture_sampler{filter::nearest};" in source
    assert "T mod(T x, U y)" in source


def test_both_entry_points_in_one_source():
    """Test the vertex and fragment functions share a source."""
    source = """package main

func Vertex(pos vec2, uv vec2) (vec4, vec2) {
	return vec4(pos, 0, 1), uv
}

func Fragment(dst vec4, uv vec2) vec4 {
	return vec4(uv, 0, 1)
}
"""
    out = msl(source)
    assert "vertex Varyings Vertex(" in out
    assert "fragment float4 Fragment(" in out
    assert "struct Attributes {\n    float2 M0;\n    float2 M1;\n};" in out
    assert "struct Varyings {\n    float4 Position [[position]];\n    float2 M0;\n};" in out
    assert "varyings.Position = float4(attributes[vid].M0, 0.0, 1.0);" in out
    assert "varyings.M0 = attributes[vid].M1;" in out
    assert "bool front_facing = false;" in out
    assert "return float4(varyings.M0, 0.0, 1.0);" in out


def test_uniform_struct():
    """Test uniforms are members of a struct bound at buffer 1."""
    out = msl(fragment("\treturn Colors[1] * Scale", "var Scale float\nvar Colors [2]vec4\n"))
    assert "struct Uniforms {\n    float U0;\n    array<float4, 2> U1;\n};" in out
    assert "constant Uniforms& uniforms [[buffer(1)]]" in out
    assert "return uniforms.U1[1] * uniforms.U0;" in out


@pytest.mark.parametrize("unit,call", [
    ("texels", "T0.sample(texture_sampler, varyings.M0)"),
    ("pixels", "T0.read(uint2(varyings.M0))"),
])
def test_textures(unit, call):
    """Test texture parameters and sampling per unit."""
    source = f"//kage:unit {unit}\n\n" + fragment("\treturn __texelAt(__t0, uv)")
    out = msl(source, texture_count=1)
    assert "texture2d<float> T0 [[texture(0)]]" in out
    assert f"return {call};" in out


# ============================================================================
# 2. Functions
# ============================================================================

def test_user_functions_take_resources():
    """Test user functions receive uniforms, textures and the facing flag."""
    source = fragment("\treturn shade(uv)",
                      "var Scale float\n\nfunc shade(p vec2) vec4 {\n\treturn vec4(p * Scale, 0, 1)\n}\n")
    out = msl(source)
    assert "float4 F0(constant Uniforms& uniforms, bool front_facing, float2 l0)" in out
    assert "return F0(uniforms, front_facing, varyings.M0);" in out


def test_out_parameters_are_references():
    """Test out parameters are thread references."""
    source = fragment("\ta, b := pair()\n\treturn vec4(a, b, 0, 1)",
                      "func pair() (float, float) {\n\treturn 1, 2\n}\n")
    out = msl(source)
    assert "void F0(bool front_facing, thread float& l0, thread float& l1)" in out


# ============================================================================
# 3. Expressions
# ============================================================================

def test_scalar_arguments_are_broadcast():
    """Test scalars next to vectors are widened in min, max and clamp."""
    out = msl(fragment("\treturn vec4(clamp(uv, 0, 1), min(uv, 0.5))"))
    assert "clamp(varyings.M0, float2(0.0), float2(1.0))" in out
    assert "min(varyings.M0, float2(5.0000000000e-01))" in out


def test_discard():
    """Test discard maps to discard_fragment."""
    body = "\tif uv.x < 0 {\n\t\tdiscard()\n\t}\n\treturn dst"
    assert "discard_fragment();" in msl(fragment(body))


def test_front_facing_in_fragment():
    """Test the fragment entry receives the facing flag."""
    body = "\tif frontfacing() {\n\t\treturn vec4(1)\n\t}\n\treturn dst"
    out = msl(fragment(body))
    assert "bool front_facing [[front_facing]]" in out
    assert "if (front_facing) {" in out


def test_local_array_zero_value():
    """Test local arrays are cleared with an empty initializer."""
    out = msl(fragment("\tvar a [3]float\n\ta[1] = uv.x\n\treturn vec4(a[1])"))
    assert "array<float, 3> l2 = {};" in out
