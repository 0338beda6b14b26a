"""
Unit tests for the HLSL back end.

Tests:
- Vertex and pixel entry points and the Varyings struct
- Constant buffer layout
- Matrix products and constructors
- Swizzles, vector comparisons and discard
"""

import pytest

from kage_cross import CompilerOptions, compile_hlsl, compile_source


def hlsl(source, **options):
    """Helper: compile Kage source and return (vertex, pixel, offsets)."""
    program = compile_source(source, CompilerOptions(**options))
    return compile_hlsl(program)


def fragment(body, decls=""):
    """Helper: wrap statements in a fragment entry point."""
    return f"package main\n\n{decls}\nfunc Fragment(dst vec4, uv vec2) vec4 {{\n{body}\n}}\n"


# ============================================================================
# 1. Entry Points
# ============================================================================

def test_vertex_entry():
    """Test the vertex entry fills and returns the Varyings struct."""
    source = """package main

func Vertex(pos vec2, uv vec2) (vec4, vec2) {
	return vec4(pos, 0, 1), uv
}
"""
    vertex, _, _ = hlsl(source)
    assert "Varyings VSMain(in float2 A0 : POSITION, in float2 A1 : TEXCOORD) {" in vertex
    assert "Varyings varyings;" in vertex
    assert "varyings.Position = float4(A0, 0.0, 1.0);" in vertex
    assert "varyings.M0 = A1;" in vertex
    assert "return varyings;" in vertex
    assert "float2 M0 : TEXCOORD;" in vertex


def test_pixel_entry():
    """Test the pixel entry reads varyings and the front facing flag."""
    _, pixel, _ = hlsl(fragment("\treturn vec4(uv, 0, 1)"))
    assert "float4 PSMain(Varyings varyings, bool isFrontFace : SV_IsFrontFace) : SV_TARGET {" in pixel
    assert "frontFacing = isFrontFace;" in pixel
    assert "return float4(varyings.M0, 0.0, 1.0);" in pixel
    assert "static bool frontFacing = false;" in pixel


# ============================================================================
# 2. Constant Buffer
# ============================================================================

def test_cbuffer_packoffsets():
    """Test uniforms are placed at their packed offsets."""
    source = fragment("\treturn vec4(A) + vec4(B, 1) + vec4(C) + D",
                      "var A float\nvar B vec3\nvar C float\nvar D vec4\n")
    vertex, pixel, offsets = hlsl(source)
    assert offsets == [0, 4, 7, 8]
    assert "cbuffer Uniforms : register(b0) {" in pixel
    assert "float U0 : packoffset(c0);" in pixel
    assert "float3 U1 : packoffset(c1);" in pixel
    assert "float U2 : packoffset(c1.w);" in pixel
    assert "float4 U3 : packoffset(c2);" in pixel


def test_no_cbuffer_without_uniforms():
    """Test the constant buffer is omitted when empty."""
    _, pixel, offsets = hlsl(fragment("\treturn dst"))
    assert offsets == []
    assert "cbuffer" not in pixel


@pytest.mark.parametrize("unit,call,sampler", [
    ("texels", "T0.Sample(samp, varyings.M0)", True),
    ("pixels", "T0.Load(int3(varyings.M0, 0))", False),
])
def test_textures(unit, call, sampler):
    """Test texture declarations and sampling per unit."""
    source = f"//kage:unit {unit}\n\n" + fragment("\treturn __texelAt(__t0, uv)")
    _, pixel, _ = hlsl(source, texture_count=1)
    assert "Texture2D T0 : register(t0);" in pixel
    assert f"return {call};" in pixel
    assert ("SamplerState samp : register(s0);" in pixel) == sampler


# ============================================================================
# 3. Matrices
# ============================================================================

def test_vector_matrix_product_swaps_operands():
    """Test matrix products become mul with swapped operands."""
    _, pixel, _ = hlsl(fragment("\tv := vec2(1) * mat2(1)\n\treturn vec4(v, 0, 1)"))
    assert "mul(float2x2FromScalar(1.0), (float2)(1.0))" in pixel


def test_matrix_uniform_product():
    """Test a uniform matrix times a vector."""
    _, pixel, _ = hlsl(fragment("\treturn vec4(M * uv, 0, 1)", "var M mat2\n"))
    assert "mul(varyings.M0, U0)" in pixel


def test_scalar_matrix_product_is_plain():
    """Test scaling a matrix keeps the * operator."""
    _, pixel, _ = hlsl(fragment("\tm := M * 2\n\treturn vec4(m[0], 0, 1)", "var M mat2\n"))
    assert "U0 * 2.0" in pixel


def test_matrix_helpers_present():
    """Test the scalar matrix constructors are defined."""
    _, pixel, _ = hlsl(fragment("\treturn dst"))
    for n in (2, 3, 4):
        assert f"float{n}x{n} float{n}x{n}FromScalar(float x)" in pixel


# ============================================================================
# 4. Expressions and Statements
# ============================================================================

def test_stpq_swizzle_is_normalized():
    """Test stpq components are rewritten as xyzw."""
    _, pixel, _ = hlsl(fragment("\treturn vec4(dst.st, dst.pq)"))
    assert "float4(varyings.Position.xy, varyings.Position.zw)" in pixel


def test_vector_equality_uses_all():
    """Test vector comparisons reduce with all()."""
    body = "\tif uv == vec2(0) {\n\t\treturn vec4(1)\n\t}\n\treturn dst"
    _, pixel, _ = hlsl(fragment(body))
    assert "if (all(varyings.M0 == (float2)(0.0))) {" in pixel


def test_builtin_renames():
    """Test GLSL names map to their HLSL counterparts."""
    _, pixel, _ = hlsl(fragment("\treturn vec4(fract(uv.x), mix(uv.x, uv.y, uv.x), inversesqrt(uv.y), 1)"))
    assert "frac(varyings.M0.x)" in pixel
    assert "lerp(varyings.M0.x, varyings.M0.y, varyings.M0.x)" in pixel
    assert "rsqrt(varyings.M0.y)" in pixel


def test_discard_returns_zero_color():
    """Test discard is followed by a zero color return."""
    body = "\tif uv.x < 0 {\n\t\tdiscard()\n\t}\n\treturn dst"
    _, pixel, _ = hlsl(fragment(body))
    assert "discard;\n        return float4(0.0, 0.0, 0.0, 0.0);" in pixel


def test_front_facing():
    """Test frontfacing reads the static flag."""
    body = "\tif frontfacing() {\n\t\treturn vec4(1)\n\t}\n\treturn dst"
    _, pixel, _ = hlsl(fragment(body))
    assert "if (frontFacing) {" in pixel


def test_local_zero_values():
    """Test locals are zero-initialized with HLSL casts."""
    _, pixel, _ = hlsl(fragment("\tv := uv * 2\n\treturn vec4(v, 0, 1)"))
    assert "float2 l2 = (float2)(0);" in pixel
