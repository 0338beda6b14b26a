"""
Unit tests for the command line entry points.

Tests:
- Shader compilation per target
- Diagnostics on stderr and the exit status
- MP3 to PCM conversion
"""

import pytest

from kage_cross.cli import main, mp3_main

SHADER = """package main

var Time float

func Vertex(pos vec2, uv vec2) (vec4, vec2) {
	return vec4(pos, 0, 1), uv
}

func Fragment(dst vec4, uv vec2) vec4 {
	return vec4(uv, Time, 1)
}
"""

# 128 kbit/s, 44100 Hz stereo frame of silence
SILENT_FRAME = bytes([0xFF, 0xFB, 0x90, 0x00]) + bytes(413)


@pytest.fixture
def shader_file(tmp_path):
    """Fixture: a valid shader on disk."""
    path = tmp_path / "shader.go"
    path.write_text(SHADER)
    return path


# ============================================================================
# 1. Shader Compiler
# ============================================================================

@pytest.mark.parametrize("target,markers", [
    ("glsl", ["// ---- vertex ----", "// ---- fragment ----", "#version 150"]),
    ("glsl-es", ["// ---- vertex ----", "#version 300 es"]),
    ("hlsl", ["// ---- pixel ----", "PSMain", "// uniform offsets (DWORDs): [0]"]),
    ("msl", ["#include <metal_stdlib>", "fragment float4 Fragment("]),
])
def test_targets(shader_file, capsys, target, markers):
    """Test each target writes its source to stdout."""
    assert main([str(shader_file), "--target", target]) == 0
    out = capsys.readouterr().out
    for marker in markers:
        assert marker in out


def test_custom_entry_names(tmp_path, capsys):
    """Test entry point names are taken from the options."""
    path = tmp_path / "shader.go"
    path.write_text("package main\n\nfunc Shade(dst vec4) vec4 {\n\treturn dst\n}\n")
    assert main([str(path), "--fragment", "Shade"]) == 0
    assert "fragColor = fragmentMain();" in capsys.readouterr().out


def test_compile_error_goes_to_stderr(tmp_path, capsys):
    """Test diagnostics are printed and the exit status is 1."""
    path = tmp_path / "broken.go"
    path.write_text("package main\n\nfunc Fragment(dst vec4) vec4 {\n\tx := 1\n\treturn dst\n}\n")
    assert main([str(path)]) == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "4:2: local variable x is not used" in captured.err


def test_invalid_target(shader_file):
    """Test unknown targets are rejected by argument parsing."""
    with pytest.raises(SystemExit):
        main([str(shader_file), "--target", "spirv"])


# ============================================================================
# 2. MP3 Decoder
# ============================================================================

def test_mp3_to_pcm(tmp_path):
    """Test decoding writes 4608 bytes per frame."""
    src = tmp_path / "in.mp3"
    dst = tmp_path / "out.pcm"
    src.write_bytes(SILENT_FRAME * 3)
    assert mp3_main([str(src), str(dst)]) == 0
    assert dst.read_bytes() == bytes(3 * 4608)


def test_mp3_error(tmp_path, capsys):
    """Test undecodable input reports the file name."""
    src = tmp_path / "in.mp3"
    src.write_bytes(b"not an mp3 file")
    assert mp3_main([str(src), str(tmp_path / "out.pcm")]) == 1
    assert "in.mp3: no MP3 frame found" in capsys.readouterr().err
