"""
Unit tests for the tree-sitter based Kage parser.

Tests:
- Well-formed sources and node access
- Syntax error collection and rendering
"""

import re

import pytest

from kage_cross.errors import CompileError
from kage_cross.parser import KageParser


@pytest.fixture
def parser():
    """Create Kage parser."""
    return KageParser()


# ============================================================================
# 1. Well-Formed Sources
# ============================================================================

def test_parse_package_and_function(parser):
    """Test top-level declarations are exposed as named children."""
    root = parser.parse("package main\n\nfunc Fragment() vec4 {\n\treturn vec4(1)\n}\n")
    kinds = [child.type for child in root.named_children]
    assert kinds == ['package_clause', 'function_declaration']


def test_parse_accepts_bytes(parser):
    """Test bytes and str sources are both accepted."""
    root = parser.parse(b"package main\n")
    assert root.type == 'source_file'


def test_field_access(parser):
    """Test field lookup and node text."""
    root = parser.parse("package main\n\nfunc Foo(x float) float {\n\treturn x\n}\n")
    func = root.named_children[1]
    assert func.field('name').text == 'Foo'
    assert func.field('body') is not None


def test_uniform_declaration(parser):
    """Test var declarations parse at the top level."""
    root = parser.parse("package main\n\nvar Time float\n")
    assert root.named_children[1].type == 'var_declaration'


# ============================================================================
# 2. Syntax Errors
# ============================================================================

def test_syntax_error_raises_compile_error(parser):
    """Test broken sources raise with positioned diagnostics."""
    with pytest.raises(CompileError) as exc:
        parser.parse("package main\n\nfunc Fragment( vec4 {\n")
    assert exc.value.errors
    for line in str(exc.value).splitlines():
        assert re.match(r'^\d+:\d+: syntax error', line)


def test_syntax_errors_are_one_based(parser):
    """Test error positions are reported 1-based."""
    with pytest.raises(CompileError) as exc:
        parser.parse("package main\n\nfunc F() {\n\tx := )\n}\n")
    line = int(str(exc.value).split(':')[0])
    assert line >= 3
