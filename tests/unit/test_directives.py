"""
Unit tests for the //kage: directive scanner.

Tests:
- Default and explicit units
- Placement before the package clause
- Duplicate and invalid directives
- Lines that only look like directives
"""

import pytest

from kage_cross.errors import TransformationError
from kage_cross.ir.program import Unit
from kage_cross.parser.directives import parse_directives


# ============================================================================
# 1. Accepted Directives
# ============================================================================

def test_default_unit_is_texels():
    """Test a shader without directives addresses texels."""
    assert parse_directives("package main\n").unit == Unit.TEXELS


@pytest.mark.parametrize("value,unit", [
    ('pixels', Unit.PIXELS),
    ('texels', Unit.TEXELS),
])
def test_unit_values(value, unit):
    """Test both unit values."""
    source = f"//kage:unit {value}\n\npackage main\n"
    assert parse_directives(source).unit == unit


def test_trailing_whitespace_is_ignored():
    """Test the value is trimmed."""
    assert parse_directives("//kage:unit pixels   \npackage main\n").unit == Unit.PIXELS


@pytest.mark.parametrize("line", [
    "// kage:unit pixels",
    "//kage:units pixels",
    "  //kage:unit pixels",
])
def test_lookalike_comments_are_ignored(line):
    """Test only the exact directive form is recognised."""
    assert parse_directives(f"{line}\npackage main\n").unit == Unit.TEXELS


# ============================================================================
# 2. Rejected Directives
# ============================================================================

def test_directive_after_package_clause():
    """Test directives must precede the package clause."""
    with pytest.raises(TransformationError) as exc:
        parse_directives("package main\n\n//kage:unit pixels\n")
    assert exc.value.message == "//kage:unit must be placed before the package clause"
    assert exc.value.location == (2, 0)


def test_duplicate_directive():
    """Test at most one unit directive exists."""
    source = "//kage:unit pixels\n//kage:unit pixels\npackage main\n"
    with pytest.raises(TransformationError) as exc:
        parse_directives(source)
    assert exc.value.message == "at most one //kage:unit can exist in a shader"


def test_invalid_value():
    """Test unknown unit values are rejected."""
    with pytest.raises(TransformationError) as exc:
        parse_directives("//kage:unit meters\npackage main\n")
    assert exc.value.message == "invalid value for //kage:unit: meters"
    assert exc.value.diagnostic() == "1:1: invalid value for //kage:unit: meters"
