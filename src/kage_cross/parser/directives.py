"""
Compiler directive scanner.

Directives are comments, so they never reach the syntax tree the
analyzer walks. They are found by a line-by-line scan of the raw source
instead. The only directive is::

    //kage:unit pixels
    //kage:unit texels

It must appear before the package clause, at most once. Lines that merely
look similar (``// kage:unit``, ``//kage:units``) are ordinary comments.

Usage:
    directives = parse_directives(source)
    directives.unit  # Unit.TEXELS by default
"""

import re
from dataclasses import dataclass

from ..errors import TransformationError
from ..ir.program import Unit

UNIT_DIRECTIVE = re.compile(r'^//kage:unit\s+(.+)$')
PACKAGE_CLAUSE = re.compile(r'^\s*package\b')


@dataclass
class CompilerDirectives:
    unit: Unit = Unit.TEXELS


def parse_directives(source: str) -> CompilerDirectives:
    """
    Scan the source for ``//kage:`` directives.

    Raises:
        TransformationError: On duplicates, unknown values, or a directive
            after the package clause
    """
    directives = CompilerDirectives()
    unit_parsed = False
    package_seen = False

    for row, line in enumerate(source.splitlines()):
        if not package_seen and PACKAGE_CLAUSE.match(line):
            package_seen = True
            continue

        m = UNIT_DIRECTIVE.match(line.rstrip())
        if m is None:
            continue

        if package_seen:
            raise TransformationError(
                "//kage:unit must be placed before the package clause", (row, 0))
        if unit_parsed:
            raise TransformationError(
                "at most one //kage:unit can exist in a shader", (row, 0))

        value = m.group(1).strip()
        if value == 'pixels':
            directives.unit = Unit.PIXELS
        elif value == 'texels':
            directives.unit = Unit.TEXELS
        else:
            raise TransformationError(f"invalid value for //kage:unit: {value}", (row, 0))
        unit_parsed = True

    return directives
