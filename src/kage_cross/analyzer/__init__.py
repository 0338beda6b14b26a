"""
Semantic analyzer: Kage AST to shader IR.

Usage:
    from kage_cross.analyzer import compile_source
    program = compile_source(source, CompilerOptions(texture_count=4))
"""

from typing import Optional

from ..config import CompilerOptions
from ..ir.program import Program
from .compiler import Compiler


def compile_source(source, options: Optional[CompilerOptions] = None) -> Program:
    """
    Compile Kage source into an IR Program.

    Raises:
        CompileError: With the diagnostics of the failed compilation
    """
    return Compiler(options).compile(source)


__all__ = ['Compiler', 'compile_source']
