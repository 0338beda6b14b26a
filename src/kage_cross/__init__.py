"""
kage_cross - Kage shader cross-compiler and MP3 decoder.

Usage:
    from kage_cross import compile_source, compile_glsl
    program = compile_source(source)
    vertex, fragment = compile_glsl(program)
"""

from .analyzer import compile_source
from .codegen import compile_glsl, compile_hlsl, compile_msl
from .config import CompilerOptions, GLSLVersion
from .errors import CompileError, TransformationError

__version__ = '0.1.0'

__all__ = [
    'compile_source', 'compile_glsl', 'compile_hlsl', 'compile_msl',
    'CompilerOptions', 'GLSLVersion', 'CompileError', 'TransformationError',
]
