"""
Compiler options.

Usage:
    options = CompilerOptions(texture_count=4)
    program = compile_source(src, options)
"""

import enum
from dataclasses import dataclass


class GLSLVersion(enum.Enum):
    """GLSL dialect emitted by the GLSL back end."""
    DEFAULT = '150'
    ES300 = '300 es'


@dataclass
class CompilerOptions:
    """
    Attributes:
        vertex_entry: Name of the vertex entry point function
        fragment_entry: Name of the fragment entry point function
        texture_count: Number of textures the shader may sample
        glsl_version: Dialect for the GLSL back end
    """
    vertex_entry: str = 'Vertex'
    fragment_entry: str = 'Fragment'
    texture_count: int = 0
    glsl_version: GLSLVersion = GLSLVersion.DEFAULT

    def __post_init__(self):
        if self.texture_count < 0:
            raise ValueError(f"texture_count must be non-negative: {self.texture_count}")
