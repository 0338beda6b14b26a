"""Shader back ends: GLSL, HLSL and MSL generation from the IR."""

from .glsl_emitter import GLSLEmitter, compile_glsl
from .hlsl_emitter import HLSLEmitter, compile_hlsl
from .msl_emitter import MSLEmitter, compile_msl

__all__ = [
    'GLSLEmitter', 'compile_glsl',
    'HLSLEmitter', 'compile_hlsl',
    'MSLEmitter', 'compile_msl',
]
