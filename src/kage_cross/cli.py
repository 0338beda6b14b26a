"""
Command line entry points.

    kage-cross shader.go --target hlsl --textures 2
    kage-cross-mp3 music.mp3 music.pcm
"""

import argparse
import logging
import sys

from .analyzer import compile_source
from .codegen import compile_glsl, compile_hlsl, compile_msl
from .config import CompilerOptions, GLSLVersion
from .errors import CompileError
from .mp3 import MP3Error, new_decoder

logger = logging.getLogger(__name__)

TARGETS = ('glsl', 'glsl-es', 'hlsl', 'msl')


def _configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )


def _section(title: str, body: str) -> str:
    return f"// ---- {title} ----\n{body}"


def emit(program, target: str, options: CompilerOptions) -> str:
    """Generated source for one target, stages separated by banner comments."""
    if target in ('glsl', 'glsl-es'):
        version = GLSLVersion.ES300 if target == 'glsl-es' else options.glsl_version
        vertex, fragment = compile_glsl(program, version)
        return _section('vertex', vertex) + '\n' + _section('fragment', fragment)
    if target == 'hlsl':
        vertex, pixel, offsets = compile_hlsl(program)
        return (_section('vertex', vertex) + '\n' + _section('pixel', pixel) + '\n'
                + f"// uniform offsets (DWORDs): {offsets}\n")
    return compile_msl(program)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog='kage-cross', description='Compile a Kage shader to GLSL, HLSL or MSL')
    parser.add_argument('source', help="Kage source file")
    parser.add_argument('--target', choices=TARGETS, default='glsl', help="Output shading language")
    parser.add_argument('--vertex', default='Vertex', help="Vertex entry point name")
    parser.add_argument('--fragment', default='Fragment', help="Fragment entry point name")
    parser.add_argument('--textures', type=int, default=0, help="Number of textures the shader samples")
    parser.add_argument('-v', '--verbose', action='store_true', help="Debug logging")
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    options = CompilerOptions(
        vertex_entry=args.vertex,
        fragment_entry=args.fragment,
        texture_count=args.textures,
    )
    with open(args.source, 'rb') as f:
        source = f.read()
    try:
        program = compile_source(source, options)
    except CompileError as e:
        print(str(e), file=sys.stderr)
        return 1
    sys.stdout.write(emit(program, args.target, options))
    return 0


def mp3_main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog='kage-cross-mp3', description='Decode MP3 to raw 16-bit little-endian stereo PCM')
    parser.add_argument('input', help="MP3 file")
    parser.add_argument('output', help="Raw PCM destination")
    parser.add_argument('-v', '--verbose', action='store_true', help="Debug logging")
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        with open(args.input, 'rb') as src, new_decoder(src) as decoder, \
                open(args.output, 'wb') as dst:
            total = 0
            while True:
                chunk = decoder.read(65536)
                if not chunk:
                    break
                dst.write(chunk)
                total += len(chunk)
    except MP3Error as e:
        print(f"{args.input}: {e}", file=sys.stderr)
        return 1
    logger.info("wrote %d bytes of PCM at %d Hz", total, decoder.sample_rate)
    return 0


if __name__ == '__main__':
    sys.exit(main())
