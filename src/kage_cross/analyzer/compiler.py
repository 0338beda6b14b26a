"""
Compiler driver - Converts Kage source to the shader IR.

Architecture:
    Kage source -> KageParser (tree-sitter) -> Compiler -> ir.Program

The compiler:
- Registers uniforms, global constants and types first
- Registers every function before any body is analyzed, so functions
  may call each other in any order
- Checks the vertex/fragment entry point contract
- Analyzes each function body, collecting one batch of diagnostics

Usage:
    compiler = Compiler(CompilerOptions(texture_count=4))
    program = compiler.compile(source)
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..config import CompilerOptions
from ..errors import CompileError, TransformationError
from ..ir import constant as C
from ..ir import types as T
from ..ir.program import Func, Init, Program, calc_source_hash
from ..ir.types import BasicType, Type
from ..parser import KageParser, parse_directives
from .builtins import BuiltinCallMixin, const_of
from .delayed import DelayedShiftMixin
from .expressions import ExpressionMixin
from .scope import Scope, Variable
from .statements import StatementMixin, has_return, block_statements, specs_of

logger = logging.getLogger(__name__)

BUILTIN_TYPES = {
    'bool': T.BOOL,
    'int': T.INT,
    'float': T.FLOAT,
    'vec2': T.VEC2,
    'vec3': T.VEC3,
    'vec4': T.VEC4,
    'ivec2': T.IVEC2,
    'ivec3': T.IVEC3,
    'ivec4': T.IVEC4,
    'mat2': T.MAT2,
    'mat3': T.MAT3,
    'mat4': T.MAT4,
}

_UNSUPPORTED_TYPES = {
    'struct_type': "struct is not implemented",
    'slice_type': "slice is not supported",
    'pointer_type': "pointer is not supported",
    'map_type': "map is not supported",
    'channel_type': "chan is not supported",
    'function_type': "function type is not supported",
    'interface_type': "interface is not supported",
    'qualified_type': "qualified type is not supported",
    'generic_type': "generic type is not supported",
    'implicit_length_array_type': "[...] array is available only in a composite literal",
}


@dataclass
class FuncInfo:
    """A function signature as seen by callers."""
    name: str
    node: object
    in_params: List[Variable] = field(default_factory=list)
    out_params: List[Variable] = field(default_factory=list)
    return_type: Type = T.NONE
    ir: Optional[Func] = None


class Compiler(ExpressionMixin, BuiltinCallMixin, StatementMixin, DelayedShiftMixin):
    """
    Builds an ir.Program from Kage source.

    A Compiler instance can be reused; all per-source state is reset by
    ``compile``.
    """

    def __init__(self, options: Optional[CompilerOptions] = None):
        self.options = options or CompilerOptions()
        self.parser = KageParser()
        self._reset()

    def _reset(self):
        self.errors: List[TransformationError] = []
        self._global = Scope()
        self._uniform_names: List[str] = []
        self._uniform_types: List[Type] = []
        self._uniform_indices: Dict[str, int] = {}
        self._func_infos: List[FuncInfo] = []
        self._func_indices: Dict[str, int] = {}
        self._vertex: Optional[FuncInfo] = None
        self._fragment: Optional[FuncInfo] = None
        self._func_ctx: Optional[FuncInfo] = None
        self._delayed = {}

    def _fail(self, node, message: str):
        raise TransformationError(message, node.start_point)

    # ========================================================================
    # Entry point
    # ========================================================================

    def compile(self, source) -> Program:
        """
        Compile Kage source.

        Args:
            source: str or bytes

        Returns:
            The analyzed program

        Raises:
            CompileError: With every diagnostic found
        """
        if isinstance(source, bytes):
            source = source.decode('utf-8')
        logger.debug("compiling %d bytes of Kage source", len(source))

        self._reset()
        root = self.parser.parse(source)
        try:
            directives = parse_directives(source)
        except TransformationError as e:
            raise CompileError([e])

        program = self._parse_source_file(root)
        if self.errors:
            logger.debug("compilation failed with %d error(s)", len(self.errors))
            raise CompileError(self.errors)

        program.texture_count = self.options.texture_count
        program.unit = directives.unit
        program.source_hash = calc_source_hash(source.encode('utf-8'))
        logger.debug("compiled %d function(s), %d uniform(s)", len(program.funcs), len(program.uniforms))
        return program

    def _try(self, fn, *args):
        try:
            return fn(*args)
        except TransformationError as e:
            self.errors.append(e)
        except CompileError as e:
            self.errors.extend(e.errors)
        return None

    def _parse_source_file(self, root) -> Program:
        func_decls = []
        for decl in root.named_children:
            kind = decl.type
            if kind == 'package_clause':
                continue
            if kind == 'function_declaration':
                func_decls.append(decl)
            elif kind == 'import_declaration':
                self.errors.append(TransformationError("import is forbidden", decl.start_point))
            elif kind == 'var_declaration':
                self._try(self._parse_uniform_decl, decl)
            elif kind == 'const_declaration':
                self._try(self._parse_const_decl, self._global, '', decl)
            elif kind == 'type_declaration':
                self._try(self._parse_type_decl, self._global, '', decl)
            else:
                self.errors.append(TransformationError("unexpected decl", decl.start_point))

        # Internal uniforms come first, in source order
        order = sorted(range(len(self._uniform_names)),
                       key=lambda i: not self._uniform_names[i].startswith('__'))
        self._uniform_names = [self._uniform_names[i] for i in order]
        self._uniform_types = [self._uniform_types[i] for i in order]
        self._uniform_indices = {name: i for i, name in enumerate(self._uniform_names)}

        for decl in func_decls:
            self._try(self._register_func, decl)
        self._try(self._check_entry_points)
        if self.errors:
            return Program()

        attributes: List[Type] = []
        varyings: List[Type] = []
        if self._vertex is not None:
            attributes = [p.typ for p in self._vertex.in_params]
            varyings = [p.typ for p in self._vertex.out_params[1:]]
        elif self._fragment is not None:
            varyings = [p.typ for p in self._fragment.in_params[1:]]

        if self._fragment is not None:
            ins = self._fragment.in_params
            if not ins:
                ins.append(Variable('', T.VEC4))
            while len(ins) < len(varyings) + 1:
                ins.append(Variable('', varyings[len(ins) - 1]))

        funcs = []
        for info in self._func_infos:
            info.ir.block = self._try(self._parse_func_body, info)
            funcs.append(info.ir)
        vertex_block = self._try(self._parse_func_body, self._vertex) if self._vertex else None
        fragment_block = self._try(self._parse_func_body, self._fragment) if self._fragment else None

        return Program(
            uniform_names=list(self._uniform_names),
            uniforms=list(self._uniform_types),
            attributes=attributes,
            varyings=varyings,
            funcs=funcs,
            vertex_func=vertex_block,
            fragment_func=fragment_block,
        )

    # ========================================================================
    # Types
    # ========================================================================

    def _parse_type(self, scope: Scope, node) -> Type:
        kind = node.type
        if kind == 'type_identifier':
            name = node.text
            alias = scope.find_type(name)
            if alias is not None:
                return alias
            if name in BUILTIN_TYPES:
                return BUILTIN_TYPES[name]
            self._fail(node, f"unexpected type: {name}")

        if kind == 'array_type':
            length, _, _ = self._parse_single_expr(scope, '', node.field('length'), True, "an array length")
            c = const_of(length)
            n = None
            if c is not None and c.is_number():
                v = C.to_int(c)
                n = v.value if v is not None else None
            if n is None or n < 0:
                self._fail(node, f"array length must be a non-negative integer constant: {node.field('length').text}")
            elem = self._parse_type(scope, node.field('element'))
            if elem.main == BasicType.ARRAY:
                self._fail(node, "array of array is forbidden")
            return Type.array(elem, n)

        if kind == 'parenthesized_type':
            return self._parse_type(scope, node.named_children[0])

        self._fail(node, _UNSUPPORTED_TYPES.get(kind, f"unexpected type: {node.text}"))

    # ========================================================================
    # Declarations
    # ========================================================================

    def _parse_uniform_decl(self, decl):
        for spec in specs_of(decl, 'var_spec'):
            if spec.field('value') is not None:
                self._fail(spec, "a uniform variable cannot have initial values")
            t = self._parse_type(self._global, spec.field('type'))
            for n in spec.fields('name'):
                name = n.text
                if not (name.startswith('__') or name[:1].isupper()):
                    self._fail(n, f"global variables must be exposed: {name}")
                if name in self._uniform_indices or self._global.declares(name):
                    self._fail(n, f"{name} redeclared in this block")
                self._uniform_indices[name] = len(self._uniform_names)
                self._uniform_names.append(name)
                self._uniform_types.append(t)

    def _parse_params(self, node) -> List[Variable]:
        params = []
        for p in node.named_children:
            if p.type == 'variadic_parameter_declaration':
                self._fail(p, "variadic parameters are not supported")
            t = self._parse_type(self._global, p.field('type'))
            names = p.fields('name')
            if not names:
                params.append(Variable('', t))
            for n in names:
                params.append(Variable(n.text, t))
        return params

    def _parse_func_params(self, decl, is_vertex: bool):
        ins = self._parse_params(decl.field('parameters'))
        outs: List[Variable] = []
        result = decl.field('result')
        if result is not None:
            if result.type == 'parameter_list':
                outs = self._parse_params(result)
            else:
                outs = [Variable('', self._parse_type(self._global, result))]

        return_type = T.NONE
        if (not is_vertex and len(outs) == 1 and not outs[0].name
                and outs[0].typ.main != BasicType.ARRAY):
            return_type = outs[0].typ
            outs = []
        return ins, outs, return_type

    def _register_func(self, decl):
        name = decl.field('name').text
        if name == 'init':
            self._fail(decl, "init function is not implemented")
        taken = set(self._func_indices)
        for entry in (self._vertex, self._fragment):
            if entry is not None:
                taken.add(entry.name)
        if name in taken:
            self._fail(decl, f"redeclared function: {name}")
        if decl.field('type_parameters') is not None:
            self._fail(decl, "type parameters are not supported")
        if decl.field('body') is None:
            self._fail(decl, f"function {name} must have a body")

        is_vertex = name == self.options.vertex_entry
        ins, outs, return_type = self._parse_func_params(decl, is_vertex)
        info = FuncInfo(name, decl, ins, outs, return_type)

        if is_vertex:
            self._vertex = info
        elif name == self.options.fragment_entry:
            self._fragment = info
        else:
            info.ir = Func(
                index=len(self._func_infos),
                in_params=[p.typ for p in ins],
                out_params=[p.typ for p in outs],
                return_type=return_type,
            )
            self._func_indices[name] = info.ir.index
            self._func_infos.append(info)

    def _check_entry_points(self):
        vertex, fragment = self._vertex, self._fragment
        if vertex is not None:
            if not vertex.out_params or vertex.out_params[0].typ != T.VEC4:
                self._fail(vertex.node, "vertex entry point must have at least one returning vec4 value for a position")
        if fragment is None:
            return
        if fragment.out_params or fragment.return_type != T.VEC4:
            self._fail(fragment.node, "fragment entry point must have one returning vec4 value for a color")
        ins = fragment.in_params
        if ins and ins[0].typ != T.VEC4:
            self._fail(fragment.node, f"fragment argument {ins[0].name} must be vec4 but was {ins[0].typ}")
        if vertex is None:
            return
        outs = vertex.out_params
        for i, p in enumerate(ins[1:], 1):
            if i >= len(outs):
                self._fail(fragment.node, f"fragment argument {p.name} does not match any vertex output")
            if p.typ != outs[i].typ:
                self._fail(fragment.node, f"fragment argument {p.name} must be {outs[i].typ} but was {p.typ}")

    # ========================================================================
    # Function bodies
    # ========================================================================

    def _parse_func_body(self, info: FuncInfo):
        entry = info is self._vertex or info is self._fragment
        root = Scope(outer=self._global)
        root.vars = [Variable(p.name, p.typ, read_only=entry) for p in info.in_params]
        root.vars += [Variable(p.name, p.typ) for p in info.out_params]
        param_count = len(root.vars)
        root.ir.local_var_index_offset = param_count

        self._func_ctx = info
        self._delayed.clear()

        stmts = []
        for i, p in enumerate(info.out_params):
            if p.name:
                stmts.append(Init(len(info.in_params) + i))
        stmts.extend(self._parse_stmts(root, info.name, block_statements(info.node.field('body'))))
        root.ir.stmts = stmts

        self._check_delayed()
        self._close_scope(root, param_count)
        if (info.out_params or info.return_type.main != BasicType.NONE) and not has_return(root.ir):
            self._fail(info.node, f"function {info.name} must have a return statement but not")
        return root.ir
