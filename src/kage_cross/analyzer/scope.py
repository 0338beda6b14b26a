"""
Lexical scopes used while building the IR.

A Scope mirrors one IR Block. Local variables are numbered across the
whole scope chain: the index of a variable is the number of variables
declared in all enclosing scopes plus its position in its own scope.
The global scope holds no variables (uniforms live on the program), only
constants and type aliases.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..ir import Block, Constant, Type


@dataclass
class Variable:
    name: str
    typ: Type
    for_loop_counter: bool = False
    # Entry point inputs are read-only
    read_only: bool = False
    # Type taken from the value of a := declaration
    inferred: bool = False


@dataclass
class ConstSymbol:
    name: str
    typ: Type
    value: Constant


@dataclass
class TypeAlias:
    name: str
    typ: Type


@dataclass(eq=False)
class Scope:
    """
    Attributes:
        vars: Variables in declaration order, parameters first for a
            function's root scope
        unused: Index (within ``vars``) to declaration position, for named
            locals not read yet
        consts: Named constants
        types: Type aliases
        outer: Enclosing scope, None for the global scope
        ir: The IR block being filled
    """
    vars: List[Variable] = field(default_factory=list)
    unused: Dict[int, Tuple[int, int]] = field(default_factory=dict)
    consts: List[ConstSymbol] = field(default_factory=list)
    types: List[TypeAlias] = field(default_factory=list)
    outer: Optional['Scope'] = None
    ir: Block = field(default_factory=Block)

    def total_local_variable_count(self) -> int:
        c = len(self.vars)
        if self.outer is not None:
            c += self.outer.total_local_variable_count()
        return c

    def _base_index(self) -> int:
        return self.outer.total_local_variable_count() if self.outer is not None else 0

    def add_named_local_variable(self, name: str, typ: Type, pos: Tuple[int, int]) -> int:
        """Declare a named local and start tracking its use. Returns its index."""
        self.vars.append(Variable(name, typ))
        idx = len(self.vars) - 1
        if name != '_':
            self.unused[idx] = pos
        return self._base_index() + idx

    def add_temporary(self, typ: Type) -> int:
        """Declare an unnamed local (call results, composite literals)."""
        idx = self._base_index() + len(self.vars)
        self.vars.append(Variable('', typ))
        return idx

    def find_local_variable(self, name: str, mark_used: bool) -> Optional[Tuple[int, Variable]]:
        """Look a name up through the enclosing scopes."""
        base = self._base_index()
        for i, v in enumerate(self.vars):
            if v.name == name:
                if mark_used:
                    self.unused.pop(i, None)
                return base + i, v
        if self.outer is not None:
            return self.outer.find_local_variable(name, mark_used)
        return None

    def find_local_variable_by_index(self, idx: int) -> Optional[Variable]:
        base = self._base_index()
        if base <= idx < base + len(self.vars):
            return self.vars[idx - base]
        if self.outer is not None:
            return self.outer.find_local_variable_by_index(idx)
        return None

    def find_constant(self, name: str) -> Optional[ConstSymbol]:
        for c in self.consts:
            if c.name == name:
                return c
        if self.outer is not None:
            return self.outer.find_constant(name)
        return None

    def find_type(self, name: str) -> Optional[Type]:
        for t in self.types:
            if t.name == name:
                return t.typ
        if self.outer is not None:
            return self.outer.find_type(name)
        return None

    def declares(self, name: str) -> bool:
        """True when the name is bound directly in this scope."""
        return (any(v.name == name for v in self.vars)
                or any(c.name == name for c in self.consts)
                or any(t.name == name for t in self.types))
