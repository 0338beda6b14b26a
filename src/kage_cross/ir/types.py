"""
Shader type model for the Kage intermediate representation.

Types form a closed sum over BasicType. A Type carries an optional tuple
of sub-types (the element of an array or the members of a struct) and a
length (arrays only). Equality is structural, so two independently built
``Type(BasicType.ARRAY, (Type(BasicType.FLOAT),), 4)`` values compare equal.

Design:
- Immutable (frozen dataclass), safe to share between IR nodes
- Printable in source syntax (``vec2``, ``[4]float``) for diagnostics
- Helper predicates used by the analyzer and all back ends
"""

import enum
from dataclasses import dataclass
from typing import Tuple


class BasicType(enum.Enum):
    """Tag of a shader type."""
    NONE = 'none'
    BOOL = 'bool'
    INT = 'int'
    FLOAT = 'float'
    VEC2 = 'vec2'
    VEC3 = 'vec3'
    VEC4 = 'vec4'
    IVEC2 = 'ivec2'
    IVEC3 = 'ivec3'
    IVEC4 = 'ivec4'
    MAT2 = 'mat2'
    MAT3 = 'mat3'
    MAT4 = 'mat4'
    TEXTURE = 'texture'
    ARRAY = 'array'
    STRUCT = 'struct'


FLOAT_VECTORS = (BasicType.VEC2, BasicType.VEC3, BasicType.VEC4)
INT_VECTORS = (BasicType.IVEC2, BasicType.IVEC3, BasicType.IVEC4)
MATRICES = (BasicType.MAT2, BasicType.MAT3, BasicType.MAT4)

_ELEMENT_COUNTS = {
    BasicType.VEC2: 2, BasicType.IVEC2: 2,
    BasicType.VEC3: 3, BasicType.IVEC3: 3,
    BasicType.VEC4: 4, BasicType.IVEC4: 4,
}

_MATRIX_SIZES = {BasicType.MAT2: 2, BasicType.MAT3: 3, BasicType.MAT4: 4}


@dataclass(frozen=True)
class Type:
    """
    A shader type.

    Attributes:
        main: The type tag
        sub: Element type for arrays, member types for structs
        length: Array length (unused for other tags)
    """
    main: BasicType = BasicType.NONE
    sub: Tuple['Type', ...] = ()
    length: int = 0

    def __post_init__(self):
        """Check the shape of the tagged value."""
        if self.main == BasicType.ARRAY:
            if len(self.sub) != 1:
                raise ValueError("array type must have exactly one element type")
            if self.length < 0:
                raise ValueError(f"array length must be non-negative: {self.length}")
        elif self.main != BasicType.STRUCT and self.sub:
            raise ValueError(f"{self.main.value} type cannot have sub types")

    @classmethod
    def array(cls, elem: 'Type', length: int) -> 'Type':
        return cls(BasicType.ARRAY, (elem,), length)

    def __str__(self) -> str:
        if self.main == BasicType.ARRAY:
            return f"[{self.length}]{self.sub[0]}"
        if self.main == BasicType.STRUCT:
            members = ', '.join(str(t) for t in self.sub)
            return f"struct{{{members}}}"
        return self.main.value

    @property
    def elem(self) -> 'Type':
        """Element type of an array."""
        return self.sub[0]

    def is_float_vector(self) -> bool:
        return self.main in FLOAT_VECTORS

    def is_int_vector(self) -> bool:
        return self.main in INT_VECTORS

    def is_vector(self) -> bool:
        return self.is_float_vector() or self.is_int_vector()

    def is_matrix(self) -> bool:
        return self.main in MATRICES

    def is_scalar(self) -> bool:
        return self.main in (BasicType.BOOL, BasicType.INT, BasicType.FLOAT)

    def is_numeric_scalar(self) -> bool:
        return self.main in (BasicType.INT, BasicType.FLOAT)

    def vector_element_count(self) -> int:
        """Number of components of a vector, 0 otherwise."""
        return _ELEMENT_COUNTS.get(self.main, 0)

    def matrix_size(self) -> int:
        """N for an NxN matrix, 0 otherwise."""
        return _MATRIX_SIZES.get(self.main, 0)

    def dword_count(self) -> int:
        """
        Number of 32-bit words the value occupies in a tightly packed
        uniform upload (before any target specific padding).
        """
        if self.main in (BasicType.BOOL, BasicType.INT, BasicType.FLOAT):
            return 1
        if self.is_vector():
            return self.vector_element_count()
        if self.is_matrix():
            n = self.matrix_size()
            return n * n
        if self.main == BasicType.ARRAY:
            return self.length * self.sub[0].dword_count()
        if self.main == BasicType.STRUCT:
            return sum(t.dword_count() for t in self.sub)
        return 0


# ============================================================================
# Shorthands
# ============================================================================

NONE = Type(BasicType.NONE)
BOOL = Type(BasicType.BOOL)
INT = Type(BasicType.INT)
FLOAT = Type(BasicType.FLOAT)
VEC2 = Type(BasicType.VEC2)
VEC3 = Type(BasicType.VEC3)
VEC4 = Type(BasicType.VEC4)
IVEC2 = Type(BasicType.IVEC2)
IVEC3 = Type(BasicType.IVEC3)
IVEC4 = Type(BasicType.IVEC4)
MAT2 = Type(BasicType.MAT2)
MAT3 = Type(BasicType.MAT3)
MAT4 = Type(BasicType.MAT4)
TEXTURE = Type(BasicType.TEXTURE)


def float_vector_of(n: int) -> Type:
    """vecN (or float for N == 1)."""
    return {1: FLOAT, 2: VEC2, 3: VEC3, 4: VEC4}[n]


def int_vector_of(n: int) -> Type:
    """ivecN (or int for N == 1)."""
    return {1: INT, 2: IVEC2, 3: IVEC3, 4: IVEC4}[n]


def vector_of_matrix(t: Type) -> Type:
    """Column vector type of a matrix."""
    return float_vector_of(t.matrix_size())
