"""Typed intermediate representation shared by the analyzer and back ends."""

from .types import Type, BasicType
from .constant import Constant, ConstKind
from .program import *  # noqa: F401,F403
from .packing import uniform_offsets_in_dwords, adjust_uniforms
