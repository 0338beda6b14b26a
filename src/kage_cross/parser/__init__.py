"""Kage front end: tree-sitter parser, AST wrapper and directive scanner."""

from .ast_nodes import ASTNode
from .kage_parser import KageParser
from .directives import CompilerDirectives, parse_directives

__all__ = ['ASTNode', 'KageParser', 'CompilerDirectives', 'parse_directives']
