"""
Kage source parser.

Kage shares its surface syntax with Go, so the front end runs the
tree-sitter Go grammar and hands the concrete syntax tree to the
analyzer, which rejects everything outside the shader subset.

Syntax errors are collected from ``ERROR`` and ``MISSING`` nodes so a
single parse reports every broken spot.

Usage:
    parser = KageParser()
    root = parser.parse(source)
"""

import logging
from typing import List

import tree_sitter_go
from tree_sitter import Language, Parser

from ..errors import CompileError, TransformationError
from .ast_nodes import ASTNode

logger = logging.getLogger(__name__)

GO_LANGUAGE = Language(tree_sitter_go.language())


class KageParser:
    """Parses Kage source into an ASTNode tree."""

    def __init__(self):
        self._parser = Parser(GO_LANGUAGE)

    def parse(self, source) -> ASTNode:
        """
        Parse source text.

        Args:
            source: str or bytes

        Returns:
            Root ``source_file`` node

        Raises:
            CompileError: If the source has syntax errors
        """
        if isinstance(source, str):
            source = source.encode('utf-8')
        tree = self._parser.parse(source)
        root = ASTNode(tree.root_node)
        errors = self.syntax_errors(root)
        if errors:
            logger.debug("parse failed with %d syntax error(s)", len(errors))
            raise CompileError(errors)
        return root

    @staticmethod
    def syntax_errors(root: ASTNode) -> List[TransformationError]:
        if not root.has_error:
            return []
        errors = []
        seen = set()
        for node in root.walk():
            if node.type == 'ERROR' or node.is_missing:
                if node.start_point in seen:
                    continue
                seen.add(node.start_point)
                if node.is_missing:
                    msg = f"syntax error: missing {node.type}"
                else:
                    msg = "syntax error"
                errors.append(TransformationError(msg, node.start_point))
        if not errors:
            errors.append(TransformationError("syntax error", root.start_point))
        return errors
