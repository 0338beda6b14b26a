"""
Thin wrapper around tree-sitter nodes.

The analyzer only needs node kinds, text, children and positions. The
wrapper decodes text once, hides comment nodes from the child lists and
gives field access that never returns comment or punctuation nodes by
accident.
"""

from typing import List, Optional


class ASTNode:
    """
    Read-only view of a tree-sitter node.

    Attributes:
        type: Grammar node kind (``binary_expression``, ``identifier``, ...)
        start_point: 0-based (row, column)
    """

    __slots__ = ('_node', '_text')

    def __init__(self, node):
        self._node = node
        self._text = None

    def __repr__(self):
        return f"ASTNode({self.type!r}, {self.text!r})"

    def __eq__(self, other):
        if not isinstance(other, ASTNode):
            return NotImplemented
        return self._node.id == other._node.id

    def __hash__(self):
        return hash(self._node.id)

    @property
    def type(self) -> str:
        return self._node.type

    @property
    def text(self) -> str:
        if self._text is None:
            raw = self._node.text
            self._text = raw.decode('utf-8') if raw is not None else ''
        return self._text

    @property
    def start_point(self) -> tuple:
        p = self._node.start_point
        return (p[0], p[1])

    @property
    def end_point(self) -> tuple:
        p = self._node.end_point
        return (p[0], p[1])

    @property
    def is_named(self) -> bool:
        return self._node.is_named

    @property
    def is_missing(self) -> bool:
        return self._node.is_missing

    @property
    def has_error(self) -> bool:
        return self._node.has_error

    @property
    def children(self) -> List['ASTNode']:
        return [ASTNode(c) for c in self._node.children if c.type != 'comment']

    @property
    def named_children(self) -> List['ASTNode']:
        return [ASTNode(c) for c in self._node.named_children if c.type != 'comment']

    @property
    def raw_children(self) -> List['ASTNode']:
        """All children including comments."""
        return [ASTNode(c) for c in self._node.children]

    def child_by_field_name(self, name: str) -> Optional['ASTNode']:
        c = self._node.child_by_field_name(name)
        return ASTNode(c) if c is not None else None

    def field(self, name: str) -> Optional['ASTNode']:
        return self.child_by_field_name(name)

    def fields(self, name: str) -> List['ASTNode']:
        return [ASTNode(c) for c in self._node.children_by_field_name(name)
                if c.type != 'comment']

    def walk(self):
        """Yield this node and every descendant, comments included."""
        stack = [self._node]
        while stack:
            n = stack.pop()
            yield ASTNode(n)
            stack.extend(reversed(n.children))
