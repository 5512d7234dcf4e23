"""Shared helpers for working with the lark Tree/Token nodes the parser builds."""
from __future__ import annotations

from typing import Any, List, Optional, TypeGuard, Union

from lark import Token, Tree
from typing_extensions import TypeAlias

from .errors import NO_POSITION, Position
from .token_types import Tok

Node: TypeAlias = Union[Tree, Token]


def is_tree(node: Any) -> TypeGuard[Tree]:
    return isinstance(node, Tree)

def is_token(node: Any) -> TypeGuard[Token]:
    return isinstance(node, Token)

def tree_label(node: Any) -> Optional[str]:
    return node.data if is_tree(node) else None

def tree_children(node: Any) -> List[Any]:
    if not is_tree(node):
        return []

    return list(node.children)

def make_tree(label: str, children: List[Any], tok: Optional[Tok] = None) -> Tree:
    """Build a tree whose meta carries the position of ``tok``."""
    tree = Tree(label, children)
    if tok is not None:
        tree.meta.line = tok.line
        tree.meta.column = tok.column
        tree.meta.empty = False
    return tree

def make_token(kind: str, tok: Tok, value: Any = None) -> Token:
    return Token(kind, tok.value if value is None else value, line=tok.line, column=tok.column)

def node_position(node: Any) -> Position:
    if is_token(node):
        line = getattr(node, "line", None)
        column = getattr(node, "column", None)
    elif is_tree(node):
        if node.meta.empty:
            return NO_POSITION
        line = getattr(node.meta, "line", None)
        column = getattr(node.meta, "column", None)
    else:
        return NO_POSITION

    if not line:
        return NO_POSITION

    return Position(line, column or 0)
