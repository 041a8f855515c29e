from __future__ import annotations

import dataclasses
import json
from enum import Enum
from typing import Any

import yaml

from lox.lox_datatypes import Token, Expr, Stmt


# --------------------------
# Helpers
# --------------------------

def _token_to_builtin(token: Token) -> dict:
    return {
        'type': token.type.name,
        'lexeme': token.lexeme,
        'literal': token.literal,
        'line': token.line,
        'col': token.col,
    }


def _node_to_builtin(node: Expr | Stmt) -> dict:
    out: dict = {'node': type(node).__name__}
    for f in dataclasses.fields(node):
        value = getattr(node, f.name)
        # Tokens inside a tree collapse to their lexeme; the tree shape carries the rest.
        if isinstance(value, Token):
            out[f.name] = value.lexeme
        else:
            out[f.name] = to_builtin(value)
    return out


def to_builtin(obj: Any) -> Any:
    """Convert tokens, syntax nodes and lists of them into plain dicts/lists/scalars."""
    if isinstance(obj, list):
        return [to_builtin(x) for x in obj]
    if isinstance(obj, Token):
        return _token_to_builtin(obj)
    if isinstance(obj, (Expr, Stmt)):
        return _node_to_builtin(obj)
    if isinstance(obj, Enum):
        return obj.name
    return obj


# --------------------------
# Public API
# --------------------------

def serialize(value: Any, *, fmt: str, pretty: bool = True) -> str:
    """
    Convert tokens or a syntax tree into a textual representation.
    - fmt: 'json' | 'yaml'
    """
    f = (fmt or '').lower()
    built = to_builtin(value)
    if f == 'json':
        return json.dumps(built, ensure_ascii=False, indent=2 if pretty else None)
    if f == 'yaml':
        return yaml.safe_dump(built, sort_keys=False)
    raise ValueError(f"Unsupported serialization format: {fmt!r}")


__all__ = [
    "serialize",
    "to_builtin",
]
