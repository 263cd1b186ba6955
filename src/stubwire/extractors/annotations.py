from __future__ import annotations

import ast
from typing import Iterable, Optional

from stubwire.extractors.descriptors import DecoratorArg, DecoratorDecl


def name_of_expr(node: ast.AST) -> str:
    # dotted name of a decorator, marker or annotation head
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return f"{name_of_expr(node.value)}.{node.attr}"
    if isinstance(node, ast.Call):
        return name_of_expr(node.func)
    if isinstance(node, ast.Subscript):
        return name_of_expr(node.value)
    return node.__class__.__name__


def short_name(node: ast.AST) -> str:
    """Last dotted segment: ``@nest.get("/x")`` and ``@get("/x")`` both give ``get``."""
    return name_of_expr(node).rsplit(".", 1)[-1]


def parse_arg(node: ast.AST) -> DecoratorArg:
    raw = ast.unparse(node)
    try:
        value = ast.literal_eval(node)
    except (ValueError, TypeError, SyntaxError, MemoryError, RecursionError):
        return DecoratorArg(kind="unknown", value=raw, raw=raw)

    if isinstance(value, str):
        return DecoratorArg(kind="string", value=value, raw=raw)
    if isinstance(value, bool):
        return DecoratorArg(kind="boolean", value=value, raw=raw)
    if isinstance(value, (int, float)):
        return DecoratorArg(kind="number", value=value, raw=raw)
    if isinstance(value, dict):
        return DecoratorArg(kind="object", value=value, raw=raw)
    if isinstance(value, (list, tuple)):
        return DecoratorArg(kind="array", value=list(value), raw=raw)
    if value is None:
        return DecoratorArg(kind="none", value=None, raw=raw)
    return DecoratorArg(kind="unknown", value=raw, raw=raw)


def parse_decorator(node: ast.AST) -> DecoratorDecl:
    line = getattr(node, "lineno", 0) or 0
    if isinstance(node, ast.Call):
        return DecoratorDecl(
            name=short_name(node.func),
            args=tuple(parse_arg(a) for a in node.args),
            keywords=tuple((kw.arg, parse_arg(kw.value)) for kw in node.keywords if kw.arg),
            line=line,
        )
    return DecoratorDecl(name=short_name(node), line=line)


def parse_decorators(nodes: Iterable[ast.AST]) -> tuple[DecoratorDecl, ...]:
    return tuple(parse_decorator(n) for n in nodes)


def find_decorator(decorators: Iterable[DecoratorDecl], names: Iterable[str]) -> Optional[DecoratorDecl]:
    wanted = set(names)
    for d in decorators:
        if d.name in wanted:
            return d
    return None


def split_annotated(annotation: Optional[ast.AST]) -> tuple[Optional[ast.AST], list[ast.AST]]:
    """
    Split ``Annotated[T, m1, m2]`` into (T, [m1, m2]).
    Any other annotation is returned unchanged with no metadata.
    """
    if isinstance(annotation, ast.Subscript) and short_name(annotation.value) == "Annotated":
        sl = annotation.slice
        if isinstance(sl, ast.Tuple) and sl.elts:
            return sl.elts[0], list(sl.elts[1:])
        return sl, []
    return annotation, []
